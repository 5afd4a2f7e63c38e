"""Custom exceptions for the coldcopy application."""

from typing import List


class ColdCopyError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(ColdCopyError):
    """Raised for configuration-related issues."""

    pass


class FatalSetupError(ColdCopyError):
    """Raised when the run cannot proceed and must be aborted."""

    pass


class SourceAuthError(FatalSetupError):
    """Raised when the source object store rejects the credentials."""

    pass


class SourceListingError(FatalSetupError):
    """Raised when listing containers or objects on the source fails."""

    pass


class DestinationError(FatalSetupError):
    """Raised when a destination bucket cannot be inspected or created."""

    pass


class ConfigMismatchError(FatalSetupError):
    """
    Raised when an existing destination bucket does not match the policy.

    Attributes:
        bucket (str): The name of the offending bucket.
        mismatches (List[str]): Human-readable description of each mismatch.
    """

    def __init__(self, bucket: str, mismatches: List[str]) -> None:
        self.bucket: str = bucket
        self.mismatches: List[str] = mismatches
        super().__init__(
            f"Bucket '{bucket}' does not match the backup policy: "
            + "; ".join(mismatches)
        )


class ListStalledError(FatalSetupError):
    """
    Raised when paginated listing stops making progress before reaching the
    declared object count.
    """

    def __init__(self, container: str, accumulated: int, declared_total: int) -> None:
        self.container: str = container
        self.accumulated: int = accumulated
        self.declared_total: int = declared_total
        super().__init__(
            f"Listing of container '{container}' stalled at "
            f"{accumulated}/{declared_total} objects."
        )


class TransferError(ColdCopyError):
    """Raised when a single object transfer fails."""

    pass


class SourceFetchError(TransferError):
    """Raised when reading an object from the source store fails."""

    pass


class DestinationCommitError(TransferError):
    """Raised when writing or finalizing an object at the destination fails."""

    pass


class NotificationError(ColdCopyError):
    """Raised when the run summary notification cannot be delivered."""

    pass
