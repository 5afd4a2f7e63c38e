"""
Idempotent provisioning of destination backup buckets.

A bucket is created once with the backup policy and validated on every later
run. An existing bucket that disagrees with the policy is never reconfigured:
it may hold live backup data, so a mismatch aborts the run instead.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from coldcopy.config import DestinationConfig
from coldcopy.exceptions import ConfigMismatchError

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketPolicy:
    """
    The required configuration of a backup bucket.

    Attributes:
        storage_class (str): Cold storage class for the bucket and its objects.
        region (str): Region the bucket is created in.
        versioning (bool): Whether object versioning must be enabled.
        retention_days (int): Age in days after which objects are deleted.
    """

    storage_class: str = "COLDLINE"
    region: str = "asia-northeast1"
    versioning: bool = True
    retention_days: int = 90

    @classmethod
    def from_config(cls, config: DestinationConfig) -> "BucketPolicy":
        return cls(
            storage_class=config.storage_class,
            region=config.region,
            retention_days=config.retention_days,
        )


@dataclass(frozen=True)
class BucketDescriptor:
    """
    The observed state of a destination bucket.

    Attributes:
        name (str): The bucket name.
        storage_class (str): The bucket's storage class.
        region (str): The bucket's region.
        versioning_enabled (bool): Whether versioning is enabled.
        retention_days (int, optional): Expiration age from the lifecycle
            configuration, if any.
    """

    name: str
    storage_class: str
    region: str
    versioning_enabled: bool
    retention_days: Optional[int] = None


class BucketStore(Protocol):
    async def get_bucket(self, name: str) -> Optional[BucketDescriptor]: ...

    async def create_bucket(self, name: str, policy: BucketPolicy) -> BucketDescriptor: ...


def bucket_name_for(
    container: str, day: Optional[datetime.date] = None, prefix: str = ""
) -> str:
    """
    Derives the destination bucket name for a container.

    Each day's run writes to its own bucket, named after the container and
    the run date, e.g. `photos-2024-3-7`.

    Args:
        container (str): The source container name.
        day (datetime.date, optional): The run date, today if omitted.
        prefix (str): Prefix prepended to the name.

    Returns:
        str: The lower-cased bucket name.
    """
    day = day or datetime.date.today()
    return f"{prefix}{container}-{day.year}-{day.month}-{day.day}".lower()


def _find_mismatches(descriptor: BucketDescriptor, policy: BucketPolicy) -> List[str]:
    mismatches: List[str] = []
    if descriptor.storage_class.upper() != policy.storage_class.upper():
        mismatches.append(
            f"storage class is {descriptor.storage_class}, "
            f"expected {policy.storage_class}"
        )
    if descriptor.versioning_enabled != policy.versioning:
        mismatches.append(
            f"versioning is {'enabled' if descriptor.versioning_enabled else 'disabled'}, "
            f"expected {'enabled' if policy.versioning else 'disabled'}"
        )
    return mismatches


async def ensure_bucket(
    store: BucketStore, name: str, policy: BucketPolicy
) -> BucketDescriptor:
    """
    Ensures that a bucket exists and matches the backup policy.

    Args:
        store (BucketStore): Destination client.
        name (str): The bucket name.
        policy (BucketPolicy): The required bucket configuration.

    Returns:
        BucketDescriptor: The bucket's state after the call.

    Raises:
        ConfigMismatchError: If the bucket exists with a different storage
            class or versioning setting.
    """
    existing: Optional[BucketDescriptor] = await store.get_bucket(name)
    if existing is None:
        descriptor: BucketDescriptor = await store.create_bucket(name, policy)
        logger.info(
            f"Created bucket '{name}' ({policy.storage_class}, {policy.region}, "
            f"expires after {policy.retention_days} days)."
        )
        return descriptor

    mismatches: List[str] = _find_mismatches(existing, policy)
    if mismatches:
        raise ConfigMismatchError(name, mismatches)

    logger.info(f"Bucket '{name}' already exists and matches the backup policy.")
    return existing
