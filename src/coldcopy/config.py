"""
Configuration for the coldcopy backup run.

This module centralizes all configuration, loading sensitive values from
environment variables and providing frozen dataclasses that are injected
into every component. Nothing in the backup engine reads the environment
itself.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from coldcopy.exceptions import ConfigError

DEFAULT_IDENTITY_URL: str = "https://identity.tyo1.conoha.io/v2.0/tokens"
DEFAULT_STORAGE_URL: str = "https://object-storage.tyo1.conoha.io/v1/nc_{tenant_id}"
DEFAULT_DESTINATION_ENDPOINT_URL: str = "https://storage.googleapis.com"
DEFAULT_WEBHOOK_BASE_URL: str = "https://q.trap.jp/api/v3/webhooks"


def _get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = os.environ.get(name, default)
    if not value:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def _get_optional_env_var(name: str) -> Optional[str]:
    """Returns the value of an environment variable, or None when unset or empty."""
    return os.environ.get(name) or None


def _get_int_env_var(name: str, default: int) -> int:
    """
    Retrieves an integer environment variable.

    Args:
        name (str): The name of the environment variable.
        default (int): The value used when the variable is not set.

    Returns:
        int: The parsed value.
    """
    raw: str = _get_env_var(name, str(default))
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(
            f"Environment variable '{name}' must be an integer, got '{raw}'."
        ) from e


@dataclass(frozen=True)
class SwiftConfig:
    """
    Connection settings for the Swift-compatible source object store.

    Attributes:
        username (str): Keystone user name.
        password (str): Keystone password.
        tenant_id (str): Keystone tenant the containers belong to.
        identity_url (str): Keystone v2 token endpoint.
        storage_url (str): Account URL of the object store. May contain a
            `{tenant_id}` placeholder.
    """

    username: str
    password: str
    tenant_id: str
    identity_url: str = DEFAULT_IDENTITY_URL
    storage_url: str = DEFAULT_STORAGE_URL

    @property
    def account_url(self) -> str:
        """The storage URL with the tenant id filled in and no trailing slash."""
        return self.storage_url.format(tenant_id=self.tenant_id).rstrip("/")


@dataclass(frozen=True)
class DestinationConfig:
    """
    Represents the configuration for the S3-compatible destination.

    Attributes:
        endpoint_url (str): The S3 endpoint URL.
        access_key_id (str): The access key ID.
        secret_access_key (str): The secret access key.
        region (str): Region new buckets are created in.
        storage_class (str): Cold storage class required for backup buckets.
        retention_days (int): Age after which backed up objects expire.
        bucket_prefix (str): Prefix prepended to every destination bucket name.
    """

    endpoint_url: str
    access_key_id: str
    secret_access_key: str
    region: str = "asia-northeast1"
    storage_class: str = "COLDLINE"
    retention_days: int = 90
    bucket_prefix: str = ""

    def as_boto_dict(self) -> Dict[str, str]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Returns:
            Dict[str, str]: A dictionary of client parameters.
        """
        return {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": self.region,
        }


@dataclass(frozen=True)
class WebhookConfig:
    """
    Settings for the end-of-run notification webhook.

    Attributes:
        webhook_id (str, optional): Webhook identifier; None disables notification.
        secret (str, optional): Shared secret used to sign message bodies.
        base_url (str): Base URL the webhook id is appended to.
    """

    webhook_id: Optional[str] = None
    secret: Optional[str] = None
    base_url: str = DEFAULT_WEBHOOK_BASE_URL

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_id and self.secret)

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.webhook_id}"


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the application's operational parameters.

    Attributes:
        concurrency (int): Number of admission slots, i.e. maximum transfers
            in flight at once.
        progress_interval (int): Emit a progress line every this many completions.
        part_size_bytes (int): Multipart upload part size at the destination.
        relay_capacity_bytes (int): Maximum bytes buffered between the source
            read and the compress-and-upload side of one transfer.
        chunk_size_bytes (int): Read size for source object bodies.
        compression_level (int): gzip compression level (1-9).
        list_max_pages (int): Upper bound on page requests per container listing.
        http_timeout_s (float): Socket read timeout for source HTTP requests.
        transfer_max_attempts (int): botocore retry attempts for destination calls.
    """

    concurrency: int = 5
    progress_interval: int = 1000
    part_size_bytes: int = 8 * 1024**2
    relay_capacity_bytes: int = 1024**2
    chunk_size_bytes: int = 64 * 1024
    compression_level: int = 6
    list_max_pages: int = 10_000
    http_timeout_s: float = 300.0
    transfer_max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError("Concurrency must be at least 1.")
        if self.progress_interval < 1:
            raise ConfigError("Progress interval must be at least 1.")
        # S3 rejects multipart parts smaller than 5 MiB (except the last one).
        if self.part_size_bytes < 5 * 1024**2:
            raise ConfigError("Part size must be at least 5 MiB.")


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Attributes:
        source (SwiftConfig): Configuration for the Swift source store.
        destination (DestinationConfig): Configuration for the cold-storage destination.
        webhook (WebhookConfig): Configuration for the run summary notification.
        app (AppConfig): General application settings.
    """

    source: SwiftConfig = field(
        default_factory=lambda: SwiftConfig(
            username=_get_env_var("COLDCOPY_SWIFT_USERNAME"),
            password=_get_env_var("COLDCOPY_SWIFT_PASSWORD"),
            tenant_id=_get_env_var("COLDCOPY_SWIFT_TENANT_ID"),
            identity_url=_get_env_var(
                "COLDCOPY_SWIFT_IDENTITY_URL", DEFAULT_IDENTITY_URL
            ),
            storage_url=_get_env_var("COLDCOPY_SWIFT_STORAGE_URL", DEFAULT_STORAGE_URL),
        )
    )
    destination: DestinationConfig = field(
        default_factory=lambda: DestinationConfig(
            endpoint_url=_get_env_var(
                "COLDCOPY_DESTINATION_ENDPOINT_URL", DEFAULT_DESTINATION_ENDPOINT_URL
            ),
            access_key_id=_get_env_var("COLDCOPY_DESTINATION_ACCESS_KEY_ID"),
            secret_access_key=_get_env_var("COLDCOPY_DESTINATION_SECRET_ACCESS_KEY"),
            region=_get_env_var("COLDCOPY_DESTINATION_REGION", "asia-northeast1"),
            storage_class=_get_env_var(
                "COLDCOPY_DESTINATION_STORAGE_CLASS", "COLDLINE"
            ),
            retention_days=_get_int_env_var("COLDCOPY_DESTINATION_RETENTION_DAYS", 90),
            bucket_prefix=os.environ.get("COLDCOPY_DESTINATION_BUCKET_PREFIX", ""),
        )
    )
    webhook: WebhookConfig = field(
        default_factory=lambda: WebhookConfig(
            webhook_id=_get_optional_env_var("COLDCOPY_WEBHOOK_ID"),
            secret=_get_optional_env_var("COLDCOPY_WEBHOOK_SECRET"),
            base_url=_get_env_var(
                "COLDCOPY_WEBHOOK_BASE_URL", DEFAULT_WEBHOOK_BASE_URL
            ),
        )
    )
    app: AppConfig = field(default_factory=AppConfig)
