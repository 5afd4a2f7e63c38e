"""Unit tests for environment-driven configuration."""

import os
from typing import Dict
from unittest.mock import patch

import pytest

from coldcopy.config import AppConfig, Config, SwiftConfig, WebhookConfig
from coldcopy.exceptions import ConfigError

REQUIRED_ENV: Dict[str, str] = {
    "COLDCOPY_SWIFT_USERNAME": "user",
    "COLDCOPY_SWIFT_PASSWORD": "secret",
    "COLDCOPY_SWIFT_TENANT_ID": "abc123",
    "COLDCOPY_DESTINATION_ACCESS_KEY_ID": "key",
    "COLDCOPY_DESTINATION_SECRET_ACCESS_KEY": "secret-key",
}


def test_config_loads_from_environment() -> None:
    """
    Tests that the required variables suffice and defaults fill the rest.

    Assert:
        - Credentials come from the environment.
        - The storage URL carries the tenant id.
        - The webhook is disabled without an id and secret.
    """
    with patch.dict(os.environ, REQUIRED_ENV, clear=True):
        config: Config = Config()

    assert config.source.username == "user"
    assert config.source.account_url.endswith("/v1/nc_abc123")
    assert config.destination.storage_class == "COLDLINE"
    assert config.destination.retention_days == 90
    assert config.destination.as_boto_dict()["aws_access_key_id"] == "key"
    assert not config.webhook.enabled
    assert config.app == AppConfig()


def test_optional_variables_override_defaults() -> None:
    """Tests overrides for the destination and webhook settings."""
    env: Dict[str, str] = {
        **REQUIRED_ENV,
        "COLDCOPY_DESTINATION_STORAGE_CLASS": "ARCHIVE",
        "COLDCOPY_DESTINATION_RETENTION_DAYS": "30",
        "COLDCOPY_DESTINATION_BUCKET_PREFIX": "bk-",
        "COLDCOPY_WEBHOOK_ID": "hook",
        "COLDCOPY_WEBHOOK_SECRET": "s",
        "COLDCOPY_WEBHOOK_BASE_URL": "http://hooks.test/api/",
    }
    with patch.dict(os.environ, env, clear=True):
        config: Config = Config()

    assert config.destination.storage_class == "ARCHIVE"
    assert config.destination.retention_days == 30
    assert config.destination.bucket_prefix == "bk-"
    assert config.webhook.enabled
    assert config.webhook.url == "http://hooks.test/api/hook"


@pytest.mark.parametrize("missing", sorted(REQUIRED_ENV))
def test_missing_required_variable_raises(missing: str) -> None:
    """
    Tests that each required variable is enforced.

    Args:
        missing (str): The variable left unset.
    """
    env: Dict[str, str] = {k: v for k, v in REQUIRED_ENV.items() if k != missing}
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ConfigError, match=missing):
            Config()


def test_non_integer_retention_raises() -> None:
    env: Dict[str, str] = {**REQUIRED_ENV, "COLDCOPY_DESTINATION_RETENTION_DAYS": "soon"}
    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ConfigError, match="must be an integer"):
            Config()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"concurrency": 0},
        {"progress_interval": 0},
        {"part_size_bytes": 1024**2},
    ],
)
def test_app_config_validation(kwargs: Dict[str, int]) -> None:
    """Tests that out-of-range operational settings are rejected."""
    with pytest.raises(ConfigError):
        AppConfig(**kwargs)


def test_account_url_formats_tenant() -> None:
    config: SwiftConfig = SwiftConfig(
        username="u",
        password="p",
        tenant_id="t1",
        storage_url="http://swift.test/v1/nc_{tenant_id}/",
    )

    assert config.account_url == "http://swift.test/v1/nc_t1"
    assert WebhookConfig(webhook_id="x", secret="y").enabled
