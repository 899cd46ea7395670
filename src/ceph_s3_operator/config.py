"""Configuration for the S3 operator.

Configuration is assembled from layers with the following precedence,
lowest first:

1. defaults declared on :class:`OperatorConfig`
2. the YAML config file (camelCase keys, as shipped in the config map)
3. ``S3_OPERATOR_*`` environment variables (``__`` separates nested keys)
4. explicit overrides, typically from the command line
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    EnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from ceph_s3_operator.utils.errors import ConfigurationError

ENV_PREFIX = "S3_OPERATOR_"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class RgwConfig(BaseModel):
    """Connection settings for the RGW admin ops and S3 APIs."""

    endpoint: str = "http://localhost:8000"
    access_key: str = ""
    secret_key: str = ""
    verify_tls: bool = True
    timeout_seconds: float = 10.0
    region: str = "us-east-1"
    """Signing region for the S3 API, RGW accepts any."""


class OperatorConfig(BaseSettings):
    """Operator configuration."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        extra="ignore",
    )

    s3_user_class: str = "ceph-default"
    """Only claims of this user class are reconciled by this instance."""

    cluster_name: str = "okd4-main"
    """Name of this cluster, the first part of every RGW tenant."""

    validation_webhook_timeout_seconds: int = Field(default=10, gt=0)
    requeue_delay_seconds: int = Field(default=10, ge=0)

    rgw: RgwConfig = Field(default_factory=RgwConfig)

    enable_webhooks: bool = True
    webhook_host: str | None = None
    webhook_port: int = 9443
    webhook_cert_file: str | None = None
    webhook_key_file: str | None = None

    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File layering is done by load_config, dotenv and secret dirs are unused
        return (init_settings, env_settings)

    def validate_webhook_config(self) -> list[str]:
        """Validate the webhook server settings.

        Returns:
            List of warning messages (empty if all good).

        Raises:
            ValueError: If the configuration is invalid.
        """
        warnings: list[str] = []
        if not self.enable_webhooks:
            return warnings
        if bool(self.webhook_cert_file) != bool(self.webhook_key_file):
            raise ValueError("webhook_cert_file and webhook_key_file must be set together")
        if not self.webhook_cert_file:
            warnings.append("No webhook certificate configured, a self-signed one will be generated")
        return warnings


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalize_keys(values: dict[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            value = _normalize_keys(value)
        normalized[_snake_case(str(key))] = value
    return normalized


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge configuration layers, later layers win.

    Nested mappings are merged key by key, any other value replaces the
    earlier one.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = merge_layers(merged[key], value)
            else:
                merged[key] = value
    return merged


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML config file into a snake_case mapping.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping.
    """
    path = Path(path)
    try:
        content = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}", field="config") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}", field="config") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping", field="config")
    return _normalize_keys(content)


def read_env_layer() -> dict[str, Any]:
    """Collect the values present in ``S3_OPERATOR_*`` environment variables."""
    return EnvSettingsSource(OperatorConfig)()


def load_config(config_path: str | Path | None = None, **overrides: Any) -> OperatorConfig:
    """Build the operator configuration from all layers.

    Args:
        config_path: Optional YAML config file.
        **overrides: Highest precedence values, e.g. from CLI flags.

    Returns:
        The merged configuration.
    """
    file_layer = read_config_file(config_path) if config_path else {}
    merged = merge_layers(file_layer, read_env_layer(), overrides)
    return OperatorConfig(**merged)
