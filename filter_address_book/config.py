"""Filter configuration loaded from a YAML file and environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Values from the YAML file sit between the built-in defaults and the
environment: an env var always wins over the file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError

DEFAULT_CONFIG_FILE = "/etc/mail/filter-address-book.yml"


class DirectoryConfig(BaseSettings):
    """Directory service (filterctld) HTTP client settings."""

    model_config = {"env_prefix": "DIRECTORY_", "frozen": True}

    url: str = Field(
        default="http://127.0.0.1:2016/filterctl/",
        description="Base URL of the directory service",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP request timeout; a lookup must never hang a transaction",
    )
    client_cert_dn: str = Field(
        default="CN=filterctl",
        description="Identity asserted in the X-Client-Cert-Dn request header",
    )


class RetryConfig(BaseSettings):
    """Caller-side retry / backoff for directory lookups, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_", "frozen": True}

    max_attempts: int = Field(default=2, ge=1, description="Maximum lookup attempts")
    initial_wait_seconds: float = Field(
        default=0.2,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=2.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class FilterConfig(BaseSettings):
    """Root configuration for a filter process.

    Built once at startup and passed by reference into the host,
    controller and directory clients.  Instances are immutable.
    """

    model_config = {"env_prefix": "FILTER_", "frozen": True}

    verbose: bool = Field(default=False, description="Enable diagnostic log output")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of console output")
    lookup_enabled: bool = Field(
        default=True,
        description="Scan address books when the header block ends",
    )
    header_name: str = Field(
        default="X-Address-Book",
        description="Name of the injected header",
    )
    health_port: int = Field(
        default=0,
        description="Port for the health endpoints (0 disables the server)",
    )

    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @property
    def header_prefix(self) -> str:
        return f"{self.header_name}:"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"failed reading {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed parsing {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def _build(settings_cls: type[BaseSettings], values: dict[str, Any], **extra: Any) -> Any:
    """Instantiate *settings_cls*, letting env vars override file *values*."""
    prefix = settings_cls.model_config.get("env_prefix", "")
    environ = {key.upper() for key in os.environ}
    kept = {k: v for k, v in values.items() if f"{prefix}{k}".upper() not in environ}
    return settings_cls(**kept, **extra)


def load_config(path: str | Path | None = None) -> FilterConfig:
    """Load the filter configuration.

    *path* defaults to :data:`DEFAULT_CONFIG_FILE`, which may be absent.
    An explicitly requested file must exist.  A top-level ``url`` key is
    accepted as shorthand for ``directory.url``.

    Raises :class:`ConfigError` on any failure.
    """
    if path is None:
        config_path = Path(DEFAULT_CONFIG_FILE)
        data = _read_yaml(config_path) if config_path.exists() else {}
    else:
        data = _read_yaml(Path(path))

    data = dict(data)
    directory = dict(data.pop("directory", None) or {})
    if "url" in data:
        directory.setdefault("url", data.pop("url"))
    retry = dict(data.pop("retry", None) or {})

    try:
        return _build(
            FilterConfig,
            data,
            directory=_build(DirectoryConfig, directory),
            retry=_build(RetryConfig, retry),
        )
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc
