"""Configuration for caddy-tap.

One JSON file describes the Caddy admin endpoint, the mitmproxy pool, the
services that can be intercepted, and how to launch mitmweb. It lives at
the OS-appropriate location (see get_config_path) unless CADDY_TAP_CONFIG
points elsewhere.

Example usage:
    # Load from config file (defaults if not exists)
    config = load_config()

    # Save configuration
    save_config(config)
"""

from __future__ import annotations

__all__ = [
    "AdminConfig",
    "AppConfig",
    "DEFAULT_LOG_DIR",
    "get_config_path",
    "get_log_dir",
    "get_system_log_path",
    "load_config",
    "load_config_strict",
    "save_config",
]

import json
import logging
import os
from pathlib import Path

from platformdirs import user_log_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

from caddy_tap.constants import (
    APP_NAME,
    CONFIG_PATH_ENV_VAR,
    DEFAULT_ADMIN_TIMEOUT_SECONDS,
    DEFAULT_ADMIN_URL,
    DEFAULT_API_PORT,
    MAX_ADMIN_TIMEOUT_SECONDS,
    MIN_ADMIN_TIMEOUT_SECONDS,
)
from caddy_tap.exceptions import ConfigurationError
from caddy_tap.mitm.models import MitmproxyInstance, MitmwebOptions, ServiceRegistration
from caddy_tap.utils.file_helpers import get_app_dir, set_secure_permissions

_logger = logging.getLogger(f"{APP_NAME}.config")

# Platform log directory without an app suffix; logs go in <log_dir>/caddy-tap/
DEFAULT_LOG_DIR = user_log_dir()


class AdminConfig(BaseModel):
    """Caddy admin API connection settings.

    Attributes:
        url: Base URL of the admin endpoint.
        timeout_seconds: Deadline for every admin call.
    """

    url: str = Field(default=DEFAULT_ADMIN_URL, min_length=1)
    timeout_seconds: float = Field(
        default=DEFAULT_ADMIN_TIMEOUT_SECONDS,
        ge=MIN_ADMIN_TIMEOUT_SECONDS,
        le=MAX_ADMIN_TIMEOUT_SECONDS,
    )

    model_config = {"extra": "ignore"}


def _default_proxies() -> dict[str, MitmproxyInstance]:
    return {"default": MitmproxyInstance()}


class AppConfig(BaseModel):
    """Top-level caddy-tap configuration.

    Attributes:
        admin: Caddy admin API settings.
        proxies: Named mitmproxy instances (at least one).
        services: Services that can be intercepted.
        mitmweb: Options for launching a local mitmweb.
        api_port: Port for ``caddy-tap serve``.
        log_dir: Base log directory. Logs go in <log_dir>/caddy-tap/.
    """

    admin: AdminConfig = Field(default_factory=AdminConfig)
    proxies: dict[str, MitmproxyInstance] = Field(default_factory=_default_proxies)
    services: list[ServiceRegistration] = Field(default_factory=list)
    mitmweb: MitmwebOptions = Field(default_factory=MitmwebOptions)
    api_port: int = Field(default=DEFAULT_API_PORT, ge=1024, le=65535)
    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat

    @field_validator("proxies")
    @classmethod
    def _require_proxy(cls, value: dict[str, MitmproxyInstance]) -> dict[str, MitmproxyInstance]:
        if not value:
            raise ValueError("At least one MITMproxy instance must be configured")
        return value

    @field_validator("services")
    @classmethod
    def _unique_service_ids(cls, value: list[ServiceRegistration]) -> list[ServiceRegistration]:
        seen: set[str] = set()
        for service in value:
            if service.id in seen:
                raise ValueError(f"Duplicate service id: {service.id}")
            seen.add(service.id)
        return value


def get_config_path() -> Path:
    """Get the full path to the config file.

    Returns:
        $CADDY_TAP_CONFIG if set, else config.json in the app directory.
    """
    override = os.environ.get(CONFIG_PATH_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return get_app_dir() / "config.json"


def get_log_dir(config: AppConfig) -> Path:
    """Get the log directory (<log_dir>/caddy-tap/)."""
    return Path(config.log_dir).expanduser() / APP_NAME


def get_system_log_path(config: AppConfig) -> Path:
    """Get the full path to system.jsonl."""
    return get_log_dir(config) / "system.jsonl"


def load_config() -> AppConfig:
    """Load configuration from file.

    If the config file doesn't exist, returns default configuration.
    Invalid JSON or validation errors return default config with a warning.

    Returns:
        AppConfig: Loaded or default configuration.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return AppConfig()

    try:
        with config_path.open(encoding="utf-8") as f:
            data = json.load(f)
        return AppConfig.model_validate(data)
    except json.JSONDecodeError as e:
        _log_fallback("config_invalid_json", "Invalid JSON in config, using defaults", config_path, e)
        return AppConfig()
    except ValidationError as e:
        _log_fallback("config_validation_failed", "Invalid config values, using defaults", config_path, e)
        return AppConfig()
    except OSError as e:
        _log_fallback("config_read_failed", "Failed to read config file, using defaults", config_path, e)
        return AppConfig()


def load_config_strict() -> AppConfig:
    """Load configuration, raising on any error.

    Unlike load_config(), a missing file, invalid JSON, or a validation
    error raises. Used where silently running with defaults would hide a
    broken setup (toggling services, serving the API).

    Raises:
        ConfigurationError: If config is missing or invalid.
    """
    config_path = get_config_path()

    if not config_path.exists():
        raise ConfigurationError(
            f"Config file not found: {config_path}. Run '{APP_NAME} config init' to create one."
        )

    try:
        with config_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {config_path}: {e}") from e


def save_config(config: AppConfig) -> Path:
    """Save configuration to file with owner-only permissions (0600).

    Returns:
        Path the config was written to.

    Raises:
        OSError: If unable to write config file.
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("w", encoding="utf-8") as f:
        json.dump(config.model_dump(mode="json"), f, indent=2)
        f.write("\n")

    set_secure_permissions(config_path)
    return config_path


def _log_fallback(event: str, message: str, config_path: Path, error: Exception) -> None:
    _logger.warning(
        {
            "event": event,
            "message": f"{message}: {error}",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "details": {"config_path": str(config_path)},
        }
    )
