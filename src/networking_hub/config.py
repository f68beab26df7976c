"""Configuration loader for Networking Hub.

Loads config.yaml, layers environment-variable secrets on top, and validates
the result against the Pydantic schema.

Usage:
    from networking_hub.config import get_config

    config = get_config()
    print(config.sync.webhook_window_minutes)
"""

import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from networking_hub.config_schema import CURRENT_SCHEMA_VERSION, AppConfig
from networking_hub.core.errors import ConfigLoadError, ConfigValidationError
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)

# Default config path - can be overridden via environment variable
DEFAULT_CONFIG_PATH = Path("config/config.yaml")
CONFIG_PATH_ENV = "NETWORKING_HUB_CONFIG_PATH"

# Environment variables that override config values: env name -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "GOOGLE_CLIENT_ID": ("auth", "client_id"),
    "GOOGLE_CLIENT_SECRET": ("auth", "client_secret"),
    "GOOGLE_CLOUD_PROJECT_ID": ("push", "project_id"),
    "WEBHOOK_BASE_URL": ("push", "webhook_base_url"),
    "NETWORKING_HUB_DB_PATH": ("database", "path"),
    "APP_NAME": ("app", "name"),
    "APP_VERSION": ("app", "version"),
    "APP_ENV": ("app", "environment"),
}

# Global state for config singleton
_config_lock = threading.Lock()
_current_config: AppConfig | None = None


def _get_config_path() -> Path:
    """Get the config file path from environment or default."""
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _format_validation_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into actionable messages.

    Args:
        error: Pydantic ValidationError

    Returns:
        Formatted error message with specific field errors
    """
    messages = []
    for err in error.errors():
        field_path = ".".join(str(loc) for loc in err["loc"])
        if err["type"] == "missing":
            messages.append(f"  - Missing required field '{field_path}'")
        else:
            messages.append(f"  - Field '{field_path}': {err['msg']}")
    return "\n".join(messages)


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Parsed YAML as dictionary

    Raises:
        ConfigLoadError: If file not found or YAML parse error
    """
    if not path.exists():
        raise ConfigLoadError(
            f"Configuration file not found: {path}\n"
            f"Create it by copying config/config.yaml.example to {path}"
        )

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Failed to parse YAML in {path}:\n{e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Configuration file must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto parsed config data.

    Non-empty variables listed in ENV_OVERRIDES win over file values.

    Args:
        data: Parsed YAML data (not modified)

    Returns:
        New dict with overrides applied
    """
    merged = {
        key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()
    }
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        section_data = merged.setdefault(section, {})
        if isinstance(section_data, dict):
            section_data[field] = value
    return merged


def _validate_config(data: dict[str, Any], source: str) -> AppConfig:
    """Validate config data against Pydantic schema.

    Args:
        data: Parsed YAML data with overrides applied
        source: Where the data came from (for error messages)

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        config = AppConfig(**data)
    except ValidationError as e:
        error_details = _format_validation_errors(e)
        raise ConfigValidationError(
            f"Configuration validation failed for {source}:\n{error_details}"
        ) from e

    if config.schema_version > CURRENT_SCHEMA_VERSION:
        raise ConfigValidationError(
            f"Config schema version {config.schema_version} is newer than "
            f"supported version {CURRENT_SCHEMA_VERSION}. "
            "Please upgrade Networking Hub or downgrade the config."
        )
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML file.

    This function always loads fresh from disk. For cached access, use
    get_config() instead.

    Args:
        path: Optional path to config file. If not provided, uses
              NETWORKING_HUB_CONFIG_PATH env var or default.

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    config_path = path or _get_config_path()

    logger.debug("Loading configuration", path=str(config_path))

    data = apply_env_overrides(_load_yaml(config_path))
    config = _validate_config(data, str(config_path))

    logger.info(
        "Configuration loaded successfully",
        path=str(config_path),
        schema_version=config.schema_version,
        environment=config.app.environment,
        classifier_enabled=config.classifier.enabled,
    )
    return config


def load_default_config() -> AppConfig:
    """Build a config from schema defaults plus environment overrides.

    Used when no config file exists, so the server can still start.

    Raises:
        ConfigValidationError: If an environment override is invalid
    """
    return _validate_config(apply_env_overrides({}), "environment")


def get_config() -> AppConfig:
    """Get the current configuration singleton.

    On first call, loads configuration from disk. Subsequent calls return
    the cached config.

    Returns:
        Current AppConfig instance

    Raises:
        ConfigLoadError: If file cannot be loaded
        ConfigValidationError: If validation fails
    """
    global _current_config

    with _config_lock:
        if _current_config is None:
            _current_config = load_config(_get_config_path())
        return _current_config


def get_config_or_defaults() -> AppConfig:
    """Like get_config(), but fall back to defaults when the file is missing.

    A file that exists but fails to parse or validate still raises.

    Raises:
        ConfigLoadError: If the file exists but cannot be parsed
        ConfigValidationError: If validation fails
    """
    global _current_config

    config_path = _get_config_path()
    with _config_lock:
        if _current_config is None:
            if config_path.exists():
                _current_config = load_config(config_path)
            else:
                logger.warning(
                    "Configuration file not found, using defaults",
                    path=str(config_path),
                )
                _current_config = load_default_config()
        return _current_config


def validate_config_file(path: Path | None = None) -> tuple[bool, str]:
    """Validate a config file without loading it into the singleton.

    Useful for CLI validation commands and testing.

    Args:
        path: Path to config file. If not provided, uses default.

    Returns:
        Tuple of (is_valid, message)
    """
    config_path = path or _get_config_path()

    try:
        config = load_config(config_path)
    except ConfigLoadError as e:
        return (False, f"Load error: {e}")
    except ConfigValidationError as e:
        return (False, f"Validation error: {e}")

    return (
        True,
        f"Configuration valid (schema version {config.schema_version})\n"
        f"  - database: {config.database.path}\n"
        f"  - manual sync window: {config.sync.manual_window_hours:g}h\n"
        f"  - webhook window: {config.sync.webhook_window_minutes:g}min\n"
        f"  - push topic: {config.push.topic_path}\n"
        f"  - classifier: {'claude' if config.classifier.enabled else 'heuristic only'}",
    )


def reset_config() -> None:
    """Reset the config singleton. Primarily for testing."""
    global _current_config
    with _config_lock:
        _current_config = None
