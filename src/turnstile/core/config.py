"""Configuration types with environment variable support.

All settings can be configured via environment variables with the TURNSTILE_ prefix.
Example: TURNSTILE_USER_PROPERTY=current_user stores the identity at
request["current_user"].
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SECTION = "turnstile"

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _parse(path: Path, content: str) -> Any:
    if path.suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if path.suffix == ".toml":
        try:
            return tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e
    raise ValueError(f"Unsupported config format: {path.suffix}")


def load_config_from_file(path: str | Path, section: str | None = SECTION) -> dict[str, Any]:
    """Load Turnstile settings from a YAML or TOML file.

    The file may hold the settings at the top level, or under a ``turnstile``
    section so it can be shared with the rest of the application's config:

        turnstile:
          user_property: member
          session_key: auth

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)
        section: Name of the section to extract when present; None returns
            the whole document

    Returns:
        Settings dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the file cannot be decoded or parsed, has an unsupported
            format, or the document or section is not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    data = _parse(path, content) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config in {path}: expected a mapping")

    if section is not None and section in data:
        data = data[section]
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {section} section in {path}: expected a mapping")
    return data


class TurnstileSettings(BaseSettings):
    """Authenticator-wide settings.

    These name the request keys Turnstile reads and writes. Host middleware
    that stores the session or flash facility under different keys only has
    to change the matching setting.

    Example:
        settings = TurnstileSettings(user_property="account_holder")
        authenticator = Authenticator(settings)
    """

    model_config = SettingsConfigDict(
        env_prefix="TURNSTILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    session_key: str = Field(
        default="passport",
        min_length=1,
        description="Key of the login record inside the host session.",
    )
    user_property: str = Field(
        default="user",
        min_length=1,
        description="Request key that receives the authenticated identity.",
    )
    session_request_key: str = Field(
        default="session",
        min_length=1,
        description="Request key under which host middleware stores the session mapping.",
    )
    flash_request_key: str = Field(
        default="flash",
        min_length=1,
        description="Request key under which host middleware stores the flash callable.",
    )
    auth_info_property: str = Field(
        default="auth_info",
        min_length=1,
        description="Request key that receives transformed authentication info.",
    )
    log_level: str = Field(
        default="info",
        description="Log level used by configure_logging() (debug, info, warning, error, critical).",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the level name."""
        level = v.lower()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @classmethod
    def from_file(cls, path: str | Path) -> TurnstileSettings:
        """Build settings from a YAML or TOML file.

        See load_config_from_file() for the accepted layouts. Environment
        variables are not consulted for keys present in the file.
        """
        return cls(**load_config_from_file(path))


_config: TurnstileSettings | None = None


def get_config() -> TurnstileSettings:
    """Get the global settings instance.

    Returns a cached instance of TurnstileSettings that reads from environment variables.
    The instance is created once and cached for the lifetime of the process.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = TurnstileSettings()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
