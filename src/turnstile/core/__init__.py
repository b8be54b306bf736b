"""Core."""

from .config import (
    TurnstileSettings,
    clear_config,
    get_config,
    load_config_from_file,
)

__all__ = [
    "TurnstileSettings",
    "clear_config",
    "get_config",
    "load_config_from_file",
]
