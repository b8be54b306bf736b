import logging

import structlog

from turnstile.core.config import get_config

from .metrics import (
    AUTH_ATTEMPTS,
    AUTH_FAILURES,
    CHAIN_RESOLUTIONS,
    SESSION_OPERATIONS,
    generate_metrics,
    get_content_type,
)


def configure_logging(level: str | None = None) -> None:
    """Filter structlog output below the given level name.

    Without a level, TurnstileSettings.log_level (TURNSTILE_LOG_LEVEL) is used.
    """
    level = level or get_config().log_level
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
    )


__all__ = [
    # Metrics
    "AUTH_ATTEMPTS",
    "AUTH_FAILURES",
    "CHAIN_RESOLUTIONS",
    "SESSION_OPERATIONS",
    "generate_metrics",
    "get_content_type",
    # Logging
    "configure_logging",
]
