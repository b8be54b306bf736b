"""aiohttp middleware."""

from .authenticate import (
    AuthenticateCallback,
    Failure,
    StrategyAttempt,
    authenticate,
    flash_params,
    message_text,
)
from .initialize import initialize

__all__ = [
    "AuthenticateCallback",
    "Failure",
    "StrategyAttempt",
    "authenticate",
    "flash_params",
    "initialize",
    "message_text",
]
