"""Turnstile - strategy-based authentication middleware for aiohttp."""

from .authenticator import Authenticator, get_authenticator, reset_authenticator
from .core import TurnstileSettings, clear_config, get_config
from .errors import (
    AuthenticationError,
    ChainExhaustedError,
    InitializationError,
    Pass,
    StrategyNameError,
    TurnstileError,
    UnknownStrategyError,
)
from .http import RequestAuth, is_authenticated, is_unauthenticated, login, logout
from .options import AuthenticateOptions, FlashMessage
from .strategies import SessionStrategy, Strategy, StrategyActions

__version__ = "0.1.0"

__all__ = [
    "AuthenticateOptions",
    "AuthenticationError",
    "Authenticator",
    "ChainExhaustedError",
    "FlashMessage",
    "InitializationError",
    "Pass",
    "RequestAuth",
    "SessionStrategy",
    "Strategy",
    "StrategyActions",
    "StrategyNameError",
    "TurnstileError",
    "TurnstileSettings",
    "UnknownStrategyError",
    "clear_config",
    "get_authenticator",
    "get_config",
    "is_authenticated",
    "is_unauthenticated",
    "login",
    "logout",
    "reset_authenticator",
]
