"""Request identity helpers."""

from .request import (
    AUTH_KEY,
    STATE_KEY,
    RequestAuth,
    RequestState,
    get_state,
    is_authenticated,
    is_unauthenticated,
    login,
    logout,
)

__all__ = [
    "AUTH_KEY",
    "STATE_KEY",
    "RequestAuth",
    "RequestState",
    "get_state",
    "is_authenticated",
    "is_unauthenticated",
    "login",
    "logout",
]
