"""Request-scoped identity helpers.

These are the operations both the authenticate middleware and application
handlers use to establish or tear down a login:

    await login(request, user)
    logout(request)
    is_authenticated(request)

The initialize() middleware also attaches a RequestAuth capability object at
request[AUTH_KEY], so handlers can write ``await request[AUTH_KEY].login(user)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from aiohttp import web

from turnstile.errors import InitializationError

if TYPE_CHECKING:
    from turnstile.authenticator import Authenticator

logger = structlog.get_logger()

DEFAULT_USER_PROPERTY = "user"


@dataclass
class RequestState:
    """Per-request scratch state created by the initialize() middleware.

    Attributes:
        instance: The authenticator handling this request
        session: The login record found in (or later written to) the host session
    """

    instance: Authenticator
    session: dict[str, Any] | None = None


STATE_KEY = web.RequestKey("turnstile", RequestState)


def get_state(request: web.Request) -> RequestState | None:
    """Return the scratch state for a request, or None before initialize()."""
    return request.get(STATE_KEY)


def user_property(request: web.Request) -> str:
    """Name of the request key holding the identity for this request."""
    state = get_state(request)
    if state is not None:
        return state.instance.user_property
    return DEFAULT_USER_PROPERTY


async def login(request: web.Request, user: Any, *, session: bool = True) -> None:
    """Establish a login for ``user``.

    The identity is visible on the request immediately, before any session
    I/O happens. With ``session=True`` (the default) the user is also
    serialized into the session record; if that fails the identity is reset
    to None and the error is re-raised.

    Raises:
        InitializationError: If session persistence is requested but the
            initialize() middleware did not run
    """
    prop = user_property(request)
    request[prop] = user

    if not session:
        return

    state = get_state(request)
    if state is None:
        raise InitializationError()

    try:
        await state.instance.session_manager.login(request, user)
    except Exception:
        request[prop] = None
        raise

    logger.info("User logged in", user_property=prop)


def logout(request: web.Request) -> None:
    """Terminate the current login, keeping the session record container."""
    prop = user_property(request)
    request[prop] = None

    state = get_state(request)
    if state is not None:
        state.instance.session_manager.logout(request)
        logger.info("User logged out", user_property=prop)


def is_authenticated(request: web.Request) -> bool:
    return bool(request.get(user_property(request)))


def is_unauthenticated(request: web.Request) -> bool:
    return not is_authenticated(request)


class RequestAuth:
    """The identity helpers bound to one request."""

    __slots__ = ("_request",)

    def __init__(self, request: web.Request) -> None:
        self._request = request

    @property
    def user(self) -> Any:
        return self._request.get(user_property(self._request))

    async def login(self, user: Any, *, session: bool = True) -> None:
        await login(self._request, user, session=session)

    def logout(self) -> None:
        logout(self._request)

    def is_authenticated(self) -> bool:
        return is_authenticated(self._request)

    def is_unauthenticated(self) -> bool:
        return is_unauthenticated(self._request)


AUTH_KEY = web.RequestKey("auth", RequestAuth)
