"""Session persistence for logins.

Turnstile does not store sessions itself. Host middleware is expected to put
a mutable session mapping on the request (request["session"] by default);
the SessionManager only reads and writes one login record inside it:

    request["session"]["passport"] = {"user": <serialized user>}

The same record object is shared with the request's scratch state, so the
session strategy and later logout() calls see the changes made by login().
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, MutableMapping
from typing import TYPE_CHECKING, Any

import structlog

from turnstile.errors import InitializationError
from turnstile.http.request import get_state
from turnstile.observability.metrics import SESSION_OPERATIONS

if TYPE_CHECKING:
    from aiohttp import web

logger = structlog.get_logger()

SerializeUser = Callable[[Any, Any], Awaitable[Any]]


def host_session(
    request: web.Request,
    request_key: str,
    create: bool = False,
) -> MutableMapping[str, Any] | None:
    """Return the host session mapping, optionally creating an empty one."""
    session = request.get(request_key)
    if session is None and create:
        session = {}
        request[request_key] = session
    return session


class SessionManager:
    """Writes serialized logins into the host session and removes them.

    Any object with the same ``login``/``logout`` methods can replace it via
    ``Authenticator.session_manager``.
    """

    def __init__(
        self,
        serialize_user: SerializeUser,
        key: str = "passport",
        session_request_key: str = "session",
    ):
        """Initialize session manager.

        Args:
            serialize_user: Coroutine function ``(user, request)`` resolving
                the serializer chain
            key: Key of the login record inside the host session
            session_request_key: Request key holding the host session mapping
        """
        self._serialize_user = serialize_user
        self._key = key
        self._session_request_key = session_request_key

    @property
    def key(self) -> str:
        return self._key

    async def login(self, request: web.Request, user: Any) -> None:
        """Serialize ``user`` and store it in the login record.

        Args:
            request: The current request (initialize() must have run)
            user: The authenticated user

        Raises:
            InitializationError: If the request has no scratch state
            ChainExhaustedError: If no serializer could handle the user
        """
        state = get_state(request)
        if state is None:
            raise InitializationError()

        serialized = await self._serialize_user(user, request)

        if state.session is None:
            state.session = {}
        state.session["user"] = serialized

        session = host_session(request, self._session_request_key, create=True)
        session[self._key] = state.session

        SESSION_OPERATIONS.labels(operation="login").inc()
        logger.debug("Login stored in session", key=self._key)

    def logout(self, request: web.Request) -> None:
        """Remove the serialized user from the login record.

        The record itself stays in the host session; other parts of the
        application may share the same session object.
        """
        state = get_state(request)
        if state is not None and state.session is not None:
            state.session.pop("user", None)
            SESSION_OPERATIONS.labels(operation="logout").inc()
