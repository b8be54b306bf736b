"""The initialize middleware.

Must run before any authenticate middleware, and after whatever host
middleware loads the session onto the request. It attaches the per-request
scratch state and the request[AUTH_KEY] helpers, then always proceeds.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from aiohttp import web

from turnstile.http.request import AUTH_KEY, STATE_KEY, RequestAuth, RequestState
from turnstile.session import host_session

if TYPE_CHECKING:
    from turnstile.authenticator import Authenticator


def initialize(authenticator: Authenticator) -> Callable[[web.Request, Any], Any]:
    """Build the middleware that prepares requests for ``authenticator``."""
    settings = authenticator.settings

    @web.middleware
    async def initialize_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        record = None
        session = host_session(request, settings.session_request_key)
        if session is not None:
            record = session.get(settings.session_key)

        request[STATE_KEY] = RequestState(instance=authenticator, session=record)
        request[AUTH_KEY] = RequestAuth(request)
        return await handler(request)

    return initialize_middleware
