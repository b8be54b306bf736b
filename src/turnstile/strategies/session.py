"""SessionStrategy - restores a login from the session record.

Registered automatically by every Authenticator under the name "session".
If a login was stored by an earlier request, the serialized user is run
through the deserializer chain and the result is placed on the request.
The strategy never fails: anonymous requests and invalidated sessions both
simply pass.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from turnstile.errors import InitializationError
from turnstile.http.request import get_state
from turnstile.strategies.base import Strategy, StrategyActions

if TYPE_CHECKING:
    from aiohttp import web

    from turnstile.options import AuthenticateOptions

logger = structlog.get_logger()

DeserializeUser = Callable[[Any, Any], Awaitable[Any]]


class SessionStrategy(Strategy):
    """Authenticate requests based on the current session state."""

    name = "session"

    def __init__(self, deserialize_user: DeserializeUser) -> None:
        self._deserialize_user = deserialize_user

    async def authenticate(
        self,
        request: web.Request,
        options: AuthenticateOptions,
        actions: StrategyActions,
    ) -> None:
        state = get_state(request)
        if state is None:
            actions.error(InitializationError())
            return

        serialized = None
        if state.session is not None:
            serialized = state.session.get("user")

        if serialized is None:
            actions.pass_()
            return

        try:
            user = await self._deserialize_user(serialized, request)
        except Exception as exc:
            actions.error(exc)
            return

        if not user:
            logger.info("Session login invalidated by deserializer")
            state.session.pop("user", None)
        else:
            request[state.instance.user_property] = user

        actions.pass_()
