"""Strategy interface.

A strategy decides how a request is verified; Turnstile decides what happens
afterwards. For every dispatch the authenticate middleware hands the strategy
a fresh set of actions bound to that request. The strategy must call exactly
one of them:

    success(user, info=None)        authenticated
    fail(challenge=None, status=None)
                                    not authenticated by this strategy
    redirect(url, status=302)       send the user agent elsewhere
    pass_()                         neither success nor failure
    error(err)                      internal error while verifying

Registered strategy instances are shared by every request and are never
modified by Turnstile.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from aiohttp import web

    from turnstile.options import AuthenticateOptions


class StrategyActions(Protocol):
    """The five request-scoped actions available to a strategy."""

    def success(self, user: Any, info: Any = None) -> None: ...

    def fail(self, challenge: Any = None, status: int | None = None) -> None: ...

    def redirect(self, url: str, status: int = 302) -> None: ...

    def pass_(self) -> None: ...

    def error(self, err: BaseException) -> None: ...


class Strategy(ABC):
    """Base class for authentication strategies.

    Subclasses set ``name`` (or are registered under an explicit name) and
    implement ``authenticate``, which may be a plain or an async method.

    Example:
        class TokenStrategy(Strategy):
            name = "token"

            async def authenticate(self, request, options, actions):
                user = await lookup(request.headers.get("X-Token"))
                if user is None:
                    actions.fail('Token realm="api"')
                else:
                    actions.success(user)
    """

    name: str | None = None

    @abstractmethod
    def authenticate(
        self,
        request: web.Request,
        options: AuthenticateOptions,
        actions: StrategyActions,
    ) -> Awaitable[None] | None:
        """Verify the request and report the outcome through ``actions``."""
