"""Authenticator - the application-facing entry point.

An Authenticator owns everything one application needs for authentication:
the named strategies, the serializer, deserializer and auth-info transformer
chains, and the session manager that stores logins. Applications usually
create one at startup:

    auth = Authenticator()
    auth.use(TokenStrategy())

    @auth.serialize_user
    async def serialize(request, user):
        return user.id

    @auth.deserialize_user
    async def deserialize(request, user_id):
        return await users.get(user_id) or False

    app = web.Application(middlewares=[session_middleware, auth.initialize(), auth.session()])
    app.router.add_post("/login", login_view)

Route-level dispatch is built with authenticate(), which returns an aiohttp
middleware. Several authenticators can coexist in one process; none of them
share state.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import structlog

from turnstile.chain import DESERIALIZE, SERIALIZE, TRANSFORM, Handler, resolve
from turnstile.core.config import TurnstileSettings, get_config
from turnstile.middleware.authenticate import AuthenticateCallback
from turnstile.middleware.authenticate import authenticate as build_authenticate
from turnstile.middleware.initialize import initialize as build_initialize
from turnstile.options import AuthenticateOptions, coerce_options
from turnstile.registry import StrategyRegistry
from turnstile.session import SessionManager
from turnstile.strategies.base import Strategy
from turnstile.strategies.session import SessionStrategy

logger = structlog.get_logger()


class Authenticator:
    """Strategies, handler chains and session handling for one application."""

    def __init__(self, settings: TurnstileSettings | None = None):
        """Create an authenticator.

        Args:
            settings: Request keys and session key to use. Defaults to the
                process-wide settings from get_config().
        """
        self.settings = settings or get_config()
        self.user_property = self.settings.user_property

        self._registry = StrategyRegistry()
        self._serializers: list[Handler] = []
        self._deserializers: list[Handler] = []
        self._info_transformers: list[Handler] = []

        self._session_manager: Any = SessionManager(
            self.serialize,
            key=self.settings.session_key,
            session_request_key=self.settings.session_request_key,
        )

        self.use(SessionStrategy(self.deserialize))

    @property
    def registry(self) -> StrategyRegistry:
        return self._registry

    @property
    def session_manager(self) -> Any:
        """The object whose login()/logout() persist logins."""
        return self._session_manager

    @session_manager.setter
    def session_manager(self, manager: Any) -> None:
        self._session_manager = manager

    # Strategies

    def use(self, name: str | Strategy, strategy: Strategy | None = None) -> Authenticator:
        """Register a strategy, under its own ``name`` or an explicit one.

        Returns the authenticator so registrations can be chained.
        """
        registered = self._registry.register(name, strategy)
        logger.debug(
            "Strategy registered",
            strategy=name if isinstance(name, str) else registered.name,
        )
        return self

    def unuse(self, name: str) -> Authenticator:
        self._registry.unregister(name)
        return self

    def strategy(self, name: str) -> Strategy | None:
        return self._registry.lookup(name)

    # Middleware

    def initialize(self, user_property: str | None = None) -> Callable[..., Any]:
        """Middleware that prepares every request for authentication.

        Args:
            user_property: Request key for the identity, overriding the
                configured ``user_property``
        """
        if user_property:
            self.user_property = user_property
        return build_initialize(self)

    def authenticate(
        self,
        name: str | Sequence[str],
        options: AuthenticateOptions | dict[str, Any] | None = None,
        callback: AuthenticateCallback | None = None,
    ) -> Callable[..., Any]:
        """Middleware that authenticates requests with one or more strategies."""
        return build_authenticate(self, name, options, callback)

    def authorize(
        self,
        name: str | Sequence[str],
        options: AuthenticateOptions | dict[str, Any] | None = None,
        callback: AuthenticateCallback | None = None,
    ) -> Callable[..., Any]:
        """Like authenticate(), but links a third-party account to the request.

        The authenticated object is stored at ``assign_property`` (``"account"``
        unless given) and the current login is left untouched.
        """
        resolved = coerce_options(options)
        if not resolved.assign_property:
            resolved = resolved.model_copy(update={"assign_property": "account"})
        return build_authenticate(self, name, resolved, callback)

    def session(
        self, options: AuthenticateOptions | dict[str, Any] | None = None
    ) -> Callable[..., Any]:
        """Middleware restoring logins stored by earlier requests."""
        return build_authenticate(self, "session", options)

    # Handler chains

    def serialize_user(self, fn: Handler) -> Handler:
        """Register a serializer. Usable as a decorator."""
        self._serializers.append(fn)
        return fn

    def deserialize_user(self, fn: Handler) -> Handler:
        """Register a deserializer. Usable as a decorator."""
        self._deserializers.append(fn)
        return fn

    def transform_auth_info(self, fn: Handler) -> Handler:
        """Register an auth-info transformer. Usable as a decorator."""
        self._info_transformers.append(fn)
        return fn

    async def serialize(self, user: Any, request: Any = None) -> Any:
        """Run the serializer chain for ``user``.

        Raises:
            ChainExhaustedError: If no serializer produced a value
        """
        return await resolve(self._serializers, user, request, policy=SERIALIZE)

    async def deserialize(self, obj: Any, request: Any = None) -> Any:
        """Run the deserializer chain. False means the login is no longer valid.

        Raises:
            ChainExhaustedError: If no deserializer produced a value
        """
        return await resolve(self._deserializers, obj, request, policy=DESERIALIZE)

    async def transform(self, info: Any, request: Any = None) -> Any:
        """Run the auth-info transformer chain; returns ``info`` if none apply."""
        return await resolve(self._info_transformers, info, request, policy=TRANSFORM)


_authenticator: Authenticator | None = None


def get_authenticator() -> Authenticator:
    """Get the process-wide default authenticator.

    Created on first use from get_config(). Applications that need several
    independent setups should construct their own Authenticator instances.
    """
    global _authenticator
    if _authenticator is None:
        _authenticator = Authenticator()
    return _authenticator


def reset_authenticator() -> None:
    """Forget the default authenticator. Useful for testing."""
    global _authenticator
    _authenticator = None
