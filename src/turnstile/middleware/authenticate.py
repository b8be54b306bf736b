"""The authenticate middleware.

Applies one or more named strategies, in order, to an incoming request. The
first strategy to succeed, redirect, pass or error decides the outcome.
Failures move on to the next strategy; when every strategy has failed, the
accumulated failures are resolved into a flash message, a session message,
a redirect, an AuthenticationError or a plain 401-style response, depending
on the route's options.

When a callback is supplied, success, error and final failure are handed to
it instead, and whatever it returns becomes the middleware's response:

    async def on_auth(error, user, info, status):
        if error:
            raise error
        if not user:
            return web.HTTPFound("/login")
        ...

    middleware = authenticator.authenticate("local", callback=on_auth)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

import structlog
from aiohttp import hdrs, web
from multidict import CIMultiDict

from turnstile.errors import AuthenticationError, UnknownStrategyError, reason_phrase
from turnstile.http.request import login
from turnstile.observability.metrics import AUTH_ATTEMPTS, AUTH_FAILURES
from turnstile.options import AuthenticateOptions, FlashMessage, coerce_options
from turnstile.session import host_session

if TYPE_CHECKING:
    from turnstile.authenticator import Authenticator
    from turnstile.strategies.base import Strategy

logger = structlog.get_logger()

AuthenticateCallback = Callable[[BaseException | None, Any, Any, Any], Any]
Handler = Callable[[web.Request], Any]

RETURN_TO_KEY = "returnTo"
MESSAGES_KEY = "messages"


@dataclass
class Failure:
    """One strategy's failure within a dispatch."""

    challenge: Any = None
    status: int | None = None


@dataclass
class Outcome:
    """The single action a strategy took."""

    kind: Literal["success", "fail", "redirect", "pass", "error"]
    user: Any = None
    info: Any = None
    url: str | None = None
    status: int | None = None
    error: BaseException | None = None


class StrategyAttempt:
    """The actions handed to one strategy for one request.

    The registered strategy is referenced, never modified. Attribute lookups
    that are not actions fall back to the strategy, so helper methods and
    configuration defined on the strategy stay reachable.

    Only the first action called takes effect; later calls are logged and
    ignored.
    """

    def __init__(
        self,
        name: str,
        strategy: Strategy,
        failures: list[Failure],
        outcome: asyncio.Future[Outcome],
    ) -> None:
        self.name = name
        self.strategy = strategy
        self._failures = failures
        self._outcome = outcome

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_") or item == "strategy":
            raise AttributeError(item)
        return getattr(self.strategy, item)

    @property
    def outcome(self) -> asyncio.Future[Outcome]:
        return self._outcome

    def _settle(self, outcome: Outcome) -> bool:
        if self._outcome.done():
            logger.warning(
                "Strategy already completed, ignoring action",
                strategy=self.name,
                action=outcome.kind,
                previous=self._outcome.result().kind,
            )
            return False
        AUTH_ATTEMPTS.labels(strategy=self.name, outcome=outcome.kind).inc()
        logger.debug("Strategy action", strategy=self.name, action=outcome.kind)
        self._outcome.set_result(outcome)
        return True

    def success(self, user: Any, info: Any = None) -> None:
        """Authenticate ``user``, with optional ``info`` from the strategy."""
        self._settle(Outcome(kind="success", user=user, info=info))

    def fail(self, challenge: Any = None, status: int | None = None) -> None:
        """Fail this strategy, with an optional challenge and status.

        A number given as the only argument is taken as the status.
        """
        if isinstance(challenge, int) and not isinstance(challenge, bool):
            status, challenge = challenge, None
        if self._settle(Outcome(kind="fail")):
            self._failures.append(Failure(challenge=challenge, status=status))

    def redirect(self, url: str, status: int = 302) -> None:
        """Redirect the user agent to ``url``."""
        self._settle(Outcome(kind="redirect", url=url, status=status))

    def pass_(self) -> None:
        """Continue to the handler without deciding anything."""
        self._settle(Outcome(kind="pass"))

    def error(self, err: BaseException) -> None:
        """Report an internal error raised while verifying."""
        self._settle(Outcome(kind="error", error=err))


def _field(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    if isinstance(source, str):
        return None
    return getattr(source, name, None)


def flash_params(
    option: bool | str | FlashMessage | None,
    source: Any,
    default_type: str,
) -> tuple[str, Any] | None:
    """Work out the (type, message) to flash for a success or failure.

    A string option is the message; a FlashMessage may set either part; True
    takes both from ``source`` (the strategy's info or first challenge).
    Parts left unset fall back to ``source`` and then to ``default_type``.
    """
    if not option:
        return None

    flash_type: str | None = None
    message: Any = None
    if isinstance(option, str):
        flash_type, message = default_type, option
    elif isinstance(option, FlashMessage):
        flash_type, message = option.type, option.message

    flash_type = flash_type or _field(source, "type") or default_type
    message = message or _field(source, "message") or source
    return flash_type, message


def message_text(option: bool | str | None, source: Any) -> Any:
    """Work out the session message for a success or failure."""
    if not option:
        return None
    if isinstance(option, str):
        return option
    return _field(source, "message") or source


class Dispatch:
    """One run of the strategy chain for one request."""

    def __init__(
        self,
        authenticator: Authenticator,
        names: Sequence[str],
        multi: bool,
        options: AuthenticateOptions,
        callback: AuthenticateCallback | None,
        request: web.Request,
        handler: Handler,
    ) -> None:
        self._authenticator = authenticator
        self._names = names
        self._multi = multi
        self._options = options
        self._callback = callback
        self._request = request
        self._handler = handler
        self._failures: list[Failure] = []

    async def run(self) -> web.StreamResponse:
        loop = asyncio.get_running_loop()

        for name in self._names:
            strategy = self._authenticator.strategy(name)
            if strategy is None:
                raise UnknownStrategyError(name)

            attempt = StrategyAttempt(name, strategy, self._failures, loop.create_future())
            returned = strategy.authenticate(self._request, self._options, attempt)
            if inspect.isawaitable(returned):
                await returned

            outcome = await attempt.outcome
            if outcome.kind == "fail":
                continue
            return await self._resolve(outcome)

        return await self._all_failed()

    async def _resolve(self, outcome: Outcome) -> web.StreamResponse:
        if outcome.kind == "success":
            return await self._success(outcome.user, outcome.info)
        if outcome.kind == "redirect":
            return web.Response(
                status=outcome.status or 302,
                headers={hdrs.LOCATION: outcome.url or "", hdrs.CONTENT_LENGTH: "0"},
            )
        if outcome.kind == "pass":
            return await self._proceed()
        if outcome.error is None:
            raise RuntimeError(f"Strategy reported {outcome.kind!r} without an outcome")
        if self._callback is not None:
            return await self._call_back(outcome.error, None, None, None)
        raise outcome.error

    async def _success(self, user: Any, info: Any) -> web.StreamResponse:
        if self._callback is not None:
            return await self._call_back(None, user, info, None)

        options = self._options
        info = info or {}

        self._flash(flash_params(options.success_flash, info, "success"))
        self._push_message(message_text(options.success_message, info))

        if options.assign_property:
            self._request[options.assign_property] = user
            return await self._proceed()

        await login(self._request, user, session=options.session)

        if options.auth_info:
            settings = self._authenticator.settings
            self._request[settings.auth_info_property] = await self._authenticator.transform(
                info, self._request
            )

        if options.success_return_to_or_redirect:
            url = options.success_return_to_or_redirect
            session = self._host_session()
            if session is not None and session.get(RETURN_TO_KEY):
                url = session.pop(RETURN_TO_KEY)
            return await self._redirect(url)

        if options.success_redirect:
            return await self._redirect(options.success_redirect)

        return await self._proceed()

    async def _all_failed(self) -> web.StreamResponse:
        failures = self._failures

        if self._callback is not None:
            if not self._multi and failures:
                first = failures[0]
                return await self._call_back(None, False, first.challenge, first.status)
            return await self._call_back(
                None,
                False,
                [failure.challenge for failure in failures],
                [failure.status for failure in failures],
            )

        options = self._options

        # Strategies are ordered by priority; only the first failure feeds
        # the flash and session messages.
        first = failures[0] if failures else Failure()
        challenge = first.challenge if first.challenge is not None else {}

        self._flash(flash_params(options.failure_flash, challenge, "error"))
        self._push_message(message_text(options.failure_message, challenge))

        if options.failure_redirect:
            return await self._redirect(options.failure_redirect)

        status = next((failure.status for failure in failures if failure.status), None)
        code = status or 401
        challenges = [
            failure.challenge for failure in failures if isinstance(failure.challenge, str)
        ]

        AUTH_FAILURES.labels(status=str(code)).inc()
        logger.debug("All strategies failed", strategies=list(self._names), status=code)

        if options.fail_with_error:
            raise AuthenticationError(
                reason_phrase(code),
                status,
                challenges=challenges if code == 401 else None,
            )

        headers: CIMultiDict[str] = CIMultiDict()
        if code == 401:
            for value in challenges:
                headers.add(hdrs.WWW_AUTHENTICATE, value)
        return web.Response(status=code, text=reason_phrase(code), headers=headers)

    async def _proceed(self) -> web.StreamResponse:
        return await self._handler(self._request)

    async def _call_back(self, *args: Any) -> Any:
        result = self._callback(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _host_session(self, create: bool = False) -> Any:
        return host_session(
            self._request,
            self._authenticator.settings.session_request_key,
            create=create,
        )

    async def _redirect(self, url: str) -> web.StreamResponse:
        """Redirect after persisting the host session, if it can be saved."""
        save = getattr(self._host_session(), "save", None)
        if callable(save):
            saved = save()
            if inspect.isawaitable(saved):
                await saved
        return web.Response(status=302, headers={hdrs.LOCATION: url})

    def _flash(self, params: tuple[str, Any] | None) -> None:
        if params is None:
            return
        flash_type, message = params
        if not isinstance(message, str):
            return
        flash = self._request.get(self._authenticator.settings.flash_request_key)
        if not callable(flash):
            logger.warning("No flash facility on request, skipping flash", type=flash_type)
            return
        flash(flash_type, message)

    def _push_message(self, message: Any) -> None:
        if not isinstance(message, str):
            return
        session = self._host_session(create=True)
        messages = list(session.get(MESSAGES_KEY) or [])
        messages.append(message)
        session[MESSAGES_KEY] = messages


def authenticate(
    authenticator: Authenticator,
    name: str | Sequence[str],
    options: AuthenticateOptions | dict[str, Any] | None = None,
    callback: AuthenticateCallback | None = None,
) -> Callable[[web.Request, Handler], Any]:
    """Build middleware that authenticates requests with the named strategies.

    Args:
        authenticator: Owner of the strategies and handler chains
        name: A strategy name, or a list of names tried in order until one
            does not fail
        options: Route options (see AuthenticateOptions)
        callback: Optional ``callback(error, user, info, status)`` that takes
            over success, error and final failure handling

    Returns:
        An aiohttp middleware ``(request, handler) -> response``
    """
    multi = not isinstance(name, str)
    names = list(name) if multi else [name]
    resolved = coerce_options(options)

    @web.middleware
    async def authenticate_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        dispatch = Dispatch(authenticator, names, multi, resolved, callback, request, handler)
        return await dispatch.run()

    return authenticate_middleware
