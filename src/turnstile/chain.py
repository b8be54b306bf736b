"""Ordered pass-through evaluation of handler chains.

Serializers, deserializers and auth-info transformers are all registered as
plain lists of callables. The resolver walks a list in registration order
until one handler produces a definitive result, a handler fails, or the list
runs out. What counts as definitive, and what happens when the list runs out,
is decided by a ChainPolicy.

Handlers may be written in any of three styles, detected from the number of
required positional parameters:

    def legacy(value): ...                      # 1 parameter, sync
    async def modern(request, value): ...       # 2 parameters, value or awaitable
    def callback(request, value, done): ...     # 3 parameters, calls done(err, result)

Every style is adapted to one internal async contract that yields a tagged
HandlerResult, so the walk itself only deals with "value", "pass" and "error".

A handler declines by raising Pass, by raising (or rejecting with) any
exception whose message is exactly "pass", or by calling done("pass").
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import structlog

from turnstile.errors import ChainExhaustedError, Pass
from turnstile.observability.metrics import CHAIN_RESOLUTIONS

logger = structlog.get_logger()

Handler = Callable[..., Any]

PASS_MESSAGE = "pass"


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of invoking a single chain handler."""

    kind: Literal["value", "pass", "error"]
    value: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class ChainPolicy:
    """How a chain decides it is finished.

    Attributes:
        name: Label used in logs and metrics.
        exhausted_message: Error raised when no handler produced a result.
            None means the untouched input is returned instead.
        accept_zero: Treat the number 0 as a definitive result.
        invalidate_on_false: Treat False as a definitive "invalidated" result.
        invalidate_on_none: Treat None the same way as False. Handlers then
            decline only by passing.
    """

    name: str
    exhausted_message: str | None
    accept_zero: bool = False
    invalidate_on_false: bool = False
    invalidate_on_none: bool = False

    def is_definitive(self, value: Any) -> bool:
        if value is None:
            return self.invalidate_on_none
        if value is False:
            return self.invalidate_on_false
        if value:
            return True
        return self.accept_zero and _is_zero(value)


SERIALIZE = ChainPolicy(
    name="serialize",
    exhausted_message="Failed to serialize user into session",
    accept_zero=True,
)

DESERIALIZE = ChainPolicy(
    name="deserialize",
    exhausted_message="Failed to deserialize user out of session",
    invalidate_on_false=True,
    invalidate_on_none=True,
)

TRANSFORM = ChainPolicy(
    name="transform",
    exhausted_message=None,
)


def _is_zero(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool) and value == 0


def is_pass_signal(error: Any) -> bool:
    """Return True if an error value means "skip to the next handler"."""
    if isinstance(error, Pass):
        return True
    if isinstance(error, str):
        return error == PASS_MESSAGE
    return isinstance(error, Exception) and str(error) == PASS_MESSAGE


def handler_arity(handler: Handler) -> int:
    """Count the required positional parameters of a handler (1 to 3)."""
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return 2

    required = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return 2
        if parameter.kind not in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            continue
        if parameter.default is not inspect.Parameter.empty:
            break
        required += 1

    return min(max(required, 1), 3)


def _error_result(error: Any) -> HandlerResult:
    if is_pass_signal(error):
        return HandlerResult(kind="pass")
    if not isinstance(error, BaseException):
        error = RuntimeError(str(error))
    return HandlerResult(kind="error", error=error)


async def invoke_handler(handler: Handler, request: Any, value: Any) -> HandlerResult:
    """Invoke one handler using whichever calling convention it declares."""
    arity = handler_arity(handler)
    done_future: asyncio.Future[tuple[Any, Any]] | None = None

    try:
        if arity == 3:
            done_future = asyncio.get_running_loop().create_future()

            def done(error: Any = None, result: Any = None) -> None:
                if done_future.done():
                    logger.warning(
                        "Chain handler called done() more than once",
                        handler=getattr(handler, "__qualname__", repr(handler)),
                    )
                    return
                done_future.set_result((error, result))

            returned = handler(request, value, done)
        elif arity == 2:
            returned = handler(request, value)
        else:
            returned = handler(value)

        if inspect.isawaitable(returned):
            returned = await returned
    except Exception as exc:
        return _error_result(exc)

    if done_future is not None and returned is None:
        error, result = await done_future
        if error:
            return _error_result(error)
        return HandlerResult(kind="value", value=result)

    return HandlerResult(kind="value", value=returned)


async def resolve(
    handlers: Sequence[Handler],
    value: Any,
    request: Any = None,
    *,
    policy: ChainPolicy,
) -> Any:
    """Walk handlers in order and return the first definitive result.

    Args:
        handlers: Registered handlers, in evaluation order
        value: The input handed to every handler (user, serialized user or info)
        request: The triggering request, passed to 2- and 3-parameter handlers
        policy: SERIALIZE, DESERIALIZE or TRANSFORM

    Returns:
        The definitive result. For DESERIALIZE this may be False, meaning the
        stored identity is no longer valid. For TRANSFORM an exhausted chain
        returns ``value`` unchanged.

    Raises:
        ChainExhaustedError: If no handler produced a result and the policy
            has no identity fallback
        Exception: Whatever error a handler reported
    """
    for index, handler in enumerate(list(handlers)):
        result = await invoke_handler(handler, request, value)

        if result.kind == "pass":
            logger.debug("Chain handler passed", chain=policy.name, index=index)
            continue

        if result.kind == "error" and result.error is not None:
            CHAIN_RESOLUTIONS.labels(chain=policy.name, result="error").inc()
            raise result.error

        if policy.is_definitive(result.value):
            if result.value is None or result.value is False:
                CHAIN_RESOLUTIONS.labels(chain=policy.name, result="invalidated").inc()
                return False
            CHAIN_RESOLUTIONS.labels(chain=policy.name, result="resolved").inc()
            return result.value

    if policy.exhausted_message is None:
        CHAIN_RESOLUTIONS.labels(chain=policy.name, result="fallback").inc()
        return value

    CHAIN_RESOLUTIONS.labels(chain=policy.name, result="exhausted").inc()
    raise ChainExhaustedError(policy.exhausted_message)
