"""Exception types raised by Turnstile.

Configuration problems (unknown strategy, missing initialization, unnamed
strategy) are raised immediately. Strategy failures are never raised; they are
accumulated by the dispatcher and only surface as an AuthenticationError when
the route asks for ``fail_with_error``.
"""

from __future__ import annotations

from http import HTTPStatus


def reason_phrase(status: int) -> str:
    """Return the standard HTTP reason phrase for a status code."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


class TurnstileError(Exception):
    """Base class for all Turnstile errors."""


class StrategyNameError(TurnstileError, ValueError):
    """Raised when a strategy is registered without any name."""

    def __init__(self) -> None:
        super().__init__("Authentication strategies must have a name")


class UnknownStrategyError(TurnstileError, LookupError):
    """Raised when a dispatch names a strategy that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f'Unknown authentication strategy "{name}"')
        self.name = name


class InitializationError(TurnstileError, RuntimeError):
    """Raised when the initialize() middleware did not run for a request."""

    def __init__(self, message: str = "turnstile initialize() middleware not in use") -> None:
        super().__init__(message)


class ChainExhaustedError(TurnstileError):
    """Raised when no serializer or deserializer could process a value."""


class AuthenticationError(TurnstileError):
    """Final authentication failure, raised only when fail_with_error is set.

    Carries the HTTP status chosen for the failed chain and uses the
    standard reason phrase for that status as its message. For 401 failures
    ``challenges`` holds the WWW-Authenticate values the strategies offered.
    """

    def __init__(
        self,
        message: str | None = None,
        status: int | None = None,
        challenges: list[str] | None = None,
    ) -> None:
        self.status = status or 401
        self.challenges = list(challenges or [])
        super().__init__(message or reason_phrase(self.status))


class Pass(Exception):
    """Raised by a serializer, deserializer or transformer to decline.

    The chain resolver treats it as "no result" and moves on to the next
    registered handler. It never reaches application code.
    """

    def __init__(self) -> None:
        super().__init__("pass")
