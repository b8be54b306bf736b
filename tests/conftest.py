"""Shared fixtures and helpers for Turnstile tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from turnstile.authenticator import Authenticator
from turnstile.core.config import TurnstileSettings
from turnstile.http.request import STATE_KEY, RequestState
from turnstile.strategies.base import Strategy


class StubStrategy(Strategy):
    """Strategy whose behaviour is supplied as a function of the actions."""

    def __init__(self, name: str | None, behaviour: Callable[..., Any] | None = None):
        self.name = name
        self.behaviour = behaviour
        self.calls: list[tuple[Any, Any]] = []

    def authenticate(self, request, options, actions):
        self.calls.append((request, options))
        if self.behaviour is not None:
            return self.behaviour(actions)
        return None


class SavingSession(dict):
    """Host session mapping that records save() calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saved = 0

    async def save(self) -> None:
        self.saved += 1


def make_request(session: dict | None = None, flash: Any = None) -> web.Request:
    """Build a bare request, optionally carrying a host session and flash."""
    request = make_mocked_request("GET", "/")
    if session is not None:
        request["session"] = session
    if flash is not None:
        request["flash"] = flash
    return request


def attach_state(request: web.Request, authenticator: Authenticator, record: dict | None = None):
    """Give a request the scratch state initialize() would have added."""
    state = RequestState(instance=authenticator, session=record)
    request[STATE_KEY] = state
    return state


async def ok_handler(request: web.Request) -> web.Response:
    return web.Response(text="ok")


@pytest.fixture
def settings() -> TurnstileSettings:
    return TurnstileSettings()


@pytest.fixture
def authenticator(settings) -> Authenticator:
    return Authenticator(settings)
