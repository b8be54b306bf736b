"""Tests for the authenticate middleware."""

from __future__ import annotations

import pytest
from aiohttp import web
from conftest import SavingSession, StubStrategy, attach_state, make_request, ok_handler

from turnstile.errors import AuthenticationError, UnknownStrategyError
from turnstile.http.request import AUTH_KEY
from turnstile.middleware.authenticate import flash_params, message_text
from turnstile.options import AuthenticateOptions, FlashMessage


def succeed(user, info=None):
    return lambda actions: actions.success(user, info)


def fail(*args):
    return lambda actions: actions.fail(*args)


@pytest.fixture
def logged_in_request(authenticator):
    """A request ready for logins to be persisted."""
    authenticator.serialize_user(lambda user: user["id"])
    request = make_request()
    attach_state(request, authenticator)
    return request


class TestStrategyOrder:
    """Tests for walking the strategy list."""

    @pytest.mark.asyncio
    async def test_fail_then_success(self, authenticator, logged_in_request):
        """Test a failed strategy falls through to the next one."""
        first = StubStrategy("first", fail("X"))
        second = StubStrategy("second", succeed({"id": "u1"}))
        authenticator.use(first).use(second)

        middleware = authenticator.authenticate(["first", "second"])
        response = await middleware(logged_in_request, ok_handler)

        assert response.text == "ok"
        assert logged_in_request["user"] == {"id": "u1"}
        assert logged_in_request["session"]["passport"] == {"user": "u1"}
        assert logged_in_request["auth_info"] == {}
        assert len(first.calls) == 1
        assert len(second.calls) == 1

    @pytest.mark.asyncio
    async def test_success_stops_walk(self, authenticator, logged_in_request):
        second = StubStrategy("second", fail("Y"))
        authenticator.use(StubStrategy("first", succeed({"id": "u1"}))).use(second)

        await authenticator.authenticate(["first", "second"])(logged_in_request, ok_handler)

        assert second.calls == []

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, authenticator):
        middleware = authenticator.authenticate("missing")

        with pytest.raises(UnknownStrategyError, match='Unknown authentication strategy "missing"'):
            await middleware(make_request(), ok_handler)

    @pytest.mark.asyncio
    async def test_unknown_strategy_after_failure(self, authenticator):
        authenticator.use(StubStrategy("first", fail("X")))

        with pytest.raises(UnknownStrategyError):
            await authenticator.authenticate(["first", "missing"])(make_request(), ok_handler)

    @pytest.mark.asyncio
    async def test_async_strategy(self, authenticator):
        async def behaviour(actions):
            actions.fail("Bearer")

        authenticator.use(StubStrategy("token", behaviour))

        response = await authenticator.authenticate("token")(make_request(), ok_handler)

        assert response.status == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_strategy_exception_propagates(self, authenticator):
        def behaviour(actions):
            raise RuntimeError("strategy bug")

        authenticator.use(StubStrategy("broken", behaviour))

        with pytest.raises(RuntimeError, match="strategy bug"):
            await authenticator.authenticate("broken")(make_request(), ok_handler)

    @pytest.mark.asyncio
    async def test_options_reach_strategy(self, authenticator):
        strategy = StubStrategy("token", lambda actions: actions.pass_())
        authenticator.use(strategy)

        middleware = authenticator.authenticate("token", {"scope": ["read"]})
        await middleware(make_request(), ok_handler)

        options = strategy.calls[0][1]
        assert isinstance(options, AuthenticateOptions)
        assert options.get("scope") == ["read"]


class TestActions:
    """Tests for the per-request strategy actions."""

    @pytest.mark.asyncio
    async def test_redirect(self, authenticator):
        authenticator.use(StubStrategy("oauth", lambda actions: actions.redirect("https://idp/authorize")))

        response = await authenticator.authenticate("oauth")(make_request(), ok_handler)

        assert response.status == 302
        assert response.headers["Location"] == "https://idp/authorize"
        assert response.headers["Content-Length"] == "0"

    @pytest.mark.asyncio
    async def test_redirect_with_status(self, authenticator):
        authenticator.use(StubStrategy("oauth", lambda actions: actions.redirect("/moved", 301)))

        response = await authenticator.authenticate("oauth")(make_request(), ok_handler)

        assert response.status == 301

    @pytest.mark.asyncio
    async def test_pass(self, authenticator):
        authenticator.use(StubStrategy("anon", lambda actions: actions.pass_()))
        request = make_request()

        response = await authenticator.authenticate("anon")(request, ok_handler)

        assert response.text == "ok"
        assert "user" not in request

    @pytest.mark.asyncio
    async def test_error_raises(self, authenticator):
        authenticator.use(StubStrategy("broken", lambda actions: actions.error(ValueError("bad"))))

        with pytest.raises(ValueError, match="bad"):
            await authenticator.authenticate("broken")(make_request(), ok_handler)

    @pytest.mark.asyncio
    async def test_error_with_callback(self, authenticator):
        error = ValueError("bad")
        received = []

        def callback(err, user, info, status):
            received.append((err, user, info, status))
            return web.Response(status=500)

        authenticator.use(StubStrategy("broken", lambda actions: actions.error(error)))

        response = await authenticator.authenticate("broken", callback=callback)(
            make_request(), ok_handler
        )

        assert response.status == 500
        assert received == [(error, None, None, None)]

    @pytest.mark.asyncio
    async def test_only_first_action_counts(self, authenticator):
        """Test later actions from the same attempt are ignored."""

        def behaviour(actions):
            actions.fail("X")
            actions.success({"id": "u1"})

        authenticator.use(StubStrategy("noisy", behaviour))
        request = make_request()

        response = await authenticator.authenticate("noisy")(request, ok_handler)

        assert response.status == 401
        assert "user" not in request

    @pytest.mark.asyncio
    async def test_numeric_fail_is_status(self, authenticator):
        authenticator.use(StubStrategy("limited", fail(429)))

        response = await authenticator.authenticate("limited")(make_request(), ok_handler)

        assert response.status == 429
        assert response.text == "Too Many Requests"
        assert "WWW-Authenticate" not in response.headers

    @pytest.mark.asyncio
    async def test_attempt_delegates_to_strategy(self, authenticator):
        """Test strategy attributes stay reachable through the actions object."""
        strategy = StubStrategy("realm", lambda actions: actions.fail(f'Basic realm="{actions.realm}"'))
        strategy.realm = "Users"
        authenticator.use(strategy)

        response = await authenticator.authenticate("realm")(make_request(), ok_handler)

        assert response.headers["WWW-Authenticate"] == 'Basic realm="Users"'
        assert not hasattr(strategy, "success")


class TestSuccess:
    """Tests for handling a successful strategy."""

    @pytest.mark.asyncio
    async def test_success_redirect_saves_session(self, authenticator):
        """Test the host session is saved before redirecting."""
        authenticator.serialize_user(lambda user: user["id"])
        authenticator.use(StubStrategy("local", succeed({"id": "u1"})))
        session = SavingSession()
        request = make_request(session=session)
        attach_state(request, authenticator)

        middleware = authenticator.authenticate("local", {"success_redirect": "/home"})
        response = await middleware(request, ok_handler)

        assert response.status == 302
        assert response.headers["Location"] == "/home"
        assert session.saved == 1
        assert session["passport"] == {"user": "u1"}

    @pytest.mark.asyncio
    async def test_return_to(self, authenticator):
        authenticator.serialize_user(lambda user: user["id"])
        authenticator.use(StubStrategy("local", succeed({"id": "u1"})))
        session = {"returnTo": "/checkout"}
        request = make_request(session=session)
        attach_state(request, authenticator)

        middleware = authenticator.authenticate(
            "local", {"successReturnToOrRedirect": "/home"}
        )
        response = await middleware(request, ok_handler)

        assert response.headers["Location"] == "/checkout"
        assert "returnTo" not in session

    @pytest.mark.asyncio
    async def test_return_to_fallback(self, authenticator, logged_in_request):
        authenticator.use(StubStrategy("local", succeed({"id": "u1"})))

        middleware = authenticator.authenticate(
            "local", AuthenticateOptions(success_return_to_or_redirect="/home")
        )
        response = await middleware(logged_in_request, ok_handler)

        assert response.headers["Location"] == "/home"

    @pytest.mark.asyncio
    async def test_without_session(self, authenticator):
        """Test session=False logs in without initialize() or serializers."""
        authenticator.use(StubStrategy("token", succeed({"id": "u1"})))
        request = make_request()

        response = await authenticator.authenticate("token", {"session": False})(request, ok_handler)

        assert response.text == "ok"
        assert request["user"] == {"id": "u1"}
        assert "session" not in request

    @pytest.mark.asyncio
    async def test_login_requires_initialize(self, authenticator):
        authenticator.use(StubStrategy("local", succeed({"id": "u1"})))
        request = make_request()

        with pytest.raises(RuntimeError, match="initialize"):
            await authenticator.authenticate("local")(request, ok_handler)

    @pytest.mark.asyncio
    async def test_auth_info_transformed(self, authenticator, logged_in_request):
        authenticator.transform_auth_info(lambda info: {"scopes": info["scope"].split()})
        authenticator.use(StubStrategy("token", succeed({"id": "u1"}, {"scope": "read write"})))

        await authenticator.authenticate("token")(logged_in_request, ok_handler)

        assert logged_in_request["auth_info"] == {"scopes": ["read", "write"]}

    @pytest.mark.asyncio
    async def test_auth_info_disabled(self, authenticator, logged_in_request):
        authenticator.use(StubStrategy("token", succeed({"id": "u1"}, {"scope": "read"})))

        await authenticator.authenticate("token", {"authInfo": False})(logged_in_request, ok_handler)

        assert "auth_info" not in logged_in_request

    @pytest.mark.asyncio
    async def test_assign_property(self, authenticator):
        """Test assign_property stores the user without logging in."""
        authenticator.use(StubStrategy("twitter", succeed({"handle": "@u1"})))
        request = make_request()

        middleware = authenticator.authenticate("twitter", {"assign_property": "linked"})
        response = await middleware(request, ok_handler)

        assert response.text == "ok"
        assert request["linked"] == {"handle": "@u1"}
        assert "user" not in request

    @pytest.mark.asyncio
    async def test_authorize(self, authenticator):
        authenticator.use(StubStrategy("twitter", succeed({"handle": "@u1"})))
        request = make_request()

        await authenticator.authorize("twitter")(request, ok_handler)

        assert request["account"] == {"handle": "@u1"}
        assert "user" not in request

    @pytest.mark.asyncio
    async def test_success_flash_and_message(self, authenticator, logged_in_request):
        flashed = []
        logged_in_request["flash"] = lambda kind, message: flashed.append((kind, message))
        authenticator.use(StubStrategy("local", succeed({"id": "u1"}, {"message": "Welcome!"})))

        middleware = authenticator.authenticate(
            "local", {"success_flash": True, "success_message": "Signed in"}
        )
        await middleware(logged_in_request, ok_handler)

        assert flashed == [("success", "Welcome!")]
        assert logged_in_request["session"]["messages"] == ["Signed in"]

    @pytest.mark.asyncio
    async def test_success_callback(self, authenticator):
        """Test a callback takes over success handling."""
        received = []

        async def callback(err, user, info, status):
            received.append((err, user, info, status))
            return web.Response(text="custom")

        authenticator.use(StubStrategy("local", succeed({"id": "u1"}, {"via": "form"})))
        request = make_request()

        response = await authenticator.authenticate("local", callback=callback)(request, ok_handler)

        assert response.text == "custom"
        assert received == [(None, {"id": "u1"}, {"via": "form"}, None)]
        assert "user" not in request


class TestAllFailed:
    """Tests for resolving a chain where every strategy failed."""

    @pytest.mark.asyncio
    async def test_challenges_become_headers(self, authenticator):
        """Test string challenges are sent as separate WWW-Authenticate headers."""
        authenticator.use(StubStrategy("basic", fail("X"))).use(StubStrategy("bearer", fail("Y")))

        response = await authenticator.authenticate(["basic", "bearer"])(make_request(), ok_handler)

        assert response.status == 401
        assert response.text == "Unauthorized"
        assert response.headers.getall("WWW-Authenticate") == ["X", "Y"]

    @pytest.mark.asyncio
    async def test_first_defined_status(self, authenticator):
        authenticator.use(StubStrategy("a", fail("X"))).use(StubStrategy("b", fail("Y", 403)))

        response = await authenticator.authenticate(["a", "b"])(make_request(), ok_handler)

        assert response.status == 403
        assert response.text == "Forbidden"
        assert "WWW-Authenticate" not in response.headers

    @pytest.mark.asyncio
    async def test_non_string_challenges_skipped(self, authenticator):
        authenticator.use(StubStrategy("a", fail({"message": "bad"}))).use(StubStrategy("b", fail("Y")))

        response = await authenticator.authenticate(["a", "b"])(make_request(), ok_handler)

        assert response.headers.getall("WWW-Authenticate") == ["Y"]

    @pytest.mark.asyncio
    async def test_fail_with_error(self, authenticator):
        authenticator.use(StubStrategy("basic", fail('Basic realm="Users"')))

        middleware = authenticator.authenticate("basic", {"failWithError": True})
        with pytest.raises(AuthenticationError) as exc_info:
            await middleware(make_request(), ok_handler)

        assert exc_info.value.status == 401
        assert str(exc_info.value) == "Unauthorized"
        assert exc_info.value.challenges == ['Basic realm="Users"']

    @pytest.mark.asyncio
    async def test_fail_with_error_status(self, authenticator):
        authenticator.use(StubStrategy("basic", fail("X", 403)))

        middleware = authenticator.authenticate("basic", {"fail_with_error": True})
        with pytest.raises(AuthenticationError) as exc_info:
            await middleware(make_request(), ok_handler)

        assert exc_info.value.status == 403
        assert str(exc_info.value) == "Forbidden"
        assert exc_info.value.challenges == []

    @pytest.mark.asyncio
    async def test_failure_redirect_saves_session(self, authenticator):
        authenticator.use(StubStrategy("local", fail({"message": "Wrong password"})))
        session = SavingSession()
        request = make_request(session=session)

        middleware = authenticator.authenticate(
            "local", {"failure_redirect": "/login", "failure_message": True}
        )
        response = await middleware(request, ok_handler)

        assert response.status == 302
        assert response.headers["Location"] == "/login"
        assert session["messages"] == ["Wrong password"]
        assert session.saved == 1

    @pytest.mark.asyncio
    async def test_failure_message_creates_session(self, authenticator):
        authenticator.use(StubStrategy("local", fail("Invalid credentials")))
        request = make_request()

        await authenticator.authenticate("local", {"failureMessage": True})(request, ok_handler)

        assert request["session"]["messages"] == ["Invalid credentials"]

    @pytest.mark.asyncio
    async def test_failure_message_appends(self, authenticator):
        authenticator.use(StubStrategy("local", fail("X")))
        request = make_request(session={"messages": ["earlier"]})

        await authenticator.authenticate("local", {"failure_message": "Try again"})(request, ok_handler)

        assert request["session"]["messages"] == ["earlier", "Try again"]

    @pytest.mark.asyncio
    async def test_failure_flash(self, authenticator):
        flashed = []
        authenticator.use(StubStrategy("local", fail({"type": "warn", "message": "Locked"})))
        request = make_request(flash=lambda kind, message: flashed.append((kind, message)))

        await authenticator.authenticate("local", {"failure_flash": True})(request, ok_handler)

        assert flashed == [("warn", "Locked")]

    @pytest.mark.asyncio
    async def test_failure_flash_without_facility(self, authenticator):
        authenticator.use(StubStrategy("local", fail("X")))

        response = await authenticator.authenticate("local", {"failure_flash": "Nope"})(
            make_request(), ok_handler
        )

        assert response.status == 401

    @pytest.mark.asyncio
    async def test_only_first_failure_flashed(self, authenticator):
        flashed = []
        authenticator.use(StubStrategy("a", fail("First"))).use(StubStrategy("b", fail("Second")))
        request = make_request(flash=lambda kind, message: flashed.append((kind, message)))

        await authenticator.authenticate(["a", "b"], {"failure_flash": True})(request, ok_handler)

        assert flashed == [("error", "First")]

    @pytest.mark.asyncio
    async def test_callback_single(self, authenticator):
        received = []
        authenticator.use(StubStrategy("basic", fail("X", 401)))

        def callback(err, user, info, status):
            received.append((err, user, info, status))
            return web.Response(status=418)

        response = await authenticator.authenticate("basic", callback=callback)(
            make_request(), ok_handler
        )

        assert response.status == 418
        assert received == [(None, False, "X", 401)]

    @pytest.mark.asyncio
    async def test_callback_multi(self, authenticator):
        received = []
        authenticator.use(StubStrategy("a", fail("X"))).use(StubStrategy("b", fail("Y", 403)))

        def callback(err, user, info, status):
            received.append((err, user, info, status))
            return web.Response(status=418)

        await authenticator.authenticate(["a", "b"], callback=callback)(make_request(), ok_handler)

        assert received == [(None, False, ["X", "Y"], [None, 403])]


class TestFlashDerivation:
    """Tests for flash and session message derivation."""

    def test_disabled(self):
        assert flash_params(None, "X", "error") is None
        assert flash_params(False, "X", "error") is None

    def test_string_option(self):
        assert flash_params("Nope", {"message": "ignored"}, "error") == ("error", "Nope")

    def test_true_uses_source(self):
        assert flash_params(True, "Bad token", "error") == ("error", "Bad token")
        assert flash_params(True, {"type": "info", "message": "Hi"}, "success") == ("info", "Hi")

    def test_flash_message_partial(self):
        option = FlashMessage(type="notice")
        assert flash_params(option, {"message": "Locked"}, "error") == ("notice", "Locked")

    def test_message_text(self):
        assert message_text(None, "X") is None
        assert message_text("Custom", "X") == "Custom"
        assert message_text(True, {"message": "From info"}) == "From info"
        assert message_text(True, "Plain") == "Plain"


class TestSessionMiddleware:
    """Tests for restoring logins through initialize() and session()."""

    @pytest.mark.asyncio
    async def test_restores_login_for_handler(self, authenticator):
        authenticator.deserialize_user(lambda request, user_id: {"id": user_id})
        session_middleware = authenticator.session()
        request = make_request(session={"passport": {"user": "u1"}})
        seen = {}

        async def handler(request):
            seen["user"] = request["user"]
            seen["authenticated"] = request[AUTH_KEY].is_authenticated()
            return web.Response(text="ok")

        async def inner(request):
            return await session_middleware(request, handler)

        response = await authenticator.initialize()(request, inner)

        assert response.text == "ok"
        assert seen == {"user": {"id": "u1"}, "authenticated": True}

    @pytest.mark.asyncio
    async def test_without_initialize(self, authenticator):
        with pytest.raises(RuntimeError, match="initialize"):
            await authenticator.session()(make_request(), ok_handler)
