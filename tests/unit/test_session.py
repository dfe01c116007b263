"""Unit tests for the interception session controller."""

import asyncio
import time

import pytest

from netwatch.interception.config import SessionSettings
from netwatch.interception.exceptions import DriverUnavailableError
from netwatch.interception.policies import build_policy
from netwatch.interception.session import InterceptionSession
from netwatch.models.interception import Abort, Allow, FailureKind, ResponseView, SessionState


@pytest.fixture
def session(fake_driver, session_settings):
    return InterceptionSession(fake_driver, "default", settings=session_settings)


async def _wait_for_state(session, state, timeout=1.0):
    deadline = time.monotonic() + timeout
    while session.state != state:
        if time.monotonic() > deadline:
            raise AssertionError(f"session stuck in {session.state}")
        await asyncio.sleep(0.01)


class TestEnable:
    """Tests for enabling interception."""

    @pytest.mark.asyncio
    async def test_enable_subscribes(self, session, fake_driver):
        state = await session.enable()

        assert state == SessionState.ENABLED
        assert session.is_enabled
        assert session.enabled_at is not None
        assert {kind for kind, _ in fake_driver.subscribe_calls} == {"requests", "responses", "closed"}

    @pytest.mark.asyncio
    async def test_enable_twice_does_not_resubscribe(self, session, fake_driver):
        await session.enable()
        await session.enable()

        assert len(fake_driver.subscribe_calls) == 3

    @pytest.mark.asyncio
    async def test_enable_failure_releases_subscriptions(self, session, fake_driver):
        fake_driver.fail_subscribe = True

        with pytest.raises(DriverUnavailableError):
            await session.enable()

        assert session.state == SessionState.DISABLED
        assert fake_driver.response_handlers == {}
        assert fake_driver.closed_handlers == {}

    @pytest.mark.asyncio
    async def test_enable_navigates(self, session, fake_driver):
        await session.enable(start_url="https://example.com")

        assert fake_driver.navigations == [("default", "https://example.com")]
        assert session.navigation_error is None

    @pytest.mark.asyncio
    async def test_navigation_failure_keeps_session_enabled(self, session, fake_driver):
        fake_driver.navigate_error = RuntimeError("net::ERR_NAME_NOT_RESOLVED")

        state = await session.enable(start_url="https://nowhere.invalid")

        assert state == SessionState.ENABLED
        assert "ERR_NAME_NOT_RESOLVED" in session.navigation_error


class TestRequestFlow:
    """Tests for requests flowing through an enabled session."""

    @pytest.mark.asyncio
    async def test_requests_are_resolved_and_logged(self, session, fake_driver, make_view):
        session.install_policy(build_policy("block-by-pattern", {"patterns": [".png"]}))
        await session.enable()
        png = make_view("https://example.com/logo.png", resource_type="image")
        page = make_view("https://example.com/", resource_type="document")

        fake_driver.emit_request(png)
        fake_driver.emit_request(page)
        await session.wait_idle()

        assert fake_driver.decision_for(png.request_id) == Abort(reason="blocked")
        assert fake_driver.decision_for(page.request_id) == Allow()
        assert session.audit_log.requests.count() == 2
        assert session.audit_log.aborted.count() == 1

    @pytest.mark.asyncio
    async def test_responses_are_logged(self, session, fake_driver):
        await session.enable()

        fake_driver.emit_response(ResponseView(request_id="r1", url="https://example.com/", status=200))

        responses = session.audit_log.responses.read_all()
        assert len(responses) == 1
        assert responses[0].status == 200

    @pytest.mark.asyncio
    async def test_many_concurrent_requests(self, session, fake_driver, make_view):
        session.install_policy(build_policy("throttle", {"url_pattern": "/", "delay_ms": 10}))
        await session.enable()
        views = [make_view(f"https://example.com/{i}") for i in range(100)]

        for view in views:
            fake_driver.emit_request(view)
        await session.wait_idle()

        assert len(fake_driver.resolutions) == 100
        assert len(fake_driver.resolved_ids) == 100
        assert session.in_flight == 0

    @pytest.mark.asyncio
    async def test_priority_setter(self, session, fake_driver, make_view):
        session.priority_tie_break = 9
        await session.enable()
        view = make_view("https://example.com/")

        fake_driver.emit_request(view)
        await session.wait_idle()

        assert fake_driver.resolutions_for(view.request_id)[0][2] == 9


class TestDisable:
    """Tests for disabling interception."""

    @pytest.mark.asyncio
    async def test_disable_when_disabled_is_noop(self, session, fake_driver):
        state = await session.disable()

        assert state == SessionState.DISABLED
        assert fake_driver.subscribe_calls == []

    @pytest.mark.asyncio
    async def test_disable_drains_and_clears_policies(self, session, fake_driver, make_view):
        session.install_policy(build_policy("throttle", {"url_pattern": "/", "delay_ms": 50}))
        await session.enable()
        view = make_view("https://example.com/")
        fake_driver.emit_request(view)
        await asyncio.sleep(0)

        state = await session.disable()

        assert state == SessionState.DISABLED
        assert fake_driver.decision_for(view.request_id) == Allow()
        assert len(session.registry) == 0
        assert fake_driver.request_handlers == {}
        assert session.audit_log.requests.count() == 1

    @pytest.mark.asyncio
    async def test_disable_force_resolves_stragglers(self, fake_driver, make_view):
        settings = SessionSettings(resolution_timeout_ms=500, drain_timeout_ms=50)
        session = InterceptionSession(fake_driver, "default", settings=settings)
        session.install_policy(build_policy("throttle", {"url_pattern": "/", "delay_ms": 10000}))
        await session.enable()
        view = make_view("https://example.com/")
        fake_driver.emit_request(view)
        await asyncio.sleep(0.01)

        start = time.monotonic()
        await session.disable()

        assert time.monotonic() - start < 2
        assert fake_driver.decision_for(view.request_id) == Allow()
        kinds = [entry.kind for entry in session.audit_log.failures.read_all()]
        assert kinds == [FailureKind.FORCE_RESOLVED]
        assert session.in_flight == 0

    @pytest.mark.asyncio
    async def test_requests_during_drain_pass_through(self, session, fake_driver, make_view):
        session.install_policy(build_policy("throttle", {"url_pattern": "/slow", "delay_ms": 200}))
        session.install_policy(build_policy("block-by-pattern", {"patterns": [".png"]}))
        await session.enable()
        slow = make_view("https://example.com/slow")
        fake_driver.emit_request(slow)
        await asyncio.sleep(0.01)

        disabling = asyncio.create_task(session.disable())
        await asyncio.sleep(0.01)
        assert session.state == SessionState.DISABLING
        png = make_view("https://example.com/late.png")
        fake_driver.emit_request(png)
        await disabling

        assert fake_driver.decision_for(png.request_id) == Allow()
        assert session.audit_log.aborted.count() == 0

    @pytest.mark.asyncio
    async def test_driver_loss_disables_session(self, session, fake_driver):
        session.install_policy(build_policy("block-by-pattern", {"patterns": [".png"]}))
        await session.enable()

        fake_driver.emit_closed()
        await _wait_for_state(session, SessionState.DISABLED)

        kinds = [entry.kind for entry in session.audit_log.failures.read_all()]
        assert kinds == [FailureKind.DRIVER_ERROR]
        assert len(session.registry) == 0

    @pytest.mark.asyncio
    async def test_driver_loss_force_resolves_in_flight(self, session, fake_driver, make_view):
        session.install_policy(build_policy("throttle", {"url_pattern": "/", "delay_ms": 5000}))
        await session.enable()
        view = make_view("https://example.com/slow")
        fake_driver.emit_request(view)
        await asyncio.sleep(0.01)
        assert session.in_flight == 1

        fake_driver.emit_closed()
        await _wait_for_state(session, SessionState.DISABLED)

        assert fake_driver.decision_for(view.request_id) == Allow()
        kinds = [entry.kind for entry in session.audit_log.failures.read_all()]
        assert kinds == [FailureKind.DRIVER_ERROR, FailureKind.FORCE_RESOLVED]
        assert session.in_flight == 0

    @pytest.mark.asyncio
    async def test_driver_loss_handler_is_tracked(self, session, fake_driver):
        await session.enable()

        fake_driver.emit_closed()
        assert len(session._lifecycle_tasks) == 1
        await _wait_for_state(session, SessionState.DISABLED)
        await asyncio.sleep(0.01)

        assert session._lifecycle_tasks == set()

    @pytest.mark.asyncio
    async def test_reenable_after_disable(self, session, fake_driver):
        await session.enable()
        await session.disable()
        await session.enable()

        assert session.is_enabled
        assert len(fake_driver.subscribe_calls) == 6

    @pytest.mark.asyncio
    async def test_stats(self, session):
        session.install_policy(build_policy("throttle", {"url_pattern": "/"}))

        stats = session.stats()

        assert stats["state"] == "disabled"
        assert stats["policies"] == 1
        assert stats["logs"]["requests"] == 0
