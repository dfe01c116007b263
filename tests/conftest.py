"""Shared test fixtures and configuration for netwatch tests."""

import asyncio
import uuid
from typing import Dict, List, Optional, Tuple

import pytest

from netwatch.interception.audit_log import AuditLog
from netwatch.interception.config import SessionSettings
from netwatch.interception.driver import InterceptionDriver, Subscription
from netwatch.interception.exceptions import DriverUnavailableError, RequestAlreadyResolvedError
from netwatch.interception.registry import PolicyRegistry
from netwatch.models.interception import RequestView, ResponseView


class FakeDriver(InterceptionDriver):
    """In-memory InterceptionDriver that records every resolution.

    Tests push requests, responses and close signals through ``emit_*``;
    the subscribed callbacks run exactly as a real driver would call them.
    """

    def __init__(
        self,
        resolve_delay: float = 0.0,
        resolve_error: Optional[Exception] = None,
        fail_subscribe: bool = False,
        navigate_error: Optional[Exception] = None,
    ):
        self.resolve_delay = resolve_delay
        self.resolve_error = resolve_error
        self.fail_subscribe = fail_subscribe
        self.navigate_error = navigate_error

        self.request_handlers: Dict[str, object] = {}
        self.response_handlers: Dict[str, object] = {}
        self.closed_handlers: Dict[str, object] = {}
        self.subscribe_calls: List[Tuple[str, str]] = []

        self.resolutions: List[Tuple[str, object, int]] = []
        self.resolved_ids = set()
        self.navigations: List[Tuple[str, str]] = []
        self.closed = False

    def _subscription(self, name: str, handlers: Dict[str, object], context_ref: str) -> Subscription:
        def closer():
            handlers.pop(context_ref, None)
        return Subscription(f"{name}:{context_ref}", closer)

    async def subscribe_requests(self, context_ref, on_request):
        self.subscribe_calls.append(("requests", context_ref))
        if self.fail_subscribe:
            raise DriverUnavailableError("request interception refused", context_ref=context_ref)
        self.request_handlers[context_ref] = on_request
        return self._subscription("requests", self.request_handlers, context_ref)

    async def subscribe_responses(self, context_ref, on_response):
        self.subscribe_calls.append(("responses", context_ref))
        self.response_handlers[context_ref] = on_response
        return self._subscription("responses", self.response_handlers, context_ref)

    async def subscribe_closed(self, context_ref, on_closed):
        self.subscribe_calls.append(("closed", context_ref))
        self.closed_handlers[context_ref] = on_closed
        return self._subscription("closed", self.closed_handlers, context_ref)

    async def resolve(self, request_id, decision, tie_break):
        if request_id in self.resolved_ids:
            raise RequestAlreadyResolvedError(request_id, tie_break)
        if self.resolve_delay:
            await asyncio.sleep(self.resolve_delay)
        if self.resolve_error is not None:
            raise self.resolve_error
        self.resolved_ids.add(request_id)
        self.resolutions.append((request_id, decision, tie_break))

    async def navigate(self, context_ref, url):
        self.navigations.append((context_ref, url))
        if self.navigate_error is not None:
            raise self.navigate_error

    async def close(self):
        self.closed = True

    # Test helpers

    def emit_request(self, view: RequestView, context_ref: str = "default") -> None:
        self.request_handlers[context_ref](view)

    def emit_response(self, view: ResponseView, context_ref: str = "default") -> None:
        self.response_handlers[context_ref](view)

    def emit_closed(self, context_ref: str = "default") -> None:
        self.closed_handlers[context_ref]()

    def resolutions_for(self, request_id: str) -> list:
        return [r for r in self.resolutions if r[0] == request_id]

    def decision_for(self, request_id: str):
        matches = self.resolutions_for(request_id)
        assert len(matches) == 1, f"expected one resolution for {request_id}, got {len(matches)}"
        return matches[0][1]


def build_view(
    url: str,
    method: str = "GET",
    resource_type: str = "other",
    headers=None,
    body: Optional[bytes] = None,
) -> RequestView:
    """RequestView with a fresh request id."""
    return RequestView(
        request_id=uuid.uuid4().hex,
        url=url,
        method=method,
        headers=headers or {},
        body=body,
        resource_type=resource_type,
    )


@pytest.fixture
def make_view():
    """Factory for request views."""
    return build_view


@pytest.fixture
def fake_driver():
    """Fake automation driver."""
    return FakeDriver()


@pytest.fixture
def session_settings():
    """Session settings with short timeouts for tests."""
    return SessionSettings(
        resolution_timeout_ms=500,
        drain_timeout_ms=1000,
        navigation_timeout_ms=1000,
    )


@pytest.fixture
def registry():
    return PolicyRegistry()


@pytest.fixture
def audit_log():
    return AuditLog()
