"""Interception session controller.

An InterceptionSession owns the interception state machine for one
browsing context:

    DISABLED --enable()--> ENABLING --subscribed--> ENABLED
    ENABLED --disable()--> DISABLING --drained--> DISABLED

While enabled, every observed request is resolved in its own task through
the ResolutionEngine. Disabling stops new delays, drains in-flight
resolutions (bounded by the drain timeout), force-resolves whatever is
left as allowed, closes the driver subscriptions and clears the policy
registry. Audit logs survive until the caller clears them.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from ..models.interception import (
    FailureEntry,
    FailureKind,
    RequestEntry,
    RequestView,
    ResponseEntry,
    ResponseView,
    SessionState,
)
from .audit_log import AuditLog
from .config import SessionSettings
from .driver import InterceptionDriver, Subscription
from .engine import ResolutionEngine
from .exceptions import DriverUnavailableError
from .registry import Policy, PolicyRegistry

logger = logging.getLogger(__name__)


class InterceptionSession:
    """Interception state for a single browsing context."""

    def __init__(
        self,
        driver: InterceptionDriver,
        context_ref: str,
        settings: Optional[SessionSettings] = None,
        registry: Optional[PolicyRegistry] = None,
        audit_log: Optional[AuditLog] = None,
    ):
        """Initialize an interception session.

        Args:
            driver: Browser automation driver
            context_ref: Browsing context this session intercepts
            settings: Timeouts and default tie-break
            registry: Policy registry (a new one by default)
            audit_log: Audit log (a new one by default)
        """
        self.driver = driver
        self.context_ref = context_ref
        self.settings = settings or SessionSettings()
        self.registry = registry or PolicyRegistry()
        self.audit_log = audit_log or AuditLog()
        self.engine = ResolutionEngine(
            registry=self.registry,
            audit_log=self.audit_log,
            driver=driver,
            resolution_timeout_ms=self.settings.resolution_timeout_ms,
            priority_tie_break=self.settings.default_priority,
        )

        self.state = SessionState.DISABLED
        self.enabled_at: Optional[datetime] = None
        self.disabled_at: Optional[datetime] = None
        self.navigation_error: Optional[str] = None

        self._subscriptions: List[Subscription] = []
        self._tasks: Set[asyncio.Task] = set()
        # Kept apart from _tasks so a shutdown never drains itself
        self._lifecycle_tasks: Set[asyncio.Task] = set()
        self._state_lock = asyncio.Lock()

    @property
    def priority_tie_break(self) -> int:
        return self.engine.priority_tie_break

    @priority_tie_break.setter
    def priority_tie_break(self, value: int) -> None:
        self.engine.priority_tie_break = value
        logger.info(f"Intercept resolution priority for {self.context_ref} set to {value}")

    @property
    def is_enabled(self) -> bool:
        return self.state == SessionState.ENABLED

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # State machine

    async def enable(self, start_url: Optional[str] = None) -> SessionState:
        """Subscribe to the driver and start resolving requests.

        Returns the current state without resubscribing when already enabled.
        When ``start_url`` is given the context is navigated there once
        interception is active; a navigation failure is kept in
        ``navigation_error`` and leaves the session enabled.

        Raises:
            DriverUnavailableError: If the driver subscription fails
        """
        state = await self._subscribe()
        self.navigation_error = None
        if start_url:
            try:
                await self.navigate(start_url)
            except Exception as e:
                self.navigation_error = str(e)
                logger.warning(f"Navigation to {start_url} failed, interception stays enabled: {e}")
        return state

    async def _subscribe(self) -> SessionState:
        async with self._state_lock:
            if self.state == SessionState.ENABLED:
                logger.debug(f"Interception already enabled for {self.context_ref}")
                return self.state

            self.state = SessionState.ENABLING
            self.engine.resume_suspensions()
            logger.info(f"Enabling interception for {self.context_ref}")

            try:
                self._subscriptions.append(
                    await self.driver.subscribe_closed(self.context_ref, self._on_closed)
                )
                self._subscriptions.append(
                    await self.driver.subscribe_responses(self.context_ref, self._on_response)
                )
                self._subscriptions.append(
                    await self.driver.subscribe_requests(self.context_ref, self._on_request)
                )
            except Exception as e:
                logger.error(f"Failed to enable interception for {self.context_ref}: {e}")
                await self._close_subscriptions()
                self.state = SessionState.DISABLED
                if isinstance(e, DriverUnavailableError):
                    raise
                raise DriverUnavailableError(
                    f"Driver subscription failed: {e}", context_ref=self.context_ref
                ) from e

            self.state = SessionState.ENABLED
            self.enabled_at = datetime.utcnow()
            logger.info(f"Interception enabled for {self.context_ref}")
            return self.state

    async def disable(self) -> SessionState:
        """Drain in-flight requests and unsubscribe. No-op when disabled."""
        async with self._state_lock:
            if self.state == SessionState.DISABLED:
                logger.debug(f"Interception already disabled for {self.context_ref}")
                return self.state
            await self._shutdown(self.settings.drain_timeout_ms)
            return self.state

    async def _shutdown(self, drain_timeout_ms: int) -> None:
        self.state = SessionState.DISABLING
        self.engine.stop_suspensions()
        logger.info(f"Disabling interception for {self.context_ref} ({len(self._tasks)} in flight)")

        pending = set(self._tasks)
        if pending:
            _, stragglers = await asyncio.wait(pending, timeout=drain_timeout_ms / 1000)
            if stragglers:
                logger.warning(
                    f"{len(stragglers)} requests did not finish within {drain_timeout_ms}ms, "
                    f"force-resolving as allowed"
                )
                for task in stragglers:
                    task.cancel()
                await asyncio.gather(*stragglers, return_exceptions=True)

        await self._close_subscriptions()
        self.registry.clear()

        self.state = SessionState.DISABLED
        self.disabled_at = datetime.utcnow()
        logger.info(f"Interception disabled for {self.context_ref}")

    async def _close_subscriptions(self) -> None:
        for subscription in reversed(self._subscriptions):
            try:
                await subscription.close()
            except Exception as e:
                logger.warning(f"Error closing {subscription.name}: {e}")
        self._subscriptions.clear()

    async def navigate(self, url: str) -> None:
        """Navigate the intercepted browsing context."""
        await self.driver.navigate(self.context_ref, url)

    async def wait_idle(self) -> None:
        """Wait until no request is being resolved."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Driver callbacks

    def _on_request(self, view: RequestView) -> None:
        self.audit_log.requests.append(RequestEntry.from_view(view))

        if self.state == SessionState.ENABLED:
            coro = self.engine.process(view)
        else:
            coro = self.engine.pass_through(view)

        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._lifecycle_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Request resolution task failed: {error}")

    def _on_response(self, view: ResponseView) -> None:
        self.audit_log.responses.append(ResponseEntry.from_view(view))

    def _on_closed(self) -> None:
        if self.state == SessionState.DISABLED:
            return
        task = asyncio.get_running_loop().create_task(self._handle_driver_lost())
        self._lifecycle_tasks.add(task)
        task.add_done_callback(self._task_done)

    async def _handle_driver_lost(self) -> None:
        async with self._state_lock:
            if self.state == SessionState.DISABLED:
                return
            error = DriverUnavailableError(
                f"Browsing context {self.context_ref} closed during interception",
                context_ref=self.context_ref,
            )
            logger.error(error.message)
            self.audit_log.failures.append(FailureEntry(
                kind=FailureKind.DRIVER_ERROR,
                message=error.message,
            ))
            await self._shutdown(drain_timeout_ms=0)

    # Policies

    def install_policy(self, policy: Policy) -> None:
        """Install a policy at the end of the resolution order."""
        self.registry.install(policy)

    def remove_policy(self, policy_id: str) -> Policy:
        """Remove a policy; resolutions already running keep their snapshot."""
        return self.registry.remove(policy_id)

    def list_policies(self) -> List[Dict[str, Any]]:
        return [policy.describe() for policy in self.registry.snapshot()]

    def stats(self) -> Dict[str, Any]:
        return {
            "context_id": self.context_ref,
            "state": self.state.value,
            "policies": len(self.registry),
            "in_flight": self.in_flight,
            "priority": self.priority_tie_break,
            "enabled_at": self.enabled_at.isoformat() if self.enabled_at else None,
            "logs": self.audit_log.stats(),
        }

    def __repr__(self) -> str:
        return (
            f"InterceptionSession(context={self.context_ref!r}, state={self.state.value}, "
            f"policies={len(self.registry)}, in_flight={self.in_flight})"
        )
