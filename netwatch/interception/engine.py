"""Resolution engine for intercepted requests.

For every observed request the engine consults the installed policies in
registration order, stops at the first decision, honours ``Delay`` by
suspending only that request, and applies exactly one terminal decision
through the driver. Policy failures, driver errors and timeouts degrade to
``Allow`` and are recorded in the failure log; they never break the
pipeline.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models.interception import (
    Abort,
    AbortedEntry,
    Allow,
    Delay,
    FailureEntry,
    FailureKind,
    Fulfill,
    ModifiedEntry,
    RequestView,
    Resolution,
    TerminalDecision,
)
from .audit_log import AuditLog
from .driver import InterceptionDriver
from .exceptions import PolicyError, RequestAlreadyResolvedError, ResolutionTimeoutError
from .registry import Policy, PolicyRegistry

logger = logging.getLogger(__name__)


@dataclass
class _Ticket:
    """Per-request resolution state."""
    view: RequestView
    applied: bool = False
    errors: List[str] = field(default_factory=list)


class ResolutionEngine:
    """Runs policies against observed requests and applies the outcome."""

    def __init__(
        self,
        registry: PolicyRegistry,
        audit_log: AuditLog,
        driver: InterceptionDriver,
        resolution_timeout_ms: int = 5000,
        priority_tie_break: int = 0,
    ):
        """Initialize the resolution engine.

        Args:
            registry: Policies to consult
            audit_log: Where outcomes are recorded
            driver: Driver that applies decisions
            resolution_timeout_ms: Bounded wait for the driver to acknowledge a decision
            priority_tie_break: Tie-break forwarded when the deciding policy has none
        """
        self.registry = registry
        self.audit_log = audit_log
        self.driver = driver
        self.resolution_timeout_ms = resolution_timeout_ms
        self.priority_tie_break = priority_tie_break

        self._tickets: Dict[str, _Ticket] = {}
        self._suspensions_allowed = True

    # Suspension control

    def stop_suspensions(self) -> None:
        """Skip Delay decisions from now on (used while a session drains)."""
        self._suspensions_allowed = False

    def resume_suspensions(self) -> None:
        self._suspensions_allowed = True

    @property
    def suspensions_allowed(self) -> bool:
        return self._suspensions_allowed

    @property
    def in_flight(self) -> int:
        """Requests currently being resolved."""
        return len(self._tickets)

    # Resolution

    async def process(self, view: RequestView) -> Resolution:
        """Run a request through the policies and apply the result.

        If the task is cancelled before a decision was applied, the request
        is force-resolved as Allow before the cancellation propagates.
        """
        ticket = _Ticket(view=view)
        self._tickets[view.request_id] = ticket

        try:
            decision, policy = await self._decide(ticket)
            return await self._apply(ticket, decision, policy)
        except asyncio.CancelledError:
            await self.force_allow(view.request_id)
            raise
        finally:
            self._tickets.pop(view.request_id, None)

    async def force_allow(self, request_id: str) -> Optional[Resolution]:
        """Allow an outstanding request unless a decision was already applied.

        Returns None when the request is unknown or already resolved.
        """
        ticket = self._tickets.get(request_id)
        if ticket is None or ticket.applied:
            return None
        logger.warning(f"Force-resolving {ticket.view.url} as allow")
        return await self._apply(ticket, Allow(), None, forced=True)

    async def pass_through(self, view: RequestView) -> Resolution:
        """Allow a request unmodified without consulting any policy."""
        return await self._apply(_Ticket(view=view), Allow(), None)

    async def _decide(self, ticket: _Ticket) -> Tuple[TerminalDecision, Optional[Policy]]:
        """Find the first terminal decision in registration order."""
        view = ticket.view
        snapshot = self.registry.snapshot()

        for policy in snapshot:
            try:
                result = policy.decide(view)
                if inspect.isawaitable(result):
                    result = await result
                if result is not None and not isinstance(result, (Allow, Abort, Fulfill, Delay)):
                    raise TypeError(f"decide returned {type(result).__name__}, expected a decision")
            except Exception as e:
                error = PolicyError(policy.id, e)
                ticket.errors.append(error.message)
                logger.warning(f"{error.message} (url={view.url})")
                self.audit_log.failures.append(FailureEntry(
                    request_id=view.request_id,
                    kind=FailureKind.POLICY_ERROR,
                    message=str(e),
                    policy_id=policy.id,
                    url=view.url,
                ))
                continue

            if result is None:
                continue

            if isinstance(result, Delay):
                # Policies after this one are consulted once the delay elapses
                if not self._suspensions_allowed:
                    logger.debug(f"Skipping delay from {policy.id}: session draining")
                    continue
                logger.debug(f"Delaying {view.url} by {result.duration_ms}ms ({policy.id})")
                await asyncio.sleep(result.duration_ms / 1000)
                continue

            return result, policy

        return Allow(), None

    def _tie_break_for(self, policy: Optional[Policy]) -> int:
        if policy is not None and policy.priority is not None:
            return policy.priority
        return self.priority_tie_break

    async def _apply(
        self,
        ticket: _Ticket,
        decision: TerminalDecision,
        policy: Optional[Policy],
        forced: bool = False,
    ) -> Resolution:
        """Apply a terminal decision through the driver exactly once."""
        view = ticket.view
        policy_id = policy.id if policy else None
        tie_break = self._tie_break_for(policy)

        if ticket.applied:
            raise RuntimeError(f"Request {view.request_id} already has a decision applied")
        ticket.applied = True

        try:
            await asyncio.wait_for(
                self.driver.resolve(view.request_id, decision, tie_break),
                timeout=self.resolution_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            error = ResolutionTimeoutError(view.request_id, self.resolution_timeout_ms)
            logger.warning(f"{error.message}, treating {view.url} as allowed")
            return self._degraded(ticket, FailureKind.RESOLUTION_TIMEOUT, error.message, policy_id, tie_break)
        except RequestAlreadyResolvedError as e:
            logger.info(f"Request {view.url} already resolved by another consumer (tie_break={tie_break})")
            return self._degraded(ticket, FailureKind.ALREADY_RESOLVED, e.message, policy_id, tie_break)
        except Exception as e:
            logger.error(f"Driver failed to resolve {view.url}: {e}")
            return self._degraded(ticket, FailureKind.DRIVER_ERROR, str(e), policy_id, tie_break)

        if forced:
            self.audit_log.failures.append(FailureEntry(
                request_id=view.request_id,
                kind=FailureKind.FORCE_RESOLVED,
                message="Resolution did not finish before the session stopped",
                url=view.url,
                tie_break=tie_break,
            ))

        self._record(view, decision, policy_id)
        logger.debug(f"Resolved {view.method} {view.url} -> {decision.action} ({policy_id or 'default'})")

        return Resolution(
            request_id=view.request_id,
            decision=decision,
            policy_id=policy_id,
            tie_break=tie_break,
            degraded=forced or bool(ticket.errors),
            errors=list(ticket.errors),
        )

    def _degraded(
        self,
        ticket: _Ticket,
        kind: FailureKind,
        message: str,
        policy_id: Optional[str],
        tie_break: int,
    ) -> Resolution:
        view = ticket.view
        ticket.errors.append(message)
        self.audit_log.failures.append(FailureEntry(
            request_id=view.request_id,
            kind=kind,
            message=message,
            policy_id=policy_id,
            url=view.url,
            tie_break=tie_break,
        ))
        return Resolution(
            request_id=view.request_id,
            decision=Allow(),
            policy_id=policy_id,
            tie_break=tie_break,
            degraded=True,
            errors=list(ticket.errors),
        )

    def _record(self, view: RequestView, decision: TerminalDecision, policy_id: Optional[str]) -> None:
        """Record aborted and modified requests."""
        if isinstance(decision, Abort):
            self.audit_log.aborted.append(AbortedEntry(
                request_id=view.request_id,
                url=view.url,
                method=view.method,
                resource_type=view.resource_type,
                reason=decision.reason,
                policy_id=policy_id,
            ))
        elif isinstance(decision, Fulfill):
            self.audit_log.modified.append(ModifiedEntry(
                request_id=view.request_id,
                url=view.url,
                method=view.method,
                resource_type=view.resource_type,
                policy_id=policy_id,
                response={
                    "status": decision.status,
                    "headers": decision.headers,
                    "body": decision.body_text,
                },
            ))
        elif decision.has_overrides:
            modifications = {}
            if decision.header_overrides is not None:
                modifications["headers"] = decision.header_overrides
            if decision.body_override is not None:
                body = decision.body_override
                modifications["post_data"] = body.decode('utf-8', errors='replace') if isinstance(body, bytes) else body
            self.audit_log.modified.append(ModifiedEntry(
                request_id=view.request_id,
                url=view.url,
                method=view.method,
                resource_type=view.resource_type,
                policy_id=policy_id,
                modifications=modifications,
            ))

    def __repr__(self) -> str:
        return (
            f"ResolutionEngine(policies={len(self.registry)}, in_flight={self.in_flight}, "
            f"tie_break={self.priority_tie_break})"
        )
