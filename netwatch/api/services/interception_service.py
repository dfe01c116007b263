"""Interception command service for the netwatch API.

This module provides the command surface over interception sessions: one
session per browsing context, created on first use and kept (with its
audit logs) after interception is disabled until the service closes.
Every operation returns a structured result; errors are reported through
``success``, ``error`` and ``error_code`` and never raised to the caller.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from netwatch.api.schemas import (
    DEFAULT_CONTEXT_ID,
    CommandResult,
    LogResult,
    PolicyListResult,
    PolicyResult,
    PriorityResult,
    SessionStateResult,
    SessionStatusResult,
)
from netwatch.interception.browser_factory import BrowserFactory
from netwatch.interception.config import SessionSettings, get_config
from netwatch.interception.driver import InterceptionDriver, PlaywrightDriver
from netwatch.interception.exceptions import (
    InterceptionError,
    PolicyNotFoundError,
    SessionNotFoundError,
)
from netwatch.interception.policies import build_policy
from netwatch.interception.session import InterceptionSession
from netwatch.models.interception import SessionState

logger = logging.getLogger(__name__)


R = TypeVar("R", bound=CommandResult)


# Public log names and the AuditLog attribute backing each
LOG_NAMES = {
    "requests": "requests",
    "responses": "responses",
    "blocked": "aborted",
    "modified": "modified",
    "failures": "failures",
}


class InterceptionService:
    """Service layer for request interception commands.

    Sessions are keyed by browsing-context id. The Playwright driver is
    built from the interception config the first time a session needs one,
    unless a driver is injected.
    """

    def __init__(
        self,
        driver: Optional[InterceptionDriver] = None,
        settings: Optional[SessionSettings] = None,
    ):
        """Initialize the interception service.

        Args:
            driver: Automation driver shared by all sessions. Built lazily from
                config when omitted.
            settings: Session settings. Loaded from config when omitted.
        """
        self._driver = driver
        self.settings = settings or get_config().config.get_session_settings()
        self._sessions: Dict[str, InterceptionSession] = {}
        self._closed = False

        logger.info(
            f"InterceptionService initialized with driver={type(driver).__name__ if driver else 'lazy'}, "
            f"resolution_timeout_ms={self.settings.resolution_timeout_ms}"
        )

    @property
    def driver(self) -> InterceptionDriver:
        if self._driver is None:
            config = get_config().config
            self._driver = PlaywrightDriver(
                factory=BrowserFactory(config.get_browser_config()),
                navigation_timeout_ms=self.settings.navigation_timeout_ms,
                wait_until=self.settings.navigation_wait_until,
            )
            logger.info(f"Created Playwright driver for environment {config.environment}")
        return self._driver

    def get_session(self, context_id: str) -> Optional[InterceptionSession]:
        return self._sessions.get(context_id)

    def session_states(self) -> Dict[str, str]:
        """Interception state per known browsing context."""
        return {context_id: s.state.value for context_id, s in self._sessions.items()}

    def driver_health(self) -> str:
        """'unhealthy' once a launched browser has disconnected."""
        if self._driver is None:
            return "healthy"
        factory = getattr(self._driver, "factory", None)
        if isinstance(factory, BrowserFactory) and factory.browser is not None and not factory.is_running:
            return "unhealthy"
        return "healthy"

    def _session_for(self, context_id: str) -> InterceptionSession:
        session = self._sessions.get(context_id)
        if session is None:
            session = InterceptionSession(self.driver, context_id, settings=self.settings)
            self._sessions[context_id] = session
            logger.debug(f"Created interception session for context {context_id}")
        return session

    def _require_session(self, context_id: str) -> InterceptionSession:
        session = self._sessions.get(context_id)
        if session is None:
            raise SessionNotFoundError(context_id)
        return session

    def _failure(self, result_cls: Type[R], context_id: str, operation: str, error: Exception, **fields: Any) -> R:
        """Turn an exception into a failed result of the given type."""
        if isinstance(error, InterceptionError):
            logger.warning(f"{operation} failed for context {context_id}: {error.message}")
            return result_cls(
                success=False,
                context_id=context_id,
                error=error.message,
                error_code=error.error_code,
                **fields,
            )

        logger.error(f"{operation} failed for context {context_id}: {error}", exc_info=True)
        return result_cls(
            success=False,
            context_id=context_id,
            error=str(error) or type(error).__name__,
            error_code="internal_error",
            **fields,
        )

    # Session lifecycle

    async def enable_interception(
        self,
        context_id: str = DEFAULT_CONTEXT_ID,
        url: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> SessionStateResult:
        """Enable request interception for a browsing context.

        Args:
            context_id: Browsing context to intercept
            url: Optional page to navigate to once interception is active
            priority: Optional tie-break for this context's resolutions

        Returns:
            SessionStateResult with the new state. A navigation failure is
            reported in ``navigation_error`` while the session stays enabled.
        """
        logger.info(f"Enabling interception for context {context_id} (url={url}, priority={priority})")
        try:
            session = self._session_for(context_id)
            if priority is not None:
                session.priority_tie_break = priority
            state = await session.enable(start_url=url)
        except Exception as e:
            return self._failure(
                SessionStateResult, context_id, "Enable interception", e,
                state=SessionState.DISABLED.value,
            )

        message = "Request interception enabled"
        if session.navigation_error:
            message = "Request interception enabled, navigation failed"

        return SessionStateResult(
            context_id=context_id,
            message=message,
            state=state.value,
            url=url,
            priority=session.priority_tie_break,
            navigation_error=session.navigation_error,
        )

    async def disable_interception(self, context_id: str = DEFAULT_CONTEXT_ID) -> SessionStateResult:
        """Disable request interception, keeping the context's audit logs."""
        session = self._sessions.get(context_id)
        if session is None or session.state == SessionState.DISABLED:
            return SessionStateResult(
                context_id=context_id,
                message="Request interception already disabled",
                state=SessionState.DISABLED.value,
            )

        try:
            state = await session.disable()
        except Exception as e:
            return self._failure(SessionStateResult, context_id, "Disable interception", e)

        return SessionStateResult(
            context_id=context_id,
            message="Request interception disabled",
            state=state.value,
            priority=session.priority_tie_break,
        )

    # Policies

    async def install_policy(
        self,
        context_id: str = DEFAULT_CONTEXT_ID,
        kind: str = "",
        params: Optional[Dict[str, Any]] = None,
        policy_id: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> PolicyResult:
        """Build and install a policy of a built-in kind.

        Policies can be installed before interception is enabled; they take
        effect for requests observed after installation.
        """
        try:
            policy = build_policy(kind, params, policy_id=policy_id, priority=priority)
            session = self._session_for(context_id)
            session.install_policy(policy)
        except Exception as e:
            return self._failure(
                PolicyResult, context_id, "Install policy", e,
                policy_id=policy_id,
                kind=getattr(kind, "value", kind) or None,
            )

        return PolicyResult(
            context_id=context_id,
            message=f"Policy {policy.id} installed",
            policy_id=policy.id,
            kind=policy.kind,
            total_policies=len(session.registry),
        )

    async def remove_policy(self, context_id: str, policy_id: str) -> PolicyResult:
        """Remove a policy; resolutions already running are unaffected."""
        try:
            session = self._sessions.get(context_id)
            if session is None:
                raise PolicyNotFoundError(policy_id)
            removed = session.remove_policy(policy_id)
        except Exception as e:
            return self._failure(PolicyResult, context_id, "Remove policy", e, policy_id=policy_id)

        return PolicyResult(
            context_id=context_id,
            message=f"Policy {policy_id} removed",
            policy_id=removed.id,
            kind=removed.kind,
            total_policies=len(session.registry),
        )

    async def list_policies(self, context_id: str = DEFAULT_CONTEXT_ID) -> PolicyListResult:
        """Installed policies in resolution order."""
        session = self._sessions.get(context_id)
        if session is None:
            return PolicyListResult(context_id=context_id)

        policies = session.list_policies()
        return PolicyListResult(
            context_id=context_id,
            policy_ids=[p["id"] for p in policies],
            policies=policies,
            count=len(policies),
        )

    async def set_resolution_priority(self, context_id: str, priority: int) -> PriorityResult:
        """Set the tie-break forwarded when no deciding policy has its own."""
        try:
            session = self._session_for(context_id)
            session.priority_tie_break = priority
        except Exception as e:
            return self._failure(PriorityResult, context_id, "Set resolution priority", e)

        return PriorityResult(
            context_id=context_id,
            message="Intercept resolution config updated",
            priority=session.priority_tie_break,
        )

    # Audit logs

    def _read_log(self, context_id: str, name: str) -> LogResult:
        session = self._sessions.get(context_id)
        if session is None:
            return LogResult(context_id=context_id, log=name)

        try:
            log = getattr(session.audit_log, LOG_NAMES[name])
            entries: List[Dict[str, Any]] = [entry.model_dump(mode="json") for entry in log.read_all()]
        except Exception as e:
            return self._failure(LogResult, context_id, f"Read {name} log", e, log=name)

        return LogResult(context_id=context_id, log=name, entries=entries, count=len(entries))

    async def get_request_log(self, context_id: str = DEFAULT_CONTEXT_ID) -> LogResult:
        return self._read_log(context_id, "requests")

    async def get_response_log(self, context_id: str = DEFAULT_CONTEXT_ID) -> LogResult:
        return self._read_log(context_id, "responses")

    async def get_aborted_log(self, context_id: str = DEFAULT_CONTEXT_ID) -> LogResult:
        return self._read_log(context_id, "blocked")

    async def get_modified_log(self, context_id: str = DEFAULT_CONTEXT_ID) -> LogResult:
        return self._read_log(context_id, "modified")

    async def get_failure_log(self, context_id: str = DEFAULT_CONTEXT_ID) -> LogResult:
        return self._read_log(context_id, "failures")

    async def clear_logs(self, context_id: str = DEFAULT_CONTEXT_ID) -> CommandResult:
        """Clear every audit log of a context."""
        session = self._sessions.get(context_id)
        if session is not None:
            session.audit_log.clear()
        return CommandResult(context_id=context_id, message="All logs cleared")

    # Status

    async def get_session_status(self, context_id: str = DEFAULT_CONTEXT_ID) -> SessionStatusResult:
        """Interception state, policy count, log counts and in-flight requests."""
        try:
            session = self._require_session(context_id)
        except SessionNotFoundError as e:
            return self._failure(SessionStatusResult, context_id, "Get session status", e)

        stats = session.stats()
        return SessionStatusResult(
            context_id=context_id,
            state=stats["state"],
            priority=stats["priority"],
            policy_count=stats["policies"],
            in_flight=stats["in_flight"],
            logs=stats["logs"],
            enabled_at=session.enabled_at,
        )

    async def close(self) -> None:
        """Disable every session and release the driver."""
        if self._closed:
            return
        self._closed = True

        for context_id, session in list(self._sessions.items()):
            try:
                await session.disable()
            except Exception as e:
                logger.warning(f"Error disabling interception for context {context_id}: {e}")

        if self._driver is not None:
            try:
                await self._driver.close()
            except Exception as e:
                logger.warning(f"Error closing driver: {e}")

        logger.info(f"InterceptionService closed ({len(self._sessions)} sessions)")
        self._sessions.clear()

    def __repr__(self) -> str:
        return f"InterceptionService(sessions={self.session_states()})"
