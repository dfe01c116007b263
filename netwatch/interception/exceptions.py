"""Exceptions for the request interception pipeline.

Every exception carries an ``error_code`` so the command surface can turn
it into a structured result without inspecting exception types.
"""

from typing import Optional


class InterceptionError(Exception):
    """Base interception error."""

    def __init__(
        self,
        message: str = "Interception error",
        error_code: str = "interception_error",
        details: Optional[dict] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class PolicyError(InterceptionError):
    """Raised when a policy's decide function fails."""

    def __init__(self, policy_id: str, cause: Exception):
        super().__init__(
            message=f"Policy '{policy_id}' failed: {cause}",
            error_code="policy_error",
            details={"policy_id": policy_id, "cause": type(cause).__name__}
        )
        self.policy_id = policy_id
        self.cause = cause


class DuplicatePolicyError(InterceptionError):
    """Raised when installing a policy whose id is already registered."""

    def __init__(self, policy_id: str):
        super().__init__(
            message=f"Policy '{policy_id}' is already installed",
            error_code="duplicate_id",
            details={"policy_id": policy_id}
        )
        self.policy_id = policy_id


class PolicyNotFoundError(InterceptionError):
    """Raised when removing a policy that is not registered."""

    def __init__(self, policy_id: str):
        super().__init__(
            message=f"Policy '{policy_id}' not found",
            error_code="not_found",
            details={"policy_id": policy_id}
        )
        self.policy_id = policy_id


class InvalidPolicyParamsError(InterceptionError):
    """Raised when a policy kind or its parameters are invalid."""

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="invalid_params",
            details={"kind": kind} if kind else {}
        )


class ResolutionTimeoutError(InterceptionError):
    """Raised when the driver does not acknowledge a resolution in time."""

    def __init__(self, request_id: str, timeout_ms: int):
        super().__init__(
            message=f"Resolution of request {request_id} timed out after {timeout_ms}ms",
            error_code="resolution_timeout",
            details={"request_id": request_id, "timeout_ms": timeout_ms}
        )
        self.request_id = request_id


class RequestAlreadyResolvedError(InterceptionError):
    """Raised by a driver when another consumer already resolved the request."""

    def __init__(self, request_id: str, tie_break: Optional[int] = None):
        super().__init__(
            message=f"Request {request_id} was already resolved",
            error_code="already_resolved",
            details={"request_id": request_id, "tie_break": tie_break}
        )
        self.request_id = request_id
        self.tie_break = tie_break


class DriverUnavailableError(InterceptionError):
    """Raised when the automation driver cannot subscribe or has gone away."""

    def __init__(self, message: str = "Browser automation driver unavailable", context_ref: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="driver_unavailable",
            details={"context_ref": context_ref} if context_ref else {}
        )


class SessionNotFoundError(InterceptionError):
    """Raised when a command targets a context without an interception session."""

    def __init__(self, context_id: str):
        super().__init__(
            message=f"No interception session for context '{context_id}'",
            error_code="session_not_found",
            details={"context_id": context_id}
        )
        self.context_id = context_id
