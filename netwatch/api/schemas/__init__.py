"""API schemas for netwatch REST API."""

from .requests import (
    DEFAULT_CONTEXT_ID,
    ContextRequest,
    EnableInterceptionRequest,
    DisableInterceptionRequest,
    InstallPolicyRequest,
    ResolutionConfigRequest,
    ClearLogsRequest,
)

from .responses import (
    CommandResult,
    SessionStateResult,
    PolicyResult,
    PolicyListResult,
    PriorityResult,
    LogResult,
    SessionStatusResult,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # Requests
    "DEFAULT_CONTEXT_ID",
    "ContextRequest",
    "EnableInterceptionRequest",
    "DisableInterceptionRequest",
    "InstallPolicyRequest",
    "ResolutionConfigRequest",
    "ClearLogsRequest",

    # Responses
    "CommandResult",
    "SessionStateResult",
    "PolicyResult",
    "PolicyListResult",
    "PriorityResult",
    "LogResult",
    "SessionStatusResult",
    "ErrorResponse",
    "HealthResponse",
]
