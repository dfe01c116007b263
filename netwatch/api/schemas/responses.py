"""API response schemas for the netwatch REST API.

Every command on the interception service returns one of these models.
They all derive from CommandResult, so a failed command still carries
``success=False`` together with an ``error`` message and ``error_code``
instead of raising.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class CommandResult(BaseModel):
    """Outcome of a command on the interception service."""

    success: bool = Field(
        default=True,
        description="Whether the command succeeded"
    )

    context_id: Optional[str] = Field(
        default=None,
        description="Browsing context the command applied to"
    )

    message: Optional[str] = Field(
        default=None,
        description="Human-readable summary"
    )

    error: Optional[str] = Field(
        default=None,
        description="Error message when the command failed"
    )

    error_code: Optional[str] = Field(
        default=None,
        description="Machine-readable error code when the command failed"
    )

    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the command completed"
    )


class SessionStateResult(CommandResult):
    """Result of enabling or disabling interception."""

    state: Optional[str] = Field(
        default=None,
        description="Interception state after the command"
    )

    url: Optional[str] = Field(
        default=None,
        description="URL the context was navigated to, if any"
    )

    priority: Optional[int] = Field(
        default=None,
        description="Intercept resolution tie-break in effect"
    )

    navigation_error: Optional[str] = Field(
        default=None,
        description="Navigation failure; interception stays enabled"
    )

    class Config:
        """Pydantic configuration with examples for OpenAPI documentation."""
        json_schema_extra = {
            "example": {
                "success": True,
                "context_id": "default",
                "message": "Request interception enabled",
                "state": "enabled",
                "url": "https://example.com",
                "priority": 0,
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }


class PolicyResult(CommandResult):
    """Result of installing or removing a policy."""

    policy_id: Optional[str] = Field(default=None, description="Affected policy id")
    kind: Optional[str] = Field(default=None, description="Policy kind")
    total_policies: int = Field(default=0, ge=0, description="Policies installed after the command")


class PolicyListResult(CommandResult):
    """Installed policies in resolution order."""

    policy_ids: List[str] = Field(default_factory=list)
    policies: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)


class PriorityResult(CommandResult):
    """Result of setting the intercept resolution tie-break."""

    priority: Optional[int] = None


class LogResult(CommandResult):
    """Entries of one audit log in append order."""

    log: str = Field(..., description="Log name")
    entries: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)


class SessionStatusResult(CommandResult):
    """Snapshot of a context's interception session."""

    state: Optional[str] = None
    priority: Optional[int] = None
    policy_count: int = 0
    in_flight: int = 0
    logs: Dict[str, int] = Field(default_factory=dict)
    enabled_at: Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Standard error response for failures outside the command surface."""

    error: str = Field(
        ...,
        description="Error code or type"
    )

    message: str = Field(
        ...,
        description="Human-readable error message"
    )

    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details for debugging"
    )

    request_id: Optional[str] = Field(
        default=None,
        description="Unique request identifier for tracking"
    )

    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the error occurred"
    )


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal['healthy', 'degraded', 'unhealthy'] = Field(
        ...,
        description="Overall system health status"
    )

    version: str = Field(
        ...,
        description="API version"
    )

    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="Health check timestamp"
    )

    services: Dict[str, Literal['healthy', 'degraded', 'unhealthy']] = Field(
        ...,
        description="Health status of individual services"
    )

    sessions: Dict[str, str] = Field(
        default_factory=dict,
        description="Interception state per browsing context"
    )

    uptime_seconds: float = Field(
        ...,
        ge=0,
        description="Application uptime in seconds"
    )
