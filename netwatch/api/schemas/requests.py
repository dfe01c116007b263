"""API request schemas for the netwatch REST API.

This module defines Pydantic models for the request payloads of the
network interception endpoints.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from netwatch.interception.policies import PolicyKind


DEFAULT_CONTEXT_ID = "default"


class ContextRequest(BaseModel):
    """Base payload for commands that target a browsing context."""

    context_id: str = Field(
        default=DEFAULT_CONTEXT_ID,
        min_length=1,
        max_length=100,
        pattern=r'^[a-zA-Z0-9_\-\.]+$',
        description="Browsing context the command applies to",
        examples=["default", "checkout-flow"]
    )


class EnableInterceptionRequest(ContextRequest):
    """Request schema for enabling request interception.

    Optionally navigates the context to ``url`` once interception is active
    and sets the cooperative tie-break forwarded to the driver.
    """

    url: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=2000,
        description="Page to navigate to after interception is enabled",
        examples=["https://example.com"]
    )

    priority: Optional[int] = Field(
        default=None,
        description="Intercept resolution tie-break for this context",
        examples=[0, 10]
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if v is not None and not v.startswith(('http://', 'https://', 'about:', 'data:', 'file:')):
            raise ValueError("url must be an absolute http(s), about:, data: or file: URL")
        return v

    class Config:
        """Pydantic configuration with examples for OpenAPI documentation."""
        json_schema_extra = {
            "example": {
                "context_id": "default",
                "url": "https://example.com",
                "priority": 0
            }
        }


class DisableInterceptionRequest(ContextRequest):
    """Request schema for disabling request interception."""


class InstallPolicyRequest(ContextRequest):
    """Request schema for installing an interception policy."""

    kind: PolicyKind = Field(
        ...,
        description="Policy kind",
        examples=["block-by-pattern", "mock-response"]
    )

    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Kind-specific policy parameters"
    )

    policy_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=100,
        pattern=r'^[a-zA-Z0-9_\-\.]+$',
        description="Explicit policy id; generated from the kind when omitted"
    )

    priority: Optional[int] = Field(
        default=None,
        description="Tie-break forwarded when this policy decides a request"
    )

    class Config:
        """Pydantic configuration with examples for OpenAPI documentation."""
        json_schema_extra = {
            "example": {
                "context_id": "default",
                "kind": "mock-response",
                "params": {
                    "url_pattern": "/api/users",
                    "status": 200,
                    "body": {"users": [{"id": 1, "name": "John"}]}
                }
            }
        }


class ResolutionConfigRequest(ContextRequest):
    """Request schema for setting the intercept resolution tie-break."""

    priority: int = Field(
        ...,
        description="Tie-break forwarded to the driver when no policy sets one",
        examples=[0, 10]
    )


class ClearLogsRequest(ContextRequest):
    """Request schema for clearing a context's audit logs."""
