"""Pydantic models for request interception sessions.

This module defines the data models shared by the interception pipeline:
immutable views of observed requests and responses, the decisions policies
produce, the audit log entries, and session state.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


HeaderList = Tuple[Tuple[str, str], ...]


class ResourceType(str, Enum):
    """Types of network resources."""
    DOCUMENT = "document"
    STYLESHEET = "stylesheet"
    IMAGE = "image"
    MEDIA = "media"
    FONT = "font"
    SCRIPT = "script"
    TEXTTRACK = "texttrack"
    XHR = "xhr"
    FETCH = "fetch"
    EVENTSOURCE = "eventsource"
    WEBSOCKET = "websocket"
    MANIFEST = "manifest"
    OTHER = "other"

    @classmethod
    def from_driver(cls, value: Optional[str]) -> "ResourceType":
        """Map a driver resource category to our enum, defaulting to OTHER."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.OTHER


class SessionState(str, Enum):
    """Interception session lifecycle states."""
    DISABLED = "disabled"
    ENABLING = "enabling"
    ENABLED = "enabled"
    DISABLING = "disabling"


class FailureKind(str, Enum):
    """Kinds of degraded outcomes recorded in the failure log."""
    POLICY_ERROR = "policy_error"
    RESOLUTION_TIMEOUT = "resolution_timeout"
    DRIVER_ERROR = "driver_error"
    ALREADY_RESOLVED = "already_resolved"
    FORCE_RESOLVED = "force_resolved"


def _lookup_header(headers: HeaderList, name: str) -> Optional[str]:
    wanted = name.lower()
    for key, value in headers:
        if key.lower() == wanted:
            return value
    return None


class RequestView(BaseModel):
    """Immutable snapshot of an observed outbound request.

    Headers keep their original order and case; lookups through
    ``header()`` ignore case.
    """

    model_config = ConfigDict(frozen=True)

    request_id: str = Field(description="Driver-assigned request identifier")
    url: str = Field(description="Request URL")
    method: str = Field(default="GET", description="HTTP method")
    headers: HeaderList = Field(default=(), description="Ordered request headers")
    body: Optional[bytes] = Field(default=None, description="Request body, if any")
    resource_type: ResourceType = Field(
        default=ResourceType.OTHER,
        description="Resource category reported by the driver"
    )
    observed_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the request was observed"
    )

    @field_validator('headers', mode='before')
    @classmethod
    def normalize_headers(cls, v):
        """Accept mappings or pair sequences."""
        if v is None:
            return ()
        if isinstance(v, dict):
            return tuple((str(k), str(val)) for k, val in v.items())
        return tuple((str(k), str(val)) for k, val in v)

    def header(self, name: str) -> Optional[str]:
        """Get a header value by case-insensitive name."""
        return _lookup_header(self.headers, name)

    def headers_dict(self) -> Dict[str, str]:
        """Headers as a dict keyed by their original names."""
        return {key: value for key, value in self.headers}

    @property
    def post_data(self) -> Optional[str]:
        """Request body decoded as text for logging."""
        if self.body is None:
            return None
        return self.body.decode('utf-8', errors='replace')


class ResponseView(BaseModel):
    """Immutable snapshot of an observed response."""

    model_config = ConfigDict(frozen=True)

    request_id: Optional[str] = Field(
        default=None,
        description="Identifier of the originating request, when known"
    )
    url: str = Field(description="Response URL")
    status: int = Field(description="HTTP status code")
    status_text: Optional[str] = Field(default=None, description="HTTP status text")
    headers: HeaderList = Field(default=(), description="Ordered response headers")
    observed_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('headers', mode='before')
    @classmethod
    def normalize_headers(cls, v):
        """Accept mappings or pair sequences."""
        if v is None:
            return ()
        if isinstance(v, dict):
            return tuple((str(k), str(val)) for k, val in v.items())
        return tuple((str(k), str(val)) for k, val in v)

    def header(self, name: str) -> Optional[str]:
        """Get a header value by case-insensitive name."""
        return _lookup_header(self.headers, name)


# Decisions

class Allow(BaseModel):
    """Continue the request, optionally with overrides."""

    model_config = ConfigDict(frozen=True)

    action: Literal["allow"] = "allow"
    header_overrides: Optional[Dict[str, str]] = None
    body_override: Optional[Union[str, bytes]] = None

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def has_overrides(self) -> bool:
        """Whether the request is continued with modifications."""
        return self.header_overrides is not None or self.body_override is not None


class Abort(BaseModel):
    """Terminate the request before it reaches the network."""

    model_config = ConfigDict(frozen=True)

    action: Literal["abort"] = "abort"
    reason: str = "failed"

    @property
    def is_terminal(self) -> bool:
        return True


class Fulfill(BaseModel):
    """Answer the request with a synthetic response."""

    model_config = ConfigDict(frozen=True)

    action: Literal["fulfill"] = "fulfill"
    status: int = Field(default=200, ge=100, le=599)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Union[str, bytes] = ""

    @property
    def is_terminal(self) -> bool:
        return True

    @property
    def body_text(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode('utf-8', errors='replace')
        return self.body


class Delay(BaseModel):
    """Hold the request for a fixed time before resolution continues."""

    model_config = ConfigDict(frozen=True)

    action: Literal["delay"] = "delay"
    duration_ms: int = Field(ge=0)

    @property
    def is_terminal(self) -> bool:
        return False


Decision = Annotated[Union[Allow, Abort, Fulfill, Delay], Field(discriminator="action")]
TerminalDecision = Union[Allow, Abort, Fulfill]


# Audit log entries

class LogEntry(BaseModel):
    """Base for audit log entries."""

    model_config = ConfigDict(frozen=True)

    request_id: Optional[str] = Field(default=None, description="Originating request")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class RequestEntry(LogEntry):
    """An observed request."""
    url: str
    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    post_data: Optional[str] = None
    resource_type: ResourceType = ResourceType.OTHER

    @classmethod
    def from_view(cls, view: RequestView) -> "RequestEntry":
        return cls(
            request_id=view.request_id,
            url=view.url,
            method=view.method,
            headers=view.headers_dict(),
            post_data=view.post_data,
            resource_type=view.resource_type,
        )


class ResponseEntry(LogEntry):
    """An observed response."""
    url: str
    status: int
    status_text: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_view(cls, view: ResponseView) -> "ResponseEntry":
        return cls(
            request_id=view.request_id,
            url=view.url,
            status=view.status,
            status_text=view.status_text,
            headers={key: value for key, value in view.headers},
        )


class AbortedEntry(LogEntry):
    """A request terminated by a policy."""
    url: str
    method: str
    resource_type: ResourceType = ResourceType.OTHER
    reason: str
    policy_id: Optional[str] = None


class ModifiedEntry(LogEntry):
    """A request continued with overrides or answered with a synthetic response."""
    url: str
    method: str
    resource_type: ResourceType = ResourceType.OTHER
    policy_id: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None
    response: Optional[Dict[str, Any]] = None


class FailureEntry(LogEntry):
    """A degraded outcome: policy error, timeout, driver error."""
    kind: FailureKind
    message: str
    policy_id: Optional[str] = None
    url: Optional[str] = None
    tie_break: Optional[int] = None


class Resolution(BaseModel):
    """Outcome of running one request through the pipeline."""

    request_id: str
    decision: Union[Allow, Abort, Fulfill]
    policy_id: Optional[str] = None
    tie_break: int = 0
    degraded: bool = False
    errors: List[str] = Field(default_factory=list)

    @property
    def action(self) -> str:
        return self.decision.action
