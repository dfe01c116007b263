"""Built-in interception policy kinds.

Policies are built from a closed set of kinds parameterized by data:

- block-by-pattern: abort requests whose URL matches any pattern
- block-by-category: abort requests of the given resource types
- modify-headers: continue matching requests with merged headers
- mock-response: answer matching requests with a synthetic response
- throttle: delay matching requests before resolution continues

Usage:
    policy = build_policy("block-by-pattern", {"patterns": [".png"]})
    registry.install(policy)
"""

import json
import logging
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models.interception import Abort, Allow, Delay, Fulfill, RequestView
from .exceptions import InvalidPolicyParamsError
from .matchers import Matcher, any_of, resource_type_in, url_pattern
from .registry import Policy

logger = logging.getLogger(__name__)


class PolicyKind(str, Enum):
    """Supported policy kinds."""
    BLOCK_BY_PATTERN = "block-by-pattern"
    BLOCK_BY_CATEGORY = "block-by-category"
    MODIFY_HEADERS = "modify-headers"
    MOCK_RESPONSE = "mock-response"
    THROTTLE = "throttle"


# Default id prefixes per kind
_ID_PREFIXES = {
    PolicyKind.BLOCK_BY_PATTERN: "block",
    PolicyKind.BLOCK_BY_CATEGORY: "block-resource",
    PolicyKind.MODIFY_HEADERS: "modify-headers",
    PolicyKind.MOCK_RESPONSE: "mock-response",
    PolicyKind.THROTTLE: "throttle",
}


class BlockByPatternParams(BaseModel):
    """Parameters for block-by-pattern policies."""
    patterns: List[str] = Field(min_length=1, description="URL substrings or regexes")
    is_regex: bool = Field(default=False, description="Treat patterns as regular expressions")
    reason: str = Field(default="blocked", description="Abort reason")


class BlockByCategoryParams(BaseModel):
    """Parameters for block-by-category policies."""
    resource_types: List[str] = Field(min_length=1, description="Resource categories to block")
    reason: str = Field(default="resource type blocked", description="Abort reason")


class UrlScopedParams(BaseModel):
    """Common parameters for policies scoped by a single URL pattern."""
    url_pattern: str = Field(min_length=1, description="URL substring or regex")
    is_regex: bool = Field(default=False, description="Treat url_pattern as a regular expression")


class ModifyHeadersParams(UrlScopedParams):
    """Parameters for modify-headers policies."""
    headers: Dict[str, str] = Field(description="Headers to set on matching requests")

    @field_validator('headers')
    @classmethod
    def validate_headers(cls, v):
        if not v:
            raise ValueError("At least one header is required")
        return v


class MockResponseParams(UrlScopedParams):
    """Parameters for mock-response policies."""
    status: int = Field(default=200, ge=100, le=599)
    headers: Dict[str, str] = Field(
        default_factory=lambda: {"Content-Type": "application/json"}
    )
    body: Any = Field(default="", description="String body, or JSON value to serialize")

    def render_body(self) -> str:
        """String bodies go out verbatim; anything else is compact JSON."""
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, separators=(",", ":"))


class ThrottleParams(UrlScopedParams):
    """Parameters for throttle policies."""
    delay_ms: int = Field(default=1000, ge=0, le=600000)


def merge_headers(
    request_headers: Iterable[Tuple[str, str]], overrides: Dict[str, str]
) -> Dict[str, str]:
    """Merge header overrides into the ordered request header pairs.

    An override replaces an existing header with the same name regardless of
    case; the override's spelling of the name is kept. Playwright takes a
    single value per name, so repeated request headers are joined in order
    (cookies with ``"; "``, anything else with ``", "``).
    """
    lowered = {name.lower() for name in overrides}
    merged: Dict[str, str] = {}
    spellings: Dict[str, str] = {}
    for name, value in request_headers:
        key = name.lower()
        if key in lowered:
            continue
        if key in spellings:
            separator = "; " if key == "cookie" else ", "
            merged[spellings[key]] = f"{merged[spellings[key]]}{separator}{value}"
        else:
            spellings[key] = name
            merged[name] = value
    merged.update(overrides)
    return merged


def block_by_pattern(params: BlockByPatternParams) -> Callable[[RequestView], Optional[Abort]]:
    matcher: Matcher = any_of(url_pattern(p, params.is_regex) for p in params.patterns)
    decision = Abort(reason=params.reason)

    def decide(view: RequestView) -> Optional[Abort]:
        if not matcher(view):
            return None
        return decision

    return decide


def block_by_category(params: BlockByCategoryParams) -> Callable[[RequestView], Optional[Abort]]:
    matcher = resource_type_in(params.resource_types)
    decision = Abort(reason=params.reason)

    def decide(view: RequestView) -> Optional[Abort]:
        if not matcher(view):
            return None
        return decision

    return decide


def modify_headers(params: ModifyHeadersParams) -> Callable[[RequestView], Optional[Allow]]:
    matcher = url_pattern(params.url_pattern, params.is_regex)

    def decide(view: RequestView) -> Optional[Allow]:
        if not matcher(view):
            return None
        return Allow(header_overrides=merge_headers(view.headers, params.headers))

    return decide


def mock_response(params: MockResponseParams) -> Callable[[RequestView], Optional[Fulfill]]:
    matcher = url_pattern(params.url_pattern, params.is_regex)
    decision = Fulfill(
        status=params.status,
        headers=dict(params.headers),
        body=params.render_body(),
    )

    def decide(view: RequestView) -> Optional[Fulfill]:
        if not matcher(view):
            return None
        return decision

    return decide


def throttle(params: ThrottleParams) -> Callable[[RequestView], Optional[Delay]]:
    matcher = url_pattern(params.url_pattern, params.is_regex)
    decision = Delay(duration_ms=params.delay_ms)

    def decide(view: RequestView) -> Optional[Delay]:
        if not matcher(view):
            return None
        return decision

    return decide


POLICY_BUILDERS = {
    PolicyKind.BLOCK_BY_PATTERN: (BlockByPatternParams, block_by_pattern),
    PolicyKind.BLOCK_BY_CATEGORY: (BlockByCategoryParams, block_by_category),
    PolicyKind.MODIFY_HEADERS: (ModifyHeadersParams, modify_headers),
    PolicyKind.MOCK_RESPONSE: (MockResponseParams, mock_response),
    PolicyKind.THROTTLE: (ThrottleParams, throttle),
}


def parse_kind(kind: Union[str, PolicyKind]) -> PolicyKind:
    """Resolve a policy kind from its name.

    Raises:
        InvalidPolicyParamsError: If the kind is unknown
    """
    try:
        return PolicyKind(kind)
    except ValueError:
        valid = ", ".join(k.value for k in PolicyKind)
        raise InvalidPolicyParamsError(f"Unknown policy kind '{kind}'. Valid kinds: {valid}", kind=str(kind))


def generate_policy_id(kind: PolicyKind) -> str:
    return f"{_ID_PREFIXES[kind]}-{uuid.uuid4().hex[:12]}"


def build_policy(
    kind: Union[str, PolicyKind],
    params: Optional[Dict[str, Any]] = None,
    policy_id: Optional[str] = None,
    priority: Optional[int] = None,
) -> Policy:
    """Build a policy of the given kind from raw parameters.

    Args:
        kind: Policy kind name
        params: Kind-specific parameters
        policy_id: Explicit id; generated from the kind when omitted
        priority: Tie-break forwarded to the driver for this policy's decisions

    Returns:
        Policy ready to be installed

    Raises:
        InvalidPolicyParamsError: If the kind or parameters are invalid
    """
    policy_kind = parse_kind(kind)
    params_model, factory = POLICY_BUILDERS[policy_kind]

    try:
        validated = params_model(**(params or {}))
    except ValidationError as e:
        raise InvalidPolicyParamsError(
            f"Invalid parameters for {policy_kind.value}: {e}",
            kind=policy_kind.value
        )

    decide = factory(validated)
    policy = Policy(
        id=policy_id or generate_policy_id(policy_kind),
        decide=decide,
        kind=policy_kind.value,
        priority=priority,
        params=validated.model_dump(mode='json'),
    )

    logger.debug(f"Built {policy_kind.value} policy {policy.id}")
    return policy
