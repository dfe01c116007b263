"""Request interception pipeline for netwatch.

This package sits between an automated browsing session and the network:
it observes every outbound request, lets independently registered policies
decide its fate (allow, abort, rewrite, or fulfill with a synthetic
response), and records an audit trail of what happened.

Main Components:
- Policy Registry: registration-ordered policies with consistent snapshots
- Pattern Matchers: URL substring/regex and resource type predicates
- Policy kinds: block-by-pattern, block-by-category, modify-headers,
  mock-response, throttle
- Resolution Engine: runs policies and applies exactly one decision
- Audit Log: request, response, aborted, modified and failure logs
- Driver: abstract automation driver and the Playwright binding
- Interception Session: enable/disable state machine per browsing context

Usage:
    from netwatch.interception import InterceptionSession, PlaywrightDriver, build_policy

    session = InterceptionSession(PlaywrightDriver(), "default")
    session.install_policy(build_policy("block-by-pattern", {"patterns": [".png"]}))
    await session.enable()
"""

__all__ = [
    # Core
    "PolicyRegistry",
    "Policy",
    "ResolutionEngine",
    "AuditLog",
    "EntryLog",
    "InterceptionSession",

    # Policies
    "PolicyKind",
    "build_policy",
    "parse_kind",

    # Driver
    "InterceptionDriver",
    "PlaywrightDriver",
    "Subscription",
    "BrowserFactory",
    "BrowserConfig",

    # Configuration
    "InterceptionConfig",
    "InterceptionConfigManager",
    "SessionSettings",
    "get_config",

    # Exceptions
    "InterceptionError",
    "PolicyError",
    "DuplicatePolicyError",
    "PolicyNotFoundError",
    "InvalidPolicyParamsError",
    "ResolutionTimeoutError",
    "RequestAlreadyResolvedError",
    "DriverUnavailableError",
    "SessionNotFoundError",
]

from .exceptions import (
    InterceptionError,
    PolicyError,
    DuplicatePolicyError,
    PolicyNotFoundError,
    InvalidPolicyParamsError,
    ResolutionTimeoutError,
    RequestAlreadyResolvedError,
    DriverUnavailableError,
    SessionNotFoundError,
)

from .registry import Policy, PolicyRegistry
from .policies import PolicyKind, build_policy, parse_kind
from .audit_log import AuditLog, EntryLog
from .engine import ResolutionEngine
from .browser_factory import BrowserFactory, BrowserConfig
from .driver import InterceptionDriver, PlaywrightDriver, Subscription
from .config import InterceptionConfig, InterceptionConfigManager, SessionSettings, get_config
from .session import InterceptionSession
