"""Interception data models package."""

from .interception import (
    ResourceType,
    SessionState,
    FailureKind,
    RequestView,
    ResponseView,
    Allow,
    Abort,
    Fulfill,
    Delay,
    Decision,
    TerminalDecision,
    LogEntry,
    RequestEntry,
    ResponseEntry,
    AbortedEntry,
    ModifiedEntry,
    FailureEntry,
    Resolution,
)

__all__ = [
    # Enums
    'ResourceType',
    'SessionState',
    'FailureKind',

    # Views
    'RequestView',
    'ResponseView',

    # Decisions
    'Allow',
    'Abort',
    'Fulfill',
    'Delay',
    'Decision',
    'TerminalDecision',

    # Log entries
    'LogEntry',
    'RequestEntry',
    'ResponseEntry',
    'AbortedEntry',
    'ModifiedEntry',
    'FailureEntry',
    'Resolution',
]
