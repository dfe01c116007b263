"""Service layer for netwatch API."""

from .interception_service import InterceptionService, LOG_NAMES

__all__ = [
    "InterceptionService",
    "LOG_NAMES",
]
