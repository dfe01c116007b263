"""Append-only audit logs for the interception pipeline.

Concurrently resolving requests append to shared logs. Each log guards its
list with a lock, so no append is lost and ``clear()`` swaps in a fresh
generation atomically: an append racing a clear lands in exactly one of the
two generations.
"""

import logging
import threading
from typing import Dict, Generic, List, TypeVar

from ..models.interception import (
    AbortedEntry,
    FailureEntry,
    LogEntry,
    ModifiedEntry,
    RequestEntry,
    ResponseEntry,
)

logger = logging.getLogger(__name__)


E = TypeVar("E", bound=LogEntry)


class EntryLog(Generic[E]):
    """A single thread-safe append-only sequence of log entries."""

    def __init__(self, name: str):
        self.name = name
        self._entries: List[E] = []
        self._lock = threading.Lock()

    def append(self, entry: E) -> None:
        with self._lock:
            self._entries.append(entry)

    def read_all(self) -> List[E]:
        """Point-in-time copy of the entries in append order."""
        with self._lock:
            return list(self._entries)

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> List[E]:
        """Reset the log, returning the generation that was cleared."""
        with self._lock:
            previous, self._entries = self._entries, []
        return previous

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        return f"EntryLog(name={self.name!r}, count={self.count()})"


class AuditLog:
    """The per-session audit trail.

    - requests: every observed request
    - responses: every observed response
    - aborted: requests terminated by a policy
    - modified: requests continued with overrides or fulfilled synthetically
    - failures: degraded outcomes (policy errors, timeouts, driver errors)
    """

    def __init__(self):
        self.requests: EntryLog[RequestEntry] = EntryLog("requests")
        self.responses: EntryLog[ResponseEntry] = EntryLog("responses")
        self.aborted: EntryLog[AbortedEntry] = EntryLog("aborted")
        self.modified: EntryLog[ModifiedEntry] = EntryLog("modified")
        self.failures: EntryLog[FailureEntry] = EntryLog("failures")

    @property
    def logs(self) -> List[EntryLog]:
        return [self.requests, self.responses, self.aborted, self.modified, self.failures]

    def clear(self) -> None:
        """Clear every log."""
        cleared = {log.name: len(log.clear()) for log in self.logs}
        logger.info(f"Audit logs cleared: {cleared}")

    def stats(self) -> Dict[str, int]:
        """Entry counts per log."""
        return {log.name: log.count() for log in self.logs}

    def __repr__(self) -> str:
        stats = self.stats()
        return (
            f"AuditLog(requests={stats['requests']}, responses={stats['responses']}, "
            f"aborted={stats['aborted']}, modified={stats['modified']}, "
            f"failures={stats['failures']})"
        )
