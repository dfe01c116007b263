"""Ordered policy registry for the interception pipeline.

Policies are consulted in registration order. The registry holds an
immutable tuple that is swapped under a lock on every mutation, so a
resolution pass working from ``snapshot()`` never sees a half-installed
or half-removed policy.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from ..models.interception import Allow, Abort, Delay, Fulfill, RequestView
from .exceptions import DuplicatePolicyError, PolicyNotFoundError

logger = logging.getLogger(__name__)


DecisionResult = Optional[Union[Allow, Abort, Fulfill, Delay]]
DecideFn = Callable[[RequestView], Union[DecisionResult, Awaitable[DecisionResult]]]


@dataclass(frozen=True)
class Policy:
    """A named unit of interception logic.

    ``priority`` never reorders local policies; it is only forwarded to the
    driver as a tie-break when this policy's decision is applied.
    """
    id: str
    decide: DecideFn
    kind: str = "custom"
    priority: Optional[int] = None
    installed_at: datetime = field(default_factory=datetime.utcnow)
    params: Optional[dict] = None

    def describe(self) -> dict:
        """Serializable summary for introspection."""
        return {
            "id": self.id,
            "kind": self.kind,
            "priority": self.priority,
            "installed_at": self.installed_at.isoformat(),
            "params": self.params or {},
        }


class PolicyRegistry:
    """Registration-ordered mapping from policy id to policy."""

    def __init__(self):
        self._lock = threading.Lock()
        self._policies: Tuple[Policy, ...] = ()

    def install(self, policy: Policy) -> None:
        """Install a policy at the end of the resolution order.

        Raises:
            DuplicatePolicyError: If a policy with the same id exists
        """
        with self._lock:
            if any(p.id == policy.id for p in self._policies):
                raise DuplicatePolicyError(policy.id)
            self._policies = self._policies + (policy,)
            total = len(self._policies)

        logger.info(f"Installed policy {policy.id} ({policy.kind}), total: {total}")

    def remove(self, policy_id: str) -> Policy:
        """Remove a policy by id.

        Raises:
            PolicyNotFoundError: If no policy has this id
        """
        with self._lock:
            remaining = tuple(p for p in self._policies if p.id != policy_id)
            if len(remaining) == len(self._policies):
                raise PolicyNotFoundError(policy_id)
            removed = next(p for p in self._policies if p.id == policy_id)
            self._policies = remaining
            total = len(remaining)

        logger.info(f"Removed policy {policy_id}, total: {total}")
        return removed

    def get(self, policy_id: str) -> Optional[Policy]:
        for policy in self._policies:
            if policy.id == policy_id:
                return policy
        return None

    def list_ids(self) -> List[str]:
        """Policy ids in resolution order."""
        return [p.id for p in self._policies]

    def snapshot(self) -> Tuple[Policy, ...]:
        """Immutable view of the installed policies."""
        return self._policies

    def clear(self) -> int:
        """Remove all policies, returning how many were removed."""
        with self._lock:
            count = len(self._policies)
            self._policies = ()
        if count:
            logger.info(f"Cleared {count} policies")
        return count

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, policy_id: str) -> bool:
        return self.get(policy_id) is not None

    def __repr__(self) -> str:
        return f"PolicyRegistry(policies={self.list_ids()})"
