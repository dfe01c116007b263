"""Unit tests for the policy registry."""

import threading

import pytest

from netwatch.interception.exceptions import DuplicatePolicyError, PolicyNotFoundError
from netwatch.interception.registry import Policy, PolicyRegistry


def _policy(policy_id, priority=None):
    return Policy(id=policy_id, decide=lambda view: None, priority=priority)


class TestPolicyRegistry:
    """Tests for PolicyRegistry."""

    def test_registration_order(self, registry):
        for policy_id in ["c", "a", "b"]:
            registry.install(_policy(policy_id))

        assert registry.list_ids() == ["c", "a", "b"]
        assert len(registry) == 3

    def test_priority_does_not_reorder(self, registry):
        registry.install(_policy("low", priority=1))
        registry.install(_policy("high", priority=100))

        assert registry.list_ids() == ["low", "high"]

    def test_duplicate_id_rejected(self, registry):
        registry.install(_policy("p1"))

        with pytest.raises(DuplicatePolicyError) as exc_info:
            registry.install(_policy("p1"))

        assert exc_info.value.error_code == "duplicate_id"
        assert registry.list_ids() == ["p1"]

    def test_remove(self, registry):
        registry.install(_policy("p1"))
        registry.install(_policy("p2"))

        removed = registry.remove("p1")

        assert removed.id == "p1"
        assert registry.list_ids() == ["p2"]
        assert "p1" not in registry

    def test_remove_missing(self, registry):
        with pytest.raises(PolicyNotFoundError) as exc_info:
            registry.remove("missing")

        assert exc_info.value.error_code == "not_found"

    def test_snapshot_is_stable(self, registry):
        registry.install(_policy("p1"))
        snapshot = registry.snapshot()

        registry.install(_policy("p2"))
        registry.remove("p1")

        assert [p.id for p in snapshot] == ["p1"]
        assert [p.id for p in registry.snapshot()] == ["p2"]

    def test_clear(self, registry):
        registry.install(_policy("p1"))
        registry.install(_policy("p2"))

        assert registry.clear() == 2
        assert len(registry) == 0
        assert registry.clear() == 0

    def test_get(self, registry):
        registry.install(_policy("p1"))

        assert registry.get("p1").id == "p1"
        assert registry.get("nope") is None

    def test_describe(self):
        policy = Policy(id="p1", decide=lambda view: None, kind="throttle", priority=5, params={"delay_ms": 10})

        description = policy.describe()

        assert description["id"] == "p1"
        assert description["kind"] == "throttle"
        assert description["priority"] == 5
        assert description["params"] == {"delay_ms": 10}


class TestPolicyRegistryConcurrency:
    """Concurrent mutation tests."""

    def test_concurrent_installs_are_not_lost(self):
        registry = PolicyRegistry()

        def install_range(start):
            for i in range(start, start + 50):
                registry.install(_policy(f"p{i}"))

        threads = [threading.Thread(target=install_range, args=(n * 50,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 400
        assert len(set(registry.list_ids())) == 400

    def test_concurrent_duplicate_installs_admit_one(self):
        registry = PolicyRegistry()
        errors = []

        def install():
            try:
                registry.install(_policy("same"))
            except DuplicatePolicyError as e:
                errors.append(e)

        threads = [threading.Thread(target=install) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.list_ids() == ["same"]
        assert len(errors) == 9
