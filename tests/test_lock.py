"""Tests for the Recipe lock.

Tests cover:
- Lock naming and labels
- Lock/unlock lifecycle
- Locked-forever run-once recipes
- Concurrent lock attempts
"""

import threading

import pytest

from drecipe.errors import AlreadyLockedError, NotFoundError
from drecipe.lock import LOCK_LABEL, NAME_LABEL, Lock
from drecipe.schemas import Recipe, TaskPhase

from conftest import recipe_obj

TASK = {"name": "t", "delete": {"state": {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "x"}}}}


class TestLockForRecipe:
    """Tests for Lock.for_recipe."""

    def test_run_once_locks_forever(self, ctx):
        """enabled defaults to Once, which locks forever."""
        lock = Lock.for_recipe(ctx, Recipe.from_dict(recipe_obj("r", [TASK])))
        assert lock.lock_forever
        assert lock.name == "r-lock"
        # one task + elapsed time entry, unlock follows
        assert lock.unlock_step == 3

    def test_always_does_not_lock_forever(self, ctx):
        """enabled Always releases the lock after each run."""
        recipe = Recipe.from_dict(recipe_obj("r", [TASK], enabled={"when": "Always"}))
        assert not Lock.for_recipe(ctx, recipe).lock_forever


class TestLockLifecycle:
    """Tests for lock, unlock and is_locked."""

    def test_lock_creates_configmap(self, ctx, cluster):
        """lock() creates a labelled ConfigMap in the owner's namespace."""
        lock = Lock(ctx, "r", "ns")
        assert not lock.is_locked()
        result, _ = lock.lock()
        assert lock.is_locked()
        obj = cluster.get("v1", "ConfigMap", "r-lock", "ns")
        assert obj["metadata"]["labels"] == {LOCK_LABEL: "true", NAME_LABEL: "r"}
        assert result.step == 0
        assert result.phase is TaskPhase.PASSED
        assert result.internal
        assert result.message.startswith("Create: Lock ns r-lock")

    def test_second_lock_fails(self, ctx):
        """A held lock can't be taken again."""
        Lock(ctx, "r", "ns").lock()
        with pytest.raises(AlreadyLockedError):
            Lock(ctx, "r", "ns").lock()

    def test_unlock_deletes(self, ctx):
        """The unlock function removes the lock."""
        lock = Lock(ctx, "r", "ns", protected_task_count=2)
        _, unlock = lock.lock()
        result = unlock()
        assert not lock.is_locked()
        assert result.step == 3
        assert result.message.startswith("Delete: Lock")

    def test_unlock_missing_raises(self, ctx, cluster):
        """Graceful unlock of a vanished lock is an error."""
        lock = Lock(ctx, "r", "ns")
        _, unlock = lock.lock()
        cluster.delete("v1", "ConfigMap", "r-lock", "ns")
        with pytest.raises(NotFoundError):
            unlock()

    def test_lock_forever_keeps_lock(self, ctx):
        """A locked-forever unlock is a no-op."""
        lock = Lock(ctx, "r", "ns", lock_forever=True)
        _, unlock = lock.lock()
        result = unlock()
        assert lock.is_locked()
        assert result.message == "Will not unlock: Locked forever"

    def test_must_unlock_ignores_forever(self, ctx):
        """must_unlock deletes even a locked-forever lock."""
        lock = Lock(ctx, "r", "ns", lock_forever=True)
        lock.lock()
        lock.must_unlock()
        assert not lock.is_locked()

    def test_must_unlock_tolerates_missing(self, ctx):
        """must_unlock of a missing lock reports it."""
        result = Lock(ctx, "r", "ns").must_unlock()
        assert result.message.endswith("Lock not found")


class TestConcurrentLock:
    """Tests for mutual exclusion across concurrent callers."""

    def test_only_one_caller_wins(self, ctx):
        """Exactly one of many concurrent lock() calls succeeds."""
        wins = []
        losses = []
        barrier = threading.Barrier(8)

        def attempt():
            barrier.wait()
            try:
                Lock(ctx, "r", "ns").lock()
                wins.append(1)
            except AlreadyLockedError:
                losses.append(1)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert len(losses) == 7
