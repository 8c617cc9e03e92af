"""
Tests for the run state machine and the in-memory run store.
"""

from datetime import datetime, timedelta, timezone
import pytest

import sys
from pathlib import Path

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

from dappforge.models.run import Artifact, InvalidRunTransition, check_transition
from dappforge.services.run_store import InMemoryRunStore, RunNotFoundError


BLUEPRINT_ID = "00000000-0000-4000-8000-000000000000"
T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryRunStore(clock=clock)


# ============================================================================
# Transitions
# ============================================================================


class TestTransitions:
    @pytest.mark.parametrize(
        "current,requested",
        [
            ("pending", "running"),
            ("pending", "failed"),
            ("pending", "cancelled"),
            ("running", "completed"),
            ("running", "failed"),
            ("running", "cancelled"),
        ],
    )
    def test_forward_moves_allowed(self, current, requested):
        assert check_transition("r", current, requested) is True

    @pytest.mark.parametrize(
        "current,requested",
        [
            ("running", "pending"),
            ("pending", "completed"),
            ("completed", "running"),
            ("completed", "failed"),
            ("failed", "completed"),
            ("cancelled", "running"),
            ("running", "running"),
        ],
    )
    def test_backward_or_terminal_moves_rejected(self, current, requested):
        with pytest.raises(InvalidRunTransition):
            check_transition("r", current, requested)

    @pytest.mark.parametrize("status", ["completed", "failed", "cancelled"])
    def test_same_terminal_status_is_a_no_op(self, status):
        assert check_transition("r", status, status) is False


# ============================================================================
# Store lifecycle
# ============================================================================


class TestInMemoryRunStore:
    def test_create_starts_pending(self, store):
        run = store.create(BLUEPRINT_ID)
        assert run.status == "pending"
        assert run.blueprint_id == BLUEPRINT_ID
        assert run.started_at == T0
        assert run.completed_at is None
        assert store.get(run.id).id == run.id

    def test_happy_path(self, store, clock):
        run = store.create(BLUEPRINT_ID)
        store.start(run.id)
        assert store.get_status(run.id) == "running"

        clock.advance(seconds=5)
        done = store.complete(run.id)
        assert done.status == "completed"
        assert done.completed_at == T0 + timedelta(seconds=5)
        messages = [entry.message for entry in done.logs]
        assert messages == ["Execution started", "Execution completed successfully"]

    def test_completed_run_cannot_restart(self, store):
        run = store.create(BLUEPRINT_ID)
        store.start(run.id)
        store.complete(run.id)
        with pytest.raises(InvalidRunTransition):
            store.update_status(run.id, "running")
        assert store.get_status(run.id) == "completed"

    def test_complete_from_pending_is_rejected_without_logging(self, store):
        run = store.create(BLUEPRINT_ID)
        with pytest.raises(InvalidRunTransition):
            store.complete(run.id)
        assert store.get(run.id).logs == []

    def test_fail_records_reason_and_is_idempotent(self, store):
        run = store.create(BLUEPRINT_ID)
        store.start(run.id)
        failed = store.fail(run.id, "plugin exploded")
        assert failed.status == "failed"
        assert failed.error == "plugin exploded"
        log_count = len(failed.logs)

        again = store.fail(run.id, "second reason")
        assert again.status == "failed"
        assert again.error == "plugin exploded"
        assert len(again.logs) == log_count

    def test_fail_keeps_artifacts(self, store, clock):
        run = store.create(BLUEPRINT_ID)
        store.start(run.id)
        store.add_artifact(run.id, Artifact(id="art-1", kind="node-output", created_at=clock()))
        failed = store.fail(run.id, "boom")
        assert [a.id for a in failed.artifacts] == ["art-1"]

    def test_cancel_pending_and_repeat(self, store):
        run = store.create(BLUEPRINT_ID)
        cancelled = store.cancel(run.id)
        assert cancelled.status == "cancelled"
        assert store.is_cancelled(run.id)
        assert cancelled.completed_at is not None

        store.cancel(run.id)
        assert [e.message for e in store.get(run.id).logs] == ["Execution cancelled"]

    def test_cancel_completed_is_rejected(self, store):
        run = store.create(BLUEPRINT_ID)
        store.start(run.id)
        store.complete(run.id)
        with pytest.raises(InvalidRunTransition):
            store.cancel(run.id)

    def test_unknown_run(self, store):
        assert store.get("missing") is None
        with pytest.raises(RunNotFoundError) as exc_info:
            store.get_status("missing")
        assert str(exc_info.value) == "Run missing not found"
        with pytest.raises(RunNotFoundError):
            store.add_log("missing", "info", "hello")

    def test_get_returns_snapshot(self, store):
        run = store.create(BLUEPRINT_ID)
        snapshot = store.get(run.id)
        snapshot.status = "completed"
        snapshot.logs.append(store.add_log(run.id, "info", "real"))
        assert store.get_status(run.id) == "pending"
        assert len(store.get(run.id).logs) == 1


# ============================================================================
# Logs
# ============================================================================


class TestLogs:
    def test_timestamps_strictly_increase_under_frozen_clock(self, store):
        run = store.create(BLUEPRINT_ID)
        entries = [store.add_log(run.id, "info", f"line {i}") for i in range(5)]
        stamps = [entry.timestamp for entry in entries]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    def test_log_fields(self, store):
        run = store.create(BLUEPRINT_ID)
        entry = store.add_log(run.id, "warn", "careful", node_id="n1", metadata={"code": "X"})
        data = entry.to_json_dict()
        assert data["level"] == "warn"
        assert data["nodeId"] == "n1"
        assert data["metadata"] == {"code": "X"}


# ============================================================================
# Cleanup
# ============================================================================


class TestCleanup:
    def test_cleanup_drops_only_old_terminal_runs(self, store, clock):
        old = store.create(BLUEPRINT_ID)
        store.cancel(old.id)
        active = store.create(BLUEPRINT_ID)

        clock.advance(hours=48)
        recent = store.create(BLUEPRINT_ID)
        store.cancel(recent.id)

        removed = store.cleanup(timedelta(hours=24))
        assert removed == 1
        assert store.get(old.id) is None
        assert store.get(active.id) is not None
        assert store.get(recent.id) is not None
