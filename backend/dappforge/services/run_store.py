"""
Run store: persistence contract for generation runs plus an in-memory
implementation.

The orchestrator and the HTTP layer receive a RunStore instance explicitly;
any backend satisfying the abstract methods can be swapped in.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from dappforge.models.run import (
    Artifact,
    LogEntry,
    LogLevel,
    Run,
    RunStatus,
    check_transition,
    is_terminal,
)

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


class RunNotFoundError(KeyError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(run_id)

    def __str__(self) -> str:
        return f"Run {self.run_id} not found"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RunStore(ABC):
    """Store contract. ``get`` returns snapshot copies."""

    @abstractmethod
    def create(self, blueprint_id: str) -> Run:
        ...

    @abstractmethod
    def get(self, run_id: str) -> Run | None:
        ...

    @abstractmethod
    def get_status(self, run_id: str) -> RunStatus:
        """Current status; raises RunNotFoundError for unknown ids."""

    @abstractmethod
    def update_status(self, run_id: str, status: RunStatus) -> Run:
        """Move a run to ``status``; raises InvalidRunTransition if not allowed."""

    @abstractmethod
    def set_error(self, run_id: str, error: str) -> None:
        ...

    @abstractmethod
    def add_log(
        self,
        run_id: str,
        level: LogLevel,
        message: str,
        node_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry:
        ...

    @abstractmethod
    def add_artifact(self, run_id: str, artifact: Artifact) -> None:
        ...

    @abstractmethod
    def cleanup(self, older_than: timedelta) -> int:
        """Drop terminal runs finished more than ``older_than`` ago."""

    # -- Lifecycle helpers ---------------------------------------------------

    def start(self, run_id: str) -> Run:
        run = self.update_status(run_id, "running")
        self.add_log(run_id, "info", "Execution started")
        return run

    def complete(self, run_id: str) -> Run:
        check_transition(run_id, self.get_status(run_id), "completed")
        self.add_log(run_id, "info", "Execution completed successfully")
        return self.update_status(run_id, "completed")

    def fail(self, run_id: str, reason: str) -> Run:
        """Fail the run, keeping every log and artifact recorded so far."""
        if not check_transition(run_id, self.get_status(run_id), "failed"):
            return self.get(run_id)
        self.add_log(run_id, "error", f"Execution failed: {reason}")
        self.set_error(run_id, reason)
        return self.update_status(run_id, "failed")

    def cancel(self, run_id: str) -> Run:
        if not check_transition(run_id, self.get_status(run_id), "cancelled"):
            return self.get(run_id)
        self.add_log(run_id, "warn", "Execution cancelled")
        return self.update_status(run_id, "cancelled")

    def is_cancelled(self, run_id: str) -> bool:
        return self.get_status(run_id) == "cancelled"


class InMemoryRunStore(RunStore):
    """Thread-safe dict-backed store. Suitable for a single process."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self._runs: dict[str, Run] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def _require(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def create(self, blueprint_id: str) -> Run:
        run = Run(id=str(uuid.uuid4()), blueprint_id=blueprint_id, started_at=self._clock())
        with self._lock:
            self._runs[run.id] = run
        logger.info("Created run %s for blueprint %s", run.id, blueprint_id)
        return run.model_copy(deep=True)

    def get(self, run_id: str) -> Run | None:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    def get_status(self, run_id: str) -> RunStatus:
        with self._lock:
            return self._require(run_id).status

    def update_status(self, run_id: str, status: RunStatus) -> Run:
        with self._lock:
            run = self._require(run_id)
            if check_transition(run_id, run.status, status):
                logger.debug("Run %s: %s -> %s", run_id, run.status, status)
                run.status = status
                if is_terminal(status):
                    run.completed_at = self._clock()
            return run.model_copy(deep=True)

    def set_error(self, run_id: str, error: str) -> None:
        with self._lock:
            self._require(run_id).error = error

    def add_log(
        self,
        run_id: str,
        level: LogLevel,
        message: str,
        node_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry:
        with self._lock:
            run = self._require(run_id)
            timestamp = self._clock()
            # Keep timestamps strictly increasing so a `since` cursor never skips.
            if run.logs and timestamp <= run.logs[-1].timestamp:
                timestamp = run.logs[-1].timestamp + _TICK
            entry = LogEntry(
                timestamp=timestamp,
                level=level,
                message=message,
                node_id=node_id,
                metadata=dict(metadata) if metadata else None,
            )
            run.logs.append(entry)
            return entry

    def add_artifact(self, run_id: str, artifact: Artifact) -> None:
        with self._lock:
            self._require(run_id).artifacts.append(artifact)

    def cleanup(self, older_than: timedelta) -> int:
        cutoff = self._clock() - older_than
        with self._lock:
            stale = [
                run_id
                for run_id, run in self._runs.items()
                if run.is_terminal and run.completed_at is not None and run.completed_at < cutoff
            ]
            for run_id in stale:
                del self._runs[run_id]
        if stale:
            logger.info("Cleaned up %d finished runs", len(stale))
        return len(stale)

    # Lifecycle helpers hold the lock across their check-then-act steps.

    def start(self, run_id: str) -> Run:
        with self._lock:
            return super().start(run_id)

    def complete(self, run_id: str) -> Run:
        with self._lock:
            return super().complete(run_id)

    def fail(self, run_id: str, reason: str) -> Run:
        with self._lock:
            return super().fail(run_id, reason)

    def cancel(self, run_id: str) -> Run:
        with self._lock:
            return super().cancel(run_id)
