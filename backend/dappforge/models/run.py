"""
Run models: one generation request, tracked from submission to a terminal
status.

Status only ever moves forward:

    pending -> running -> completed | failed | cancelled
    pending -> failed | cancelled

Once terminal a run is frozen; re-entering the same terminal status is
tolerated as a no-op, so calling ``fail`` twice is harmless.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from dappforge.models.base import ForgeModel
from dappforge.models.codegen import CodegenOutput, GenerationManifest


RunStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
LogLevel = Literal["debug", "info", "warn", "error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "failed", "cancelled"}),
    "running": frozenset({"completed", "failed", "cancelled"}),
    "completed": frozenset(),
    "failed": frozenset(),
    "cancelled": frozenset(),
}


class InvalidRunTransition(ValueError):
    """Raised when a run is asked to move backwards or out of a terminal state."""

    def __init__(self, run_id: str, current: str, requested: str):
        self.run_id = run_id
        self.current = current
        self.requested = requested
        super().__init__(f"Run {run_id} cannot move from '{current}' to '{requested}'")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(run_id: str, current: str, requested: str) -> bool:
    """
    Return True if the transition should be applied, False for a tolerated
    no-op (same terminal status again). Raise InvalidRunTransition otherwise.
    """
    if current == requested and is_terminal(current):
        return False
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidRunTransition(run_id, current, requested)
    return True


class LogEntry(ForgeModel):
    timestamp: datetime
    level: LogLevel
    message: str
    node_id: str | None = None
    metadata: dict[str, Any] | None = None


class Artifact(ForgeModel):
    id: str
    kind: Literal["node-output", "file-tree"]
    created_at: datetime
    node_id: str | None = None
    plugin_id: str | None = None
    output: CodegenOutput | None = None
    manifest: GenerationManifest | None = None


class Run(ForgeModel):
    id: str
    blueprint_id: str
    status: RunStatus = "pending"
    logs: list[LogEntry] = Field(default_factory=list)
    artifacts: list[Artifact] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)
