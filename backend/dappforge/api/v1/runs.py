"""
Run query endpoints.

Runs are read-only from here except for cancellation. Log readers poll with
a ``since`` cursor; entries are returned strictly after it.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from dappforge.api.dependencies import get_run_store
from dappforge.models.run import InvalidRunTransition, Run
from dappforge.services.run_store import RunStore

router = APIRouter(prefix="/runs")


def _get_run_or_404(store: RunStore, run_id: str) -> Run:
    run = store.get(run_id)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotFound", "message": f"Run {run_id} not found"},
        )
    return run


@router.get("/{run_id}")
def get_run(run_id: str, store: RunStore = Depends(get_run_store)) -> dict[str, Any]:
    return _get_run_or_404(store, run_id).to_json_dict()


@router.get("/{run_id}/logs")
def get_run_logs(
    run_id: str,
    since: Optional[datetime] = Query(default=None, description="ISO 8601 timestamp cursor"),
    store: RunStore = Depends(get_run_store),
) -> dict[str, Any]:
    run = _get_run_or_404(store, run_id)
    logs = run.logs
    if since is not None:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        logs = [entry for entry in logs if entry.timestamp > since]
    return {
        "runId": run.id,
        "status": run.status,
        "logs": [entry.to_json_dict() for entry in logs],
        "hasMore": not run.is_terminal,
    }


@router.get("/{run_id}/artifacts")
def get_run_artifacts(run_id: str, store: RunStore = Depends(get_run_store)) -> dict[str, Any]:
    run = _get_run_or_404(store, run_id)
    if run.status != "completed":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "NotReady",
                "message": f"Run {run_id} has not completed (status: {run.status})",
            },
        )
    return {"runId": run.id, "artifacts": [a.to_json_dict() for a in run.artifacts]}


@router.delete("/{run_id}")
def cancel_run(run_id: str, store: RunStore = Depends(get_run_store)) -> dict[str, Any]:
    run = _get_run_or_404(store, run_id)
    invalid = HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "error": "InvalidOperation",
            "message": f"Cannot cancel run in '{run.status}' status",
        },
    )
    if run.is_terminal:
        raise invalid
    try:
        store.cancel(run_id)
    except InvalidRunTransition:
        # Finished between the read and the cancel
        raise invalid
    return {"id": run_id, "status": "cancelled", "message": "Run cancelled successfully"}
