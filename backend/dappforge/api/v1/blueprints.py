"""
Blueprint endpoints: validation, generation (background or inline) and
JSON import/export.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dappforge.api.dependencies import get_orchestrator, get_plugin_registry, get_run_store
from dappforge.models.blueprint import Blueprint, ValidationResult
from dappforge.plugins.registry import PluginRegistry
from dappforge.services.blueprint_io import BlueprintImportError, export_blueprint, import_blueprint
from dappforge.services.blueprint_validator import validate_blueprint
from dappforge.services.orchestrator import GenerationOrchestrator
from dappforge.services.run_store import RunStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blueprints")


class BlueprintRequest(BaseModel):
    """Raw blueprint payload; shape errors are reported by validation."""
    blueprint: Dict[str, Any]


def _validated_or_422(payload: Dict[str, Any], registry: PluginRegistry) -> Blueprint:
    result = validate_blueprint(payload, registry)
    if not result.valid:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "ValidationFailed",
                "message": f"Blueprint has {len(result.errors)} validation error(s)",
                **_issues(result),
            },
        )
    return Blueprint.model_validate(payload)


def _issues(result: ValidationResult) -> Dict[str, Any]:
    data = result.to_json_dict()
    return {"errors": data["errors"], "warnings": data["warnings"]}


@router.post("/validate")
def validate(
    request: BlueprintRequest,
    registry: PluginRegistry = Depends(get_plugin_registry),
):
    result = validate_blueprint(request.blueprint, registry)
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.valid else status.HTTP_400_BAD_REQUEST,
        content=result.to_json_dict(),
    )


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
def generate(
    request: BlueprintRequest,
    background_tasks: BackgroundTasks,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    blueprint = _validated_or_422(request.blueprint, orchestrator.registry)
    run = orchestrator.submit(blueprint)
    background_tasks.add_task(orchestrator.execute, run.id, blueprint)
    logger.info("Queued run %s for blueprint %s", run.id, blueprint.id)
    return {"runId": run.id, "status": run.status}


@router.post("/generate/sync")
async def generate_sync(
    request: BlueprintRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    store: RunStore = Depends(get_run_store),
):
    blueprint = _validated_or_422(request.blueprint, orchestrator.registry)
    result = await orchestrator.generate(blueprint)
    run = store.get(result.run_id)
    return {
        "runId": result.run_id,
        "status": result.status,
        "result": result.to_json_dict(),
        "logs": [entry.to_json_dict() for entry in run.logs] if run else [],
    }


@router.post("/export")
def export(request: BlueprintRequest):
    try:
        blueprint = Blueprint.model_validate(request.blueprint)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "InvalidBlueprint", "message": str(e)},
        )
    return Response(content=export_blueprint(blueprint), media_type="application/json")


@router.post("/import")
async def import_(
    request: Request,
    registry: PluginRegistry = Depends(get_plugin_registry),
):
    body = await request.body()
    try:
        blueprint = import_blueprint(body)
    except BlueprintImportError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "InvalidBlueprint",
                "message": str(e),
                "issues": [issue.to_json_dict() for issue in e.issues],
            },
        )
    return {
        "blueprint": blueprint.to_json_dict(),
        "validation": validate_blueprint(blueprint, registry).to_json_dict(),
    }
