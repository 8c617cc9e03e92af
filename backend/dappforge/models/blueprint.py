"""
Blueprint models: the declarative graph a user authors on the canvas.

A Blueprint is a DAG of component nodes (contracts, auth, storage, …) joined
by typed edges. Validation and generation both treat it as read-only input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import AfterValidator, Field

from dappforge.models.base import ForgeModel


def _require_uuid(value: str) -> str:
    UUID(value)
    return value


EntityId = Annotated[str, AfterValidator(_require_uuid)]

EdgeType = Literal["dependency", "data-flow", "contract-link"]
BlueprintStatus = Literal["draft", "validated", "generating", "completed", "failed"]


class NodePosition(ForgeModel):
    x: float
    y: float


class BlueprintNode(ForgeModel):
    id: EntityId
    type: str = Field(min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)
    label: str | None = None
    position: NodePosition | None = None


class EdgeMetadata(ForgeModel):
    label: str | None = Field(default=None, max_length=50)
    animated: bool = False


class BlueprintEdge(ForgeModel):
    id: EntityId
    source: EntityId
    target: EntityId
    type: EdgeType = "dependency"
    source_handle: str | None = None
    target_handle: str | None = None
    metadata: EdgeMetadata | None = None


class ProjectConfig(ForgeModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    version: str = Field(default="0.1.0", pattern=r"^\d+\.\d+\.\d+$")
    license: str = "MIT"
    author: str | None = None


class NetworkConfig(ForgeModel):
    chain_id: int = 421614
    name: str = "Arbitrum Sepolia"
    rpc_url: str | None = None
    is_testnet: bool = True


class BlueprintConfig(ForgeModel):
    project: ProjectConfig
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    generate_docs: bool = True


class Viewport(ForgeModel):
    x: float
    y: float
    zoom: float = Field(ge=0.1, le=2)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Blueprint(ForgeModel):
    id: EntityId
    version: str = Field(default="1.0.0", pattern=r"^\d+\.\d+\.\d+$")
    nodes: list[BlueprintNode] = Field(min_length=1)
    edges: list[BlueprintEdge] = Field(default_factory=list)
    config: BlueprintConfig
    status: BlueprintStatus = "draft"
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    viewport: Viewport | None = None


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


class ValidationIssue(ForgeModel):
    path: str
    message: str
    code: str
    node_id: str | None = None


class ValidationResult(ForgeModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
