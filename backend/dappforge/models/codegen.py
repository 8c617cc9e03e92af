"""
What a plugin hands back for one node, and what the merge
step produces for a whole run.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field

from dappforge.models.base import ForgeModel


FileEncoding = Literal["utf-8", "base64"]


class CodegenFile(ForgeModel):
    path: str = Field(min_length=1)
    content: str
    encoding: FileEncoding = "utf-8"
    # Routing category, see services.output_merger.CATEGORY_ROUTES
    category: str | None = None


# ---------------------------------------------------------------------------
# Patch operations
# ---------------------------------------------------------------------------


class AfterAnchor(ForgeModel):
    after: str = Field(min_length=1)


class BeforeAnchor(ForgeModel):
    before: str = Field(min_length=1)


InsertPosition = Union[Literal["start", "end"], AfterAnchor, BeforeAnchor]


class InsertOperation(ForgeModel):
    type: Literal["insert"] = "insert"
    position: InsertPosition
    content: str


class ReplaceOperation(ForgeModel):
    type: Literal["replace"] = "replace"
    search: str = Field(min_length=1)
    replace: str
    all: bool = False


PatchOperation = Annotated[
    Union[InsertOperation, ReplaceOperation],
    Field(discriminator="type"),
]


class CodegenPatch(ForgeModel):
    path: str = Field(min_length=1)
    operations: list[PatchOperation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Side-channel declarations
# ---------------------------------------------------------------------------


class EnvVarDeclaration(ForgeModel):
    name: str = Field(pattern=r"^[A-Z_][A-Z0-9_]*$")
    description: str = ""
    required: bool = True
    secret: bool = False
    default_value: str | None = None


class ScriptDeclaration(ForgeModel):
    name: str = Field(min_length=1)
    command: str
    description: str | None = None


class DocEntry(ForgeModel):
    path: str = Field(min_length=1)
    title: str
    content: str


class InterfaceDeclaration(ForgeModel):
    name: str
    type: Literal["abi", "openapi", "typescript", "graphql"]
    content: str


class CodegenOutput(ForgeModel):
    files: list[CodegenFile] = Field(default_factory=list)
    patches: list[CodegenPatch] = Field(default_factory=list)
    env_vars: list[EnvVarDeclaration] = Field(default_factory=list)
    scripts: list[ScriptDeclaration] = Field(default_factory=list)
    docs: list[DocEntry] = Field(default_factory=list)
    interfaces: list[InterfaceDeclaration] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Merged result
# ---------------------------------------------------------------------------


class GenerationManifest(ForgeModel):
    """The merged repository tree plus the flat side-channel manifest."""

    files: list[CodegenFile] = Field(default_factory=list)
    env_vars: list[EnvVarDeclaration] = Field(default_factory=list)
    scripts: list[ScriptDeclaration] = Field(default_factory=list)
    docs: list[DocEntry] = Field(default_factory=list)
    interfaces: list[InterfaceDeclaration] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    # destination path -> id of the node that first wrote it
    contributors: dict[str, str] = Field(default_factory=dict)
