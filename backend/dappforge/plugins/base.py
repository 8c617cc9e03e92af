"""
Plugin contract.

A plugin is the generation capability bound to one node type. It declares
metadata, a pydantic config schema and typed ports, and turns a node plus an
execution context into a CodegenOutput. ``generate`` must depend only on
``node.config`` and ``context``: no clock, no network, no shared mutable
state.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Literal, TypeVar

from pydantic import BaseModel, Field, ValidationError

from dappforge.models.base import ForgeModel
from dappforge.models.blueprint import BlueprintConfig, BlueprintNode, ValidationIssue
from dappforge.models.codegen import (
    AfterAnchor,
    BeforeAnchor,
    CodegenFile,
    CodegenOutput,
    CodegenPatch,
    DocEntry,
    EnvVarDeclaration,
    InsertOperation,
    InterfaceDeclaration,
    ReplaceOperation,
    ScriptDeclaration,
)

if TYPE_CHECKING:
    from dappforge.services.run_store import RunStore

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=BaseModel)


class PluginMetadata(ForgeModel):
    id: str
    name: str
    version: str
    description: str = ""
    category: str = "app"
    tags: list[str] = Field(default_factory=list)


class PluginPort(ForgeModel):
    id: str
    name: str
    type: Literal["input", "output"]
    data_type: str
    required: bool = False


class PluginConfigError(Exception):
    """A node config failed to parse after validation had accepted it."""

    def __init__(self, node_id: str, node_type: str, issues: list[ValidationIssue]):
        self.node_id = node_id
        self.node_type = node_type
        self.issues = issues
        details = "; ".join(f"{i.path}: {i.message}" for i in issues)
        super().__init__(f"Invalid config for node {node_id} ({node_type}): {details}")


@dataclass
class ConfigValidation(Generic[ConfigT]):
    """Result of parsing a raw config dict: either ``config`` or ``issues``."""

    config: ConfigT | None = None
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.issues


def issues_from_validation_error(
    exc: ValidationError,
    *,
    code: str,
    path_prefix: str = "",
    node_id: str | None = None,
) -> list[ValidationIssue]:
    """One ValidationIssue per pydantic error, with a dotted path."""
    issues: list[ValidationIssue] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        if path_prefix and loc:
            path = f"{path_prefix}.{loc}"
        else:
            path = path_prefix or loc
        issues.append(ValidationIssue(path=path, message=err["msg"], code=code, node_id=node_id))
    return issues


# ---------------------------------------------------------------------------
# Execution context
# ---------------------------------------------------------------------------


class ExecutionLogger:
    """
    Logger handed to plugins. Every message goes to the Python logger and,
    when a store is attached, to the run's append-only log.
    """

    def __init__(self, run_id: str, node_id: str | None = None, store: "RunStore | None" = None):
        self.run_id = run_id
        self.node_id = node_id
        self._store = store

    def _emit(self, level: str, message: str, meta: dict[str, Any] | None) -> None:
        py_level = {"debug": logging.DEBUG, "info": logging.INFO, "warn": logging.WARNING}.get(
            level, logging.ERROR
        )
        logger.log(py_level, "[run %s node %s] %s", self.run_id, self.node_id, message)
        if self._store is not None:
            self._store.add_log(self.run_id, level, message, node_id=self.node_id, metadata=meta)

    def debug(self, message: str, meta: dict[str, Any] | None = None) -> None:
        self._emit("debug", message, meta)

    def info(self, message: str, meta: dict[str, Any] | None = None) -> None:
        self._emit("info", message, meta)

    def warn(self, message: str, meta: dict[str, Any] | None = None) -> None:
        self._emit("warn", message, meta)

    def error(self, message: str, meta: dict[str, Any] | None = None) -> None:
        self._emit("error", message, meta)


@dataclass(frozen=True)
class ExecutionContext:
    run_id: str
    blueprint_id: str
    config: BlueprintConfig
    logger: ExecutionLogger
    # Outputs of every ancestor of the node being generated, keyed by node id
    upstream_outputs: Mapping[str, CodegenOutput] = field(default_factory=dict)
    upstream_types: Mapping[str, str] = field(default_factory=dict)

    def upstream_of_type(self, node_type: str) -> list[tuple[str, CodegenOutput]]:
        return [
            (node_id, output)
            for node_id, output in self.upstream_outputs.items()
            if self.upstream_types.get(node_id) == node_type
        ]

    def upstream_interfaces(self, interface_type: str) -> list[InterfaceDeclaration]:
        return [
            iface
            for output in self.upstream_outputs.values()
            for iface in output.interfaces
            if iface.type == interface_type
        ]


# ---------------------------------------------------------------------------
# Base plugin
# ---------------------------------------------------------------------------


class BasePlugin(ABC, Generic[ConfigT]):
    metadata: ClassVar[PluginMetadata]
    config_schema: ClassVar[type[BaseModel]]
    ports: ClassVar[list[PluginPort]] = []

    @property
    def node_type(self) -> str:
        return self.metadata.id

    @abstractmethod
    async def generate(self, node: BlueprintNode, context: ExecutionContext) -> CodegenOutput:
        ...

    def get_default_config(self) -> dict[str, Any]:
        return {}

    def validate_config(self, raw: Any, node_id: str | None = None) -> ConfigValidation[ConfigT]:
        path_prefix = f"nodes.{node_id}.config" if node_id else "config"
        try:
            config = self.config_schema.model_validate(raw)
        except ValidationError as exc:
            return ConfigValidation(
                issues=issues_from_validation_error(
                    exc, code="NODE_CONFIG_INVALID", path_prefix=path_prefix, node_id=node_id
                )
            )
        return ConfigValidation(config=config)

    def parse_config(self, node: BlueprintNode) -> ConfigT:
        result = self.validate_config(node.config, node_id=node.id)
        if not result.ok:
            raise PluginConfigError(node.id, node.type, result.issues)
        return result.config

    # -- Output helpers ------------------------------------------------------

    @staticmethod
    def create_empty_output() -> CodegenOutput:
        return CodegenOutput()

    @staticmethod
    def add_file(
        output: CodegenOutput,
        path: str,
        content: str,
        category: str | None = None,
        encoding: str = "utf-8",
    ) -> None:
        output.files.append(CodegenFile(path=path, content=content, category=category, encoding=encoding))

    @staticmethod
    def add_json_file(
        output: CodegenOutput, path: str, content: Mapping[str, Any], category: str | None = None
    ) -> None:
        output.files.append(
            CodegenFile(path=path, content=json.dumps(content, indent=2) + "\n", category=category)
        )

    @staticmethod
    def _patch_for(output: CodegenOutput, path: str) -> CodegenPatch:
        for patch in output.patches:
            if patch.path == path:
                return patch
        patch = CodegenPatch(path=path)
        output.patches.append(patch)
        return patch

    @classmethod
    def insert_in_file(
        cls,
        output: CodegenOutput,
        path: str,
        position: str | Mapping[str, str],
        content: str,
    ) -> None:
        if isinstance(position, Mapping):
            if "after" in position:
                resolved: Any = AfterAnchor(after=position["after"])
            else:
                resolved = BeforeAnchor(before=position["before"])
        else:
            resolved = position
        cls._patch_for(output, path).operations.append(
            InsertOperation(position=resolved, content=content)
        )

    @classmethod
    def replace_in_file(
        cls, output: CodegenOutput, path: str, search: str, replace: str, all: bool = False
    ) -> None:
        cls._patch_for(output, path).operations.append(
            ReplaceOperation(search=search, replace=replace, all=all)
        )

    @staticmethod
    def add_env_var(
        output: CodegenOutput,
        name: str,
        description: str,
        *,
        required: bool = True,
        secret: bool = False,
        default_value: str | None = None,
    ) -> None:
        output.env_vars.append(
            EnvVarDeclaration(
                name=name,
                description=description,
                required=required,
                secret=secret,
                default_value=default_value,
            )
        )

    @staticmethod
    def add_script(output: CodegenOutput, name: str, command: str, description: str | None = None) -> None:
        output.scripts.append(ScriptDeclaration(name=name, command=command, description=description))

    @staticmethod
    def add_doc(output: CodegenOutput, path: str, title: str, content: str) -> None:
        output.docs.append(DocEntry(path=path, title=title, content=content))

    @staticmethod
    def add_interface(output: CodegenOutput, name: str, type: str, content: str) -> None:
        output.interfaces.append(InterfaceDeclaration(name=name, type=type, content=content))

    def describe(self) -> dict[str, Any]:
        """Registration surface: metadata, ports, config JSON schema, defaults."""
        return {
            "metadata": self.metadata.to_json_dict(),
            "ports": [p.to_json_dict() for p in self.ports],
            "configSchema": self.config_schema.model_json_schema(by_alias=True),
            "defaultConfig": self.get_default_config(),
        }
