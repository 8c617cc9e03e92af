"""
Output merger: routes each node's files into one repository tree, applies
patches, and collects env vars / scripts / docs / interfaces into a manifest.

Outputs must be merged in topological order: a patch only sees files that
earlier nodes already materialized. Merging one node is all-or-nothing; any
error leaves the tree exactly as it was before the call.
"""

from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Sequence

from dappforge.models.codegen import (
    AfterAnchor,
    BeforeAnchor,
    CodegenFile,
    CodegenOutput,
    DocEntry,
    EnvVarDeclaration,
    GenerationManifest,
    InsertOperation,
    InterfaceDeclaration,
    PatchOperation,
    ReplaceOperation,
    ScriptDeclaration,
)

logger = logging.getLogger(__name__)


# category -> destination prefix ("" is the repository root)
CATEGORY_ROUTES: dict[str, str] = {
    "contract-source": "contracts/",
    "frontend-hooks": "apps/web/src/hooks/",
    "frontend-components": "apps/web/src/components/",
    "frontend-lib": "apps/web/src/lib/",
    "frontend-app": "apps/web/src/app/",
    "backend-routes": "apps/api/src/routes/",
    "backend-middleware": "apps/api/src/middleware/",
    "backend-types": "apps/api/src/types/",
    "backend-lib": "apps/api/src/lib/",
    "sdk": "packages/sdk/src/",
    "docs": "docs/",
    "root": "",
}

ENV_EXAMPLE_PATH = ".env.example"
ROOT_PACKAGE_JSON = "package.json"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MergeError(Exception):
    """Base class for failures while merging plugin outputs."""


class UnknownCategoryError(MergeError):
    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unknown file category '{category}'")


class InvalidOutputPathError(MergeError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Output path '{path}' is empty or escapes the repository root")


class FileCollisionError(MergeError):
    """Two nodes wrote the same destination path via ``files``."""

    def __init__(self, path: str, first_node_id: str, second_node_id: str):
        self.path = path
        self.first_node_id = first_node_id
        self.second_node_id = second_node_id
        super().__init__(
            f"File collision at '{path}': written by node {first_node_id} and node {second_node_id}. "
            "Use a patch to modify another node's file."
        )


class PatchTargetNotFoundError(MergeError):
    def __init__(self, path: str, node_id: str):
        self.path = path
        self.node_id = node_id
        super().__init__(f"Node {node_id} patches '{path}', which no earlier node produced")


class PatchAnchorNotFoundError(MergeError):
    def __init__(self, path: str, anchor: str, node_id: str | None = None):
        self.path = path
        self.anchor = anchor
        self.node_id = node_id
        super().__init__(f"Anchor {anchor!r} not found in '{path}' (patch from node {node_id})")


# ---------------------------------------------------------------------------
# Path routing
# ---------------------------------------------------------------------------

def normalize_path(path: str) -> str:
    """POSIX-normalize a relative path; reject empty paths and root escapes."""
    cleaned = path.replace("\\", "/").strip()
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    cleaned = cleaned.lstrip("/")
    normalized = posixpath.normpath(cleaned) if cleaned else ""
    if normalized in ("", ".", "..") or normalized.startswith("../"):
        raise InvalidOutputPathError(path)
    return normalized


def route_path(path: str, category: str | None, *, plugin_id: str, owner: str) -> str:
    """
    Destination of a plugin file in the merged tree.

    ``owner`` names the contract folder for bare contract-source files.
    Uncategorized files land under ``packages/<plugin_id>/``.
    """
    relative = normalize_path(path)
    if category is None:
        return f"packages/{plugin_id}/{relative}"
    if category not in CATEGORY_ROUTES:
        raise UnknownCategoryError(category)
    if category == "contract-source" and "/" not in relative:
        return f"contracts/{owner}/{relative}"
    return CATEGORY_ROUTES[category] + relative


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------

def apply_operations(
    content: str,
    operations: Sequence[PatchOperation],
    *,
    path: str,
    node_id: str | None = None,
) -> str:
    """Apply patch operations in order, returning the new content."""
    for op in operations:
        if isinstance(op, ReplaceOperation):
            if op.all:
                content = content.replace(op.search, op.replace)
            else:
                content = content.replace(op.search, op.replace, 1)
        elif isinstance(op, InsertOperation):
            content = _insert(content, op, path=path, node_id=node_id)
        else:
            raise MergeError(f"Unsupported patch operation {type(op).__name__} for '{path}'")
    return content


def _insert(content: str, op: InsertOperation, *, path: str, node_id: str | None) -> str:
    position = op.position
    if position == "start":
        return op.content + content
    if position == "end":
        return content + op.content
    if isinstance(position, AfterAnchor):
        index = content.find(position.after)
        if index < 0:
            raise PatchAnchorNotFoundError(path, position.after, node_id)
        cut = index + len(position.after)
        return content[:cut] + op.content + content[cut:]
    if isinstance(position, BeforeAnchor):
        index = content.find(position.before)
        if index < 0:
            raise PatchAnchorNotFoundError(path, position.before, node_id)
        return content[:index] + op.content + content[index:]
    raise MergeError(f"Unsupported insert position {position!r} for '{path}'")


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------

class OutputMerger:
    def __init__(self, *, generate_docs: bool = True):
        self.generate_docs = generate_docs
        self._files: dict[str, CodegenFile] = {}
        self._contributors: dict[str, str] = {}
        self._env_vars: dict[str, EnvVarDeclaration] = {}
        self._scripts: dict[str, ScriptDeclaration] = {}
        self._script_owners: dict[str, str] = {}
        self._docs: list[DocEntry] = []
        self._interfaces: list[InterfaceDeclaration] = []
        self._warnings: list[str] = []

    @property
    def files(self) -> dict[str, str]:
        """Current tree as path -> content."""
        return {path: f.content for path, f in self._files.items()}

    def merge(self, node_id: str, plugin_id: str, output: CodegenOutput) -> None:
        """
        Merge one node's output.

        Raises a MergeError subclass on collision, bad path or failed patch;
        in that case nothing from this output is applied.
        """
        files = dict(self._files)
        contributors = dict(self._contributors)

        def stage(dest: str, file: CodegenFile) -> None:
            if dest in files:
                raise FileCollisionError(dest, contributors[dest], node_id)
            files[dest] = file.model_copy(update={"path": dest})
            contributors[dest] = node_id

        for file in output.files:
            dest = route_path(file.path, file.category, plugin_id=plugin_id, owner=node_id)
            stage(dest, file)

        if self.generate_docs:
            for doc in output.docs:
                dest = normalize_path(doc.path)
                stage(dest, CodegenFile(path=dest, content=doc.content, category="docs"))

        for patch in output.patches:
            target = normalize_path(patch.path)
            # Only files committed by earlier nodes are patchable
            if target not in self._files:
                raise PatchTargetNotFoundError(target, node_id)
            current = files[target]
            if current.encoding != "utf-8":
                raise MergeError(f"Cannot patch '{target}': {current.encoding} content")
            patched = apply_operations(current.content, patch.operations, path=target, node_id=node_id)
            files[target] = current.model_copy(update={"content": patched})

        # Commit
        self._files = files
        self._contributors = contributors

        for env_var in output.env_vars:
            self._env_vars.setdefault(env_var.name, env_var)

        for script in output.scripts:
            existing = self._scripts.get(script.name)
            if existing is None:
                self._scripts[script.name] = script
                self._script_owners[script.name] = node_id
            elif existing.command != script.command:
                message = (
                    f"Script '{script.name}' from node {node_id} conflicts with node "
                    f"{self._script_owners[script.name]}; keeping the first command"
                )
                logger.warning(message)
                self._warnings.append(message)

        self._docs.extend(output.docs)
        self._interfaces.extend(output.interfaces)

        logger.debug(
            "Merged node %s (%s): %d files, %d patches",
            node_id, plugin_id, len(output.files), len(output.patches),
        )

    def finalize(self) -> GenerationManifest:
        """Build the manifest. Does not modify the merger's own state."""
        files = dict(self._files)
        warnings = list(self._warnings)

        if self._env_vars and ENV_EXAMPLE_PATH not in files:
            files[ENV_EXAMPLE_PATH] = CodegenFile(
                path=ENV_EXAMPLE_PATH,
                content=render_env_example(list(self._env_vars.values())),
                category="root",
            )

        if self._scripts and ROOT_PACKAGE_JSON in files:
            package_file = files[ROOT_PACKAGE_JSON]
            try:
                package = json.loads(package_file.content)
            except json.JSONDecodeError:
                warnings.append("Root package.json is not valid JSON; scripts were not merged")
            else:
                scripts = dict(package.get("scripts") or {})
                for name, script in self._scripts.items():
                    if name not in scripts:
                        scripts[name] = script.command
                    elif scripts[name] != script.command:
                        warnings.append(
                            f"Script '{name}' already defined in package.json; keeping the existing command"
                        )
                package["scripts"] = scripts
                files[ROOT_PACKAGE_JSON] = package_file.model_copy(
                    update={"content": json.dumps(package, indent=2) + "\n"}
                )

        return GenerationManifest(
            files=[files[path] for path in sorted(files)],
            env_vars=list(self._env_vars.values()),
            scripts=list(self._scripts.values()),
            docs=list(self._docs),
            interfaces=list(self._interfaces),
            warnings=warnings,
            contributors=dict(self._contributors),
        )


def render_env_example(env_vars: list[EnvVarDeclaration]) -> str:
    lines: list[str] = []
    for var in env_vars:
        flags = ["required" if var.required else "optional"]
        if var.secret:
            flags.append("secret")
        lines.append(f"# {var.description} ({', '.join(flags)})")
        value = "" if var.secret or var.default_value is None else var.default_value
        lines.append(f"{var.name}={value}")
        lines.append("")
    return "\n".join(lines)
