"""
Generation orchestrator.

Takes a Blueprint, validates it, walks the topologically sorted nodes,
dispatches each to its plugin, and merges the outputs into one repository
tree. Progress, logs and artifacts are recorded in the injected RunStore.

Key concepts:
- Exactly one Run per submission; the run only moves forward through its
  status machine.
- Cancellation is cooperative: it is checked before each node is dispatched
  and after each merge. A plugin call already in flight completes, but its
  output is discarded.
- Parallel mode (max_concurrency > 1): a node is dispatched once all of its
  upstream nodes are merged, and outputs are merged strictly in topological
  order, so the resulting tree matches sequential execution.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import ValidationError

from dappforge.models.base import ForgeModel
from dappforge.models.blueprint import Blueprint, BlueprintNode
from dappforge.models.codegen import CodegenOutput, GenerationManifest
from dappforge.models.run import Artifact, InvalidRunTransition, Run, RunStatus
from dappforge.plugins.base import ExecutionContext, ExecutionLogger, PluginConfigError
from dappforge.plugins.registry import PluginRegistry
from dappforge.services.blueprint_validator import (
    ancestors_of,
    topological_sort,
    validate_blueprint,
)
from dappforge.services.output_merger import MergeError, OutputMerger
from dappforge.services.run_store import RunStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class GenerationResult(ForgeModel):
    run_id: str
    status: RunStatus
    success: bool
    manifest: GenerationManifest | None = None
    error: str | None = None


class PluginRuntimeError(Exception):
    """A plugin failed or was missing while generating a node."""

    def __init__(self, node_id: str, node_type: str, message: str):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(f"Node {node_id} ({node_type}) failed: {message}")


class _RunCancelled(Exception):
    pass


@dataclass
class _RunState:
    run_id: str
    blueprint: Blueprint
    order: list[BlueprintNode]
    merger: OutputMerger
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    outputs: dict[str, CodegenOutput] = field(default_factory=dict)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class GenerationOrchestrator:
    def __init__(self, store: RunStore, registry: PluginRegistry, *, max_concurrency: int = 1):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.registry = registry
        self.max_concurrency = max_concurrency

    def submit(self, blueprint: Blueprint) -> Run:
        """Create the (pending) Run for one generation request."""
        return self.store.create(blueprint.id)

    async def generate(self, blueprint: Blueprint) -> GenerationResult:
        run = self.submit(blueprint)
        return await self.execute(run.id, blueprint)

    async def execute(self, run_id: str, blueprint: Blueprint) -> GenerationResult:
        """
        Drive a submitted run to a terminal status.

        Generation errors never propagate: they are logged and turn the run
        into ``failed``.
        """
        validation = validate_blueprint(blueprint, self.registry)
        for issue in validation.warnings:
            self.store.add_log(
                run_id, "warn", f"{issue.path}: {issue.message}",
                node_id=issue.node_id, metadata={"code": issue.code},
            )
        if not validation.valid:
            for issue in validation.errors:
                self.store.add_log(
                    run_id, "error", f"{issue.path}: {issue.message}",
                    node_id=issue.node_id, metadata={"code": issue.code},
                )
            self._fail(run_id, f"Blueprint validation failed with {len(validation.errors)} error(s)")
            return self._result(run_id)

        order = topological_sort(blueprint.nodes, blueprint.edges)
        if order is None:
            self._fail(run_id, "Blueprint contains a cycle")
            return self._result(run_id)

        try:
            self.store.start(run_id)
        except InvalidRunTransition:
            # Cancelled before it started
            return self._result(run_id)

        logger.info(
            "Run %s: generating %d nodes (max_concurrency=%d)",
            run_id, len(order), self.max_concurrency,
        )
        state = _RunState(
            run_id=run_id,
            blueprint=blueprint,
            order=order,
            merger=OutputMerger(generate_docs=blueprint.config.generate_docs),
        )

        try:
            if self.max_concurrency > 1:
                await self._run_parallel(state)
            else:
                await self._run_sequential(state)
            self._check_cancelled(run_id)

            manifest = state.merger.finalize()
            self.store.add_artifact(run_id, Artifact(
                id=str(uuid.uuid4()),
                kind="file-tree",
                created_at=_utc_now(),
                manifest=manifest,
            ))
            for warning in manifest.warnings:
                self.store.add_log(run_id, "warn", warning)
            self.store.complete(run_id)
        except _RunCancelled:
            logger.info("Run %s cancelled; stopped at a node boundary", run_id)
            return self._result(run_id)
        except (PluginConfigError, PluginRuntimeError, MergeError) as exc:
            logger.warning("Run %s failed: %s", run_id, exc)
            self._fail(run_id, str(exc))
            return self._result(run_id)
        except InvalidRunTransition:
            # Cancelled between the last check and completion
            return self._result(run_id)
        except Exception as exc:
            logger.exception("Run %s failed unexpectedly", run_id)
            self._fail(run_id, f"Internal error: {type(exc).__name__}: {exc}")
            return self._result(run_id)

        return self._result(run_id, manifest)

    # -- Scheduling ----------------------------------------------------------

    async def _run_sequential(self, state: _RunState) -> None:
        for node in state.order:
            self._check_cancelled(state.run_id)
            output = await self._generate_node(state, node)
            self._check_cancelled(state.run_id)
            await self._commit(state, node, output)

    async def _run_parallel(self, state: _RunState) -> None:
        order = state.order
        position = {node.id: index for index, node in enumerate(order)}
        successors: dict[str, list[str]] = defaultdict(list)
        waiting: dict[str, int] = {node.id: 0 for node in order}
        for edge in state.blueprint.edges:
            if edge.source in position and edge.target in position:
                successors[edge.source].append(edge.target)
                waiting[edge.target] += 1

        # Ready nodes keyed by topological position
        ready: list[int] = [position[node.id] for node in order if waiting[node.id] == 0]
        heapq.heapify(ready)
        pending: dict[asyncio.Task, str] = {}  # task -> node_id
        finished: dict[str, CodegenOutput] = {}
        cursor = 0

        try:
            while cursor < len(order):
                while ready and len(pending) < self.max_concurrency:
                    self._check_cancelled(state.run_id)
                    node = order[heapq.heappop(ready)]
                    task = asyncio.create_task(self._generate_node(state, node))
                    pending[task] = node.id
                    logger.debug("Started generation of node %s", node.id)

                if not pending:
                    break

                done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)

                failures: list[tuple[int, BaseException]] = []
                for task in done:
                    node_id = pending.pop(task)
                    exc = task.exception()
                    if exc is not None:
                        failures.append((position[node_id], exc))
                    else:
                        finished[node_id] = task.result()
                if failures:
                    raise min(failures, key=lambda item: item[0])[1]

                # Merge strictly in topological order
                while cursor < len(order) and order[cursor].id in finished:
                    node = order[cursor]
                    cursor += 1
                    self._check_cancelled(state.run_id)
                    await self._commit(state, node, finished.pop(node.id))
                    for downstream in successors[node.id]:
                        waiting[downstream] -= 1
                        if waiting[downstream] == 0:
                            heapq.heappush(ready, position[downstream])
                            logger.debug("Node %s now ready (unblocked by %s)", downstream, node.id)
        except _RunCancelled:
            # In-flight plugin calls finish; their outputs are dropped.
            if pending:
                await asyncio.gather(*pending.keys(), return_exceptions=True)
            raise
        except BaseException:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending.keys(), return_exceptions=True)
            raise

    # -- Per-node steps ------------------------------------------------------

    async def _generate_node(self, state: _RunState, node: BlueprintNode) -> CodegenOutput:
        plugin = self.registry.get(node.type)
        if plugin is None:
            raise PluginRuntimeError(node.id, node.type, f"No plugin registered for node type '{node.type}'")

        plugin.parse_config(node)

        ancestors = ancestors_of(node.id, state.blueprint.edges)
        upstream = [n for n in state.order if n.id in ancestors]
        context = ExecutionContext(
            run_id=state.run_id,
            blueprint_id=state.blueprint.id,
            config=state.blueprint.config,
            logger=ExecutionLogger(state.run_id, node.id, self.store),
            upstream_outputs={n.id: state.outputs[n.id] for n in upstream},
            upstream_types={n.id: n.type for n in upstream},
        )

        self.store.add_log(
            state.run_id, "info", f"Generating {node.label or node.type}",
            node_id=node.id, metadata={"pluginId": plugin.node_type},
        )
        try:
            result = await plugin.generate(node, context)
        except Exception as exc:
            logger.exception("Plugin %s failed on node %s", node.type, node.id)
            raise PluginRuntimeError(node.id, node.type, f"{type(exc).__name__}: {exc}") from exc

        try:
            return CodegenOutput.model_validate(result)
        except ValidationError as exc:
            logger.error("Plugin %s returned an invalid output for node %s: %s", node.type, node.id, exc)
            raise PluginRuntimeError(
                node.id, node.type, f"Plugin returned an invalid output ({type(result).__name__})"
            ) from exc

    async def _commit(self, state: _RunState, node: BlueprintNode, output: CodegenOutput) -> None:
        self.store.add_artifact(state.run_id, Artifact(
            id=str(uuid.uuid4()),
            kind="node-output",
            created_at=_utc_now(),
            node_id=node.id,
            plugin_id=node.type,
            output=output,
        ))
        async with state.lock:
            state.merger.merge(node.id, node.type, output)
        state.outputs[node.id] = output
        self.store.add_log(
            state.run_id, "info", f"Merged output of {node.label or node.type}",
            node_id=node.id,
            metadata={"files": len(output.files), "patches": len(output.patches)},
        )

    # -- Helpers -------------------------------------------------------------

    def _check_cancelled(self, run_id: str) -> None:
        if self.store.is_cancelled(run_id):
            raise _RunCancelled()

    def _fail(self, run_id: str, reason: str) -> None:
        try:
            self.store.fail(run_id, reason)
        except InvalidRunTransition:
            logger.info("Run %s already finished; not marking failed (%s)", run_id, reason)

    def _result(self, run_id: str, manifest: GenerationManifest | None = None) -> GenerationResult:
        run = self.store.get(run_id)
        return GenerationResult(
            run_id=run_id,
            status=run.status,
            success=run.status == "completed",
            manifest=manifest if run.status == "completed" else None,
            error=run.error,
        )
