"""
Blueprint validator: structural and semantic checks over a Blueprint graph.

Pipeline: Parse → Node configs → Cycles → Edge endpoints → Plausibility →
Completeness → Duplicate ids

Only the parse step short-circuits; every later check runs and issues
accumulate. Validation never raises and never mutates its input.
"""

from __future__ import annotations

from collections import Counter, defaultdict, deque
from typing import Any, Sequence

from pydantic import ValidationError

from dappforge.models.blueprint import (
    Blueprint,
    BlueprintEdge,
    BlueprintNode,
    ValidationIssue,
    ValidationResult,
)
from dappforge.models.node_registry import BACKEND_NODE_TYPES, UI_NODE_TYPES, allowed_targets
from dappforge.plugins.base import issues_from_validation_error
from dappforge.plugins.registry import PluginRegistry, default_registry


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_blueprint(payload: Any, registry: PluginRegistry | None = None) -> ValidationResult:
    """
    Validate a raw blueprint payload (dict or Blueprint).

    Returns a ValidationResult; ``valid`` is True iff there are no errors.
    """
    registry = registry or default_registry()

    # 1. Parse the base shape
    if isinstance(payload, Blueprint):
        blueprint = payload
    else:
        try:
            blueprint = Blueprint.model_validate(payload)
        except ValidationError as exc:
            return ValidationResult(
                valid=False,
                errors=issues_from_validation_error(exc, code="SCHEMA_VALIDATION"),
            )

    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    node_map = {node.id: node for node in blueprint.nodes}

    # 2. Node configs
    errors.extend(_validate_node_configs(blueprint.nodes, registry))

    # 3. Cycles
    cycle = detect_cycles(blueprint.nodes, blueprint.edges)
    if cycle:
        errors.append(ValidationIssue(
            path="edges",
            message=f"Cycle detected: {format_cycle(cycle)}",
            code="CYCLE_DETECTED",
        ))

    # 4 + 5. Edge endpoints, then plausibility for edges whose endpoints exist
    for edge in blueprint.edges:
        endpoint_errors = _validate_edge_endpoints(edge, node_map)
        if endpoint_errors:
            errors.extend(endpoint_errors)
            continue
        warnings.extend(_check_edge_plausibility(edge, node_map, registry))

    # 6. Completeness
    warnings.extend(_check_completeness(blueprint.nodes, blueprint.edges, node_map))

    # 7. Duplicate ids
    duplicates = find_duplicate_ids(blueprint.nodes)
    if duplicates:
        errors.append(ValidationIssue(
            path="nodes",
            message=f"Duplicate node IDs found: {', '.join(duplicates)}",
            code="DUPLICATE_NODE_ID",
        ))

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def detect_cycles(
    nodes: Sequence[BlueprintNode],
    edges: Sequence[BlueprintEdge],
) -> list[str] | None:
    """
    Depth-first search for a cycle.

    Returns the closed cycle path (e.g. ``[a, b, a]``) or None. The search is
    restarted from every unvisited node so disconnected subgraphs are covered.
    """
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.source].append(edge.target)

    visited: set[str] = set()
    on_stack: set[str] = set()

    for root in (node.id for node in nodes):
        if root in visited:
            continue

        path: list[str] = [root]
        frames = [(root, iter(adjacency[root]))]
        visited.add(root)
        on_stack.add(root)

        while frames:
            current, neighbors = frames[-1]
            advanced = False
            for neighbor in neighbors:
                if neighbor in on_stack:
                    start = path.index(neighbor)
                    return path[start:] + [neighbor]
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    path.append(neighbor)
                    frames.append((neighbor, iter(adjacency[neighbor])))
                    advanced = True
                    break
            if not advanced:
                frames.pop()
                on_stack.discard(current)
                path.pop()

    return None


def topological_sort(
    nodes: Sequence[BlueprintNode],
    edges: Sequence[BlueprintEdge],
) -> list[BlueprintNode] | None:
    """
    Kahn's algorithm with a FIFO queue seeded in node-array order.

    Returns the ordered nodes, or None if the graph has a cycle. Edges with
    an unknown endpoint are ignored here; validation reports them.
    """
    node_map = {node.id: node for node in nodes}
    if len(node_map) != len(nodes):
        return None

    in_degree: dict[str, int] = {node.id: 0 for node in nodes}
    adjacency: dict[str, list[str]] = defaultdict(list)

    for edge in edges:
        if edge.source in node_map and edge.target in node_map:
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

    queue: deque[str] = deque(node.id for node in nodes if in_degree[node.id] == 0)
    order: list[BlueprintNode] = []

    while queue:
        nid = queue.popleft()
        order.append(node_map[nid])
        for neighbor in adjacency[nid]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(order) != len(nodes):
        return None
    return order


def format_cycle(path: Sequence[str]) -> str:
    return " → ".join(path)


def find_duplicate_ids(nodes: Sequence[BlueprintNode]) -> list[str]:
    """Every id that appears more than once, in first-seen order."""
    counts = Counter(node.id for node in nodes)
    return [nid for nid in dict.fromkeys(node.id for node in nodes) if counts[nid] > 1]


def ancestors_of(node_id: str, edges: Sequence[BlueprintEdge]) -> set[str]:
    """All transitive predecessors of ``node_id``."""
    parents: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        parents[edge.target].append(edge.source)

    seen: set[str] = set()
    stack = list(parents[node_id])
    while stack:
        nid = stack.pop()
        if nid in seen:
            continue
        seen.add(nid)
        stack.extend(parents[nid])
    seen.discard(node_id)
    return seen


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _validate_node_configs(
    nodes: Sequence[BlueprintNode],
    registry: PluginRegistry,
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for node in nodes:
        plugin = registry.get(node.type)
        if plugin is None:
            issues.append(ValidationIssue(
                path=f"nodes.{node.id}.type",
                message=f"Unknown node type '{node.type}'",
                code="UNKNOWN_NODE_TYPE",
                node_id=node.id,
            ))
            continue
        issues.extend(plugin.validate_config(node.config, node_id=node.id).issues)
    return issues


def _validate_edge_endpoints(
    edge: BlueprintEdge,
    node_map: dict[str, BlueprintNode],
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if edge.source not in node_map:
        issues.append(ValidationIssue(
            path=f"edges.{edge.id}.source",
            message=f"Edge references unknown source node '{edge.source}'",
            code="INVALID_EDGE_SOURCE",
        ))
    if edge.target not in node_map:
        issues.append(ValidationIssue(
            path=f"edges.{edge.id}.target",
            message=f"Edge references unknown target node '{edge.target}'",
            code="INVALID_EDGE_TARGET",
        ))
    return issues


def _check_edge_plausibility(
    edge: BlueprintEdge,
    node_map: dict[str, BlueprintNode],
    registry: PluginRegistry,
) -> list[ValidationIssue]:
    warnings: list[ValidationIssue] = []
    source = node_map[edge.source]
    target = node_map[edge.target]

    allowed = allowed_targets(source.type)
    if allowed and target.type not in allowed:
        warnings.append(ValidationIssue(
            path=f"edges.{edge.id}",
            message=f"Unusual connection: {source.type} → {target.type}",
            code="UNUSUAL_CONNECTION",
        ))

    # Declared handles against the plugins' ports
    src_plugin = registry.get(source.type)
    tgt_plugin = registry.get(target.type)
    src_port = tgt_port = None

    if src_plugin and edge.source_handle:
        src_port = next(
            (p for p in src_plugin.ports if p.id == edge.source_handle and p.type == "output"), None
        )
        if src_port is None:
            warnings.append(ValidationIssue(
                path=f"edges.{edge.id}.sourceHandle",
                message=f"Node '{source.id}' ({source.type}) has no output port '{edge.source_handle}'",
                code="UNKNOWN_PORT",
                node_id=source.id,
            ))

    if tgt_plugin and edge.target_handle:
        tgt_port = next(
            (p for p in tgt_plugin.ports if p.id == edge.target_handle and p.type == "input"), None
        )
        if tgt_port is None:
            warnings.append(ValidationIssue(
                path=f"edges.{edge.id}.targetHandle",
                message=f"Node '{target.id}' ({target.type}) has no input port '{edge.target_handle}'",
                code="UNKNOWN_PORT",
                node_id=target.id,
            ))

    if src_port and tgt_port and src_port.data_type != tgt_port.data_type:
        warnings.append(ValidationIssue(
            path=f"edges.{edge.id}",
            message=(
                f"Port type mismatch: {source.id}.{src_port.id} ({src_port.data_type}) -> "
                f"{target.id}.{tgt_port.id} ({tgt_port.data_type})"
            ),
            code="PORT_TYPE_MISMATCH",
            node_id=target.id,
        ))

    return warnings


def _check_completeness(
    nodes: Sequence[BlueprintNode],
    edges: Sequence[BlueprintEdge],
    node_map: dict[str, BlueprintNode],
) -> list[ValidationIssue]:
    warnings: list[ValidationIssue] = []
    neighbors: dict[str, set[str]] = defaultdict(set)
    for edge in edges:
        if edge.source in node_map and edge.target in node_map:
            neighbors[edge.source].add(edge.target)
            neighbors[edge.target].add(edge.source)

    for node in nodes:
        if node.type not in UI_NODE_TYPES:
            continue
        connected_types = {node_map[nid].type for nid in neighbors[node.id]}
        if not connected_types & BACKEND_NODE_TYPES:
            warnings.append(ValidationIssue(
                path=f"nodes.{node.id}",
                message=(
                    f"Frontend node '{node.label or node.id}' is not connected to any "
                    "contract, agent or backend node"
                ),
                code="MISSING_WEB3_NODES",
                node_id=node.id,
            ))
    return warnings
