"""Node lifecycle: creation, placeholder materialization and removal."""

from __future__ import annotations

import sys
import uuid
from collections.abc import Iterable
from typing import Any

from promptsandbox.domain.errors import GraphValidationError, ValidationReason
from promptsandbox.domain.models import NodeRemoveChange, NodeType, Position
from promptsandbox.registry import NodeTypeRegistry, get_global_registry
from promptsandbox.store.graph_store import GraphStore, GraphTransaction
from promptsandbox.store.propagation import propagate_edge, propagate_from
from promptsandbox.store.results import MutationResult


def _next_name(tx: GraphTransaction, label: str) -> str:
    taken = {node.data.name for node in tx.nodes}
    index = 1
    while f"{label} {index}" in taken:
        index += 1
    return f"{label} {index}"


def on_add(
    store: GraphStore,
    node_type: NodeType | str,
    position: Position,
    parent_node: str | None = None,
    *,
    registry: NodeTypeRegistry | None = None,
) -> MutationResult:
    """Create a node of ``node_type`` at ``position``.

    The node gets a fresh id, the registry's initial data and a name of the
    form ``"<Label> <n>"``. It becomes the selected node.
    """
    registry = registry or get_global_registry()
    if not registry.has_node_type(node_type):
        error = GraphValidationError(ValidationReason.INVALID_TYPE, f"Unknown node type: {node_type}")
        return MutationResult(error=error)

    node_type = NodeType(node_type)
    node_id = str(uuid.uuid4())
    try:
        with store.transaction() as tx:
            if parent_node is not None and not tx.has_node(parent_node):
                raise GraphValidationError(
                    ValidationReason.UNKNOWN_NODE, f"Parent node not found: {parent_node}"
                )
            node = registry.create_node(
                node_type,
                node_id,
                _next_name(tx, registry.label(node_type)),
                position,
                parent_node,
            )
            tx.add_node(node)
            tx.selected_node_id = node_id
    except GraphValidationError as exc:
        return MutationResult(error=exc)

    sys.stderr.write(f"[NODES] Added {node_type.value} node {node_id}\n")
    sys.stderr.flush()
    return MutationResult(node_id=node_id)


def on_placeholder_add(
    store: GraphStore,
    placeholder_id: str,
    node_type: NodeType | str,
    *,
    registry: NodeTypeRegistry | None = None,
) -> MutationResult:
    """Turn a placeholder into a concrete node in place.

    The id, position, parent and every attached edge are kept. Inbound edges
    re-seed the new node's input slots and outbound edges receive its
    initial output.
    """
    registry = registry or get_global_registry()
    try:
        if not registry.has_node_type(node_type) or NodeType(node_type) is NodeType.PLACEHOLDER:
            raise GraphValidationError(
                ValidationReason.INVALID_TYPE, f"Cannot materialize a placeholder as {node_type}"
            )
        node_type = NodeType(node_type)

        with store.transaction() as tx:
            placeholder = tx.get_node(placeholder_id)
            if placeholder is None:
                raise GraphValidationError(
                    ValidationReason.UNKNOWN_NODE, f"Placeholder not found: {placeholder_id}"
                )
            if NodeType(placeholder.type) is not NodeType.PLACEHOLDER:
                raise GraphValidationError(
                    ValidationReason.NOT_PLACEHOLDER,
                    f"Node {placeholder_id} is a {placeholder.type} node, not a placeholder",
                )

            node = registry.create_node(
                node_type,
                placeholder.id,
                _next_name(tx, registry.label(node_type)),
                placeholder.position,
                placeholder.parent_node,
            )
            tx.replace_node(node)
            for edge in tx.edges_to(placeholder_id):
                propagate_edge(tx, edge)
            propagate_from(tx, placeholder_id)
    except GraphValidationError as exc:
        sys.stderr.write(f"[NODES] on_placeholder_add ignored: {exc}\n")
        sys.stderr.flush()
        return MutationResult(error=exc, node_id=placeholder_id)

    sys.stderr.write(f"[NODES] Materialized {placeholder_id} as {node_type.value}\n")
    sys.stderr.flush()
    return MutationResult(node_id=placeholder_id)


def remove_node_in(tx: GraphTransaction, node_id: str) -> list[str]:
    """Remove a node, every edge touching it and the slots those edges fed.

    Returns:
        Ids of the removed edges.
    """
    touching = [e.id for e in tx.edges if node_id in (e.source, e.target)]
    tx.remove_node(node_id)
    return touching


def on_nodes_change(store: GraphStore, changes: Iterable[Any]) -> MutationResult:
    """Apply node deltas from the rendering layer.

    Removals cascade to the node's edges and to stale input references in its
    neighbours; the selection is cleared if the selected node goes away.
    Added nodes keep only the input slots an edge feeds. The batch commits
    as a whole.
    """
    changes = list(changes)
    removed_edges: list[str] = []
    try:
        with store.transaction() as tx:
            for change in changes:
                if isinstance(change, NodeRemoveChange):
                    if tx.has_node(change.id):
                        removed_edges.extend(remove_node_in(tx, change.id))
                    continue
                tx.apply_node_change(change)
            tx.reconcile()
    except GraphValidationError as exc:
        sys.stderr.write(f"[NODES] node batch rejected: {exc}\n")
        sys.stderr.flush()
        return MutationResult(error=exc)

    return MutationResult(edge_ids=tuple(removed_edges))


def remove_nodes(store: GraphStore, node_ids: Iterable[str]) -> MutationResult:
    return on_nodes_change(store, [NodeRemoveChange(id=node_id) for node_id in node_ids])
