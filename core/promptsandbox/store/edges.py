"""Edge mutations: connect, disconnect and cascading input cleanup.

Invariants kept here:
- each (target, target_handle) slot has at most one inbound edge;
- the edge set stays acyclic;
- removing an edge also removes the input slot it was feeding.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import Any

from promptsandbox.domain.errors import GraphValidationError, ValidationReason
from promptsandbox.domain.models import Connection, Edge, EdgeAddChange, EdgeRemoveChange
from promptsandbox.store.graph_store import GraphStore, GraphTransaction
from promptsandbox.store.propagation import propagate_edge, unbind_input
from promptsandbox.store.results import MutationResult


def would_create_cycle(edges: Iterable[Edge], source: str, target: str) -> bool:
    """Return True if adding ``source -> target`` closes a cycle.

    That is the case exactly when ``source`` is already reachable from
    ``target``.
    """
    successors: dict[str, set[str]] = {}
    for edge in edges:
        successors.setdefault(edge.source, set()).add(edge.target)

    stack = [target]
    seen: set[str] = set()
    while stack:
        current = stack.pop()
        if current == source:
            return True
        if current in seen:
            continue
        seen.add(current)
        stack.extend(successors.get(current, ()))
    return False


def _connect_edge(tx: GraphTransaction, edge: Edge) -> list[str]:
    """Validate and record ``edge`` inside ``tx``; return replaced edge ids."""
    if edge.source == edge.target:
        raise GraphValidationError(
            ValidationReason.SELF_LOOP, f"Cannot connect node {edge.source} to itself"
        )
    for endpoint in (edge.source, edge.target):
        if not tx.has_node(endpoint):
            raise GraphValidationError(ValidationReason.UNKNOWN_NODE, f"Node not found: {endpoint}")

    remaining = [e for e in tx.edges if e.id != edge.id]
    if would_create_cycle(remaining, edge.source, edge.target):
        raise GraphValidationError(
            ValidationReason.CYCLE,
            f"Connecting {edge.source} -> {edge.target} would create a cycle",
        )

    # an edge reusing this id, or one already feeding the same slot
    replaced = [
        e
        for e in tx.edges
        if e != edge
        and (e.id == edge.id or (e.target == edge.target and e.target_handle == edge.target_handle))
    ]
    if replaced:
        tx.remove_edges(e.id for e in replaced)
        for old in replaced:
            unbind_input(tx, old)

    tx.add_edge(edge)
    propagate_edge(tx, edge)
    return [e.id for e in replaced]


def connect(store: GraphStore, connection: Connection) -> MutationResult:
    """Connect two nodes and seed the new input slot with the source value.

    An edge already ending at the same (target, handle) is replaced. A
    connection that would create a cycle, loops a node onto itself or names a
    missing node is rejected and the graph is left unchanged.
    """
    edge = connection.to_edge()
    try:
        with store.transaction() as tx:
            replaced = _connect_edge(tx, edge)
    except GraphValidationError as exc:
        sys.stderr.write(f"[EDGES] connect rejected ({exc.reason.value}): {exc}\n")
        sys.stderr.flush()
        return MutationResult(error=exc, node_id=edge.target)

    sys.stderr.write(f"[EDGES] Connected {edge.source}.{edge.source_handle} -> {edge.target}.{edge.target_handle}\n")
    if replaced:
        sys.stderr.write(f"[EDGES] Replaced {replaced}\n")
    sys.stderr.flush()
    return MutationResult(node_id=edge.target, edge_ids=(edge.id,))


def remove_edges_in(tx: GraphTransaction, edges: Iterable[Edge]) -> list[Edge]:
    """Remove ``edges`` inside ``tx`` and strip the input slots they fed."""
    edges = list(edges)
    removed = tx.remove_edges(e.id for e in edges)
    for edge in removed:
        unbind_input(tx, edge)
    return removed


def on_edges_delete(store: GraphStore, edges: Iterable[Edge]) -> MutationResult:
    """Delete a batch of edges and clear the input slots they were feeding.

    Edges that are already gone are ignored.
    """
    edges = list(edges)
    with store.transaction() as tx:
        removed = remove_edges_in(tx, edges)

    if removed:
        sys.stderr.write(f"[EDGES] Deleted {[e.id for e in removed]}\n")
        sys.stderr.flush()
    return MutationResult(edge_ids=tuple(e.id for e in removed))


def delete_edges_from_handle(store: GraphStore, source_handle: str) -> MutationResult:
    """Remove every edge leaving ``source_handle`` (e.g. on a node type change)."""
    with store.transaction() as tx:
        removed = remove_edges_in(
            tx, [e for e in tx.edges if e.source_handle == source_handle]
        )

    sys.stderr.write(f"[EDGES] Retired handle {source_handle}: {len(removed)} edge(s)\n")
    sys.stderr.flush()
    return MutationResult(edge_ids=tuple(e.id for e in removed))


def on_edges_change(store: GraphStore, changes: Iterable[Any]) -> MutationResult:
    """Apply a batch of edge deltas from the rendering layer.

    Added edges go through the same checks as ``connect``; removed edges
    clear the slots they fed. The batch is all-or-nothing: one rejected
    addition rejects the whole batch.
    """
    changes = list(changes)
    touched: list[str] = []
    try:
        with store.transaction() as tx:
            for change in changes:
                if isinstance(change, EdgeAddChange):
                    _connect_edge(tx, change.item)
                    touched.append(change.item.id)
                elif isinstance(change, EdgeRemoveChange):
                    removed = remove_edges_in(tx, [e for e in tx.edges if e.id == change.id])
                    touched.extend(e.id for e in removed)
                else:
                    raise TypeError(f"Unsupported edge change: {type(change).__name__}")
    except GraphValidationError as exc:
        sys.stderr.write(f"[EDGES] edge batch rejected: {exc}\n")
        sys.stderr.flush()
        return MutationResult(error=exc)

    return MutationResult(edge_ids=tuple(touched))
