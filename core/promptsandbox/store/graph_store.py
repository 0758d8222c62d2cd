"""Graph store: the single owner of the node and edge collections.

Every mutation goes through a ``GraphTransaction``. A transaction works on a
private copy of the collections and commits a new ``GraphState`` only if its
block exits cleanly, so a batch is either fully applied or not at all.
Mutations are serialized by one re-entrant lock.

Single-hop propagation is an explicit step performed by
``promptsandbox.store.propagation``. The store itself only keeps edges and
input slots consistent: removals cascade, and bulk replacements are
reconciled so that every slot has a backing edge.
"""

from __future__ import annotations

import sys
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from promptsandbox.domain.errors import GraphValidationError, ValidationReason
from promptsandbox.domain.models import (
    Edge,
    GraphState,
    NodeAddChange,
    NodeInputs,
    NodePositionChange,
    NodeRemoveChange,
    NodeSelectChange,
    node_output,
)


class GraphTransaction:
    """Mutable working copy of a ``GraphState``.

    Node and edge values are immutable, so shallow copies of the collections
    are enough to isolate the transaction from the committed state.
    """

    def __init__(self, state: GraphState) -> None:
        self._nodes: dict[str, Any] = {node.id: node for node in state.nodes}
        self._edges: list[Edge] = list(state.edges)
        self.selected_node_id: str | None = state.selected_node_id

    # -- reads -------------------------------------------------------------

    @property
    def nodes(self) -> list[Any]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> Any | None:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def edges_from(self, node_id: str) -> list[Edge]:
        return [edge for edge in self._edges if edge.source == node_id]

    def edges_to(self, node_id: str) -> list[Edge]:
        return [edge for edge in self._edges if edge.target == node_id]

    # -- writes ------------------------------------------------------------

    def add_node(self, node: Any) -> None:
        if node.id in self._nodes:
            raise GraphValidationError(
                ValidationReason.DUPLICATE_NODE, f"Node already exists: {node.id}"
            )
        self._nodes[node.id] = node

    def replace_node(self, node: Any) -> None:
        """Substitute the stored node with the same id (order is kept)."""
        if node.id not in self._nodes:
            raise GraphValidationError(
                ValidationReason.UNKNOWN_NODE, f"Node not found: {node.id}"
            )
        self._nodes[node.id] = node

    def remove_node(self, node_id: str) -> Any | None:
        """Remove a node, every edge touching it and the slots it was feeding."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return None

        self._edges = [e for e in self._edges if node_id not in (e.source, e.target)]
        for other in list(self._nodes.values()):
            inputs = other.data.inputs.remove_source(node_id)
            if inputs is not other.data.inputs:
                self._set_inputs(other, inputs)
        if self.selected_node_id == node_id:
            self.selected_node_id = None
        return node

    def add_edge(self, edge: Edge) -> None:
        self._edges = [e for e in self._edges if e.id != edge.id]
        self._edges.append(edge)

    def remove_edges(self, edge_ids: Iterable[str]) -> list[Edge]:
        ids = set(edge_ids)
        removed = [e for e in self._edges if e.id in ids]
        if removed:
            self._edges = [e for e in self._edges if e.id not in ids]
        return removed

    def set_nodes(self, nodes: Iterable[Any]) -> None:
        self._nodes = {}
        for node in nodes:
            self.add_node(node)
        if self.selected_node_id not in self._nodes:
            self.selected_node_id = None

    def set_edges(self, edges: Iterable[Edge]) -> None:
        self._edges = list(edges)

    def reconcile(self, *, seed: bool = False) -> None:
        """Restore the edge/slot invariants after a bulk replacement.

        Drops edges with a missing endpoint, keeps the last edge per
        (target, target_handle) and removes input slots no edge feeds. With
        ``seed``, every edge whose slot is missing gets the source's output.
        """
        by_slot: dict[tuple[str, str], Edge] = {}
        for edge in self._edges:
            if edge.source in self._nodes and edge.target in self._nodes:
                by_slot.pop((edge.target, edge.target_handle), None)
                by_slot[(edge.target, edge.target_handle)] = edge
        self._edges = list(by_slot.values())

        fed = {(e.target, e.target_handle, e.source) for e in self._edges}
        for node in list(self._nodes.values()):
            entries = node.data.inputs.entries
            kept = tuple(en for en in entries if (node.id, en.handle, en.source_id) in fed)
            if len(kept) != len(entries):
                self._set_inputs(node, NodeInputs(entries=kept))

        if not seed:
            return
        for edge in self._edges:
            target = self._nodes[edge.target]
            if target.data.inputs.get(edge.target_handle) is None:
                value = node_output(self._nodes[edge.source])
                self._set_inputs(target, target.data.inputs.set_value(edge.target_handle, edge.source, value))

    def _set_inputs(self, node: Any, inputs: NodeInputs) -> None:
        data = node.data.model_copy(update={"inputs": inputs})
        self._nodes[node.id] = node.model_copy(update={"data": data})

    def apply_node_change(self, change: Any) -> None:
        """Apply one node delta. Unknown ids in non-add deltas are ignored.

        Removals cascade to edges and slots. Added nodes may carry input
        slots no edge feeds; ``reconcile`` drops them.
        """
        if isinstance(change, NodeAddChange):
            self.add_node(change.item)
        elif isinstance(change, NodeRemoveChange):
            self.remove_node(change.id)
        elif isinstance(change, NodePositionChange):
            node = self.get_node(change.id)
            if node is not None and change.position is not None:
                self.replace_node(node.model_copy(update={"position": change.position}))
        elif isinstance(change, NodeSelectChange):
            if not self.has_node(change.id):
                return
            if change.selected:
                self.selected_node_id = change.id
            elif self.selected_node_id == change.id:
                self.selected_node_id = None
        else:
            raise TypeError(f"Unsupported node change: {type(change).__name__}")

    def snapshot(self) -> GraphState:
        return GraphState(
            nodes=tuple(self._nodes.values()),
            edges=tuple(self._edges),
            selected_node_id=self.selected_node_id,
        )


class GraphStore:
    """Owns the canonical ``GraphState`` and serializes its mutations."""

    def __init__(self, state: GraphState | None = None) -> None:
        self._state = state or GraphState()
        self._lock = threading.RLock()
        self._version = 0

    @property
    def state(self) -> GraphState:
        return self._state

    @property
    def version(self) -> int:
        """Incremented on every committed transaction."""
        return self._version

    @property
    def nodes(self) -> tuple[Any, ...]:
        return self._state.nodes

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self._state.edges

    @property
    def selected_node_id(self) -> str | None:
        return self._state.selected_node_id

    def get_node(self, node_id: str) -> Any | None:
        return self._state.get_node(node_id)

    def get_nodes(self, node_ids: Iterable[str]) -> list[Any]:
        """Return the nodes matching ``node_ids`` in store order."""
        wanted = set(node_ids)
        if not wanted:
            return []
        return [node for node in self._state.nodes if node.id in wanted]

    @contextmanager
    def transaction(self) -> Iterator[GraphTransaction]:
        """Open a transaction; commit on clean exit, discard on exception."""
        with self._lock:
            tx = GraphTransaction(self._state)
            yield tx
            self._state = tx.snapshot()
            self._version += 1

    def replace_state(self, state: GraphState) -> None:
        """Install a whole graph (e.g. a loaded workflow).

        Edges with a missing endpoint and input slots no edge feeds are
        dropped on the way in.
        """
        with self.transaction() as tx:
            tx.set_nodes(state.nodes)
            tx.set_edges(state.edges)
            tx.reconcile()
            tx.selected_node_id = state.selected_node_id if tx.has_node(state.selected_node_id or "") else None

        sys.stderr.write(f"[STORE] Loaded {len(self._state.nodes)} node(s), {len(self._state.edges)} edge(s)\n")
        sys.stderr.flush()

    # -- bulk helpers ------------------------------------------------------

    def set_nodes(self, nodes: Iterable[Any]) -> None:
        """Replace every node; edges and slots that no longer fit are dropped."""
        with self.transaction() as tx:
            tx.set_nodes(nodes)
            tx.reconcile()

    def set_edges(self, edges: Iterable[Edge]) -> None:
        """Replace every edge and re-seed the slots they feed."""
        with self.transaction() as tx:
            tx.set_edges(edges)
            tx.reconcile(seed=True)

    def select(self, node_id: str | None) -> None:
        with self.transaction() as tx:
            tx.selected_node_id = node_id if node_id is None or tx.has_node(node_id) else None

    def clear(self) -> None:
        with self.transaction() as tx:
            tx.set_nodes([])
            tx.set_edges([])
            tx.selected_node_id = None

    def clear_all_node_responses(self) -> None:
        """Reset every node's ``response`` without touching structure."""
        with self.transaction() as tx:
            for node in tx.nodes:
                if node.data.response:
                    data = node.data.model_copy(update={"response": ""})
                    tx.replace_node(node.model_copy(update={"data": data}))
