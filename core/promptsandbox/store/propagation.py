"""Input propagation: push a node's value into its direct successors.

Propagation is single-hop. ``update_node`` replaces one node's data and
rewrites the bound input slot of every direct successor; values travel
further only when the executor runs those successors.
"""

from __future__ import annotations

import sys
from typing import Any

from pydantic import ValidationError

from promptsandbox.domain.errors import GraphValidationError, ValidationReason
from promptsandbox.domain.models import (
    DATA_CLASSES,
    Edge,
    NodeType,
    PositionUpdate,
    node_output,
)
from promptsandbox.store.graph_store import GraphStore, GraphTransaction
from promptsandbox.store.results import MutationResult


def bind_input(tx: GraphTransaction, edge: Edge, value: str) -> bool:
    """Set the target slot of ``edge`` to ``value``.

    Only the slot named by ``edge.target_handle`` is touched. Returns True if
    the target node was replaced.
    """
    target = tx.get_node(edge.target)
    if target is None:
        return False

    inputs = target.data.inputs.set_value(edge.target_handle, edge.source, value)
    if inputs is target.data.inputs:
        return False

    data = target.data.model_copy(update={"inputs": inputs})
    tx.replace_node(target.model_copy(update={"data": data}))
    return True


def unbind_input(tx: GraphTransaction, edge: Edge) -> bool:
    """Drop the target slot fed by ``edge`` if that edge still owns it.

    A slot that a live edge still feeds is kept.
    """
    target = tx.get_node(edge.target)
    if target is None:
        return False
    if any(e.target_handle == edge.target_handle for e in tx.edges_to(edge.target)):
        return False

    entry = target.data.inputs.get(edge.target_handle)
    if entry is None or entry.source_id != edge.source:
        return False

    data = target.data.model_copy(update={"inputs": target.data.inputs.remove_handle(edge.target_handle)})
    tx.replace_node(target.model_copy(update={"data": data}))
    return True


def propagate_edge(tx: GraphTransaction, edge: Edge) -> bool:
    """Copy the source node's current output across one edge."""
    source = tx.get_node(edge.source)
    if source is None:
        return False
    return bind_input(tx, edge, node_output(source))


def propagate_from(tx: GraphTransaction, node_id: str) -> list[str]:
    """Propagate ``node_id``'s output to each direct successor.

    Returns:
        Ids of the successor nodes whose inputs changed.
    """
    changed: list[str] = []
    for edge in tx.edges_from(node_id):
        if propagate_edge(tx, edge):
            changed.append(edge.target)
    return changed


def _coerce_data(node: Any, data: Any) -> Any:
    data_cls = DATA_CLASSES[NodeType(node.type)]
    if isinstance(data, data_cls):
        return data
    if isinstance(data, dict):
        try:
            return data_cls.model_validate(data)
        except ValidationError as exc:
            raise GraphValidationError(
                ValidationReason.INVALID_DATA,
                f"Invalid data for {node.type} node {node.id}: {exc.errors(include_url=False)}",
            ) from exc
    raise GraphValidationError(
        ValidationReason.INVALID_DATA,
        f"Expected {data_cls.__name__} for node {node.id}, got {type(data).__name__}",
    )


def update_node(
    store: GraphStore,
    node_id: str,
    data: Any,
    new_position: PositionUpdate | None = None,
) -> MutationResult:
    """Replace a node's data and push its output into direct successors.

    The node's recorded ``inputs`` are owned by the edges feeding it and are
    carried over from the stored node; whatever ``inputs`` the caller passes
    is ignored.

    Args:
        store: Graph store to mutate.
        node_id: Node to update.
        data: New payload, either the node type's data model or a dict.
        new_position: Optional position update applied in the same commit.

    Returns:
        MutationResult; ``error`` is set when the node is missing or the data
        does not fit the node type.
    """
    try:
        with store.transaction() as tx:
            node = tx.get_node(node_id)
            if node is None:
                raise GraphValidationError(ValidationReason.UNKNOWN_NODE, f"Node not found: {node_id}")

            new_data = _coerce_data(node, data)
            if new_data.inputs != node.data.inputs:
                new_data = new_data.model_copy(update={"inputs": node.data.inputs})

            update: dict[str, Any] = {"data": new_data}
            if new_position is not None:
                update["position"] = new_position.apply(node.position)

            tx.replace_node(node.model_copy(update=update))
            changed = propagate_from(tx, node_id)
    except GraphValidationError as exc:
        sys.stderr.write(f"[PROPAGATE] update_node rejected: {exc}\n")
        sys.stderr.flush()
        return MutationResult(error=exc, node_id=node_id)

    if changed:
        sys.stderr.write(f"[PROPAGATE] {node_id} -> {changed}\n")
        sys.stderr.flush()
    return MutationResult(node_id=node_id)


def update_input_example(
    store: GraphStore,
    node_id: str,
    handle: str,
    value: str,
    index: int,
) -> MutationResult:
    """Set example ``index`` of input slot ``handle`` on ``node_id``."""
    try:
        with store.transaction() as tx:
            node = tx.get_node(node_id)
            if node is None:
                raise GraphValidationError(ValidationReason.UNKNOWN_NODE, f"Node not found: {node_id}")
            try:
                inputs = node.data.inputs.set_example(handle, value, index)
            except KeyError as exc:
                raise GraphValidationError(
                    ValidationReason.UNKNOWN_HANDLE, f"Node {node_id} has no input '{handle}'"
                ) from exc
            except IndexError as exc:
                raise GraphValidationError(
                    ValidationReason.INVALID_DATA, f"Invalid example index: {index}"
                ) from exc

            data = node.data.model_copy(update={"inputs": inputs})
            tx.replace_node(node.model_copy(update={"data": data}))
    except GraphValidationError as exc:
        return MutationResult(error=exc, node_id=node_id)

    return MutationResult(node_id=node_id)
