"""Graph store and the mutation layers built on top of it."""

from promptsandbox.store.edges import connect, delete_edges_from_handle, on_edges_change, on_edges_delete
from promptsandbox.store.graph_store import GraphStore, GraphTransaction
from promptsandbox.store.nodes import on_add, on_nodes_change, on_placeholder_add, remove_nodes
from promptsandbox.store.propagation import update_input_example, update_node
from promptsandbox.store.results import MutationResult

__all__ = [
    "GraphStore",
    "GraphTransaction",
    "MutationResult",
    "connect",
    "delete_edges_from_handle",
    "on_add",
    "on_edges_change",
    "on_edges_delete",
    "on_nodes_change",
    "on_placeholder_add",
    "remove_nodes",
    "update_input_example",
    "update_node",
]
