"""Workflow session: the store façade used by the rendering layer.

A ``WorkflowSession`` owns one ``GraphStore`` and exposes every graph
operation under the names the canvas uses (``on_nodes_change``,
``on_connect``, ``traverse_tree``...). It also tracks the current workflow,
the last UI error message and whether the graph is unlocked for editing.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import Any

from promptsandbox.config import RerunPolicy, Settings
from promptsandbox.domain.errors import StructuralIntegrityError
from promptsandbox.domain.models import (
    Connection,
    Edge,
    GraphState,
    NodeType,
    Position,
    PositionUpdate,
    UiState,
    WorkflowDocument,
    WorkflowSummary,
)
from promptsandbox.execution.engine import ExecutionEngine, TraversalResult
from promptsandbox.library.credentials import Credential
from promptsandbox.library.llm import CompletionService
from promptsandbox.registry import NodeTypeRegistry, get_global_registry
from promptsandbox.runner import NodeOutcome, NodeRunner
from promptsandbox.services.storage import InMemoryStorage, WorkflowStorage
from promptsandbox.store import edges as edge_ops
from promptsandbox.store import nodes as node_ops
from promptsandbox.store import propagation
from promptsandbox.store.graph_store import GraphStore
from promptsandbox.store.results import MutationResult


class WorkflowSession:
    """Graph state plus the operations the UI drives it with."""

    def __init__(
        self,
        *,
        store: GraphStore | None = None,
        completion_service: CompletionService | None = None,
        storage: WorkflowStorage | None = None,
        settings: Settings | None = None,
        registry: NodeTypeRegistry | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store or GraphStore()
        self.storage = storage or InMemoryStorage()
        self.registry = registry or get_global_registry()
        self.runner = NodeRunner(self.store, completion_service, settings=self.settings)
        self.engine = ExecutionEngine(self.store, self.runner, self.settings)

        self.current_workflow: WorkflowSummary | None = None
        self.ui_error_message: str | None = None
        self.unlock_graph = True

    # -- reads -------------------------------------------------------------

    @property
    def state(self) -> GraphState:
        return self.store.state

    @property
    def selected_node(self) -> Any | None:
        node_id = self.store.selected_node_id
        return self.store.get_node(node_id) if node_id else None

    def get_nodes(self, node_ids: Iterable[str]) -> list[Any]:
        return self.store.get_nodes(node_ids)

    # -- structure ---------------------------------------------------------

    def set_nodes(self, nodes: Iterable[Any]) -> None:
        self.store.set_nodes(nodes)

    def set_edges(self, edges: Iterable[Edge]) -> None:
        self.store.set_edges(edges)

    def clear_graph(self) -> None:
        self.store.clear()

    def on_nodes_change(self, changes: Iterable[Any]) -> MutationResult:
        return node_ops.on_nodes_change(self.store, changes)

    def on_edges_change(self, changes: Iterable[Any]) -> MutationResult:
        return edge_ops.on_edges_change(self.store, changes)

    def on_connect(self, connection: Connection) -> MutationResult:
        return edge_ops.connect(self.store, connection)

    def on_edges_delete(self, edges: Iterable[Edge]) -> MutationResult:
        return edge_ops.on_edges_delete(self.store, edges)

    def delete_edges(self, source_handle: str) -> MutationResult:
        return edge_ops.delete_edges_from_handle(self.store, source_handle)

    def on_node_drag_stop(self, node_id: str) -> None:
        self.store.select(node_id)

    def on_add(self, node_type: NodeType | str, position: Position, parent_node: str | None = None) -> MutationResult:
        return node_ops.on_add(self.store, node_type, position, parent_node, registry=self.registry)

    def on_placeholder_add(self, placeholder_id: str, node_type: NodeType | str) -> MutationResult:
        return node_ops.on_placeholder_add(self.store, placeholder_id, node_type, registry=self.registry)

    # -- data --------------------------------------------------------------

    def update_node(self, node_id: str, data: Any, new_position: PositionUpdate | None = None) -> MutationResult:
        result = propagation.update_node(self.store, node_id, data, new_position)
        if result.success:
            self.store.select(node_id)
        return result

    def update_input_example(self, node_id: str, handle: str, value: str, index: int) -> MutationResult:
        return propagation.update_input_example(self.store, node_id, handle, value, index)

    def clear_all_node_responses(self) -> None:
        self.store.clear_all_node_responses()

    # -- execution ---------------------------------------------------------

    async def traverse_tree(
        self,
        credential: Credential | None,
        *,
        policy: RerunPolicy | None = None,
    ) -> TraversalResult:
        """Run the whole graph; the graph is reported locked while it runs.

        Raises:
            StructuralIntegrityError: If the edge set is cyclic
        """
        self.unlock_graph = False
        self.ui_error_message = None
        try:
            result = await self.engine.traverse_tree(credential, policy=policy)
        except StructuralIntegrityError as exc:
            self.ui_error_message = str(exc)
            raise
        finally:
            self.unlock_graph = True

        if result.has_failures:
            failed = result.failed
            first = result.outcomes[failed[0]] if failed else None
            self.ui_error_message = (
                f"Node {first.node_id} failed: {first.error}" if first else "Some nodes did not run"
            )
        return result

    async def run_node(self, node_id: str, credential: Credential | None) -> NodeOutcome:
        outcome = await self.runner.run_node(node_id, credential)
        if not outcome.success:
            self.ui_error_message = f"Node {node_id} failed: {outcome.error}"
        return outcome

    # -- persistence -------------------------------------------------------

    def list_workflows(self) -> list[WorkflowSummary]:
        return self.storage.list()

    def new_workflow(self, workflow_id: str, name: str = "Untitled") -> WorkflowSummary:
        self.store.clear()
        self.current_workflow = WorkflowSummary(id=workflow_id, name=name)
        self.ui_error_message = None
        return self.current_workflow

    def load_workflow(self, workflow_id: str) -> bool:
        """Replace the graph with a stored workflow; False if it does not exist."""
        document = self.storage.get(workflow_id)
        if document is None:
            sys.stderr.write(f"[STORAGE] Workflow not found: {workflow_id}\n")
            sys.stderr.flush()
            return False
        self.load_document(document)
        return True

    def load_document(self, document: WorkflowDocument) -> None:
        graph = document.graph.model_copy(update={"selected_node_id": document.ui.selected_node_id})
        self.store.replace_state(graph)
        self.current_workflow = document.summary()
        self.ui_error_message = document.ui.ui_error_message

    def to_document(self) -> WorkflowDocument:
        current = self.current_workflow or WorkflowSummary(id="default", name="Untitled")
        state = self.store.state
        return WorkflowDocument(
            id=current.id,
            name=current.name,
            graph=state.model_copy(update={"selected_node_id": None}),
            ui=UiState(selected_node_id=state.selected_node_id, ui_error_message=self.ui_error_message),
        )

    def save_workflow(self) -> WorkflowSummary:
        document = self.to_document()
        self.storage.set(document)
        self.current_workflow = document.summary()
        return self.current_workflow
