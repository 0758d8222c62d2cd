"""Pydantic domain models for the prompt graph.

These models are the stable contract between the store, the executor, the
persistence adapter and the rendering layer. All of them are frozen: an
update always produces a new value (``model_copy(update=...)``) so consumers
can detect changes by identity instead of by inspecting mutations.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class NodeType(str, Enum):
    """Closed set of node types."""

    TEXT_INPUT = "textInput"
    LLM_PROMPT = "llmPrompt"
    PLACEHOLDER = "placeholder"


class Position(BaseModel):
    """2D position in the editor canvas."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="X coordinate")
    y: float = Field(..., description="Y coordinate")


class PositionUpdate(BaseModel):
    """Move a node by an offset (``add``) or to absolute coordinates (``set``)."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["add", "set"] = "set"
    x: float = 0.0
    y: float = 0.0

    def apply(self, position: Position) -> Position:
        if self.mode == "add":
            return Position(x=position.x + self.x, y=position.y + self.y)
        return Position(x=self.x, y=self.y)


# ---------------------------------------------------------------------------
# Input slots
# ---------------------------------------------------------------------------


class InputEntry(BaseModel):
    """One named input slot and the value cached from its upstream node."""

    model_config = ConfigDict(frozen=True)

    handle: str = Field(..., description="Slot name, referenced by prompt templates")
    source_id: str = Field(..., description="Id of the upstream node feeding this slot")
    value: str = Field(default="", description="Last value propagated from the source")
    examples: tuple[str, ...] = Field(default=(), description="Example values for this slot")


class NodeInputs(BaseModel):
    """Ordered, immutable collection of input slots."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[InputEntry, ...] = ()

    def get(self, handle: str) -> InputEntry | None:
        for entry in self.entries:
            if entry.handle == handle:
                return entry
        return None

    def handles(self) -> list[str]:
        return [entry.handle for entry in self.entries]

    def values(self) -> dict[str, str]:
        return {entry.handle: entry.value for entry in self.entries}

    def set_value(self, handle: str, source_id: str, value: str) -> NodeInputs:
        """Return inputs with ``handle`` bound to ``source_id`` and ``value``.

        An existing slot keeps its position and examples; a new slot is
        appended.
        """
        existing = self.get(handle)
        if existing is None:
            entry = InputEntry(handle=handle, source_id=source_id, value=value)
            return NodeInputs(entries=(*self.entries, entry))

        if existing.source_id == source_id and existing.value == value:
            return self

        updated = existing.model_copy(update={"source_id": source_id, "value": value})
        return NodeInputs(
            entries=tuple(updated if e.handle == handle else e for e in self.entries)
        )

    def remove_handle(self, handle: str) -> NodeInputs:
        if self.get(handle) is None:
            return self
        return NodeInputs(entries=tuple(e for e in self.entries if e.handle != handle))

    def remove_source(self, source_id: str) -> NodeInputs:
        if not any(e.source_id == source_id for e in self.entries):
            return self
        return NodeInputs(entries=tuple(e for e in self.entries if e.source_id != source_id))

    def set_example(self, handle: str, value: str, index: int) -> NodeInputs:
        """Return inputs with example ``index`` of ``handle`` set to ``value``.

        The examples list is padded with empty strings when ``index`` is past
        its end.
        """
        existing = self.get(handle)
        if existing is None:
            raise KeyError(handle)
        if index < 0:
            raise IndexError(index)

        examples = list(existing.examples)
        if index >= len(examples):
            examples.extend([""] * (index + 1 - len(examples)))
        examples[index] = value

        updated = existing.model_copy(update={"examples": tuple(examples)})
        return NodeInputs(
            entries=tuple(updated if e.handle == handle else e for e in self.entries)
        )


# ---------------------------------------------------------------------------
# Node payloads
# ---------------------------------------------------------------------------


class ModelParameters(BaseModel):
    """Parameters forwarded to the completion call."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="gpt-3.5-turbo", description="Model identifier")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=256, ge=1)
    top_p: float = Field(default=1.0, ge=0.0, le=1.0)
    frequency_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    stop: tuple[str, ...] = ()


class _NodeData(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Display name")
    inputs: NodeInputs = Field(default_factory=NodeInputs)
    response: str = Field(default="", description="Most recently computed result")


class TextInputData(_NodeData):
    """Free text typed by the user."""

    text: str = ""


class LLMPromptData(_NodeData):
    """A prompt template sent to a language model."""

    prompt: str = Field(default="", description="Template referencing input slots as {handle}")
    parameters: ModelParameters = Field(default_factory=ModelParameters)
    response_prompt: str = Field(default="", description="Resolved prompt that produced the response")


class PlaceholderData(_NodeData):
    """An untyped stub awaiting materialization."""


NodeData = Union[TextInputData, LLMPromptData, PlaceholderData]


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class _BaseNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable unique identifier")
    position: Position = Field(default_factory=lambda: Position(x=0, y=0))
    parent_node: str | None = Field(default=None, description="Optional parent node id")


class TextInputNode(_BaseNode):
    type: Literal["textInput"] = "textInput"
    data: TextInputData = Field(default_factory=TextInputData)


class LLMPromptNode(_BaseNode):
    type: Literal["llmPrompt"] = "llmPrompt"
    data: LLMPromptData = Field(default_factory=LLMPromptData)


class PlaceholderNode(_BaseNode):
    type: Literal["placeholder"] = "placeholder"
    data: PlaceholderData = Field(default_factory=PlaceholderData)


CustomNode = Annotated[
    Union[TextInputNode, LLMPromptNode, PlaceholderNode],
    Field(discriminator="type"),
]

NODE_ADAPTER: TypeAdapter[Any] = TypeAdapter(CustomNode)

NODE_CLASSES: dict[NodeType, type[_BaseNode]] = {
    NodeType.TEXT_INPUT: TextInputNode,
    NodeType.LLM_PROMPT: LLMPromptNode,
    NodeType.PLACEHOLDER: PlaceholderNode,
}

DATA_CLASSES: dict[NodeType, type[_NodeData]] = {
    NodeType.TEXT_INPUT: TextInputData,
    NodeType.LLM_PROMPT: LLMPromptData,
    NodeType.PLACEHOLDER: PlaceholderData,
}


def node_output(node: Any) -> str:
    """Return the value a node exposes to its successors."""

    node_type = NodeType(node.type)
    if node_type is NodeType.TEXT_INPUT:
        return node.data.text
    if node_type is NodeType.LLM_PROMPT:
        return node.data.response
    if node_type is NodeType.PLACEHOLDER:
        return node.data.response
    raise ValueError(f"Unhandled node type: {node.type}")


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


def edge_id_for(source: str, source_handle: str, target: str, target_handle: str) -> str:
    return f"edge-{source}:{source_handle}-{target}:{target_handle}"


class Edge(BaseModel):
    """A directed edge from a node output handle into a named input slot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable unique identifier")
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    source_handle: str = Field(..., description="Output handle on the source node")
    target_handle: str = Field(..., description="Input slot on the target node")


class Connection(BaseModel):
    """A user request to connect two nodes."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None

    def to_edge(self) -> Edge:
        """Build the edge for this connection, filling handle defaults.

        A missing source handle is the source node id; a missing target
        handle names the slot after the source node id.
        """
        source_handle = self.source_handle or self.source
        target_handle = self.target_handle or self.source
        return Edge(
            id=edge_id_for(self.source, source_handle, self.target, target_handle),
            source=self.source,
            target=self.target,
            source_handle=source_handle,
            target_handle=target_handle,
        )


# ---------------------------------------------------------------------------
# Structural deltas (shapes supplied by the rendering layer)
# ---------------------------------------------------------------------------


class NodeAddChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["add"] = "add"
    item: CustomNode


class NodeRemoveChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["remove"] = "remove"
    id: str


class NodePositionChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["position"] = "position"
    id: str
    position: Position | None = None
    dragging: bool = False


class NodeSelectChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["select"] = "select"
    id: str
    selected: bool = True


NodeChange = Annotated[
    Union[NodeAddChange, NodeRemoveChange, NodePositionChange, NodeSelectChange],
    Field(discriminator="type"),
]


class EdgeAddChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["add"] = "add"
    item: Edge


class EdgeRemoveChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["remove"] = "remove"
    id: str


EdgeChange = Annotated[
    Union[EdgeAddChange, EdgeRemoveChange],
    Field(discriminator="type"),
]

NODE_CHANGES_ADAPTER: TypeAdapter[Any] = TypeAdapter(list[NodeChange])
EDGE_CHANGES_ADAPTER: TypeAdapter[Any] = TypeAdapter(list[EdgeChange])


# ---------------------------------------------------------------------------
# Graph snapshot
# ---------------------------------------------------------------------------


class GraphState(BaseModel):
    """Immutable snapshot of the whole graph plus the UI selection."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[CustomNode, ...] = ()
    edges: tuple[Edge, ...] = ()
    selected_node_id: str | None = None

    def get_node(self, node_id: str) -> Any | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]

    def edges_from(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def edges_to(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]


# ---------------------------------------------------------------------------
# Persistence payloads
# ---------------------------------------------------------------------------


class UiState(BaseModel):
    """Auxiliary UI state saved alongside a workflow."""

    model_config = ConfigDict(frozen=True)

    selected_node_id: str | None = None
    ui_error_message: str | None = None


class WorkflowSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class WorkflowDocument(BaseModel):
    """A saved workflow: the whole graph keyed by a workflow identifier."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Untitled"
    graph: GraphState = Field(default_factory=GraphState)
    ui: UiState = Field(default_factory=UiState)

    def summary(self) -> WorkflowSummary:
        return WorkflowSummary(id=self.id, name=self.name)
