"""Tests for adding, materializing and removing nodes."""

from __future__ import annotations

from promptsandbox.domain.errors import ValidationReason
from promptsandbox.domain.models import (
    NodePositionChange,
    NodeRemoveChange,
    NodeType,
    Position,
)
from promptsandbox.store.graph_store import GraphStore
from promptsandbox.store.nodes import on_add, on_nodes_change, on_placeholder_add, remove_nodes
from graph_helpers import edge, graph, placeholder_node, prompt_node, text_node


class TestOnAdd:

    def test_adds_and_selects(self, store):
        result = on_add(store, NodeType.LLM_PROMPT, Position(x=3, y=4))

        assert result.success
        node = store.get_node(result.node_id)
        assert node.type == "llmPrompt"
        assert node.position == Position(x=3, y=4)
        assert node.data.name == "LLM Prompt 1"
        assert store.selected_node_id == result.node_id

    def test_names_are_numbered(self, store):
        first = on_add(store, "textInput", Position(x=0, y=0))
        second = on_add(store, "textInput", Position(x=0, y=0))
        assert store.get_node(first.node_id).data.name == "Text Input 1"
        assert store.get_node(second.node_id).data.name == "Text Input 2"
        assert first.node_id != second.node_id

    def test_unknown_type(self, store):
        result = on_add(store, "chart", Position(x=0, y=0))
        assert result.error.reason is ValidationReason.INVALID_TYPE
        assert store.nodes == ()

    def test_missing_parent(self, store):
        result = on_add(store, NodeType.TEXT_INPUT, Position(x=0, y=0), parent_node="ghost")
        assert result.error.reason is ValidationReason.UNKNOWN_NODE
        assert store.nodes == ()


class TestOnPlaceholderAdd:

    def test_materializes_in_place(self):
        store = GraphStore(graph(
            text_node("T", "Hello"),
            placeholder_node("X"),
            edges=[edge("T", "X", "in")],
        ))

        result = on_placeholder_add(store, "X", NodeType.TEXT_INPUT)

        assert result.success
        node = store.get_node("X")
        assert node.type == "textInput"
        assert node.position == Position(x=50, y=50)
        assert [(e.source, e.target) for e in store.edges] == [("T", "X")]
        assert node.data.inputs.values() == {"in": "Hello"}

    def test_outbound_edges_receive_new_output(self):
        store = GraphStore(graph(
            placeholder_node("X"),
            prompt_node("P", "{x}", inputs={"x": ("X", "")}),
            edges=[edge("X", "P", "x")],
        ))
        on_placeholder_add(store, "X", NodeType.LLM_PROMPT)
        assert store.get_node("X").type == "llmPrompt"
        assert store.get_node("P").data.inputs.values() == {"x": ""}

    def test_not_a_placeholder(self):
        store = GraphStore(graph(text_node("T", "Hello")))
        result = on_placeholder_add(store, "T", NodeType.LLM_PROMPT)
        assert result.error.reason is ValidationReason.NOT_PLACEHOLDER
        assert store.get_node("T").type == "textInput"

    def test_missing_node(self, store):
        result = on_placeholder_add(store, "ghost", NodeType.TEXT_INPUT)
        assert result.error.reason is ValidationReason.UNKNOWN_NODE

    def test_cannot_become_placeholder(self):
        store = GraphStore(graph(placeholder_node("X")))
        result = on_placeholder_add(store, "X", NodeType.PLACEHOLDER)
        assert result.error.reason is ValidationReason.INVALID_TYPE


class TestRemoval:

    def test_remove_cascades(self):
        store = GraphStore(graph(
            text_node("T", "Hello"),
            prompt_node("P", "{in}", inputs={"in": ("T", "Hello")}),
            edges=[edge("T", "P", "in")],
        ))

        result = remove_nodes(store, ["T"])

        assert result.success
        assert store.state.node_ids() == ["P"]
        assert store.edges == ()
        assert store.get_node("P").data.inputs.values() == {}

    def test_mixed_batch(self):
        store = GraphStore(graph(text_node("A"), text_node("B")))
        on_nodes_change(store, [
            NodePositionChange(id="A", position=Position(x=9, y=9)),
            NodeRemoveChange(id="B"),
            NodeRemoveChange(id="ghost"),
        ])
        assert store.state.node_ids() == ["A"]
        assert store.get_node("A").position == Position(x=9, y=9)
