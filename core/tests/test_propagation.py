"""Tests for update_node and single-hop input propagation."""

from __future__ import annotations

import pytest

from promptsandbox.domain.errors import ValidationReason
from promptsandbox.domain.models import (
    InputEntry,
    NodeInputs,
    PositionUpdate,
    Position,
    TextInputData,
)
from promptsandbox.store.graph_store import GraphStore
from promptsandbox.store.propagation import update_input_example, update_node
from graph_helpers import edge, graph, prompt_node, text_node


@pytest.fixture
def chain():
    """T -> P -> Q, with inputs already seeded."""
    return GraphStore(graph(
        text_node("T", "Hello"),
        prompt_node("P", "Say: {in}", response="p-out", inputs={"in": ("T", "Hello")}),
        prompt_node("Q", "Echo: {p}", inputs={"p": ("P", "p-out")}),
        edges=[edge("T", "P", "in"), edge("P", "Q", "p")],
    ))


class TestUpdateNode:

    def test_text_change_reaches_direct_successor(self, chain):
        result = update_node(chain, "T", {"name": "T", "text": "Bye"})

        assert result.success
        assert chain.get_node("T").data.text == "Bye"
        assert chain.get_node("P").data.inputs.values() == {"in": "Bye"}

    def test_propagation_is_single_hop(self, chain):
        update_node(chain, "T", {"name": "T", "text": "Bye"})
        # Q is fed by P's response, which did not change
        assert chain.get_node("Q").data.inputs.values() == {"p": "p-out"}

    def test_llm_response_edit_propagates(self, chain):
        data = chain.get_node("P").data.model_copy(update={"response": "edited"})
        update_node(chain, "P", data)
        assert chain.get_node("Q").data.inputs.values() == {"p": "edited"}

    def test_caller_inputs_are_ignored(self, chain):
        bogus = NodeInputs(entries=(InputEntry(handle="x", source_id="nobody", value="?"),))
        data = chain.get_node("P").data.model_copy(update={"prompt": "New {in}", "inputs": bogus})

        update_node(chain, "P", data)

        node = chain.get_node("P")
        assert node.data.prompt == "New {in}"
        assert node.data.inputs.values() == {"in": "Hello"}

    def test_previous_snapshot_unchanged(self, chain):
        before = chain.state
        update_node(chain, "T", TextInputData(name="T", text="Bye"))
        assert before.get_node("T").data.text == "Hello"
        assert before.get_node("P").data.inputs.values() == {"in": "Hello"}

    def test_position_update(self, chain):
        update_node(chain, "T", {"text": "Hello"}, PositionUpdate(mode="add", x=10, y=5))
        update_node(chain, "T", {"text": "Hello"}, PositionUpdate(mode="add", x=10, y=5))
        assert chain.get_node("T").position == Position(x=20, y=10)

    def test_unknown_node(self, chain):
        result = update_node(chain, "ghost", {"text": "x"})
        assert result.error.reason is ValidationReason.UNKNOWN_NODE
        assert chain.version == 0

    def test_invalid_data(self, chain):
        result = update_node(chain, "P", {"parameters": {"temperature": 9}})
        assert result.error.reason is ValidationReason.INVALID_DATA
        assert chain.version == 0


class TestUpdateInputExample:

    def test_sets_example(self, chain):
        result = update_input_example(chain, "P", "in", "Howdy", 1)
        assert result.success
        assert chain.get_node("P").data.inputs.get("in").examples == ("", "Howdy")

    def test_unknown_handle(self, chain):
        result = update_input_example(chain, "P", "nope", "x", 0)
        assert result.error.reason is ValidationReason.UNKNOWN_HANDLE

    def test_negative_index(self, chain):
        result = update_input_example(chain, "P", "in", "x", -1)
        assert result.error.reason is ValidationReason.INVALID_DATA


class TestRepeatedUpdates:

    def test_same_update_twice_changes_nothing_more(self, chain):
        update_node(chain, "T", {"name": "T", "text": "Bye"})
        once = chain.state

        result = update_node(chain, "T", {"name": "T", "text": "Bye"})

        assert result.success
        assert chain.state.nodes == once.nodes
        assert chain.state.edges == once.edges
        assert chain.get_node("P").data.inputs.values() == {"in": "Bye"}
        assert chain.get_node("Q").data.inputs.values() == {"p": "p-out"}
