"""Tests for the node type registry.

These tests verify:
- Registry registration and lookup
- Built-in node types
- Node construction from a registered factory
- Error handling for unknown types
"""

from __future__ import annotations

import pytest

from promptsandbox.domain.models import (
    LLMPromptData,
    LLMPromptNode,
    NodeType,
    Position,
    TextInputData,
)
from promptsandbox.registry import NodeTypeRegistry, get_global_registry


class TestNodeTypeRegistry:
    """Test the NodeTypeRegistry class."""

    def test_register_and_create(self):
        registry = NodeTypeRegistry()
        registry.register(NodeType.TEXT_INPUT, lambda name: TextInputData(name=name, text="seed"))

        data = registry.initial_data(NodeType.TEXT_INPUT, "T")
        assert data.text == "seed"
        assert registry.label(NodeType.TEXT_INPUT) == "textInput"

    def test_register_with_decorator(self):
        registry = NodeTypeRegistry()

        @registry.register_factory(NodeType.LLM_PROMPT, label="Summarizer")
        def summarizer(name: str) -> LLMPromptData:
            return LLMPromptData(name=name, prompt="Summarize: {text}")

        node = registry.create_node(NodeType.LLM_PROMPT, "n1", "Summarizer 1", Position(x=1, y=2))
        assert isinstance(node, LLMPromptNode)
        assert node.data.prompt == "Summarize: {text}"
        assert node.data.name == "Summarizer 1"
        assert registry.label("llmPrompt") == "Summarizer"

    def test_has_node_type(self):
        registry = NodeTypeRegistry()
        registry.register(NodeType.TEXT_INPUT, lambda name: TextInputData(name=name))
        assert registry.has_node_type("textInput")
        assert not registry.has_node_type(NodeType.LLM_PROMPT)
        assert not registry.has_node_type("chart")

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="No factory registered"):
            NodeTypeRegistry().initial_data(NodeType.TEXT_INPUT, "x")


class TestGlobalRegistry:

    def test_builtin_types(self):
        registry = get_global_registry()
        for node_type in NodeType:
            assert registry.has_node_type(node_type)
        assert registry.label(NodeType.LLM_PROMPT) == "LLM Prompt"

    def test_builtin_llm_defaults(self):
        data = get_global_registry().initial_data(NodeType.LLM_PROMPT, "P")
        assert data.prompt == ""
        assert data.parameters.max_tokens == 256
