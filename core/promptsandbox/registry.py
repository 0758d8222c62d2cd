"""Node type registry.

This module maps each node type to a factory producing its initial data
payload. ``on_add`` and ``on_placeholder_add`` use it to build fresh nodes.

Design:
- Each node type has a factory: (name: str) -> data model
- The registry also carries a display label used to name new nodes
- Built-in factories cover text inputs, LLM prompts and placeholders

Example:
    @register_node_type(NodeType.LLM_PROMPT, label="Summarizer")
    def summarizer(name: str) -> LLMPromptData:
        return LLMPromptData(name=name, prompt="Summarize: {text}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from promptsandbox.domain.models import (
    NODE_CLASSES,
    LLMPromptData,
    NodeType,
    PlaceholderData,
    Position,
    TextInputData,
)

# Type alias for data factories
DataFactory = Callable[[str], Any]


@dataclass(frozen=True, slots=True)
class NodeTypeEntry:
    node_type: NodeType
    label: str
    factory: DataFactory


class NodeTypeRegistry:
    """Registry of node type factories.

    Example:
        registry = NodeTypeRegistry()

        @registry.register_factory(NodeType.TEXT_INPUT, label="Text Input")
        def text_input(name: str) -> TextInputData:
            return TextInputData(name=name)

        data = registry.initial_data(NodeType.TEXT_INPUT, "Text Input 1")
    """

    def __init__(self) -> None:
        self._entries: dict[NodeType, NodeTypeEntry] = {}

    def register(self, node_type: NodeType, factory: DataFactory, *, label: str | None = None) -> None:
        """Register the initial-data factory for a node type.

        Args:
            node_type: Node type to register
            factory: Function taking the node name and returning its data
            label: Display label; defaults to the node type value
        """
        node_type = NodeType(node_type)
        self._entries[node_type] = NodeTypeEntry(
            node_type=node_type,
            label=label or node_type.value,
            factory=factory,
        )

    def register_factory(
        self, node_type: NodeType, *, label: str | None = None
    ) -> Callable[[DataFactory], DataFactory]:
        """Decorator form of ``register``."""

        def decorator(factory: DataFactory) -> DataFactory:
            self.register(node_type, factory, label=label)
            return factory

        return decorator

    def has_node_type(self, node_type: NodeType | str) -> bool:
        try:
            return NodeType(node_type) in self._entries
        except ValueError:
            return False

    def label(self, node_type: NodeType) -> str:
        return self._get(node_type).label

    def initial_data(self, node_type: NodeType, name: str) -> Any:
        """Build the initial data payload for ``node_type``.

        Raises:
            ValueError: If no factory is registered for the type
        """
        return self._get(node_type).factory(name)

    def create_node(
        self,
        node_type: NodeType,
        node_id: str,
        name: str,
        position: Position,
        parent_node: str | None = None,
    ) -> Any:
        """Build a node of ``node_type`` with its initial data."""
        node_type = NodeType(node_type)
        node_cls = NODE_CLASSES[node_type]
        return node_cls(
            id=node_id,
            position=position,
            parent_node=parent_node,
            data=self.initial_data(node_type, name),
        )

    def _get(self, node_type: NodeType) -> NodeTypeEntry:
        entry = self._entries.get(NodeType(node_type))
        if entry is None:
            raise ValueError(
                f"No factory registered for node type: {node_type}\n"
                f"Available types: {', '.join(sorted(t.value for t in self._entries))}"
            )
        return entry


# Global registry instance
_global_registry = NodeTypeRegistry()


def register_node_type(node_type: NodeType, *, label: str | None = None) -> Callable[[DataFactory], DataFactory]:
    """Register a factory in the global registry (decorator)."""
    return _global_registry.register_factory(node_type, label=label)


def get_global_registry() -> NodeTypeRegistry:
    return _global_registry


# Built-in factories


@register_node_type(NodeType.TEXT_INPUT, label="Text Input")
def _text_input(name: str) -> TextInputData:
    return TextInputData(name=name, text="")


@register_node_type(NodeType.LLM_PROMPT, label="LLM Prompt")
def _llm_prompt(name: str) -> LLMPromptData:
    return LLMPromptData(name=name, prompt="")


@register_node_type(NodeType.PLACEHOLDER, label="Placeholder")
def _placeholder(name: str) -> PlaceholderData:
    return PlaceholderData(name=name)
