"""Prompt sandbox core package.

A graph of text-input, LLM-prompt and placeholder nodes, the rules for
editing it and an executor that runs it in dependency order.

Important: the session pulls in LangChain through the completion service. To
keep lightweight entrypoints (``python -m promptsandbox.cli --version``)
cheap, we avoid importing it eagerly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__version__ = "0.1.0"

__all__ = ["GraphStore", "WorkflowSession", "__version__"]


if TYPE_CHECKING:
    from .session import WorkflowSession as WorkflowSession
    from .store.graph_store import GraphStore as GraphStore


def __getattr__(name: str) -> Any:
    if name == "WorkflowSession":
        from .session import WorkflowSession

        return WorkflowSession
    if name == "GraphStore":
        from .store.graph_store import GraphStore

        return GraphStore
    raise AttributeError(name)
