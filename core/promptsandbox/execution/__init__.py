"""Graph execution.

This module provides:
- Kahn-style execution with concurrent independent branches
- Prompt template resolution against recorded inputs
- Per-node outcomes with branch-level failure isolation

Architecture:
- engine.py: Traversal orchestrator (traverse_tree)
- dependencies.py: Node-level dependency bookkeeping and cycle detection
- resolver.py: Prompt template resolution

``engine`` imports ``promptsandbox.runner``, which itself imports
``resolver`` from this package, so the engine exports are resolved lazily.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__all__ = ["ExecutionEngine", "TraversalResult"]


if TYPE_CHECKING:
    from promptsandbox.execution.engine import ExecutionEngine as ExecutionEngine
    from promptsandbox.execution.engine import TraversalResult as TraversalResult


def __getattr__(name: str) -> Any:
    if name in {"ExecutionEngine", "TraversalResult"}:
        from promptsandbox.execution import engine

        return getattr(engine, name)
    raise AttributeError(name)
