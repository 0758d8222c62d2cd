"""Error taxonomy for the graph engine.

- ``GraphValidationError``: a mutation was rejected (cycle, unknown node,
  wrong node type, ...). Reported through ``MutationResult``; never leaves a
  partial state change behind.
- ``ExternalCallError``: the language-model call failed for one node. Halts
  that node's branch only.
- ``StructuralIntegrityError``: the edge set is cyclic at run time. Aborts the
  whole traversal before any node runs.
"""

from __future__ import annotations

from enum import Enum


class ValidationReason(str, Enum):
    """Why a mutation was rejected."""

    CYCLE = "cycle"
    SELF_LOOP = "self_loop"
    UNKNOWN_NODE = "unknown_node"
    NOT_PLACEHOLDER = "not_placeholder"
    INVALID_TYPE = "invalid_type"
    DUPLICATE_NODE = "duplicate_node"
    INVALID_DATA = "invalid_data"
    UNKNOWN_HANDLE = "unknown_handle"


class PromptSandboxError(Exception):
    """Base class for engine errors."""


class GraphValidationError(PromptSandboxError):
    """A graph mutation was rejected and the graph left unchanged."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ExternalCallError(PromptSandboxError):
    """The completion call for a node failed or returned an unusable payload."""

    def __init__(self, message: str, *, node_id: str | None = None) -> None:
        super().__init__(message)
        self.node_id = node_id


class PromptTemplateError(PromptSandboxError):
    """A prompt template could not be parsed."""


class StructuralIntegrityError(PromptSandboxError):
    """The graph contains a cycle despite the connect-time guard."""

    def __init__(self, node_ids: list[str]) -> None:
        joined = ", ".join(sorted(node_ids))
        super().__init__(f"Cycle detected between nodes: {joined}")
        self.node_ids = sorted(node_ids)
