"""Result object returned by graph mutation operations."""

from __future__ import annotations

from dataclasses import dataclass

from promptsandbox.domain.errors import GraphValidationError


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Outcome of a graph mutation.

    Attributes:
        error: The validation error if the mutation was rejected.
        node_id: Id of the node the mutation created or touched, if any.
        edge_ids: Ids of the edges the mutation added or removed.
    """

    error: GraphValidationError | None = None
    node_id: str | None = None
    edge_ids: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.error is None
