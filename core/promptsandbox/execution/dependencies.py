"""Dependency bookkeeping for the executor."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from promptsandbox.domain.errors import StructuralIntegrityError
from promptsandbox.domain.models import Edge, GraphState


@dataclass
class DependencyGraph:
    """Node-level dependencies derived from a snapshot of edges.

    Several edges between the same pair of nodes count as one dependency.
    Edges touching unknown nodes are ignored.
    """

    node_ids: list[str]
    _dependencies: dict[str, set[str]] = field(default_factory=dict)
    _dependents: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_edges(cls, node_ids: Iterable[str], edges: Iterable[Edge]) -> DependencyGraph:
        graph = cls(node_ids=list(node_ids))
        known = set(graph.node_ids)
        for node_id in graph.node_ids:
            graph._dependencies[node_id] = set()
            graph._dependents[node_id] = set()
        for edge in edges:
            if edge.source in known and edge.target in known:
                graph._dependencies[edge.target].add(edge.source)
                graph._dependents[edge.source].add(edge.target)
        return graph

    @classmethod
    def from_state(cls, state: GraphState) -> DependencyGraph:
        return cls.from_edges(state.node_ids(), state.edges)

    def dependencies(self, node_id: str) -> set[str]:
        """Get all nodes that this node depends on."""
        return set(self._dependencies.get(node_id, ()))

    def dependents(self, node_id: str) -> set[str]:
        """Get all nodes that depend on this node's output."""
        return set(self._dependents.get(node_id, ()))

    def in_degree(self) -> dict[str, int]:
        return {node_id: len(deps) for node_id, deps in self._dependencies.items()}

    def descendants(self, node_id: str) -> set[str]:
        """All nodes reachable from ``node_id`` (excluding itself)."""
        seen: set[str] = set()
        queue = deque(self._dependents.get(node_id, ()))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._dependents.get(current, ()))
        seen.discard(node_id)
        return seen

    def topological_order(self) -> list[str]:
        """Kahn ordering; ties keep the store order.

        Raises:
            StructuralIntegrityError: If the edges contain a cycle
        """
        pending = self.in_degree()
        queue = deque(n for n in self.node_ids if pending[n] == 0)
        ordered: list[str] = []

        while queue:
            node_id = queue.popleft()
            ordered.append(node_id)
            for dependent in sorted(self._dependents[node_id], key=self.node_ids.index):
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) != len(self.node_ids):
            raise StructuralIntegrityError([n for n in self.node_ids if n not in set(ordered)])
        return ordered
