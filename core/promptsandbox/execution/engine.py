"""Execution engine: run the whole graph in dependency order."""

from __future__ import annotations

import asyncio
import sys
from collections import deque
from dataclasses import dataclass, field

from promptsandbox.config import RerunPolicy, Settings
from promptsandbox.execution.dependencies import DependencyGraph
from promptsandbox.library.credentials import Credential
from promptsandbox.runner import NodeOutcome, NodeRunner, NodeStatus
from promptsandbox.store.graph_store import GraphStore


@dataclass
class TraversalResult:
    """Per-node outcomes of one traversal.

    ``order`` lists nodes in the order their runs finished.
    """

    outcomes: dict[str, NodeOutcome] = field(default_factory=dict)
    order: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return any(not outcome.success for outcome in self.outcomes.values())

    @property
    def failed(self) -> list[str]:
        return [n for n, o in self.outcomes.items() if o.status is NodeStatus.FAILED]

    def to_dict(self) -> dict[str, object]:
        return {
            "has_failures": self.has_failures,
            "order": list(self.order),
            "outcomes": {n: o.to_dict() for n, o in self.outcomes.items()},
        }


@dataclass
class _Pass:
    graph: DependencyGraph
    policy: RerunPolicy
    pending: dict[str, int]
    result: TraversalResult = field(default_factory=TraversalResult)
    ready: deque[str] = field(default_factory=deque)


class ExecutionEngine:
    """Kahn-style executor driving ``NodeRunner`` over the graph.

    This engine:
    1. Snapshots the node and edge collections
    2. Fails fast on a cyclic edge set
    3. Starts every node whose dependencies are satisfied as its own task
    4. On each completion, decrements the pending count of direct
       successors and starts those that reach zero
    5. Marks every descendant of a failed node as blocked

    Independent branches run concurrently, bounded by
    ``settings.max_concurrency``. Nothing is cached between calls.
    """

    def __init__(self, store: GraphStore, runner: NodeRunner, settings: Settings | None = None) -> None:
        self.store = store
        self.runner = runner
        self.settings = settings or runner.settings

    async def traverse_tree(
        self,
        credential: Credential | None,
        *,
        policy: RerunPolicy | None = None,
    ) -> TraversalResult:
        """Execute the whole graph.

        Args:
            credential: Read-only credential handed to every LLM node run
            policy: ``full`` re-runs every node; ``incremental`` keeps an
                LLM node's response when it was produced from the same
                resolved prompt. Defaults to the settings.

        Returns:
            TraversalResult with one outcome per node in the snapshot

        Raises:
            StructuralIntegrityError: If the edges contain a cycle; no node
                is run and the graph is left unchanged
        """
        policy = RerunPolicy(policy or self.settings.rerun_policy)
        graph = DependencyGraph.from_state(self.store.state)
        order = graph.topological_order()
        sys.stderr.write(f"[ENGINE] Starting traversal ({policy.value}), order: {order}\n")
        sys.stderr.flush()

        run = _Pass(graph=graph, policy=policy, pending=graph.in_degree())
        run.ready.extend(n for n in order if run.pending[n] == 0)

        limit = self.settings.max_concurrency
        semaphore = asyncio.Semaphore(limit) if limit else None
        running: dict[asyncio.Task[NodeOutcome], str] = {}

        try:
            while run.ready or running:
                while run.ready:
                    node_id = run.ready.popleft()
                    task = asyncio.create_task(
                        self._run_node(node_id, credential, policy is RerunPolicy.FULL, semaphore),
                        name=f"node:{node_id}",
                    )
                    running[task] = node_id

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    running.pop(task)
                    self._on_complete(run, task.result())
        finally:
            for task in running:
                task.cancel()
            if running:
                await asyncio.gather(*running, return_exceptions=True)

        result = run.result
        sys.stderr.write(
            f"[ENGINE] Traversal finished: {len(result.outcomes)} node(s), failures={result.has_failures}\n"
        )
        sys.stderr.flush()
        return result

    async def _run_node(
        self,
        node_id: str,
        credential: Credential | None,
        force: bool,
        semaphore: asyncio.Semaphore | None,
    ) -> NodeOutcome:
        try:
            if semaphore is None:
                return await self.runner.run_node(node_id, credential, force=force)
            async with semaphore:
                return await self.runner.run_node(node_id, credential, force=force)
        except Exception as exc:  # noqa: BLE001 - a node error must not stop sibling branches
            sys.stderr.write(f"[ENGINE] Node {node_id} raised {type(exc).__name__}: {exc}\n")
            sys.stderr.flush()
            return NodeOutcome(node_id, NodeStatus.FAILED, error=exc)

    def _on_complete(self, run: _Pass, outcome: NodeOutcome) -> None:
        node_id = outcome.node_id
        run.result.outcomes[node_id] = outcome
        run.result.order.append(node_id)
        sys.stderr.write(f"[ENGINE] Node {node_id}: {outcome.status.value}\n")
        sys.stderr.flush()

        if not outcome.satisfied:
            for descendant in run.graph.descendants(node_id):
                run.result.outcomes.setdefault(
                    descendant,
                    NodeOutcome(descendant, NodeStatus.BLOCKED, reason=f"upstream node {node_id} failed"),
                )
            return

        for dependent in run.graph.dependents(node_id):
            run.pending[dependent] -= 1
            if run.pending[dependent] == 0 and dependent not in run.result.outcomes:
                run.ready.append(dependent)
