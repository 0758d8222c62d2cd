"""Tests for whole-graph traversal.

These tests verify:
- nodes run in dependency order and values flow end to end
- branch failures block only their descendants
- cycles abort before anything runs
- the incremental re-run policy
- bounded concurrency
- nodes deleted while the traversal is in flight
"""

from __future__ import annotations

import asyncio
import random

import pytest

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

from promptsandbox.config import RerunPolicy, Settings
from promptsandbox.domain.errors import StructuralIntegrityError
from promptsandbox.domain.models import Connection, NodeRemoveChange, TextInputData
from promptsandbox.execution.dependencies import DependencyGraph
from promptsandbox.execution.engine import ExecutionEngine
from promptsandbox.runner import NodeRunner, NodeStatus
from promptsandbox.store.edges import connect, on_edges_delete
from promptsandbox.store.graph_store import GraphStore
from promptsandbox.store.nodes import on_nodes_change
from promptsandbox.store.propagation import update_node
from graph_helpers import FakeCompletionService, edge, graph, prompt_node, text_node


def make_engine(store, llm, settings=None):
    settings = settings or Settings()
    return ExecutionEngine(store, NodeRunner(store, llm, settings=settings), settings)


class TestDependencyGraph:

    def test_topological_order_keeps_store_order_for_ties(self):
        deps = DependencyGraph.from_state(graph(
            prompt_node("C"), text_node("A"), text_node("B"),
            edges=[edge("A", "C", "a"), edge("B", "C", "b")],
        ))
        assert deps.topological_order() == ["A", "B", "C"]

    def test_parallel_edges_count_once(self):
        deps = DependencyGraph.from_edges(["A", "B"], [edge("A", "B", "x"), edge("A", "B", "y")])
        assert deps.in_degree() == {"A": 0, "B": 1}

    def test_cycle(self):
        deps = DependencyGraph.from_edges(
            ["A", "B", "C"], [edge("A", "B", "a"), edge("B", "A", "b")]
        )
        with pytest.raises(StructuralIntegrityError) as exc_info:
            deps.topological_order()
        assert exc_info.value.node_ids == ["A", "B"]

    def test_descendants(self):
        deps = DependencyGraph.from_edges(
            ["A", "B", "C", "D"], [edge("A", "B", "a"), edge("B", "C", "b")]
        )
        assert deps.descendants("A") == {"B", "C"}
        assert deps.descendants("D") == set()


class TestTraverseTree:

    @pytest.mark.asyncio
    async def test_text_to_prompt(self, fake_llm, credential):
        store = GraphStore(graph(text_node("T", "Hello"), prompt_node("P", "Say: {in}")))
        connect(store, Connection(source="T", target="P", target_handle="in"))
        assert store.get_node("P").data.inputs.values() == {"in": "Hello"}

        result = await make_engine(store, fake_llm).traverse_tree(credential)

        assert fake_llm.calls == ["Say: Hello"]
        assert store.get_node("P").data.response == "echo: Say: Hello"
        assert result.order == ["T", "P"]
        assert not result.has_failures

    @pytest.mark.asyncio
    async def test_values_flow_through_chain(self, fake_llm, credential):
        store = GraphStore(graph(
            text_node("T", "Hello"), prompt_node("P", "Say: {in}"), prompt_node("Q", "Again: {p}"),
        ))
        connect(store, Connection(source="T", target="P", target_handle="in"))
        connect(store, Connection(source="P", target="Q", target_handle="p"))

        await make_engine(store, fake_llm).traverse_tree(credential)

        assert fake_llm.calls == ["Say: Hello", "Again: echo: Say: Hello"]
        assert store.get_node("Q").data.response == "echo: Again: echo: Say: Hello"

    @pytest.mark.asyncio
    async def test_deleted_edge_leaves_response_unchanged(self, fake_llm, credential):
        store = GraphStore(graph(text_node("T", "Hello"), prompt_node("P", "Say: {in}")))
        connect(store, Connection(source="T", target="P", target_handle="in"))
        engine = make_engine(store, fake_llm)
        await engine.traverse_tree(credential)

        on_edges_delete(store, list(store.edges))
        assert store.get_node("P").data.inputs.values() == {}
        result = await engine.traverse_tree(credential)

        assert result.outcomes["P"].status is NodeStatus.SKIPPED
        assert store.get_node("P").data.response == "echo: Say: Hello"
        assert len(fake_llm.calls) == 1

    @pytest.mark.asyncio
    async def test_failure_blocks_only_descendants(self, credential):
        store = GraphStore(graph(
            text_node("T", "Hello"),
            prompt_node("Bad", "fail {in}"),
            prompt_node("After", "after {x}"),
            prompt_node("Good", "ok {in}"),
        ))
        connect(store, Connection(source="T", target="Bad", target_handle="in"))
        connect(store, Connection(source="Bad", target="After", target_handle="x"))
        connect(store, Connection(source="T", target="Good", target_handle="in"))
        llm = FakeCompletionService(fail_on=["fail"])

        result = await make_engine(store, llm).traverse_tree(credential)

        assert result.outcomes["Bad"].status is NodeStatus.FAILED
        assert result.outcomes["After"].status is NodeStatus.BLOCKED
        assert result.outcomes["Good"].status is NodeStatus.COMPLETED
        assert store.get_node("Good").data.response == "echo: ok Hello"
        assert result.failed == ["Bad"]
        assert "after Hello" not in " ".join(llm.calls)

    @pytest.mark.asyncio
    async def test_cycle_aborts_before_running(self, fake_llm, credential):
        store = GraphStore(graph(
            text_node("T", "Hello"),
            prompt_node("A", "{b}"),
            prompt_node("B", "{a}"),
            edges=[edge("A", "B", "a"), edge("B", "A", "b")],
        ))
        before = store.state

        with pytest.raises(StructuralIntegrityError):
            await make_engine(store, fake_llm).traverse_tree(credential)

        assert fake_llm.calls == []
        assert store.state is before

    @pytest.mark.asyncio
    async def test_independent_branches_run_concurrently(self, credential):
        store = GraphStore(graph(prompt_node("A", "a"), prompt_node("B", "b"), prompt_node("C", "c")))
        llm = FakeCompletionService(delay=0.01)

        await make_engine(store, llm).traverse_tree(credential)

        assert sorted(llm.calls) == ["a", "b", "c"]
        assert llm.max_active == 3

    @pytest.mark.asyncio
    async def test_max_concurrency(self, credential):
        store = GraphStore(graph(prompt_node("A", "a"), prompt_node("B", "b"), prompt_node("C", "c")))
        llm = FakeCompletionService(delay=0.01)

        await make_engine(store, llm, Settings(max_concurrency=1)).traverse_tree(credential)

        assert llm.max_active == 1
        assert len(llm.calls) == 3

    @pytest.mark.asyncio
    async def test_cancelled_traversal_leaves_no_running_nodes(self, credential):
        store = GraphStore(graph(prompt_node("A", "a"), prompt_node("B", "b")))
        llm = FakeCompletionService(delay=10)

        traversal = asyncio.create_task(make_engine(store, llm).traverse_tree(credential))
        await asyncio.sleep(0.01)
        traversal.cancel()
        with pytest.raises(asyncio.CancelledError):
            await traversal

        node_tasks = [t for t in asyncio.all_tasks() if t.get_name().startswith("node:")]
        assert all(t.done() for t in node_tasks)
        assert llm.active == 0
        assert store.get_node("A").data.response == ""


class TestRerunPolicy:

    @pytest.fixture
    def ran_store(self):
        store = GraphStore(graph(
            text_node("T", "Hello"), prompt_node("P", "Say: {in}"), prompt_node("Q", "Again: {p}"),
        ))
        connect(store, Connection(source="T", target="P", target_handle="in"))
        connect(store, Connection(source="P", target="Q", target_handle="p"))
        return store

    @pytest.mark.asyncio
    async def test_full_reruns_everything(self, ran_store, fake_llm, credential):
        engine = make_engine(ran_store, fake_llm)
        await engine.traverse_tree(credential)
        await engine.traverse_tree(credential, policy=RerunPolicy.FULL)
        assert len(fake_llm.calls) == 4

    @pytest.mark.asyncio
    async def test_incremental_keeps_unchanged(self, ran_store, fake_llm, credential):
        engine = make_engine(ran_store, fake_llm)
        await engine.traverse_tree(credential)

        result = await engine.traverse_tree(credential, policy=RerunPolicy.INCREMENTAL)

        assert len(fake_llm.calls) == 2
        assert result.outcomes["P"].status is NodeStatus.CACHED
        assert result.outcomes["Q"].status is NodeStatus.CACHED

    @pytest.mark.asyncio
    async def test_incremental_reruns_changed_branch(self, ran_store, fake_llm, credential):
        engine = make_engine(ran_store, fake_llm)
        await engine.traverse_tree(credential)
        update_node(ran_store, "T", TextInputData(name="T", text="Bye"))

        result = await engine.traverse_tree(credential, policy=RerunPolicy.INCREMENTAL)

        assert result.outcomes["P"].status is NodeStatus.COMPLETED
        assert result.outcomes["Q"].status is NodeStatus.COMPLETED
        assert fake_llm.calls[2:] == ["Say: Bye", "Again: echo: Say: Bye"]


class TestDeletionDuringTraversal:

    @pytest.fixture
    def chain(self):
        store = GraphStore(graph(
            text_node("T", "Hello"), prompt_node("P", "Say: {in}"), prompt_node("Q", "Again: {p}"),
        ))
        connect(store, Connection(source="T", target="P", target_handle="in"))
        connect(store, Connection(source="P", target="Q", target_handle="p"))
        return store

    @pytest.mark.asyncio
    async def test_downstream_node_deleted_while_upstream_runs(self, chain, credential):
        llm = FakeCompletionService(
            on_call=lambda prompt: on_nodes_change(chain, [NodeRemoveChange(id="Q")])
        )

        result = await make_engine(chain, llm).traverse_tree(credential)

        assert llm.calls == ["Say: Hello"]
        assert result.outcomes["P"].status is NodeStatus.COMPLETED
        assert result.outcomes["Q"].status is NodeStatus.DISCARDED
        assert chain.get_node("Q") is None
        assert [(e.source, e.target) for e in chain.edges] == [("T", "P")]

    @pytest.mark.asyncio
    async def test_running_node_deleted(self, chain, credential):
        llm = FakeCompletionService(
            on_call=lambda prompt: on_nodes_change(chain, [NodeRemoveChange(id="P")])
        )

        result = await make_engine(chain, llm).traverse_tree(credential)

        assert llm.calls == ["Say: Hello"]
        assert result.outcomes["P"].status is NodeStatus.DISCARDED
        # Q lost its only slot with P
        assert result.outcomes["Q"].status is NodeStatus.SKIPPED
        assert chain.get_node("Q").data.inputs.values() == {}
        assert chain.edges == ()


class TestRandomGraphs:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    async def test_sources_always_run_before_targets(self, seed, credential):
        rng = random.Random(seed)
        size = 8
        sources = {i: [j for j in range(i) if rng.random() < 0.4] for i in range(size)}
        nodes = [
            prompt_node(f"n{i}", f"n{i}:" + "".join(f" {{h{j}}}" for j in sources[i]))
            for i in range(size)
        ]
        rng.shuffle(nodes)
        store = GraphStore(graph(*nodes))
        for i, upstream in sources.items():
            for j in upstream:
                result = connect(store, Connection(source=f"n{j}", target=f"n{i}", target_handle=f"h{j}"))
                assert result.success
        llm = FakeCompletionService()

        result = await make_engine(store, llm).traverse_tree(credential)

        assert not result.has_failures
        assert len(llm.calls) == size
        call_index = {
            i: next(k for k, call in enumerate(llm.calls) if call.startswith(f"n{i}:"))
            for i in range(size)
        }
        for i, upstream in sources.items():
            for j in upstream:
                assert call_index[j] < call_index[i]
                assert f"echo: n{j}:" in llm.calls[call_index[i]]
