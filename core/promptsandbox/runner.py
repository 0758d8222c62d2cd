"""Single-node execution.

``NodeRunner.run_node`` produces one node's output:

- text inputs: the literal text, complete immediately;
- placeholders: an empty output, complete immediately;
- LLM prompts: the template resolved against the node's recorded inputs,
  sent through exactly one completion call, the reply written into
  ``response`` and pushed to direct successors before the run returns.

The node is read from the store by id at the start of the run and again
before write-back. A node deleted in between has its result discarded.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum

from promptsandbox.config import Settings
from promptsandbox.domain.errors import ExternalCallError, PromptTemplateError
from promptsandbox.domain.models import NodeType, node_output
from promptsandbox.execution.resolver import PromptResolver
from promptsandbox.library.credentials import Credential
from promptsandbox.library.llm import CompletionService, LangChainCompletionService
from promptsandbox.store.graph_store import GraphStore
from promptsandbox.store.propagation import propagate_from


class NodeStatus(str, Enum):
    """Outcome of one node in a run."""

    COMPLETED = "completed"
    CACHED = "cached"
    SKIPPED = "skipped"
    FAILED = "failed"
    BLOCKED = "blocked"
    DISCARDED = "discarded"


_SATISFIED = {NodeStatus.COMPLETED, NodeStatus.CACHED, NodeStatus.SKIPPED, NodeStatus.DISCARDED}


@dataclass(frozen=True, slots=True)
class NodeOutcome:
    """Result of running a node.

    Attributes:
        node_id: The node this outcome belongs to
        status: What happened
        output: The node's output after the run, if it has one
        error: Exception if the run failed, None otherwise
        reason: Short explanation for skipped, blocked or discarded nodes
    """
    node_id: str
    status: NodeStatus
    output: str | None = None
    error: Exception | None = None
    reason: str | None = None

    @property
    def success(self) -> bool:
        return self.status not in (NodeStatus.FAILED, NodeStatus.BLOCKED)

    @property
    def satisfied(self) -> bool:
        """Whether successors may run after this outcome."""
        return self.status in _SATISFIED

    def to_dict(self) -> dict[str, str | None]:
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "output": self.output,
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "reason": self.reason,
        }


class NodeRunner:
    """Runs individual nodes against the store."""

    def __init__(
        self,
        store: GraphStore,
        completion_service: CompletionService | None = None,
        *,
        resolver: PromptResolver | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.completion_service = completion_service or LangChainCompletionService(self.settings)
        self.resolver = resolver or PromptResolver()

    async def run_node(
        self,
        node_id: str,
        credential: Credential | None,
        *,
        force: bool = True,
    ) -> NodeOutcome:
        """Run one node.

        Args:
            node_id: Node to run
            credential: Credential for the completion call (LLM nodes only)
            force: Re-run an LLM node even if its stored response was produced
                from the same resolved prompt

        Returns:
            NodeOutcome; external-call and template errors are reported as
            ``failed`` outcomes rather than raised
        """
        node = self.store.get_node(node_id)
        if node is None:
            return NodeOutcome(node_id, NodeStatus.DISCARDED, reason="node no longer exists")

        node_type = NodeType(node.type)
        if node_type is NodeType.TEXT_INPUT or node_type is NodeType.PLACEHOLDER:
            with self.store.transaction() as tx:
                propagate_from(tx, node_id)
            return NodeOutcome(node_id, NodeStatus.COMPLETED, output=node_output(node))

        if node_type is NodeType.LLM_PROMPT:
            return await self._run_llm_node(node, credential, force=force)

        raise ValueError(f"Unhandled node type: {node.type}")

    async def _run_llm_node(self, node, credential: Credential | None, *, force: bool) -> NodeOutcome:
        node_id = node.id
        try:
            resolved = self.resolver.resolve(node.data.prompt, node.data.inputs)
        except PromptTemplateError as exc:
            sys.stderr.write(f"[RUNNER] {node_id} template error: {exc}\n")
            sys.stderr.flush()
            return NodeOutcome(node_id, NodeStatus.FAILED, error=exc)

        if resolved.missing and self.settings.skip_unresolved_prompts:
            return NodeOutcome(
                node_id,
                NodeStatus.SKIPPED,
                output=node.data.response,
                reason=f"unresolved inputs: {', '.join(resolved.missing)}",
            )
        if not resolved.text.strip():
            return NodeOutcome(node_id, NodeStatus.SKIPPED, output=node.data.response, reason="empty prompt")
        if not force and node.data.response and node.data.response_prompt == resolved.text:
            return NodeOutcome(node_id, NodeStatus.CACHED, output=node.data.response)

        if credential is None:
            error = ExternalCallError("No credential available for the completion call", node_id=node_id)
            return NodeOutcome(node_id, NodeStatus.FAILED, error=error)

        sys.stderr.write(f"[RUNNER] Running {node_id}: {resolved!r}\n")
        sys.stderr.flush()
        try:
            text = await self.completion_service.complete(resolved.text, node.data.parameters, credential)
        except ExternalCallError as exc:
            exc.node_id = node_id
            sys.stderr.write(f"[RUNNER] {node_id} failed: {exc}\n")
            sys.stderr.flush()
            return NodeOutcome(node_id, NodeStatus.FAILED, error=exc)

        return self._write_back(node_id, resolved.text, text)

    def _write_back(self, node_id: str, prompt: str, text: str) -> NodeOutcome:
        """Store ``text`` as the node's response and propagate it.

        The existence check and the write share one transaction.
        """
        with self.store.transaction() as tx:
            current = tx.get_node(node_id)
            if current is None or NodeType(current.type) is not NodeType.LLM_PROMPT:
                discarded = True
            else:
                discarded = False
                data = current.data.model_copy(update={"response": text, "response_prompt": prompt})
                tx.replace_node(current.model_copy(update={"data": data}))
                propagate_from(tx, node_id)

        if discarded:
            sys.stderr.write(f"[RUNNER] {node_id} was removed during its run; result discarded\n")
            sys.stderr.flush()
            return NodeOutcome(node_id, NodeStatus.DISCARDED, reason="node removed during run")

        return NodeOutcome(node_id, NodeStatus.COMPLETED, output=text)
