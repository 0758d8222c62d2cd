#!/usr/bin/env python3
"""Demo script: build a small prompt graph and run it.

Builds Text Input -> LLM Prompt -> LLM Prompt through the session API, runs
the whole graph and saves it next to this file. Needs OPENAI_API_KEY.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add core to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from promptsandbox.domain.models import Connection, NodeType, Position
from promptsandbox.library.credentials import credentials_manager
from promptsandbox.services.storage import FileStorage
from promptsandbox.session import WorkflowSession


async def demo() -> int:
    print("=" * 60)
    print("Prompt Sandbox - Traversal Demo")
    print("=" * 60)

    credential = credentials_manager.get_credential("openai")
    if credential is None:
        print("✗ Set OPENAI_API_KEY to run this demo.")
        return 1

    session = WorkflowSession(storage=FileStorage(Path(__file__).parent))
    session.new_workflow("demo", "Haiku pipeline")

    topic = session.on_add(NodeType.TEXT_INPUT, Position(x=0, y=0)).node_id
    haiku = session.on_add(NodeType.LLM_PROMPT, Position(x=300, y=0)).node_id
    title = session.on_add(NodeType.LLM_PROMPT, Position(x=600, y=0)).node_id

    session.update_node(topic, {"name": "Topic", "text": "autumn rain on a tin roof"})
    session.update_node(haiku, {"name": "Haiku", "prompt": "Write a haiku about {topic}."})
    session.update_node(title, {"name": "Title", "prompt": "Give this poem a short title:\n{poem}"})
    session.on_connect(Connection(source=topic, target=haiku, target_handle="topic"))
    session.on_connect(Connection(source=haiku, target=title, target_handle="poem"))

    print("\n▶ Running 3 nodes")
    result = await session.traverse_tree(credential)

    print("\n" + "─" * 60)
    for node_id in result.order:
        node = session.state.get_node(node_id)
        print(f"[{result.outcomes[node_id].status.value}] {node.data.name}")
        if node.data.response:
            print(f"  {node.data.response}")
    print("─" * 60)

    summary = session.save_workflow()
    print(f"\nSaved {summary.name} to {Path(__file__).parent / (summary.id + '.json')}")
    return 1 if result.has_failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(demo()))
