"""Prompt sandbox CLI - run and inspect saved workflows.

Usage:
    promptsandbox run <workflow.json> [--policy=full|incremental] [--api-key=KEY] [--save]
    promptsandbox show <workflow.json>
    promptsandbox --version
    promptsandbox --help

Examples:
    promptsandbox run examples/summarize.json
    promptsandbox run examples/summarize.json --policy=incremental --save
    promptsandbox show examples/summarize.json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from promptsandbox import __version__
from promptsandbox.config import RerunPolicy, load_settings
from promptsandbox.domain.errors import StructuralIntegrityError
from promptsandbox.domain.models import NodeType, WorkflowDocument, node_output
from promptsandbox.library.credentials import credentials_manager
from promptsandbox.library.llm import CompletionService
from promptsandbox.services.storage import load_document
from promptsandbox.session import WorkflowSession


def _load(path: Path) -> WorkflowDocument | None:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return None
    try:
        return load_document(path)
    except (ValueError, OSError) as e:
        print(f"Error reading workflow: {e}", file=sys.stderr)
        return None


def _preview(text: str, width: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def cmd_run(args: argparse.Namespace, completion_service: CompletionService | None = None) -> int:
    """Run every node of a saved workflow.

    Args:
        args: Parsed command line arguments
        completion_service: Override for the LLM backend

    Returns:
        Exit code (0 when no node failed, 1 otherwise)
    """
    workflow_file = Path(args.file)
    document = _load(workflow_file)
    if document is None:
        return 1

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.api_key:
        credential = credentials_manager.set_api_key("openai", args.api_key)
    else:
        credential = credentials_manager.get_credential("openai")

    session = WorkflowSession(settings=settings, completion_service=completion_service)
    session.load_document(document)
    policy = RerunPolicy(args.policy) if args.policy else None

    print(f"▶ Executing: {workflow_file}")
    print(f"  Workflow: {document.name} ({len(document.graph.nodes)} nodes)")
    print()

    try:
        result = asyncio.run(session.traverse_tree(credential, policy=policy))
    except StructuralIntegrityError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("─" * 70)
    for node_id in result.order + [n for n in result.outcomes if n not in result.order]:
        outcome = result.outcomes[node_id]
        node = session.store.get_node(node_id)
        name = node.data.name if node is not None else node_id
        line = f"  [{outcome.status.value:>9}] {name}"
        if outcome.error is not None:
            line += f": {type(outcome.error).__name__}: {outcome.error}"
        elif outcome.reason:
            line += f" ({outcome.reason})"
        elif outcome.output:
            line += f" -> {_preview(outcome.output)}"
        print(line)
    print("─" * 70)

    if args.save:
        workflow_file.write_text(session.to_document().model_dump_json(indent=2), encoding="utf8")
        print(f"Saved: {workflow_file}")

    if result.has_failures:
        print(f"✗ {session.ui_error_message}", file=sys.stderr)
        return 1
    print("✓ Success!")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print the nodes and edges of a saved workflow."""
    workflow_file = Path(args.file)
    document = _load(workflow_file)
    if document is None:
        return 1

    graph = document.graph
    print(f"Workflow: {document.name} (id: {document.id})")
    print()

    if graph.nodes:
        print(f"Nodes: {len(graph.nodes)}")
        for node in graph.nodes:
            detail = node.data.prompt if NodeType(node.type) is NodeType.LLM_PROMPT else node_output(node)
            print(f"  • {node.data.name or node.id} ({node.type})")
            if detail:
                print(f"      {_preview(detail)}")
        print()

    if graph.edges:
        names = {node.id: node.data.name or node.id for node in graph.nodes}
        print(f"Edges: {len(graph.edges)}")
        for edge in graph.edges:
            print(
                f"  • {names.get(edge.source, edge.source)} -> "
                f"{names.get(edge.target, edge.target)}.{{{edge.target_handle}}}"
            )
        print()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptsandbox",
        description="Prompt sandbox - run graphs of prompts and text inputs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  promptsandbox run workflow.json
  promptsandbox run workflow.json --policy=incremental --save
  promptsandbox show workflow.json
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"promptsandbox {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser(
        "run",
        help="Run every node of a saved workflow"
    )
    run_parser.add_argument(
        "file",
        help="Path to the workflow JSON file"
    )
    run_parser.add_argument(
        "--policy",
        choices=[p.value for p in RerunPolicy],
        default=None,
        help="Re-run policy (default: from configuration)"
    )
    run_parser.add_argument(
        "--api-key",
        default=None,
        help="OpenAI API key (default: OPENAI_API_KEY)"
    )
    run_parser.add_argument(
        "--save",
        action="store_true",
        help="Write the responses back into the workflow file"
    )

    show_parser = subparsers.add_parser(
        "show",
        help="List the nodes and edges of a saved workflow"
    )
    show_parser.add_argument(
        "file",
        help="Path to the workflow JSON file"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "show":
        return cmd_show(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
