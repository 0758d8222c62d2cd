"""Stdio RPC server for the prompt sandbox.

Protocol:
- JSON per line over stdin/stdout.
- Requests: {"id": number, "method": string, "params"?: object}
- Responses: {"id": number, "result"?: any, "error"?: {"message": string}}

Graph mutations answer with a mutation result ({"success", "error", ...});
only malformed requests and unexpected failures produce an RPC error.
Diagnostics go to stderr so stdout stays a clean protocol channel.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from promptsandbox.config import RerunPolicy, load_settings
from promptsandbox.domain.models import (
    EDGE_CHANGES_ADAPTER,
    NODE_CHANGES_ADAPTER,
    Connection,
    Edge,
    NodeType,
    Position,
    PositionUpdate,
    WorkflowSummary,
)
from promptsandbox.library.credentials import Credential, credentials_manager
from promptsandbox.session import WorkflowSession
from promptsandbox.services.storage import FileStorage
from promptsandbox.store.results import MutationResult


class _GetNodesParams(BaseModel):
    node_ids: list[str]


class _ChangesParams(BaseModel):
    changes: list[dict[str, Any]]


class _EdgesDeleteParams(BaseModel):
    edges: list[Edge]


class _DeleteEdgesParams(BaseModel):
    source_handle: str


class _AddNodeParams(BaseModel):
    type: NodeType
    position: Position = Field(default_factory=lambda: Position(x=0, y=0))
    parent_node: str | None = None


class _PlaceholderAddParams(BaseModel):
    placeholder_id: str
    type: NodeType


class _UpdateNodeParams(BaseModel):
    node_id: str
    data: dict[str, Any]
    new_position: PositionUpdate | None = None


class _UpdateInputExampleParams(BaseModel):
    node_id: str
    handle: str
    value: str
    index: int

    @field_validator("index")
    def _validate_index(cls, v):
        if v < 0:
            raise ValueError("index must be >= 0")
        return v


class _RunParams(BaseModel):
    api_key: str | None = None
    provider: str = "openai"
    policy: RerunPolicy | None = None


class _RunNodeParams(_RunParams):
    node_id: str


class _WorkflowParams(BaseModel):
    workflow_id: str
    name: str | None = None


_SESSION: WorkflowSession | None = None


def get_session() -> WorkflowSession:
    """Return the process-wide session, creating it on first use."""
    global _SESSION
    if _SESSION is None:
        settings = load_settings()
        _SESSION = WorkflowSession(settings=settings, storage=FileStorage(settings.storage_dir))
    return _SESSION


def main() -> None:
    """Run the RPC loop reading stdin and writing stdout."""

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue

        try:
            request = json.loads(line)
        except json.JSONDecodeError:
            continue

        response = handle_request(request)
        sys.stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
        sys.stdout.flush()

        if response.get("result") == "shutdown":
            return


def handle_request(request: Any, session: WorkflowSession | None = None) -> dict[str, Any]:
    """Handle one RPC request.

    Args:
        request: Parsed JSON object.
        session: Session to operate on (default: the process-wide one).

    Returns:
        RPC response dict.
    """

    if not isinstance(request, dict):
        return {"id": -1, "error": {"message": "Invalid request"}}

    request_id = request.get("id")
    method = request.get("method")

    if not isinstance(request_id, int) or not isinstance(method, str):
        return {"id": -1, "error": {"message": "Invalid request fields"}}

    if method == "hello":
        return {"id": request_id, "result": "hello from promptsandbox-core"}

    if method == "ping":
        return {"id": request_id, "result": "pong"}

    if method == "shutdown":
        return {"id": request_id, "result": "shutdown"}

    try:
        result = _dispatch(session or get_session(), method, request.get("params"))
    except _UnknownMethod:
        return {"id": request_id, "error": {"message": f"Unknown method: {method}"}}
    except Exception as exc:  # noqa: BLE001 - return structured RPC errors
        sys.stderr.write(f"[RPC] {method} failed: {type(exc).__name__}: {exc}\n")
        sys.stderr.flush()
        return {"id": request_id, "error": {"message": _format_error(exc)}}

    return {"id": request_id, "result": result}


class _UnknownMethod(Exception):
    pass


def _dispatch(session: WorkflowSession, method: str, raw_params: Any) -> Any:
    if method == "get_graph":
        return session.state.model_dump(mode="json")

    if method == "get_nodes":
        params = _parse_params(raw_params, _GetNodesParams)
        return [node.model_dump(mode="json") for node in session.get_nodes(params.node_ids)]

    if method == "nodes_change":
        params = _parse_params(raw_params, _ChangesParams)
        changes = _validate_changes(NODE_CHANGES_ADAPTER, params.changes)
        return _mutation(session.on_nodes_change(changes))

    if method == "edges_change":
        params = _parse_params(raw_params, _ChangesParams)
        changes = _validate_changes(EDGE_CHANGES_ADAPTER, params.changes)
        return _mutation(session.on_edges_change(changes))

    if method == "connect":
        params = _parse_params(raw_params, Connection)
        return _mutation(session.on_connect(params))

    if method == "edges_delete":
        params = _parse_params(raw_params, _EdgesDeleteParams)
        return _mutation(session.on_edges_delete(params.edges))

    if method == "delete_edges":
        params = _parse_params(raw_params, _DeleteEdgesParams)
        return _mutation(session.delete_edges(params.source_handle))

    if method == "add_node":
        params = _parse_params(raw_params, _AddNodeParams)
        return _mutation(session.on_add(params.type, params.position, params.parent_node))

    if method == "placeholder_add":
        params = _parse_params(raw_params, _PlaceholderAddParams)
        return _mutation(session.on_placeholder_add(params.placeholder_id, params.type))

    if method == "update_node":
        params = _parse_params(raw_params, _UpdateNodeParams)
        return _mutation(session.update_node(params.node_id, params.data, params.new_position))

    if method == "update_input_example":
        params = _parse_params(raw_params, _UpdateInputExampleParams)
        return _mutation(
            session.update_input_example(params.node_id, params.handle, params.value, params.index)
        )

    if method == "clear_responses":
        session.clear_all_node_responses()
        return {"success": True}

    if method == "clear_graph":
        session.clear_graph()
        return {"success": True}

    if method == "traverse_tree":
        params = _parse_params(raw_params, _RunParams)
        credential = _credential(params)
        result = asyncio.run(session.traverse_tree(credential, policy=params.policy))
        return result.to_dict()

    if method == "run_node":
        params = _parse_params(raw_params, _RunNodeParams)
        outcome = asyncio.run(session.run_node(params.node_id, _credential(params)))
        return outcome.to_dict()

    if method == "list_workflows":
        return [summary.model_dump() for summary in session.list_workflows()]

    if method == "load_workflow":
        params = _parse_params(raw_params, _WorkflowParams)
        if not session.load_workflow(params.workflow_id):
            session.new_workflow(params.workflow_id, params.name or "Untitled")
        return session.state.model_dump(mode="json")

    if method == "save_workflow":
        params = _parse_params(raw_params, _WorkflowParams)
        current = session.current_workflow
        name = params.name or (current.name if current else "Untitled")
        session.current_workflow = WorkflowSummary(id=params.workflow_id, name=name)
        return session.save_workflow().model_dump()

    raise _UnknownMethod(method)


def _credential(params: _RunParams) -> Credential | None:
    if params.api_key:
        return credentials_manager.set_api_key(params.provider, params.api_key)
    return credentials_manager.get_credential(params.provider)


def _mutation(result: MutationResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "node_id": result.node_id,
        "edge_ids": list(result.edge_ids),
        "error": None
        if result.error is None
        else {"reason": result.error.reason.value, "message": str(result.error)},
    }


def _validate_changes(adapter: Any, changes: list[dict[str, Any]]) -> list[Any]:
    try:
        return adapter.validate_python(changes)
    except ValidationError as exc:
        raise ValueError(exc.errors(include_url=False)) from exc


def _parse_params(value: Any, model: type[BaseModel]) -> Any:
    if value is None:
        # Pydantic will produce a helpful error.
        value = {}
    if not isinstance(value, dict):
        raise ValueError("params must be an object")

    try:
        return model.model_validate(value)
    except ValidationError as exc:
        # Keep errors readable for the UI.
        raise ValueError(exc.errors(include_url=False)) from exc


def _format_error(exc: Exception) -> str:
    message = str(exc).strip() or exc.__class__.__name__
    return message


if __name__ == "__main__":
    main()
