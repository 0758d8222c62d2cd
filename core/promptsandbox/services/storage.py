"""Workflow persistence.

The engine treats storage as whole-graph get/set keyed by a workflow id.
Two adapters ship here: an in-memory one and a directory of JSON files.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from promptsandbox.domain.models import WorkflowDocument, WorkflowSummary

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class WorkflowStorage(Protocol):
    def get(self, workflow_id: str) -> WorkflowDocument | None: ...

    def set(self, document: WorkflowDocument) -> None: ...

    def list(self) -> list[WorkflowSummary]: ...

    def delete(self, workflow_id: str) -> bool: ...


class InMemoryStorage:
    def __init__(self) -> None:
        self._documents: dict[str, WorkflowDocument] = {}

    def get(self, workflow_id: str) -> WorkflowDocument | None:
        return self._documents.get(workflow_id)

    def set(self, document: WorkflowDocument) -> None:
        self._documents[document.id] = document

    def list(self) -> list[WorkflowSummary]:
        return [doc.summary() for doc in self._documents.values()]

    def delete(self, workflow_id: str) -> bool:
        return self._documents.pop(workflow_id, None) is not None


class FileStorage:
    """Stores each workflow as ``<directory>/<id>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, workflow_id: str) -> Path:
        if not _SAFE_ID.match(workflow_id):
            raise ValueError(f"Invalid workflow id: {workflow_id!r}")
        return self.directory / f"{workflow_id}.json"

    def get(self, workflow_id: str) -> WorkflowDocument | None:
        path = self._path(workflow_id)
        if not path.exists():
            return None
        return load_document(path)

    def set(self, document: WorkflowDocument) -> None:
        path = self._path(document.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(document.model_dump_json(indent=2), encoding="utf8")
        tmp.replace(path)
        sys.stderr.write(f"[STORAGE] Saved {path}\n")
        sys.stderr.flush()

    def list(self) -> list[WorkflowSummary]:
        if not self.directory.exists():
            return []
        summaries = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                summaries.append(load_document(path).summary())
            except ValueError as exc:
                sys.stderr.write(f"[STORAGE] Skipping {path.name}: {exc}\n")
                sys.stderr.flush()
        return summaries

    def delete(self, workflow_id: str) -> bool:
        path = self._path(workflow_id)
        if not path.exists():
            return False
        path.unlink()
        return True


def load_document(path: Path) -> WorkflowDocument:
    """Read a workflow document from a JSON file.

    Raises:
        ValueError: If the file does not hold a valid workflow document
    """
    try:
        return WorkflowDocument.model_validate_json(Path(path).read_text(encoding="utf8"))
    except ValidationError as exc:
        raise ValueError(exc.errors(include_url=False)) from exc
