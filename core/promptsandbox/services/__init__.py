"""Core services for the prompt sandbox."""

from .storage import FileStorage, InMemoryStorage, WorkflowStorage, load_document

__all__ = [
	"FileStorage",
	"InMemoryStorage",
	"WorkflowStorage",
	"load_document",
]
