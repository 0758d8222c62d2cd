from __future__ import annotations

import pytest

from graph_helpers import FakeCompletionService
from promptsandbox.config import Settings
from promptsandbox.library.credentials import Credential, credentials_manager
from promptsandbox.store.graph_store import GraphStore


@pytest.fixture
def store():
    return GraphStore()


@pytest.fixture
def fake_llm():
    return FakeCompletionService()


@pytest.fixture
def credential():
    return Credential(provider="openai", api_key="sk-test")


@pytest.fixture
def settings(tmp_path):
    return Settings(storage_dir=tmp_path / "workflows")


@pytest.fixture(autouse=True)
def _isolate_credentials(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    credentials_manager.clear()
    yield
    credentials_manager.clear()
