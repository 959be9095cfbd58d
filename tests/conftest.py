"""Shared test fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from leo.conversations.backend import FileStore
from leo.conversations.saver import SnapshotSaver
from leo.conversations.store import ConversationStore


@pytest.fixture
def store() -> ConversationStore:
    """A fresh ConversationStore with the default capacity of 100."""
    return ConversationStore(capacity=100)


@pytest.fixture
def file_store(tmp_path: Path) -> FileStore:
    """FileStore writing into a temporary directory."""
    return FileStore(tmp_path / "data" / "conversations.json")


@pytest.fixture
def saver(store: ConversationStore, file_store: FileStore) -> SnapshotSaver:
    """SnapshotSaver for *store* with a short debounce window."""
    return SnapshotSaver(file_store, store.snapshot, delay=0.05)


@pytest.fixture
def generate() -> AsyncMock:
    """Stand-in for leo.llm.client.generate."""
    return AsyncMock(return_value="hi! (^•⩊•^)")


@pytest.fixture(autouse=True)
def _no_mongo(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests never reach a real MongoDB server."""
    monkeypatch.setattr("leo.config.settings.mongodb_uri", "")
