"""Conversation sessions — models, in-memory store, and persistence."""

from leo.conversations.backend import FileStore, MongoStore, StorageBackend, connect_backend
from leo.conversations.models import Conversation, Message, Role, SessionMetadata, Snapshot
from leo.conversations.saver import SnapshotSaver
from leo.conversations.store import ConversationStore

__all__ = [
    "Conversation",
    "ConversationStore",
    "FileStore",
    "Message",
    "MongoStore",
    "Role",
    "SessionMetadata",
    "Snapshot",
    "SnapshotSaver",
    "StorageBackend",
    "connect_backend",
]
