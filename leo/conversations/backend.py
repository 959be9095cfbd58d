"""Snapshot storage — MongoDB when configured, a JSON file otherwise.

The backend is picked once at startup by :func:`connect_backend`:

- **Production**: ``MONGODB_URI`` set and reachable → :class:`MongoStore`
  (which still falls back to the JSON file on any driver error)
- **Dev/test**: no URI, or the server cannot be reached → :class:`FileStore`
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pymongo import MongoClient, ReplaceOne
from pymongo.errors import PyMongoError

from leo.config import settings
from leo.conversations.models import Conversation, SessionMetadata, Snapshot
from leo.errors import PersistenceError

if TYPE_CHECKING:
    from pathlib import Path

    from leo.config import Settings

logger = logging.getLogger(__name__)

METADATA_COLLECTION = "metadata"
CONVERSATIONS_COLLECTION = "conversations"


class StorageBackend(ABC):
    """Load, save and clear full snapshots."""

    name: str = "storage"

    @abstractmethod
    async def load_all(self) -> Snapshot:
        """Read every stored session. Returns an empty snapshot if none."""

    @abstractmethod
    async def save_all(self, snapshot: Snapshot) -> None:
        """Persist *snapshot*. Raises ``PersistenceError`` on failure."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete everything this backend has stored."""

    async def close(self) -> None:  # noqa: B027
        """Release connections. No-op by default."""


class FileStore(StorageBackend):
    """Whole-file JSON snapshot on the local filesystem.

    Every save rewrites the file; a crash mid-write can leave it truncated,
    in which case the next load logs the problem and starts empty.
    """

    name = "file"

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or settings.conversations_file

    def _read(self) -> Snapshot:
        if not self.path.exists():
            return Snapshot()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Snapshot.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.exception("Malformed conversations file %s — starting empty", self.path)
            return Snapshot()
        except OSError:
            logger.exception("Could not read conversations file %s", self.path)
            return Snapshot()

    def _write(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)
        self.path.write_text(text, encoding="utf-8")

    async def load_all(self) -> Snapshot:
        return await asyncio.to_thread(self._read)

    async def save_all(self, snapshot: Snapshot) -> None:
        try:
            await asyncio.to_thread(self._write, snapshot)
        except OSError as exc:
            msg = f"Could not write {self.path}: {exc}"
            raise PersistenceError(msg) from exc
        logger.debug(
            "Saved %d session(s) to %s", len(snapshot.metadata), self.path
        )

    async def clear_all(self) -> None:
        try:
            await asyncio.to_thread(self.path.unlink, missing_ok=True)
        except OSError as exc:
            msg = f"Could not delete {self.path}: {exc}"
            raise PersistenceError(msg) from exc


class MongoStore(StorageBackend):
    """Two MongoDB collections keyed by ``sessionId``.

    The synchronous pymongo driver runs in ``asyncio.to_thread()``. Any
    driver error degrades to *fallback* for that call.

    Args:
        client: Connected ``MongoClient``.
        database: Database name.
        fallback: FileStore used when a MongoDB call fails.
    """

    name = "mongodb"

    def __init__(self, client: MongoClient, database: str, fallback: FileStore) -> None:
        self._client = client
        self._db = client[database]
        self.fallback = fallback

    @property
    def metadata(self):
        return self._db[METADATA_COLLECTION]

    @property
    def conversations(self):
        return self._db[CONVERSATIONS_COLLECTION]

    # -- Blocking helpers (run in a worker thread) -----------------------------

    def _read(self) -> Snapshot:
        metadata_docs = list(
            self.metadata.find({}, {"_id": 0}).sort("startTime", 1)
        )
        conversation_docs = list(self.conversations.find({}, {"_id": 0}))
        return Snapshot(
            metadata=[SessionMetadata.from_dict(d) for d in metadata_docs],
            conversations=[Conversation.from_dict(d) for d in conversation_docs],
        )

    def _upsert(self, collection: Any, docs: list[dict[str, Any]]) -> None:
        if not docs:
            return
        collection.bulk_write(
            [ReplaceOne({"sessionId": d["sessionId"]}, d, upsert=True) for d in docs],
            ordered=False,
        )

    def _write(self, snapshot: Snapshot) -> None:
        self._upsert(self.metadata, [m.to_dict() for m in snapshot.metadata])
        self._upsert(self.conversations, [c.to_dict() for c in snapshot.conversations])

    def _delete(self) -> None:
        self.metadata.delete_many({})
        self.conversations.delete_many({})

    # -- StorageBackend --------------------------------------------------------

    async def load_all(self) -> Snapshot:
        try:
            return await asyncio.to_thread(self._read)
        except (PyMongoError, KeyError, ValueError):
            logger.exception("MongoDB load failed — reading %s instead", self.fallback.path)
            return await self.fallback.load_all()

    async def save_all(self, snapshot: Snapshot) -> None:
        try:
            await asyncio.to_thread(self._write, snapshot)
        except PyMongoError:
            logger.exception("MongoDB save failed — writing %s instead", self.fallback.path)
            await self.fallback.save_all(snapshot)
            return
        logger.debug("Upserted %d session(s) to MongoDB", len(snapshot.metadata))

    async def clear_all(self) -> None:
        try:
            await asyncio.to_thread(self._delete)
        except PyMongoError as exc:
            msg = f"Could not clear MongoDB collections: {exc}"
            raise PersistenceError(msg) from exc
        finally:
            await self.fallback.clear_all()

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)


def _open_mongo(uri: str, timeout_ms: int) -> MongoClient:
    """Connect and ping so an unreachable server fails here, not later."""
    client: MongoClient = MongoClient(
        uri,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        retryWrites=True,
    )
    try:
        client.admin.command("ping")
    except PyMongoError:
        client.close()
        raise
    return client


async def connect_backend(config: Settings | None = None) -> StorageBackend:
    """Return the storage backend for *config* (default: global settings).

    Never raises: a missing URI silently selects the JSON file, and a
    failed connection is logged before doing the same.
    """
    config = config or settings
    file_store = FileStore(config.conversations_file)

    if not config.mongodb_uri:
        logger.info("MONGODB_URI not set — using %s", file_store.path)
        return file_store

    try:
        client = await asyncio.to_thread(
            _open_mongo, config.mongodb_uri, config.mongodb_timeout_ms
        )
    except (PyMongoError, ValueError):
        logger.exception("MongoDB connection failed — using %s", file_store.path)
        return file_store

    logger.info("Connected to MongoDB (database=%s)", config.mongodb_database)
    return MongoStore(client, config.mongodb_database, fallback=file_store)
