"""ConversationStore — live sessions, their metadata, and eviction."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from leo.config import settings
from leo.conversations.models import (
    Conversation,
    Message,
    Role,
    SessionMetadata,
    Snapshot,
    utc_now,
)
from leo.errors import SessionNotFoundError

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)


class ConversationStore:
    """In-memory map of session id → messages, plus per-session metadata.

    Sessions are kept in insertion order; when the live count exceeds
    *capacity* the oldest-inserted idle session is dropped together with
    its metadata. A session whose turn is in flight is skipped. Construct
    one per process (or per test) and inject it.

    Args:
        capacity: Maximum number of live sessions (default from settings).
    """

    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity or settings.max_sessions
        self._conversations: dict[str, Conversation] = {}
        self._metadata: dict[str, SessionMetadata] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._conversations

    # -- Sessions --------------------------------------------------------------

    def lock(self, session_id: str) -> asyncio.Lock:
        """Return the lock that serializes turns for *session_id*."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def get_or_create(
        self, session_id: str, first_message: str
    ) -> tuple[Conversation, SessionMetadata, bool]:
        """Return ``(conversation, metadata, is_new)`` for *session_id*."""
        conversation = self._conversations.get(session_id)
        if conversation is not None:
            return conversation, self._metadata[session_id], False

        conversation = Conversation(session_id=session_id)
        metadata = SessionMetadata.create(session_id, first_message)
        self._conversations[session_id] = conversation
        self._metadata[session_id] = metadata
        logger.info("New session %s (%s)", metadata.id, session_id)
        return conversation, metadata, True

    def get_metadata(self, session_id: str) -> SessionMetadata | None:
        return self._metadata.get(session_id)

    def append_message(self, session_id: str, role: Role | str, content: str) -> datetime:
        """Append a turn to the session and its metadata. Returns its timestamp.

        Raises ``SessionNotFoundError`` if ``get_or_create`` was never
        called for *session_id* (or the session has since been evicted).
        """
        conversation = self._conversations.get(session_id)
        if conversation is None:
            raise SessionNotFoundError(session_id)
        metadata = self._metadata[session_id]

        # Keep timestamps non-decreasing even if the wall clock steps back.
        timestamp = max(utc_now(), metadata.last_message)
        message = Message(role=Role(role), content=content, timestamp=timestamp)
        conversation.messages.append(message)
        metadata.record(message)

        self.evict_if_over_capacity(exclude=session_id)
        return timestamp

    def recent_window(self, session_id: str, n: int | None = None) -> list[dict[str, str]]:
        """Last *n* messages in role/content form for the model API."""
        n = settings.context_window_size if n is None else n
        conversation = self._conversations.get(session_id)
        if conversation is None or n <= 0:
            return []
        return [m.to_api() for m in conversation.messages[-n:]]

    def in_flight(self, session_id: str) -> bool:
        """True while a turn holds the lock for *session_id*."""
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def evict_if_over_capacity(
        self, capacity: int | None = None, *, exclude: str | None = None
    ) -> str | None:
        """Drop the oldest-inserted session when over capacity.

        *exclude* and sessions with a turn in flight are never dropped; the
        next-oldest candidate goes instead. If every candidate is protected
        the store stays over capacity until a later call.

        Returns the evicted session id, or None.
        """
        capacity = capacity or self.capacity
        if len(self._conversations) <= capacity:
            return None

        session_id = next(
            (
                sid
                for sid in self._conversations
                if sid != exclude and not self.in_flight(sid)
            ),
            None,
        )
        if session_id is None:
            logger.warning(
                "Over capacity (%d/%d) but every session is busy",
                len(self._conversations),
                capacity,
            )
            return None

        del self._conversations[session_id]
        del self._metadata[session_id]
        self._locks.pop(session_id, None)
        logger.info("Evicted oldest session %s (capacity=%d)", session_id, capacity)
        return session_id

    def all_metadata(self) -> list[SessionMetadata]:
        """All metadata, most recently active first."""
        return sorted(self._metadata.values(), key=lambda m: m.last_message, reverse=True)

    def clear(self) -> int:
        """Remove every session. Returns how many were removed."""
        count = len(self._conversations)
        self._conversations.clear()
        self._metadata.clear()
        self._locks.clear()
        logger.info("Cleared %d session(s)", count)
        return count

    # -- Posting context -------------------------------------------------------

    def recent_context(
        self,
        window: timedelta | None = None,
        per_session: int | None = None,
        preview_chars: int | None = None,
    ) -> str:
        """Summarize sessions active within *window* for the posting prompt.

        Each qualifying session becomes one line of its last *per_session*
        messages rendered as ``role: content`` (content cut to
        *preview_chars*) joined by `` | ``. Empty string when none qualify.
        """
        window = window or timedelta(minutes=settings.recent_context_minutes)
        per_session = per_session or settings.recent_context_messages
        preview_chars = preview_chars or settings.recent_preview_chars

        cutoff = utc_now() - window
        previews = []
        for metadata in self._metadata.values():
            if metadata.last_message < cutoff:
                continue
            previews.append(
                " | ".join(
                    f"{m.role}: {m.content[:preview_chars]}"
                    for m in metadata.messages[-per_session:]
                )
            )
        return "\n".join(previews)

    # -- Snapshots -------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Copy the current state for persistence."""
        return Snapshot(
            metadata=[
                SessionMetadata.from_dict(m.to_dict()) for m in self._metadata.values()
            ],
            conversations=[
                Conversation(session_id=c.session_id, messages=[m.copy() for m in c.messages])
                for c in self._conversations.values()
            ],
            last_saved=utc_now(),
        )

    def restore(self, snapshot: Snapshot) -> int:
        """Replace the live state with *snapshot*. Returns the session count.

        Sessions are re-inserted in metadata order so eviction keeps
        targeting the oldest. A conversation without metadata is skipped;
        metadata without a conversation is rebuilt from its message copies.
        """
        self.clear()
        conversations = {c.session_id: c for c in snapshot.conversations}
        for metadata in snapshot.metadata:
            conversation = conversations.pop(metadata.session_id, None)
            if conversation is None:
                conversation = Conversation(
                    session_id=metadata.session_id,
                    messages=[m.copy() for m in metadata.messages],
                )
            self._conversations[metadata.session_id] = conversation
            self._metadata[metadata.session_id] = metadata

        if conversations:
            logger.warning(
                "Skipped %d conversation(s) without metadata: %s",
                len(conversations),
                ", ".join(conversations),
            )

        while self.evict_if_over_capacity():
            pass
        logger.info("Restored %d session(s)", len(self._conversations))
        return len(self._conversations)
