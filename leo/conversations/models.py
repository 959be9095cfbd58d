"""Conversation data model and its persisted (camelCase JSON) form."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

STATUS_ACTIVE = "ACTIVE"


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds.

    Persisted timestamps carry millisecond precision, so in-memory values
    are truncated the same way to keep save/load round trips exact.
    """
    now = datetime.now(UTC)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def format_timestamp(ts: datetime) -> str:
    """Serialize as ISO 8601 with milliseconds and a ``Z`` suffix."""
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 string written by :func:`format_timestamp`."""
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def make_display_id(session_id: str, created: datetime) -> str:
    """Build the ``#LEO-<YYYYmmddHHMMSS>-<suffix>`` display id.

    The suffix is the last three characters of the session id, left-padded
    with ``0`` when the id is shorter than three characters.
    """
    suffix = session_id[-3:].rjust(3, "0")
    return f"#LEO-{created.astimezone(UTC).strftime('%Y%m%d%H%M%S')}-{suffix}"


@dataclass
class Message:
    """A single conversation turn."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def copy(self) -> Message:
        return Message(role=self.role, content=self.content, timestamp=self.timestamp)

    def to_api(self) -> dict[str, str]:
        """Role/content only, as the Claude API expects."""
        return {"role": str(self.role), "content": self.content}

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": str(self.role),
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=Role(data["role"]),
            content=data["content"],
            timestamp=parse_timestamp(data["timestamp"]),
        )


@dataclass
class SessionMetadata:
    """Bookkeeping about one session, kept alongside its message list.

    Attributes:
        session_id: Opaque id supplied by the client.
        id: Display id, see :func:`make_display_id`.
        status: Always ``ACTIVE``.
        first_message: Text of the first user message. Never changes.
        message_count: Number of appended messages, both roles.
        start_time: When the session was created.
        last_message: When the latest message was appended.
        duration: ``last_message - start_time`` in whole seconds.
        messages: Copies of every appended message.
    """

    session_id: str
    id: str
    first_message: str
    start_time: datetime
    last_message: datetime
    status: str = STATUS_ACTIVE
    message_count: int = 0
    duration: int = 0
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def create(cls, session_id: str, first_message: str) -> SessionMetadata:
        now = utc_now()
        return cls(
            session_id=session_id,
            id=make_display_id(session_id, now),
            first_message=first_message,
            start_time=now,
            last_message=now,
        )

    def record(self, message: Message) -> None:
        """Account for a newly appended message."""
        self.messages.append(message.copy())
        self.message_count += 1
        self.last_message = message.timestamp
        self.duration = int((self.last_message - self.start_time).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "id": self.id,
            "status": self.status,
            "firstMessage": self.first_message,
            "messageCount": self.message_count,
            "startTime": format_timestamp(self.start_time),
            "lastMessage": format_timestamp(self.last_message),
            "duration": self.duration,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMetadata:
        return cls(
            session_id=data["sessionId"],
            id=data["id"],
            status=data.get("status", STATUS_ACTIVE),
            first_message=data.get("firstMessage", ""),
            message_count=int(data.get("messageCount", 0)),
            start_time=parse_timestamp(data["startTime"]),
            last_message=parse_timestamp(data["lastMessage"]),
            duration=int(data.get("duration", 0)),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
        )


@dataclass
class Conversation:
    """The live message list of one session."""

    session_id: str
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversation:
        return cls(
            session_id=data["sessionId"],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
        )


@dataclass
class Snapshot:
    """Full point-in-time copy of every session, as written to storage."""

    metadata: list[SessionMetadata] = field(default_factory=list)
    conversations: list[Conversation] = field(default_factory=list)
    last_saved: datetime | None = None

    @property
    def empty(self) -> bool:
        return not self.metadata and not self.conversations

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": [m.to_dict() for m in self.metadata],
            "conversations": [c.to_dict() for c in self.conversations],
            "lastSaved": format_timestamp(self.last_saved or utc_now()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        last_saved = data.get("lastSaved")
        return cls(
            metadata=[SessionMetadata.from_dict(m) for m in data.get("metadata", [])],
            conversations=[Conversation.from_dict(c) for c in data.get("conversations", [])],
            last_saved=parse_timestamp(last_saved) if last_saved else None,
        )
