"""ChatOrchestrator — one user turn from validation to persisted reply."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from leo.config import settings
from leo.conversations.models import Role
from leo.errors import InvalidInputError, SessionNotFoundError
from leo.llm.prompt import build_chat_prompt

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from leo.conversations.saver import SnapshotSaver
    from leo.conversations.store import ConversationStore

    GenerateFn = Callable[..., Awaitable[str]]

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    response: str
    session_id: str

    def to_dict(self) -> dict[str, str]:
        return {"response": self.response, "sessionId": self.session_id}


def validate(message: Any, session_id: Any) -> tuple[str, str]:
    """Check the request shape. Raises ``InvalidInputError``."""
    if not isinstance(message, str) or not message.strip():
        msg = "Message is required"
        raise InvalidInputError(msg)
    if not isinstance(session_id, str) or not session_id:
        msg = "sessionId is required"
        raise InvalidInputError(msg)
    return message, session_id


class ChatOrchestrator:
    """Runs chat turns against the store, the saver and the model.

    Turns for the same session are serialized by the store's per-session
    lock; turns for different sessions run concurrently.

    Args:
        store: Live conversation state.
        saver: Persists a snapshot after every mutation.
        generate: Async ``(system, messages, *, max_tokens)`` → text; raises
            ``InferenceError`` on failure.
        context_window: Messages sent to the model per turn.
        max_tokens: Output budget for one reply.
    """

    def __init__(
        self,
        store: ConversationStore,
        saver: SnapshotSaver,
        generate: GenerateFn,
        *,
        context_window: int | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._store = store
        self._saver = saver
        self._generate = generate
        self.context_window = context_window or settings.context_window_size
        self.max_tokens = max_tokens or settings.chat_max_tokens

    async def handle_message(self, message: Any, session_id: Any) -> ChatReply:
        """Run one turn and return Leo's reply.

        The user message is persisted before the model is called and stays
        persisted if the call fails (``InferenceError`` propagates).
        """
        message, session_id = validate(message, session_id)

        async with self._store.lock(session_id):
            _, _, is_new = self._store.get_or_create(session_id, message)
            if is_new:
                await self._saver.save(immediate=True)

            self._store.append_message(session_id, Role.USER, message)
            await self._saver.save(immediate=True)

            history = self._store.recent_window(session_id, self.context_window)
            response = await self._generate(
                build_chat_prompt(), history, max_tokens=self.max_tokens
            )

            try:
                self._store.append_message(session_id, Role.ASSISTANT, response)
            except SessionNotFoundError:
                logger.warning(
                    "Session %s was cleared mid-turn; reply not recorded", session_id
                )
            else:
                await self._saver.save(immediate=True)

            # Catch up on evictions skipped while other turns were in flight.
            while self._store.evict_if_over_capacity():
                pass

        logger.info(
            "Chat turn for %s: %d chars in, %d chars out",
            session_id,
            len(message),
            len(response),
        )
        return ChatReply(response=response, session_id=session_id)
