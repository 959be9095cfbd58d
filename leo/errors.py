"""Exception taxonomy shared across the chat and posting paths."""

from __future__ import annotations


class LeoError(Exception):
    """Base class for all application errors."""


class InvalidInputError(LeoError):
    """Request payload is missing or malformed. Nothing was mutated."""


class SessionNotFoundError(LeoError):
    """A message was appended to a session that was never created."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id!r}")
        self.session_id = session_id


class InferenceError(LeoError):
    """The model API call failed or returned something unusable."""


class PersistenceError(LeoError):
    """A snapshot could not be read from or written to storage."""


class PostingError(LeoError):
    """Publishing a post to X failed."""


class PostingRateLimited(PostingError):
    """X reported quota exhaustion (HTTP 429)."""

    def __init__(
        self,
        message: str = "X API rate limit hit",
        *,
        app_limit_remaining: str | None = None,
        user_limit_remaining: str | None = None,
    ) -> None:
        super().__init__(message)
        self.app_limit_remaining = app_limit_remaining
        self.user_limit_remaining = user_limit_remaining
