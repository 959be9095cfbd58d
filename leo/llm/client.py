"""Async Claude API client."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from leo.config import settings
from leo.errors import InferenceError

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        if not settings.anthropic_api_key:
            msg = "ANTHROPIC_API_KEY is not set"
            raise InferenceError(msg)
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


async def generate(
    system: str,
    messages: list[dict[str, Any]],
    *,
    max_tokens: int,
    model: str | None = None,
) -> str:
    """Single-shot Claude call — no tools, no streaming.

    Returns the text of the first content block. Raises ``InferenceError``
    on API/transport failures or when the response has no text.
    """
    client = _get_client()
    try:
        response = await client.messages.create(
            model=model or settings.claude_model,
            max_tokens=max_tokens,
            system=system,
            messages=messages,
        )
    except anthropic.APIError as exc:
        logger.warning("Claude API call failed: %s", exc)
        msg = f"Claude API call failed: {exc.__class__.__name__}"
        raise InferenceError(msg) from exc

    text = next(
        (block.text for block in response.content if getattr(block, "type", "") == "text"),
        None,
    )
    if text is None:
        msg = "Claude response contained no text"
        raise InferenceError(msg)
    return text
