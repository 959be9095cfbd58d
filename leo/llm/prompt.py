"""Persona prompt assembly for chat replies and X posts."""

import logging
from functools import cache
from pathlib import Path

logger = logging.getLogger(__name__)

PERSONA_DIR = Path(__file__).resolve().parent.parent / "persona"

POST_REQUEST = "generate a tweet for leo to post right now"


@cache
def _read_persona(filename: str) -> str:
    """Read a persona markdown file shipped with the package."""
    return (PERSONA_DIR / filename).read_text(encoding="utf-8").strip()


def build_chat_prompt() -> str:
    """System prompt for chat replies."""
    return _read_persona("CHAT.md")


def build_posting_prompt(recent_conversations: str = "") -> str:
    """System prompt for one X post.

    Args:
        recent_conversations: Preview lines from sessions active in the
            last few minutes. Omitted from the prompt when empty.
    """
    base = _read_persona("POSTING.md")
    if not recent_conversations:
        return base
    return (
        f"{base}\n\n"
        f"Recent conversations from the last 5 minutes:\n{recent_conversations}\n\n"
        "You can reference these naturally if relevant, but don't quote them directly. "
        "However, you don't have to reference them - post about whatever you're thinking!"
    )
