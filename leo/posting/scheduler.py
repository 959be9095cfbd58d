"""PostingScheduler — periodic X posts generated from recent conversations."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from leo.config import settings
from leo.errors import InferenceError
from leo.llm.prompt import POST_REQUEST, build_posting_prompt

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from leo.conversations.store import ConversationStore
    from leo.posting.x_client import PublishResult, XClient

logger = logging.getLogger(__name__)

JOB_ID = "leo-post"
ELLIPSIS = "..."


def truncate_post(text: str, limit: int | None = None) -> str:
    """Cap *text* at *limit* characters, ending in ``...`` when cut."""
    limit = limit or settings.post_max_length
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


class PostingScheduler:
    """Runs one posting cycle every *interval_ms* on an APScheduler job.

    A cycle gathers recent-conversation context from the store, asks the
    model for a post, caps its length and publishes it. Failures of any
    kind are logged and the job keeps its schedule. At most one cycle
    runs at a time.

    Args:
        store: Source of recent-conversation context.
        generate: Async ``(system, messages, *, max_tokens)`` → text.
        publisher: Client used to publish posts.
        interval_ms: Time between cycles (default from settings).
        max_tokens: Output budget for one post.
    """

    def __init__(
        self,
        store: ConversationStore,
        generate: Callable[..., Awaitable[str]],
        publisher: XClient,
        *,
        interval_ms: int | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._store = store
        self._generate = generate
        self._publisher = publisher
        self.interval_ms = interval_ms or settings.post_interval_ms
        self.max_tokens = max_tokens or settings.post_max_tokens
        self._scheduler: AsyncIOScheduler | None = None
        self._running = False
        self._in_progress = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Add the interval job and start the scheduler."""
        # Created here so it binds to the running event loop.
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._run_job,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000),
            id=JOB_ID,
            name="Leo X post",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(
            "Posting scheduler started (every %.1f min)", self.interval_ms / 60_000
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running and self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Posting scheduler stopped")

    # -- Cycle -----------------------------------------------------------------

    async def generate_post(self) -> str | None:
        """Ask the model for one post. Returns None if generation failed."""
        context = self._store.recent_context(
            window=timedelta(minutes=settings.recent_context_minutes),
            per_session=settings.recent_context_messages,
            preview_chars=settings.recent_preview_chars,
        )
        if context:
            logger.info("Including %d recent conversation(s)", context.count("\n") + 1)

        try:
            text = await self._generate(
                build_posting_prompt(context),
                [{"role": "user", "content": POST_REQUEST}],
                max_tokens=self.max_tokens,
            )
        except InferenceError:
            logger.exception("Failed to generate post")
            return None

        post = truncate_post(text)
        if not post:
            logger.warning("Model returned an empty post")
            return None
        logger.info("Generated post (%d chars): %s", len(post), post)
        return post

    async def run_cycle(self) -> PublishResult | None:
        """Generate and publish one post.

        Returns the publish result, or None when skipped because another
        cycle is in progress or when no post could be generated.
        """
        if self._in_progress:
            logger.warning("Posting cycle already in progress — skipping")
            return None

        self._in_progress = True
        try:
            post = await self.generate_post()
            if post is None:
                return None
            result = await self._publisher.publish(post)
            if result.success:
                logger.info("Successfully posted to X")
            elif result.rate_limited:
                logger.info("Rate limited; next attempt at the next interval")
            return result
        finally:
            self._in_progress = False

    async def _run_job(self) -> None:
        """Callback invoked by APScheduler."""
        try:
            await self.run_cycle()
        except Exception:
            logger.exception("Posting cycle failed")
