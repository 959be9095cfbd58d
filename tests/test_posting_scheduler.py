"""Tests for PostingScheduler — context, truncation, cycles, lifecycle."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from leo.conversations.store import ConversationStore
from leo.errors import InferenceError
from leo.posting.scheduler import JOB_ID, PostingScheduler, truncate_post
from leo.posting.x_client import PublishResult


@pytest.fixture
def publisher() -> AsyncMock:
    mock = AsyncMock()
    mock.publish.return_value = PublishResult(success=True, post_id="1")
    return mock


@pytest.fixture
def scheduler(
    store: ConversationStore, generate: AsyncMock, publisher: AsyncMock
) -> PostingScheduler:
    return PostingScheduler(store, generate, publisher, interval_ms=60_000)


# -- truncate_post -------------------------------------------------------------


def test_truncate_250_chars_to_200() -> None:
    text = "a" * 250
    post = truncate_post(text, 200)
    assert len(post) == 200
    assert post == "a" * 197 + "..."


def test_truncate_leaves_short_posts() -> None:
    assert truncate_post("pixels are neat", 200) == "pixels are neat"


def test_truncate_exactly_at_limit() -> None:
    assert truncate_post("b" * 200, 200) == "b" * 200


def test_truncate_strips_whitespace() -> None:
    assert truncate_post("  hi  \n", 200) == "hi"


# -- run_cycle -----------------------------------------------------------------


async def test_cycle_generates_and_publishes(
    scheduler: PostingScheduler, generate: AsyncMock, publisher: AsyncMock
) -> None:
    result = await scheduler.run_cycle()

    assert result.success is True
    publisher.publish.assert_awaited_once_with("hi! (^•⩊•^)")
    system, messages = generate.call_args.args
    assert "posting on X" in system
    assert messages == [{"role": "user", "content": "generate a tweet for leo to post right now"}]
    assert generate.call_args.kwargs["max_tokens"] == 100


async def test_cycle_caps_long_posts(
    scheduler: PostingScheduler, generate: AsyncMock, publisher: AsyncMock
) -> None:
    generate.return_value = "x" * 250
    await scheduler.run_cycle()

    posted = publisher.publish.call_args.args[0]
    assert len(posted) == 200
    assert posted.endswith("...")


async def test_cycle_includes_recent_conversations(
    scheduler: PostingScheduler, store: ConversationStore, generate: AsyncMock
) -> None:
    store.get_or_create("s1", "hi")
    store.append_message("s1", "user", "do you like fish?")
    store.append_message("s1", "assistant", "yes! (^._.^)")

    await scheduler.run_cycle()

    system = generate.call_args.args[0]
    assert "Recent conversations from the last 5 minutes" in system
    assert "user: do you like fish? | assistant: yes! (^._.^)" in system


async def test_cycle_ignores_stale_conversations(
    scheduler: PostingScheduler, store: ConversationStore, generate: AsyncMock
) -> None:
    store.get_or_create("s1", "hi")
    store.append_message("s1", "user", "old news")
    store.get_metadata("s1").last_message -= timedelta(minutes=6)

    await scheduler.run_cycle()
    assert "Recent conversations" not in generate.call_args.args[0]


async def test_generation_failure_skips_publish(
    scheduler: PostingScheduler, generate: AsyncMock, publisher: AsyncMock
) -> None:
    generate.side_effect = InferenceError("down")

    assert await scheduler.run_cycle() is None
    publisher.publish.assert_not_awaited()
    assert scheduler.in_progress is False


async def test_empty_generation_skips_publish(
    scheduler: PostingScheduler, generate: AsyncMock, publisher: AsyncMock
) -> None:
    generate.return_value = "   "

    assert await scheduler.run_cycle() is None
    publisher.publish.assert_not_awaited()


async def test_rate_limited_cycle_does_not_raise(
    scheduler: PostingScheduler, publisher: AsyncMock
) -> None:
    publisher.publish.return_value = PublishResult(
        success=False, rate_limited=True, app_limit_remaining="0"
    )

    result = await scheduler.run_cycle()
    assert result.success is False
    assert result.rate_limited is True


async def test_generic_failure_is_distinguishable(
    scheduler: PostingScheduler, publisher: AsyncMock
) -> None:
    publisher.publish.return_value = PublishResult(success=False, detail="X API returned 500")

    result = await scheduler.run_cycle()
    assert result.success is False
    assert result.rate_limited is False


async def test_overlapping_cycle_is_skipped(
    scheduler: PostingScheduler, generate: AsyncMock, publisher: AsyncMock
) -> None:
    release = asyncio.Event()

    async def _slow_generate(*args, **kwargs) -> str:
        await release.wait()
        return "slow post"

    generate.side_effect = _slow_generate
    first = asyncio.create_task(scheduler.run_cycle())
    await asyncio.sleep(0)
    assert scheduler.in_progress is True

    assert await scheduler.run_cycle() is None

    release.set()
    result = await first
    assert result.success is True
    publisher.publish.assert_awaited_once_with("slow post")
    assert scheduler.in_progress is False


# -- Lifecycle -----------------------------------------------------------------


async def test_start_and_stop(scheduler: PostingScheduler) -> None:
    await scheduler.start()
    assert scheduler.running is True

    job = scheduler._scheduler.get_job(JOB_ID)
    assert job is not None
    assert job.max_instances == 1
    assert job.trigger.interval == timedelta(minutes=1)

    await scheduler.stop()
    assert scheduler.running is False


async def test_stop_when_not_running(scheduler: PostingScheduler) -> None:
    # Should not raise
    await scheduler.stop()


async def test_job_survives_rate_limit(
    scheduler: PostingScheduler, publisher: AsyncMock
) -> None:
    publisher.publish.return_value = PublishResult(success=False, rate_limited=True)
    await scheduler.start()
    try:
        await scheduler._run_job()
        assert scheduler._scheduler.get_job(JOB_ID) is not None
    finally:
        await scheduler.stop()


async def test_job_swallows_unexpected_errors(
    scheduler: PostingScheduler, publisher: AsyncMock
) -> None:
    publisher.publish.side_effect = RuntimeError("surprise")

    # Should not raise
    await scheduler._run_job()
    assert scheduler.in_progress is False
