"""Leo entry point — chat server plus the X posting loop."""

import asyncio
import logging
import signal

from leo.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def run() -> None:
    """Wire everything together and serve until SIGINT/SIGTERM."""
    from leo.chat import ChatOrchestrator
    from leo.conversations import ConversationStore, SnapshotSaver, connect_backend
    from leo.llm.client import generate
    from leo.posting import PostingScheduler, XClient
    from leo.server import ChatServer, create_app

    backend = await connect_backend()
    store = ConversationStore()
    store.restore(await backend.load_all())
    saver = SnapshotSaver(backend, store.snapshot)
    orchestrator = ChatOrchestrator(store, saver, generate)
    server = ChatServer(create_app(orchestrator, store, saver))

    scheduler: PostingScheduler | None = None
    publisher = XClient.from_settings()
    if publisher is None:
        logger.warning("X credentials missing — autonomous posting disabled")
    else:
        scheduler = PostingScheduler(store, generate, publisher)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await server.start()
    if scheduler is not None:
        await scheduler.start()
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set — chat replies will fail")

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        if scheduler is not None:
            await scheduler.stop()
        await server.stop()
        await saver.flush()
        await backend.close()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
