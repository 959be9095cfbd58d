#!/usr/bin/env python3
"""Generate one Leo post from recent conversations and publish it to X.

Uses the same storage backend as the server (MongoDB or the JSON file)
for recent-conversation context.

Usage examples:
    # Generate and post
    python scripts/post_once.py

    # Generate only, print the post without publishing
    python scripts/post_once.py --dry-run
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from leo.config import settings
from leo.conversations import ConversationStore, connect_backend
from leo.llm.client import generate
from leo.posting import PostingScheduler, XClient

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)


async def _run(dry_run: bool) -> int:
    publisher = None if dry_run else XClient.from_settings()
    if publisher is None and not dry_run:
        return 1

    backend = await connect_backend()
    try:
        store = ConversationStore()
        store.restore(await backend.load_all())
    finally:
        await backend.close()

    scheduler = PostingScheduler(store, generate, publisher)
    if dry_run:
        post = await scheduler.generate_post()
        if post is None:
            return 1
        print(post)
        print(f"({len(post)} characters)", file=sys.stderr)
        return 0

    result = await scheduler.run_cycle()
    return 0 if result is not None and result.success else 1


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run", action="store_true", help="print the generated post instead of posting"
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(_run(args.dry_run)))


if __name__ == "__main__":
    main()
