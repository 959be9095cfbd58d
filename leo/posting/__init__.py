"""Autonomous X posting — client and interval scheduler."""

from leo.posting.scheduler import PostingScheduler, truncate_post
from leo.posting.x_client import PublishResult, XClient

__all__ = [
    "PostingScheduler",
    "PublishResult",
    "XClient",
    "truncate_post",
]
