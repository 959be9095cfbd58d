"""X (Twitter) API v2 client — publish a single post."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
from authlib.integrations.httpx_client import OAuth1Auth

from leo.config import settings
from leo.errors import PostingError, PostingRateLimited

if TYPE_CHECKING:
    from leo.config import Settings

logger = logging.getLogger(__name__)

TWEETS_URL = "https://api.twitter.com/2/tweets"

APP_LIMIT_HEADER = "x-app-limit-24hour-remaining"
USER_LIMIT_HEADER = "x-user-limit-24hour-remaining"


@dataclass
class PublishResult:
    """Outcome of one publish attempt.

    ``rate_limited`` distinguishes quota exhaustion (expected, retry next
    cycle) from any other failure.
    """

    success: bool
    rate_limited: bool = False
    detail: str = ""
    post_id: str | None = None
    app_limit_remaining: str | None = None
    user_limit_remaining: str | None = None


class XClient:
    """Posts to X with OAuth 1.0a user-context credentials.

    Args:
        api_key: Consumer key.
        api_secret: Consumer secret.
        access_token: User access token.
        access_token_secret: User access token secret.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        access_token: str,
        access_token_secret: str,
        timeout: float = 20,
    ) -> None:
        self._auth = OAuth1Auth(
            client_id=api_key,
            client_secret=api_secret,
            token=access_token,
            token_secret=access_token_secret,
        )
        self._timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> XClient | None:
        """Build a client from settings, or None if credentials are missing."""
        config = config or settings
        if not config.x_credentials_configured():
            logger.error(
                "X API credentials not found. Required: X_API_KEY, X_API_SECRET, "
                "X_ACCESS_TOKEN, X_ACCESS_TOKEN_SECRET"
            )
            return None
        logger.info("X client initialized")
        return cls(
            config.x_api_key,
            config.x_api_secret,
            config.x_access_token,
            config.x_access_token_secret,
        )

    async def _create_post(self, text: str) -> str:
        """POST /2/tweets and return the new post id.

        Raises ``PostingRateLimited`` on 429 and ``PostingError`` otherwise.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(TWEETS_URL, json={"text": text}, auth=self._auth)
        except httpx.HTTPError as exc:
            msg = f"X request failed: {exc}"
            raise PostingError(msg) from exc

        if resp.status_code == 429:
            raise PostingRateLimited(
                app_limit_remaining=resp.headers.get(APP_LIMIT_HEADER),
                user_limit_remaining=resp.headers.get(USER_LIMIT_HEADER),
            )
        if resp.status_code not in (200, 201):
            msg = f"X API returned {resp.status_code}: {resp.text[:300]}"
            raise PostingError(msg)

        try:
            return str(resp.json()["data"]["id"])
        except (ValueError, KeyError, TypeError) as exc:
            msg = f"Unexpected X API response: {resp.text[:300]}"
            raise PostingError(msg) from exc

    async def publish(self, text: str) -> PublishResult:
        """Publish *text*. Never raises; failures come back in the result."""
        try:
            post_id = await self._create_post(text)
        except PostingRateLimited as exc:
            logger.error("X API rate limit hit (429 Too Many Requests)")
            logger.error(
                "App 24h limit remaining: %s, user 24h limit remaining: %s",
                exc.app_limit_remaining or "unknown",
                exc.user_limit_remaining or "unknown",
            )
            logger.error("Skipping post; will try again on the next interval")
            return PublishResult(
                success=False,
                rate_limited=True,
                detail=str(exc),
                app_limit_remaining=exc.app_limit_remaining,
                user_limit_remaining=exc.user_limit_remaining,
            )
        except PostingError as exc:
            logger.error("Error posting to X: %s", exc)
            return PublishResult(success=False, detail=str(exc))

        logger.info("Posted to X (id=%s): %s", post_id, text)
        return PublishResult(success=True, post_id=post_id)
