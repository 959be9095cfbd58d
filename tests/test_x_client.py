"""Tests for XClient.publish()."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from leo.config import Settings
from leo.errors import PostingError, PostingRateLimited
from leo.posting.x_client import TWEETS_URL, PublishResult, XClient

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> XClient:
    return XClient("key", "secret", "token", "token-secret")


def _response(status_code: int, *, json: dict | None = None, text: str = "", headers=None) -> httpx.Response:
    kwargs = {"json": json} if json is not None else {"text": text}
    return httpx.Response(
        status_code=status_code,
        headers=headers or {},
        request=httpx.Request("POST", TWEETS_URL),
        **kwargs,
    )


def _mock_httpx_client(mock_client_cls: MagicMock, response: httpx.Response) -> AsyncMock:
    """Wire up an AsyncClient context-manager mock that returns *response*."""
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


# ---------------------------------------------------------------------------
# from_settings
# ---------------------------------------------------------------------------


class TestFromSettings:
    def test_missing_credentials_returns_none(self) -> None:
        assert XClient.from_settings(Settings(x_api_key="k")) is None

    def test_complete_credentials(self) -> None:
        config = Settings(
            x_api_key="k",
            x_api_secret="s",
            x_access_token="t",
            x_access_token_secret="ts",
        )
        assert isinstance(XClient.from_settings(config), XClient)


# ---------------------------------------------------------------------------
# publish
# ---------------------------------------------------------------------------


class TestPublish:
    async def test_success(self, client: XClient) -> None:
        resp = _response(201, json={"data": {"id": "1234", "text": "hi"}})

        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_httpx_client(mock_cls, resp)
            result = await client.publish("hi")

        assert result == PublishResult(success=True, post_id="1234")
        call = mock_client.post.call_args
        assert call.args[0] == TWEETS_URL
        assert call.kwargs["json"] == {"text": "hi"}
        assert call.kwargs["auth"] is client._auth

    async def test_rate_limited(self, client: XClient) -> None:
        resp = _response(
            429,
            text="Too Many Requests",
            headers={
                "x-app-limit-24hour-remaining": "0",
                "x-user-limit-24hour-remaining": "3",
            },
        )

        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, resp)
            result = await client.publish("hi")

        assert result.success is False
        assert result.rate_limited is True
        assert result.app_limit_remaining == "0"
        assert result.user_limit_remaining == "3"

    async def test_rate_limited_without_quota_headers(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(429, text=""))
            result = await client.publish("hi")

        assert result.rate_limited is True
        assert result.app_limit_remaining is None

    async def test_server_error_is_generic_failure(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(403, text="Forbidden"))
            result = await client.publish("hi")

        assert result.success is False
        assert result.rate_limited is False
        assert "403" in result.detail

    async def test_unexpected_body_is_failure(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(201, json={"nope": True}))
            result = await client.publish("hi")

        assert result.success is False
        assert result.rate_limited is False

    async def test_transport_error_is_failure(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            mock_client = _mock_httpx_client(mock_cls, _response(201, json={}))
            mock_client.post.side_effect = httpx.ConnectError("refused")
            result = await client.publish("hi")

        assert result.success is False
        assert result.rate_limited is False
        assert "refused" in result.detail


class TestCreatePost:
    async def test_raises_rate_limited(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(429))
            with pytest.raises(PostingRateLimited):
                await client._create_post("hi")

    async def test_raises_posting_error(self, client: XClient) -> None:
        with patch("leo.posting.x_client.httpx.AsyncClient") as mock_cls:
            _mock_httpx_client(mock_cls, _response(500, text="oops"))
            with pytest.raises(PostingError) as exc_info:
                await client._create_post("hi")
        assert not isinstance(exc_info.value, PostingRateLimited)
