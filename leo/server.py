"""Async HTTP API for the chat front-end.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop so the
server shares the event loop with the posting scheduler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from leo.config import settings
from leo.errors import (
    InferenceError,
    InvalidInputError,
    PersistenceError,
    SessionNotFoundError,
)

if TYPE_CHECKING:
    from leo.chat import ChatOrchestrator
    from leo.conversations.saver import SnapshotSaver
    from leo.conversations.store import ConversationStore

logger = logging.getLogger(__name__)

ORCHESTRATOR_KEY: web.AppKey[ChatOrchestrator] = web.AppKey("orchestrator")
STORE_KEY: web.AppKey[ConversationStore] = web.AppKey("store")
SAVER_KEY: web.AppKey[SnapshotSaver] = web.AppKey("saver")


@web.middleware
async def _cors(request: web.Request, handler) -> web.StreamResponse:
    """Allow the browser front-end to call the API from another origin."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = settings.cors_origin
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


async def _chat(request: web.Request) -> web.Response:
    """POST /api/chat — one turn with Leo."""
    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return web.json_response({"error": "invalid JSON"}, status=400)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        reply = await orchestrator.handle_message(
            payload.get("message"), payload.get("sessionId")
        )
    except InvalidInputError as exc:
        return web.json_response({"error": str(exc)}, status=400)
    except (InferenceError, SessionNotFoundError):
        logger.exception("Chat turn failed for session %s", payload.get("sessionId"))
        return _chat_failed()
    except Exception:
        logger.exception("Unexpected error in chat turn for %s", payload.get("sessionId"))
        return _chat_failed()
    return web.json_response(reply.to_dict())


def _chat_failed() -> web.Response:
    return web.json_response(
        {
            "error": "Failed to get response from Leo",
            "message": "could not get a response",
        },
        status=500,
    )


async def _conversations(request: web.Request) -> web.Response:
    """GET /api/conversations — metadata for every live session."""
    metadata = request.app[STORE_KEY].all_metadata()
    return web.json_response(
        {"conversations": [m.to_dict() for m in metadata], "total": len(metadata)}
    )


async def _clear(request: web.Request) -> web.Response:
    """POST /api/conversations/clear — drop all sessions everywhere."""
    store = request.app[STORE_KEY]
    saver = request.app[SAVER_KEY]
    saver.cancel()
    count = store.clear()
    try:
        await saver.backend.clear_all()
    except PersistenceError:
        logger.exception("Clearing stored conversations failed")
    return web.json_response({"ok": True, "cleared": count})


async def _health(request: web.Request) -> web.Response:
    """GET /api/health — basic liveness check."""
    return web.json_response({"status": "ok", "message": "Leo chat server is running"})


def create_app(
    orchestrator: ChatOrchestrator,
    store: ConversationStore,
    saver: SnapshotSaver,
) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_cors])
    app[ORCHESTRATOR_KEY] = orchestrator
    app[STORE_KEY] = store
    app[SAVER_KEY] = saver
    app.router.add_post("/api/chat", _chat)
    app.router.add_get("/api/conversations", _conversations)
    app.router.add_post("/api/conversations/clear", _clear)
    app.router.add_get("/api/health", _health)
    return app


class ChatServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(
        self, app: web.Application, host: str | None = None, port: int | None = None
    ) -> None:
        self.app = app
        self.host = host or settings.host
        self.port = settings.port if port is None else port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Leo chat server running on http://%s:%d", self.host, self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Chat server stopped")
