"""HTTP API for Clippy."""

import asyncio
import json
import signal
from typing import Any, Awaitable, Callable

from aiohttp import web

from clippy.assistant import ModelAssistant
from clippy.chat import ConversationService
from clippy.config import Config
from clippy.exceptions import ClippyError, ModelUnavailableError
from clippy.llm import create_provider
from clippy.logging import get_logger
from clippy.store import create_store
from clippy.tools import build_default_registry

log = get_logger(__name__)

GREETING = "Hi, my name is Clippy!"

_STATUS_BY_CODE = {
    "invalid_argument": 400,
    "not_found": 404,
    "model_unavailable": 502,
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error_response(code: str, msg: str, status: int) -> web.Response:
    return web.json_response({"code": code, "msg": msg}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Translate Clippy errors into JSON error bodies."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ModelUnavailableError as e:
        log.error("Model unavailable", path=request.path, error=str(e))
        return _error_response(e.code, "the assistant is unavailable, try again later", 502)
    except ClippyError as e:
        status = _STATUS_BY_CODE.get(e.code, 500)
        if status == 500:
            log.error("Request failed", path=request.path, code=e.code, error=str(e))
            return _error_response(e.code, "the assistant could not answer", status)
        return _error_response(e.code, str(e), status)


class ChatServer:
    """Routes HTTP requests to the conversation service."""

    def __init__(self, service: ConversationService):
        self.service = service

    @staticmethod
    async def _read_json(request: web.Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except ValueError:
            raise web.HTTPBadRequest(
                text=json.dumps({"code": "invalid_argument", "msg": "body must be JSON"}),
                content_type="application/json",
            )
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(
                text=json.dumps({"code": "invalid_argument", "msg": "body must be a JSON object"}),
                content_type="application/json",
            )
        return body

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text=GREETING)

    async def start_conversation(self, request: web.Request) -> web.Response:
        """POST /api/conversations"""
        body = await self._read_json(request)
        result = await self.service.start_conversation(str(body.get("message") or ""))
        return web.json_response({
            "conversation_id": result.conversation.id,
            "title": result.conversation.title,
            "reply": result.reply,
        })

    async def continue_conversation(self, request: web.Request) -> web.Response:
        """POST /api/conversations/{conversation_id}/messages"""
        body = await self._read_json(request)
        result = await self.service.continue_conversation(
            request.match_info.get("conversation_id", ""),
            str(body.get("message") or ""),
        )
        return web.json_response({"reply": result.reply})

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/", self.index)
        app.router.add_post("/api/conversations", self.start_conversation)
        app.router.add_post(
            "/api/conversations/{conversation_id}/messages",
            self.continue_conversation,
        )
        return app


async def _run_server(config: Config) -> None:
    """Wire the service from config and serve until SIGINT/SIGTERM."""
    store = create_store(config)
    provider = create_provider(
        provider=config.model.provider,
        model=config.model.model,
        api_key=config.model.api_key or None,
        base_url=config.model.base_url or None,
        temperature=config.model.temperature,
        max_tokens=config.model.max_tokens,
        timeout=config.model.timeout,
    )
    registry = build_default_registry(config)
    assistant = ModelAssistant(
        provider,
        registry,
        max_round_trips=config.assistant.max_round_trips,
    )
    server = ChatServer(ConversationService(store, assistant))

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, OSError):
            # Windows doesn't support add_signal_handler for SIGTERM.
            pass

    runner = web.AppRunner(server.create_app())
    await runner.setup()
    site = web.TCPSite(runner, config.server.host, config.server.port)
    await site.start()
    log.info(
        "Server started",
        host=config.server.host,
        port=config.server.port,
        provider=config.model.provider,
        model=config.model.model,
        tools=registry.names(),
    )

    try:
        await stop_event.wait()
    finally:
        log.info("Shutting down")
        await runner.cleanup()
        await registry.close()
        await provider.close()
        await store.close()


def run_web_server(config: Config) -> None:
    """Entry point for running the web server."""
    try:
        asyncio.run(_run_server(config))
    except KeyboardInterrupt:
        pass
