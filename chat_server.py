"""
chat_server.py — the /api/chat HTTP boundary.

Runs as an aiohttp web server. Every request passes request_guard before
any model is called; accepted requests are proxied to the configured
provider and the reply is streamed back as plain text, chunk by chunk.

Endpoints:
  POST    /api/chat  → 200 streamed text | 400 | 429 | 503 | 500
  OPTIONS /api/chat  → CORS preflight
  GET     /health    → plain-text health check
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from aiohttp import web

import config
from providers import manager
from providers.base import ChatProvider, ChatStream
from rate_limiter import InMemoryRateLimitStore, RateLimited, RateLimitStore
from request_guard import (
    MAX_ATTACHMENT_URL_LEN, MAX_ATTACHMENTS,
    RequestRejected, ServiceUnavailable, guard_request,
)

logger = logging.getLogger(__name__)

RATE_LIMITER_KEY = web.AppKey("rate_limiter", RateLimitStore)
PROVIDER_FACTORY_KEY = web.AppKey("provider_factory", Callable)

# Five attachments at the per-attachment cap, plus room for the text
MAX_BODY_SIZE = MAX_ATTACHMENTS * MAX_ATTACHMENT_URL_LEN + 1024 * 1024


# ── CORS ──────────────────────────────────────────────────────────────────────

def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin":      config.FRONTEND_URL,
        "Access-Control-Allow-Methods":     "POST, OPTIONS",
        "Access-Control-Allow-Headers":     "Content-Type, Authorization",
        "Access-Control-Allow-Credentials": "true",
        "Vary":                             "origin",
    }


def preflight_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin":      config.FRONTEND_URL,
        "Access-Control-Allow-Methods":     "POST",
        "Access-Control-Allow-Headers":     "Content-Type, Authorization",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age":           "86400",
    }


# ── Request handlers ───────────────────────────────────────────────────────────

def _log_reply(text: str) -> None:
    logger.info("Reply finished (%d chars)", len(text))


async def handle_chat(request: web.Request) -> web.StreamResponse:
    origin = {"Access-Control-Allow-Origin": config.FRONTEND_URL}
    body = await request.read()

    try:
        messages = guard_request(
            request.headers,
            body,
            request.app[RATE_LIMITER_KEY],
            manager.credential_for(),
        )
    except ServiceUnavailable:
        return web.Response(status=503, text="Service temporarily unavailable")
    except RateLimited as exc:
        return web.Response(
            status=429,
            text="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(exc.retry_after), **origin},
        )
    except RequestRejected as exc:
        logger.info("Rejected request: %s", exc)
        return web.Response(
            status=400,
            text="Invalid request format",
            headers={"X-Reject-Reason": exc.reason.value},
        )

    # Pull the first chunk before committing to 200 so upstream failures
    # can still be answered with a clean 500.
    stream: Optional[ChatStream] = None
    try:
        provider: ChatProvider = request.app[PROVIDER_FACTORY_KEY]()
        stream = provider.stream(messages, on_finish=_log_reply)
        first: Optional[str] = await stream.__anext__()
    except StopAsyncIteration:
        first = None
    except Exception as exc:
        logger.error("Chat API error: %s", exc, exc_info=True)
        if stream is not None:
            await stream.aclose()
        return web.Response(status=500, text="Internal server error", headers=origin)

    try:
        return await _stream_reply(request, stream, first)
    finally:
        await stream.aclose()


async def _stream_reply(
    request: web.Request, stream: ChatStream, first: Optional[str]
) -> web.StreamResponse:
    response = web.StreamResponse(
        status=200,
        headers={"Content-Type": "text/plain; charset=utf-8", **cors_headers()},
    )
    await response.prepare(request)
    if first is None:
        await response.write_eof()
        return response

    await response.write(first.encode("utf-8"))
    try:
        async for chunk in stream:
            await response.write(chunk.encode("utf-8"))
    except ConnectionResetError:
        logger.info("Client went away mid-stream")
        return response
    except Exception as exc:
        # Status is already sent; all we can do is stop the stream.
        logger.error("Upstream failed mid-stream: %s", exc, exc_info=True)
        return response
    await response.write_eof()
    return response


async def handle_preflight(request: web.Request) -> web.Response:
    headers = request.headers
    if (
        headers.get("Origin") is not None
        and headers.get("Access-Control-Request-Method") is not None
        and headers.get("Access-Control-Request-Headers") is not None
    ):
        return web.Response(headers=preflight_headers())
    return web.Response()


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK. Use with uptime monitors."""
    tracked = len(request.app[RATE_LIMITER_KEY])
    return web.Response(
        text=f"OK — {tracked} clients tracked",
        content_type="text/plain",
    )


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app(
    rate_limiter: Optional[RateLimitStore] = None,
    provider_factory: Optional[Callable[[], ChatProvider]] = None,
) -> web.Application:
    app = web.Application(client_max_size=MAX_BODY_SIZE)
    app[RATE_LIMITER_KEY] = rate_limiter or InMemoryRateLimitStore(
        max_requests=config.RATE_LIMIT_MAX_REQUESTS,
        window_secs=config.RATE_LIMIT_WINDOW_SECS,
        max_entries=config.RATE_LIMIT_MAX_ENTRIES,
    )
    app[PROVIDER_FACTORY_KEY] = provider_factory or manager.get_provider
    app.router.add_post("/api/chat",    handle_chat)
    app.router.add_route("OPTIONS", "/api/chat", handle_preflight)
    app.router.add_get("/health",       handle_health)
    return app


async def start_server() -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app()
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, config.CHAT_HOST, config.CHAT_PORT)
    await site.start()
    logger.info(
        "☕ Chat API listening on %s:%d  (provider: %s, origin: %s)",
        config.CHAT_HOST,
        config.CHAT_PORT,
        config.CHAT_PROVIDER,
        config.FRONTEND_URL,
    )
    return runner
