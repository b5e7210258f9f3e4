"""
Tests for chat_client.py against a real chat_server app on a test port.
"""
from __future__ import annotations

from contextlib import aclosing

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

import config
from chat_client import (
    ChatBusyError,
    ChatClient,
    RateLimitedError,
    RequestRejectedError,
    ServiceUnavailableError,
)
from chat_models import ChatMessage
from chat_server import build_web_app
from image_validator import UploadCandidate
from prompts import PACKAGE_ANALYSIS_PROMPT, REJECTION_PHRASE
from providers.base import ChatProvider
from rate_limiter import InMemoryRateLimitStore


class ScriptedProvider(ChatProvider):
    name = "fake"
    model_id = "scripted"

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.received = None

    async def stream_text(self, messages):
        self.received = list(messages)
        for chunk in self.chunks:
            yield chunk


@pytest_asyncio.fixture
async def serve():
    clients: list[TestClient] = []

    async def _serve(provider, rate_limiter=None) -> ChatClient:
        app = build_web_app(rate_limiter=rate_limiter, provider_factory=lambda: provider)
        test_client = TestClient(TestServer(app))
        await test_client.start_server()
        clients.append(test_client)
        return ChatClient(str(test_client.make_url("/")), session=test_client.session)

    yield _serve
    for c in clients:
        await c.close()


@pytest.mark.asyncio
class TestStreaming:
    async def test_chunks_arrive_in_order(self, serve):
        chat = await serve(ScriptedProvider(["Light ", "roast", "!"]))
        chunks = [c async for c in chat.stream_reply([ChatMessage("user", "hi")])]
        assert "".join(chunks) == "Light roast!"
        assert not chat.busy

    async def test_ask_returns_full_text(self, serve):
        chat = await serve(ScriptedProvider(["a", "b"]))
        assert await chat.ask([ChatMessage("user", "hi")]) == "ab"

    async def test_multibyte_text_survives(self, serve):
        chat = await serve(ScriptedProvider(["195-205°F ", "☕"]))
        assert await chat.ask([ChatMessage("user", "temp?")]) == "195-205°F ☕"

    async def test_second_submission_while_streaming(self, serve):
        chat = await serve(ScriptedProvider(["one", "two"]))
        first = chat.stream_reply([ChatMessage("user", "hi")])
        await first.__anext__()
        assert chat.busy
        with pytest.raises(ChatBusyError):
            await chat.stream_reply([ChatMessage("user", "again")]).__anext__()
        await first.aclose()
        assert not chat.busy

    async def test_early_stop_releases_client(self, serve):
        chat = await serve(ScriptedProvider(["one", "two"]))
        async with aclosing(chat.stream_reply([ChatMessage("user", "hi")])) as reply:
            async for _ in reply:
                break
        assert not chat.busy
        assert await chat.ask([ChatMessage("user", "again")]) == "onetwo"


@pytest.mark.asyncio
class TestErrorMapping:
    async def test_rate_limited(self, serve):
        chat = await serve(
            ScriptedProvider(["ok"]),
            rate_limiter=InMemoryRateLimitStore(max_requests=1, window_secs=60),
        )
        await chat.ask([ChatMessage("user", "hi")])
        with pytest.raises(RateLimitedError) as exc_info:
            await chat.ask([ChatMessage("user", "hi")])
        assert exc_info.value.retry_after == 60
        assert "wait a minute" in exc_info.value.user_message
        assert not chat.busy

    async def test_service_unavailable(self, serve, monkeypatch):
        monkeypatch.setattr(config, "GOOGLE_GENERATIVE_AI_API_KEY", None)
        chat = await serve(ScriptedProvider(["ok"]))
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await chat.ask([ChatMessage("user", "hi")])
        assert exc_info.value.status == 503

    async def test_rejected_carries_reason(self, serve):
        chat = await serve(ScriptedProvider(["ok"]))
        with pytest.raises(RequestRejectedError) as exc_info:
            await chat.ask([ChatMessage("user", "x" * 10_001)])
        assert exc_info.value.reason == "content_too_long"


@pytest.mark.asyncio
class TestAnalysePackage:
    async def test_photo_analysed(self, serve, image_bytes):
        provider = ScriptedProvider([
            "Circle number 4 from the left appears filled. ",
            "Origin: Guatemala. Notes: chocolate, caramel.",
        ])
        chat = await serve(provider)
        photo = UploadCandidate(
            data=image_bytes(1600, 1200, "PNG"), mime_type="image/png", filename="bag.png"
        )

        result = await chat.analyse_package([photo])

        assert result.record.roast_scale == 4
        assert result.record.origin.country == "Guatemala"
        assert result.rejected == []
        sent = provider.received[-1]
        assert sent.content == PACKAGE_ANALYSIS_PROMPT
        assert sent.attachments[0].content_type == "image/jpeg"

    async def test_rejection_phrase_needs_reupload(self, serve, image_bytes):
        chat = await serve(ScriptedProvider([REJECTION_PHRASE + "."]))
        photo = UploadCandidate(data=image_bytes(100, 100, "JPEG"), mime_type="image/jpeg", filename="cat.jpg")
        result = await chat.analyse_package([photo], text="What is this?")
        assert result.record.reupload_required
        assert result.message.content == "What is this?"

    async def test_history_sent_before_new_message(self, serve, image_bytes):
        provider = ScriptedProvider(["Medium roast"])
        chat = await serve(provider)
        history = [ChatMessage("user", "hello"), ChatMessage("assistant", "Hi!")]
        photo = UploadCandidate(data=image_bytes(50, 50, "PNG"), mime_type="image/png", filename="a.png")
        await chat.analyse_package([photo], history=history)
        assert [m.role for m in provider.received] == ["user", "assistant", "user"]
