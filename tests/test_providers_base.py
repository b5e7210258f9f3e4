"""
Tests for providers/base.py — ChatStream and split_system.

Covers:
  - chunks come out in arrival order
  - final_text only after exhaustion; on_finish fires exactly once
  - the stream cannot be consumed twice
  - a failing on_finish does not break the stream
  - ChatProvider.stream() wires stream_text into a ChatStream
"""
from __future__ import annotations

import pytest

from chat_models import ChatMessage
from providers.base import ChatProvider, ChatStream, split_system


async def agen(*chunks):
    for c in chunks:
        yield c


class EchoProvider(ChatProvider):
    name = "test"
    model_id = "echo"

    async def stream_text(self, messages):
        for m in messages:
            yield m.content


@pytest.mark.asyncio
class TestChatStream:
    async def test_order_preserved(self):
        stream = ChatStream(agen("a", "b", "c"))
        assert [c async for c in stream] == ["a", "b", "c"]
        assert stream.final_text == "abc"
        assert stream.done

    async def test_final_text_before_finish_raises(self):
        stream = ChatStream(agen("a"))
        with pytest.raises(RuntimeError):
            stream.final_text

    async def test_on_finish_called_once(self):
        calls = []
        stream = ChatStream(agen("x", "y"), on_finish=calls.append)
        await stream.collect()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert calls == ["xy"]

    async def test_not_restartable(self):
        stream = ChatStream(agen("a"))
        await stream.collect()
        with pytest.raises(RuntimeError):
            async for _ in stream:
                pass

    async def test_empty_stream(self):
        calls = []
        stream = ChatStream(agen(), on_finish=calls.append)
        assert await stream.collect() == ""
        assert calls == [""]

    async def test_failing_callback_does_not_break_stream(self):
        def boom(_text):
            raise RuntimeError("log sink down")

        stream = ChatStream(agen("ok"), on_finish=boom)
        assert await stream.collect() == "ok"

    async def test_source_error_propagates(self):
        async def failing():
            yield "partial"
            raise ConnectionError("upstream gone")

        stream = ChatStream(failing())
        assert await stream.__anext__() == "partial"
        with pytest.raises(ConnectionError):
            await stream.__anext__()
        assert not stream.done

    async def test_resume_after_manual_first_chunk(self):
        stream = ChatStream(agen("1", "2", "3"))
        first = await stream.__anext__()
        rest = [c async for c in stream]
        assert [first, *rest] == ["1", "2", "3"]

    async def test_aclose_releases_source(self):
        released = []

        async def source():
            try:
                yield "a"
                yield "b"
            finally:
                released.append(True)

        calls = []
        stream = ChatStream(source(), on_finish=calls.append)
        assert await stream.__anext__() == "a"
        await stream.aclose()
        assert released == [True]
        assert calls == []
        assert not stream.done
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    async def test_aclose_after_finish_is_noop(self):
        stream = ChatStream(agen("x"))
        await stream.collect()
        await stream.aclose()
        assert stream.final_text == "x"

    async def test_provider_stream(self):
        provider = EchoProvider()
        stream = provider.stream([ChatMessage("user", "hi"), ChatMessage("user", "!")])
        assert await stream.collect() == "hi!"
        assert provider.full_name == "test/echo"


class TestSplitSystem:
    def test_system_messages_joined(self):
        system, turns = split_system([
            ChatMessage("system", "one"),
            ChatMessage("user", "hi"),
            ChatMessage("system", "two"),
        ])
        assert system == "one\n\ntwo"
        assert [t.content for t in turns] == ["hi"]

    def test_no_system(self):
        system, turns = split_system([ChatMessage("user", "hi")])
        assert system is None
        assert len(turns) == 1
