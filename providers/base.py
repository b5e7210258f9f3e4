"""
Shared types and base class for all chat providers.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, Optional, Sequence

from chat_models import ChatMessage

logger = logging.getLogger(__name__)


# ── Streaming result ──────────────────────────────────────────────────────────

class ChatStream:
    """
    A lazy, finite, single-use sequence of text chunks.

    Chunks come out in arrival order. Once the source is exhausted the
    concatenated text is in final_text and on_finish(final_text) has been
    called exactly once. The stream cannot be restarted.
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        on_finish: Optional[Callable[[str], None]] = None,
    ):
        self._source = source
        self._on_finish = on_finish
        self._chunks: list[str] = []
        self._done = False
        self._closed = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def final_text(self) -> str:
        if not self._done:
            raise RuntimeError("Stream has not finished yet")
        return "".join(self._chunks)

    def __aiter__(self) -> "ChatStream":
        if self._done:
            raise RuntimeError("ChatStream can only be consumed once")
        return self

    async def __anext__(self) -> str:
        if self._done or self._closed:
            raise StopAsyncIteration
        try:
            chunk = await self._source.__anext__()
        except StopAsyncIteration:
            self._finish()
            raise
        self._chunks.append(chunk)
        return chunk

    def _finish(self) -> None:
        self._done = True
        if self._on_finish is not None:
            try:
                self._on_finish("".join(self._chunks))
            except Exception as exc:
                logger.error("on_finish callback failed: %s", exc)

    async def aclose(self) -> None:
        """Release the source early. on_finish does not fire for a closed stream."""
        if self._done or self._closed:
            return
        self._closed = True
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()

    async def collect(self) -> str:
        """Drain the stream and return the full text."""
        async for _ in self:
            pass
        return self.final_text


# ── Abstract base ──────────────────────────────────────────────────────────────

class ChatProvider(ABC):
    """Base class all chat providers must implement."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-2.5-flash"

    @abstractmethod
    def stream_text(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Yield the model's reply as text chunks, in order."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

    def stream(
        self,
        messages: Sequence[ChatMessage],
        on_finish: Optional[Callable[[str], None]] = None,
    ) -> ChatStream:
        return ChatStream(self.stream_text(messages), on_finish=on_finish)


def split_system(messages: Sequence[ChatMessage]) -> tuple[Optional[str], list[ChatMessage]]:
    """Separate system messages (joined) from the conversation turns."""
    system = [m.content for m in messages if m.role == "system"]
    turns  = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system) if system else None), turns
