"""
Anthropic chat provider — messages API, streamed via messages.stream().

Claude takes the system prompt as a separate argument and images as base64
blocks without the data-URL prefix.
"""
from __future__ import annotations

import base64
import logging
from typing import AsyncIterator, Sequence

import anthropic

from chat_models import ChatMessage
from providers.base import ChatProvider, split_system

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-haiku-latest"
MAX_TOKENS = 1024


def to_anthropic_messages(messages: Sequence[ChatMessage]) -> list[dict]:
    out = []
    for m in messages:
        if not m.attachments:
            out.append({"role": m.role, "content": m.content})
            continue
        content: list[dict] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": a.content_type,
                    "data": base64.b64encode(a.decode()).decode(),
                },
            }
            for a in m.attachments
        ]
        content.append({"type": "text", "text": m.content})
        out.append({"role": m.role, "content": content})
    return out


class AnthropicProvider(ChatProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name = "anthropic"
        self.model_id = model
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def stream_text(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        system, turns = split_system(messages)
        kwargs = {"system": system} if system else {}
        async with self._client.messages.stream(
            model=self.model_id,
            max_tokens=MAX_TOKENS,
            messages=to_anthropic_messages(turns),
            **kwargs,
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
