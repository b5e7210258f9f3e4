"""
OpenAI chat provider — chat completions API with stream=True.

Images are passed back as the same base64 data URLs the client uploaded,
after Attachment.decode() has confirmed the declared type matches.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Sequence

from openai import AsyncOpenAI

from chat_models import ChatMessage
from providers.base import ChatProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


def to_openai_messages(messages: Sequence[ChatMessage]) -> list[dict]:
    out = []
    for m in messages:
        if not m.attachments:
            out.append({"role": m.role, "content": m.content})
            continue
        content: list[dict] = []
        for a in m.attachments:
            a.decode()   # raises ValueError on a type/prefix mismatch
            content.append({"type": "image_url", "image_url": {"url": a.url, "detail": "high"}})
        content.append({"type": "text", "text": m.content})
        out.append({"role": m.role, "content": content})
    return out


class OpenAIProvider(ChatProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name = "openai"
        self.model_id = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def stream_text(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        stream = await self._client.chat.completions.create(
            model=self.model_id,
            messages=to_openai_messages(messages),
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content
            if text:
                yield text
