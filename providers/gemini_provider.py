"""
Google Gemini chat provider — uses the google-genai SDK, streaming.

Default model: gemini-2.5-flash (multimodal, fast enough to stream a package
description in a couple of seconds).
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Sequence

from google import genai
from google.genai import types as genai_types

from chat_models import ChatMessage
from providers.base import ChatProvider, split_system

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

# Gemini calls the assistant side of the conversation "model"
_ROLE_MAP = {"user": "user", "assistant": "model"}


def to_contents(messages: Sequence[ChatMessage]) -> list[genai_types.Content]:
    contents = []
    for m in messages:
        parts = [
            genai_types.Part.from_bytes(data=a.decode(), mime_type=a.content_type)
            for a in m.attachments
        ]
        parts.append(genai_types.Part.from_text(text=m.content))
        contents.append(genai_types.Content(role=_ROLE_MAP[m.role], parts=parts))
    return contents


class GeminiProvider(ChatProvider):

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.name     = "google"
        self.model_id = model
        self._client  = genai.Client(api_key=api_key)

    async def stream_text(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        system, turns = split_system(messages)
        gen_config = genai_types.GenerateContentConfig(system_instruction=system)

        stream = await self._client.aio.models.generate_content_stream(
            model=self.model_id,
            contents=to_contents(turns),
            config=gen_config,
        )
        async for chunk in stream:
            text = chunk.text
            if text:
                yield text
