"""
chat_client.py — the caller's side of /api/chat.

Submits a conversation, reads the streamed reply chunk by chunk and, for
package photos, runs the finished reply through coffee_analysis. Server
errors come back as ChatRequestError subclasses carrying the message to
show the user.

Only one reply streams at a time per client; a second submission while one
is in flight raises ChatBusyError.
"""
from __future__ import annotations

import codecs
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Sequence

import aiohttp

from chat_models import ChatMessage
from coffee_analysis import AnalysisRecord, parse_analysis
from image_validator import UploadCandidate
from intake import build_user_message, prepare_attachments

logger = logging.getLogger(__name__)

_TIMEOUT = aiohttp.ClientTimeout(total=180, sock_read=60)


# ── Errors ────────────────────────────────────────────────────────────────────

class ChatRequestError(Exception):
    user_message = "An error occurred. Please try again."

    def __init__(self, status: int, detail: str = ""):
        super().__init__(f"HTTP {status}: {detail}" if detail else f"HTTP {status}")
        self.status = status
        self.detail = detail


class RequestRejectedError(ChatRequestError):
    def __init__(self, status: int, detail: str = "", reason: str = ""):
        super().__init__(status, detail)
        self.reason = reason


class RateLimitedError(ChatRequestError):
    user_message = "Too many requests. Please wait a minute before trying again."

    def __init__(self, status: int, detail: str = "", retry_after: int = 60):
        super().__init__(status, detail)
        self.retry_after = retry_after


class ServiceUnavailableError(ChatRequestError):
    user_message = "Service temporarily unavailable. Please try again later."


class ChatBusyError(RuntimeError):
    """A reply is already streaming for this client."""


async def _raise_for_status(resp: aiohttp.ClientResponse) -> None:
    if resp.status == 200:
        return
    detail = (await resp.text())[:200]
    if resp.status == 429:
        try:
            retry_after = int(resp.headers.get("Retry-After", "60"))
        except ValueError:
            retry_after = 60
        raise RateLimitedError(resp.status, detail, retry_after)
    if resp.status == 503:
        raise ServiceUnavailableError(resp.status, detail)
    if resp.status == 400:
        raise RequestRejectedError(resp.status, detail, resp.headers.get("X-Reject-Reason", ""))
    raise ChatRequestError(resp.status, detail)


@dataclass
class PackageAnalysis:
    message: ChatMessage
    reply: str
    record: AnalysisRecord
    rejected: list[tuple[str, str]] = field(default_factory=list)


class ChatClient:

    def __init__(self, base_url: str, session: Optional[aiohttp.ClientSession] = None):
        self.endpoint = base_url.rstrip("/") + "/api/chat"
        self._session = session
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def stream_reply(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """
        Yield the reply text as it arrives.

        The client stays busy until the generator finishes or is closed; callers
        that may stop early should wrap it in contextlib.aclosing().
        """
        if self._busy:
            raise ChatBusyError("A reply is already streaming")
        self._busy = True
        try:
            payload = {"messages": [m.to_dict() for m in messages]}
            if self._session is not None:
                async with aclosing(self._post(self._session, payload)) as texts:
                    async for text in texts:
                        yield text
            else:
                async with aiohttp.ClientSession() as session:
                    async with aclosing(self._post(session, payload)) as texts:
                        async for text in texts:
                            yield text
        finally:
            self._busy = False

    async def _post(self, session: aiohttp.ClientSession, payload: dict) -> AsyncIterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")()
        async with session.post(self.endpoint, json=payload, timeout=_TIMEOUT) as resp:
            await _raise_for_status(resp)
            async for raw in resp.content.iter_any():
                text = decoder.decode(raw)
                if text:
                    yield text
            tail = decoder.decode(b"", final=True)
            if tail:
                yield tail

    async def ask(self, messages: Sequence[ChatMessage]) -> str:
        """Send messages and return the full reply once the stream closes."""
        async with aclosing(self.stream_reply(messages)) as chunks:
            return "".join([text async for text in chunks])

    async def analyse_package(
        self,
        candidates: Sequence[UploadCandidate],
        text: str = "",
        history: Sequence[ChatMessage] = (),
    ) -> PackageAnalysis:
        """
        Validate and compress the photos, send them (with the analysis prompt
        when text is blank) and parse the finished reply.
        """
        intake = await prepare_attachments(candidates)
        for filename, reason in intake.rejected:
            logger.warning('File "%s" was rejected (%s)', filename, reason)

        message = build_user_message(text, intake.attachments)
        reply = await self.ask([*history, message])
        return PackageAnalysis(
            message=message,
            reply=reply,
            record=parse_analysis(reply),
            rejected=intake.rejected,
        )
