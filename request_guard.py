"""
request_guard.py — everything /api/chat checks before a model is called.

Order (first failure wins, nothing is forwarded on failure):
  1. configuration — model credential present          → ServiceUnavailable (503)
  2. rate limit    — per X-Forwarded-For client         → RateLimited (429)
  3. schema        — message list shape and size limits → RequestRejected (400)
"""
from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Mapping, Optional

from chat_models import ROLES, ChatMessage, attachment_list, split_data_url
from rate_limiter import RateLimitStore

logger = logging.getLogger(__name__)

MAX_MESSAGES          = 50
MAX_CONTENT_CHARS     = 10_000
MAX_ATTACHMENTS       = 5
# base64 inflates ~1.33x, so this approximates a 10 MB original image
MAX_ATTACHMENT_URL_LEN = 15 * 1024 * 1024

UNKNOWN_CLIENT = "unknown"


class RejectReason(str, Enum):
    MALFORMED_BODY          = "malformed_body"
    NOT_A_LIST              = "not_a_list"
    EMPTY                   = "empty"
    TOO_MANY_MESSAGES       = "too_many_messages"
    INVALID_ROLE            = "invalid_role"
    INVALID_CONTENT         = "invalid_content"
    CONTENT_TOO_LONG        = "content_too_long"
    INVALID_ATTACHMENTS     = "invalid_attachments"
    TOO_MANY_ATTACHMENTS    = "too_many_attachments"
    INVALID_ATTACHMENT_TYPE = "invalid_attachment_type"
    INVALID_ATTACHMENT_DATA = "invalid_attachment_data"
    ATTACHMENT_TOO_LARGE    = "attachment_too_large"


class RequestRejected(ValueError):
    """Schema or limit violation at the server boundary."""

    def __init__(self, reason: RejectReason, index: Optional[int] = None):
        where = f" (message {index})" if index is not None else ""
        super().__init__(f"Invalid request format: {reason.value}{where}")
        self.reason = reason
        self.index = index


class ServiceUnavailable(RuntimeError):
    """The server is misconfigured (no model credential)."""


def client_identifier(headers: Mapping[str, str]) -> str:
    """First X-Forwarded-For token, or "unknown" when the header is absent."""
    forwarded = headers.get("X-Forwarded-For") or headers.get("x-forwarded-for")
    if not forwarded:
        return UNKNOWN_CLIENT
    return forwarded.split(",")[0].strip() or UNKNOWN_CLIENT


def parse_body(body: bytes) -> Any:
    """Decode the JSON body and return its "messages" value (unvalidated)."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RequestRejected(RejectReason.MALFORMED_BODY) from exc
    if not isinstance(data, dict):
        raise RequestRejected(RejectReason.MALFORMED_BODY)
    return data.get("messages")


def _validate_attachments(raw: Any, index: int) -> None:
    if not isinstance(raw, list):
        raise RequestRejected(RejectReason.INVALID_ATTACHMENTS, index)
    if len(raw) > MAX_ATTACHMENTS:
        raise RequestRejected(RejectReason.TOO_MANY_ATTACHMENTS, index)
    for att in raw:
        if not isinstance(att, dict):
            raise RequestRejected(RejectReason.INVALID_ATTACHMENTS, index)
        content_type = att.get("contentType")
        if not isinstance(content_type, str) or not content_type.startswith("image/"):
            raise RequestRejected(RejectReason.INVALID_ATTACHMENT_TYPE, index)
        url = att.get("url")
        if not isinstance(url, str) or not url.startswith("data:image/"):
            raise RequestRejected(RejectReason.INVALID_ATTACHMENT_DATA, index)
        if len(url) > MAX_ATTACHMENT_URL_LEN:
            raise RequestRejected(RejectReason.ATTACHMENT_TOO_LARGE, index)
        try:
            media_type, _ = split_data_url(url)
        except ValueError as exc:
            raise RequestRejected(RejectReason.INVALID_ATTACHMENT_DATA, index) from exc
        if media_type.lower() != content_type.lower():
            raise RequestRejected(RejectReason.INVALID_ATTACHMENT_DATA, index)


def validate_messages(messages: Any) -> list[ChatMessage]:
    if not isinstance(messages, list):
        raise RequestRejected(RejectReason.NOT_A_LIST)
    if not messages:
        raise RequestRejected(RejectReason.EMPTY)
    if len(messages) > MAX_MESSAGES:
        raise RequestRejected(RejectReason.TOO_MANY_MESSAGES)

    for i, msg in enumerate(messages):
        if not isinstance(msg, dict) or msg.get("role") not in ROLES:
            raise RequestRejected(RejectReason.INVALID_ROLE, i)
        content = msg.get("content")
        if not isinstance(content, str) or not content:
            raise RequestRejected(RejectReason.INVALID_CONTENT, i)
        if len(content) > MAX_CONTENT_CHARS:
            raise RequestRejected(RejectReason.CONTENT_TOO_LONG, i)
        attachments = attachment_list(msg)
        if attachments is not None:
            _validate_attachments(attachments, i)

    return [ChatMessage.from_dict(m) for m in messages]


def guard_request(
    headers: Mapping[str, str],
    body: bytes,
    store: RateLimitStore,
    credential: Optional[str],
) -> list[ChatMessage]:
    """Run all three checks in order. Returns the validated messages."""
    if not credential:
        logger.error("Model API key is not configured")
        raise ServiceUnavailable("Model API key is not configured")

    store.check(client_identifier(headers))

    messages = validate_messages(parse_body(body))
    logger.debug("Accepted %d message(s)", len(messages))
    return messages
