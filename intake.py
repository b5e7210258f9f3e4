"""
intake.py — client-side preparation of a submission.

Every selected file is validated and compressed concurrently. A bad file
only removes itself: the rest still become attachments, in the order the
user picked them.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from chat_models import Attachment, ChatMessage
from image_compressor import ImageCompressionError, compress_image_async, to_attachment
from image_validator import MAX_FILES, ImageValidationError, UploadCandidate, validate_upload
from prompts import PACKAGE_ANALYSIS_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    attachments: list[Attachment] = field(default_factory=list)
    rejected: list[tuple[str, str]] = field(default_factory=list)   # (filename, reason)


async def _prepare_one(candidate: UploadCandidate) -> Attachment:
    result = validate_upload(candidate)
    if not result.ok:
        raise ImageValidationError(
            result.message, filename=candidate.filename, reason=result.reason or ""
        )
    compressed = await compress_image_async(candidate.data)
    return to_attachment(candidate.filename, compressed)


async def prepare_attachments(candidates: Sequence[UploadCandidate]) -> IntakeResult:
    if len(candidates) > MAX_FILES:
        raise ImageValidationError(
            f"Maximum {MAX_FILES} files allowed. Please remove some files first."
        )

    outcomes = await asyncio.gather(
        *[_prepare_one(c) for c in candidates],
        return_exceptions=True,
    )

    result = IntakeResult()
    for candidate, outcome in zip(candidates, outcomes):
        if isinstance(outcome, Attachment):
            result.attachments.append(outcome)
        elif isinstance(outcome, ImageValidationError):
            result.rejected.append((candidate.filename, outcome.reason))
        elif isinstance(outcome, ImageCompressionError):
            logger.warning("Dropping %s: %s", candidate.filename, outcome)
            result.rejected.append((candidate.filename, "undecodable"))
        else:
            raise outcome
    return result


def build_user_message(
    text: str,
    attachments: Optional[Sequence[Attachment]] = None,
) -> ChatMessage:
    """
    Assemble the outbound user message.
    Images with no typed question get the package-analysis prompt.
    """
    attachments = tuple(attachments or ())
    content = text.strip()
    if not content:
        if not attachments:
            raise ImageValidationError("Type a question or add a photo first.")
        content = PACKAGE_ANALYSIS_PROMPT
    else:
        content = text
    return ChatMessage(role="user", content=content, attachments=attachments)
