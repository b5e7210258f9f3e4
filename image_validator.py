"""
image_validator.py — trust check for user-selected images before upload.

Declared MIME types come from the client and cannot be trusted on their own,
so the final check reads the file signature (magic number) from the first
12 bytes. Checks run in order and stop at the first failure:

  1. size          > 10 MiB                       → too_large
  2. declared type not jpeg / jpg / png / webp    → unsupported_type
  3. signature     not JPEG / PNG / WEBP          → not_an_image
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILES = 5
ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
HEADER_LEN = 12

TOO_LARGE        = "too_large"
UNSUPPORTED_TYPE = "unsupported_type"
NOT_AN_IMAGE     = "not_an_image"

REASON_TEXT = {
    TOO_LARGE:        "File is too large (max 10MB).",
    UNSUPPORTED_TYPE: "Unsupported file type. Use JPEG, PNG or WEBP.",
    NOT_AN_IMAGE:     "File is not a genuine image.",
}


class ImageValidationError(ValueError):
    """A user-supplied file was rejected before anything was sent."""

    def __init__(self, message: str, filename: str = "", reason: str = ""):
        super().__init__(message)
        self.filename = filename
        self.reason = reason


@dataclass(frozen=True)
class UploadCandidate:
    """A single image the user selected or dropped."""
    data: bytes
    mime_type: str
    filename: str
    declared_size: Optional[int] = None

    @property
    def size(self) -> int:
        return self.declared_size if self.declared_size is not None else len(self.data)

    @property
    def header(self) -> bytes:
        return self.data[:HEADER_LEN]


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def message(self) -> str:
        return REASON_TEXT.get(self.reason, "") if self.reason else ""


def detect_image_kind(header: bytes) -> Optional[str]:
    """Return "jpeg", "png" or "webp" from the leading bytes, else None."""
    if header[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if header[:4] == b"\x89PNG":
        return "png"
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "webp"
    return None


def validate_upload(candidate: UploadCandidate) -> ValidationResult:
    if candidate.size > MAX_FILE_SIZE:
        logger.warning(
            "File %s is too large: %.2fMB", candidate.filename, candidate.size / 1024 / 1024
        )
        return ValidationResult(False, TOO_LARGE)

    if candidate.mime_type.lower() not in ALLOWED_MIME_TYPES:
        logger.warning("File %s has invalid type: %s", candidate.filename, candidate.mime_type)
        return ValidationResult(False, UNSUPPORTED_TYPE)

    if detect_image_kind(candidate.header) is None:
        logger.warning("File %s failed binary validation — not a real image", candidate.filename)
        return ValidationResult(False, NOT_AN_IMAGE)

    return ValidationResult(True)


def is_valid(candidate: UploadCandidate) -> bool:
    return validate_upload(candidate).ok


def ensure_valid(candidate: UploadCandidate) -> None:
    """Raise ImageValidationError if the candidate fails any check."""
    result = validate_upload(candidate)
    if not result.ok:
        raise ImageValidationError(
            f'File "{candidate.filename}" was rejected: {result.message}',
            filename=candidate.filename,
            reason=result.reason or "",
        )
