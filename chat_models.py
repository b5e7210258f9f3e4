"""
chat_models.py — the message types shared by the client, the server guard
and every provider.

Wire shape of one message (what POST /api/chat receives):
  {
    "role": "user" | "assistant" | "system",
    "content": "text",
    "experimental_attachments": [
      {"name": "bag.jpg", "contentType": "image/jpeg", "url": "data:image/jpeg;base64,..."}
    ]
  }
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Optional

ROLES = ("user", "assistant", "system")

# Attachment list key used on the wire; "attachments" is accepted as an alias
ATTACHMENTS_KEY = "experimental_attachments"


def make_data_url(content_type: str, data: bytes) -> str:
    """Encode bytes as an inline data reference: data:<type>;base64,<payload>."""
    return f"data:{content_type};base64,{base64.b64encode(data).decode()}"


def split_data_url(url: str) -> tuple[str, str]:
    """
    Split a base64 data URL into (media_type, payload).
    Raises ValueError if url is not a base64 data URL.
    """
    if not url.startswith("data:"):
        raise ValueError("not a data URL")
    header, sep, payload = url.partition(",")
    if not sep or not header.endswith(";base64"):
        raise ValueError("data URL is not base64-encoded")
    media_type = header[len("data:"):-len(";base64")]
    return media_type, payload


@dataclass(frozen=True)
class Attachment:
    """A compressed image embedded in a message."""
    name: str
    content_type: str
    url: str

    def decode(self) -> bytes:
        """
        Return the raw image bytes.
        The declared content type must match the data URL's media type.
        """
        media_type, payload = split_data_url(self.url)
        if media_type.lower() != self.content_type.lower():
            raise ValueError(
                f"Attachment {self.name!r}: content type {self.content_type} "
                f"does not match data URL type {media_type}"
            )
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Attachment {self.name!r}: invalid base64 payload") from exc

    def to_dict(self) -> dict:
        return {"name": self.name, "contentType": self.content_type, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "Attachment":
        return cls(
            name=data.get("name") or "image",
            content_type=data["contentType"],
            url=data["url"],
        )


@dataclass(frozen=True)
class ChatMessage:
    """One conversation turn. Immutable once sent."""
    role: str
    content: str
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)

    @property
    def has_images(self) -> bool:
        return bool(self.attachments)

    def to_dict(self) -> dict:
        data: dict = {"role": self.role, "content": self.content}
        if self.attachments:
            data[ATTACHMENTS_KEY] = [a.to_dict() for a in self.attachments]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        raw = attachment_list(data) or []
        return cls(
            role=data["role"],
            content=data["content"],
            attachments=tuple(Attachment.from_dict(a) for a in raw),
        )


def attachment_list(data: dict) -> Optional[object]:
    """Return the raw attachment list of a wire message (either key), or None."""
    if ATTACHMENTS_KEY in data:
        return data[ATTACHMENTS_KEY]
    return data.get("attachments")
