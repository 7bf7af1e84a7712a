"""Conversation messages and multimodal content parts."""

import base64
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Roles a message can carry in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TextPart(BaseModel):
    """Plain text content part."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageUrlPart(BaseModel):
    """Remote image referenced by URL."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    url: str
    mime_type: str | None = None


class InlineImagePart(BaseModel):
    """Inline image carried as base64 text with its MIME type."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image_base64"] = "image_base64"
    data: str
    mime_type: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> "InlineImagePart":
        """Build an inline image part from raw image bytes.

        Args:
            raw: Image bytes
            mime_type: MIME type such as ``image/png``

        Returns:
            Inline image part with base64-encoded data
        """
        return cls(data=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)


ContentPart = TextPart | ImageUrlPart | InlineImagePart

# Known part shapes are tried in order before falling back to a raw dict.
ContentItem = Annotated[
    TextPart | ImageUrlPart | InlineImagePart | dict[str, Any],
    Field(union_mode="left_to_right"),
]


class Message(BaseModel):
    """A single conversation message.

    ``content`` is either text or a list of content parts. Parts that match
    none of the known shapes are kept as plain dicts so adapters can degrade
    them to a text placeholder instead of rejecting the whole request.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    role: Role
    content: str | list[ContentItem]

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: Any) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    def text(self) -> str:
        """Return the textual content, joining text parts when multimodal."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            part.text for part in self.content if isinstance(part, TextPart)
        )


def describe_unsupported_part(part: Any) -> str:
    """Placeholder text for a content part an adapter cannot encode."""
    if isinstance(part, dict):
        kind = part.get("type", "unknown")
    else:
        kind = getattr(part, "type", type(part).__name__)
    return f"[unsupported content part: {kind}]"
