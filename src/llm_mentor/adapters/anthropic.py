"""Anthropic Messages API adapter."""

import json
from typing import TYPE_CHECKING, Any

from pydantic import Field

from llm_mentor.adapters.base import AdapterOptions, HTTPRequest, ProviderAdapter
from llm_mentor.exceptions import ResponseParseError
from llm_mentor.messages import (
    ImageUrlPart,
    InlineImagePart,
    Message,
    Role,
    TextPart,
    describe_unsupported_part,
)

if TYPE_CHECKING:
    from llm_mentor.session import Prompt

DEFAULT_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"

BASE_SYSTEM_PROMPT = (
    "You should always return only the structured output as JSON, no additional "
    "data or content should be returned,\nrespecting always the input schema and "
    "field description gave to you.\n"
)


class AnthropicOptions(AdapterOptions):
    """Anthropic options."""

    url: str = DEFAULT_URL
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    anthropic_version: str = DEFAULT_ANTHROPIC_VERSION


class AnthropicAdapter(ProviderAdapter):
    """Adapter for Claude models through the Messages API.

    The Messages API has no system role inside ``messages``: every system
    message is merged, in order, into the top-level ``system`` field after a
    base instruction, and the wire schema is embedded there as text.
    """

    name = "anthropic"
    options_model = AnthropicOptions

    def build_request(self, prompt: "Prompt", options: AdapterOptions) -> HTTPRequest:
        """Shape a Messages API request.

        Args:
            prompt: Messages, schema and configuration of the session
            options: Validated Anthropic options

        Returns:
            The request to send
        """
        system_messages = [m for m in prompt.messages if m.role is Role.SYSTEM]
        regular_messages = [m for m in prompt.messages if m.role is not Role.SYSTEM]

        system = BASE_SYSTEM_PROMPT + "\n\n".join(m.text() for m in system_messages)
        schema_text = json.dumps(self.response_schema(prompt), indent=2, sort_keys=True)
        system += f"\nYou should respect the following schema: {schema_text}\n"

        body = {
            "model": options.model,
            "system": system,
            "messages": [self._format_message(m) for m in regular_messages],
            "max_tokens": getattr(options, "max_tokens", DEFAULT_MAX_TOKENS),
            "temperature": options.temperature,
        }
        headers = [
            ("x-api-key", options.api_key),
            (
                "anthropic-version",
                getattr(options, "anthropic_version", DEFAULT_ANTHROPIC_VERSION),
            ),
            ("content-type", "application/json"),
        ]
        return HTTPRequest(url=options.url, body=body, headers=headers)

    def extract_text(self, envelope: Any) -> str:
        content = envelope.get("content") if isinstance(envelope, dict) else None
        if content is None:
            raise ResponseParseError(
                f"No content found in anthropic response: {envelope!r}",
                raw_text=repr(envelope),
            )
        if content == []:
            return "{}"
        first = content[0] if isinstance(content, list) else None
        if not isinstance(first, dict) or not isinstance(first.get("text"), str):
            raise ResponseParseError(
                f"Unexpected content format: {content!r}", raw_text=repr(content)
            )
        return first["text"]

    def _format_message(self, message: Message) -> dict[str, Any]:
        if isinstance(message.content, str):
            content: Any = message.content
        else:
            content = [self._format_part(part) for part in message.content]
        return {"role": message.role.value, "content": content}

    def _format_part(self, part: Any) -> dict[str, Any]:
        if isinstance(part, TextPart):
            return {"type": "text", "text": part.text}
        if isinstance(part, ImageUrlPart):
            return {"type": "image", "source": {"type": "url", "url": part.url}}
        if isinstance(part, InlineImagePart):
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": part.mime_type,
                    "data": part.data,
                },
            }
        return {"type": "text", "text": describe_unsupported_part(part)}
