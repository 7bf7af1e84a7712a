"""OpenAI Chat Completions adapter using structured outputs."""

import re
from typing import TYPE_CHECKING, Any

from llm_mentor.adapters.base import AdapterOptions, HTTPRequest, ProviderAdapter
from llm_mentor.exceptions import ResponseParseError
from llm_mentor.messages import (
    ImageUrlPart,
    InlineImagePart,
    Message,
    TextPart,
    describe_unsupported_part,
)

if TYPE_CHECKING:
    from llm_mentor.session import Prompt

DEFAULT_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIOptions(AdapterOptions):
    """OpenAI options.

    ``strict`` asks for strict schema enforcement; it is only sent when the
    schema qualifies (every property of every object is required).
    """

    url: str = DEFAULT_URL
    strict: bool = True


class OpenAIAdapter(ProviderAdapter):
    """Adapter for OpenAI models using ``response_format`` JSON schemas.

    OpenAI only accepts object response schemas, so bare roots are wrapped
    in ``{"value": ...}`` and unwrapped again on the way back.
    """

    name = "openai"
    options_model = OpenAIOptions
    requires_object_root = True

    def build_request(self, prompt: "Prompt", options: AdapterOptions) -> HTTPRequest:
        """Shape a Chat Completions request.

        Args:
            prompt: Messages, schema and configuration of the session
            options: Validated OpenAI options

        Returns:
            The request to send
        """
        schema_dict = self.response_schema(prompt)
        json_schema: dict[str, Any] = {
            "name": self._generate_schema_name(schema_dict),
            "schema": schema_dict,
        }
        if getattr(options, "strict", False) and _all_required(schema_dict):
            json_schema["strict"] = True

        body = {
            "model": options.model,
            "temperature": options.temperature,
            "messages": [self._format_message(m) for m in prompt.messages],
            "response_format": {"type": "json_schema", "json_schema": json_schema},
        }
        headers = [
            ("authorization", f"Bearer {options.api_key}"),
            ("content-type", "application/json"),
        ]
        return HTTPRequest(url=options.url, body=body, headers=headers)

    def extract_text(self, envelope: Any) -> str:
        try:
            message = envelope["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            raise ResponseParseError(
                f"No choices found in openai response: {envelope!r}",
                raw_text=repr(envelope),
            ) from None
        if not isinstance(message, dict):
            raise ResponseParseError(
                f"Unexpected openai message: {message!r}", raw_text=repr(message)
            )

        if message.get("refusal"):
            raise ResponseParseError(
                f"Model refused to answer: {message['refusal']}",
                raw_text=message["refusal"],
            )
        content = message.get("content")
        if not isinstance(content, str):
            raise ResponseParseError(
                f"Unexpected message content: {content!r}", raw_text=repr(content)
            )
        return content

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
            return {"type": "image_url", "image_url": {"url": part.url}}
        if isinstance(part, InlineImagePart):
            data_url = f"data:{part.mime_type};base64,{part.data}"
            return {"type": "image_url", "image_url": {"url": data_url}}
        return {"type": "text", "text": describe_unsupported_part(part)}

    def _generate_schema_name(self, schema_dict: dict[str, Any]) -> str:
        """Generate a name for the schema.

        Args:
            schema_dict: JSON schema dictionary

        Returns:
            Schema name accepted by the OpenAI API
        """
        name = re.sub(r"[^A-Za-z0-9_-]", "_", str(schema_dict.get("title", "")))
        return name[:64] or "root"


def _all_required(value: Any) -> bool:
    if isinstance(value, dict):
        properties = value.get("properties")
        if isinstance(properties, dict):
            if set(value.get("required", [])) != set(properties):
                return False
        return all(_all_required(item) for item in value.values())
    if isinstance(value, list):
        return all(_all_required(item) for item in value)
    return True
