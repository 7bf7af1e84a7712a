"""Google Gemini ``generateContent`` adapter."""

from typing import TYPE_CHECKING, Any

from llm_mentor.adapters.base import AdapterOptions, HTTPRequest, ProviderAdapter
from llm_mentor.exceptions import ResponseParseError, SchemaCompilationError
from llm_mentor.messages import (
    ImageUrlPart,
    InlineImagePart,
    Message,
    Role,
    TextPart,
    describe_unsupported_part,
)
from llm_mentor.schema.compiler import DEFS_KEY, REF_PREFIX

if TYPE_CHECKING:
    from llm_mentor.session import Prompt

DEFAULT_URL = "https://generativelanguage.googleapis.com/v1beta/models"

_ROLES = {Role.USER: "user", Role.ASSISTANT: "model", Role.SYSTEM: "user"}


class GeminiOptions(AdapterOptions):
    """Gemini options. ``url`` is the models collection, not a full endpoint."""

    url: str = DEFAULT_URL


class GeminiAdapter(ProviderAdapter):
    """Adapter for Gemini models.

    The first system message becomes ``system_instruction``; later system
    messages (retry feedback) are sent as user turns so their position in
    the conversation is kept. The response schema is sent through
    ``generationConfig`` in Gemini's OpenAPI subset: references inlined,
    ``additionalProperties`` dropped and ``["t", "null"]`` type lists
    turned into ``nullable``.
    """

    name = "gemini"
    options_model = GeminiOptions

    def build_request(self, prompt: "Prompt", options: AdapterOptions) -> HTTPRequest:
        """Shape a ``generateContent`` request.

        Args:
            prompt: Messages, schema and configuration of the session
            options: Validated Gemini options

        Returns:
            The request to send
        """
        system_instruction = None
        contents = []
        for message in prompt.messages:
            if message.role is Role.SYSTEM and system_instruction is None:
                system_instruction = {"parts": self._format_content(message)}
                continue
            contents.append(
                {"role": _ROLES[message.role], "parts": self._format_content(message)}
            )

        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": options.temperature,
                "response_mime_type": "application/json",
                "response_schema": to_gemini_schema(self.response_schema(prompt)),
            },
        }
        if system_instruction is not None:
            body["system_instruction"] = system_instruction

        url = f"{options.url.rstrip('/')}/{options.model}:generateContent"
        headers = [
            ("x-goog-api-key", options.api_key),
            ("content-type", "application/json"),
            ("accept", "application/json"),
        ]
        return HTTPRequest(url=url, body=body, headers=headers)

    def extract_text(self, envelope: Any) -> str:
        try:
            text = envelope["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ResponseParseError(
                f"Invalid response format from gemini API: {envelope!r}",
                raw_text=repr(envelope),
            ) from None
        if not isinstance(text, str):
            raise ResponseParseError(
                f"Unexpected part text: {text!r}", raw_text=repr(text)
            )
        return text

    def _format_content(self, message: Message) -> list[dict[str, Any]]:
        if isinstance(message.content, str):
            return [{"text": message.content}]
        return [self._format_part(part) for part in message.content]

    def _format_part(self, part: Any) -> dict[str, Any]:
        if isinstance(part, TextPart):
            return {"text": part.text}
        if isinstance(part, InlineImagePart):
            return {"inline_data": {"mime_type": part.mime_type, "data": part.data}}
        if isinstance(part, ImageUrlPart) and part.mime_type:
            return {"file_data": {"mime_type": part.mime_type, "file_uri": part.url}}
        return {"text": describe_unsupported_part(part)}


def to_gemini_schema(document: dict[str, Any]) -> dict[str, Any]:
    """Rewrite a wire schema into the subset Gemini accepts.

    Args:
        document: Compiled wire schema

    Returns:
        Self-contained schema without references

    Raises:
        SchemaCompilationError: If the schema is recursive, which cannot be
            inlined
    """
    definitions = document.get(DEFS_KEY, {})
    root = {key: value for key, value in document.items() if key != DEFS_KEY}
    return _transform(root, definitions, ())


def _transform(value: Any, definitions: dict[str, Any], trail: tuple[str, ...]) -> Any:
    if isinstance(value, list):
        return [_transform(item, definitions, trail) for item in value]
    if not isinstance(value, dict):
        return value

    ref = value.get("$ref")
    if isinstance(ref, str) and ref.startswith(REF_PREFIX):
        name = ref[len(REF_PREFIX) :]
        if name in trail or name not in definitions:
            raise SchemaCompilationError(
                f"Cannot inline reference {ref!r} for gemini: recursive or unknown"
            )
        return _transform(definitions[name], definitions, (*trail, name))

    any_of = value.get("anyOf")
    if isinstance(any_of, list):
        members = [m for m in any_of if m != {"type": "null"}]
        if len(members) == 1 and len(members) < len(any_of):
            collapsed = _transform(members[0], definitions, trail)
            return dict(collapsed, nullable=True)

    transformed: dict[str, Any] = {}
    for key, item in value.items():
        if key == "additionalProperties":
            continue
        if key == "type" and isinstance(item, list):
            kinds = [kind for kind in item if kind != "null"]
            transformed["type"] = kinds[0] if kinds else "null"
            if len(kinds) < len(item):
                transformed["nullable"] = True
        elif key == "enum" and isinstance(item, list):
            transformed[key] = [member for member in item if member is not None]
        elif key == "properties" and isinstance(item, dict):
            transformed[key] = {
                name: _transform(prop, definitions, trail)
                for name, prop in item.items()
            }
        else:
            transformed[key] = _transform(item, definitions, trail)
    return transformed
