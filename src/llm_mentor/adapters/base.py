"""Shared provider adapter contract."""

import json
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llm_mentor.exceptions import (
    AdapterError,
    ConfigurationError,
    MentorException,
    ResponseParseError,
)
from llm_mentor.transport import Headers, TransportResponse

if TYPE_CHECKING:
    from llm_mentor.session import Prompt

logger = logging.getLogger(__name__)

WRAPPED_KEY = "value"

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class AdapterOptions(BaseModel):
    """Options shared by every provider adapter.

    Unknown options are rejected so a typo never silently falls back to a
    default.
    """

    model_config = ConfigDict(extra="forbid")

    api_key: str = Field(min_length=1)
    model: str = Field(min_length=1)
    temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    url: str
    timeout: float = Field(default=60.0, gt=0)


@dataclass(frozen=True)
class HTTPRequest:
    """A fully shaped vendor request."""

    url: str
    body: dict[str, Any]
    headers: Headers = field(default_factory=list)


@dataclass
class AdapterResult:
    """Tagged result of one adapter call.

    Attributes:
        success: Whether a JSON value was obtained
        value: Parsed (and unwrapped) JSON value on success
        error: The error on failure
    """

    success: bool
    value: Any | None = None
    error: Exception | None = None


class ProviderAdapter(ABC):
    """Base class for vendor adapters.

    A call validates the adapter options, shapes the vendor request, makes
    exactly one transport request, then extracts and parses the text payload
    from the vendor envelope. Retrying is left to the session.

    Subclasses set ``name`` and ``options_model`` and implement
    :meth:`build_request` and :meth:`extract_text`. Adapters whose API
    rejects non-object response schemas set ``requires_object_root``.
    """

    name: str = "base"
    options_model: type[AdapterOptions] = AdapterOptions
    requires_object_root: bool = False

    def validate_config(self, config: Mapping[str, Any]) -> AdapterOptions:
        """Validate adapter options.

        Args:
            config: Raw adapter configuration

        Returns:
            Validated options

        Raises:
            ConfigurationError: Naming the first offending option
        """
        try:
            return self.options_model.model_validate(dict(config))
        except ValidationError as e:
            first = e.errors(include_url=False)[0]
            key = ".".join(str(part) for part in first["loc"]) or None
            raise ConfigurationError(
                f"Invalid {self.name} option '{key}': {first['msg']}",
                config_key=key,
                config_value=first.get("input"),
            ) from e

    @abstractmethod
    def build_request(self, prompt: "Prompt", options: AdapterOptions) -> HTTPRequest:
        """Shape the vendor request for a prompt.

        Args:
            prompt: Messages, schema and configuration of the session
            options: Validated adapter options

        Returns:
            The request to send
        """
        pass

    @abstractmethod
    def extract_text(self, envelope: Any) -> str:
        """Pull the model's text payload out of the vendor envelope.

        Raises:
            ResponseParseError: If the envelope does not have the expected shape
        """
        pass

    def complete(self, prompt: "Prompt") -> AdapterResult:
        """Run one completion and return a tagged result instead of raising."""
        try:
            value = self.complete_or_raise(prompt)
        except MentorException as e:
            return AdapterResult(success=False, error=e)
        return AdapterResult(success=True, value=value)

    def complete_or_raise(self, prompt: "Prompt") -> Any:
        """Run one completion.

        Args:
            prompt: Messages, schema and configuration of the session

        Returns:
            Parsed JSON value, unwrapped for non-object roots

        Raises:
            ConfigurationError: If the adapter options are invalid
            AdapterError: If the provider answers with a non-2xx status
            TransportError: If no response was received
            ResponseParseError: If no JSON value can be recovered
        """
        options = self.validate_config(prompt.config)
        request = self.build_request(prompt, options)
        logger.debug("Sending %s request to %s", self.name, request.url)

        response = prompt.transport.request(
            request.url, request.body, request.headers, {"timeout": options.timeout}
        )
        if not response.ok:
            raise AdapterError(
                self._error_message(response),
                status=response.status,
                body=response.body,
                provider=self.name,
            )

        envelope = self._decode_envelope(response)
        value = parse_json_payload(self.extract_text(envelope))
        if self._wraps(prompt):
            return unwrap_root(value)
        return value

    def response_schema(self, prompt: "Prompt") -> dict[str, Any]:
        """Wire schema to send, wrapped when the vendor needs an object root."""
        document = prompt.schema.compiled.to_dict()
        if self._wraps(prompt):
            return wrap_root(document)
        return document

    def _wraps(self, prompt: "Prompt") -> bool:
        return self.requires_object_root and not prompt.schema.is_object

    def _decode_envelope(self, response: TransportResponse) -> Any:
        text = response.body.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseParseError(
                f"{self.name} response envelope is not JSON: {e}", raw_text=text
            ) from e

    def _error_message(self, response: TransportResponse) -> str:
        text = response.body.decode("utf-8", errors="replace")
        detail: Any = text
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict) and "error" in decoded:
            error = decoded["error"]
            detail = error.get("message", error) if isinstance(error, dict) else error
        return f"{self.name} API error ({response.status}): {detail}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def parse_json_payload(text: str) -> Any:
    """Parse a model's text payload as JSON, recovering embedded JSON.

    Tries, in order: the whole text, the first fenced code block, then the
    largest brace- or bracket-delimited span.

    Args:
        text: Raw text payload

    Returns:
        Parsed JSON value

    Raises:
        ResponseParseError: If no JSON value can be recovered
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    candidates = [match.strip() for match in _FENCE.findall(text)]
    spans = []
    for opening, closing in (("{", "}"), ("[", "]")):
        start, end = text.find(opening), text.rfind(closing)
        if start != -1 and end > start:
            spans.append(text[start : end + 1])
    candidates.extend(sorted(spans, key=len, reverse=True))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    raise ResponseParseError("Response payload is not valid JSON", raw_text=text)


def wrap_root(document: dict[str, Any]) -> dict[str, Any]:
    """Wrap a non-object root schema in a single-field object.

    Definitions stay at the top level so ``$ref`` paths keep resolving.
    """
    inner = dict(document)
    definitions = inner.pop("$defs", None)
    inner.pop("title", None)
    wrapped: dict[str, Any] = {
        "title": document.get("title", "root"),
        "type": "object",
        "required": [WRAPPED_KEY],
        "properties": {WRAPPED_KEY: inner},
        "additionalProperties": False,
    }
    if definitions:
        wrapped["$defs"] = definitions
    return wrapped


def unwrap_root(value: Any) -> Any:
    """Undo :func:`wrap_root` on a parsed response.

    Values that are not a wrapper are handed back untouched so the
    validator can report what is wrong with them.
    """
    if isinstance(value, dict) and set(value) == {WRAPPED_KEY}:
        return value[WRAPPED_KEY]
    return value
