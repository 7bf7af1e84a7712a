"""Session: conversation state and the structured-output completion loop."""

import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from llm_mentor.adapters import ProviderAdapter, ProviderAdapterFactory
from llm_mentor.exceptions import (
    CompletionValidationError,
    ConfigurationError,
    MentorException,
    ResponseParseError,
)
from llm_mentor.messages import Message, Role
from llm_mentor.schema import FieldError, RequiredPolicy, Schema, format_errors
from llm_mentor.schema.validators import ROOT_FIELD
from llm_mentor.transport import RequestsTransport, Transport

logger = logging.getLogger(__name__)

INITIAL_PROMPT = """\
You are a highly intelligent and skilled assistant. Your task is to analyze and \
understand the content provided, then generate well-structured outputs that adhere \
to the constraints and requirements specified in the subsequent instructions. Your \
responses must be accurate, concise, and match the intended structure or purpose.

Focus on:
- Parsing raw input effectively.
- Generating outputs that are consistent with expectations and obey the provided schema.
- Handling complex or ambiguous information with clarity and precision.
- Following all constraints and guidelines provided in the forthcoming messages.

Be ready to process and transform inputs into structured, actionable results as required.
"""

RETRY_PROMPT = (
    "The response did not pass validation. Please try again and fix the "
    "following validation errors:\n\n{errors}\n"
)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_BACKOFF = 1.0
DEFAULT_MAX_BACKOFF = 30.0
MIN_BASE_BACKOFF = 0.5


@dataclass(frozen=True)
class Prompt:
    """Everything an adapter needs for one request.

    Attributes:
        messages: Chronological messages, starting with the synthesized
            system message
        schema: Target schema
        config: Raw adapter configuration
        transport: HTTP transport to send the request through
    """

    messages: tuple[Message, ...]
    schema: Schema
    config: Mapping[str, Any]
    transport: Transport


@dataclass
class CompletionResult:
    """Outcome of :meth:`Session.complete`.

    Attributes:
        success: Whether a valid value was produced
        value: Validated value (model instance, or dict for field maps)
        errors: Field errors of the last attempt when validation never passed
        error: Fatal error that stopped the loop (configuration, adapter,
            schema), if any
        attempts: Number of provider calls made
        response: Last parsed response (or raw text when unparseable)
    """

    success: bool
    value: Any | None = None
    errors: list[FieldError] = field(default_factory=list)
    error: Exception | None = None
    attempts: int = 0
    response: Any | None = None


@dataclass(frozen=True)
class Session:
    """A structured-output conversation with one LLM provider.

    Sessions are immutable: every configuration call returns a new session,
    so one session value can be reused as a template. Messages are kept
    newest first and replayed in chronological order for each request.

    Example:
        session = (
            Session.start("openai", schema=Person, adapter_config=config)
            .append_message(Message.user("Extract the person from: ..."))
            .configure_backoff(base_backoff=0.5, max_backoff=10)
        )
        person = session.complete_or_raise()
    """

    schema: Schema
    adapter: ProviderAdapter
    transport: Transport
    adapter_config: Mapping[str, Any] = field(default_factory=dict)
    initial_prompt: str = INITIAL_PROMPT
    messages: tuple[Message, ...] = ()
    max_retries: int = DEFAULT_MAX_RETRIES
    base_backoff: float = DEFAULT_BASE_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF
    debug: bool = False

    @classmethod
    def start(
        cls,
        adapter: str | ProviderAdapter | type[ProviderAdapter],
        schema: Any,
        adapter_config: Mapping[str, Any] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: Transport | None = None,
        required_policy: RequiredPolicy = RequiredPolicy.EXCLUDE_DEFAULTS,
        require_documentation: bool = False,
    ) -> "Session":
        """Start a session for a schema.

        The adapter and schema are checked here, before any network call.
        Schema documentation, when present, is appended to the initial
        system prompt.

        Args:
            adapter: Provider name, adapter class, or adapter instance
            schema: Pydantic model class, flat field map, or bare annotation
            adapter_config: Adapter options (``api_key``, ``model``...)
            max_retries: Total attempt budget, at least 1
            transport: HTTP transport, ``RequestsTransport`` by default
            required_policy: Required-set policy for fields with defaults
            require_documentation: Fail unless every field is documented

        Returns:
            New session

        Raises:
            ConfigurationError: If the adapter or settings are invalid
            SchemaIntrospectionError: If the schema cannot be introspected
        """
        if schema is None:
            raise ConfigurationError("A schema is required", config_key="schema")

        resolved_schema = Schema.from_source(
            schema, policy=required_policy, require_documentation=require_documentation
        )
        initial_prompt = INITIAL_PROMPT
        if resolved_schema.documentation:
            initial_prompt = "\n".join([INITIAL_PROMPT, resolved_schema.documentation])

        session = cls(
            schema=resolved_schema,
            adapter=ProviderAdapterFactory.get_adapter(adapter),
            transport=transport if transport is not None else RequestsTransport(),
            adapter_config=dict(adapter_config or {}),
            initial_prompt=initial_prompt,
        )
        return session.set_max_retries(max_retries)

    def append_message(
        self, message: Message | Mapping[str, Any] | Role | str, content: Any = None
    ) -> "Session":
        """Append a message to the conversation.

        Accepts a :class:`Message`, a ``{"role": ..., "content": ...}``
        mapping, or a role followed by its content.

        Returns:
            New session with the message appended
        """
        if content is not None:
            message = Message(role=Role(message), content=content)
        elif not isinstance(message, Message):
            message = Message.model_validate(message)
        return replace(self, messages=(message, *self.messages))

    def overwrite_initial_prompt(self, initial_prompt: str) -> "Session":
        """Replace the synthesized system prompt, documentation included."""
        if not isinstance(initial_prompt, str):
            raise ConfigurationError(
                "The initial prompt must be a string",
                config_key="initial_prompt",
                config_value=initial_prompt,
            )
        return replace(self, initial_prompt=initial_prompt)

    def configure_adapter(
        self, config: Mapping[str, Any] | None = None, **options: Any
    ) -> "Session":
        """Merge adapter options into the current configuration.

        Options are validated by the adapter on each request.
        """
        merged = {**self.adapter_config, **(config or {}), **options}
        return replace(self, adapter_config=merged)

    def configure_backoff(
        self, base_backoff: float | None = None, max_backoff: float | None = None
    ) -> "Session":
        """Configure retry backoff, in seconds.

        Args:
            base_backoff: Base delay; 0 disables waiting, otherwise at least 0.5
                so delays never shrink between retries
            max_backoff: Upper bound for any single delay

        Raises:
            ConfigurationError: If a value is out of range
        """
        base = self.base_backoff if base_backoff is None else base_backoff
        cap = self.max_backoff if max_backoff is None else max_backoff
        if base < 0 or 0 < base < MIN_BASE_BACKOFF:
            raise ConfigurationError(
                f"base_backoff must be 0 or at least {MIN_BASE_BACKOFF}",
                config_key="base_backoff",
                config_value=base,
            )
        if cap < 0:
            raise ConfigurationError(
                "max_backoff must not be negative",
                config_key="max_backoff",
                config_value=cap,
            )
        return replace(self, base_backoff=float(base), max_backoff=float(cap))

    def configure_transport(self, transport: Transport) -> "Session":
        if not isinstance(transport, Transport):
            raise ConfigurationError(
                f"{transport!r} should implement the Transport interface",
                config_key="transport",
                config_value=transport,
            )
        return replace(self, transport=transport)

    def set_max_retries(self, max_retries: int) -> "Session":
        """Set the total attempt budget (1 means a single attempt, no retry)."""
        if (
            isinstance(max_retries, bool)
            or not isinstance(max_retries, int)
            or max_retries < 1
        ):
            raise ConfigurationError(
                "max_retries must be a positive integer",
                config_key="max_retries",
                config_value=max_retries,
            )
        return replace(self, max_retries=max_retries)

    def enable_debug(self, enabled: bool = True) -> "Session":
        """Log outgoing messages and raw responses at INFO level."""
        return replace(self, debug=enabled)

    def backoff_delay(self, retry: int) -> float:
        """Delay before the ``retry``-th retry (counting from 1), in seconds."""
        return min(self.max_backoff, (self.base_backoff * 2) ** retry)

    def prepare(self) -> Prompt:
        """Build the adapter prompt: system prompt first, then the history."""
        messages = (Message.system(self.initial_prompt), *reversed(self.messages))
        return Prompt(
            messages=messages,
            schema=self.schema,
            config=dict(self.adapter_config),
            transport=self.transport,
        )

    def complete(self) -> CompletionResult:
        """Run the completion loop.

        Each attempt sends the conversation, parses the reply and validates
        it. Parse and validation failures are fed back to the model and
        retried with exponential backoff until the attempt budget is spent.
        Configuration, adapter and schema errors stop the loop at once.

        Returns:
            Tagged completion result; this method does not raise for
            completion failures
        """
        try:
            self.schema.compiled
        except MentorException as e:
            logger.error("Schema %s cannot be compiled: %s", self.schema.title, e)
            return CompletionResult(success=False, error=e)

        session = self
        attempts = 0
        while True:
            attempts += 1
            prompt = session.prepare()
            logger.debug(
                "Attempt %d of %d using %s",
                attempts,
                self.max_retries,
                self.adapter.name,
            )
            if self.debug:
                logger.info(
                    "Request messages: %s",
                    [m.model_dump(mode="json") for m in prompt.messages],
                )

            result = self.adapter.complete(prompt)
            if self.debug:
                received = result.value if result.success else result.error
                logger.info("Response: %r", received)

            if result.success:
                validation = self.schema.validate(result.value)
                if validation.success:
                    logger.debug("Attempt %d passed validation", attempts)
                    return CompletionResult(
                        success=True,
                        value=validation.value,
                        attempts=attempts,
                        response=result.value,
                    )
                errors = validation.errors
                response = result.value
                feedback = json.dumps(result.value, ensure_ascii=False, default=str)
            elif isinstance(result.error, ResponseParseError):
                errors = [FieldError(ROOT_FIELD, str(result.error))]
                response = result.error.raw_text
                feedback = result.error.raw_text or ""
            else:
                logger.error(
                    "Completion stopped on attempt %d: %s", attempts, result.error
                )
                return CompletionResult(
                    success=False, error=result.error, attempts=attempts
                )

            if attempts >= self.max_retries:
                logger.info(
                    "Giving up after %d attempt(s) with %d validation error(s)",
                    attempts,
                    len(errors),
                )
                return CompletionResult(
                    success=False, errors=errors, attempts=attempts, response=response
                )

            delay = self.backoff_delay(attempts)
            logger.warning(
                "Attempt %d failed validation (%d error(s)), retrying in %.2fs",
                attempts,
                len(errors),
                delay,
            )
            retry_prompt = RETRY_PROMPT.format(errors=format_errors(errors))
            session = session.append_message(Message.assistant(feedback))
            session = session.append_message(Message.system(retry_prompt))
            time.sleep(delay)

    def complete_or_raise(self) -> Any:
        """Run the completion loop and return the validated value.

        Raises:
            CompletionValidationError: If the attempt budget is exhausted
            ConfigurationError: If adapter options are invalid
            AdapterError: If the provider answers with an error status
            SchemaCompilationError: If the schema cannot be compiled
        """
        result = self.complete()
        if result.success:
            return result.value
        if result.error is not None:
            raise result.error
        raise CompletionValidationError(
            f"Response failed validation after {result.attempts} attempt(s):\n"
            f"{format_errors(result.errors)}",
            errors=result.errors,
            response=result.response,
            attempts=result.attempts,
        )
