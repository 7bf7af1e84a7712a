"""Unit tests for Session configuration and the completion loop."""

import logging
from typing import Any, ClassVar

import pytest
from conftest import ScriptedTransport, json_response, openai_reply
from pydantic import BaseModel, Field, GetCoreSchemaHandler
from pydantic_core import core_schema

from llm_mentor.adapters import AdapterResult, OpenAIAdapter, ProviderAdapter
from llm_mentor.exceptions import (
    AdapterError,
    CompletionValidationError,
    ConfigurationError,
    ResponseParseError,
    SchemaCompilationError,
)
from llm_mentor.messages import Message, Role
from llm_mentor.schema import FieldError, WireType
from llm_mentor.session import INITIAL_PROMPT, RETRY_PROMPT, Session
from llm_mentor.transport import RequestsTransport


class Person(BaseModel):
    """A person.

    ## Fields

    - `name`: Full name.
    - `age`: Age in years.
    """

    name: str
    age: int = Field(ge=0, le=100)


class Handle(str, WireType):
    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, handler(str))

    @classmethod
    def to_wire_schema(cls) -> dict[str, Any]:
        return {}


INVALID = {"name": 123, "age": "uau"}
VALID = {"name": "John", "age": 30}


def make_session(
    responses: list[Any], openai_config: dict[str, Any], **options: Any
) -> Session:
    transport = ScriptedTransport([openai_reply(r) for r in responses])
    return Session.start(
        "openai",
        schema=Person,
        adapter_config=openai_config,
        transport=transport,
        **options,
    ).append_message(Message.user("Who is John?"))


@pytest.mark.unit
class TestSessionConfiguration:
    """Test cases for building and configuring sessions."""

    def test_start_defaults(self, openai_config: dict[str, Any]) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        assert isinstance(session.adapter, OpenAIAdapter)
        assert isinstance(session.transport, RequestsTransport)
        assert session.max_retries == 3
        assert session.base_backoff == 1.0
        assert session.max_backoff == 30.0
        assert session.messages == ()

    def test_documentation_extends_initial_prompt(
        self, openai_config: dict[str, Any]
    ) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        assert session.initial_prompt.startswith(INITIAL_PROMPT)
        assert "- `age`: Age in years." in session.initial_prompt

    def test_schema_is_required(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            Session.start("openai", schema=None)

        assert exc_info.value.config_key == "schema"

    def test_unknown_adapter(self) -> None:
        with pytest.raises(ConfigurationError):
            Session.start("mystery", schema=Person)

    def test_configuration_returns_new_sessions(
        self, openai_config: dict[str, Any]
    ) -> None:
        """Test configuration calls leave the original session untouched."""
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        updated = session.append_message(Message.user("hi")).configure_adapter(
            temperature=0.2
        )

        assert session.messages == ()
        assert "temperature" not in session.adapter_config
        assert updated.adapter_config == {**openai_config, "temperature": 0.2}

    def test_append_message_forms(self, openai_config: dict[str, Any]) -> None:
        session = (
            Session.start("openai", schema=Person, adapter_config=openai_config)
            .append_message(Message.user("first"))
            .append_message({"role": "assistant", "content": "second"})
            .append_message("user", "third")
        )

        prompt = session.prepare()

        assert [m.role for m in prompt.messages] == [
            Role.SYSTEM,
            Role.USER,
            Role.ASSISTANT,
            Role.USER,
        ]
        assert [m.text() for m in prompt.messages[1:]] == ["first", "second", "third"]
        assert prompt.messages[0].text() == session.initial_prompt

    def test_overwrite_initial_prompt(self, openai_config: dict[str, Any]) -> None:
        session = Session.start(
            "openai", schema=Person, adapter_config=openai_config
        ).overwrite_initial_prompt("Be brief.")

        assert session.prepare().messages[0].text() == "Be brief."

    def test_overwrite_initial_prompt_requires_text(
        self, openai_config: dict[str, Any]
    ) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        with pytest.raises(ConfigurationError):
            session.overwrite_initial_prompt(None)  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", [0, -1, 1.5, True])
    def test_invalid_max_retries(
        self, value: Any, openai_config: dict[str, Any]
    ) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        with pytest.raises(ConfigurationError) as exc_info:
            session.set_max_retries(value)

        assert exc_info.value.config_key == "max_retries"

    @pytest.mark.parametrize("base", [-1, 0.1, 0.49])
    def test_invalid_base_backoff(
        self, base: float, openai_config: dict[str, Any]
    ) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)

        with pytest.raises(ConfigurationError):
            session.configure_backoff(base_backoff=base)

    def test_configure_transport(self, openai_config: dict[str, Any]) -> None:
        session = Session.start("openai", schema=Person, adapter_config=openai_config)
        transport = ScriptedTransport([])

        assert session.configure_transport(transport).transport is transport
        with pytest.raises(ConfigurationError):
            session.configure_transport(object())  # type: ignore[arg-type]


@pytest.mark.unit
class TestBackoff:
    """Test cases for backoff delays."""

    def test_exponential_growth(self, openai_config: dict[str, Any]) -> None:
        session = Session.start(
            "openai", schema=Person, adapter_config=openai_config
        ).configure_backoff(base_backoff=1.0, max_backoff=30.0)

        assert [session.backoff_delay(n) for n in range(1, 6)] == [
            2.0,
            4.0,
            8.0,
            16.0,
            30.0,
        ]

    @pytest.mark.parametrize("base", [0, 0.5, 0.75, 1.0, 3.0])
    def test_monotonic_and_capped(
        self, base: float, openai_config: dict[str, Any]
    ) -> None:
        """Test delays never shrink and never exceed the cap."""
        session = Session.start(
            "openai", schema=Person, adapter_config=openai_config
        ).configure_backoff(base_backoff=base, max_backoff=10.0)

        delays = [session.backoff_delay(n) for n in range(1, 12)]

        assert delays == sorted(delays)
        assert max(delays) <= 10.0


@pytest.mark.unit
class TestCompletionLoop:
    """Test cases for the retry loop."""

    def test_success_first_attempt(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        result = make_session([VALID], openai_config).complete()

        assert result.success is True
        assert result.value == Person(name="John", age=30)
        assert result.attempts == 1
        assert sleeps == []

    def test_retry_termination(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        """Test an always-invalid reply uses exactly the attempt budget."""
        session = make_session([INVALID] * 4, openai_config, max_retries=4)

        result = session.complete()

        assert result.success is False
        assert result.attempts == 4
        assert len(session.transport.requests) == 4
        assert [e.field for e in result.errors] == ["name", "age"]
        assert result.response == INVALID
        assert sleeps == [2.0, 4.0, 8.0]

    def test_single_attempt_skips_feedback_and_backoff(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        session = make_session([INVALID], openai_config, max_retries=1)

        result = session.complete()

        assert result.success is False
        assert result.attempts == 1
        assert len(result.errors) == 2
        assert sleeps == []

    def test_feedback_messages(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        """Test the invalid reply and the formatted errors are fed back."""
        session = make_session([INVALID, VALID], openai_config)

        result = session.complete()

        assert result.success is True
        assert result.attempts == 2
        retry_messages = session.transport.requests[1]["body"]["messages"]
        assert [m["role"] for m in retry_messages] == [
            "system",
            "user",
            "assistant",
            "system",
        ]
        assert retry_messages[2]["content"] == '{"name": 123, "age": "uau"}'
        assert retry_messages[3]["content"] == RETRY_PROMPT.format(
            errors="name - Input should be a valid string\n"
            "age - Input should be a valid integer, unable to parse string as an integer"
        )
        assert session.messages[0].role is Role.USER

    def test_parse_error_is_retried(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        session = make_session(["I don't know", VALID], openai_config)

        result = session.complete()

        assert result.success is True
        feedback = session.transport.requests[1]["body"]["messages"]
        assert feedback[2] == {"role": "assistant", "content": "I don't know"}
        assert feedback[3]["content"].startswith("The response did not pass validation")

    def test_parse_error_exhaustion_reports_root(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        result = make_session(["nope"], openai_config, max_retries=1).complete()

        assert result.errors[0].field == "root"
        assert result.response == "nope"

    def test_malformed_envelope_is_retried(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        transport = ScriptedTransport(
            [json_response({"choices": [{"message": None}]}), openai_reply(VALID)]
        )
        session = Session.start(
            "openai", schema=Person, adapter_config=openai_config, transport=transport
        )

        result = session.complete()

        assert result.success is True
        assert result.attempts == 2

    def test_null_for_defaulted_field_uses_default(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        class Contact(BaseModel):
            name: str
            nickname: str = "none"

        transport = ScriptedTransport([openai_reply({"name": "a", "nickname": None})])
        session = Session.start(
            "openai",
            schema=Contact,
            adapter_config=openai_config,
            transport=transport,
            max_retries=1,
        )

        result = session.complete()

        wire = transport.requests[0]["body"]["response_format"]["json_schema"]
        assert wire["schema"]["required"] == ["name"]
        assert wire["schema"]["properties"]["nickname"]["type"] == ["string", "null"]
        assert result.success is True
        assert result.value == Contact(name="a", nickname="none")

    def test_optional_fields_may_be_omitted(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        class Contact(BaseModel):
            llm_required_fields: ClassVar[tuple[str, ...]] = ("name",)

            name: str
            nickname: str = "none"

        transport = ScriptedTransport([openai_reply({"name": "a"})])
        session = Session.start(
            "openai",
            schema=Contact,
            adapter_config=openai_config,
            transport=transport,
            max_retries=1,
        )

        result = session.complete()

        assert result.success is True
        assert result.value.nickname == "none"

    def test_adapter_error_is_not_retried(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        transport = ScriptedTransport([json_response({"error": "down"}, status=503)])
        session = Session.start(
            "openai", schema=Person, adapter_config=openai_config, transport=transport
        )

        result = session.complete()

        assert result.success is False
        assert isinstance(result.error, AdapterError)
        assert result.attempts == 1
        assert sleeps == []

    def test_configuration_error_is_fatal(self, sleeps: list[float]) -> None:
        transport = ScriptedTransport([])
        session = Session.start("openai", schema=Person, transport=transport)

        result = session.complete()

        assert isinstance(result.error, ConfigurationError)
        assert transport.requests == []

    def test_compilation_error_is_fatal(self, openai_config: dict[str, Any]) -> None:
        class Profile(BaseModel):
            handle: Handle

        transport = ScriptedTransport([])
        session = Session.start(
            "openai", schema=Profile, adapter_config=openai_config, transport=transport
        )

        result = session.complete()

        assert isinstance(result.error, SchemaCompilationError)
        assert transport.requests == []

    def test_debug_logs_requests(
        self,
        openai_config: dict[str, Any],
        sleeps: list[float],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        session = make_session([VALID], openai_config).enable_debug()

        with caplog.at_level(logging.INFO, logger="llm_mentor.session"):
            session.complete()

        assert any("Request messages" in r.message for r in caplog.records)

    def test_retry_logs_warning(
        self,
        openai_config: dict[str, Any],
        sleeps: list[float],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="llm_mentor.session"):
            make_session([INVALID, VALID], openai_config).complete()

        assert any(r.levelno == logging.WARNING for r in caplog.records)


@pytest.mark.unit
class TestCompleteOrRaise:
    """Test cases for the raising variant."""

    def test_returns_value(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        assert make_session([VALID], openai_config).complete_or_raise() == Person(
            name="John", age=30
        )

    def test_raises_validation_error(
        self, openai_config: dict[str, Any], sleeps: list[float]
    ) -> None:
        session = make_session([INVALID, INVALID], openai_config, max_retries=2)

        with pytest.raises(CompletionValidationError) as exc_info:
            session.complete_or_raise()

        assert exc_info.value.attempts == 2
        assert exc_info.value.errors[0] == FieldError(
            "name", "Input should be a valid string"
        )
        assert "name - Input should be a valid string" in str(exc_info.value)

    def test_raises_fatal_error(self, sleeps: list[float]) -> None:
        session = Session.start(
            "openai", schema=Person, transport=ScriptedTransport([])
        )

        with pytest.raises(ConfigurationError):
            session.complete_or_raise()


class RecordingAdapter(ProviderAdapter):
    """Adapter double returning scripted results without a transport."""

    name = "recording"

    def __init__(self, results: list[AdapterResult]) -> None:
        self.results = list(results)
        self.prompts: list[Any] = []

    def build_request(self, prompt: Any, options: Any) -> Any:
        raise NotImplementedError

    def extract_text(self, envelope: Any) -> str:
        raise NotImplementedError

    def complete(self, prompt: Any) -> AdapterResult:
        self.prompts.append(prompt)
        return self.results.pop(0)


@pytest.mark.unit
class TestCustomAdapter:
    """Test cases for sessions driving adapter instances."""

    def test_adapter_instance(self, sleeps: list[float]) -> None:
        adapter = RecordingAdapter(
            [
                AdapterResult(success=False, error=ResponseParseError("x", "x")),
                AdapterResult(success=True, value=VALID),
            ]
        )
        session = Session.start(adapter, schema=Person, transport=ScriptedTransport([]))

        result = session.complete()

        assert result.success is True
        assert len(adapter.prompts) == 2
        assert adapter.prompts[1].messages[-1].role is Role.SYSTEM
