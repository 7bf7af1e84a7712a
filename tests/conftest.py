"""Shared pytest configuration and fixtures for the test suite."""

import json
from typing import Any

import pytest

from llm_mentor.transport import Headers, Transport, TransportResponse


class ScriptedTransport(Transport):
    """In-memory transport replaying canned responses and recording requests."""

    def __init__(self, responses: list[TransportResponse]) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(
        self,
        url: str,
        body: dict[str, Any],
        headers: Headers,
        options: dict[str, Any] | None = None,
    ) -> TransportResponse:
        self.requests.append(
            {"url": url, "body": body, "headers": dict(headers), "options": options}
        )
        if not self.responses:
            raise AssertionError("ScriptedTransport ran out of responses")
        return self.responses.pop(0)


def json_response(payload: Any, status: int = 200) -> TransportResponse:
    """Build a transport response with a JSON body."""
    return TransportResponse(
        status=status,
        headers=[("content-type", "application/json")],
        body=json.dumps(payload).encode("utf-8"),
    )


def openai_envelope(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": text}}]}


def anthropic_envelope(text: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


def gemini_envelope(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def openai_reply(value: Any) -> TransportResponse:
    """OpenAI response whose message content is ``value`` serialized as JSON."""
    text = value if isinstance(value, str) else json.dumps(value)
    return json_response(openai_envelope(text))


@pytest.fixture
def sample_api_key() -> str:
    """Sample API key for testing."""
    return "test-api-key-12345"


@pytest.fixture
def openai_config(sample_api_key: str) -> dict[str, Any]:
    return {"api_key": sample_api_key, "model": "gpt-4o-mini"}


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace the retry sleep with a recorder."""
    recorded: list[float] = []
    monkeypatch.setattr("llm_mentor.session.time.sleep", recorded.append)
    return recorded


# Pytest configuration
pytest_plugins: list[str] = []
