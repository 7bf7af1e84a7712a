"""Configuration utilities for environment-based setup."""

import os
from typing import Any

from dotenv import load_dotenv

from llm_mentor.exceptions import ConfigurationError
from llm_mentor.session import Session
from llm_mentor.transport import Transport

API_KEY_VARIABLES = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def load_environment() -> None:
    """Load environment variables from .env file if it exists."""
    load_dotenv()


def create_session(
    provider: str,
    schema: Any,
    model: str | None = None,
    api_key: str | None = None,
    transport: Transport | None = None,
    **session_options: Any,
) -> Session:
    """Create a session with environment-based configuration.

    Args:
        provider: Provider name ('openai', 'anthropic' or 'gemini')
        schema: Schema source for the session
        model: Model name (default: the provider's entry in get_default_models())
        api_key: API key (if None, loads from the provider's env var)
        transport: HTTP transport (default: RequestsTransport)
        **session_options: Further Session.start options (max_retries...)

    Returns:
        Configured Session

    Raises:
        ConfigurationError: If the provider is unknown or no API key is found
    """
    load_environment()

    provider = provider.lower()
    if provider not in API_KEY_VARIABLES:
        raise ConfigurationError(
            f"Unknown provider '{provider}'",
            config_key="provider",
            config_value=provider,
        )

    variable = API_KEY_VARIABLES[provider]
    if api_key is None:
        api_key = os.getenv(variable)

    if api_key is None:
        raise ConfigurationError(
            f"{provider} API key not found. Set {variable} environment variable "
            "or pass api_key parameter.",
            config_key="api_key",
        )

    config = {"api_key": api_key, "model": model or get_default_models()[provider]}
    return Session.start(
        provider,
        schema=schema,
        adapter_config=config,
        transport=transport,
        **session_options,
    )


def create_openai_session(
    schema: Any,
    model: str = "gpt-4o-mini",
    api_key: str | None = None,
    **session_options: Any,
) -> Session:
    """Create an OpenAI session (API key from OPENAI_API_KEY by default)."""
    return create_session("openai", schema, model, api_key, **session_options)


def create_anthropic_session(
    schema: Any,
    model: str = "claude-3-5-haiku-20241022",
    api_key: str | None = None,
    **session_options: Any,
) -> Session:
    """Create an Anthropic session (API key from ANTHROPIC_API_KEY by default)."""
    return create_session("anthropic", schema, model, api_key, **session_options)


def create_gemini_session(
    schema: Any,
    model: str = "gemini-2.0-flash",
    api_key: str | None = None,
    **session_options: Any,
) -> Session:
    """Create a Gemini session (API key from GEMINI_API_KEY by default)."""
    return create_session("gemini", schema, model, api_key, **session_options)


def get_available_providers() -> dict[str, bool]:
    """Check which providers have API keys available.

    Returns:
        Dictionary mapping provider names to availability status
    """
    load_environment()

    return {
        provider: os.getenv(variable) is not None
        for provider, variable in API_KEY_VARIABLES.items()
    }


def get_default_models() -> dict[str, str]:
    """Get default models for each provider.

    Returns:
        Dictionary mapping provider names to default model names
    """
    return {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-3-5-haiku-20241022",
        "gemini": "gemini-2.0-flash",
    }
