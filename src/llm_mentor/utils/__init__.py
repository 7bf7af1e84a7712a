"""Utility functions for environment-based configuration."""

from .config import (
    create_anthropic_session,
    create_gemini_session,
    create_openai_session,
    create_session,
    get_available_providers,
    get_default_models,
    load_environment,
)

__all__ = [
    "load_environment",
    "create_session",
    "create_openai_session",
    "create_anthropic_session",
    "create_gemini_session",
    "get_available_providers",
    "get_default_models",
]
