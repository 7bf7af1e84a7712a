"""LLM Mentor - structured, validated output from LLMs with corrective retries."""

__version__ = "0.1.0"

# Provider adapters
from .adapters import (
    AnthropicAdapter,
    GeminiAdapter,
    OpenAIAdapter,
    ProviderAdapter,
    ProviderAdapterFactory,
)

# Custom exceptions
from .exceptions import (
    AdapterError,
    CompletionValidationError,
    ConfigurationError,
    MentorException,
    ResponseParseError,
    SchemaCompilationError,
    SchemaDocumentationError,
    SchemaIntrospectionError,
    TransportError,
)

# Conversation messages
from .messages import ImageUrlPart, InlineImagePart, Message, Role, TextPart

# Schema handling
from .schema import Eq, FieldError, Neq, RequiredPolicy, Schema, WireType

# Session and completion loop
from .session import CompletionResult, Prompt, Session
from .transport import RequestsTransport, Transport, TransportResponse

# Configuration utilities
from .utils import (
    create_anthropic_session,
    create_gemini_session,
    create_openai_session,
    create_session,
    get_available_providers,
    get_default_models,
    load_environment,
)

__all__ = [
    "__version__",
    "Session",
    "Prompt",
    "CompletionResult",
    "Message",
    "Role",
    "TextPart",
    "ImageUrlPart",
    "InlineImagePart",
    "Schema",
    "RequiredPolicy",
    "FieldError",
    "WireType",
    "Eq",
    "Neq",
    "ProviderAdapter",
    "ProviderAdapterFactory",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "Transport",
    "TransportResponse",
    "RequestsTransport",
    "load_environment",
    "create_session",
    "create_openai_session",
    "create_anthropic_session",
    "create_gemini_session",
    "get_available_providers",
    "get_default_models",
    # Exceptions
    "MentorException",
    "ConfigurationError",
    "AdapterError",
    "TransportError",
    "ResponseParseError",
    "SchemaIntrospectionError",
    "SchemaDocumentationError",
    "SchemaCompilationError",
    "CompletionValidationError",
]
