"""Custom exceptions for the Mentor structured-output client."""

from typing import Any


class MentorException(Exception):
    """Base exception for the Mentor client.

    All custom exceptions in this package should inherit from this base class.
    """

    pass


class ConfigurationError(MentorException):
    """Raised when adapter or session configuration is invalid.

    This exception is raised when:
    - A required adapter option (API key, model) is missing
    - An option has the wrong type or an unknown name
    - Session settings such as retries or backoff are out of range

    It is fatal: the completion loop never retries it.

    Attributes:
        config_key: The configuration key that caused the error
        config_value: The invalid configuration value
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: Any | None = None,
    ):
        super().__init__(message)
        self.config_key = config_key
        self.config_value = config_value


class AdapterError(MentorException):
    """Raised when a provider answers with a non-2xx status.

    Attributes:
        status: HTTP status code, ``None`` when no response was received
        body: Raw response body
        provider: Name of the adapter that issued the request
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: bytes | str | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body
        self.provider = provider


class TransportError(AdapterError):
    """Raised when the HTTP transport fails before a response is received.

    Attributes:
        original_error: The exception raised by the underlying HTTP library
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, status=None, body=None, provider=provider)
        self.original_error = original_error


class ResponseParseError(MentorException):
    """Raised when the provider payload cannot be turned into JSON.

    This exception is raised when:
    - The vendor envelope is not valid JSON
    - The envelope lacks the expected text payload
    - The text payload is not JSON and no JSON span can be recovered

    The completion loop treats it like a validation failure and retries.

    Attributes:
        raw_text: The text that failed to parse
    """

    def __init__(self, message: str, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text


class SchemaIntrospectionError(MentorException):
    """Raised when a schema definition cannot be introspected.

    Attributes:
        schema: The schema source being introspected
        field: The offending field name, when known
    """

    def __init__(
        self,
        message: str,
        schema: Any | None = None,
        field: str | None = None,
    ):
        super().__init__(message)
        self.schema = schema
        self.field = field


class SchemaDocumentationError(SchemaIntrospectionError):
    """Raised when a documented schema leaves fields undocumented.

    Attributes:
        missing_fields: Field names without documentation
    """

    def __init__(
        self,
        message: str,
        schema: Any | None = None,
        missing_fields: list[str] | None = None,
    ):
        super().__init__(message, schema=schema)
        self.missing_fields = missing_fields or []


class SchemaCompilationError(MentorException):
    """Raised when introspected fields cannot be compiled to a wire schema.

    Attributes:
        schema: The schema being compiled
    """

    def __init__(self, message: str, schema: Any | None = None):
        super().__init__(message)
        self.schema = schema


class CompletionValidationError(MentorException):
    """Raised by ``complete_or_raise`` when the retry budget is exhausted.

    Attributes:
        errors: Field-level errors from the last attempt
        response: The last parsed (or raw) response
        attempts: Number of provider calls made
    """

    def __init__(
        self,
        message: str,
        errors: list[Any] | None = None,
        response: Any | None = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.errors = errors or []
        self.response = response
        self.attempts = attempts
