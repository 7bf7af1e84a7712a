"""Provider adapters and their registry."""

from llm_mentor.exceptions import ConfigurationError

from .anthropic import AnthropicAdapter, AnthropicOptions
from .base import (
    AdapterOptions,
    AdapterResult,
    HTTPRequest,
    ProviderAdapter,
    parse_json_payload,
    unwrap_root,
    wrap_root,
)
from .gemini import GeminiAdapter, GeminiOptions, to_gemini_schema
from .openai import OpenAIAdapter, OpenAIOptions


class ProviderAdapterFactory:
    """Registry of provider adapters keyed by provider name."""

    _registry: dict[str, type[ProviderAdapter]] = {
        OpenAIAdapter.name: OpenAIAdapter,
        AnthropicAdapter.name: AnthropicAdapter,
        GeminiAdapter.name: GeminiAdapter,
    }

    @classmethod
    def register(cls, adapter_class: type[ProviderAdapter]) -> type[ProviderAdapter]:
        """Register an adapter class under its ``name``.

        Usable as a class decorator.
        """
        if not (
            isinstance(adapter_class, type)
            and issubclass(adapter_class, ProviderAdapter)
        ):
            raise ConfigurationError(
                f"{adapter_class!r} should implement the ProviderAdapter interface",
                config_key="adapter",
                config_value=adapter_class,
            )
        cls._registry[adapter_class.name.lower()] = adapter_class
        return adapter_class

    @classmethod
    def get_adapter(
        cls, adapter: str | ProviderAdapter | type[ProviderAdapter]
    ) -> ProviderAdapter:
        """Resolve an adapter instance.

        Args:
            adapter: Provider name (``"openai"``, ``"anthropic"``,
                ``"gemini"``), adapter class, or adapter instance

        Returns:
            Adapter instance

        Raises:
            ConfigurationError: If the adapter is unknown or does not
                implement the interface
        """
        if isinstance(adapter, ProviderAdapter):
            return adapter
        if isinstance(adapter, type) and issubclass(adapter, ProviderAdapter):
            return adapter()
        if isinstance(adapter, str):
            try:
                return cls._registry[adapter.lower()]()
            except KeyError:
                raise ConfigurationError(
                    f"Unknown provider '{adapter}'. Available: {cls.available()}",
                    config_key="adapter",
                    config_value=adapter,
                ) from None
        raise ConfigurationError(
            f"{adapter!r} should implement the ProviderAdapter interface",
            config_key="adapter",
            config_value=adapter,
        )

    @classmethod
    def available(cls) -> list[str]:
        return sorted(cls._registry)


__all__ = [
    "AdapterOptions",
    "AdapterResult",
    "AnthropicAdapter",
    "AnthropicOptions",
    "GeminiAdapter",
    "GeminiOptions",
    "HTTPRequest",
    "OpenAIAdapter",
    "OpenAIOptions",
    "ProviderAdapter",
    "ProviderAdapterFactory",
    "parse_json_payload",
    "to_gemini_schema",
    "unwrap_root",
    "wrap_root",
]
