"""
Provider selection by name or by model identifier.
"""

from typing import Dict, Optional, Tuple, Type

from core.errors import ConfigurationError
from .base import LLMProvider
from .openai_provider import OpenAIProvider
from .claude_provider import ClaudeProvider

# Substrings of a model id that identify its provider, checked in order
MODEL_PATTERNS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("claude", "anthropic"), "claude"),
    (("gpt", "o1", "o3", "o4"), "openai"),
)


class LLMProviderFactory:
    """Creates LLM providers; ``anthropic`` is an alias for ``claude``."""

    _providers: Dict[str, Type[LLMProvider]] = {
        "openai": OpenAIProvider,
        "claude": ClaudeProvider,
        "anthropic": ClaudeProvider,
    }

    @classmethod
    def create(
        cls,
        provider_name: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_ms: int = 30_000,
    ) -> LLMProvider:
        """
        Create a provider by name.

        Raises:
            ConfigurationError: unknown provider name, or no API key available
        """
        provider_class = cls._providers.get(provider_name.lower())
        if provider_class is None:
            raise ConfigurationError(
                f"Provider '{provider_name}' not supported for model '{model}'. "
                f"Supported providers: {', '.join(sorted(cls._providers))}"
            )
        return provider_class(model=model, api_key=api_key, timeout_ms=timeout_ms)

    @classmethod
    def provider_for_model(cls, model: str) -> Optional[str]:
        """Provider name for *model* ("gpt-4o" -> "openai"), or None if unrecognized."""
        model_lower = model.lower()
        for patterns, provider_name in MODEL_PATTERNS:
            if any(p in model_lower for p in patterns):
                return provider_name
        return None

    @classmethod
    def provider_class_for_model(cls, model: str) -> Optional[Type[LLMProvider]]:
        provider_name = cls.provider_for_model(model)
        return cls._providers[provider_name] if provider_name else None

    @classmethod
    def auto_detect(cls, model: str, api_key: Optional[str] = None, timeout_ms: int = 30_000) -> LLMProvider:
        """
        Create the provider that serves *model* (the ``OPENAI_MODEL`` setting).

        Raises:
            ConfigurationError: model name matches no known provider
        """
        provider_name = cls.provider_for_model(model)
        if provider_name is None:
            raise ConfigurationError(
                f"Could not auto-detect provider for model '{model}'; "
                f"expected an OpenAI (gpt-*, o1/o3/o4) or Anthropic (claude-*) model"
            )
        return cls.create(provider_name, model, api_key, timeout_ms)
