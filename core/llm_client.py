"""
Unified LLM Client - single entry point for the JSON-speaking collaborators.

The dosing-text parser, package selector and error advisor all send a
system + user prompt and expect one JSON object back. This module owns the
provider lookup, generation settings, retry policy and response decoding so
those adapters only deal with prompts and schemas.

Usage:
    from core.llm_client import LLMClient

    client = LLMClient.from_settings(get_settings())
    data = await client.achat_json(messages, service="SIG Parser", max_tokens=1500)
"""

import logging
import os
from typing import Any, Dict, List, Optional

from providers import (
    ClaudeProvider,
    LLMConfig,
    LLMProvider,
    LLMProviderFactory,
    OpenAIProvider,
    retry_with_backoff,
    usage_tracker,
)

from .config import Settings, _ensure_env_loaded
from .errors import LLMResponseError
from .json_utils import parse_llm_json

logger = logging.getLogger(__name__)


def is_llm_configured(model: Optional[str] = None) -> bool:
    """
    True when an API key is present for the provider serving *model*.

    Without a model, any supported provider's key counts.
    """
    _ensure_env_loaded()
    if model is None:
        names = OpenAIProvider.API_KEY_ENV_VARS + ClaudeProvider.API_KEY_ENV_VARS
    else:
        provider_class = LLMProviderFactory.provider_class_for_model(model)
        if provider_class is None:
            return False
        names = provider_class.API_KEY_ENV_VARS
    return any(os.environ.get(name) for name in names)


class LLMClient:
    """
    JSON chat completion with retry.

    Args:
        model: Model identifier; the provider is auto-detected from it.
        temperature: Sampling temperature for every call.
        timeout_ms: Per-request timeout handed to the SDK.
        max_retries: Total attempts for retryable provider errors.
        provider: Pre-built provider (tests inject fakes here).
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        *,
        temperature: float = 0.1,
        timeout_ms: int = 30_000,
        max_retries: int = 3,
        provider: Optional[LLMProvider] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout_ms = timeout_ms
        self.max_retries = max(1, max_retries)
        self._provider = provider

    @classmethod
    def from_settings(cls, settings: Settings, provider: Optional[LLMProvider] = None) -> "LLMClient":
        return cls(
            settings.llm_model,
            temperature=settings.llm_temperature,
            timeout_ms=settings.llm_timeout_ms,
            max_retries=settings.llm_max_retries,
            provider=provider,
        )

    @property
    def provider(self) -> LLMProvider:
        """Lazily created so a missing API key only fails on first use."""
        if self._provider is None:
            _ensure_env_loaded()
            self._provider = LLMProviderFactory.auto_detect(self.model, timeout_ms=self.timeout_ms)
        return self._provider

    async def achat_json(
        self,
        messages: List[Dict[str, str]],
        *,
        service: str,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Send *messages* and decode the reply as a JSON object.

        Raises:
            LLMError: provider failure (after retries for retryable ones).
            LLMResponseError: empty reply or reply that is not a JSON object.
        """
        config = LLMConfig(temperature=self.temperature, max_tokens=max_tokens, json_mode=True)
        usage_tracker.set_service(service)

        response = await retry_with_backoff(
            lambda: self.provider.agenerate(messages, config),
            max_retries=self.max_retries,
        )

        content = (response.content or "").strip()
        if not content:
            raise LLMResponseError("Empty response from model", model=self.model, service=service)

        try:
            data = parse_llm_json(content)
        except ValueError as e:
            logger.debug(f"{service} returned unparseable content: {content[:200]}")
            raise LLMResponseError(f"Failed to parse JSON response: {e}", model=self.model,
                                   service=service, cause=e)

        logger.debug(f"{service} call succeeded (model={response.model}, usage={response.usage})")
        return data
