"""
Anthropic Claude backend (Messages API).

The Messages API has no JSON mode; JSON-only output is demanded through the
system prompt instead, and ``max_tokens`` is mandatory.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import anthropic

from core.errors import LLMError, LLMRateLimitError, LLMConnectionError
from .base import LLMProvider, LLMConfig, LLMResponse, Messages
from .tracker import usage_tracker

_logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "\n\nYou must respond with valid JSON only. No markdown, no explanation, just the JSON object."

# 529 is Anthropic's "overloaded"
_TRANSIENT_STATUS = (503, 504, 529)


def map_anthropic_error(e: Exception, model: str) -> LLMError:
    """Translate an Anthropic SDK exception into the LLMError hierarchy."""
    if isinstance(e, anthropic.RateLimitError):
        return LLMRateLimitError(f"Anthropic rate limit for model '{model}': {e}", model=model, cause=e)
    if isinstance(e, (anthropic.APITimeoutError, anthropic.APIConnectionError)):
        return LLMConnectionError(f"Anthropic connection failed for model '{model}': {e}", model=model, cause=e)
    if isinstance(e, anthropic.APIStatusError) and e.status_code in _TRANSIENT_STATUS:
        return LLMConnectionError(f"Anthropic unavailable ({e.status_code}) for model '{model}'", model=model, cause=e)
    return LLMError(f"Anthropic request failed for model '{model}': {e}", model=model, cause=e)


def split_system_prompt(messages: Messages) -> Tuple[str, List[Dict[str, str]]]:
    """Pull system messages out of the transcript; Claude takes them as a separate field."""
    system_parts = []
    turns = []
    for message in messages:
        role = message.get("role", "user")
        if role == "system":
            system_parts.append(message.get("content", ""))
        else:
            turns.append({"role": role, "content": message.get("content", "")})
    return "\n\n".join(p for p in system_parts if p), turns


class ClaudeProvider(LLMProvider):
    """Claude provider; ``CLAUDE_API_KEY`` is accepted as an alias for ``ANTHROPIC_API_KEY``."""

    API_KEY_ENV_VARS = ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY")

    DEFAULT_MAX_TOKENS = 4096

    def __init__(self, model: str, api_key: Optional[str] = None, timeout_ms: int = 30_000):
        super().__init__(model, api_key, timeout_ms)
        self.client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout_seconds, max_retries=0)
        self._async_client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def async_client(self) -> anthropic.AsyncAnthropic:
        if self._async_client is None:
            self._async_client = anthropic.AsyncAnthropic(
                api_key=self.api_key, timeout=self.timeout_seconds, max_retries=0,
            )
        return self._async_client

    def supports_json_mode(self) -> bool:
        # Emulated through JSON_INSTRUCTION
        return True

    def _build_claude_params(self, messages: Messages, config: LLMConfig) -> Dict[str, Any]:
        system, turns = split_system_prompt(messages)
        if config.json_mode:
            system = system + JSON_INSTRUCTION if system else JSON_INSTRUCTION.strip()

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": turns,
            "max_tokens": config.max_tokens or self.DEFAULT_MAX_TOKENS,
            "temperature": config.temperature,
        }
        if system:
            params["system"] = system
        return params

    def _to_response(self, message: Any) -> LLMResponse:
        text = "".join(
            getattr(block, "text", "") for block in (message.content or [])
            if getattr(block, "type", "") == "text"
        )
        stop_reason = getattr(message, "stop_reason", None)
        if stop_reason == "max_tokens":
            _logger.warning(f"Claude response truncated at max_tokens (model={self.model})")

        usage: Optional[Dict[str, int]] = None
        counts = getattr(message, "usage", None)
        prompt = (getattr(counts, "input_tokens", 0) or 0) if counts else 0
        completion = (getattr(counts, "output_tokens", 0) or 0) if counts else 0
        if prompt or completion:
            usage = {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": prompt + completion}
            usage_tracker.add_usage(prompt, completion)

        return LLMResponse(
            content=text,
            model=getattr(message, "model", self.model),
            usage=usage,
            finish_reason=stop_reason,
        )

    def generate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        params = self._build_claude_params(messages, config or LLMConfig())
        try:
            message = self.client.messages.create(**params)
        except Exception as e:
            raise map_anthropic_error(e, self.model)
        return self._to_response(message)

    async def agenerate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        params = self._build_claude_params(messages, config or LLMConfig())
        try:
            message = await self.async_client.messages.create(**params)
        except Exception as e:
            raise map_anthropic_error(e, self.model)
        return self._to_response(message)
