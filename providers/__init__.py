"""
LLM backends for the SIG parser, package selector and error advisor.

    from providers import LLMProviderFactory, LLMConfig

    provider = LLMProviderFactory.auto_detect("gpt-4o")
    response = await provider.agenerate(messages, LLMConfig(max_tokens=1500))

Token usage of every call is recorded on ``usage_tracker``.
"""

from .base import LLMConfig, LLMResponse, LLMProvider, retry_with_backoff
from .tracker import TokenUsageTracker, usage_tracker, reset_usage_tracker
from .openai_provider import OpenAIProvider
from .claude_provider import ClaudeProvider
from .factory import LLMProviderFactory

__all__ = [
    "LLMConfig",
    "LLMResponse",
    "LLMProvider",
    "retry_with_backoff",
    "TokenUsageTracker",
    "usage_tracker",
    "reset_usage_tracker",
    "OpenAIProvider",
    "ClaudeProvider",
    "LLMProviderFactory",
]
