"""
Provider abstraction shared by the OpenAI and Anthropic backends.

A provider turns a chat transcript into one text completion. Every SDK
failure is re-raised as a member of the ``LLMError`` hierarchy so callers
can decide on retries from ``error.retryable`` alone.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
from dataclasses import dataclass
import asyncio
import os
import logging

from core.errors import ConfigurationError, LLMError

_logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 1
MAX_BACKOFF_SECONDS = 30

T = TypeVar("T")

Messages = List[Dict[str, str]]


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await *func* until it succeeds, backing off 1s, 2s, 4s ... between attempts.

    Only errors flagged ``retryable`` (rate limits, connection drops,
    overloaded upstream) are retried. *max_retries* counts total attempts.

    Raises:
        LLMError: the first non-retryable error, or the last one once
            attempts are exhausted
    """
    sleep = sleep or asyncio.sleep
    backoff = initial_backoff
    attempt = 1
    while True:
        try:
            return await func()
        except LLMError as e:
            if not e.retryable or attempt >= max_retries:
                raise
            wait_time = min(backoff, MAX_BACKOFF_SECONDS)
            _logger.warning(f"Transient LLM error, retrying in {wait_time}s (attempt {attempt}/{max_retries}): {e}")
            await sleep(wait_time)
            backoff *= 2
            attempt += 1


@dataclass
class LLMConfig:
    """Per-call generation options."""
    temperature: float = 0.0
    max_tokens: Optional[int] = None
    json_mode: bool = True


@dataclass
class LLMResponse:
    """One completion, normalized across SDKs. ``usage`` uses prompt/completion/total keys."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class LLMProvider(ABC):
    """
    Base class for chat-completion backends.

    Subclasses list the environment variables that may hold their key in
    ``API_KEY_ENV_VARS``, first match wins.
    """

    API_KEY_ENV_VARS: Tuple[str, ...] = ()

    def __init__(self, model: str, api_key: Optional[str] = None, timeout_ms: int = 30_000):
        self.model = model
        self.timeout_ms = timeout_ms
        self.api_key = api_key or self._api_key_from_env()

    def _api_key_from_env(self) -> str:
        for name in self.API_KEY_ENV_VARS:
            value = os.environ.get(name)
            if value:
                return value
        raise ConfigurationError(
            f"{' or '.join(self.API_KEY_ENV_VARS)} environment variable not set "
            f"(needed for model '{self.model}')"
        )

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @abstractmethod
    def generate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        """Blocking completion of *messages*."""

    @abstractmethod
    def supports_json_mode(self) -> bool:
        """True when the backend can be told to emit a bare JSON object."""

    async def agenerate(self, messages: Messages, config: Optional[LLMConfig] = None) -> LLMResponse:
        """
        Awaitable completion.

        Falls back to running :meth:`generate` in a worker thread; providers
        with an async SDK client override this.
        """
        return await asyncio.to_thread(self.generate, messages, config)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model='{self.model}')"
