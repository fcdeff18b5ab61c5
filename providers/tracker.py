"""
Token Usage Tracker

Thread-safe tracking of cumulative token usage across all LLM calls,
broken down by the collaborator that made them (sig parser, package
selector, error advisor).
"""

import contextvars
import threading
from typing import Dict, Any, Optional

_current_service: contextvars.ContextVar = contextvars.ContextVar("llm_service", default="unknown")


class TokenUsageTracker:
    """
    Tracks cumulative token usage across all LLM calls.

    The current service name lives in a context variable so concurrent
    asyncio tasks and their worker threads are attributed correctly.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        """Reset all counters."""
        with self._lock:
            self.total_input_tokens = 0
            self.total_output_tokens = 0
            self.call_count = 0
            self.calls_by_service = {}

    @property
    def current_service(self) -> str:
        return _current_service.get()

    def set_service(self, service: str):
        _current_service.set(service)

    def add_usage(self, input_tokens: int, output_tokens: int, service: Optional[str] = None):
        """
        Add usage from an LLM call.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens
            service: Explicit service name. If None, uses the current context's.
        """
        service_name = service if service is not None else self.current_service

        with self._lock:
            self.total_input_tokens += input_tokens
            self.total_output_tokens += output_tokens
            self.call_count += 1

            bucket = self.calls_by_service.setdefault(service_name, {"input": 0, "output": 0, "calls": 0})
            bucket["input"] += input_tokens
            bucket["output"] += output_tokens
            bucket["calls"] += 1

    def get_summary(self) -> Dict[str, Any]:
        """Get usage summary (thread-safe)."""
        with self._lock:
            return {
                "total_input_tokens": self.total_input_tokens,
                "total_output_tokens": self.total_output_tokens,
                "total_tokens": self.total_input_tokens + self.total_output_tokens,
                "call_count": self.call_count,
                "by_service": {k: dict(v) for k, v in self.calls_by_service.items()},
            }


# Global tracker instance
usage_tracker = TokenUsageTracker()


def reset_usage_tracker() -> None:
    """Reset the global usage tracker counters."""
    usage_tracker.reset()
