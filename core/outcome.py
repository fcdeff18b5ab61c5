"""
Success/failure value returned by adapters and by the calculator.

Adapters never raise for domain failures; they hand back an ``Outcome`` so the
orchestrator can decide whether a failure is terminal, recoverable, or worth a
compensating retry.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

from .errors import CalculatorError

T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Result of an operation that can succeed or fail."""
    success: bool
    data: Optional[T] = None
    error: Optional[CalculatorError] = None
    context: Optional[Any] = None

    @classmethod
    def ok(cls, data: T) -> "Outcome[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: CalculatorError, context: Optional[Any] = None) -> "Outcome[T]":
        return cls(success=False, error=error, context=context)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.success:
            data = self.data
            result["data"] = data.to_dict() if hasattr(data, "to_dict") else data
        else:
            result["error"] = self.error.to_dict() if self.error else None
            if self.context is not None:
                ctx = self.context
                result["context"] = ctx.to_dict() if hasattr(ctx, "to_dict") else ctx
        return result
