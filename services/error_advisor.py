"""LLM-backed explanation and next steps for a failed calculation."""

import logging
from typing import Any, Dict, Optional

from calculator.schema import ErrorAdvice, PrescriptionInput
from core.config import Settings, get_settings
from core.errors import AIServiceError, CalculatorError
from core.llm_client import LLMClient
from core.outcome import Outcome

from .interfaces import ErrorAdvisor
from .prompts import build_error_advice_prompt

logger = logging.getLogger(__name__)

SERVICE_NAME = "Error Advisor"


def _string_list(value: Any, field_name: str) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{field_name}: expected a list of strings")
    return tuple(value)


def advice_from_dict(data: Dict[str, Any]) -> ErrorAdvice:
    """
    Raises:
        ValueError: if required fields are missing or mistyped
    """
    explanation = data.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        raise ValueError("explanation: expected a non-empty string")
    if "suggestions" not in data:
        raise ValueError("suggestions: required")
    return ErrorAdvice(
        explanation=explanation,
        suggestions=_string_list(data.get("suggestions"), "suggestions"),
        alternatives=_string_list(data.get("alternatives"), "alternatives"),
    )


class LLMErrorAdvisor(ErrorAdvisor):

    def __init__(self, client: Optional[LLMClient] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client or LLMClient.from_settings(self.settings)

    async def advise_on_error(
        self,
        error: CalculatorError,
        prescription: PrescriptionInput,
        partial: Optional[Dict[str, Any]] = None,
    ) -> Outcome[ErrorAdvice]:
        messages = build_error_advice_prompt(error.code, error.message, prescription, partial)
        try:
            data = await self.client.achat_json(
                messages, service=SERVICE_NAME, max_tokens=self.settings.advisor_max_tokens,
            )
            return Outcome.ok(advice_from_dict(data))
        except CalculatorError as e:
            return Outcome.fail(e)
        except ValueError as e:
            return Outcome.fail(AIServiceError(SERVICE_NAME, f"AI returned invalid advice structure: {e}", cause=e))
        except Exception as e:
            logger.error(f"Unexpected error advisor failure: {e}")
            return Outcome.fail(AIServiceError(SERVICE_NAME, f"Unexpected failure: {e}", cause=e))
