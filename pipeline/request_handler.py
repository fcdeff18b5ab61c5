"""
HTTP-style boundary for the calculator.

Turns a raw JSON body into ``(status_code, payload)``. Failures carry a
machine-readable code and, when an advisor is available, an AI explanation.
Nothing from external API payloads or tracebacks reaches the caller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from calculator.validation import validate_prescription_input
from core.cache import get_cache
from core.config import Settings, get_settings
from core.errors import CalculatorError
from core.llm_client import is_llm_configured
from providers import LLMProviderFactory, usage_tracker
from services.interfaces import ErrorAdvisor

from .orchestrator import PrescriptionCalculator

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

Payload = Dict[str, Any]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_payload(error: CalculatorError, advice: Optional[Payload] = None) -> Payload:
    body: Payload = {
        "code": error.code,
        "message": error.message,
        "statusCode": error.status_code,
    }
    if advice:
        body["advice"] = advice
    return {"success": False, "error": body, "timestamp": _timestamp()}


async def _advise(advisor: ErrorAdvisor, error: CalculatorError, prescription, context) -> Optional[Payload]:
    partial = context.to_dict() if context is not None else None
    try:
        outcome = await advisor.advise_on_error(error, prescription, partial)
    except Exception as e:
        logger.warning(f"Error advisor raised, returning error without advice: {e}")
        return None
    if not outcome.success:
        logger.warning(f"Error advisor failed [{outcome.error.code}]: {outcome.error}")
        return None
    return outcome.data.to_dict()


async def handle_calculate_request(
    body: Any,
    calculator: PrescriptionCalculator,
    advisor: Optional[ErrorAdvisor] = None,
) -> Tuple[int, Payload]:
    """
    Run one calculation request.

    Args:
        body: Decoded JSON request body with drugName, ndc, sig, daysSupply
        calculator: Configured PrescriptionCalculator
        advisor: Optional ErrorAdvisor consulted on domain failures

    Returns:
        (HTTP status code, JSON-ready payload)
    """
    try:
        try:
            prescription = validate_prescription_input(body)
        except CalculatorError as e:
            logger.info(f"Rejected request [{e.code}]: {e}")
            return 400, error_payload(e)

        outcome = await calculator.calculate(prescription)
        if outcome.success:
            return 200, {"success": True, "data": outcome.data.to_dict(), "timestamp": _timestamp()}

        error = outcome.error
        advice = None
        if advisor is not None:
            advice = await _advise(advisor, error, prescription, outcome.context)
        return error.status_code, error_payload(error, advice)

    except Exception as e:
        logger.exception(f"Unhandled error while calculating: {e}")
        return 500, {
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "statusCode": 500,
            },
            "timestamp": _timestamp(),
        }


def health_check(settings: Optional[Settings] = None) -> Payload:
    """Liveness summary: version, which optional services are usable, cache and token counters."""
    settings = settings or get_settings()
    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "version": VERSION,
        "services": {
            "llm": "configured" if is_llm_configured(settings.llm_model) else "not configured",
            "llmProvider": LLMProviderFactory.provider_for_model(settings.llm_model),
            "cache": "enabled" if settings.cache_enabled else "disabled",
        },
        "cacheStats": {name: get_cache(name).get_stats() for name in ("rxnorm", "fda")},
        "llmUsage": usage_tracker.get_summary(),
    }
