"""
LLM-backed SIG parser.

Sends the SIG to the model with few-shot examples and validates the reply
into a ``DosingRecord``.
"""

import logging
from typing import Optional

from calculator.schema import DosingRecord, SchemaValidationError, dosing_record_from_dict
from calculator.validation import MAX_DAYS_SUPPLY
from core.config import Settings, get_settings
from core.errors import AIServiceError, CalculatorError
from core.llm_client import LLMClient
from core.logging_config import StageLoggerAdapter
from core.outcome import Outcome

from .interfaces import DosingParser
from .prompts import build_sig_prompt

SERVICE_NAME = "SIG Parser"
LOW_CONFIDENCE_LOG_THRESHOLD = 0.6

logger = StageLoggerAdapter(logging.getLogger(__name__), {"stage": "parse_sig", "service": SERVICE_NAME})


class LLMDosingParser(DosingParser):
    """Dosing parser backed by an LLM chat completion in JSON mode."""

    def __init__(self, client: Optional[LLMClient] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client or LLMClient.from_settings(self.settings)

    async def parse_dosing(self, text: str, days_supply: int) -> Outcome[DosingRecord]:
        if not text or not text.strip():
            return Outcome.fail(AIServiceError(SERVICE_NAME, "SIG cannot be empty"))
        if days_supply <= 0 or days_supply > MAX_DAYS_SUPPLY:
            return Outcome.fail(AIServiceError(SERVICE_NAME, f"Days supply must be between 1 and {MAX_DAYS_SUPPLY}"))

        try:
            data = await self.client.achat_json(
                build_sig_prompt(text, days_supply),
                service=SERVICE_NAME,
                max_tokens=self.settings.sig_parser_max_tokens,
            )
        except CalculatorError as e:
            logger.warning(f"SIG parse call failed: {e}")
            return Outcome.fail(e)
        except Exception as e:
            logger.error(f"Unexpected SIG parser failure: {e}")
            return Outcome.fail(AIServiceError(SERVICE_NAME, f"Unexpected failure: {e}", cause=e))

        try:
            record = dosing_record_from_dict(data, original_text=text)
        except SchemaValidationError as e:
            return Outcome.fail(AIServiceError(
                SERVICE_NAME, f"AI returned invalid dosing structure: {', '.join(e.issues)}", cause=e,
            ))

        if record.confidence < LOW_CONFIDENCE_LOG_THRESHOLD:
            logger.warning(
                f'Low confidence ({record.confidence}) for SIG: "{text}". Reasoning: {record.reasoning}'
            )
        return Outcome.ok(record)
