"""
Tests for services.sig_parser: LLM-backed SIG parsing with a fake client.
"""

import pytest

from calculator.schema import AsNeeded, DoseRange, MedicationUnit, TimesPerDay
from core.config import Settings
from core.errors import AIServiceError, LLMConnectionError, LLMResponseError
from services.prompts import SIG_EXAMPLES, build_sig_prompt
from services.sig_parser import SERVICE_NAME, LLMDosingParser

ONCE_DAILY = {
    "dose": 1,
    "unit": "tablet",
    "frequency": {"type": "times_per_day", "value": 1},
    "route": "oral",
    "confidence": 0.98,
    "reasoning": "Clear once-daily dosing",
}


class TestParseDosing:

    @pytest.mark.asyncio
    async def test_success(self, fake_llm):
        client = fake_llm(ONCE_DAILY)
        parser = LLMDosingParser(client, Settings(sig_parser_max_tokens=1200))
        outcome = await parser.parse_dosing("Take 1 tablet by mouth once daily", 30)

        assert outcome.success
        record = outcome.data
        assert record.frequency == TimesPerDay(1)
        assert record.unit is MedicationUnit.TABLET
        assert record.original_text == "Take 1 tablet by mouth once daily"
        assert client.calls[0]["service"] == SERVICE_NAME
        assert client.calls[0]["max_tokens"] == 1200

    @pytest.mark.asyncio
    async def test_prn_with_range(self, fake_llm):
        client = fake_llm({
            "dose": 1,
            "unit": "tablet",
            "frequency": {"type": "as_needed"},
            "doseRange": {"min": 1, "max": 2},
            "confidence": 0.85,
            "reasoning": "PRN, 1-2 tablets",
        })
        outcome = await LLMDosingParser(client, Settings()).parse_dosing(
            "Take 1-2 tablets every 4 hours as needed for pain", 5)
        assert outcome.data.frequency == AsNeeded()
        assert outcome.data.dose_range == DoseRange(1, 2)

    @pytest.mark.asyncio
    async def test_prompt_carries_sig_and_days(self, fake_llm):
        client = fake_llm(ONCE_DAILY)
        await LLMDosingParser(client, Settings()).parse_dosing("Take 1 tablet daily", 90)
        user = client.calls[0]["messages"][-1]["content"]
        assert 'SIG: "Take 1 tablet daily"' in user
        assert "Days Supply: 90" in user

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,days", [("", 30), ("   ", 30), ("Take 1 daily", 0), ("Take 1 daily", 366)])
    async def test_rejects_bad_arguments(self, fake_llm, text, days):
        client = fake_llm()
        outcome = await LLMDosingParser(client, Settings()).parse_dosing(text, days)
        assert not outcome.success
        assert isinstance(outcome.error, AIServiceError)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_schema_failure_lists_issues(self, fake_llm):
        client = fake_llm({"dose": "one", "unit": "tablet", "frequency": {"type": "daily"}, "confidence": 0.9})
        outcome = await LLMDosingParser(client, Settings()).parse_dosing("Take one daily", 30)
        assert not outcome.success
        assert outcome.error.code == "AI_SERVICE_ERROR"
        assert "dose" in outcome.error.message
        assert "frequency.type" in outcome.error.message

    @pytest.mark.asyncio
    async def test_llm_error_passed_through(self, fake_llm):
        error = LLMResponseError("Empty response from model", service=SERVICE_NAME)
        outcome = await LLMDosingParser(fake_llm(error), Settings()).parse_dosing("Take 1 daily", 30)
        assert outcome.error is error

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(self, fake_llm):
        outcome = await LLMDosingParser(fake_llm(KeyError("x")), Settings()).parse_dosing("Take 1 daily", 30)
        assert isinstance(outcome.error, AIServiceError)
        assert isinstance(outcome.error.cause, KeyError)

    @pytest.mark.asyncio
    async def test_low_confidence_logged(self, fake_llm, caplog):
        reply = dict(ONCE_DAILY, confidence=0.4, reasoning="unclear")
        outcome = await LLMDosingParser(fake_llm(reply), Settings()).parse_dosing("Use as directed", 30)
        assert outcome.success
        assert "Low confidence" in caplog.text

    @pytest.mark.asyncio
    async def test_retry_exhaustion_is_failure(self, fake_llm):
        outcome = await LLMDosingParser(fake_llm(LLMConnectionError("down")), Settings()).parse_dosing("qd", 30)
        assert not outcome.success
        assert outcome.error.retryable


class TestSigPrompt:

    def test_system_prompt_has_examples(self):
        messages = build_sig_prompt("Take 1 tablet daily", 30)
        assert messages[0]["role"] == "system"
        for example in SIG_EXAMPLES:
            assert example["input"] in messages[0]["content"]

    def test_mentions_dose_range_and_schedule(self):
        system = build_sig_prompt("x", 30)[0]["content"]
        assert "doseRange" in system
        assert "doseSchedule" in system
