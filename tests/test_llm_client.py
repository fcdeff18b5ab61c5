"""
Tests for core.llm_client: JSON chat completion with retry.
"""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.config import Settings
from core.errors import LLMConnectionError, LLMError, LLMResponseError
from core.json_utils import clean_llm_json, parse_llm_json
from core.llm_client import LLMClient, is_llm_configured
from providers import LLMResponse, usage_tracker

MESSAGES = [{"role": "user", "content": "hi"}]


def _provider(*results):
    provider = MagicMock()
    provider.agenerate = AsyncMock(side_effect=list(results))
    return provider


def _response(content):
    return LLMResponse(content=content, model="gpt-4o", usage={"total_tokens": 10})


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    with patch("providers.base.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestAchatJson:

    @pytest.mark.asyncio
    async def test_returns_dict(self):
        client = LLMClient(provider=_provider(_response('{"dose": 1}')))
        assert await client.achat_json(MESSAGES, service="SIG Parser") == {"dose": 1}

    @pytest.mark.asyncio
    async def test_passes_generation_config(self):
        provider = _provider(_response("{}"))
        client = LLMClient(temperature=0.2, provider=provider)
        await client.achat_json(MESSAGES, service="NDC Selector", max_tokens=1000)
        messages, config = provider.agenerate.call_args.args
        assert messages == MESSAGES
        assert config.temperature == 0.2
        assert config.max_tokens == 1000
        assert config.json_mode is True

    @pytest.mark.asyncio
    async def test_strips_code_fences(self):
        client = LLMClient(provider=_provider(_response('```json\n{"a": 1}\n```')))
        assert await client.achat_json(MESSAGES, service="x") == {"a": 1}

    @pytest.mark.asyncio
    async def test_empty_response(self):
        client = LLMClient(provider=_provider(_response("   ")))
        with pytest.raises(LLMResponseError, match="Empty response") as exc:
            await client.achat_json(MESSAGES, service="SIG Parser")
        assert exc.value.service == "SIG Parser"

    @pytest.mark.asyncio
    async def test_unparseable_response(self):
        client = LLMClient(provider=_provider(_response("I cannot help with that")))
        with pytest.raises(LLMResponseError, match="parse"):
            await client.achat_json(MESSAGES, service="x")

    @pytest.mark.asyncio
    async def test_array_is_not_an_object(self):
        client = LLMClient(provider=_provider(_response("[1, 2]")))
        with pytest.raises(LLMResponseError):
            await client.achat_json(MESSAGES, service="x")

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, no_backoff_sleep):
        provider = _provider(LLMConnectionError("reset"), _response('{"ok": true}'))
        client = LLMClient(max_retries=3, provider=provider)
        assert await client.achat_json(MESSAGES, service="x") == {"ok": True}
        assert provider.agenerate.await_count == 2
        no_backoff_sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_does_not_retry_permanent_errors(self):
        provider = _provider(LLMError("bad request"))
        client = LLMClient(max_retries=3, provider=provider)
        with pytest.raises(LLMError):
            await client.achat_json(MESSAGES, service="x")
        assert provider.agenerate.await_count == 1

    @pytest.mark.asyncio
    async def test_sets_usage_service(self):
        client = LLMClient(provider=_provider(_response("{}")))
        await client.achat_json(MESSAGES, service="Error Advisor")
        assert usage_tracker.current_service == "Error Advisor"


class TestConstruction:

    def test_from_settings(self):
        settings = Settings(llm_model="claude-sonnet-4", llm_temperature=0.3, llm_timeout_ms=5000, llm_max_retries=2)
        client = LLMClient.from_settings(settings)
        assert client.model == "claude-sonnet-4"
        assert client.temperature == 0.3
        assert client.timeout_ms == 5000
        assert client.max_retries == 2

    def test_provider_is_lazy(self):
        with patch("core.llm_client.LLMProviderFactory.auto_detect") as auto_detect:
            client = LLMClient("gpt-4o", timeout_ms=1234)
            auto_detect.assert_not_called()
            assert client.provider is auto_detect.return_value
            auto_detect.assert_called_once_with("gpt-4o", timeout_ms=1234)

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True)
    def test_is_configured(self):
        assert is_llm_configured()

    @patch.dict(os.environ, {}, clear=True)
    def test_is_not_configured(self):
        with patch("core.llm_client._ensure_env_loaded"):
            assert not is_llm_configured()

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "sk-ant"}, clear=True)
    def test_key_must_match_model_provider(self):
        with patch("core.llm_client._ensure_env_loaded"):
            assert is_llm_configured("claude-sonnet-4")
            assert not is_llm_configured("gpt-4o")
            assert not is_llm_configured("llama-3")


class TestJsonUtils:

    def test_clean_preamble_and_trailer(self):
        assert clean_llm_json('Here you go: {"a": 1} hope that helps') == '{"a": 1}'

    def test_parse_nested(self):
        assert parse_llm_json('```\n{"a": {"b": [1]}}\n```') == {"a": {"b": [1]}}

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_llm_json("not json")
