"""
Tests for core.config: settings defaults, config file and env overrides.
"""

import json

import pytest

from core.config import (
    Settings,
    get_settings,
    load_settings,
    reset_settings,
    set_settings,
    with_overrides,
)
from core.errors import ConfigurationError


class TestDefaults:

    def test_defaults(self):
        settings = load_settings(use_env=False)
        assert settings == Settings()
        assert settings.prn_default_per_day == 4
        assert settings.strength_mismatch_policy == "warn"
        assert settings.cache_enabled is False

    def test_to_dict_masks_key(self):
        d = Settings(fda_api_key="secret").to_dict()
        assert d["fda_api_key"] == "***"
        assert d["api_timeout_ms"] == 10_000


class TestConfigFile:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "calculator_config.yaml"
        path.write_text("api_timeout_ms: 5000\ncache_enabled: true\nllm_model: claude-sonnet-4\n")
        settings = load_settings(path, use_env=False)
        assert settings.api_timeout_ms == 5000
        assert settings.cache_enabled is True
        assert settings.llm_model == "claude-sonnet-4"

    def test_json_file(self, tmp_path):
        path = tmp_path / "calculator_config.json"
        path.write_text(json.dumps({"prn_default_per_day": 6}))
        assert load_settings(path, use_env=False).prn_default_per_day == 6

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("not_a_setting: 1\n")
        assert load_settings(path, use_env=False) == Settings()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_settings(path, use_env=False) == Settings()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_settings(path, use_env=False)

    def test_bad_value_rejected(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("api_timeout_ms: soon\n")
        with pytest.raises(ConfigurationError, match="api_timeout_ms"):
            load_settings(path, use_env=False)


class TestEnvironment:

    @pytest.fixture
    def empty_config(self, tmp_path, monkeypatch):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        monkeypatch.setenv("CALCULATOR_CONFIG_PATH", str(path))
        return path

    def test_env_overrides(self, empty_config, monkeypatch):
        monkeypatch.setenv("API_TIMEOUT_MS", "2500")
        monkeypatch.setenv("ENABLE_API_CACHE", "true")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("STRENGTH_MISMATCH_POLICY", "fail")
        settings = load_settings()
        assert settings.api_timeout_ms == 2500
        assert settings.cache_enabled is True
        assert settings.llm_model == "gpt-4o-mini"
        assert settings.strength_mismatch_policy == "fail"

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "c.yaml"
        path.write_text("api_max_retries: 5\n")
        monkeypatch.setenv("CALCULATOR_CONFIG_PATH", str(path))
        monkeypatch.setenv("API_MAX_RETRIES", "2")
        assert load_settings().api_max_retries == 2

    def test_invalid_env_value(self, empty_config, monkeypatch):
        monkeypatch.setenv("API_CACHE_TTL_MS", "forever")
        with pytest.raises(ConfigurationError, match="API_CACHE_TTL_MS"):
            load_settings()

    def test_missing_config_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CALCULATOR_CONFIG_PATH", str(tmp_path / "nope.yaml"))
        with pytest.raises(ConfigurationError, match="missing file"):
            load_settings()


class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"api_timeout_ms": 0},
        {"cache_max_size": -1},
        {"api_max_retries": 0},
        {"llm_temperature": 3.0},
        {"strength_mismatch_policy": "ignore"},
        {"prn_default_per_day": 0},
    ])
    def test_rejects_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            with_overrides(Settings(), **overrides)

    def test_with_overrides_copies(self):
        base = Settings()
        changed = with_overrides(base, strength_mismatch_policy="fail")
        assert changed.strength_mismatch_policy == "fail"
        assert base.strength_mismatch_policy == "warn"


class TestGlobalSettings:

    def test_set_and_get(self):
        custom = Settings(prn_default_per_day=6)
        set_settings(custom)
        assert get_settings() is custom

    def test_set_validates(self):
        with pytest.raises(ConfigurationError):
            set_settings(Settings(api_timeout_ms=-1))

    def test_reset_reloads(self, tmp_path, monkeypatch):
        path = tmp_path / "c.yaml"
        path.write_text("catalog_search_limit: 25\n")
        monkeypatch.setenv("CALCULATOR_CONFIG_PATH", str(path))
        reset_settings()
        assert get_settings().catalog_search_limit == 25
