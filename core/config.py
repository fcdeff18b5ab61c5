"""
Calculator Configuration Loader

Builds the runtime ``Settings`` from, in increasing precedence:
    1. built-in defaults
    2. an optional YAML/JSON config file (calculator_config.yaml)
    3. environment variables (a project-root .env is loaded once)

Usage:
    from core.config import get_settings

    settings = get_settings()
    timeout_s = settings.api_timeout_ms / 1000
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

# Config file search locations (relative to project root)
CONFIG_LOCATIONS = [
    "calculator_config.yaml",
    "calculator_config.json",
    "config/calculator_config.yaml",
    "config/calculator_config.json",
]

STRENGTH_POLICIES = ("warn", "fail")


@dataclass(frozen=True)
class Settings:
    """Every recognized runtime option."""
    # External HTTP collaborators
    api_timeout_ms: int = 10_000
    api_max_retries: int = 3
    rxnorm_base_url: str = "https://rxnav.nlm.nih.gov/REST"
    fda_ndc_base_url: str = "https://api.fda.gov/drug/ndc.json"
    fda_api_key: str = ""
    catalog_search_limit: int = 100

    # Read-through response cache
    cache_enabled: bool = False
    cache_ttl_ms: int = 900_000
    cache_max_size: int = 1000

    # LLM-backed collaborators
    llm_model: str = "gpt-4o"
    llm_temperature: float = 0.1
    llm_timeout_ms: int = 30_000
    llm_max_retries: int = 3
    sig_parser_max_tokens: int = 1500
    selector_max_tokens: int = 1000
    advisor_max_tokens: int = 800

    # Calculation policy
    prn_default_per_day: int = 4
    strength_mismatch_policy: str = "warn"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/debugging (secrets masked)."""
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        if d.get("fda_api_key"):
            d["fda_api_key"] = "***"
        return d


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ENV var -> (settings field, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "API_TIMEOUT_MS": ("api_timeout_ms", int),
    "API_MAX_RETRIES": ("api_max_retries", int),
    "RXNORM_API_URL": ("rxnorm_base_url", str),
    "FDA_NDC_API_URL": ("fda_ndc_base_url", str),
    "FDA_API_KEY": ("fda_api_key", str),
    "ENABLE_API_CACHE": ("cache_enabled", _parse_bool),
    "API_CACHE_TTL_MS": ("cache_ttl_ms", int),
    "API_CACHE_MAX_SIZE": ("cache_max_size", int),
    "OPENAI_MODEL": ("llm_model", str),
    "OPENAI_TEMPERATURE": ("llm_temperature", float),
    "OPENAI_TIMEOUT_MS": ("llm_timeout_ms", int),
    "OPENAI_MAX_RETRIES": ("llm_max_retries", int),
    "OPENAI_MAX_TOKENS": ("sig_parser_max_tokens", int),
    "PRN_DEFAULT_PER_DAY": ("prn_default_per_day", int),
    "STRENGTH_MISMATCH_POLICY": ("strength_mismatch_policy", str),
}

_POSITIVE_INT_FIELDS = (
    "api_timeout_ms", "cache_ttl_ms", "cache_max_size", "llm_timeout_ms",
    "sig_parser_max_tokens", "selector_max_tokens", "advisor_max_tokens",
    "prn_default_per_day", "catalog_search_limit",
)

_env_loaded = False


def _ensure_env_loaded() -> None:
    """Ensure .env is loaded exactly once."""
    global _env_loaded
    if not _env_loaded:
        env_path = PROJECT_ROOT / ".env"
        if env_path.exists():
            load_dotenv(env_path)
        _env_loaded = True


def _find_config_file() -> Optional[Path]:
    """Search for config file in standard locations."""
    env_path = os.environ.get("CALCULATOR_CONFIG_PATH")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigurationError(f"CALCULATOR_CONFIG_PATH points to missing file: {env_path}")

    for location in CONFIG_LOCATIONS:
        path = PROJECT_ROOT / location
        if path.exists():
            return path
    return None


def _parse_config_file(path: Path) -> Dict[str, Any]:
    """Parse YAML or JSON config file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}", cause=e)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _coerce(name: str, value: Any) -> Any:
    """Coerce a file/env value to the type of the matching Settings field."""
    default = getattr(Settings, name)
    try:
        if isinstance(default, bool):
            return value if isinstance(value, bool) else _parse_bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}", cause=e)


def _validate(settings: Settings) -> Settings:
    for name in _POSITIVE_INT_FIELDS:
        if getattr(settings, name) <= 0:
            raise ConfigurationError(f"{name} must be positive, got {getattr(settings, name)}")
    if settings.api_max_retries < 1 or settings.llm_max_retries < 1:
        raise ConfigurationError("max retries must be at least 1 (a single attempt)")
    if not 0.0 <= settings.llm_temperature <= 2.0:
        raise ConfigurationError(f"llm_temperature out of range: {settings.llm_temperature}")
    if settings.strength_mismatch_policy not in STRENGTH_POLICIES:
        raise ConfigurationError(
            f"strength_mismatch_policy must be one of {STRENGTH_POLICIES}, "
            f"got {settings.strength_mismatch_policy!r}"
        )
    return settings


def load_settings(config_path: Optional[Path] = None, *, use_env: bool = True) -> Settings:
    """
    Build Settings from defaults, config file and environment.

    Args:
        config_path: Explicit config file; skips the search when given.
        use_env: Apply environment overrides (tests pass False for isolation).

    Raises:
        ConfigurationError: on unreadable files or invalid values.
    """
    if use_env:
        _ensure_env_loaded()

    values: Dict[str, Any] = {}
    known = {f.name for f in fields(Settings)}

    path = config_path or (_find_config_file() if use_env else None)
    if path:
        for key, value in _parse_config_file(Path(path)).items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key '{key}' in {path}")
                continue
            values[key] = _coerce(key, value)
        logger.debug(f"Loaded calculator config from {path}")

    if use_env:
        for env_var, (name, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if raw is None or raw == "":
                continue
            try:
                values[name] = convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {raw!r}", cause=e)
            logger.debug(f"Applied env override: {env_var}")

    return _validate(Settings(**values))


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Inject settings globally (useful in tests)."""
    global _settings
    _settings = _validate(settings)


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() reloads."""
    global _settings
    _settings = None


def with_overrides(settings: Settings, **overrides: Any) -> Settings:
    """Return a validated copy of *settings* with some fields replaced."""
    return _validate(replace(settings, **overrides))
