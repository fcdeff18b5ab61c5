"""
Core utilities for the dispense calculator.

Shared infrastructure used by every layer:
- Error hierarchy and Outcome wrapper
- Settings (defaults, config file, environment)
- Response cache and HTTP transport
- Logging setup
"""

from .errors import (
    CalculatorError,
    ConfigurationError,
    ValidationError,
    InvalidSIGError,
    DrugNormalizationError,
    DrugNotFoundError,
    NDCNotFoundError,
    InactiveNDCError,
    StrengthMismatchError,
    ExternalAPIError,
    AIServiceError,
    LLMError,
    LLMRateLimitError,
    LLMConnectionError,
    LLMResponseError,
)
from .outcome import Outcome
from .config import Settings, get_settings, load_settings, set_settings, reset_settings
from .cache import ResponseCache, get_cache, clear_all_caches, reset_caches
from .http import HTTPClient

__all__ = [
    # Errors
    "CalculatorError",
    "ConfigurationError",
    "ValidationError",
    "InvalidSIGError",
    "DrugNormalizationError",
    "DrugNotFoundError",
    "NDCNotFoundError",
    "InactiveNDCError",
    "StrengthMismatchError",
    "ExternalAPIError",
    "AIServiceError",
    "LLMError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMResponseError",
    # Outcome
    "Outcome",
    # Settings
    "Settings",
    "get_settings",
    "load_settings",
    "set_settings",
    "reset_settings",
    # Cache / HTTP
    "ResponseCache",
    "get_cache",
    "clear_all_caches",
    "reset_caches",
    "HTTPClient",
]
