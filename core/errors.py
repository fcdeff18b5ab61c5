"""
CalculatorError hierarchy for the dispense calculator.

Provides typed exceptions so callers can distinguish terminal from recoverable
failures, map every failure to a machine-readable code, and categorize errors in
logs without parsing message strings.

Hierarchy:
    CalculatorError                     (base: code, status_code, cause)
    ├── ConfigurationError              (bad setting, missing API key)
    ├── ValidationError                 (malformed prescription input)
    ├── InvalidSIGError                 (unusable dosing text / non-positive quantity)
    ├── DrugNormalizationError          (name → RxCUI failed, recovered locally)
    ├── DrugNotFoundError               (catalog has no products for a name)
    ├── NDCNotFoundError                (no active / no matching package)
    ├── InactiveNDCError                (package exists but is not marketed)
    ├── StrengthMismatchError           (no package at the requested strength)
    ├── ExternalAPIError                (HTTP collaborator failed after retries)
    └── AIServiceError                  (any LLM-backed collaborator failure)
        └── LLMError                    (provider-level failure, retryable flag)
            ├── LLMRateLimitError       (retryable: 429 / quota)
            ├── LLMConnectionError      (retryable: network / timeout / 503)
            └── LLMResponseError        (empty / malformed response)
"""

from typing import Optional


class CalculatorError(Exception):
    """Base exception for all calculator errors."""

    code = "CALCULATOR_ERROR"
    status_code = 500

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
        if cause and not self.__cause__:
            self.__cause__ = cause

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        """Structured representation for logging / telemetry."""
        d = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": str(self),
            "status_code": self.status_code,
        }
        if self.cause:
            d["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return d


# ── Configuration ────────────────────────────────────────────────────

class ConfigurationError(CalculatorError):
    """Invalid setting value, unreadable config file, missing API key."""

    code = "CONFIGURATION_ERROR"
    status_code = 500


# ── Input ────────────────────────────────────────────────────────────

class ValidationError(CalculatorError):
    """Prescription input failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, reason: str, **kwargs):
        self.field = field
        self.reason = reason
        super().__init__(f"Validation error for {field}: {reason}", **kwargs)


class InvalidSIGError(CalculatorError):
    """Dosing text could not be turned into a usable quantity."""

    code = "INVALID_SIG"
    status_code = 400

    def __init__(self, sig: str, reason: str, **kwargs):
        self.sig = sig
        self.reason = reason
        super().__init__(f"Invalid SIG: {reason}", **kwargs)


# ── Drug / package lookup ────────────────────────────────────────────

class DrugNormalizationError(CalculatorError):
    """Drug name could not be mapped to an RxCUI. Never terminal."""

    code = "DRUG_NORMALIZATION_FAILED"
    status_code = 404

    def __init__(self, drug_name: str, reason: str, **kwargs):
        self.drug_name = drug_name
        self.reason = reason
        super().__init__(f'Cannot normalize drug "{drug_name}": {reason}', **kwargs)


class DrugNotFoundError(CalculatorError):
    """Package catalog returned no usable products for a drug name."""

    code = "DRUG_NOT_FOUND"
    status_code = 404

    def __init__(self, drug_name: str, **kwargs):
        self.drug_name = drug_name
        label = drug_name or "(empty name)"
        super().__init__(f"No packages found for drug {label}", **kwargs)


class NDCNotFoundError(CalculatorError):
    """NDC unknown or invalid, or no active candidate package exists."""

    code = "NDC_NOT_FOUND"
    status_code = 404

    def __init__(self, ndc: str, message: Optional[str] = None, **kwargs):
        self.ndc = ndc
        super().__init__(message or f"NDC {ndc} not found or is invalid", **kwargs)


class InactiveNDCError(CalculatorError):
    """Package exists but is inactive or discontinued."""

    code = "NDC_INACTIVE"
    status_code = 400

    def __init__(self, ndc: str, end_date: Optional[str] = None, **kwargs):
        self.ndc = ndc
        self.end_date = end_date
        suffix = f" (ended {end_date})" if end_date else ""
        super().__init__(f"NDC {ndc} is inactive{suffix}", **kwargs)


class StrengthMismatchError(CalculatorError):
    """No candidate package matches the strength named in the drug name."""

    code = "STRENGTH_MISMATCH"
    status_code = 422

    def __init__(self, drug_name: str, strength: str, **kwargs):
        self.drug_name = drug_name
        self.strength = strength
        super().__init__(
            f"No active package of {drug_name} matches requested strength {strength}",
            **kwargs,
        )


# ── External services ────────────────────────────────────────────────

class ExternalAPIError(CalculatorError):
    """HTTP collaborator failed (non-retryable status or retries exhausted)."""

    code = "EXTERNAL_API_ERROR"
    status_code = 503

    def __init__(self, api_name: str, reason: str, *, http_status: Optional[int] = None, **kwargs):
        self.api_name = api_name
        self.reason = reason
        self.http_status = http_status
        super().__init__(f"External API error ({api_name}): {reason}", **kwargs)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["api_name"] = self.api_name
        if self.http_status is not None:
            d["http_status"] = self.http_status
        return d


class AIServiceError(CalculatorError):
    """LLM-backed collaborator failed: empty response, bad JSON, schema mismatch."""

    code = "AI_SERVICE_ERROR"
    status_code = 500

    def __init__(self, service: str, reason: str, **kwargs):
        self.service = service
        self.reason = reason
        super().__init__(f"AI service error ({service}): {reason}", **kwargs)


# ── LLM Provider ─────────────────────────────────────────────────────

class LLMError(AIServiceError):
    """Base for all LLM provider errors."""

    def __init__(self, message: str, *, model: Optional[str] = None,
                 cause: Optional[BaseException] = None, retryable: bool = False,
                 service: str = "LLM Provider"):
        self.model = model
        self.retryable = retryable
        super().__init__(service, message, cause=cause)

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["retryable"] = self.retryable
        if self.model:
            d["model"] = self.model
        return d


class LLMRateLimitError(LLMError):
    """429 / quota exhausted, always retryable."""

    def __init__(self, message: str = "Rate limit exceeded", **kwargs):
        super().__init__(message, retryable=True, **kwargs)


class LLMConnectionError(LLMError):
    """Network timeout, connection failure or 503/504; retryable."""

    def __init__(self, message: str = "LLM connection failed", **kwargs):
        super().__init__(message, retryable=True, **kwargs)


class LLMResponseError(LLMError):
    """LLM returned an empty or unparseable response."""

    def __init__(self, message: str = "Malformed LLM response", **kwargs):
        super().__init__(message, retryable=False, **kwargs)
