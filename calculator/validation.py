"""
Boundary validation for prescription requests.

Turns an untrusted request body (camelCase keys, as sent by the UI) into a
``PrescriptionInput``. The first failing field is reported.
"""

import re
from typing import Any, Dict

from core.errors import ValidationError

from .schema import PrescriptionInput

MAX_DRUG_NAME_LENGTH = 200
MAX_SIG_LENGTH = 500
MAX_DAYS_SUPPLY = 365

NDC_PATTERN = re.compile(r"^\d{11}$")


def _require_text(body: Dict[str, Any], key: str, label: str, max_length: int) -> str:
    value = body.get(key)
    if not isinstance(value, str):
        raise ValidationError(key, f"{label} is required")
    value = value.strip()
    if not value:
        raise ValidationError(key, f"{label} is required")
    if len(value) > max_length:
        raise ValidationError(key, f"{label} too long")
    return value


def validate_prescription_input(body: Any) -> PrescriptionInput:
    """
    Validate a raw request body.

    Raises:
        ValidationError: naming the first offending field
    """
    if isinstance(body, PrescriptionInput):
        body = body.to_dict()
    if not isinstance(body, dict):
        raise ValidationError("body", "Request body must be a JSON object")

    drug_name = _require_text(body, "drugName", "Drug name", MAX_DRUG_NAME_LENGTH)

    ndc = body.get("ndc")
    if ndc is not None and ndc != "":
        if not isinstance(ndc, str) or not NDC_PATTERN.match(ndc):
            raise ValidationError("ndc", "NDC must be 11 digits")
    else:
        ndc = None

    sig = _require_text(body, "sig", "SIG", MAX_SIG_LENGTH)

    days = body.get("daysSupply")
    if isinstance(days, bool) or not isinstance(days, (int, float)):
        raise ValidationError("daysSupply", "Days supply must be a number")
    if days <= 0:
        raise ValidationError("daysSupply", "Days supply must be positive")
    if isinstance(days, float):
        if not days.is_integer():
            raise ValidationError("daysSupply", "Days supply must be a whole number")
        days = int(days)
    if days > MAX_DAYS_SUPPLY:
        raise ValidationError("daysSupply", f"Days supply cannot exceed {MAX_DAYS_SUPPLY} days")

    return PrescriptionInput(drug_name=drug_name, sig=sig, days_supply=days, ndc=ndc)
