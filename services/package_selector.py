"""
LLM-backed package selection.

The model proposes NDCs and counts; everything it returns is checked against
the candidate list, and total units are recomputed locally.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from calculator.schema import (
    CalculationWarning,
    CatalogPackage,
    DosingRecord,
    PackageSelection,
    SelectedPackage,
    WarningSeverity,
    WarningType,
    positive_int,
)
from core.config import Settings, get_settings
from core.errors import AIServiceError, CalculatorError
from core.llm_client import LLMClient
from core.outcome import Outcome

from .fda_ndc import normalize_ndc
from .interfaces import PackageSelector
from .prompts import build_package_selection_prompt

logger = logging.getLogger(__name__)

SERVICE_NAME = "NDC Selector"

# Keyword -> category for model warning types outside the known set
_WARNING_KEYWORDS: List[Tuple[str, WarningType]] = [
    ("discontinu", WarningType.DISCONTINUED_NDC),
    ("inactive", WarningType.INACTIVE_NDC),
    ("form", WarningType.DOSAGE_FORM_MISMATCH),
    ("strength", WarningType.STRENGTH_MISMATCH),
    ("under", WarningType.UNDERFILL),
    ("short", WarningType.UNDERFILL),
    ("over", WarningType.OVERFILL),
    ("waste", WarningType.OVERFILL),
    ("size", WarningType.MISSING_PACKAGE_SIZE),
    ("range", WarningType.DOSE_RANGE_ASSUMPTION),
    ("confidence", WarningType.LOW_CONFIDENCE_PARSE),
]


def coerce_warning_type(raw: Any) -> WarningType:
    """Map a model-supplied warning type onto the closest known category."""
    text = str(raw or "").strip().lower()
    try:
        return WarningType(text)
    except ValueError:
        pass
    for keyword, warning_type in _WARNING_KEYWORDS:
        if keyword in text:
            return warning_type
    return WarningType.AMBIGUOUS_SIG


def _coerce_severity(raw: Any) -> WarningSeverity:
    try:
        return WarningSeverity(str(raw or "").strip().lower())
    except ValueError:
        return WarningSeverity.WARNING


def _parse_warnings(raw: Any, issues: List[str]) -> List[CalculationWarning]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        issues.append("warnings: expected a list")
        return []

    warnings = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or not isinstance(item.get("message"), str):
            issues.append(f"warnings[{i}].message: expected a string")
            continue
        warning_type = coerce_warning_type(item.get("type"))
        if warning_type.value != item.get("type"):
            logger.debug(f"Coerced selector warning type {item.get('type')!r} to {warning_type.value}")
        related = item.get("relatedNDC")
        warnings.append(CalculationWarning(
            type=warning_type,
            severity=_coerce_severity(item.get("severity")),
            message=item["message"],
            suggestion=item.get("suggestion") if isinstance(item.get("suggestion"), str) else None,
            related_ndc=normalize_ndc(related) if isinstance(related, str) else None,
        ))
    return warnings


def selection_from_dict(data: Dict[str, Any], candidates: List[CatalogPackage]) -> PackageSelection:
    """
    Validate the model's selection against *candidates*.

    Raises:
        AIServiceError: listing every schema problem, an NDC outside the
            candidate set, or an empty selection
    """
    issues: List[str] = []
    raw_selected = data.get("selectedPackages")
    if not isinstance(raw_selected, list):
        issues.append("selectedPackages: expected a list")
        raw_selected = []

    parsed: List[Tuple[str, int]] = []
    for i, item in enumerate(raw_selected):
        if not isinstance(item, dict):
            issues.append(f"selectedPackages[{i}]: expected an object")
            continue
        ndc = item.get("ndc")
        quantity = positive_int(item.get("quantity"))
        if not isinstance(ndc, str) or not ndc.strip():
            issues.append(f"selectedPackages[{i}].ndc: expected a string")
        if quantity is None:
            issues.append(f"selectedPackages[{i}].quantity: expected a positive integer")
        if not isinstance(item.get("reasoning"), str):
            issues.append(f"selectedPackages[{i}].reasoning: expected a string")
        if isinstance(ndc, str) and quantity is not None:
            parsed.append((ndc, quantity))

    warnings = _parse_warnings(data.get("warnings"), issues)

    reasoning = data.get("overallReasoning")
    if not isinstance(reasoning, str):
        issues.append("overallReasoning: expected a string")

    if issues:
        raise AIServiceError(SERVICE_NAME, f"AI returned invalid selection structure: {', '.join(issues)}")

    by_ndc = {pkg.ndc: pkg for pkg in candidates}
    selected = []
    for ndc, quantity in parsed:
        pkg = by_ndc.get(normalize_ndc(ndc))
        if pkg is None:
            raise AIServiceError(SERVICE_NAME, f"AI selected NDC {ndc} which is not in available packages")
        selected.append(SelectedPackage(package=pkg, quantity=quantity))

    if not selected:
        raise AIServiceError(SERVICE_NAME, "AI did not select any packages")

    return PackageSelection(selected=tuple(selected), warnings=tuple(warnings), reasoning=reasoning)


class LLMPackageSelector(PackageSelector):
    """Package selector backed by an LLM chat completion in JSON mode."""

    def __init__(self, client: Optional[LLMClient] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client or LLMClient.from_settings(self.settings)

    async def select_packages(
        self,
        candidates: List[CatalogPackage],
        quantity_needed: float,
        unit: str,
        dosing: Optional[DosingRecord] = None,
        *,
        days_supply: Optional[int] = None,
        prescription_context: Optional[str] = None,
    ) -> Outcome[PackageSelection]:
        if not candidates:
            return Outcome.fail(AIServiceError(SERVICE_NAME, "No NDC packages available for selection"))
        if quantity_needed <= 0:
            return Outcome.fail(AIServiceError(SERVICE_NAME, "Quantity needed must be positive"))

        messages = build_package_selection_prompt(
            candidates, quantity_needed, unit,
            days_supply=days_supply, dosing=dosing, prescription_context=prescription_context,
        )
        try:
            data = await self.client.achat_json(
                messages, service=SERVICE_NAME, max_tokens=self.settings.selector_max_tokens,
            )
            selection = selection_from_dict(data, candidates)
        except CalculatorError as e:
            logger.warning(f"Package selection failed: {e}")
            return Outcome.fail(e)
        except Exception as e:
            logger.error(f"Unexpected package selector failure: {e}")
            return Outcome.fail(AIServiceError(SERVICE_NAME, f"Unexpected failure: {e}", cause=e))

        logger.debug(
            f"Selected {len(selection.selected)} package(s) totalling "
            f"{selection.total_units:g} {unit} for {quantity_needed:g} needed"
        )
        return Outcome.ok(selection)
