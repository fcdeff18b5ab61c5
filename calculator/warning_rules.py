"""Advisory warnings for a finished calculation."""

from typing import Iterable, List

from .quantity import DEFAULT_PRN_PER_DAY
from .schema import (
    AsNeeded,
    CalculationWarning,
    DosingRecord,
    WarningSeverity,
    WarningType,
)

LOW_CONFIDENCE_THRESHOLD = 0.7
OVERFILL_TOLERANCE = 0.1


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def collect_warnings(
    record: DosingRecord,
    selection_warnings: Iterable[CalculationWarning],
    fill_difference: float,
    quantity_needed: float,
    unit: str,
    *,
    dose_range_inferred: bool = False,
    prn_default_per_day: int = DEFAULT_PRN_PER_DAY,
) -> List[CalculationWarning]:
    """
    Evaluate every warning rule independently and append those that fire.

    Rule order is fixed so the output is stable for a given input. Warnings
    from the package selector are appended last, unchanged.
    """
    warnings: List[CalculationWarning] = []

    if record.confidence < LOW_CONFIDENCE_THRESHOLD:
        warnings.append(CalculationWarning(
            type=WarningType.LOW_CONFIDENCE_PARSE,
            severity=WarningSeverity.WARNING,
            message=f"Low confidence ({record.confidence:.2f}) in SIG parsing: {record.reasoning}",
            suggestion="Review parsed SIG for accuracy",
        ))

    if isinstance(record.frequency, AsNeeded) and not record.frequency.max_per_day:
        warnings.append(CalculationWarning(
            type=WarningType.AMBIGUOUS_SIG,
            severity=WarningSeverity.INFO,
            message=(
                f"PRN dosing without maximum - used conservative estimate of "
                f"{prn_default_per_day} times per day"
            ),
            suggestion="Verify quantity with prescriber if needed",
        ))

    if record.dose_range:
        inferred_note = " (range inferred from SIG text)" if dose_range_inferred else ""
        warnings.append(CalculationWarning(
            type=WarningType.DOSE_RANGE_ASSUMPTION,
            severity=WarningSeverity.INFO,
            message=(
                f"Prescription specifies a dose range ({_fmt(record.dose_range.min)}-"
                f"{_fmt(record.dose_range.max)} {record.unit.value}); used maximum for quantity{inferred_note}."
            ),
            suggestion="Confirm whether dispensing the maximum dose for the full duration is appropriate",
        ))

    if fill_difference > quantity_needed * OVERFILL_TOLERANCE:
        percent = round(fill_difference / quantity_needed * 100) if quantity_needed else 0
        warnings.append(CalculationWarning(
            type=WarningType.OVERFILL,
            severity=WarningSeverity.WARNING,
            message=f"Overfill of {_fmt(fill_difference)} {unit} ({percent}% over needed quantity)",
            suggestion="Consider adjusting package selection to reduce waste",
        ))

    if fill_difference < 0:
        warnings.append(CalculationWarning(
            type=WarningType.UNDERFILL,
            severity=WarningSeverity.ERROR,
            message=f"Underfill of {_fmt(abs(fill_difference))} {unit}",
            suggestion="Additional packages needed to meet prescription requirements",
        ))

    warnings.extend(selection_warnings)
    return warnings


def strength_mismatch_warning(drug_name: str, strength: str) -> CalculationWarning:
    return CalculationWarning(
        type=WarningType.STRENGTH_MISMATCH,
        severity=WarningSeverity.WARNING,
        message=f"No active package of {drug_name} matches requested strength {strength}; "
                f"selection considered all strengths",
        suggestion="Confirm the strength with the prescriber before dispensing",
    )
