"""
Dispense Calculator Schema Definitions

Dataclasses for the prescription input, the structured dosing record parsed
from the SIG, manufacturer packages and the calculation result. Every type is
created fresh per calculation and is never mutated afterwards; "enhancing" a
record produces a new instance via ``dataclasses.replace``.

``to_dict`` produces the camelCase JSON shape used on the wire.
``dosing_record_from_dict`` validates untrusted model output.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union


class MedicationUnit(Enum):
    """Dispensing units."""
    TABLET = "tablet"
    CAPSULE = "capsule"
    ML = "mL"
    UNIT = "unit"  # insulin
    MG = "mg"
    G = "g"
    PATCH = "patch"
    SPRAY = "spray"
    PUFF = "puff"  # inhalers
    DROP = "drop"
    SUPPOSITORY = "suppository"
    APPLICATION = "application"


class Route(Enum):
    """Route of administration."""
    ORAL = "oral"
    TOPICAL = "topical"
    SUBCUTANEOUS = "subcutaneous"
    INTRAMUSCULAR = "intramuscular"
    INTRAVENOUS = "intravenous"
    RECTAL = "rectal"
    OPHTHALMIC = "ophthalmic"
    OTIC = "otic"
    NASAL = "nasal"
    TRANSDERMAL = "transdermal"
    INHALATION = "inhalation"


class DosageForm(Enum):
    """Catalog dosage forms."""
    TABLET = "TABLET"
    CAPSULE = "CAPSULE"
    SOLUTION = "SOLUTION"
    SUSPENSION = "SUSPENSION"
    INJECTION = "INJECTION"
    CREAM = "CREAM"
    OINTMENT = "OINTMENT"
    GEL = "GEL"
    PATCH = "PATCH"
    INHALER = "INHALER"
    SPRAY = "SPRAY"
    DROPS = "DROPS"
    SUPPOSITORY = "SUPPOSITORY"


class PackageStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class FrequencyPeriod(Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"


class WarningType(Enum):
    """Categories of advisory warnings attached to a result."""
    INACTIVE_NDC = "inactive_ndc"
    DISCONTINUED_NDC = "discontinued_ndc"
    DOSAGE_FORM_MISMATCH = "dosage_form_mismatch"
    OVERFILL = "overfill"
    UNDERFILL = "underfill"
    MISSING_PACKAGE_SIZE = "missing_package_size"
    AMBIGUOUS_SIG = "ambiguous_sig"
    LOW_CONFIDENCE_PARSE = "low_confidence_parse"
    DOSE_RANGE_ASSUMPTION = "dose_range_assumption"
    STRENGTH_MISMATCH = "strength_mismatch"


class WarningSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SchemaValidationError(ValueError):
    """Raised when a dict does not match the expected shape. ``issues`` lists each problem."""

    def __init__(self, issues: List[str]):
        self.issues = issues
        super().__init__("; ".join(issues))


# ── Frequency variants ───────────────────────────────────────────────

@dataclass(frozen=True)
class TimesPerDay:
    """e.g. "twice daily" -> value 2"""
    value: int
    kind: ClassVar[str] = "times_per_day"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "value": self.value}


@dataclass(frozen=True)
class TimesPerPeriod:
    """e.g. "every 6 hours" -> value 6, period HOUR; "once weekly" -> value 1, period WEEK"""
    value: int
    period: FrequencyPeriod
    kind: ClassVar[str] = "times_per_period"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "value": self.value, "period": self.period.value}


@dataclass(frozen=True)
class SpecificTimes:
    """e.g. "at 8am and 8pm" -> ("08:00", "20:00")"""
    times: Tuple[str, ...]
    kind: ClassVar[str] = "specific_times"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "times": list(self.times)}


@dataclass(frozen=True)
class AsNeeded:
    """PRN dosing; ``max_per_day`` is None when the SIG gives no daily cap."""
    max_per_day: Optional[int] = None
    kind: ClassVar[str] = "as_needed"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.kind}
        if self.max_per_day is not None:
            result["maxPerDay"] = self.max_per_day
        return result


Frequency = Union[TimesPerDay, TimesPerPeriod, SpecificTimes, AsNeeded]


@dataclass(frozen=True)
class DoseRange:
    min: float
    max: float

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class DoseScheduleEntry:
    """One dose amount in a variable-dose regimen (e.g. insulin "10 units at breakfast")."""
    dose: float
    occurrences_per_day: int = 1
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"dose": self.dose, "occurrencesPerDay": self.occurrences_per_day}
        if self.label:
            result["label"] = self.label
        return result


@dataclass(frozen=True)
class DosingRecord:
    """
    Structured dosing parsed from a SIG.

    Attributes:
        dose: Amount per administration
        unit: Dispensing unit of the dose
        frequency: One of the four frequency variants
        duration: Therapy length in days, when the SIG states one
        route: Route of administration
        special_instructions: Free-text qualifiers ("with food")
        dose_range: Min/max when the SIG gives a range ("1-2 tablets")
        dose_schedule: Ordered per-dose entries for variable-dose regimens
        confidence: Parser confidence, 0..1
        reasoning: Parser explanation
        original_text: The SIG as entered
    """
    dose: float
    unit: MedicationUnit
    frequency: Frequency
    confidence: float
    reasoning: str = ""
    original_text: str = ""
    duration: Optional[int] = None
    route: Optional[Route] = None
    special_instructions: Tuple[str, ...] = ()
    dose_range: Optional[DoseRange] = None
    dose_schedule: Tuple[DoseScheduleEntry, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "dose": self.dose,
            "unit": self.unit.value,
            "frequency": self.frequency.to_dict(),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "originalSIG": self.original_text,
        }
        if self.duration is not None:
            result["duration"] = self.duration
        if self.route:
            result["route"] = self.route.value
        if self.special_instructions:
            result["specialInstructions"] = list(self.special_instructions)
        if self.dose_range:
            result["doseRange"] = self.dose_range.to_dict()
        if self.dose_schedule:
            result["doseSchedule"] = [entry.to_dict() for entry in self.dose_schedule]
        return result


@dataclass(frozen=True)
class PrescriptionInput:
    """Validated request; see ``calculator.validation.validate_prescription_input``."""
    drug_name: str
    sig: str
    days_supply: int
    ndc: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "drugName": self.drug_name,
            "sig": self.sig,
            "daysSupply": self.days_supply,
        }
        if self.ndc:
            result["ndc"] = self.ndc
        return result


@dataclass(frozen=True)
class CatalogPackage:
    """
    A manufacturer package as listed in the NDC directory.

    ``ndc`` is always the normalized 11-digit form.
    """
    ndc: str
    package_size: float
    dosage_form: DosageForm
    strength: str
    manufacturer: str
    status: PackageStatus
    generic_name: str
    brand_name: Optional[str] = None
    marketing_start_date: Optional[str] = None
    marketing_end_date: Optional[str] = None
    package_description: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is PackageStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ndc": self.ndc,
            "packageSize": self.package_size,
            "dosageForm": self.dosage_form.value,
            "strength": self.strength,
            "manufacturer": self.manufacturer,
            "status": self.status.value,
            "genericName": self.generic_name,
        }
        if self.brand_name:
            result["brandName"] = self.brand_name
        if self.marketing_start_date:
            result["marketingStartDate"] = self.marketing_start_date
        if self.marketing_end_date:
            result["marketingEndDate"] = self.marketing_end_date
        if self.package_description:
            result["packageDescription"] = self.package_description
        return result


@dataclass(frozen=True)
class SelectedPackage:
    """A package chosen for dispensing; ``total_units`` is always size x quantity."""
    package: CatalogPackage
    quantity: int

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError(f"Package quantity must be a positive integer, got {self.quantity!r}")

    @property
    def total_units(self) -> float:
        return self.package.package_size * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": self.package.to_dict(),
            "quantity": self.quantity,
            "totalUnits": self.total_units,
        }


@dataclass(frozen=True)
class CalculationWarning:
    type: WarningType
    severity: WarningSeverity
    message: str
    suggestion: Optional[str] = None
    related_ndc: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.related_ndc:
            result["relatedNDC"] = self.related_ndc
        return result


@dataclass(frozen=True)
class PackageSelection:
    """What the package-selection collaborator hands back."""
    selected: Tuple[SelectedPackage, ...]
    warnings: Tuple[CalculationWarning, ...] = ()
    reasoning: str = ""

    @property
    def total_units(self) -> float:
        return sum(p.total_units for p in self.selected)


@dataclass(frozen=True)
class CalculationResult:
    """
    Final answer for one prescription.

    ``total_units_dispensed`` and ``fill_difference`` are derived from the
    selected packages so they can never disagree with them.
    """
    dosing: DosingRecord
    total_quantity_needed: int
    unit: MedicationUnit
    selected_packages: Tuple[SelectedPackage, ...]
    reasoning: str
    warnings: Tuple[CalculationWarning, ...] = ()
    rxcui: Optional[str] = None
    candidate_packages: Optional[Tuple[CatalogPackage, ...]] = None

    def __post_init__(self):
        if not self.selected_packages:
            raise ValueError("A calculation result needs at least one selected package")

    @property
    def total_units_dispensed(self) -> float:
        return sum(p.total_units for p in self.selected_packages)

    @property
    def fill_difference(self) -> float:
        """Positive = overfill, negative = underfill."""
        return self.total_units_dispensed - self.total_quantity_needed

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "parsedSIG": self.dosing.to_dict(),
            "totalQuantityNeeded": self.total_quantity_needed,
            "unit": self.unit.value,
            "selectedPackages": [p.to_dict() for p in self.selected_packages],
            "totalUnitsDispensed": self.total_units_dispensed,
            "fillDifference": self.fill_difference,
            "reasoning": self.reasoning,
            "warnings": [w.to_dict() for w in self.warnings],
        }
        if self.rxcui:
            result["rxcui"] = self.rxcui
        if self.candidate_packages is not None:
            result["availableNDCs"] = [p.to_dict() for p in self.candidate_packages]
        return result


@dataclass
class CalculationContext:
    """Partial state captured during a failed run, for error advice only."""
    dosing: Optional[DosingRecord] = None
    rxcui: Optional[str] = None
    quantity_needed: Optional[int] = None
    dose_range_inferred: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.dosing:
            result["parsedSIG"] = self.dosing.to_dict()
        if self.rxcui:
            result["rxcui"] = self.rxcui
        if self.quantity_needed is not None:
            result["quantityNeeded"] = self.quantity_needed
        if self.dose_range_inferred:
            result["doseRangeInferred"] = True
        return result


@dataclass(frozen=True)
class DrugConcept:
    """Canonical drug identity from RxNorm."""
    rxcui: str
    name: str
    tty: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"rxcui": self.rxcui, "name": self.name}
        if self.tty:
            result["tty"] = self.tty
        return result


@dataclass(frozen=True)
class ErrorAdvice:
    explanation: str
    suggestions: Tuple[str, ...] = ()
    alternatives: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "explanation": self.explanation,
            "suggestions": list(self.suggestions),
        }
        if self.alternatives:
            result["alternatives"] = list(self.alternatives)
        return result


# ── Parsing untrusted dicts ──────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def positive_int(value: Any) -> Optional[int]:
    """Return *value* as int if it is a positive whole number, else None."""
    if not _is_number(value):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    return value if value > 0 else None


def _enum_value(enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def frequency_from_dict(data: Any, issues: List[str]) -> Optional[Frequency]:
    if not isinstance(data, dict):
        issues.append("frequency: expected an object")
        return None

    kind = data.get("type")
    if kind == TimesPerDay.kind:
        value = positive_int(data.get("value"))
        if value is None:
            issues.append("frequency.value: expected a positive integer")
            return None
        return TimesPerDay(value)

    if kind == TimesPerPeriod.kind:
        value = positive_int(data.get("value"))
        period = _enum_value(FrequencyPeriod, data.get("period"))
        if value is None:
            issues.append("frequency.value: expected a positive integer")
        if period is None:
            issues.append("frequency.period: expected one of hour, day, week")
        if value is None or period is None:
            return None
        return TimesPerPeriod(value, period)

    if kind == SpecificTimes.kind:
        times = data.get("times")
        if not isinstance(times, list) or not times or not all(isinstance(t, str) for t in times):
            issues.append("frequency.times: expected a non-empty list of strings")
            return None
        return SpecificTimes(tuple(times))

    if kind == AsNeeded.kind:
        raw = data.get("maxPerDay")
        if raw is None:
            return AsNeeded()
        value = positive_int(raw)
        if value is None:
            issues.append("frequency.maxPerDay: expected a positive integer")
            return None
        return AsNeeded(value)

    issues.append(f"frequency.type: unknown frequency type {kind!r}")
    return None


def _dose_range_from_dict(data: Any, issues: List[str]) -> Optional[DoseRange]:
    if not isinstance(data, dict):
        issues.append("doseRange: expected an object")
        return None
    lo, hi = data.get("min"), data.get("max")
    if not (_is_number(lo) and _is_number(hi)) or lo <= 0 or hi <= 0:
        issues.append("doseRange: min and max must be positive numbers")
        return None
    if hi < lo:
        issues.append("doseRange: max must not be less than min")
        return None
    return DoseRange(lo, hi)


def _dose_schedule_from_list(data: Any, issues: List[str]) -> Tuple[DoseScheduleEntry, ...]:
    if not isinstance(data, list):
        issues.append("doseSchedule: expected a list")
        return ()
    entries = []
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not _is_number(item.get("dose")) or item["dose"] <= 0:
            issues.append(f"doseSchedule[{i}].dose: expected a positive number")
            continue
        raw_occurrences = item.get("occurrencesPerDay")
        # 0 or missing means once a day
        occurrences = 1 if raw_occurrences in (None, 0) else positive_int(raw_occurrences)
        if occurrences is None:
            issues.append(f"doseSchedule[{i}].occurrencesPerDay: expected a positive integer")
            continue
        entries.append(DoseScheduleEntry(
            dose=item["dose"],
            occurrences_per_day=occurrences,
            label=str(item.get("label") or ""),
        ))
    return tuple(entries)


def dosing_record_from_dict(data: Dict[str, Any], original_text: Optional[str] = None) -> DosingRecord:
    """
    Validate a parser response and build a DosingRecord.

    Args:
        data: Decoded JSON from the dosing parser
        original_text: SIG text; overrides any ``originalSIG`` in *data*

    Raises:
        SchemaValidationError: listing every offending field
    """
    issues: List[str] = []

    dose = data.get("dose")
    if not _is_number(dose) or dose <= 0:
        issues.append("dose: expected a positive number")

    unit = _enum_value(MedicationUnit, data.get("unit"))
    if unit is None:
        issues.append(f"unit: unsupported unit {data.get('unit')!r}")

    frequency = frequency_from_dict(data.get("frequency"), issues)

    confidence = data.get("confidence")
    if not _is_number(confidence) or not 0 <= confidence <= 1:
        issues.append("confidence: expected a number between 0 and 1")

    reasoning = data.get("reasoning", "")
    if not isinstance(reasoning, str):
        issues.append("reasoning: expected a string")

    duration = None
    if data.get("duration") is not None:
        duration = positive_int(data["duration"])
        if duration is None:
            issues.append("duration: expected a positive integer")

    route = None
    if data.get("route") is not None:
        route = _enum_value(Route, data["route"])
        if route is None:
            issues.append(f"route: unsupported route {data['route']!r}")

    special = data.get("specialInstructions") or []
    if not isinstance(special, list) or not all(isinstance(s, str) for s in special):
        issues.append("specialInstructions: expected a list of strings")
        special = []

    dose_range = None
    if data.get("doseRange") is not None:
        dose_range = _dose_range_from_dict(data["doseRange"], issues)

    schedule: Tuple[DoseScheduleEntry, ...] = ()
    if data.get("doseSchedule") is not None:
        schedule = _dose_schedule_from_list(data["doseSchedule"], issues)

    if issues:
        raise SchemaValidationError(issues)

    return DosingRecord(
        dose=dose,
        unit=unit,
        frequency=frequency,
        confidence=float(confidence),
        reasoning=reasoning,
        original_text=original_text if original_text is not None else str(data.get("originalSIG", "")),
        duration=duration,
        route=route,
        special_instructions=tuple(special),
        dose_range=dose_range,
        dose_schedule=schedule,
    )
