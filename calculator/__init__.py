"""
Pure calculation components: data model, input validation, quantity
derivation, drug-name matching and warning synthesis. No I/O.
"""

from .schema import (
    AsNeeded,
    CalculationContext,
    CalculationResult,
    CalculationWarning,
    CatalogPackage,
    DosageForm,
    DoseRange,
    DoseScheduleEntry,
    DosingRecord,
    DrugConcept,
    ErrorAdvice,
    FrequencyPeriod,
    MedicationUnit,
    PackageSelection,
    PackageStatus,
    PrescriptionInput,
    Route,
    SelectedPackage,
    SpecificTimes,
    TimesPerDay,
    TimesPerPeriod,
    WarningSeverity,
    WarningType,
    dosing_record_from_dict,
)
from .quantity import derive_quantity, enhance_dosing_record, infer_dose_range_from_text
from .matching import (
    extract_base_drug_name,
    filter_active,
    filter_by_drug_name,
    filter_by_strength,
    normalize_for_match,
    strengths_match,
)
from .warning_rules import collect_warnings
from .validation import validate_prescription_input

__all__ = [
    "AsNeeded",
    "CalculationContext",
    "CalculationResult",
    "CalculationWarning",
    "CatalogPackage",
    "DosageForm",
    "DoseRange",
    "DoseScheduleEntry",
    "DosingRecord",
    "DrugConcept",
    "ErrorAdvice",
    "FrequencyPeriod",
    "MedicationUnit",
    "PackageSelection",
    "PackageStatus",
    "PrescriptionInput",
    "Route",
    "SelectedPackage",
    "SpecificTimes",
    "TimesPerDay",
    "TimesPerPeriod",
    "WarningSeverity",
    "WarningType",
    "dosing_record_from_dict",
    "derive_quantity",
    "enhance_dosing_record",
    "infer_dose_range_from_text",
    "extract_base_drug_name",
    "filter_active",
    "filter_by_drug_name",
    "filter_by_strength",
    "normalize_for_match",
    "strengths_match",
    "collect_warnings",
    "validate_prescription_input",
]
