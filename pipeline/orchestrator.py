"""
Prescription calculation orchestrator.

Runs one prescription through a linear, fail-fast sequence of steps:

    validate -> parse SIG -> enhance dosing -> normalize name -> fetch packages
    -> filter active -> match name/strength -> derive quantity -> select
    packages -> synthesize warnings -> assemble result

Each external step is awaited before the next starts because later inputs
depend on earlier outputs. Retries belong to the adapters, never to this
layer. Every terminal failure after parsing returns the partial
``CalculationContext`` gathered so far so an error advisor can use it.
"""

import logging
import time
from typing import Any, Optional

from calculator.matching import (
    extract_base_drug_name,
    filter_active,
    filter_by_drug_name,
    filter_by_strength,
    normalize_for_match,
    with_fallback,
)
from calculator.quantity import derive_quantity, enhance_dosing_record
from calculator.schema import CalculationContext, CalculationResult, DrugConcept, PrescriptionInput
from calculator.validation import validate_prescription_input
from calculator.warning_rules import collect_warnings, strength_mismatch_warning
from core.config import Settings, get_settings
from core.errors import (
    CalculatorError,
    InvalidSIGError,
    NDCNotFoundError,
    StrengthMismatchError,
)
from core.llm_client import LLMClient
from core.logging_config import StageLoggerAdapter
from core.outcome import Outcome
from services.interfaces import DosingParser, DrugNameNormalizer, PackageCatalog, PackageSelector

logger = StageLoggerAdapter(logging.getLogger(__name__), {"stage": "calculate"})

# Step names, in execution order, used as the ``stage`` of log records
PIPELINE_STEPS = (
    "validate",
    "parse_sig",
    "enhance_dosing",
    "normalize_name",
    "fetch_packages",
    "filter_active",
    "match_candidates",
    "derive_quantity",
    "select_packages",
    "assemble",
)


class PrescriptionCalculator:
    """
    Computes dispense quantity and package selection for one prescription.

    Collaborators are injected so deterministic stubs can replace the
    LLM-backed ones in tests; :meth:`from_settings` wires the real adapters.
    """

    def __init__(
        self,
        parser: DosingParser,
        normalizer: DrugNameNormalizer,
        catalog: PackageCatalog,
        selector: PackageSelector,
        settings: Optional[Settings] = None,
    ):
        self.parser = parser
        self.normalizer = normalizer
        self.catalog = catalog
        self.selector = selector
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PrescriptionCalculator":
        from services.fda_ndc import FDANDCClient
        from services.package_selector import LLMPackageSelector
        from services.rxnorm import RxNormClient
        from services.sig_parser import LLMDosingParser

        settings = settings or get_settings()
        llm = LLMClient.from_settings(settings)
        return cls(
            parser=LLMDosingParser(llm, settings),
            normalizer=RxNormClient(settings=settings),
            catalog=FDANDCClient(settings=settings),
            selector=LLMPackageSelector(llm, settings),
            settings=settings,
        )

    async def calculate(self, raw_input: Any) -> Outcome[CalculationResult]:
        """
        Run the full pipeline.

        Args:
            raw_input: A request body dict (camelCase keys) or a PrescriptionInput

        Returns:
            ``Outcome.ok(CalculationResult)``, or ``Outcome.fail(error, context)``
            where *context* is a CalculationContext when any partial state exists
        """
        started = time.monotonic()

        # 1. Validate
        try:
            prescription = validate_prescription_input(raw_input)
        except CalculatorError as e:
            logger.for_stage("validate").warning(f"Input rejected [{e.code}]: {e}")
            return Outcome.fail(e)

        outcome = await self._run(prescription)

        elapsed_ms = (time.monotonic() - started) * 1000
        if outcome.success:
            result = outcome.data
            logger.info(
                f"Calculated {prescription.drug_name}: {result.total_quantity_needed} {result.unit.value} "
                f"needed, {result.total_units_dispensed:g} dispensed in {len(result.selected_packages)} "
                f"package(s), {len(result.warnings)} warning(s) ({elapsed_ms:.0f} ms)",
                extra={"elapsed_ms": round(elapsed_ms)},
            )
        else:
            logger.warning(
                f"Calculation failed for {prescription.drug_name} [{outcome.error.code}]: "
                f"{outcome.error} ({elapsed_ms:.0f} ms)",
                extra={"error_code": outcome.error.code, "elapsed_ms": round(elapsed_ms)},
            )
        return outcome

    async def _run(self, prescription: PrescriptionInput) -> Outcome[CalculationResult]:
        context = CalculationContext()

        def failure(error: CalculatorError) -> Outcome[CalculationResult]:
            return Outcome.fail(error, context if context.to_dict() else None)

        # 2. Split strength off the drug name
        base_name, requested_strength = extract_base_drug_name(prescription.drug_name)
        logger.for_stage("validate").debug(
            f"Drug name '{prescription.drug_name}' -> base '{base_name}', strength {requested_strength!r}"
        )

        # 3. Parse SIG
        parsed = await self.parser.parse_dosing(prescription.sig, prescription.days_supply)
        if not parsed.success:
            return Outcome.fail(parsed.error)

        # 4. Enhance with a dose range inferred from the text
        dosing, dose_range_inferred = enhance_dosing_record(parsed.data, prescription.sig)
        context.dosing = dosing
        context.dose_range_inferred = dose_range_inferred
        if dosing.dose_schedule and dosing.dose_range:
            logger.for_stage("enhance_dosing").warning(
                "Dosing record has both a dose schedule and a dose range; the schedule determines quantity"
            )

        # 5. Normalize drug name (best effort)
        concept = await self._normalize(prescription.drug_name)
        if concept:
            context.rxcui = concept.rxcui

        # 6. Fetch candidate packages
        search_name = concept.name if concept and concept.name else prescription.drug_name
        packages = await self.catalog.lookup_packages(search_name)
        if not packages.success and search_name != prescription.drug_name:
            logger.for_stage("fetch_packages").info(
                f"Search for '{search_name}' failed ({packages.error.code}); retrying with '{prescription.drug_name}'"
            )
            packages = await self.catalog.lookup_packages(prescription.drug_name)
        if not packages.success:
            return failure(packages.error)

        # 7. Active packages only
        active = filter_active(packages.data)
        logger.for_stage("filter_active").debug(f"{len(active)} of {len(packages.data)} packages active")
        if not active:
            return failure(NDCNotFoundError(
                prescription.ndc or "",
                f"No active NDCs found for {prescription.drug_name}",
            ))

        # 8. Ingredient / strength matching
        requested_name = normalize_for_match(concept.name if concept else prescription.drug_name)
        candidates = with_fallback(filter_by_drug_name(active, requested_name), active)

        strength_warning = None
        if requested_strength:
            matching = filter_by_strength(candidates, requested_strength)
            if matching:
                candidates = matching
            elif self.settings.strength_mismatch_policy == "fail":
                return failure(StrengthMismatchError(base_name, requested_strength))
            else:
                logger.for_stage("match_candidates").warning(
                    f"No candidate matches strength {requested_strength}; continuing with all strengths"
                )
                strength_warning = strength_mismatch_warning(base_name, requested_strength)
        logger.for_stage("match_candidates").debug(f"{len(candidates)} candidate package(s) for selection")

        # 9. Quantity
        quantity = derive_quantity(dosing, prescription.days_supply, self.settings.prn_default_per_day)
        context.quantity_needed = quantity
        if quantity <= 0:
            return failure(InvalidSIGError(
                prescription.sig,
                "Cannot calculate quantity from parsed SIG - result is zero or negative",
            ))
        logger.for_stage("derive_quantity").debug(f"Quantity needed: {quantity} {dosing.unit.value}")

        # 10. Package selection
        selection = await self.selector.select_packages(
            candidates,
            quantity,
            dosing.unit.value,
            dosing,
            days_supply=prescription.days_supply,
            prescription_context=self._prescription_context(prescription),
        )
        if not selection.success:
            return failure(selection.error)

        # 11-13. Totals, warnings, result
        dispensed = selection.data.total_units
        warnings = collect_warnings(
            dosing,
            selection.data.warnings,
            dispensed - quantity,
            quantity,
            dosing.unit.value,
            dose_range_inferred=dose_range_inferred,
            prn_default_per_day=self.settings.prn_default_per_day,
        )
        if strength_warning:
            warnings.append(strength_warning)

        return Outcome.ok(CalculationResult(
            dosing=dosing,
            total_quantity_needed=quantity,
            unit=dosing.unit,
            selected_packages=selection.data.selected,
            reasoning=selection.data.reasoning,
            warnings=tuple(warnings),
            rxcui=concept.rxcui if concept else None,
            candidate_packages=tuple(candidates),
        ))

    async def _normalize(self, drug_name: str) -> Optional[DrugConcept]:
        outcome = await self.normalizer.normalize_drug_name(drug_name)
        if outcome.success:
            logger.for_stage("normalize_name").debug(
                f"'{drug_name}' -> RxCUI {outcome.data.rxcui} ({outcome.data.name})"
            )
            return outcome.data
        logger.for_stage("normalize_name").warning(
            f"Drug name normalization failed, using raw name: {outcome.error}",
            extra={"error_code": outcome.error.code},
        )
        return None

    @staticmethod
    def _prescription_context(prescription: PrescriptionInput) -> str:
        text = f"{prescription.drug_name} - {prescription.sig}"
        if prescription.ndc:
            text += f" (prescriber-specified NDC {prescription.ndc}; prefer it if listed)"
        return text


async def calculate_prescription(
    raw_input: Any,
    calculator: Optional[PrescriptionCalculator] = None,
) -> Outcome[CalculationResult]:
    """Convenience entry point using the default collaborators."""
    calculator = calculator or PrescriptionCalculator.from_settings()
    return await calculator.calculate(raw_input)
