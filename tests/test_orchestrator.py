"""
Tests for pipeline.orchestrator: the end-to-end calculation with stub collaborators.
"""

import logging

import pytest

from calculator.schema import (
    AsNeeded,
    CalculationContext,
    DoseRange,
    DoseScheduleEntry,
    DrugConcept,
    MedicationUnit,
    PackageStatus,
    TimesPerDay,
    WarningType,
)
from core.config import Settings
from core.errors import AIServiceError, ExternalAPIError
from core.outcome import Outcome
from pipeline.orchestrator import PrescriptionCalculator, calculate_prescription

METFORMIN = DrugConcept("6809", "metformin", "IN")

BODY = {"drugName": "Metformin 500mg", "sig": "Take 1 tablet twice daily", "daysSupply": 30}


@pytest.fixture
def metformin_packages(package_factory):
    return [
        package_factory(ndc="00093101060", size=60, strength="500 mg/1"),
        package_factory(ndc="00093101099", size=1000, strength="500 mg/1"),
        package_factory(ndc="00093101160", size=60, strength="850 mg/1"),
        package_factory(ndc="00093999960", size=60, strength="5 mg/1; 500 mg/1",
                        generic="GLIPIZIDE AND METFORMIN HYDROCHLORIDE"),
        package_factory(ndc="00093000001", size=60, status=PackageStatus.INACTIVE),
    ]


@pytest.fixture
def build(stubs, dosing_factory, metformin_packages):
    """Calculator factory with sensible defaults for every collaborator."""
    def _build(dosing=None, concept=METFORMIN, catalog=None, selector=None, settings=None, parser=None):
        dosing = dosing or dosing_factory(frequency=TimesPerDay(2))
        return PrescriptionCalculator(
            parser=parser or stubs.Parser(Outcome.ok(dosing)),
            normalizer=stubs.Normalizer(concept),
            catalog=stubs.Catalog(catalog if catalog is not None else {"metformin": metformin_packages}),
            selector=selector or stubs.Selector(),
            settings=settings or Settings(),
        )
    return _build


def _types(result):
    return [w.type for w in result.warnings]


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_twice_daily_for_thirty_days(self, build):
        calc = build()
        outcome = await calc.calculate(BODY)

        assert outcome.success
        result = outcome.data
        assert result.total_quantity_needed == 60
        assert result.unit is MedicationUnit.TABLET
        assert result.total_units_dispensed == 60
        assert result.fill_difference == 0
        assert result.warnings == ()
        assert result.rxcui == "6809"

    @pytest.mark.asyncio
    async def test_candidates_are_active_single_ingredient_at_strength(self, build):
        calc = build()
        outcome = await calc.calculate(BODY)

        ndcs = [p.ndc for p in outcome.data.candidate_packages]
        assert ndcs == ["00093101060", "00093101099"]
        assert [p.ndc for p in calc.selector.calls[0]["candidates"]] == ndcs

    @pytest.mark.asyncio
    async def test_selector_receives_need_and_context(self, build):
        calc = build()
        await calc.calculate(BODY)

        call = calc.selector.calls[0]
        assert call["quantity_needed"] == 60
        assert call["unit"] == "tablet"
        assert call["days_supply"] == 30
        assert call["prescription_context"] == "Metformin 500mg - Take 1 tablet twice daily"

    @pytest.mark.asyncio
    async def test_prescriber_ndc_in_context(self, build):
        calc = build()
        await calc.calculate(dict(BODY, ndc="00093101099"))
        context = calc.selector.calls[0]["prescription_context"]
        assert "prescriber-specified NDC 00093101099" in context

    @pytest.mark.asyncio
    async def test_normalized_name_used_for_search(self, build):
        calc = build()
        await calc.calculate(BODY)
        assert calc.normalizer.calls == ["Metformin 500mg"]
        assert calc.catalog.calls == ["metformin"]

    @pytest.mark.asyncio
    async def test_overfill_warning(self, build, package_factory):
        calc = build(catalog={"metformin": [package_factory(size=100)]})
        outcome = await calc.calculate(BODY)
        assert outcome.data.total_units_dispensed == 100
        assert _types(outcome.data) == [WarningType.OVERFILL]

    @pytest.mark.asyncio
    async def test_selector_warnings_appended(self, build, stubs):
        from calculator.schema import CalculationWarning, WarningSeverity

        extra = CalculationWarning(WarningType.MISSING_PACKAGE_SIZE, WarningSeverity.INFO, "check size")
        calc = build(selector=stubs.Selector(warnings=[extra]))
        outcome = await calc.calculate(BODY)
        assert outcome.data.warnings[-1] is extra

    @pytest.mark.asyncio
    async def test_convenience_entry_point(self, build):
        outcome = await calculate_prescription(BODY, calculator=build())
        assert outcome.success


class TestPrnDoseRange:

    @pytest.mark.asyncio
    async def test_range_inferred_and_maximum_used(self, build, dosing_factory, package_factory):
        sig = "Take 1-2 tablets every 4 hours as needed for pain"
        dosing = dosing_factory(dose=1, frequency=AsNeeded(), original_text=sig)
        calc = build(
            dosing=dosing,
            concept=None,
            catalog={"ibuprofen 200mg": [package_factory(size=40, strength="200 mg/1", generic="IBUPROFEN")]},
        )
        outcome = await calc.calculate({"drugName": "Ibuprofen 200mg", "sig": sig, "daysSupply": 5})

        assert outcome.success
        result = outcome.data
        assert result.total_quantity_needed == 40
        assert result.dosing.dose_range == DoseRange(1, 2)
        types = _types(result)
        assert WarningType.AMBIGUOUS_SIG in types
        assert WarningType.DOSE_RANGE_ASSUMPTION in types
        assert WarningType.OVERFILL not in types
        range_warning = result.warnings[types.index(WarningType.DOSE_RANGE_ASSUMPTION)]
        assert "range inferred from SIG text" in range_warning.message

    @pytest.mark.asyncio
    async def test_prn_default_from_settings(self, build, dosing_factory):
        dosing = dosing_factory(frequency=AsNeeded())
        calc = build(dosing=dosing, settings=Settings(prn_default_per_day=6))
        outcome = await calc.calculate(dict(BODY, sig="Take 1 tablet as needed", daysSupply=10))
        assert outcome.data.total_quantity_needed == 60


class TestDoseSchedule:

    @pytest.mark.asyncio
    async def test_schedule_wins_over_range(self, build, dosing_factory, package_factory, caplog):
        dosing = dosing_factory(
            dose=10,
            unit=MedicationUnit.UNIT,
            dose_range=DoseRange(8, 12),
            dose_schedule=(DoseScheduleEntry(10, 1, "breakfast"), DoseScheduleEntry(5, 2, "lunch and dinner")),
        )
        calc = build(dosing=dosing, catalog={"metformin": [package_factory(size=300)]})
        with caplog.at_level(logging.WARNING):
            outcome = await calc.calculate(dict(BODY, daysSupply=30))

        assert outcome.data.total_quantity_needed == 600
        assert "schedule determines quantity" in caplog.text


class TestRecovery:

    @pytest.mark.asyncio
    async def test_normalization_failure_uses_raw_name(self, build, metformin_packages):
        calc = build(concept=None, catalog={"Metformin 500mg": metformin_packages})
        outcome = await calc.calculate(BODY)
        assert outcome.success
        assert outcome.data.rxcui is None
        assert calc.catalog.calls == ["Metformin 500mg"]

    @pytest.mark.asyncio
    async def test_search_retried_with_raw_name(self, build, metformin_packages):
        concept = DrugConcept("860975", "metformin hydrochloride 500 MG Oral Tablet")
        calc = build(concept=concept, catalog={"metformin 500mg": metformin_packages})
        outcome = await calc.calculate(BODY)
        assert outcome.success
        assert calc.catalog.calls == ["metformin hydrochloride 500 MG Oral Tablet", "Metformin 500mg"]

    @pytest.mark.asyncio
    async def test_no_retry_when_names_equal(self, build):
        calc = build(concept=None, catalog={})
        outcome = await calc.calculate(BODY)
        assert outcome.error.code == "DRUG_NOT_FOUND"
        assert calc.catalog.calls == ["Metformin 500mg"]

    @pytest.mark.asyncio
    async def test_name_filter_falls_back_to_all_active(self, build, package_factory):
        combo = package_factory(size=60, generic="GLIPIZIDE AND METFORMIN HYDROCHLORIDE")
        calc = build(catalog={"metformin": [combo]})
        outcome = await calc.calculate(BODY)
        assert outcome.success
        assert outcome.data.candidate_packages == (combo,)


class TestStrengthPolicy:

    @pytest.mark.asyncio
    async def test_warn_policy_continues(self, build):
        calc = build()
        outcome = await calc.calculate(dict(BODY, drugName="Metformin 750mg"))
        assert outcome.success
        assert outcome.data.warnings[-1].type is WarningType.STRENGTH_MISMATCH
        assert len(outcome.data.candidate_packages) == 3

    @pytest.mark.asyncio
    async def test_fail_policy(self, build):
        calc = build(settings=Settings(strength_mismatch_policy="fail"))
        outcome = await calc.calculate(dict(BODY, drugName="Metformin 750mg"))
        assert outcome.error.code == "STRENGTH_MISMATCH"
        assert outcome.error.status_code == 422
        assert calc.selector.calls == []

    @pytest.mark.asyncio
    async def test_no_strength_requested(self, build):
        outcome = await build().calculate(dict(BODY, drugName="Metformin"))
        assert len(outcome.data.candidate_packages) == 3


class TestFailures:

    @pytest.mark.asyncio
    async def test_validation_failure(self, build):
        calc = build()
        outcome = await calc.calculate(dict(BODY, daysSupply=0))
        assert outcome.error.code == "VALIDATION_ERROR"
        assert outcome.context is None
        assert calc.parser.calls == []

    @pytest.mark.asyncio
    async def test_parser_failure_has_no_context(self, build, stubs):
        error = AIServiceError("SIG Parser", "model unavailable")
        calc = build(parser=stubs.Parser(Outcome.fail(error)))
        outcome = await calc.calculate(BODY)
        assert outcome.error is error
        assert outcome.context is None
        assert calc.catalog.calls == []

    @pytest.mark.asyncio
    async def test_all_inactive(self, build, package_factory):
        inactive = [package_factory(status=PackageStatus.INACTIVE)]
        calc = build(catalog={"metformin": inactive})
        outcome = await calc.calculate(BODY)

        assert outcome.error.code == "NDC_NOT_FOUND"
        assert outcome.error.message == "No active NDCs found for Metformin 500mg"
        assert isinstance(outcome.context, CalculationContext)
        assert outcome.context.rxcui == "6809"
        assert outcome.context.dosing is not None
        assert calc.selector.calls == []

    @pytest.mark.asyncio
    async def test_catalog_api_error_carries_context(self, build):
        error = ExternalAPIError("FDA NDC API", "HTTP 503", http_status=503)
        calc = build(catalog={"metformin": error, "metformin 500mg": error})
        outcome = await calc.calculate(BODY)
        assert outcome.error is error
        assert outcome.context.to_dict()["rxcui"] == "6809"

    @pytest.mark.asyncio
    async def test_zero_quantity_is_invalid_sig(self, build, dosing_factory):
        calc = build(dosing=dosing_factory(dose=0))
        outcome = await calc.calculate(BODY)
        assert outcome.error.code == "INVALID_SIG"
        assert "zero or negative" in outcome.error.message
        assert outcome.context.quantity_needed == 0
        assert calc.selector.calls == []

    @pytest.mark.asyncio
    async def test_selector_failure_carries_context(self, build, stubs):
        error = AIServiceError("Package Selector", "AI selected NDC not in available packages")
        calc = build(selector=stubs.Selector(outcome=Outcome.fail(error)))
        outcome = await calc.calculate(BODY)
        assert outcome.error is error
        assert outcome.context.to_dict() == {
            "parsedSIG": outcome.context.dosing.to_dict(),
            "rxcui": "6809",
            "quantityNeeded": 60,
        }

    @pytest.mark.asyncio
    async def test_failure_logged_with_code(self, build, caplog):
        calc = build(catalog={})
        with caplog.at_level(logging.WARNING):
            await calc.calculate(BODY)
        assert any(getattr(r, "error_code", None) == "DRUG_NOT_FOUND" for r in caplog.records)


class TestFromSettings:

    def test_wires_real_adapters(self):
        from services.fda_ndc import FDANDCClient
        from services.package_selector import LLMPackageSelector
        from services.rxnorm import RxNormClient
        from services.sig_parser import LLMDosingParser

        calc = PrescriptionCalculator.from_settings(Settings())
        assert isinstance(calc.parser, LLMDosingParser)
        assert isinstance(calc.normalizer, RxNormClient)
        assert isinstance(calc.catalog, FDANDCClient)
        assert isinstance(calc.selector, LLMPackageSelector)
