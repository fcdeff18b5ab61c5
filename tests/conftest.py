"""Shared pytest configuration and fixtures for the test suite."""

import math
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from calculator.schema import (  # noqa: E402
    CatalogPackage,
    DosageForm,
    DosingRecord,
    MedicationUnit,
    PackageSelection,
    PackageStatus,
    SelectedPackage,
    TimesPerDay,
)
from core.cache import reset_caches  # noqa: E402
from core.config import Settings, reset_settings, set_settings  # noqa: E402
from core.errors import DrugNormalizationError, DrugNotFoundError  # noqa: E402
from core.outcome import Outcome  # noqa: E402
from providers.tracker import reset_usage_tracker  # noqa: E402
from services.interfaces import (  # noqa: E402
    DosingParser,
    DrugNameNormalizer,
    ErrorAdvisor,
    PackageCatalog,
    PackageSelector,
)


def pytest_addoption(parser):
    """Add custom CLI options."""
    parser.addoption(
        "--run-live", action="store_true", default=False,
        help="Run tests against the real RxNorm / openFDA APIs (network, slow)",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "live: calls real external APIs (slow, needs network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def isolated_settings():
    """Default settings, empty caches and usage counters for every test."""
    settings = Settings()
    set_settings(settings)
    reset_caches()
    reset_usage_tracker()
    yield settings
    reset_settings()
    reset_caches()


# ── Builders ─────────────────────────────────────────────────────────

def make_package(
    ndc="00093101001",
    size=100,
    strength="500 mg/1",
    generic="METFORMIN HYDROCHLORIDE",
    brand=None,
    status=PackageStatus.ACTIVE,
    form=DosageForm.TABLET,
    manufacturer="Teva",
):
    return CatalogPackage(
        ndc=ndc,
        package_size=size,
        dosage_form=form,
        strength=strength,
        manufacturer=manufacturer,
        status=status,
        generic_name=generic,
        brand_name=brand,
    )


def make_dosing(dose=1, unit=MedicationUnit.TABLET, frequency=None, confidence=0.95, **kwargs):
    kwargs.setdefault("reasoning", "test record")
    return DosingRecord(
        dose=dose,
        unit=unit,
        frequency=frequency or TimesPerDay(1),
        confidence=confidence,
        **kwargs,
    )


@pytest.fixture
def package_factory():
    return make_package


@pytest.fixture
def dosing_factory():
    return make_dosing


# ── Deterministic collaborators ──────────────────────────────────────

class StubParser(DosingParser):
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def parse_dosing(self, text, days_supply):
        self.calls.append((text, days_supply))
        return self.outcome


class StubNormalizer(DrugNameNormalizer):
    """Returns *concept* for every name, or a normalization failure when None."""

    def __init__(self, concept=None):
        self.concept = concept
        self.calls = []

    async def normalize_drug_name(self, name):
        self.calls.append(name)
        if self.concept is None:
            return Outcome.fail(DrugNormalizationError(name, "No matching RxCUI found"))
        return Outcome.ok(self.concept)


class StubCatalog(PackageCatalog):
    """Maps lowercased drug names to package lists or errors; unknown names are not found."""

    def __init__(self, results=None):
        self.results = {k.lower(): v for k, v in (results or {}).items()}
        self.calls = []

    async def lookup_packages(self, drug_name):
        self.calls.append(drug_name)
        result = self.results.get(drug_name.lower())
        if result is None:
            return Outcome.fail(DrugNotFoundError(drug_name))
        if isinstance(result, Exception):
            return Outcome.fail(result)
        return Outcome.ok(list(result))


class StubSelector(PackageSelector):
    """
    Picks the first candidate, enough of it to cover the need, unless a fixed
    outcome is given.
    """

    def __init__(self, outcome=None, warnings=()):
        self.outcome = outcome
        self.warnings = tuple(warnings)
        self.calls = []

    async def select_packages(self, candidates, quantity_needed, unit, dosing=None, *,
                              days_supply=None, prescription_context=None):
        self.calls.append({
            "candidates": list(candidates),
            "quantity_needed": quantity_needed,
            "unit": unit,
            "days_supply": days_supply,
            "prescription_context": prescription_context,
        })
        if self.outcome is not None:
            return self.outcome
        first = candidates[0]
        count = max(1, math.ceil(quantity_needed / first.package_size))
        return Outcome.ok(PackageSelection(
            selected=(SelectedPackage(first, count),),
            warnings=self.warnings,
            reasoning="first candidate",
        ))


class StubAdvisor(ErrorAdvisor):
    def __init__(self, outcome=None, raises=None):
        self.outcome = outcome
        self.raises = raises
        self.calls = []

    async def advise_on_error(self, error, prescription, partial=None):
        self.calls.append((error, prescription, partial))
        if self.raises is not None:
            raise self.raises
        return self.outcome


@pytest.fixture
def stubs():
    """Namespace of stub collaborator classes."""
    class _Stubs:
        Parser = StubParser
        Normalizer = StubNormalizer
        Catalog = StubCatalog
        Selector = StubSelector
        Advisor = StubAdvisor
    return _Stubs


class FakeLLMClient:
    """Stands in for core.llm_client.LLMClient; replays queued replies or errors."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def achat_json(self, messages, *, service, max_tokens=None):
        self.calls.append({"messages": messages, "service": service, "max_tokens": max_tokens})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fake_llm():
    return FakeLLMClient
