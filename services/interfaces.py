"""
Collaborator interfaces consumed by the calculator.

Every method is a coroutine returning an ``Outcome``; implementations convert
transport and model failures into failed outcomes instead of raising, so the
orchestrator alone decides what is terminal. Tests substitute deterministic
stubs for the LLM-backed ones.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from calculator.schema import (
    CatalogPackage,
    DosingRecord,
    DrugConcept,
    ErrorAdvice,
    PackageSelection,
    PrescriptionInput,
)
from core.errors import CalculatorError
from core.outcome import Outcome


class DosingParser(ABC):
    """Turns SIG text into a DosingRecord."""

    @abstractmethod
    async def parse_dosing(self, text: str, days_supply: int) -> Outcome[DosingRecord]:
        ...


class DrugNameNormalizer(ABC):
    """Maps a free-text drug name to its RxCUI and canonical name."""

    @abstractmethod
    async def normalize_drug_name(self, name: str) -> Outcome[DrugConcept]:
        ...


class PackageCatalog(ABC):
    """Looks up manufacturer packages for a drug name."""

    @abstractmethod
    async def lookup_packages(self, drug_name: str) -> Outcome[List[CatalogPackage]]:
        ...


class PackageSelector(ABC):
    """Chooses which packages, and how many of each, to dispense."""

    @abstractmethod
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
        ...


class ErrorAdvisor(ABC):
    """Explains a failed calculation. Only used after a terminal failure."""

    @abstractmethod
    async def advise_on_error(
        self,
        error: CalculatorError,
        prescription: PrescriptionInput,
        partial: Optional[Dict[str, Any]] = None,
    ) -> Outcome[ErrorAdvice]:
        ...
