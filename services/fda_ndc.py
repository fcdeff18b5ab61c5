"""
openFDA NDC Directory catalog.

Looks up manufacturer packages for a drug name (generic or brand) and turns
each product's packaging entries into ``CatalogPackage`` records.

API Reference: https://open.fda.gov/apis/drug/ndc/
"""

import logging
import re
from typing import Any, Dict, List, Optional

from calculator.schema import CatalogPackage, DosageForm, PackageStatus
from core.cache import ResponseCache, get_cache
from core.config import Settings, get_settings
from core.errors import CalculatorError, DrugNotFoundError, ExternalAPIError, NDCNotFoundError
from core.http import HTTPClient
from core.outcome import Outcome

from .interfaces import PackageCatalog

logger = logging.getLogger(__name__)

API_NAME = "FDA NDC API"

# Common directory spellings that are not themselves DosageForm values
DOSAGE_FORM_VARIANTS: Dict[str, DosageForm] = {
    "TABLETS": DosageForm.TABLET,
    "CAPSULES": DosageForm.CAPSULE,
    "LIQUID": DosageForm.SOLUTION,
    "SYRUP": DosageForm.SOLUTION,
    "ELIXIR": DosageForm.SOLUTION,
    "LOTION": DosageForm.CREAM,
    "AEROSOL": DosageForm.SPRAY,
    "POWDER": DosageForm.SUSPENSION,
    "SOLUTION/ DROPS": DosageForm.DROPS,
}

_PACKAGE_SIZE = re.compile(r"^(\d+(?:\.\d+)?)\s+")
_NDC_DIGITS = re.compile(r"^\d{10,11}$")

# 10-digit NDC segment layouts and where the padding zero goes
_SEGMENT_PADDING = {(4, 4, 2): 0, (5, 3, 2): 1, (5, 4, 1): 2}


def validate_ndc_format(ndc: str) -> bool:
    """True for 10 or 11 digits once dashes and spaces are removed."""
    cleaned = re.sub(r"[-\s]", "", ndc or "")
    return bool(_NDC_DIGITS.match(cleaned))


def normalize_ndc(ndc: str) -> str:
    """
    Convert an NDC to the 11-digit 5-4-2 form.

    Dashed 10-digit codes are padded in the short segment (4-4-2, 5-3-2,
    5-4-1); undashed 10-digit codes get a leading zero.
    """
    text = (ndc or "").strip()
    segments = text.split("-")
    if len(segments) == 3 and all(s.isdigit() for s in segments):
        layout = tuple(len(s) for s in segments)
        pad_index = _SEGMENT_PADDING.get(layout)
        if pad_index is not None:
            segments[pad_index] = "0" + segments[pad_index]
        return "".join(segments)

    cleaned = re.sub(r"[-\s]", "", text)
    if len(cleaned) == 10:
        cleaned = "0" + cleaned
    return cleaned


def normalize_dosage_form(form: Optional[str]) -> Optional[DosageForm]:
    """
    Map a directory dosage form ("TABLET, FILM COATED") onto DosageForm.

    Returns None for forms the calculator does not dispense.
    """
    if not form:
        return None
    normalized = form.upper().strip()
    for candidate in (normalized, normalized.split(",")[0].strip()):
        try:
            return DosageForm(candidate)
        except ValueError:
            pass
        if candidate in DOSAGE_FORM_VARIANTS:
            return DOSAGE_FORM_VARIANTS[candidate]
    return None


def parse_package_size(description: Optional[str]) -> float:
    """Leading count of a description like "100 TABLET in 1 BOTTLE"; 0 if absent."""
    match = _PACKAGE_SIZE.match(description or "")
    if not match:
        return 0
    value = float(match.group(1))
    return int(value) if value.is_integer() else value


def determine_status(marketing_end_date: Optional[str]) -> PackageStatus:
    return PackageStatus.INACTIVE if marketing_end_date else PackageStatus.ACTIVE


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _results(data: Any) -> List[Dict[str, Any]]:
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list):
        return []
    return [product for product in results if isinstance(product, dict)]


def packages_from_product(product: Dict[str, Any]) -> List[CatalogPackage]:
    """
    Expand one directory product into its dispensable packages.

    Malformed ingredient or packaging entries are skipped.
    """
    dosage_form = normalize_dosage_form(_text(product.get("dosage_form")))
    if dosage_form is None:
        return []

    ingredients = product.get("active_ingredients")
    first = ingredients[0] if isinstance(ingredients, list) and ingredients else None
    strength = (_text(first.get("strength")) if isinstance(first, dict) else None) or "Unknown"
    end_date = _text(product.get("marketing_end_date"))

    packaging = product.get("packaging")
    packages = []
    for entry in packaging if isinstance(packaging, list) else []:
        if not isinstance(entry, dict):
            continue
        description = _text(entry.get("description"))
        size = parse_package_size(description)
        ndc = normalize_ndc(_text(entry.get("package_ndc")) or "")
        if size <= 0 or len(ndc) != 11 or not ndc.isdigit():
            continue
        packages.append(CatalogPackage(
            ndc=ndc,
            package_size=size,
            dosage_form=dosage_form,
            strength=strength,
            manufacturer=_text(product.get("labeler_name")) or "Unknown",
            status=determine_status(end_date),
            generic_name=_text(product.get("generic_name")) or "",
            brand_name=_text(product.get("brand_name")),
            marketing_start_date=_text(product.get("marketing_start_date")),
            marketing_end_date=end_date,
            package_description=description,
        ))
    return packages


class FDANDCClient(PackageCatalog):
    """
    Package catalog backed by the openFDA NDC Directory.

    Drug searches are cached under ``fda:drug:<name>:<limit>``, single-package
    lookups under ``fda:ndc:<ndc>``.
    """

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        cache: Optional[ResponseCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.http = http or HTTPClient.from_settings(self.settings)
        self.cache = cache if cache is not None else get_cache("fda")
        self.base_url = self.settings.fda_ndc_base_url

    def _params(self, search: str, limit: Optional[int] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"search": search}
        if limit is not None:
            params["limit"] = limit
        if self.settings.fda_api_key:
            params["api_key"] = self.settings.fda_api_key
        return params

    async def lookup_packages(self, drug_name: str) -> Outcome[List[CatalogPackage]]:
        return await self.search_by_drug(drug_name, self.settings.catalog_search_limit)

    async def search_by_drug(self, drug_name: str, limit: int = 100) -> Outcome[List[CatalogPackage]]:
        if not drug_name or not drug_name.strip():
            return Outcome.fail(DrugNotFoundError(""))

        name = drug_name.strip()
        cache_key = ResponseCache.make_key("fda:drug", name, limit)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return Outcome.ok(list(cached))

        search = f'(generic_name:"{name}" OR brand_name:"{name}")'
        logger.debug(f"Searching NDC directory for '{name}' (limit={limit})")
        try:
            data = await self.http.afetch_json(self.base_url, self._params(search, limit), API_NAME)
        except ExternalAPIError as e:
            # openFDA answers 404 when a search matches nothing
            if e.http_status == 404:
                return Outcome.fail(DrugNotFoundError(name, cause=e))
            logger.warning(f"NDC directory search failed for '{name}': {e}")
            return Outcome.fail(e)
        except CalculatorError as e:
            return Outcome.fail(e)

        results = _results(data)
        packages: List[CatalogPackage] = []
        for product in results:
            packages.extend(packages_from_product(product))

        if not packages:
            logger.info(f"No usable packages for '{name}' ({len(results)} products returned)")
            return Outcome.fail(DrugNotFoundError(name))

        logger.debug(f"Found {len(packages)} packages in {len(results)} products for '{name}'")
        self.cache.set(cache_key, tuple(packages))
        return Outcome.ok(packages)

    async def get_package_details(self, ndc: str) -> Outcome[CatalogPackage]:
        """Look up a single package by NDC."""
        if not validate_ndc_format(ndc):
            return Outcome.fail(NDCNotFoundError(ndc))

        normalized = normalize_ndc(ndc)
        cache_key = ResponseCache.make_key("fda:ndc", normalized)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return Outcome.ok(cached)

        try:
            data = await self.http.afetch_json(self.base_url, self._params(f'package_ndc:"{ndc}"'), API_NAME)
        except ExternalAPIError as e:
            if e.http_status == 404:
                return Outcome.fail(NDCNotFoundError(ndc, cause=e))
            return Outcome.fail(e)
        except CalculatorError as e:
            return Outcome.fail(e)

        results = _results(data)
        for product in results:
            for pkg in packages_from_product(product):
                if pkg.ndc == normalized:
                    self.cache.set(cache_key, pkg)
                    return Outcome.ok(pkg)
        return Outcome.fail(NDCNotFoundError(ndc))
