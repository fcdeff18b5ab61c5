"""
RxNorm drug-name normalizer.

Maps a free-text drug name to an RxCUI and canonical name using the NLM
RxNav REST API: exact lookup first, then approximate term matching.

API Reference: https://lhncbc.nlm.nih.gov/RxNav/APIs/RxNormAPIs.html
"""

import logging
from typing import Optional

from calculator.schema import DrugConcept
from core.cache import ResponseCache, get_cache
from core.config import Settings, get_settings
from core.errors import CalculatorError, DrugNormalizationError
from core.http import HTTPClient
from core.outcome import Outcome

from .interfaces import DrugNameNormalizer

logger = logging.getLogger(__name__)

API_NAME = "RxNorm API"
CACHE_NAMESPACE = "rxnorm:drug"


class RxNormClient(DrugNameNormalizer):
    """
    Client for the RxNav REST API.

    Successful lookups are cached under ``rxnorm:drug:<lowercased name>``.
    """

    def __init__(
        self,
        http: Optional[HTTPClient] = None,
        cache: Optional[ResponseCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.http = http or HTTPClient.from_settings(self.settings)
        self.cache = cache if cache is not None else get_cache("rxnorm")
        self.base_url = self.settings.rxnorm_base_url.rstrip("/")

    async def normalize_drug_name(self, name: str) -> Outcome[DrugConcept]:
        if not name or not name.strip():
            return Outcome.fail(DrugNormalizationError(name or "", "Drug name cannot be empty"))

        cache_key = ResponseCache.make_key(CACHE_NAMESPACE, name)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return Outcome.ok(cached)

        exact = await self._exact_match(name)
        if exact.success:
            self.cache.set(cache_key, exact.data)
            return exact
        logger.debug(f"No exact RxNorm match for '{name}': {exact.error}")

        approximate = await self._approximate_match(name)
        if approximate.success:
            self.cache.set(cache_key, approximate.data)
            return approximate

        logger.info(f"RxNorm normalization failed for '{name}': {approximate.error}")
        return Outcome.fail(DrugNormalizationError(name, "No matching RxCUI found", cause=approximate.error))

    async def _exact_match(self, name: str) -> Outcome[DrugConcept]:
        try:
            data = await self.http.afetch_json(f"{self.base_url}/rxcui.json", {"name": name}, API_NAME)
        except CalculatorError as e:
            return Outcome.fail(DrugNormalizationError(name, f"Exact match failed: {e}", cause=e))

        ids = ((data or {}).get("idGroup") or {}).get("rxnormId") or []
        if not ids:
            return Outcome.fail(DrugNormalizationError(name, "No exact match found"))
        return await self.get_details(ids[0])

    async def _approximate_match(self, name: str) -> Outcome[DrugConcept]:
        try:
            data = await self.http.afetch_json(
                f"{self.base_url}/approximateTerm.json",
                {"term": name, "maxEntries": 1},
                API_NAME,
            )
        except CalculatorError as e:
            return Outcome.fail(DrugNormalizationError(name, f"Approximate match failed: {e}", cause=e))

        candidates = ((data or {}).get("approximateGroup") or {}).get("candidate") or []
        candidate = candidates[0] if candidates else None
        if not candidate or not candidate.get("rxcui"):
            return Outcome.fail(DrugNormalizationError(name, "No approximate match found"))

        # approximateTerm candidates often carry no name; properties fill it in
        if not candidate.get("name"):
            return await self.get_details(str(candidate["rxcui"]))
        return Outcome.ok(DrugConcept(rxcui=str(candidate["rxcui"]), name=candidate["name"]))

    async def get_details(self, rxcui: str) -> Outcome[DrugConcept]:
        """Fetch the canonical name and term type for an RxCUI."""
        try:
            data = await self.http.afetch_json(f"{self.base_url}/rxcui/{rxcui}/properties.json", None, API_NAME)
        except CalculatorError as e:
            return Outcome.fail(DrugNormalizationError(rxcui, f"Failed to get RxNorm details: {e}", cause=e))

        properties = (data or {}).get("properties")
        if not properties:
            return Outcome.fail(DrugNormalizationError(rxcui, "No properties found for RxCUI"))

        return Outcome.ok(DrugConcept(
            rxcui=str(properties.get("rxcui") or rxcui),
            name=properties.get("name") or "Unknown",
            tty=properties.get("tty"),
        ))
