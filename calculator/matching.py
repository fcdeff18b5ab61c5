"""
Drug-name and strength matching against catalog packages.

Catalog searches are fuzzy: a query for "metformin" also returns combination
products such as "glipizide and metformin". These helpers narrow a candidate
list to single-ingredient products of the requested drug and strength.
"""

import re
from typing import Iterable, List, Optional, Tuple

from .schema import CatalogPackage

STRENGTH_UNITS = r"mg|mcg|g|ml|units?|iu"

# "500mg", "2.5 mg", "10 units", optionally per volume: "5 mg/5 mL"
STRENGTH_TOKEN = re.compile(
    rf"(\d+(?:\.\d+)?)\s*({STRENGTH_UNITS})\b(?:\s*/\s*(?:\d+(?:\.\d+)?\s*)?(?:ml|g)\b)?",
    re.IGNORECASE,
)

_EMBEDDED_STRENGTH = re.compile(rf"\b\d+(\.\d+)?\s*({STRENGTH_UNITS})\b")
_NON_ALPHA = re.compile(r"[^a-z\s]")
_WHITESPACE = re.compile(r"\s+")

MULTI_INGREDIENT_PATTERN = re.compile(r"\b(and|with)\b|/|,", re.IGNORECASE)


def extract_base_drug_name(name: str) -> Tuple[str, Optional[str]]:
    """
    Split "Metformin 500mg" into ("Metformin", "500mg").

    The strength is the first numeric+unit token, wherever it appears.
    """
    match = STRENGTH_TOKEN.search(name or "")
    if not match:
        return _WHITESPACE.sub(" ", (name or "").strip()), None

    strength = match.group(0).strip()
    base = (name[:match.start()] + " " + name[match.end():]).strip()
    base = _WHITESPACE.sub(" ", base)
    return base or name.strip(), strength


def normalize_for_match(name: str) -> str:
    """Lowercase, drop strength tokens and punctuation, collapse whitespace."""
    text = (name or "").lower()
    text = _EMBEDDED_STRENGTH.sub("", text)
    text = _NON_ALPHA.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_strength(strength: str) -> str:
    # "500 mg/1" is the directory's per-unit spelling of "500mg"
    text = _WHITESPACE.sub("", (strength or "").lower())
    if text.endswith("/1"):
        text = text[:-2]
    return text


def strengths_match(requested: str, candidate: str) -> bool:
    """Case- and whitespace-insensitive equality: "500mg" == "500 MG" == "500Mg"."""
    return normalize_strength(requested) == normalize_strength(candidate)


def is_multi_ingredient(generic_name: str) -> bool:
    return bool(generic_name) and MULTI_INGREDIENT_PATTERN.search(generic_name) is not None


def filter_active(candidates: Iterable[CatalogPackage]) -> List[CatalogPackage]:
    return [pkg for pkg in candidates if pkg.is_active]


def filter_by_drug_name(candidates: List[CatalogPackage], requested: str) -> List[CatalogPackage]:
    """
    Keep packages whose generic or brand name contains *requested*.

    *requested* must already be passed through :func:`normalize_for_match`.
    Generic-name matches on combination products are dropped; brand-name
    matches are kept. An empty *requested* keeps everything. Callers fall back
    to the unfiltered list when this returns nothing.
    """
    if not requested:
        return list(candidates)

    matched = []
    for pkg in candidates:
        generic = normalize_for_match(pkg.generic_name) if pkg.generic_name else ""
        brand = normalize_for_match(pkg.brand_name) if pkg.brand_name else ""

        if generic and requested in generic:
            if not is_multi_ingredient(pkg.generic_name):
                matched.append(pkg)
            continue

        if brand and requested in brand:
            matched.append(pkg)
    return matched


def filter_by_strength(candidates: List[CatalogPackage], requested_strength: str) -> List[CatalogPackage]:
    return [
        pkg for pkg in candidates
        if pkg.strength and strengths_match(requested_strength, pkg.strength)
    ]


def with_fallback(filtered: List[CatalogPackage], unfiltered: List[CatalogPackage]) -> List[CatalogPackage]:
    """Filtering is an optimization: never turn a non-empty set into an empty one."""
    return filtered if filtered else list(unfiltered)
