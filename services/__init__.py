"""
External collaborators of the calculator.

LLM-backed: dosing parser, package selector, error advisor.
HTTP-backed: RxNorm name normalizer, openFDA NDC catalog.
"""

from .interfaces import DosingParser, DrugNameNormalizer, ErrorAdvisor, PackageCatalog, PackageSelector
from .sig_parser import LLMDosingParser
from .package_selector import LLMPackageSelector
from .error_advisor import LLMErrorAdvisor
from .rxnorm import RxNormClient
from .fda_ndc import FDANDCClient, normalize_ndc, validate_ndc_format

__all__ = [
    "DosingParser",
    "DrugNameNormalizer",
    "ErrorAdvisor",
    "PackageCatalog",
    "PackageSelector",
    "LLMDosingParser",
    "LLMPackageSelector",
    "LLMErrorAdvisor",
    "RxNormClient",
    "FDANDCClient",
    "normalize_ndc",
    "validate_ndc_format",
]
