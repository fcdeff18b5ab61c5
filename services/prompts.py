"""
LLM Prompts for the dispense calculator.

System prompts and message builders for the dosing-text parser, the package
selector and the error advisor. Each builder returns a chat message list
(system + user) ready for ``LLMClient.achat_json``.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from calculator.schema import CatalogPackage, DosingRecord, PrescriptionInput

Messages = List[Dict[str, str]]

SIG_PARSER_SYSTEM_PROMPT = """You are an expert pharmacist specializing in parsing prescription SIG (Signa) instructions.

Your task is to extract structured data from natural language prescription instructions.

Output a JSON object with the following structure:
{
  "dose": number (amount per administration),
  "unit": string (one of: tablet, capsule, mL, unit, mg, g, patch, spray, puff, drop, suppository, application),
  "frequency": object (see frequency patterns below),
  "duration": number | null (days, only if the SIG states one),
  "route": string | null (oral, topical, subcutaneous, intramuscular, intravenous, rectal, ophthalmic, otic, nasal, transdermal, inhalation),
  "specialInstructions": string[] | null (e.g., ["with food", "at bedtime"]),
  "doseRange": {"min": number, "max": number} | null (when the SIG gives a dose range such as "1-2 tablets"),
  "doseSchedule": [{"dose": number, "occurrencesPerDay": number, "label": string}] | null (variable-dose regimens where different doses are taken at different times),
  "confidence": number (0-1, your confidence in this parsing),
  "reasoning": string (explain your parsing decisions)
}

Frequency patterns (discriminated union by "type"):
1. {"type": "times_per_day", "value": number} - e.g., "twice daily" = value: 2
2. {"type": "times_per_period", "value": number, "period": "hour"|"day"|"week"} - e.g., "every 4 hours" = value: 4, period: "hour"
3. {"type": "specific_times", "times": string[]} - e.g., ["morning", "evening"]
4. {"type": "as_needed", "maxPerDay": number | null} - for PRN instructions

Handle ambiguity with lower confidence scores. If critical information is missing or unclear, use your best judgment but flag it in the reasoning."""

PACKAGE_SELECTOR_SYSTEM_PROMPT = """You are an expert pharmacist selecting optimal medication packages from available NDC options.

Your task is to select the best package(s) to fulfill a prescription while minimizing waste and following pharmacy best practices.

Selection criteria (in priority order):
1. Only use ACTIVE NDCs (filter out inactive/discontinued)
2. Match dosage form to prescription (prefer matching form)
3. Never underfill: total units must cover the quantity needed
4. Minimize waste (closest to needed quantity)
5. Fewest packages (prefer larger packages over many small ones)

Output a JSON object:
{
  "selectedPackages": [
    {
      "ndc": string (11-digit NDC exactly as listed),
      "quantity": integer (how many of this package, at least 1),
      "reasoning": string (why this package)
    }
  ],
  "warnings": [
    {
      "type": string (inactive_ndc, discontinued_ndc, dosage_form_mismatch, overfill, underfill, missing_package_size),
      "severity": "info" | "warning" | "error",
      "message": string,
      "suggestion": string | null
    }
  ],
  "overallReasoning": string (explain your selection strategy)
}

If significant overfill (>10%), create a warning. Prefer combinations that minimize waste."""

ERROR_ADVISOR_SYSTEM_PROMPT = """You are a helpful pharmacy assistant explaining errors and suggesting solutions to pharmacists.

Your task is to provide clear, actionable guidance when something goes wrong during prescription processing.

Output a JSON object:
{
  "explanation": string (what went wrong in plain language),
  "suggestions": string[] (specific actionable next steps),
  "alternatives": string[] | null (alternative drugs, strengths or package options if any)
}

Be professional, concise, and helpful. Focus on solutions, not blame."""

# Few-shot examples for SIG parsing
SIG_EXAMPLES: List[Dict[str, Any]] = [
    {
        "input": "Take 1 tablet by mouth twice daily",
        "output": {
            "dose": 1,
            "unit": "tablet",
            "frequency": {"type": "times_per_day", "value": 2},
            "route": "oral",
            "confidence": 1.0,
            "reasoning": "Clear instruction: 1 tablet, twice per day, oral route",
        },
    },
    {
        "input": "Inject 10 units subcutaneously before meals three times daily and 15 units at bedtime",
        "output": {
            "dose": 10,
            "unit": "unit",
            "frequency": {"type": "times_per_day", "value": 4},
            "route": "subcutaneous",
            "doseSchedule": [
                {"dose": 10, "occurrencesPerDay": 3, "label": "before meals"},
                {"dose": 15, "occurrencesPerDay": 1, "label": "at bedtime"},
            ],
            "confidence": 0.9,
            "reasoning": "Variable insulin regimen: 10 units before each of 3 meals plus 15 units at bedtime",
        },
    },
    {
        "input": "Take 1-2 tablets every 4-6 hours as needed for pain",
        "output": {
            "dose": 1,
            "unit": "tablet",
            "frequency": {"type": "as_needed", "maxPerDay": 6},
            "doseRange": {"min": 1, "max": 2},
            "specialInstructions": ["for pain"],
            "confidence": 0.7,
            "reasoning": "PRN with variable dose 1-2 tablets; every 4 hours at most gives 6 times per day",
        },
    },
]


def _format_examples() -> str:
    lines = ["Examples:"]
    for example in SIG_EXAMPLES:
        lines.append(f'SIG: "{example["input"]}"')
        lines.append(json.dumps(example["output"]))
    return "\n".join(lines)


def build_sig_prompt(sig: str, days_supply: int) -> Messages:
    """Messages for parsing one SIG."""
    return [
        {"role": "system", "content": f"{SIG_PARSER_SYSTEM_PROMPT}\n\n{_format_examples()}"},
        {
            "role": "user",
            "content": (
                "Parse this SIG instruction:\n\n"
                f'SIG: "{sig}"\n'
                f"Days Supply: {days_supply}\n\n"
                "If duration is not specified in the SIG, leave it null.\n\n"
                "Return the structured JSON output."
            ),
        },
    ]


def build_package_selection_prompt(
    candidates: Sequence[CatalogPackage],
    quantity_needed: float,
    unit: str,
    days_supply: Optional[int] = None,
    dosing: Optional[DosingRecord] = None,
    prescription_context: Optional[str] = None,
) -> Messages:
    """Messages for choosing packages out of *candidates*."""
    package_lines = "\n".join(
        f"- NDC: {pkg.ndc}, Size: {pkg.package_size:g} {unit}, Form: {pkg.dosage_form.value}, "
        f"Strength: {pkg.strength}, Status: {pkg.status.value}, Mfr: {pkg.manufacturer}"
        for pkg in candidates
    )

    parts = [
        "Select optimal package(s) for this prescription:",
        "",
        f"Quantity Needed: {quantity_needed:g} {unit}",
    ]
    if days_supply is not None:
        parts.append(f"Days Supply: {days_supply}")
    if dosing is not None and dosing.route is not None:
        parts.append(f"Route: {dosing.route.value}")
    if prescription_context:
        parts.append(f"Context: {prescription_context}")
    parts += [
        "",
        "Available NDC Packages:",
        package_lines,
        "",
        "Return the JSON output with selected packages, warnings, and reasoning.",
    ]
    return [
        {"role": "system", "content": PACKAGE_SELECTOR_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(parts)},
    ]


def build_error_advice_prompt(
    error_code: str,
    error_message: str,
    prescription: PrescriptionInput,
    partial: Optional[Dict[str, Any]] = None,
) -> Messages:
    """Messages asking for an explanation of a failed calculation."""
    parts = [
        "An error occurred while processing this prescription:",
        "",
        f"Error Type: {error_code}",
        f"Error Message: {error_message}",
        "",
        "Original Input:",
        f"- Drug: {prescription.drug_name}",
    ]
    if prescription.ndc:
        parts.append(f"- NDC: {prescription.ndc}")
    parts += [
        f"- SIG: {prescription.sig}",
        f"- Days Supply: {prescription.days_supply}",
    ]
    if partial:
        parts += ["", "Partial Data Collected:", json.dumps(partial, indent=2)]
    parts += ["", "Provide helpful guidance as JSON with explanation, suggestions, and alternatives."]
    return [
        {"role": "system", "content": ERROR_ADVISOR_SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(parts)},
    ]
