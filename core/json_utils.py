"""JSON helpers for LLM output."""

import json
from typing import Any, Dict


def clean_llm_json(raw: str) -> str:
    raw = raw.strip()
    # Remove code block markers
    if raw.startswith('```json'):
        raw = raw[7:]
    if raw.startswith('```'):
        raw = raw[3:]
    if raw.endswith('```'):
        raw = raw[:-3]
    raw = raw.strip()
    # Drop any preamble before the first opening brace
    first_brace = raw.find('{')
    if first_brace > 0:
        raw = raw[first_brace:]
    # Remove anything after the last closing brace
    last_brace = raw.rfind('}')
    if last_brace != -1:
        raw = raw[:last_brace + 1]
    return raw


def parse_llm_json(raw: str) -> Dict[str, Any]:
    """
    Parse an LLM response that should contain a single JSON object.

    Raises:
        ValueError: if the text is not JSON or not an object.
    """
    data = json.loads(clean_llm_json(raw))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
