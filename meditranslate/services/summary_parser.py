"""Parsing of model-written summaries.

Model output is untrusted free text. The expected shape is a single JSON
object, optionally wrapped in a Markdown code fence::

    ```json
    {"symptoms": [...], "diagnoses": [...], "medications": [...],
     "followup_actions": [...], "full_text": "..."}
    ```
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List

from ..schemas import Summary

logger = logging.getLogger(__name__)

SUMMARY_LIST_FIELDS = ("symptoms", "diagnoses", "medications", "followup_actions")
SUMMARY_TEXT_FIELD = "full_text"

_FENCE_PATTERN = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\r?\n?(.*?)\r?\n?[ \t]*```", re.DOTALL)


class SummaryParseError(ValueError):
    """The response could not be read as a summary object."""


def strip_code_fence(text: str) -> str:
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _ensure_str_list(field: str, value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(item).strip() for item in value if item not in (None, "")]
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if value is None:
        return []
    raise SummaryParseError(f"Field '{field}' is not a list of strings.")


def parse_summary(raw: str) -> Summary:
    """Parse a model response into a :class:`Summary`, raising on any defect."""
    try:
        payload = json.loads(strip_code_fence(raw or ""))
    except json.JSONDecodeError as exc:
        raise SummaryParseError(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise SummaryParseError("Response JSON is not an object.")

    missing = [
        field
        for field in (*SUMMARY_LIST_FIELDS, SUMMARY_TEXT_FIELD)
        if field not in payload
    ]
    if missing:
        raise SummaryParseError(f"Response lacks fields: {', '.join(missing)}")

    full_text = payload[SUMMARY_TEXT_FIELD]
    if not isinstance(full_text, str):
        raise SummaryParseError("Field 'full_text' is not a string.")

    lists = {field: _ensure_str_list(field, payload[field]) for field in SUMMARY_LIST_FIELDS}
    return Summary(full_text=full_text.strip(), **lists)


def parse_summary_or_fallback(raw: str) -> Summary:
    """Parse ``raw``; on failure keep the raw text as a narrative-only summary."""
    try:
        return parse_summary(raw)
    except SummaryParseError as exc:
        logger.warning("Summary response could not be parsed, keeping raw text: %s", exc)
        return Summary(full_text=raw or "")
