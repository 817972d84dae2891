"""Review Sanitizer — post-processing of oracle output before validation.

Fixes common LLM output errors so that pydantic validation only fails on
replies that are genuinely off-shape:
  1. Markdown code fences around the JSON body
  2. camelCase keys (agendaId, metricName, ...) instead of snake_case
  3. Array wrapped in an object ({"items": [...]}, {"indicators": [...]})
  4. A single object where an array was declared
  5. null for free-text fields -> ""
  6. Missing free-text fields -> ""
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from typing import Any

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_DIGITS_RE = re.compile(r"\d+")


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", key).lower()


def _snake_keys(row: dict) -> dict:
    return {to_snake_case(k) if isinstance(k, str) else k: v for k, v in row.items()}


def _unwrap_array(data: Any) -> Any:
    """Return the row list out of the shapes models wrap arrays in."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        list_values = [v for v in data.values() if isinstance(v, list)]
        if len(data) == 1 and len(list_values) == 1:
            return list_values[0]
        # A lone row object where an array was declared
        return [data]
    return data


def sanitize_rows(data: Any, text_fields: Iterable[str] = ()) -> Any:
    """Normalize an oracle reply that should be an array of row objects.

    Non-dict items are left in place so validation reports them; anything
    that is not list-like at all is returned unchanged.
    """
    rows = _unwrap_array(data)
    if not isinstance(rows, list):
        return rows

    text_fields = tuple(text_fields)
    cleaned: list[Any] = []
    for row in rows:
        if not isinstance(row, dict):
            cleaned.append(row)
            continue
        row = _snake_keys(row)
        for name in text_fields:
            if row.get(name) is None:
                row[name] = ""
        cleaned.append(row)
    return cleaned


def normalize_ordinal(value: str | None) -> str | None:
    """Reduce an agenda label to its ordinal as plain ASCII digits.

    '第３号議案' -> '3', 'Proposal 02' -> '2', '1' -> '1'. Returns None when
    the label carries no digits.
    """
    if not value:
        return None
    match = _DIGITS_RE.search(unicodedata.normalize("NFKC", value))
    if not match:
        return None
    return str(int(match.group()))
