"""
Name/type heuristics behind the non-model annotation path.

Everything here is deterministic: same schema + same samples -> same text.
"""

from __future__ import annotations

import re
from typing import Any

from ..types import ColumnSchema, ResultSet


MAX_SAMPLE_VALUES = 3
MAX_ENUM_VALUES = 3

_TEXT_TYPE_RE = re.compile(r"(?i)char|text|string|enum|clob")
_NUMERIC_TYPE_RE = re.compile(r"(?i)int|num|dec|float|double|real")
_TEMPORAL_TYPE_RE = re.compile(r"(?i)date|time")


def is_textual(data_type: str) -> bool:
    return bool(_TEXT_TYPE_RE.search(data_type or ""))


def is_numeric(data_type: str) -> bool:
    return bool(_NUMERIC_TYPE_RE.search(data_type or ""))


# ordinary words that happen to contain "id".
NON_KEY_WORDS = frozenset(
    {
        "paid", "unpaid", "valid", "invalid", "validity", "width", "video", "side", "inside", "outside",
        "wide", "guide", "provider", "resident", "residence", "president", "midterm", "middle",
        "holiday", "friday", "idle", "liquid", "humidity", "rapid", "solid", "fluid", "hybrid",
        "kid", "kids", "grid", "widow", "bride", "ride", "rider", "ridership", "bidder", "decided",
    }
)

_NAME_TOKEN_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


def is_identifier_like(column_name: str) -> bool:
    """
    Any column whose name contains "id" (stuid, custid, dealer_id, makeId), unless
    every name token holding "id" is a plain word from `NON_KEY_WORDS`.
    """
    name = column_name or ""
    if "id" not in name.lower():
        return False
    tokens = [t.lower() for t in _NAME_TOKEN_RE.findall(name)]
    holding = [t for t in tokens if "id" in t]
    return not holding or any(t not in NON_KEY_WORDS for t in holding)


def singular(table_name: str) -> str:
    t = table_name.lower()
    if t.endswith("ies") and len(t) > 3:
        return t[:-3] + "y"
    if t.endswith(("ses", "xes", "ches", "shes")):
        return t[:-2]
    if t.endswith("s") and not t.endswith("ss"):
        return t[:-1]
    return t


def natural_key_names(table_name: str) -> set[str]:
    t = table_name.lower()
    return {"id", f"{t}_id", f"{singular(t)}_id", f"{singular(t)}id"}


def references_own_table(column_name: str, table_name: str) -> bool:
    return column_name.lower() in natural_key_names(table_name)


def _as_text(value: Any) -> str:
    return str(value).strip()


def distinct_values(column_name: str, rows: ResultSet) -> list[str]:
    """Distinct non-empty values in insertion order."""
    seen: dict[str, None] = {}
    for row in rows:
        value = row.get(column_name)
        if value is None:
            continue
        text = _as_text(value)
        if text:
            seen.setdefault(text, None)
    return list(seen)


def sample_values(column_name: str, rows: ResultSet) -> list[str]:
    return distinct_values(column_name, rows)[:MAX_SAMPLE_VALUES]


def enum_values(column: ColumnSchema, rows: ResultSet) -> list[str]:
    """Observed values for a categorical-looking text column; [] means free-form."""
    if not is_textual(column.data_type):
        return []
    found = distinct_values(column.name, rows)
    if 0 < len(found) <= MAX_ENUM_VALUES:
        return found
    return []


def column_role_phrase(column_name: str, data_type: str) -> str:
    name = column_name.lower()
    if is_identifier_like(column_name):
        return "unique identifier field"
    if any(tok in name for tok in ("name", "make", "model", "title")):
        return "descriptive name or title field"
    if "email" in name:
        return "contact email address"
    if "status" in name or "state" in name:
        return "status or state indicator"
    if any(tok in name for tok in ("price", "amount", "payment", "cost", "salary")):
        return "monetary value field"
    if "year" in name or _TEMPORAL_TYPE_RE.search(data_type or ""):
        return "year or date field"
    if is_textual(data_type):
        return "text-based descriptive field"
    if is_numeric(data_type):
        return "numeric measurement or count field"
    return "data attribute field"


def column_usage_phrase(column_name: str, data_type: str) -> str:
    role = column_role_phrase(column_name, data_type)
    return {
        "unique identifier field": "Unique identifier used for relationships and data integrity.",
        "descriptive name or title field": "Human-readable name or title field.",
        "contact email address": "Contact email address.",
        "status or state indicator": "Status indicator, typically used for filtering.",
        "monetary value field": "Monetary value used in financial calculations.",
        "year or date field": "Temporal value used for date filtering and grouping.",
        "text-based descriptive field": "Variable-length text for descriptive content.",
        "numeric measurement or count field": "Numeric field used in calculations and aggregates.",
    }.get(role, "Data field contributing to the overall entity representation.")


def column_hypothesis_text(column: ColumnSchema, found_enum: list[str]) -> str:
    sentence = f"{column.name} appears to be a {column_role_phrase(column.name, column.data_type)}"
    if found_enum:
        sentence += f" with observed values: {', '.join(found_enum)}"
    return sentence + "."


def heuristic_column_description(column: ColumnSchema) -> str:
    null_text = "nullable" if column.nullable else "required"
    return f"{column.name} field of type {column.data_type} ({null_text}). {column_usage_phrase(column.name, column.data_type)}"
