"""
Per-question correctness.

Two modes:
1) Reference-result mode (the question has expected rows): row counts must match,
   then row i of the actual result must equal row i of the expected result as a
   column->value mapping. This is order-sensitive on purpose; a reordered but
   otherwise identical result is scored incorrect.
2) Description mode (no expected rows, only `expected_description`): the
   generated one-sentence description of the result must equal the expected
   description after whitespace trimming. This is a weak, description-level
   proxy for correctness; treat its numbers accordingly.
"""

from __future__ import annotations

import json
import math
from collections import Counter
from decimal import Decimal
from typing import Any, Optional

from ..types import BenchmarkQuestion, QueryExecutionOutcome, ResultSet, Variant, Verdict


def _coerce_cell(x: Any) -> Any:
    if x is None:
        return None
    if isinstance(x, Decimal):
        x = float(x)
    if isinstance(x, float):
        if math.isnan(x):
            return "NaN"
        if x.is_integer():
            return int(x)
        return round(x, 10)
    return x


def normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    return {str(k): _coerce_cell(v) for k, v in row.items()}


def serialize_row(row: dict[str, Any]) -> str:
    return json.dumps(row, default=str, sort_keys=True)


def compare_result_sets(
    actual: ResultSet,
    expected: ResultSet,
    *,
    ordered: bool = True,
) -> tuple[bool, Optional[str]]:
    """Return (is_match, mismatch_reason)."""
    if len(actual) != len(expected):
        return False, f"row count mismatch: expected {len(expected)}, got {len(actual)}"

    actual_n = [normalize_row(r) for r in actual]
    expected_n = [normalize_row(r) for r in expected]

    if not ordered:
        a = Counter(serialize_row(r) for r in actual_n)
        e = Counter(serialize_row(r) for r in expected_n)
        if a == e:
            return True, None
        missing = sorted((e - a).elements())
        return False, f"rows differ (unordered): first expected row not found {missing[0] if missing else '?'}"

    for i, (a_row, e_row) in enumerate(zip(actual_n, expected_n)):
        if a_row != e_row:
            return False, f"row {i} mismatch: expected {serialize_row(e_row)}, got {serialize_row(a_row)}"
    return True, None


def matching_rows(actual: ResultSet, expected: ResultSet) -> tuple[int, float]:
    """
    Partial credit next to the binary verdict: (rows equal at the same index,
    percentage of rows matched rounded to 2 places). Differing row counts and
    empty results match nothing.
    """
    if len(actual) != len(expected) or not actual:
        return 0, 0.0
    matched = sum(1 for a, e in zip(actual, expected) if normalize_row(a) == normalize_row(e))
    return matched, round(100.0 * matched / len(actual), 2)


def compare_descriptions(actual: Optional[str], expected: str) -> tuple[bool, Optional[str]]:
    if actual is None:
        return False, "no result description available"
    if actual.strip() == expected.strip():
        return True, None
    return False, f"description mismatch: expected {expected.strip()!r}, got {actual.strip()!r}"


def failure_reason(outcome: QueryExecutionOutcome) -> str:
    if outcome.generation_failed:
        return f"generation failed: {outcome.execution_error}"
    return f"execution error: {outcome.execution_error}"


def score_outcome(question: BenchmarkQuestion, variant: Variant, outcome: QueryExecutionOutcome) -> Verdict:
    def verdict(ok: bool, reason: Optional[str], matched: Optional[int] = None, score: Optional[float] = None) -> Verdict:
        return Verdict(
            question_id=question.id,
            variant=variant,
            is_correct=ok,
            mismatch_reason=reason,
            generated_query_text=outcome.generated_query_text,
            matched_rows=matched,
            match_score=score,
        )

    if outcome.execution_error is not None:
        return verdict(False, failure_reason(outcome))

    if question.expected_result is not None:
        actual = outcome.result_set or []
        ok, reason = compare_result_sets(actual, question.expected_result)
        matched, score = matching_rows(actual, question.expected_result)
        return verdict(ok, reason, matched, score)

    if question.expected_description is not None:
        ok, reason = compare_descriptions(outcome.result_description, question.expected_description)
        return verdict(ok, reason)

    return verdict(False, "no reference result or description for this question")


def failed_verdict(question: BenchmarkQuestion, variant: Variant, reason: str, query_text: str = "") -> Verdict:
    return Verdict(
        question_id=question.id,
        variant=variant,
        is_correct=False,
        mismatch_reason=reason,
        generated_query_text=query_text,
    )
