"""
Benchmark question loading.

Items are plain JSON objects. Accepted keys (first match wins):
- id: "id", "question_id" (falls back to the item's position)
- text: "question", "nlq", "natural_language_text"
- expected rows: "expected_result" (list of column->value objects)
- expected description: "expected_description"
- difficulty: "difficulty", "difficulty_level"
- gold query: "sql", "gold_query"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable

from ..types import BenchmarkQuestion


def _first(item: dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if item.get(k) is not None:
            return item[k]
    return None


def question_from_dict(item: dict[str, Any], position: int) -> BenchmarkQuestion:
    text = _first(item, "question", "nlq", "natural_language_text")
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"Benchmark item {position} has no question text")

    expected = item.get("expected_result")
    if expected is not None:
        if not isinstance(expected, list) or not all(isinstance(r, dict) for r in expected):
            raise ValueError(f"Benchmark item {position}: expected_result must be a list of objects")
        expected = [dict(r) for r in expected]

    qid = _first(item, "id", "question_id")
    return BenchmarkQuestion(
        id=str(qid) if qid is not None else f"q{position}",
        natural_language_text=text.strip(),
        expected_result=expected,
        difficulty_level=str(_first(item, "difficulty", "difficulty_level") or "unknown"),
        expected_description=item.get("expected_description"),
        gold_query=_first(item, "sql", "gold_query"),
    )


def parse_benchmark(items: Iterable[dict[str, Any] | BenchmarkQuestion]) -> list[BenchmarkQuestion]:
    out: list[BenchmarkQuestion] = []
    for i, item in enumerate(items):
        out.append(item if isinstance(item, BenchmarkQuestion) else question_from_dict(item, i))

    seen: set[str] = set()
    for q in out:
        if q.id in seen:
            raise ValueError(f"Duplicate benchmark question id: {q.id}")
        seen.add(q.id)
    return out


def load_benchmark(path: str | Path) -> list[BenchmarkQuestion]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Expected list in benchmark file, got {type(data)}")
    return parse_benchmark(data)
