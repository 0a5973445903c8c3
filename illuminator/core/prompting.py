"""
Prompt builders.

How to read this file:
1) `SYSTEM_INSTRUCTIONS` + `make_few_shot_messages()` build the question -> SQL prompt
   from a schema context rendered by `render_schema_context()` (schema text +
   optional table descriptions).
2) `make_annotation_messages()` builds the data-aware annotation prompt (schema,
   sample rows, row limit, sampling strategy) that asks for a JSON array.
3) `make_result_description_messages()` asks for a one-sentence description of a
   result set; used only when a benchmark item has no reference rows.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from ..types import ResultSet, SampleSet, SchemaContext, SchemaSnapshot
from .schema import build_schema_summary


SYSTEM_INSTRUCTIONS = """You are a SQL analyst.
Write one SQL SELECT query for the user question.

Rules:
- Output only SQL.
- Output exactly one statement starting with SELECT.
- Use only tables and columns in the provided schema details.
- Use ORDER BY and LIMIT only when the question asks for ranking.
"""


ANNOTATION_INSTRUCTIONS = """You document relational databases so that another model can write SQL against them.
Return ONLY a JSON array, one object per table, shaped like:
[{"table": "<name>", "description": "<purpose>",
  "columns": [{"name": "<column>", "description": "<meaning>", "business_context": "<how it is used>"}]}]
Describe every table listed. Do not invent tables or columns.
"""


DESCRIBE_INSTRUCTIONS = """You summarize SQL query results.
Answer with one short sentence describing what the result contains. No SQL, no markdown.
"""


def make_few_shot_messages(
    *,
    schema: str,
    exemplars: list[dict],
    nlq: str,
    table_descriptions: str | None = None,
) -> list[dict[str, str]]:
    """
    Build a schema-grounded few-shot prompt.

    The structure is fixed across variants so the only thing that changes between
    raw / hypothesis / annotated runs is the table-description block.
    """
    context_parts = ["Schema Details:\n" + schema]
    if table_descriptions:
        context_parts.append("Table Descriptions:\n" + table_descriptions)

    msgs: list[dict[str, str]] = [
        {"role": "system", "content": SYSTEM_INSTRUCTIONS},
        {"role": "user", "content": "\n\n".join(context_parts)},
    ]
    for ex in exemplars:
        msgs.append({"role": "user", "content": f"Example Question: {ex['nlq']}"})
        msgs.append({"role": "assistant", "content": ex["sql"].rstrip(";") + ";"})
    msgs.append({"role": "user", "content": f"Natural Language Question: {nlq}"})
    return msgs


def render_schema_context(context: SchemaContext) -> tuple[str, str | None]:
    """
    Split a schema context into (schema text, table descriptions).

    Raw contexts carry empty descriptions, so they render to schema text only and
    the prompt gets no "Table Descriptions" block.
    """
    schema_lines = [
        f"{t.table_name}({', '.join(f'{c.name} {c.type}' for c in t.columns)})" for t in context.tables
    ]
    desc_lines: list[str] = []
    for t in context.tables:
        col_lines = []
        for c in t.columns:
            text = c.description
            if c.business_context:
                text = f"{text} [{c.business_context}]" if text else f"[{c.business_context}]"
            if text:
                col_lines.append(f"  - {c.name}: {text}")
        if t.description or col_lines:
            desc_lines.append(f"{t.table_name}: {t.description}".rstrip())
            desc_lines.extend(col_lines)
    return "\n".join(schema_lines), ("\n".join(desc_lines) or None)


def _sample_lines(rows: ResultSet, n: int = 2) -> list[str]:
    return [json.dumps(r, default=str) for r in rows[:n]]


def make_annotation_messages(
    *,
    snapshot: SchemaSnapshot,
    samples: SampleSet,
    row_limit: int,
    custom_prompt: str = "",
    sampling_strategy: Optional[str] = None,
) -> list[dict[str, str]]:
    parts: list[str] = []
    if custom_prompt.strip():
        parts.append(custom_prompt.strip())

    parts.append(
        f"Database: {snapshot.dataset_id}\n"
        f"Total Tables: {len(snapshot.tables)}\n"
        f"Sample Size: {row_limit} rows per table"
        + (f"\nSampling Strategy: {sampling_strategy}" if sampling_strategy else "")
    )
    parts.append("Schema:\n" + build_schema_summary(snapshot, with_types=True))

    sample_chunks: list[str] = []
    for table in snapshot.tables:
        sample = samples.get(table.name)
        if sample is None:
            continue
        count = sample.approximate_row_count if sample.approximate_row_count is not None else "Unknown"
        lines = "\n".join(_sample_lines(sample.rows)) or "(no rows)"
        sample_chunks.append(f"{table.name} (~{count} rows):\n{lines}")
    if sample_chunks:
        parts.append("Sample Data:\n" + "\n\n".join(sample_chunks))

    return [
        {"role": "system", "content": ANNOTATION_INSTRUCTIONS},
        {"role": "user", "content": "\n\n".join(parts)},
    ]


def make_result_description_messages(*, question_text: str, result_set: ResultSet, max_rows: int = 20) -> list[dict[str, Any]]:
    shown = "\n".join(json.dumps(r, default=str) for r in result_set[:max_rows]) or "(empty result)"
    return [
        {"role": "system", "content": DESCRIBE_INSTRUCTIONS},
        {
            "role": "user",
            "content": f"Question: {question_text}\nRows returned: {len(result_set)}\nResult:\n{shown}",
        },
    ]
