"""
Annotation hypothesis generation.

How to read this file:
1) `heuristic_annotations()` is the deterministic name/type path (no model).
2) `model_annotations()` prompts a chat model and parses its JSON; it raises on
   any failure instead of guessing.
3) `generate_annotations()` picks between them: model first when one is given,
   heuristic when there is none or when the model path raised. The returned
   `HypothesisOutput.source` says which branch produced the result.
4) `build_question_sets()` is the interactive mode: one `TableQuestionSet` per
   table for a human to confirm or correct.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from ..config import clamp_row_limit
from ..core.contracts import AnnotationModel
from ..core.prompting import make_annotation_messages
from ..errors import AnnotationParseError, ModelUnavailableError
from ..types import (
    ColumnAnnotation,
    ColumnHypothesis,
    ColumnQuestions,
    QuestionType,
    SampleSet,
    SchemaSnapshot,
    TableAnnotation,
    TableQuestionSet,
    TableSchema,
    UserQuestion,
)
from .heuristics import (
    column_hypothesis_text,
    column_role_phrase,
    enum_values,
    heuristic_column_description,
    is_identifier_like,
    references_own_table,
    sample_values,
    singular,
)


logger = logging.getLogger(__name__)

KEY_ROLE_OPTIONS = ["primary key", "foreign key", "both", "neither"]


@dataclass(frozen=True)
class HypothesisOutput:
    annotations: list[TableAnnotation]
    source: str
    fallback_reason: Optional[str] = None


def _rows_for(samples: SampleSet, table_name: str) -> list[dict[str, Any]]:
    sample = samples.get(table_name)
    return list(sample.rows) if sample is not None else []


def heuristic_business_context(table_name: str) -> str:
    return f"Used in queries against the {table_name} table"


def heuristic_table_description(table: TableSchema, samples: SampleSet) -> str:
    sample = samples.get(table.name)
    count = sample.approximate_row_count if sample is not None else None
    approx = f"approximately {count}" if count is not None else "an unknown number of"
    return f"{table.name} contains {len(table.columns)} columns with {approx} records."


def heuristic_annotations(snapshot: SchemaSnapshot, samples: SampleSet) -> list[TableAnnotation]:
    return [
        TableAnnotation(
            table_name=table.name,
            description=heuristic_table_description(table, samples),
            columns=[
                ColumnAnnotation(
                    name=col.name,
                    type=col.data_type,
                    description=heuristic_column_description(col),
                    business_context=heuristic_business_context(table.name),
                )
                for col in table.columns
            ],
        )
        for table in snapshot.tables
    ]


def _extract_json_array(text: str) -> Any:
    t = (text or "").strip()
    t = re.sub(r"```(?:json)?(.*?)```", r"\1", t, flags=re.DOTALL).strip()
    start, end = t.find("["), t.rfind("]")
    if start == -1 or end <= start:
        raise AnnotationParseError("no JSON array in model response")
    try:
        return json.loads(t[start : end + 1])
    except json.JSONDecodeError as e:
        raise AnnotationParseError(f"invalid JSON in model response: {e}") from e


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_annotation_response(text: str, snapshot: SchemaSnapshot) -> list[TableAnnotation]:
    """
    Map a model's JSON answer onto the snapshot.

    Strict on tables (a missing or undescribed table is a parse error), lenient on
    columns (a missing column keeps its heuristic description).
    """
    data = _extract_json_array(text)
    if not isinstance(data, list):
        raise AnnotationParseError("model response is not a JSON array")

    by_table: dict[str, dict[str, Any]] = {}
    for item in data:
        if not isinstance(item, dict):
            raise AnnotationParseError("table entry is not an object")
        name = _text(item.get("table") or item.get("table_name"))
        if name:
            by_table[name.lower()] = item

    out: list[TableAnnotation] = []
    for table in snapshot.tables:
        item = by_table.get(table.name.lower())
        if item is None:
            raise AnnotationParseError(f"model response is missing table {table.name}")
        description = _text(item.get("description"))
        if not description:
            raise AnnotationParseError(f"model response has no description for table {table.name}")

        cols_raw = item.get("columns") or []
        if not isinstance(cols_raw, list):
            raise AnnotationParseError(f"columns for {table.name} is not a list")
        by_col = {_text(c.get("name")).lower(): c for c in cols_raw if isinstance(c, dict)}

        columns: list[ColumnAnnotation] = []
        for col in table.columns:
            entry = by_col.get(col.name.lower(), {})
            columns.append(
                ColumnAnnotation(
                    name=col.name,
                    type=col.data_type,
                    description=_text(entry.get("description")) or heuristic_column_description(col),
                    business_context=_text(entry.get("business_context") or entry.get("businessContext"))
                    or heuristic_business_context(table.name),
                )
            )
        out.append(TableAnnotation(table_name=table.name, description=description, columns=columns))
    return out


def model_annotations(
    snapshot: SchemaSnapshot,
    samples: SampleSet,
    model: AnnotationModel,
    *,
    row_limit: int,
    custom_prompt: str = "",
    sampling_strategy: Optional[str] = None,
) -> list[TableAnnotation]:
    messages = make_annotation_messages(
        snapshot=snapshot,
        samples=samples,
        row_limit=row_limit,
        custom_prompt=custom_prompt,
        sampling_strategy=sampling_strategy,
    )
    return parse_annotation_response(model.complete(messages), snapshot)


def generate_annotations(
    snapshot: SchemaSnapshot,
    samples: SampleSet,
    *,
    model: Optional[AnnotationModel] = None,
    row_limit: Optional[int] = None,
    custom_prompt: str = "",
    sampling_strategy: Optional[str] = None,
) -> HypothesisOutput:
    if model is None:
        return HypothesisOutput(heuristic_annotations(snapshot, samples), source="heuristic")

    try:
        annotations = model_annotations(
            snapshot,
            samples,
            model,
            row_limit=clamp_row_limit(row_limit),
            custom_prompt=custom_prompt,
            sampling_strategy=sampling_strategy,
        )
    except (ModelUnavailableError, AnnotationParseError) as e:
        logger.warning("Annotation model path failed for %s, using heuristics: %s", snapshot.dataset_id, e)
        return HypothesisOutput(heuristic_annotations(snapshot, samples), source="heuristic", fallback_reason=str(e))
    return HypothesisOutput(annotations, source="model")


def table_hypothesis_text(table: TableSchema) -> str:
    has_ids = any(is_identifier_like(c.name) for c in table.columns)
    detail = " including identifiers and descriptive fields" if has_ids else ""
    return (
        f"The {table.name} table appears to store {singular(table.name)} information "
        f"with {len(table.columns)} attributes{detail}."
    )


def column_questions(table: TableSchema, hyp: ColumnHypothesis) -> list[UserQuestion]:
    name = hyp.column_name
    questions: list[UserQuestion] = []
    if hyp.enum_values_found:
        questions.append(
            UserQuestion(
                question_text=f"Please define each of these values of {name}: {', '.join(hyp.enum_values_found)}",
                question_type=QuestionType.FREE_TEXT,
            )
        )
    else:
        role = column_role_phrase(name, hyp.data_type)
        questions.append(
            UserQuestion(
                question_text=f"Is my understanding of {name} as a {role} correct?",
                question_type=QuestionType.YES_NO,
            )
        )
        if not is_identifier_like(name):
            questions.append(
                UserQuestion(
                    question_text=f"Are there constraints or format rules for {name} (units, ranges, patterns)?",
                    question_type=QuestionType.FREE_TEXT,
                )
            )

    if is_identifier_like(name):
        questions.append(
            UserQuestion(
                question_text=f"What key role does {name} play in {table.name}?",
                question_type=QuestionType.MULTIPLE_CHOICE,
                options=list(KEY_ROLE_OPTIONS),
            )
        )
        if not references_own_table(name, table.name):
            questions.append(
                UserQuestion(
                    question_text=f"Which table or relationship does {name} reference?",
                    question_type=QuestionType.FREE_TEXT,
                )
            )
    return questions


def build_question_sets(
    snapshot: SchemaSnapshot,
    samples: SampleSet,
    *,
    row_limit: Optional[int] = None,
    sampling_strategy: Optional[str] = None,
) -> list[TableQuestionSet]:
    sampling_info = sampling_strategy or f"Sample of {clamp_row_limit(row_limit)} rows from each table"
    out: list[TableQuestionSet] = []
    for table in snapshot.tables:
        rows = _rows_for(samples, table.name)
        per_column: list[ColumnQuestions] = []
        for col in table.columns:
            found = enum_values(col, rows)
            hyp = ColumnHypothesis(
                column_name=col.name,
                data_type=col.data_type,
                sample_values=sample_values(col.name, rows),
                enum_values_found=found,
                hypothesis_text=column_hypothesis_text(col, found),
            )
            per_column.append(ColumnQuestions(column=hyp, questions=column_questions(table, hyp)))

        out.append(
            TableQuestionSet(
                table_name=table.name,
                table_hypothesis=table_hypothesis_text(table),
                table_level_questions=[
                    UserQuestion(
                        question_text=f"Describe what one row of {table.name} represents, correcting the hypothesis if needed.",
                        question_type=QuestionType.FREE_TEXT,
                    )
                ],
                column_questions=per_column,
                sampling_info=sampling_info,
            )
        )
    return out
