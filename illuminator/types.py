"""
Records passed between pipeline stages.

How to read this file:
1) Schema side: `SchemaSnapshot` / `TableSchema` / `ColumnSchema` and `TableSample`.
2) Annotation side: `ColumnHypothesis`, `UserQuestion`, `TableQuestionSet`,
   `TableAnswers`, `TableAnnotation`, `SchemaContext`.
3) Evaluation side: `BenchmarkQuestion`, `QueryExecutionOutcome`, `Verdict`,
   `VariantAccuracy`, `QuestionResult`, `EvaluationReport`.

All records are frozen dataclasses with `to_jsonable()` so runs can be written
to JSON without custom encoders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import pandas as pd


ResultSet = list[dict[str, Any]]


class Variant(str, Enum):
    RAW = "raw"
    HYPOTHESIS = "hypothesis"
    ANNOTATED = "annotated"


# cheapest-to-produce first; also the evaluation order.
VARIANT_ORDER: tuple[Variant, ...] = (Variant.RAW, Variant.HYPOTHESIS, Variant.ANNOTATED)


class QuestionType(str, Enum):
    YES_NO = "yes_no"
    MULTIPLE_CHOICE = "multiple_choice"
    FREE_TEXT = "free_text"


class AnnotationMode(str, Enum):
    STANDARD = "standard"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class ColumnSchema:
    name: str
    data_type: str
    nullable: bool

    def to_jsonable(self) -> dict[str, Any]:
        return {"name": self.name, "data_type": self.data_type, "nullable": self.nullable}


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: list[ColumnSchema]

    def to_jsonable(self) -> dict[str, Any]:
        return {"name": self.name, "columns": [c.to_jsonable() for c in self.columns]}


@dataclass(frozen=True)
class SchemaSnapshot:
    dataset_id: str
    tables: list[TableSchema]

    def table(self, name: str) -> Optional[TableSchema]:
        for t in self.tables:
            if t.name == name:
                return t
        return None

    def to_jsonable(self) -> dict[str, Any]:
        return {"dataset_id": self.dataset_id, "tables": [t.to_jsonable() for t in self.tables]}


@dataclass(frozen=True)
class TableSample:
    table_name: str
    rows: ResultSet
    approximate_row_count: Optional[int] = None


SampleSet = dict[str, TableSample]


@dataclass(frozen=True)
class ColumnHypothesis:
    column_name: str
    data_type: str
    sample_values: list[str]
    enum_values_found: list[str]
    hypothesis_text: str

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "column_name": self.column_name,
            "data_type": self.data_type,
            "sample_values": list(self.sample_values),
            "enum_values_found": list(self.enum_values_found),
            "hypothesis": self.hypothesis_text,
        }


@dataclass(frozen=True)
class UserQuestion:
    question_text: str
    question_type: QuestionType
    options: Optional[list[str]] = None

    def __post_init__(self) -> None:
        has_options = bool(self.options)
        if self.question_type is QuestionType.MULTIPLE_CHOICE and not has_options:
            raise ValueError("multiple_choice questions need options")
        if self.question_type is not QuestionType.MULTIPLE_CHOICE and self.options is not None:
            raise ValueError(f"{self.question_type.value} questions take no options")

    def to_jsonable(self) -> dict[str, Any]:
        d: dict[str, Any] = {"question_text": self.question_text, "question_type": self.question_type.value}
        if self.options is not None:
            d["options"] = list(self.options)
        return d


@dataclass(frozen=True)
class ColumnQuestions:
    column: ColumnHypothesis
    questions: list[UserQuestion]


@dataclass(frozen=True)
class TableQuestionSet:
    table_name: str
    table_hypothesis: str
    table_level_questions: list[UserQuestion]
    column_questions: list[ColumnQuestions]
    sampling_info: str = ""

    def total_questions(self) -> int:
        return len(self.table_level_questions) + sum(len(c.questions) for c in self.column_questions)

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "sampling_info": self.sampling_info,
            "table_hypothesis": self.table_hypothesis,
            "table_level_questions": [q.to_jsonable() for q in self.table_level_questions],
            "columns": [
                {**cq.column.to_jsonable(), "questions_for_user": [q.to_jsonable() for q in cq.questions]}
                for cq in self.column_questions
            ],
        }


@dataclass(frozen=True)
class TableAnswers:
    table_answers: dict[int, str] = field(default_factory=dict)
    column_answers: dict[str, dict[int, str]] = field(default_factory=dict)

    @classmethod
    def from_jsonable(cls, data: dict[str, Any]) -> "TableAnswers":
        """Accept `{"table": {"0": "..."}, "columns": {"status": {"0": "..."}}}`."""

        def _by_index(raw: dict[Any, Any]) -> dict[int, str]:
            return {int(k): "" if v is None else str(v) for k, v in (raw or {}).items()}

        return cls(
            table_answers=_by_index(data.get("table", {})),
            column_answers={str(col): _by_index(ans) for col, ans in (data.get("columns") or {}).items()},
        )


UserAnswers = dict[str, TableAnswers]


@dataclass(frozen=True)
class ColumnAnnotation:
    name: str
    type: str
    description: str
    business_context: Optional[str] = None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "business_context": self.business_context,
        }


@dataclass(frozen=True)
class TableAnnotation:
    table_name: str
    description: str
    columns: list[ColumnAnnotation]

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "description": self.description,
            "columns": [c.to_jsonable() for c in self.columns],
        }


@dataclass(frozen=True)
class SchemaContext:
    variant: Variant
    tables: list[TableAnnotation]

    def to_jsonable(self) -> dict[str, Any]:
        return {"variant": self.variant.value, "tables": [t.to_jsonable() for t in self.tables]}


@dataclass(frozen=True)
class BenchmarkQuestion:
    id: str
    natural_language_text: str
    expected_result: Optional[ResultSet] = None
    difficulty_level: str = "unknown"
    expected_description: Optional[str] = None
    gold_query: Optional[str] = None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question": self.natural_language_text,
            "expected_result": self.expected_result,
            "expected_description": self.expected_description,
            "difficulty": self.difficulty_level,
            "gold_query": self.gold_query,
        }


@dataclass(frozen=True)
class QueryExecutionOutcome:
    generated_query_text: str
    result_set: Optional[ResultSet] = None
    execution_error: Optional[str] = None
    result_description: Optional[str] = None
    generation_failed: bool = False

    def __post_init__(self) -> None:
        if (self.result_set is None) == (self.execution_error is None):
            raise ValueError("exactly one of result_set / execution_error must be set")


@dataclass(frozen=True)
class Verdict:
    question_id: str
    variant: Variant
    is_correct: bool
    mismatch_reason: Optional[str] = None
    generated_query_text: str = ""
    # reference-result mode only: rows equal at the same position, and that as a percentage.
    matched_rows: Optional[int] = None
    match_score: Optional[float] = None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "variant": self.variant.value,
            "is_correct": self.is_correct,
            "mismatch_reason": self.mismatch_reason,
            "generated_query": self.generated_query_text,
            "matched_rows": self.matched_rows,
            "match_score": self.match_score,
        }


@dataclass(frozen=True)
class VariantAccuracy:
    variant: Variant
    total_questions: int
    correct_count: int
    accuracy_percent: float
    ci_low: Optional[float] = None
    ci_high: Optional[float] = None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "variant": self.variant.value,
            "total_questions": self.total_questions,
            "correct_count": self.correct_count,
            "accuracy_percent": self.accuracy_percent,
            "ci_low": self.ci_low,
            "ci_high": self.ci_high,
        }


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    verdicts: list[Verdict]
    best_variant: Optional[Variant] = None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "question_id": self.question_id,
            "verdicts": [v.to_jsonable() for v in self.verdicts],
            "best_variant": self.best_variant.value if self.best_variant else None,
        }


@dataclass(frozen=True)
class ImprovementDeltas:
    # None when either side of the subtraction was never evaluated.
    hypothesis_over_raw: Optional[float]
    annotated_over_raw: Optional[float]

    def to_jsonable(self) -> dict[str, Any]:
        return {"hypothesis_over_raw": self.hypothesis_over_raw, "annotated_over_raw": self.annotated_over_raw}


@dataclass(frozen=True)
class EvaluationReport:
    dataset_id: str
    per_variant: list[VariantAccuracy]
    per_question: list[QuestionResult]
    improvement_deltas: ImprovementDeltas
    comparisons: dict[str, dict[str, Any]] = field(default_factory=dict)
    per_difficulty: dict[str, list[VariantAccuracy]] = field(default_factory=dict)
    completed_phases: list[str] = field(default_factory=list)
    cancelled: bool = False
    aborted_reason: Optional[str] = None

    def accuracy_for(self, variant: Variant) -> Optional[VariantAccuracy]:
        for acc in self.per_variant:
            if acc.variant is variant:
                return acc
        return None

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "dataset_id": self.dataset_id,
            "per_variant": [a.to_jsonable() for a in self.per_variant],
            "per_question": [q.to_jsonable() for q in self.per_question],
            "improvement_deltas": self.improvement_deltas.to_jsonable(),
            "comparisons": self.comparisons,
            "per_difficulty": {k: [a.to_jsonable() for a in accs] for k, accs in self.per_difficulty.items()},
            "completed_phases": list(self.completed_phases),
            "cancelled": self.cancelled,
            "aborted_reason": self.aborted_reason,
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per (question, variant) verdict; handy for notebook slicing."""
        rows = []
        for q in self.per_question:
            for v in q.verdicts:
                rows.append(
                    {
                        "question_id": q.question_id,
                        "variant": v.variant.value,
                        "is_correct": v.is_correct,
                        "mismatch_reason": v.mismatch_reason,
                        "best_variant": q.best_variant.value if q.best_variant else None,
                    }
                )
        return pd.DataFrame(rows, columns=["question_id", "variant", "is_correct", "mismatch_reason", "best_variant"])
