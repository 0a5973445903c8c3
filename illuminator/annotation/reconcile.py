"""
Fold human answers into machine hypotheses.

Per table:
- description = hypothesis + table-level free-text answers
- per column: description = hypothesis + free-text answers,
  business_context = the key-role choice when one was given, otherwise
  "part of <table> entity definition"

Yes/no answers confirm a hypothesis and add no text.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import IncompleteAnswersError
from ..types import (
    ColumnAnnotation,
    QuestionType,
    TableAnnotation,
    TableAnswers,
    TableQuestionSet,
    UserAnswers,
    UserQuestion,
)


logger = logging.getLogger(__name__)


def _answered(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def _merge(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def answer_progress(question_set: TableQuestionSet, answers: Optional[TableAnswers]) -> tuple[int, int]:
    """Return (answered, total) for one table; blank answers do not count."""
    total = question_set.total_questions()
    if answers is None:
        return 0, total
    answered = sum(
        1 for i in range(len(question_set.table_level_questions)) if _answered(answers.table_answers.get(i))
    )
    for cq in question_set.column_questions:
        col_answers = answers.column_answers.get(cq.column.column_name, {})
        answered += sum(1 for i in range(len(cq.questions)) if _answered(col_answers.get(i)))
    return answered, total


def is_complete(question_set: TableQuestionSet, answers: Optional[TableAnswers]) -> bool:
    answered, total = answer_progress(question_set, answers)
    return answered == total


def _free_text(questions: list[UserQuestion], by_index: dict[int, str]) -> list[str]:
    return [by_index.get(i, "") for i, q in enumerate(questions) if q.question_type is QuestionType.FREE_TEXT]


def _choices(questions: list[UserQuestion], by_index: dict[int, str]) -> list[str]:
    return [
        by_index.get(i, "").strip()
        for i, q in enumerate(questions)
        if q.question_type is QuestionType.MULTIPLE_CHOICE and _answered(by_index.get(i))
    ]


def reconcile_table(question_set: TableQuestionSet, answers: Optional[TableAnswers]) -> TableAnnotation:
    answers = answers or TableAnswers()
    table = question_set.table_name

    columns: list[ColumnAnnotation] = []
    for cq in question_set.column_questions:
        col_answers = answers.column_answers.get(cq.column.column_name, {})
        choices = _choices(cq.questions, col_answers)
        columns.append(
            ColumnAnnotation(
                name=cq.column.column_name,
                type=cq.column.data_type,
                description=_merge(cq.column.hypothesis_text, *_free_text(cq.questions, col_answers)),
                business_context=f"key role: {', '.join(choices)}" if choices else f"part of {table} entity definition",
            )
        )

    return TableAnnotation(
        table_name=table,
        description=_merge(
            question_set.table_hypothesis,
            *_free_text(question_set.table_level_questions, answers.table_answers),
        ),
        columns=columns,
    )


def reconcile_annotations(
    question_sets: list[TableQuestionSet],
    answers: UserAnswers,
    *,
    strict: bool = True,
) -> list[TableAnnotation]:
    """
    Produce the annotated variant's tables.

    With `strict=True` (default) an incomplete table raises `IncompleteAnswersError`
    before anything is merged. With `strict=False` unanswered questions merge as
    empty strings.
    """
    for qs in question_sets:
        answered, total = answer_progress(qs, answers.get(qs.table_name))
        if answered == total:
            continue
        if strict:
            raise IncompleteAnswersError(qs.table_name, answered, total)
        logger.warning("Reconciling %s with %d/%d answers", qs.table_name, answered, total)

    return [reconcile_table(qs, answers.get(qs.table_name)) for qs in question_sets]
