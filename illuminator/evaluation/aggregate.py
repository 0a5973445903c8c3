"""
Roll verdicts up into the evaluation report.

How to read this file:
1) `variant_accuracy()` counts correct verdicts for one variant (0% when empty).
2) `best_variant()` picks the cheapest variant that got a question right
   (raw before hypothesis before annotated).
3) `improvement_deltas()` subtracts raw accuracy; negative deltas stay negative and
   variants that never ran get None.
4) `build_report()` assembles everything, plus paired statistics vs raw and
   accuracy split by benchmark difficulty.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Optional

from ..types import (
    VARIANT_ORDER,
    BenchmarkQuestion,
    EvaluationReport,
    ImprovementDeltas,
    QuestionResult,
    Variant,
    VariantAccuracy,
    Verdict,
)
from .research_stats import compare_to_baseline, wilson_interval


def accuracy_percent(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return 100.0 * correct / total


def variant_accuracy(variant: Variant, verdicts: Iterable[Verdict]) -> VariantAccuracy:
    verdicts = list(verdicts)
    total = len(verdicts)
    correct = sum(1 for v in verdicts if v.is_correct)
    lo, hi = wilson_interval(correct, total)
    return VariantAccuracy(
        variant=variant,
        total_questions=total,
        correct_count=correct,
        accuracy_percent=accuracy_percent(correct, total),
        ci_low=None if math.isnan(lo) else 100.0 * lo,
        ci_high=None if math.isnan(hi) else 100.0 * hi,
    )


def best_variant(verdicts: Iterable[Verdict]) -> Optional[Variant]:
    correct = {v.variant for v in verdicts if v.is_correct}
    for variant in VARIANT_ORDER:
        if variant in correct:
            return variant
    return None


def improvement_deltas(per_variant: Iterable[VariantAccuracy]) -> ImprovementDeltas:
    """A variant that was never attempted has no delta, not a 0% one."""
    acc = {a.variant: a.accuracy_percent for a in per_variant}

    def over_raw(variant: Variant) -> Optional[float]:
        if Variant.RAW not in acc or variant not in acc:
            return None
        return acc[variant] - acc[Variant.RAW]

    return ImprovementDeltas(
        hypothesis_over_raw=over_raw(Variant.HYPOTHESIS),
        annotated_over_raw=over_raw(Variant.ANNOTATED),
    )


def paired_comparisons(
    question_ids: list[str],
    verdicts_by_variant: Mapping[Variant, list[Verdict]],
) -> dict[str, dict[str, float | int]]:
    raw = verdicts_by_variant.get(Variant.RAW)
    if raw is None:
        return {}
    return {
        f"{variant.value}_vs_raw": compare_to_baseline(question_ids, raw, verdicts_by_variant[variant])
        for variant in (Variant.HYPOTHESIS, Variant.ANNOTATED)
        if variant in verdicts_by_variant
    }


def accuracy_by_difficulty(
    questions: list[BenchmarkQuestion],
    verdicts_by_variant: Mapping[Variant, list[Verdict]],
) -> dict[str, list[VariantAccuracy]]:
    """Per-variant accuracy within each difficulty level, levels in first-seen order."""
    levels: dict[str, set[str]] = {}
    for q in questions:
        levels.setdefault(q.difficulty_level, set()).add(q.id)
    return {
        level: [
            variant_accuracy(variant, [v for v in verdicts_by_variant[variant] if v.question_id in ids])
            for variant in VARIANT_ORDER
            if variant in verdicts_by_variant
        ]
        for level, ids in levels.items()
    }


def build_report(
    dataset_id: str,
    questions: list[BenchmarkQuestion],
    verdicts_by_variant: Mapping[Variant, list[Verdict]],
    *,
    completed_phases: Optional[list[str]] = None,
    cancelled: bool = False,
    aborted_reason: Optional[str] = None,
) -> EvaluationReport:
    attempted = [v for v in VARIANT_ORDER if v in verdicts_by_variant]
    per_variant = [variant_accuracy(v, verdicts_by_variant[v]) for v in attempted]

    by_question: dict[str, list[Verdict]] = {q.id: [] for q in questions}
    for variant in attempted:
        for verdict in verdicts_by_variant[variant]:
            by_question.setdefault(verdict.question_id, []).append(verdict)

    per_question = [
        QuestionResult(question_id=qid, verdicts=verdicts, best_variant=best_variant(verdicts))
        for qid, verdicts in by_question.items()
    ]

    return EvaluationReport(
        dataset_id=dataset_id,
        per_variant=per_variant,
        per_question=per_question,
        improvement_deltas=improvement_deltas(per_variant),
        comparisons=paired_comparisons([q.id for q in questions], verdicts_by_variant),
        per_difficulty=accuracy_by_difficulty(questions, verdicts_by_variant),
        completed_phases=list(completed_phases or []),
        cancelled=cancelled,
        aborted_reason=aborted_reason,
    )
