import math

from illuminator.evaluation.aggregate import (
    best_variant,
    build_report,
    improvement_deltas,
    variant_accuracy,
)
from illuminator.types import BenchmarkQuestion, Variant, VariantAccuracy, Verdict


def _v(qid, variant, ok):
    return Verdict(question_id=qid, variant=variant, is_correct=ok, mismatch_reason=None if ok else "x")


def test_empty_benchmark_gives_zero_accuracy_not_nan():
    report = build_report("car_1", [], {v: [] for v in Variant})

    assert [a.variant for a in report.per_variant] == [Variant.RAW, Variant.HYPOTHESIS, Variant.ANNOTATED]
    for acc in report.per_variant:
        assert acc.total_questions == 0
        assert acc.correct_count == 0
        assert acc.accuracy_percent == 0.0
        assert not math.isnan(acc.accuracy_percent)
        assert acc.ci_low is None and acc.ci_high is None
    assert report.improvement_deltas.annotated_over_raw == 0.0


def test_accuracy_bounds_hold():
    acc = variant_accuracy(Variant.RAW, [_v("a", Variant.RAW, True), _v("b", Variant.RAW, False), _v("c", Variant.RAW, True)])
    assert acc.correct_count <= acc.total_questions
    assert 0.0 <= acc.accuracy_percent <= 100.0
    assert round(acc.accuracy_percent, 2) == 66.67
    assert 0.0 <= acc.ci_low <= acc.accuracy_percent <= acc.ci_high <= 100.0


def test_best_variant_prefers_cheapest_correct_variant():
    verdicts = [_v("q", Variant.ANNOTATED, True), _v("q", Variant.HYPOTHESIS, True), _v("q", Variant.RAW, False)]
    assert best_variant(verdicts) is Variant.HYPOTHESIS
    assert best_variant([_v("q", Variant.RAW, False)]) is None


def test_negative_deltas_are_kept():
    deltas = improvement_deltas(
        [
            VariantAccuracy(Variant.RAW, 4, 3, 75.0),
            VariantAccuracy(Variant.HYPOTHESIS, 4, 1, 25.0),
            VariantAccuracy(Variant.ANNOTATED, 4, 4, 100.0),
        ]
    )
    assert deltas.hypothesis_over_raw == -50.0
    assert deltas.annotated_over_raw == 25.0


def test_report_keeps_zero_accuracy_variant_and_paired_stats():
    questions = [BenchmarkQuestion(id=f"q{i}", natural_language_text="x") for i in range(3)]
    verdicts = {
        Variant.RAW: [_v(q.id, Variant.RAW, False) for q in questions],
        Variant.HYPOTHESIS: [_v(q.id, Variant.HYPOTHESIS, False) for q in questions],
        Variant.ANNOTATED: [_v(q.id, Variant.ANNOTATED, True) for q in questions],
    }

    report = build_report("car_1", questions, verdicts, completed_phases=["connect"])

    assert report.accuracy_for(Variant.RAW).accuracy_percent == 0.0
    assert report.accuracy_for(Variant.ANNOTATED).accuracy_percent == 100.0
    assert all(r.best_variant is Variant.ANNOTATED for r in report.per_question)
    cmp = report.comparisons["annotated_vs_raw"]
    assert (cmp["n"], cmp["improved"], cmp["regressed"]) == (3, 3, 0)
    assert report.comparisons["hypothesis_vs_raw"]["mcnemar_p"] == 1.0


def test_report_frame_has_one_row_per_verdict():
    questions = [BenchmarkQuestion(id="q1", natural_language_text="x")]
    report = build_report("car_1", questions, {Variant.RAW: [_v("q1", Variant.RAW, True)]})

    df = report.to_frame()

    assert list(df.columns) == ["question_id", "variant", "is_correct", "mismatch_reason", "best_variant"]
    assert df.iloc[0]["variant"] == "raw"
    assert report.accuracy_for(Variant.ANNOTATED) is None


def test_cancelled_run_reports_no_delta_for_variants_that_never_ran():
    questions = [BenchmarkQuestion(id="q1", natural_language_text="x"), BenchmarkQuestion(id="q2", natural_language_text="y")]
    verdicts = {Variant.RAW: [_v("q1", Variant.RAW, True), _v("q2", Variant.RAW, True)]}

    report = build_report("car_1", questions, verdicts, cancelled=True)

    assert [a.variant for a in report.per_variant] == [Variant.RAW]
    assert report.accuracy_for(Variant.RAW).accuracy_percent == 100.0
    assert report.improvement_deltas.hypothesis_over_raw is None
    assert report.improvement_deltas.annotated_over_raw is None
    assert report.to_jsonable()["improvement_deltas"] == {"hypothesis_over_raw": None, "annotated_over_raw": None}


def test_delta_needs_both_sides():
    deltas = improvement_deltas([VariantAccuracy(Variant.RAW, 2, 1, 50.0), VariantAccuracy(Variant.HYPOTHESIS, 2, 2, 100.0)])
    assert deltas.hypothesis_over_raw == 50.0
    assert deltas.annotated_over_raw is None
    assert improvement_deltas([VariantAccuracy(Variant.ANNOTATED, 2, 2, 100.0)]).annotated_over_raw is None


def test_accuracy_is_split_by_difficulty():
    questions = [
        BenchmarkQuestion(id="q1", natural_language_text="x", difficulty_level="easy"),
        BenchmarkQuestion(id="q2", natural_language_text="y", difficulty_level="hard"),
        BenchmarkQuestion(id="q3", natural_language_text="z", difficulty_level="easy"),
    ]
    verdicts = {
        Variant.RAW: [_v("q1", Variant.RAW, True), _v("q2", Variant.RAW, False), _v("q3", Variant.RAW, False)],
        Variant.ANNOTATED: [_v("q1", Variant.ANNOTATED, True), _v("q2", Variant.ANNOTATED, True), _v("q3", Variant.ANNOTATED, True)],
    }

    report = build_report("car_1", questions, verdicts)

    assert list(report.per_difficulty) == ["easy", "hard"]
    easy = {a.variant: a for a in report.per_difficulty["easy"]}
    assert (easy[Variant.RAW].total_questions, easy[Variant.RAW].accuracy_percent) == (2, 50.0)
    assert easy[Variant.ANNOTATED].accuracy_percent == 100.0
    assert Variant.HYPOTHESIS not in easy
    hard = report.to_jsonable()["per_difficulty"]["hard"]
    assert [(a["variant"], a["correct_count"]) for a in hard] == [("raw", 0), ("annotated", 1)]
