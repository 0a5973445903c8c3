import math

from illuminator.evaluation.research_stats import compare_to_baseline, mcnemar_exact_p, paired_switch_counts, wilson_interval
from illuminator.types import Variant, Verdict


def _verdicts(variant, outcomes):
    return [Verdict(question_id=qid, variant=variant, is_correct=ok) for qid, ok in outcomes.items()]


def test_wilson_interval_empty_is_nan():
    lo, hi = wilson_interval(0, 0)
    assert math.isnan(lo) and math.isnan(hi)


def test_wilson_interval_stays_in_unit_range():
    lo, hi = wilson_interval(10, 10)
    assert 0.0 <= lo < 1.0
    assert abs(hi - 1.0) < 1e-9


def test_paired_switch_counts_pairs_by_question_id():
    raw = _verdicts(Variant.RAW, {"q1": False, "q2": True, "q4": True})
    annotated = _verdicts(Variant.ANNOTATED, {"q4": True, "q2": False, "q1": True, "q3": True})

    assert paired_switch_counts(["q1", "q2", "q3", "q4"], raw, annotated) == (3, 1, 1)


def test_compare_to_baseline_reports_counts_and_p_value():
    raw = _verdicts(Variant.RAW, {f"q{i}": False for i in range(5)})
    hyp = _verdicts(Variant.HYPOTHESIS, {f"q{i}": True for i in range(5)})

    cmp = compare_to_baseline([f"q{i}" for i in range(5)], raw, hyp)

    assert (cmp["n"], cmp["improved"], cmp["regressed"]) == (5, 5, 0)
    assert abs(cmp["mcnemar_p"] - 0.0625) < 1e-9


def test_mcnemar_exact_p():
    assert mcnemar_exact_p(0, 0) == 1.0
    # all 5 discordant pairs in one direction: 2 * 0.5**5
    assert abs(mcnemar_exact_p(5, 0) - 0.0625) < 1e-9
    assert mcnemar_exact_p(2, 2) == 1.0
    assert abs(mcnemar_exact_p(1, 3) - 0.625) < 1e-9
