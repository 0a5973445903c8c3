"""
Statistics for comparing schema variants that answered the same questions.

How to read this file:
1) `wilson_interval()` gives a 95% interval for one variant's accuracy.
2) `paired_switch_counts()` lines two variants' verdicts up by question id and
   counts the questions that flipped in each direction.
3) `mcnemar_exact_p()` tests whether the flips lean one way more than chance.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from ..types import Verdict


def wilson_interval(correct: int, total: int, z: float = 1.96) -> tuple[float, float]:
    """
    Wilson score interval as fractions in [0, 1]; (nan, nan) when there is no data.

    Per-dataset benchmarks are small and accuracy often sits at 0% or 100%, where
    the normal approximation collapses to a zero-width interval.
    """
    if total <= 0:
        return (math.nan, math.nan)
    rate = correct / total
    z2 = z * z
    scale = 1.0 + z2 / total
    mid = (rate + z2 / (2.0 * total)) / scale
    half = z * math.sqrt(rate * (1.0 - rate) / total + z2 / (4.0 * total * total)) / scale
    return (max(0.0, mid - half), min(1.0, mid + half))


def paired_switch_counts(
    question_ids: Sequence[str],
    baseline: Iterable[Verdict],
    candidate: Iterable[Verdict],
) -> tuple[int, int, int]:
    """
    Return (paired, improved, regressed) for `candidate` measured against `baseline`.

    Only questions both sides have a verdict for are paired.
    """
    before = {v.question_id: v.is_correct for v in baseline}
    after = {v.question_id: v.is_correct for v in candidate}
    paired = improved = regressed = 0
    for qid in question_ids:
        if qid not in before or qid not in after:
            continue
        paired += 1
        if after[qid] and not before[qid]:
            improved += 1
        elif before[qid] and not after[qid]:
            regressed += 1
    return paired, improved, regressed


def mcnemar_exact_p(improved: int, regressed: int) -> float:
    """
    Two-sided exact McNemar test on the discordant questions.

    Under no effect each flip is a fair coin, so the p-value is twice the
    Binomial(n, 0.5) tail at the smaller count, capped at 1.
    """
    flips = improved + regressed
    if flips == 0:
        return 1.0
    smaller = min(improved, regressed)
    tail = sum(math.comb(flips, k) for k in range(smaller + 1)) / 2.0**flips
    return min(1.0, 2.0 * tail)


def compare_to_baseline(
    question_ids: Sequence[str],
    baseline: Iterable[Verdict],
    candidate: Iterable[Verdict],
) -> dict[str, float | int]:
    paired, improved, regressed = paired_switch_counts(question_ids, baseline, candidate)
    return {
        "n": paired,
        "improved": improved,
        "regressed": regressed,
        "mcnemar_p": mcnemar_exact_p(improved, regressed),
    }
