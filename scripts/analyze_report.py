"""
Quick analysis of a saved evaluation report to see where each variant fails.

Usage:
    python scripts/analyze_report.py results/run_1700000000000_ab12cd34.json
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pandas as pd


def classify_mismatch(reason: str | None) -> str:
    """Coarse buckets for mismatch reasons (simple and deterministic)."""
    r = (reason or "").lower()
    if not r:
        return "correct"
    if r.startswith("generation failed"):
        return "generation_failed"
    if r.startswith("execution error"):
        return "execution_error"
    if r.startswith("connection lost"):
        return "connection_lost"
    if r.startswith("row count mismatch"):
        return "row_count"
    if r.startswith("row "):
        return "row_values"
    if "description" in r:
        return "description"
    return "other"


def fmt_delta(delta) -> str:
    return "n/a" if delta is None else f"{delta:+.1f} pts"


def verdict_frame(payload: dict) -> pd.DataFrame:
    rows = []
    for q in payload["report"]["per_question"]:
        for v in q["verdicts"]:
            rows.append({**v, "best_variant": q["best_variant"]})
    df = pd.DataFrame(rows, columns=["question_id", "variant", "is_correct", "mismatch_reason", "generated_query", "best_variant"])
    df["failure_kind"] = df["mismatch_reason"].map(classify_mismatch)
    return df


def main():
    if len(sys.argv) < 2:
        raise SystemExit("usage: analyze_report.py <report.json>")
    path = Path(sys.argv[1])
    payload = json.loads(path.read_text(encoding="utf-8"))
    report = payload["report"]
    meta = payload.get("run_metadata", {})

    print(f"File: {path}")
    print(f"Dataset: {report['dataset_id']} | mode: {meta.get('annotation_mode', '?')}")
    if report.get("aborted_reason"):
        print("Stopped early:", report["aborted_reason"])
    if report.get("cancelled"):
        print("Cancelled after phases:", ", ".join(report.get("completed_phases", [])))
    print()

    print("Accuracy by variant:")
    for acc in report["per_variant"]:
        ci = ""
        if acc.get("ci_low") is not None:
            ci = f" (95% CI {acc['ci_low']:.1f}-{acc['ci_high']:.1f})"
        print(f"- {acc['variant']}: {acc['correct_count']}/{acc['total_questions']} = {acc['accuracy_percent']:.1f}%{ci}")
    deltas = report["improvement_deltas"]
    print(f"Hypothesis over raw: {fmt_delta(deltas.get('hypothesis_over_raw'))}")
    print(f"Annotated over raw: {fmt_delta(deltas.get('annotated_over_raw'))}")
    for name, cmp in report.get("comparisons", {}).items():
        print(f"{name}: improved={cmp['improved']} regressed={cmp['regressed']} p={cmp['mcnemar_p']:.4f}")
    for level, accs in report.get("per_difficulty", {}).items():
        cells = ", ".join(f"{a['variant']} {a['accuracy_percent']:.1f}%" for a in accs)
        print(f"Difficulty {level} (n={accs[0]['total_questions'] if accs else 0}): {cells}")
    print()

    df = verdict_frame(payload)
    if df.empty:
        print("No verdicts recorded.")
        return

    print("Failure kinds by variant:")
    print(pd.crosstab(df["failure_kind"], df["variant"]).to_string())
    print()

    print("Failing questions:")
    failing = df[~df["is_correct"].astype(bool)]
    for _, row in failing.head(20).iterrows():
        print(f"- [{row['variant']}] {row['question_id']}: {row['mismatch_reason']}")
        if row["generated_query"]:
            print(f"  query: {row['generated_query']}")


if __name__ == "__main__":
    main()
