from __future__ import annotations

import json
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..types import AnnotationMode, EvaluationReport


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class RunMetadata:
    run_id: str
    timestamp: str
    dataset_name: str
    total_questions: int
    annotation_mode: AnnotationMode
    custom_prompt: str = ""

    def to_jsonable(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "timestamp": self.timestamp,
            "dataset_name": self.dataset_name,
            "total_questions": self.total_questions,
            "annotation_mode": self.annotation_mode.value,
            "custom_prompt": self.custom_prompt,
        }


def new_run_id() -> str:
    return f"run_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def new_run_metadata(
    *,
    dataset_name: str,
    total_questions: int,
    annotation_mode: AnnotationMode | str,
    custom_prompt: str = "",
    run_id: Optional[str] = None,
) -> RunMetadata:
    return RunMetadata(
        run_id=run_id or new_run_id(),
        timestamp=now_utc_iso(),
        dataset_name=dataset_name,
        total_questions=total_questions,
        annotation_mode=AnnotationMode(annotation_mode),
        custom_prompt=custom_prompt,
    )


def report_payload(report: EvaluationReport, metadata: RunMetadata) -> dict[str, Any]:
    return {
        "timestamp": now_utc_iso(),
        "run_metadata": metadata.to_jsonable(),
        "summary": {
            a.variant.value: {"n": a.total_questions, "correct": a.correct_count, "accuracy": a.accuracy_percent}
            for a in report.per_variant
        },
        "report": report.to_jsonable(),
    }


def save_report(report: EvaluationReport, metadata: RunMetadata, path: str | Path) -> Path:
    """Write-only: nothing in the pipeline reads these files back."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report_payload(report, metadata), indent=2, default=str), encoding="utf-8")
    print("Saved:", str(out))
    return out
