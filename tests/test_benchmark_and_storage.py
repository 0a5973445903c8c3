import json

import pytest

from illuminator.evaluation.aggregate import build_report
from illuminator.evaluation.benchmark import load_benchmark, parse_benchmark
from illuminator.evaluation.storage import new_run_metadata, save_report
from illuminator.types import AnnotationMode, BenchmarkQuestion, Variant, Verdict


def test_parse_benchmark_accepts_alternate_keys():
    questions = parse_benchmark(
        [
            {"question_id": 7, "nlq": " how many cars ", "sql": "SELECT COUNT(*) FROM cars", "difficulty": "easy"},
            {"natural_language_text": "describe dealers", "expected_description": "Two dealers."},
        ]
    )

    first, second = questions
    assert (first.id, first.natural_language_text, first.gold_query, first.difficulty_level) == (
        "7",
        "how many cars",
        "SELECT COUNT(*) FROM cars",
        "easy",
    )
    assert first.expected_result is None
    assert second.id == "q1"
    assert second.expected_description == "Two dealers."


def test_parse_benchmark_rejects_bad_items():
    with pytest.raises(ValueError, match="no question text"):
        parse_benchmark([{"id": "a"}])
    with pytest.raises(ValueError, match="list of objects"):
        parse_benchmark([{"id": "a", "question": "x", "expected_result": [1, 2]}])
    with pytest.raises(ValueError, match="Duplicate"):
        parse_benchmark([{"id": "a", "question": "x"}, {"id": "a", "question": "y"}])


def test_parse_benchmark_passes_records_through():
    q = BenchmarkQuestion(id="z", natural_language_text="x")
    assert parse_benchmark([q]) == [q]


def test_load_benchmark_from_file(tmp_path):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps([{"id": "q1", "question": "x", "expected_result": [{"a": 1}]}]), encoding="utf-8")
    assert load_benchmark(path)[0].expected_result == [{"a": 1}]

    path.write_text(json.dumps({"id": "q1"}), encoding="utf-8")
    with pytest.raises(ValueError, match="Expected list"):
        load_benchmark(path)


def test_save_report_writes_payload(tmp_path):
    questions = [BenchmarkQuestion(id="q1", natural_language_text="x")]
    report = build_report(
        "car_1",
        questions,
        {Variant.RAW: [Verdict(question_id="q1", variant=Variant.RAW, is_correct=True)]},
    )
    meta = new_run_metadata(dataset_name="car_1", total_questions=1, annotation_mode="standard", custom_prompt="p")

    out = save_report(report, meta, tmp_path / "runs" / "r.json")

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert meta.run_id.startswith("run_")
    assert meta.annotation_mode is AnnotationMode.STANDARD
    assert payload["run_metadata"]["run_id"] == meta.run_id
    assert payload["run_metadata"]["annotation_mode"] == "standard"
    assert payload["summary"]["raw"] == {"n": 1, "correct": 1, "accuracy": 100.0}
    assert payload["report"]["per_question"][0]["best_variant"] == "raw"


def test_run_ids_are_unique():
    a = new_run_metadata(dataset_name="d", total_questions=0, annotation_mode=AnnotationMode.INTERACTIVE)
    b = new_run_metadata(dataset_name="d", total_questions=0, annotation_mode=AnnotationMode.INTERACTIVE)
    assert a.run_id != b.run_id
