#!/usr/bin/env python3
"""
CLI runner: annotate a dataset's schema, then score one benchmark against the
raw, hypothesis and annotated schema contexts.

Standard mode runs end to end. Interactive mode is two steps:
  1) --emit-questions questions.json   (writes the per-table questions, exits)
  2) --answers answers.json            (reconciles the answers, then evaluates)

Connection settings come from env (INSTANCE_CONNECTION_NAME / DB_USER / DB_PASS
for Cloud SQL, or ILLUMINATOR_DB_URL with a `{dataset}` placeholder).

Refs/inspiration:
- HF Transformers + BitsAndBytes 4-bit NF4 load:
  https://huggingface.co/docs/transformers/main_classes/quantization
- PEFT adapter loading:
  https://huggingface.co/docs/peft/
- Cloud SQL connector + SQLAlchemy creator:
  https://cloud.google.com/sql/docs/mysql/connect-run
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import torch
from peft import PeftModel
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    BitsAndBytesConfig,
)

from illuminator.annotation.reconcile import reconcile_annotations
from illuminator.config import EvalConfig
from illuminator.core.db import create_engine_from_url, create_engine_with_connector
from illuminator.core.generation import ChatModelAnnotator, ChatModelQueryGenerator, ChatModelResultDescriber
from illuminator.core.store import SqlAlchemyDataStore
from illuminator.evaluation.benchmark import load_benchmark
from illuminator.evaluation.orchestrator import prepare_annotations, run_evaluation
from illuminator.evaluation.storage import new_run_metadata, save_report
from illuminator.types import AnnotationMode, TableAnswers


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Evaluate schema annotation variants on a benchmark.")
    p.add_argument("--dataset", required=True, help="Database / dataset id.")
    p.add_argument("--benchmark", required=True, help="Benchmark JSON (list of question objects).")
    p.add_argument("--mode", choices=[m.value for m in AnnotationMode], default=AnnotationMode.STANDARD.value)
    p.add_argument("--model-id", default="meta-llama/Meta-Llama-3-8B-Instruct")
    p.add_argument("--adapter-path", default=None, help="Optional PEFT adapter for the query generator.")
    p.add_argument("--device-map", default="auto")
    p.add_argument("--no-4bit", action="store_true", help="Disable 4-bit load (uses full precision).")
    p.add_argument("--emit-questions", default=None, help="Interactive mode: write question sets here and exit.")
    p.add_argument("--answers", default=None, help="Interactive mode: user answers JSON keyed by table name.")
    p.add_argument("--row-limit", type=int, default=None, help="Sample rows per table (clamped to 5..1000).")
    p.add_argument("--sampling-strategy", default=None)
    p.add_argument("--custom-prompt", default=None)
    p.add_argument("--timeout", type=float, default=None, help="Per-call timeout in seconds.")
    p.add_argument("--no-annotation-model", action="store_true", help="Use heuristic annotations only.")
    p.add_argument("--out", default=None, help="Report JSON path (default results/<run_id>.json).")
    p.add_argument("--trace-path", default=None, help="Optional query trace JSON.")
    return p.parse_args()


class EngineFactory:
    """Builds one engine per dataset from env settings; keeps connectors to close later."""

    def __init__(self, config: EvalConfig):
        self.config = config
        self.connectors: list[Any] = []

    def __call__(self, dataset_id: str):
        if self.config.db_url:
            return create_engine_from_url(self.config.db_url.format(dataset=dataset_id))
        if not self.config.has_connector_credentials:
            raise RuntimeError("Set INSTANCE_CONNECTION_NAME, DB_USER, DB_PASS (or ILLUMINATOR_DB_URL) env vars.")
        engine, connector = create_engine_with_connector(
            instance_connection_name=self.config.instance_connection_name,
            user=self.config.db_user,
            password=self.config.db_password,
            db_name=dataset_id,
        )
        self.connectors.append(connector)
        return engine

    def close(self) -> None:
        for connector in self.connectors:
            connector.close()


def load_model_and_tok(model_id: str, *, load_in_4bit: bool, device_map: str):
    bnb_config = None
    dtype = None
    if load_in_4bit:
        bnb_config = BitsAndBytesConfig(
            load_in_4bit=True,
            bnb_4bit_use_double_quant=False,
            bnb_4bit_quant_type="nf4",
            bnb_4bit_compute_dtype=torch.bfloat16,
        )
        dtype = torch.bfloat16

    tok = AutoTokenizer.from_pretrained(model_id, token=True)
    if tok.pad_token is None:
        tok.pad_token = tok.eos_token

    model = AutoModelForCausalLM.from_pretrained(
        model_id,
        quantization_config=bnb_config,
        device_map=device_map,
        torch_dtype=dtype,
        token=True,
    )
    # Deterministic decoding for eval
    model.generation_config.do_sample = False
    model.generation_config.temperature = 1.0
    model.generation_config.top_p = 1.0
    return model, tok


def wrap_peft(base_model, adapter_path: str):
    adapter_path = Path(adapter_path)
    if not adapter_path.exists():
        raise FileNotFoundError(f"Adapter path not found: {adapter_path}")
    return PeftModel.from_pretrained(base_model, adapter_path)


def load_answers(path: str | Path) -> dict[str, TableAnswers]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected object keyed by table name in answers file, got {type(data)}")
    return {table: TableAnswers.from_jsonable(ans or {}) for table, ans in data.items()}


def print_progress(status: str, percent: float) -> None:
    print(f"[{percent:5.1f}%] {status}")


def fmt_delta(delta) -> str:
    return "n/a" if delta is None else f"{delta:+.1f} pts"


def print_summary(report) -> None:
    for acc in report.per_variant:
        print(f"{acc.variant.value:<10} | n={acc.total_questions} | correct={acc.correct_count} | acc={acc.accuracy_percent:.1f}%")
    d = report.improvement_deltas
    print(f"hypothesis over raw: {fmt_delta(d.hypothesis_over_raw)} | annotated over raw: {fmt_delta(d.annotated_over_raw)}")
    if report.aborted_reason:
        print("Run stopped early:", report.aborted_reason)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args()
    mode = AnnotationMode(args.mode)

    config = EvalConfig.from_env().with_overrides(
        row_limit=args.row_limit,
        call_timeout_s=args.timeout,
        sampling_strategy=args.sampling_strategy,
        custom_prompt=args.custom_prompt,
    )
    if mode is AnnotationMode.INTERACTIVE and not (args.emit_questions or args.answers):
        raise SystemExit("Interactive mode needs --emit-questions or --answers.")

    questions = load_benchmark(args.benchmark)
    factory = EngineFactory(config)
    store = SqlAlchemyDataStore(
        factory,
        max_rows=config.max_result_rows,
        forbidden_tokens=config.forbidden_tokens,
    )

    model, tok = load_model_and_tok(args.model_id, load_in_4bit=not args.no_4bit, device_map=args.device_map)
    annotator = None if args.no_annotation_model else ChatModelAnnotator(model, tok)

    try:
        bundle = prepare_annotations(store, args.dataset, mode, annotation_model=annotator, config=config)
        print(f"Hypotheses: {bundle.hypothesis.source} path ({len(bundle.snapshot.tables)} tables)")

        reconciled = None
        if mode is AnnotationMode.INTERACTIVE:
            if args.emit_questions:
                out = Path(args.emit_questions)
                out.parent.mkdir(parents=True, exist_ok=True)
                out.write_text(
                    json.dumps([qs.to_jsonable() for qs in bundle.question_sets or []], indent=2),
                    encoding="utf-8",
                )
                print("Saved:", str(out))
                if not args.answers:
                    return
            reconciled = reconcile_annotations(bundle.question_sets or [], load_answers(args.answers))

        gen_model = wrap_peft(model, args.adapter_path) if args.adapter_path else model
        report = run_evaluation(
            args.dataset,
            mode,
            questions,
            store=store,
            query_generator=ChatModelQueryGenerator(gen_model, tok),
            describer=ChatModelResultDescriber(model, tok),
            reconciled=reconciled,
            bundle=bundle,
            config=config,
            on_progress=print_progress,
        )
        print_summary(report)

        metadata = new_run_metadata(
            dataset_name=args.dataset,
            total_questions=len(questions),
            annotation_mode=mode,
            custom_prompt=config.custom_prompt,
        )
        save_report(report, metadata, args.out or f"results/{metadata.run_id}.json")
        if args.trace_path:
            store.runner(args.dataset).save_history(args.trace_path)
            print("Saved:", args.trace_path)
    finally:
        factory.close()


if __name__ == "__main__":
    main()
