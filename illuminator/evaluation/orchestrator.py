"""
Evaluation run orchestration.

How to read this file:
1) `prepare_annotations()` fetches schema + samples and produces the machine
   hypotheses (and, in interactive mode, the question sets for a human).
2) `EvaluationOrchestrator.run()` walks six phases in order:
   connect -> load_benchmark -> evaluate_raw -> evaluate_hypothesis ->
   evaluate_annotated -> aggregate.
3) Inside an evaluate phase, questions run one at a time: generate query,
   execute it, score it. Any per-question failure becomes an incorrect verdict.
4) `run_evaluation()` is the one-call entry point used by scripts.

Failure policy:
- connect-phase connection/credential errors abort the run (re-raised with `phase`).
- losing the store mid-variant fails the rest of that variant's questions and
  stops the run; finished variants stay in the report.
- cancellation is checked between phases; the report covers what finished.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..annotation.hypothesis import HypothesisOutput, build_question_sets, generate_annotations
from ..annotation.variants import build_contexts
from ..config import EvalConfig
from ..core.contracts import AnnotationModel, DataStore, QueryGenerator, ResultDescriber
from ..errors import (
    CallTimeoutError,
    CredentialError,
    DataStoreConnectionError,
    ModelUnavailableError,
    PipelineError,
)
from ..types import (
    AnnotationMode,
    BenchmarkQuestion,
    EvaluationReport,
    QueryExecutionOutcome,
    SampleSet,
    SchemaContext,
    SchemaSnapshot,
    TableAnnotation,
    TableQuestionSet,
    Variant,
    Verdict,
)
from .aggregate import build_report
from .benchmark import parse_benchmark
from .scoring import failed_verdict, score_outcome


logger = logging.getLogger(__name__)

ProgressFn = Callable[[str, float], None]

PHASES: tuple[tuple[str, str], ...] = (
    ("connect", "Connecting to the data store and preparing schema contexts"),
    ("load_benchmark", "Loading benchmark questions"),
    ("evaluate_raw", "Running evaluation on raw schema (no annotations)"),
    ("evaluate_hypothesis", "Running evaluation on machine-annotated schema"),
    ("evaluate_annotated", "Running evaluation on fully annotated schema"),
    ("aggregate", "Calculating comparative results"),
)

PHASE_VARIANT = {
    "evaluate_raw": Variant.RAW,
    "evaluate_hypothesis": Variant.HYPOTHESIS,
    "evaluate_annotated": Variant.ANNOTATED,
}


def call_with_timeout(fn: Callable[..., Any], timeout_s: Optional[float], *args: Any, **kwargs: Any) -> Any:
    """
    Run one external call with its own deadline.

    A timed-out call keeps running in its worker thread; the run moves on
    without waiting for it.
    """
    if timeout_s is None:
        return fn(*args, **kwargs)
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeoutError as e:
        future.cancel()
        name = getattr(fn, "__name__", "call")
        raise CallTimeoutError(f"{name} timed out after {timeout_s}s") from e
    finally:
        executor.shutdown(wait=False)


class _TimedModel:
    """Annotation model wrapper: a timeout counts as the model being unavailable."""

    def __init__(self, model: AnnotationModel, timeout_s: Optional[float]):
        self.model = model
        self.timeout_s = timeout_s

    def complete(self, messages: list[dict[str, str]]) -> str:
        try:
            return call_with_timeout(self.model.complete, self.timeout_s, messages)
        except CallTimeoutError as e:
            raise ModelUnavailableError(str(e)) from e


@dataclass(frozen=True)
class AnnotationBundle:
    snapshot: SchemaSnapshot
    samples: SampleSet
    hypothesis: HypothesisOutput
    question_sets: Optional[list[TableQuestionSet]] = None


# driver-level failures from a store; anything else is a bug and propagates as is.
_STORE_FAILURES = (SQLAlchemyError, OSError, CallTimeoutError)


def _connect_error(e: Exception, what: str) -> PipelineError:
    if isinstance(e, CallTimeoutError):
        return DataStoreConnectionError(f"{what} timed out: {e.message}")
    return DataStoreConnectionError(f"{what} failed: {e}")


def prepare_annotations(
    store: DataStore,
    dataset_id: str,
    mode: AnnotationMode,
    *,
    annotation_model: Optional[AnnotationModel] = None,
    config: Optional[EvalConfig] = None,
) -> AnnotationBundle:
    """Schema + samples + hypotheses; interactive mode also builds question sets."""
    config = config or EvalConfig()
    timeout = config.call_timeout_s

    try:
        snapshot = call_with_timeout(store.fetch_schema, timeout, dataset_id)
    except (DataStoreConnectionError, CredentialError):
        raise
    except _STORE_FAILURES as e:
        raise _connect_error(e, "schema fetch") from e
    try:
        samples = call_with_timeout(
            store.fetch_samples, timeout, dataset_id, [t.name for t in snapshot.tables], config.row_limit
        )
    except (DataStoreConnectionError, CredentialError):
        raise
    except _STORE_FAILURES as e:
        raise _connect_error(e, "sample fetch") from e

    hypothesis = generate_annotations(
        snapshot,
        samples,
        model=_TimedModel(annotation_model, timeout) if annotation_model is not None else None,
        row_limit=config.row_limit,
        custom_prompt=config.custom_prompt,
        sampling_strategy=config.sampling_strategy,
    )
    logger.info("Hypotheses for %s produced by %s path", dataset_id, hypothesis.source)

    question_sets = None
    if mode is AnnotationMode.INTERACTIVE:
        question_sets = build_question_sets(
            snapshot,
            samples,
            row_limit=config.row_limit,
            sampling_strategy=config.sampling_strategy,
        )
    return AnnotationBundle(snapshot=snapshot, samples=samples, hypothesis=hypothesis, question_sets=question_sets)


class EvaluationOrchestrator:
    def __init__(
        self,
        *,
        store: DataStore,
        query_generator: QueryGenerator,
        annotation_model: Optional[AnnotationModel] = None,
        describer: Optional[ResultDescriber] = None,
        config: Optional[EvalConfig] = None,
        on_progress: Optional[ProgressFn] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.store = store
        self.query_generator = query_generator
        self.annotation_model = annotation_model
        self.describer = describer
        self.config = config or EvalConfig()
        self.on_progress = on_progress
        self.cancel_event = cancel_event
        self._last_percent = 0.0

    def _report_progress(self, status: str, percent: float) -> None:
        # advisory only; clamp so callers never see it go backwards.
        self._last_percent = max(self._last_percent, min(100.0, percent))
        if self.on_progress is not None:
            self.on_progress(status, self._last_percent)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def evaluate_question(
        self,
        dataset_id: str,
        context: SchemaContext,
        question: BenchmarkQuestion,
    ) -> tuple[Verdict, bool]:
        """Return (verdict, connection_lost)."""
        timeout = self.config.call_timeout_s
        variant = context.variant

        try:
            query = call_with_timeout(
                self.query_generator.generate_query, timeout, context, question.natural_language_text
            )
        except Exception as e:
            logger.warning("[%s] generation failed for %s: %s", variant.value, question.id, e)
            outcome = QueryExecutionOutcome(generated_query_text="", execution_error=str(e), generation_failed=True)
            return score_outcome(question, variant, outcome), False

        try:
            rows = call_with_timeout(self.store.execute_query, timeout, dataset_id, query)
        except (DataStoreConnectionError, CredentialError) as e:
            logger.error("[%s] lost the data store on %s: %s", variant.value, question.id, e)
            return failed_verdict(question, variant, f"connection lost: {e}", query), True
        except Exception as e:
            logger.warning("[%s] execution failed for %s: %s", variant.value, question.id, e)
            outcome = QueryExecutionOutcome(generated_query_text=query, execution_error=str(e))
            return score_outcome(question, variant, outcome), False

        description = None
        describe = question.expected_result is None and question.expected_description is not None
        if describe and self.describer is not None:
            try:
                description = call_with_timeout(
                    self.describer.describe, timeout, question.natural_language_text, rows
                )
            except Exception as e:
                logger.warning("[%s] result description failed for %s: %s", variant.value, question.id, e)
                return failed_verdict(question, variant, f"description failed: {e}", query), False

        outcome = QueryExecutionOutcome(generated_query_text=query, result_set=rows, result_description=description)
        return score_outcome(question, variant, outcome), False

    def evaluate_variant(
        self,
        dataset_id: str,
        context: SchemaContext,
        questions: list[BenchmarkQuestion],
        *,
        progress_base: float = 0.0,
        progress_span: float = 0.0,
    ) -> tuple[list[Verdict], bool]:
        """Score every question for one variant; stop scoring once the store is lost."""
        verdicts: list[Verdict] = []
        lost_reason: Optional[str] = None
        for i, question in enumerate(questions):
            if lost_reason is not None:
                verdicts.append(failed_verdict(question, context.variant, lost_reason))
                continue
            verdict, lost = self.evaluate_question(dataset_id, context, question)
            verdicts.append(verdict)
            if lost:
                lost_reason = verdict.mismatch_reason
            self._report_progress(
                f"{context.variant.value}: {i + 1}/{len(questions)} questions scored",
                progress_base + progress_span * (i + 1) / len(questions),
            )
        return verdicts, lost_reason is not None

    def run(
        self,
        dataset_id: str,
        annotation_mode: AnnotationMode,
        benchmark_questions: Iterable[dict[str, Any] | BenchmarkQuestion],
        *,
        reconciled: Optional[list[TableAnnotation]] = None,
        bundle: Optional[AnnotationBundle] = None,
    ) -> EvaluationReport:
        annotation_mode = AnnotationMode(annotation_mode)
        if annotation_mode is AnnotationMode.INTERACTIVE and reconciled is None:
            raise ValueError("interactive mode needs reconciled annotations; call reconcile_annotations() first")

        completed: list[str] = []
        questions: list[BenchmarkQuestion] = []
        contexts: dict[Variant, SchemaContext] = {}
        verdicts_by_variant: dict[Variant, list[Verdict]] = {}
        aborted_reason: Optional[str] = None
        step = 100.0 / len(PHASES)

        for idx, (phase, status) in enumerate(PHASES):
            if self._cancelled():
                logger.info("Run for %s cancelled before phase %s", dataset_id, phase)
                return build_report(
                    dataset_id, questions, verdicts_by_variant, completed_phases=completed, cancelled=True
                )
            if aborted_reason is not None and phase != "aggregate":
                continue

            logger.info("Phase %s: %s", phase, status)
            self._report_progress(status, idx * step)

            if phase == "connect":
                try:
                    if bundle is None:
                        bundle = prepare_annotations(
                            self.store,
                            dataset_id,
                            annotation_mode,
                            annotation_model=self.annotation_model,
                            config=self.config,
                        )
                except (DataStoreConnectionError, CredentialError) as e:
                    e.phase = phase
                    raise
                contexts = build_contexts(
                    bundle.snapshot,
                    bundle.hypothesis.annotations,
                    reconciled if annotation_mode is AnnotationMode.INTERACTIVE else None,
                )

            elif phase == "load_benchmark":
                questions = parse_benchmark(benchmark_questions)
                logger.info("Loaded %d benchmark questions", len(questions))

            elif phase in PHASE_VARIANT:
                variant = PHASE_VARIANT[phase]
                verdicts, lost = self.evaluate_variant(
                    dataset_id,
                    contexts[variant],
                    questions,
                    progress_base=idx * step,
                    progress_span=step,
                )
                verdicts_by_variant[variant] = verdicts
                if lost:
                    aborted_reason = f"data store connection lost during {phase}"
                    logger.error("%s; remaining variants skipped", aborted_reason)

            elif phase == "aggregate":
                report = build_report(
                    dataset_id,
                    questions,
                    verdicts_by_variant,
                    completed_phases=completed + [phase],
                    aborted_reason=aborted_reason,
                )
                self._report_progress("Evaluation complete", 100.0)
                return report

            completed.append(phase)

        raise AssertionError("unreachable: aggregate phase always returns")


def run_evaluation(
    dataset_id: str,
    annotation_mode: AnnotationMode | str,
    benchmark_questions: Iterable[dict[str, Any] | BenchmarkQuestion],
    *,
    store: DataStore,
    query_generator: QueryGenerator,
    annotation_model: Optional[AnnotationModel] = None,
    describer: Optional[ResultDescriber] = None,
    reconciled: Optional[list[TableAnnotation]] = None,
    bundle: Optional[AnnotationBundle] = None,
    config: Optional[EvalConfig] = None,
    on_progress: Optional[ProgressFn] = None,
    cancel_event: Optional[threading.Event] = None,
) -> EvaluationReport:
    orchestrator = EvaluationOrchestrator(
        store=store,
        query_generator=query_generator,
        annotation_model=annotation_model,
        describer=describer,
        config=config,
        on_progress=on_progress,
        cancel_event=cancel_event,
    )
    return orchestrator.run(
        dataset_id,
        AnnotationMode(annotation_mode),
        benchmark_questions,
        reconciled=reconciled,
        bundle=bundle,
    )
