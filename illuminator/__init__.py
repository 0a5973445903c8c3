"""
Schema annotation evaluation pipeline.

How to read this package:
1) `types.py`, `errors.py`, `config.py` hold the records, error taxonomy and run settings.
2) `core/` holds DB access, schema introspection, prompts, model calls and SQL guardrails.
3) `annotation/` turns a schema + samples into hypotheses, questions, reconciled
   annotations, and the three schema-context variants.
4) `evaluation/` runs the benchmark per variant, scores verdicts, aggregates the
   report, and saves it.

Entry points: `evaluation.orchestrator.run_evaluation` and
`annotation.reconcile.reconcile_annotations`.
"""
