"""
Build the three schema contexts compared in an evaluation run.

- raw: names and types only; description/business_context are "" so every
  variant has the same shape.
- hypothesis: machine annotations as produced.
- annotated: reconciled annotations when there are any, otherwise the
  hypothesis tables relabelled (no human signal to add).
"""

from __future__ import annotations

from typing import Optional

from ..types import ColumnAnnotation, SchemaContext, SchemaSnapshot, TableAnnotation, Variant


def raw_context(snapshot: SchemaSnapshot) -> SchemaContext:
    return SchemaContext(
        variant=Variant.RAW,
        tables=[
            TableAnnotation(
                table_name=t.name,
                description="",
                columns=[ColumnAnnotation(name=c.name, type=c.data_type, description="", business_context="") for c in t.columns],
            )
            for t in snapshot.tables
        ],
    )


def hypothesis_context(hypothesis: list[TableAnnotation]) -> SchemaContext:
    return SchemaContext(variant=Variant.HYPOTHESIS, tables=list(hypothesis))


def annotated_from_reconciled(reconciled: list[TableAnnotation]) -> SchemaContext:
    return SchemaContext(variant=Variant.ANNOTATED, tables=list(reconciled))


def annotated_from_hypothesis(hypothesis: list[TableAnnotation]) -> SchemaContext:
    return SchemaContext(variant=Variant.ANNOTATED, tables=list(hypothesis))


def annotated_context(
    hypothesis: list[TableAnnotation],
    reconciled: Optional[list[TableAnnotation]],
) -> SchemaContext:
    if reconciled is None:
        return annotated_from_hypothesis(hypothesis)
    return annotated_from_reconciled(reconciled)


def build_contexts(
    snapshot: SchemaSnapshot,
    hypothesis: list[TableAnnotation],
    reconciled: Optional[list[TableAnnotation]] = None,
) -> dict[Variant, SchemaContext]:
    return {
        Variant.RAW: raw_context(snapshot),
        Variant.HYPOTHESIS: hypothesis_context(hypothesis),
        Variant.ANNOTATED: annotated_context(hypothesis, reconciled),
    }
