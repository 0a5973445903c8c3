"""
Schema helpers.

How to read this file:
1) `fetch_schema_snapshot()` reads ordered table/column metadata into a `SchemaSnapshot`.
2) `fetch_sample_set()` pulls a bounded, key-ordered sample of rows per table.
3) `build_schema_summary()` builds the compact table(column,...) text used in prompts.

Implementation docs:
- SQLAlchemy metadata/inspection docs: https://docs.sqlalchemy.org/en/20/core/reflection.html
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import sqlalchemy
from sqlalchemy.engine import Engine

from ..config import clamp_row_limit
from ..types import ColumnSchema, SampleSet, SchemaSnapshot, TableSample, TableSchema
from .db import safe_connection


logger = logging.getLogger(__name__)


def list_tables(engine: Engine, *, schema_name: Optional[str] = None) -> list[str]:
    return sorted(sqlalchemy.inspect(engine).get_table_names(schema=schema_name))


def fetch_schema_snapshot(engine: Engine, *, dataset_id: str, schema_name: Optional[str] = None) -> SchemaSnapshot:
    inspector = sqlalchemy.inspect(engine)
    tables: list[TableSchema] = []
    for table in list_tables(engine, schema_name=schema_name):
        cols = [
            ColumnSchema(
                name=str(c["name"]),
                # str(type) gives the dialect-neutral spelling, e.g. VARCHAR(50) / INTEGER.
                data_type=str(c["type"]),
                nullable=bool(c.get("nullable", True)),
            )
            for c in inspector.get_columns(table, schema=schema_name)
        ]
        tables.append(TableSchema(name=table, columns=cols))
    logger.info("Fetched schema for %s: %d tables", dataset_id, len(tables))
    return SchemaSnapshot(dataset_id=dataset_id, tables=tables)


def sample_statement(table: sqlalchemy.Table, limit: int) -> sqlalchemy.Select:
    """
    LIMIT is pushed to the server so only `limit` rows travel. Rows come back in
    primary-key order (all columns when there is no key) so repeated samples of
    an unchanged table are identical.
    """
    order_by = list(table.primary_key.columns) or list(table.columns)
    return sqlalchemy.select(table).order_by(*order_by).limit(limit)


def fetch_sample_set(
    engine: Engine,
    *,
    table_names: Iterable[str],
    row_limit: Optional[int] = None,
    schema_name: Optional[str] = None,
) -> SampleSet:
    limit = clamp_row_limit(row_limit)
    out: SampleSet = {}
    with safe_connection(engine) as conn:
        for table in table_names:
            reflected = sqlalchemy.Table(table, sqlalchemy.MetaData(), schema=schema_name, autoload_with=conn)
            rows = [dict(r) for r in conn.execute(sample_statement(reflected, limit)).mappings()]
            count = conn.execute(sqlalchemy.select(sqlalchemy.func.count()).select_from(reflected)).scalar()
            out[table] = TableSample(
                table_name=table,
                rows=rows,
                approximate_row_count=int(count) if count is not None else None,
            )
    return out


def build_schema_summary(snapshot: SchemaSnapshot, *, max_cols_per_table: int = 50, with_types: bool = False) -> str:
    chunks: list[str] = []
    for table in snapshot.tables:
        cols = table.columns[:max_cols_per_table]
        parts = [f"{c.name} {c.data_type}" if with_types else c.name for c in cols]
        chunks.append(f"{table.name}({', '.join(parts)})")
    return "\n".join(chunks)
