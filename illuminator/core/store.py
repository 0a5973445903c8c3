"""
SQLAlchemy-backed data store.

One engine per dataset, created lazily through `make_engine_fn` (the same
factory shape the test-suite evaluation uses). Query execution goes through
`QueryRunner` so the read-only guard and row cap always apply.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..config import DEFAULT_FORBIDDEN_TOKENS, clamp_row_limit
from ..errors import DataStoreConnectionError, QueryExecutionError
from ..types import ResultSet, SampleSet, SchemaSnapshot
from .db import classify_db_error
from .query_runner import QueryRunner
from .schema import fetch_sample_set, fetch_schema_snapshot


logger = logging.getLogger(__name__)


class SqlAlchemyDataStore:
    def __init__(
        self,
        make_engine_fn: Callable[[str], Engine],
        *,
        schema_name: Optional[str] = None,
        max_rows: int = 10000,
        forbidden_tokens: Sequence[str] = DEFAULT_FORBIDDEN_TOKENS,
    ):
        self.make_engine_fn = make_engine_fn
        self.schema_name = schema_name
        self.max_rows = max_rows
        self.forbidden_tokens = list(forbidden_tokens)
        self._runners: dict[str, QueryRunner] = {}

    def runner(self, dataset_id: str) -> QueryRunner:
        if dataset_id not in self._runners:
            try:
                engine = self.make_engine_fn(dataset_id)
            except Exception as e:
                raise classify_db_error(e, context=f"creating engine for {dataset_id}") from e
            self._runners[dataset_id] = QueryRunner(
                engine,
                max_rows=self.max_rows,
                forbidden_tokens=self.forbidden_tokens,
                fail_on_truncate=True,
            )
        return self._runners[dataset_id]

    def fetch_schema(self, dataset_id: str) -> SchemaSnapshot:
        engine = self.runner(dataset_id).engine
        try:
            return fetch_schema_snapshot(engine, dataset_id=dataset_id, schema_name=self.schema_name)
        except SQLAlchemyError as e:
            raise classify_db_error(e, context=f"fetching schema for {dataset_id}") from e

    def fetch_samples(self, dataset_id: str, table_names: Sequence[str], row_limit: int) -> SampleSet:
        engine = self.runner(dataset_id).engine
        try:
            return fetch_sample_set(
                engine,
                table_names=table_names,
                row_limit=clamp_row_limit(row_limit),
                schema_name=self.schema_name,
            )
        except SQLAlchemyError as e:
            raise classify_db_error(e, context=f"fetching samples for {dataset_id}") from e

    def execute_query(self, dataset_id: str, query_text: str) -> ResultSet:
        result = self.runner(dataset_id).run(query_text)
        if result.success:
            return result.rows or []
        if result.connection_lost:
            raise DataStoreConnectionError(result.error or "connection dropped")
        raise QueryExecutionError(result.error or "unknown execution error")
