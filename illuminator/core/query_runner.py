"""
Safe query executor.

How to read this file:
1) `QueryRunner` executes generated SQL in read-only mode.
2) It blocks destructive keywords and caps returned rows.
3) Results are stored as `QueryResult` records for traceability; rows come back
   as column->value dicts so they can be compared field by field.

Implementation docs:
- SQLAlchemy execute docs: https://docs.sqlalchemy.org/en/20/core/connections.html
- Python dataclasses docs: https://docs.python.org/3/library/dataclasses.html
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import sqlalchemy
from sqlalchemy.engine import Engine

from ..config import DEFAULT_FORBIDDEN_TOKENS
from ..errors import QueryExecutionError
from .db import is_connection_loss, safe_connection


logger = logging.getLogger(__name__)


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class QueryResult:
    sql: str
    params: Optional[dict[str, Any]]
    timestamp: str
    success: bool
    rowcount: int
    truncated: bool
    exec_time_s: Optional[float]
    error: Optional[str]
    columns: Optional[list[str]]
    rows: Optional[list[dict[str, Any]]]
    connection_lost: bool = False

    def to_jsonable(self) -> dict[str, Any]:
        d = {
            "sql": self.sql,
            "params": self.params,
            "timestamp": self.timestamp,
            "success": self.success,
            "rowcount": self.rowcount,
            "truncated": self.truncated,
            "exec_time_s": self.exec_time_s,
            "error": self.error,
            "columns": self.columns,
            "connection_lost": self.connection_lost,
        }
        return d


class QueryRunner:
    def __init__(
        self,
        engine: Engine,
        *,
        max_rows: int = 1000,
        forbidden_tokens: Optional[Iterable[str]] = None,
        fail_on_truncate: bool = False,
    ):
        self.engine = engine
        self.max_rows = max_rows
        self.fail_on_truncate = fail_on_truncate
        self.history: list[QueryResult] = []
        self.forbidden_tokens = list(forbidden_tokens or DEFAULT_FORBIDDEN_TOKENS)

    def _safety_check(self, sql: str) -> None:
        lowered = (sql or "").strip().lower()
        if not lowered:
            raise QueryExecutionError("Empty SQL string")
        # a simple token blocklist: generated sql runs against a real store.
        padded = f" {lowered} "
        for token in self.forbidden_tokens:
            if f" {token}" in padded:
                raise QueryExecutionError(f"Destructive SQL token detected: {token.strip()}")

    def run(self, sql: str, *, params: Optional[dict[str, Any]] = None) -> QueryResult:
        timestamp = now_utc_iso()
        try:
            self._safety_check(sql)
            start = datetime.now(timezone.utc)

            with safe_connection(self.engine) as conn:
                result = conn.execute(sqlalchemy.text(sql), params or {})
                cols = list(result.keys())
                # fetch one extra row to detect truncation.
                fetched = result.fetchmany(self.max_rows + 1)
                truncated = len(fetched) > self.max_rows
                if truncated:
                    fetched = fetched[: self.max_rows]

            if truncated and self.fail_on_truncate:
                raise QueryExecutionError(f"Result set too large (> {self.max_rows} rows) for comparison")

            end = datetime.now(timezone.utc)
            exec_time_s = (end - start).total_seconds()
            rows = [dict(zip(cols, tuple(r))) for r in fetched]

            out = QueryResult(
                sql=sql,
                params=params,
                timestamp=timestamp,
                success=True,
                rowcount=len(rows),
                truncated=bool(truncated),
                exec_time_s=exec_time_s,
                error=None,
                columns=cols,
                rows=rows,
            )
        except Exception as e:
            lost = is_connection_loss(e)
            if lost:
                logger.error("Connection lost while running query: %s", e)
            out = QueryResult(
                sql=sql,
                params=params,
                timestamp=timestamp,
                success=False,
                rowcount=0,
                truncated=False,
                exec_time_s=None,
                error=str(e),
                columns=None,
                rows=None,
                connection_lost=lost,
            )

        self.history.append(out)
        return out

    def last(self) -> Optional[QueryResult]:
        return self.history[-1] if self.history else None

    def save_history(self, path: str) -> None:
        serializable = [h.to_jsonable() for h in self.history]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(serializable, f, indent=2, default=str)
