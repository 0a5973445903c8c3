"""
Database connection helpers.

How to read this file:
1) `create_engine_with_connector()` builds a SQLAlchemy engine via Cloud SQL Connector.
2) `create_engine_from_url()` covers every other SQLAlchemy-supported store.
3) `safe_connection()` gives a short-lived connection context.
4) `classify_db_error()` maps driver failures onto the pipeline error taxonomy.

References:
- Cloud SQL connector docs: https://cloud.google.com/sql/docs/mysql/connect-run
- SQLAlchemy engine creator docs: https://docs.sqlalchemy.org/en/20/core/engines.html#custom-dbapi-connect
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Any, Iterator

import sqlalchemy
from google.cloud.sql.connector import Connector
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from ..errors import CredentialError, DataStoreConnectionError, PipelineError


def create_engine_with_connector(
    *,
    instance_connection_name: str,
    user: str,
    password: str,
    db_name: str,
) -> tuple[Engine, Connector]:
    connector = Connector()

    def getconn():
        return connector.connect(
            instance_connection_name,
            "pymysql",
            user=user,
            password=password,
            db=db_name,
        )

    engine: Engine = sqlalchemy.create_engine(
        "mysql+pymysql://",
        creator=getconn,
        future=True,
    )
    return engine, connector


def create_engine_from_url(url: str, **kwargs: Any) -> Engine:
    return sqlalchemy.create_engine(url, future=True, **kwargs)


@contextmanager
def safe_connection(engine: Engine) -> Iterator[sqlalchemy.engine.Connection]:
    conn = engine.connect()
    try:
        yield conn
    finally:
        conn.close()


# mysql 1044/1045, postgres 28P01/28000, snowflake 390100 all mean "auth rejected".
_AUTH_RE = re.compile(
    r"access denied|authentication failed|password authentication|incorrect username or password|\b1045\b|\b1044\b|28p01|390100",
    re.IGNORECASE,
)


def classify_db_error(exc: BaseException, *, context: str) -> PipelineError:
    """Turn a connect/introspection failure into a connection or credential error."""
    if isinstance(exc, PipelineError):
        return exc
    msg = str(getattr(exc, "orig", None) or exc)
    if _AUTH_RE.search(msg):
        return CredentialError(f"{context}: credentials rejected ({msg})")
    return DataStoreConnectionError(f"{context}: {msg}")


def is_connection_loss(exc: BaseException) -> bool:
    """True when a query failed because the store went away, not because the SQL was bad."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        msg = str(exc).lower()
        return any(
            tok in msg
            for tok in ("lost connection", "server has gone away", "connection refused", "connection reset", "closed")
        )
    return False
