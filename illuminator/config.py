"""
Run configuration.

`EvalConfig.from_env()` reads the same connection env vars the CLI runners
use (INSTANCE_CONNECTION_NAME, DB_USER, DB_PASS) plus a few ILLUMINATOR_*
knobs. CLI flags override these values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Optional


DEFAULT_ROW_LIMIT = 5
MIN_ROW_LIMIT = 5
MAX_ROW_LIMIT = 1000

DEFAULT_FORBIDDEN_TOKENS = (
    "drop ",
    "delete ",
    "truncate ",
    "alter ",
    "create ",
    "update ",
    "insert ",
)


def clamp_row_limit(row_limit: Optional[int]) -> int:
    if row_limit is None:
        return DEFAULT_ROW_LIMIT
    return max(MIN_ROW_LIMIT, min(int(row_limit), MAX_ROW_LIMIT))


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class EvalConfig:
    row_limit: int = DEFAULT_ROW_LIMIT
    call_timeout_s: Optional[float] = 60.0
    max_result_rows: int = 10000
    forbidden_tokens: tuple[str, ...] = DEFAULT_FORBIDDEN_TOKENS
    sampling_strategy: Optional[str] = None
    custom_prompt: str = ""
    db_url: Optional[str] = None
    instance_connection_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "row_limit", clamp_row_limit(self.row_limit))
        if self.call_timeout_s is not None and self.call_timeout_s <= 0:
            raise ValueError("call_timeout_s must be positive (or None to disable)")

    @classmethod
    def from_env(cls) -> "EvalConfig":
        return cls(
            row_limit=_env_int("ILLUMINATOR_ROW_LIMIT", DEFAULT_ROW_LIMIT),
            call_timeout_s=_env_float("ILLUMINATOR_CALL_TIMEOUT_S", 60.0),
            max_result_rows=_env_int("ILLUMINATOR_MAX_ROWS", 10000),
            db_url=os.getenv("ILLUMINATOR_DB_URL"),
            instance_connection_name=os.getenv("INSTANCE_CONNECTION_NAME"),
            db_user=os.getenv("DB_USER"),
            db_password=os.getenv("DB_PASS"),
        )

    def with_overrides(self, **overrides) -> "EvalConfig":
        """Apply CLI overrides; `None` values keep the current setting."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def has_connector_credentials(self) -> bool:
        return all([self.instance_connection_name, self.db_user, self.db_password])
