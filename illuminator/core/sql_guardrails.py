"""
Lightweight SQL text guardrails for generated-query cleanup.

Goal: turn raw model text into one executable SELECT statement, or a reason why not.

Implementation docs:
- Python regex docs: https://docs.python.org/3/library/re.html
"""

from __future__ import annotations

import re
from typing import Optional


# A SELECT that starts a line (optionally after "SQL:"); avoids prose like "please select ... from ...".
SQL_START_RE = re.compile(r"(?im)^\s*(?:sql\s*:\s*)?(?:select|with)\b")

_PROSE_FROM_STOPWORDS = {"the", "a", "an", "this", "that", "these", "those"}

_FORBIDDEN_SQL_RE = re.compile(r"(?i)\b(insert|update|delete|drop|alter|truncate|create|grant|revoke)\b")


def _normalize_spaced_keywords(text: str) -> str:
    """Fix tokenized keywords like 'S E L E C T' produced by some decoders."""
    keywords = ["select", "from", "where", "group", "order", "limit", "join", "having", "distinct"]
    out = text or ""
    for kw in keywords:
        pattern = r"\b" + r"\s+".join(list(kw)) + r"\b"
        out = re.sub(pattern, kw.upper(), out, flags=re.I)
    return out


def _strip_fences(text: str) -> str:
    t = (text or "").strip()
    t = t.replace("```json", "```").replace("```sql", "```")
    return re.sub(r"```(.*?)```", r"\1", t, flags=re.DOTALL).strip()


def _read_from_target(s: str) -> str | None:
    """
    Return the first token after FROM:
    - '(' for subqueries: FROM (SELECT ...)
    - unquoted or quoted identifier (optionally schema-qualified)
    """
    s = (s or "").lstrip()
    if not s:
        return None
    if s.startswith("("):
        return "("
    if s[0] in ("`", '"', "["):
        closing = {"`": "`", '"': '"', "[": "]"}[s[0]]
        end = s.find(closing, 1)
        if end == -1:
            return None
        return s[1:end].strip()
    m = re.match(r"[a-zA-Z_][\w$]*(?:\.[a-zA-Z_][\w$]*)*", s)
    return m.group(0) if m else None


def extract_first_select(text: str) -> str | None:
    t = _strip_fences(text)

    for m in SQL_START_RE.finditer(t):
        tail = t[m.start() :]
        semi = tail.find(";")
        stmt = tail if semi == -1 else tail[: semi + 1]
        stmt = re.sub(r"(?im)^\s*sql\s*:\s*", "", stmt, count=1).strip()

        from_m = re.search(r"(?is)\bfrom\b", stmt)
        if not from_m:
            continue
        target = _read_from_target(stmt[from_m.end() :])
        if not target:
            continue
        if target != "(" and target.lower() in _PROSE_FROM_STOPWORDS:
            continue

        if not stmt.endswith(";"):
            stmt += ";"
        return stmt
    return None


def clean_candidate_with_reason(raw: str) -> tuple[Optional[str], str]:
    """
    Extract a single safe SELECT statement.

    Returns:
      (sql, "ok") on success
      (None, reason) on rejection
    """
    if not raw or not raw.strip():
        return None, "empty"

    sql = extract_first_select(_normalize_spaced_keywords(raw))
    if not sql:
        return None, "no_select"

    # keep only the first statement.
    sql = sql.split(";", 1)[0].strip() + ";"

    if _FORBIDDEN_SQL_RE.search(sql):
        return None, "forbidden_sql"

    return sql, "ok"
