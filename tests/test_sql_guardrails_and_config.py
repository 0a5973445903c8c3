import pytest

from illuminator.config import DEFAULT_ROW_LIMIT, EvalConfig, clamp_row_limit
from illuminator.core.sql_guardrails import clean_candidate_with_reason, extract_first_select


def test_extracts_select_from_fenced_chatter():
    raw = "Here you go:\n```sql\nSELECT make FROM vehicles WHERE year >= 2020;\n```\nHope that helps."
    sql, reason = clean_candidate_with_reason(raw)
    assert reason == "ok"
    assert sql == "SELECT make FROM vehicles WHERE year >= 2020;"


def test_prose_select_is_not_sql():
    assert extract_first_select("You should select the rows from the table.") is None
    assert clean_candidate_with_reason("I cannot answer that.") == (None, "no_select")
    assert clean_candidate_with_reason("   ") == (None, "empty")


def test_spaced_keywords_are_repaired():
    sql, reason = clean_candidate_with_reason("S E L E C T id F R O M loans")
    assert reason == "ok"
    assert sql == "SELECT id FROM loans;"


def test_forbidden_statements_are_rejected():
    assert clean_candidate_with_reason("SELECT 1 FROM t; DROP TABLE t;")[0] == "SELECT 1 FROM t;"
    assert clean_candidate_with_reason("WITH x AS (DELETE FROM t) SELECT * FROM x;") == (None, "forbidden_sql")


def test_with_statements_are_kept():
    sql, _ = clean_candidate_with_reason("WITH recent AS (SELECT * FROM vehicles) SELECT COUNT(*) FROM recent")
    assert sql.startswith("WITH recent AS")


def test_row_limit_is_clamped():
    assert clamp_row_limit(None) == DEFAULT_ROW_LIMIT
    assert clamp_row_limit(1) == 5
    assert clamp_row_limit(50) == 50
    assert clamp_row_limit(5000) == 1000
    assert EvalConfig(row_limit=0).row_limit == 5


def test_config_from_env_and_overrides(monkeypatch):
    monkeypatch.setenv("ILLUMINATOR_ROW_LIMIT", "20")
    monkeypatch.setenv("ILLUMINATOR_CALL_TIMEOUT_S", "12.5")
    monkeypatch.setenv("INSTANCE_CONNECTION_NAME", "proj:region:inst")
    monkeypatch.setenv("DB_USER", "reader")
    monkeypatch.setenv("DB_PASS", "secret")
    monkeypatch.delenv("ILLUMINATOR_DB_URL", raising=False)

    cfg = EvalConfig.from_env()

    assert (cfg.row_limit, cfg.call_timeout_s) == (20, 12.5)
    assert cfg.has_connector_credentials
    assert "secret" not in repr(cfg)

    cfg2 = cfg.with_overrides(row_limit=None, call_timeout_s=3.0)
    assert (cfg2.row_limit, cfg2.call_timeout_s) == (20, 3.0)


def test_config_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        EvalConfig(call_timeout_s=0)
