from __future__ import annotations

from datetime import datetime, timezone

import pytest

pytest.importorskip("psycopg")

from psycopg.types.json import Jsonb

from offres.infrastructure.external.france_travail.pg_repository import OffresRepository, build_upsert_sql

NOW = datetime(2025, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


class _DummyCursor:
    def __init__(self, fetchone_result=None) -> None:
        self.executed_sql: str | None = None
        self.executed_params = None
        self.executemany_values = None
        self.rowcount = 7
        self._fetchone_result = fetchone_result

    def execute(self, sql: str, params=None) -> None:
        self.executed_sql = sql
        self.executed_params = params

    def executemany(self, sql: str, values) -> None:
        self.executed_sql = sql
        self.executemany_values = list(values)

    def fetchone(self):
        return self._fetchone_result

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _DummyConn:
    def __init__(self, fetchone_result=None) -> None:
        self._cursor = _DummyCursor(fetchone_result)
        self.commits = 0

    def cursor(self):
        return self._cursor

    def commit(self) -> None:
        self.commits += 1


def test_upsert_generates_on_conflict_on_natural_key() -> None:
    repo = OffresRepository("postgresql://dummy")
    conn = _DummyConn()
    rows = [
        {
            "provider": "france_travail",
            "external_id": "188XKQT",
            "title": "Développeur",
            "last_seen_at": NOW,
            "is_active": True,
            "source_payload": {"id": "188XKQT"},
        }
    ]

    count = repo.upsert_rows(conn, rows=rows)

    assert count == 1
    sql = conn._cursor.executed_sql or ""
    assert 'ON CONFLICT ("provider", "external_id")' in sql
    assert '"title" = EXCLUDED."title"' in sql
    assert '"last_seen_at" = GREATEST("offres"."last_seen_at", EXCLUDED."last_seen_at")' in sql
    assert '"provider" = EXCLUDED' not in sql
    values = conn._cursor.executemany_values[0]
    assert isinstance(values[-1], Jsonb)


def test_upsert_of_empty_chunk_does_nothing() -> None:
    conn = _DummyConn()
    assert OffresRepository("postgresql://dummy").upsert_rows(conn, rows=[]) == 0
    assert conn._cursor.executed_sql is None


def test_upsert_sql_requires_natural_key_columns() -> None:
    with pytest.raises(ValueError):
        build_upsert_sql(["external_id", "title"])


def test_deactivate_is_strictly_before_pass_start() -> None:
    repo = OffresRepository("postgresql://dummy")
    conn = _DummyConn()

    deactivated = repo.deactivate_unseen(conn, provider="france_travail", seen_before=NOW)

    assert deactivated == 7
    sql = " ".join((conn._cursor.executed_sql or "").split())
    assert "SET is_active = false" in sql
    assert "last_seen_at < %s" in sql
    assert "<=" not in sql
    assert "DELETE" not in sql.upper()
    assert conn._cursor.executed_params == ("france_travail", NOW)


def test_try_advisory_lock_reads_flag() -> None:
    repo = OffresRepository("postgresql://dummy")
    assert repo.try_advisory_lock(_DummyConn({"locked": True}), 42) is True
    assert repo.try_advisory_lock(_DummyConn({"locked": False}), 42) is False


def test_start_run_commits_and_returns_id() -> None:
    repo = OffresRepository("postgresql://dummy")
    conn = _DummyConn({"id": 11})

    run_id = repo.start_run(conn, provider="france_travail", started_at=NOW, days=14, partitions_total=101)

    assert run_id == 11
    assert conn.commits == 1
    assert "'running'" in (conn._cursor.executed_sql or "")
