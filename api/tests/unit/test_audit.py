"""
Tests unitarios para audit.py (France Travail vs Postgres).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from offres.infrastructure.external.france_travail.audit import FranceTravailAudit

UNTIL = datetime(2025, 10, 15, 0, 0, 0, tzinfo=timezone.utc)
SINCE = UNTIL - timedelta(days=7)


class _Conn:
    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class _Repository:
    def __init__(self, counts: dict[str, int]) -> None:
        self.counts = counts
        self.queries: list[dict] = []

    def connect(self):
        return _Conn()

    def count_active_offers(self, conn, *, provider, departement, published_from, published_to) -> int:
        self.queries.append(
            {"provider": provider, "departement": departement, "from": published_from, "to": published_to}
        )
        return self.counts.get(departement, 0)


class _Windower:
    def __init__(self, counts: dict[str, int]) -> None:
        self.counts = counts

    def fetch_all_in_window(self, filters, min_dt, max_dt, *, partition_key=None, cancellation=None):
        dep = filters["departement"]
        return [{"id": f"{dep}-{i}"} for i in range(self.counts.get(dep, 0))]


def test_no_gap_when_counts_match():
    audit = FranceTravailAudit(windower=_Windower({"31": 5, "75": 2}), repository=_Repository({"31": 5, "75": 2}))

    report = audit.run(SINCE, UNTIL, ["31", "75"])

    assert report.has_gap is False
    assert report.upstream_total == 7
    assert report.local_total == 7
    assert [r.departement for r in report.rows] == ["31", "75"]


def test_gap_reports_signed_delta():
    repo = _Repository({"31": 3, "75": 4})
    audit = FranceTravailAudit(windower=_Windower({"31": 5, "75": 2}), repository=repo)

    report = audit.run(SINCE, UNTIL, ["31", "75"])

    assert report.has_gap is True
    assert [r.delta for r in report.rows] == [-2, 2]
    assert repo.queries[0] == {"provider": "france_travail", "departement": "31", "from": SINCE, "to": UNTIL}


def test_rejects_inverted_window():
    audit = FranceTravailAudit(windower=_Windower({}), repository=_Repository({}))
    with pytest.raises(ValueError):
        audit.run(UNTIL, SINCE, ["31"])


def test_base_filters_are_shared_with_upstream_query():
    seen: list[dict] = []

    class _RecordingWindower(_Windower):
        def fetch_all_in_window(self, filters, min_dt, max_dt, *, partition_key=None, cancellation=None):
            seen.append(dict(filters))
            return super().fetch_all_in_window(filters, min_dt, max_dt, partition_key=partition_key)

    audit = FranceTravailAudit(
        windower=_RecordingWindower({"31": 1}),
        repository=_Repository({"31": 1}),
        base_filters={"natureContrat": "E1"},
    )

    audit.run(SINCE, UNTIL, ["31"])

    assert seen == [{"natureContrat": "E1", "departement": "31"}]
