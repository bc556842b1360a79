"""
Auditoría de completitud: ofertas France Travail vs ofertas activas locales.

Para cada departamento compara, en la ventana [since, until):
- upstream: ofertas recuperadas con el mismo fenêtrage que usa el sync
- local: ofertas activas con published_at dentro de la ventana

delta = local - upstream. Cualquier delta != 0 es un hueco.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from loguru import logger

from offres.shared.utils.datetime_utils import ensure_utc, isoformat_z

from .departements import resolve_departements
from .pg_repository import OffresRepository
from .types import PROVIDER
from .windower import DateWindower


@dataclass(frozen=True)
class AuditRow:
    departement: str
    upstream_count: int
    local_count: int

    @property
    def delta(self) -> int:
        return self.local_count - self.upstream_count


@dataclass(frozen=True)
class AuditReport:
    since: datetime
    until: datetime
    rows: list[AuditRow]

    @property
    def upstream_total(self) -> int:
        return sum(r.upstream_count for r in self.rows)

    @property
    def local_total(self) -> int:
        return sum(r.local_count for r in self.rows)

    @property
    def has_gap(self) -> bool:
        return any(r.delta != 0 for r in self.rows)


class FranceTravailAudit:
    def __init__(
        self,
        *,
        windower: DateWindower,
        repository: OffresRepository,
        base_filters: Optional[dict[str, Any]] = None,
    ) -> None:
        self._windower = windower
        self._repo = repository
        # los mismos filtros que el sync, o los conteos no son comparables
        self._base_filters = dict(base_filters or {})

    def run(
        self,
        since: datetime,
        until: datetime,
        departements: Optional[Iterable[str]] = None,
    ) -> AuditReport:
        since = ensure_utc(since)
        until = ensure_utc(until)
        if until <= since:
            raise ValueError("until debe ser posterior a since")

        codes = resolve_departements(departements)
        rows: list[AuditRow] = []

        logger.info(f"Auditoría France Travail [{isoformat_z(since)} -> {isoformat_z(until)}), {len(codes)} departamento(s)")

        with self._repo.connect() as conn:
            for code in codes:
                offers = self._windower.fetch_all_in_window(
                    {**self._base_filters, "departement": code}, since, until, partition_key=code
                )
                local = self._repo.count_active_offers(
                    conn,
                    provider=PROVIDER,
                    departement=code,
                    published_from=since,
                    published_to=until,
                )
                row = AuditRow(departement=code, upstream_count=len(offers), local_count=local)
                rows.append(row)
                logger.info(f"↳ Audit {code}: {row.upstream_count} (FT) vs {row.local_count} (DB) Δ={row.delta:+d}")

        report = AuditReport(since=since, until=until, rows=rows)
        total_delta = report.local_total - report.upstream_total
        logger.info(
            f"TOTAL FT: {report.upstream_total} | TOTAL DB: {report.local_total} | Δ={total_delta:+d}"
        )
        return report
