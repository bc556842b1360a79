"""
CLI: auditoría France Travail vs Postgres.

Compara, por departamento, las ofertas que reporta France Travail en la
ventana [since, until) con las ofertas activas en base. Sale con código 2
si hay algún hueco (útil en CI / monitoreo).

Ejecución:
  python scripts/audit_france_travail.py
  python scripts/audit_france_travail.py --since 2026-10-01T00:00:00Z --deps 31,75,974
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from offres.core.config import settings
from offres.infrastructure.external.france_travail.audit import FranceTravailAudit
from offres.infrastructure.external.france_travail.sync_service import build_sync_service
from offres.shared.exceptions.base import AppException
from offres.shared.utils.datetime_utils import parse_iso_datetime, utc_now

EXIT_GAP = 2


def _parse_dt(value: str):
    dt = parse_iso_datetime(value)
    if dt is None:
        raise argparse.ArgumentTypeError(f"Fecha ISO inválida: {value}")
    return dt


def main() -> int:
    parser = argparse.ArgumentParser(description="Auditoría France Travail vs Postgres")
    parser.add_argument("--since", type=_parse_dt, default=None, help="Inicio ISO (default: hace 7 días).")
    parser.add_argument("--until", type=_parse_dt, default=None, help="Fin ISO, exclusivo (default: ahora).")
    parser.add_argument("--deps", default="", help="Departamentos separados por coma (ej: 31,75,974).")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    until = args.until or utc_now()
    since = args.since or until - timedelta(days=7)
    deps = [c.strip() for c in args.deps.split(",") if c.strip()] or None

    try:
        # Mismo pipeline (token, cliente, fenêtrage) que el sync
        service = build_sync_service(settings)
        audit = FranceTravailAudit(
            windower=service.windower,
            repository=service.repository,
            base_filters=service.base_filters,
        )
        report = audit.run(since, until, deps)
    except ValueError as e:
        logger.error(f"Argumentos inválidos: {e}")
        return 1
    except AppException as e:
        logger.error(f"Auditoría abortada [{e.error_code}]: {e.message}")
        return 1

    gaps = [r for r in report.rows if r.delta != 0]
    for row in gaps:
        logger.warning(f"Hueco en {row.departement}: FT={row.upstream_count} DB={row.local_count} Δ={row.delta:+d}")

    if report.has_gap:
        logger.error(f"{len(gaps)} departamento(s) con diferencias")
        return EXIT_GAP

    logger.success("Sin diferencias entre France Travail y Postgres")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
