"""
CLI: France Travail -> Postgres (una pasada completa).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) si el scheduler del API está
    desactivado (SYNC_SCHEDULER_ENABLED=false).

Variables de entorno requeridas:
  - FRANCE_TRAVAIL_CLIENT_ID
  - FRANCE_TRAVAIL_CLIENT_SECRET
  - DATABASE_URL (o DATABASE_HOST/PORT/USER/PASSWORD/NAME)

Ejecución:
  python scripts/france_travail_sync.py
  python scripts/france_travail_sync.py --days 7 --departements 31,75,974
  python scripts/france_travail_sync.py --max-minutes 90
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `offres/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# Cargar variables desde .env si existe (api/.env o raíz del repo).
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from offres.core.config import settings
from offres.infrastructure.external.france_travail.sync_service import build_sync_service
from offres.shared.exceptions.base import AppException
from offres.shared.utils.datetime_utils import utc_now


def _split_codes(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    return [c.strip() for c in raw.split(",") if c.strip()]


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync France Travail -> Postgres")
    parser.add_argument(
        "--days",
        type=int,
        default=settings.SYNC_LOOKBACK_DAYS,
        help=f"Ventana hacia atrás en días (default: {settings.SYNC_LOOKBACK_DAYS}).",
    )
    parser.add_argument(
        "--departements",
        default=None,
        help="Subconjunto de departamentos separados por coma (ej: 31,75,974).",
    )
    parser.add_argument(
        "--max-minutes",
        type=float,
        default=None,
        help="Deadline de la pasada; al alcanzarlo se cancela sin reconciliar.",
    )
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    deadline = utc_now() + timedelta(minutes=args.max_minutes) if args.max_minutes else None

    try:
        service = build_sync_service(settings)
        logger.info("Iniciando France Travail -> Postgres sync...")
        result = service.run_sync(
            days=args.days,
            departements=_split_codes(args.departements),
            deadline=deadline,
        )
    except ValueError as e:
        logger.error(f"Argumentos inválidos: {e}")
        return 2
    except AppException as e:
        logger.error(f"Sync abortado [{e.error_code}]: {e.message}")
        return 1

    logger.info(
        f"Sync {result.status}: fetched={result.fetched}, upserted={result.upserted}, "
        f"deactivated={result.deactivated}, fallidos={result.partitions_failed}"
    )
    return 0 if result.status == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
