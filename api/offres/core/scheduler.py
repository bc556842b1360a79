"""
Job periódico de sincronización (APScheduler).

El job corre en un hilo del BackgroundScheduler: nunca debe tumbar el
proceso, así que registra cualquier error y espera a la próxima ejecución.
"""
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from offres.infrastructure.external.france_travail.sync_service import FranceTravailSync, SyncResult
from offres.shared.exceptions.integration import SyncAlreadyRunningError

SYNC_JOB_ID = "france_travail_sync"


def run_scheduled_sync(service: FranceTravailSync, days: Optional[int] = None) -> Optional[SyncResult]:
    """
    Ejecuta una pasada desde el scheduler.

    Returns:
        SyncResult, o None si la pasada no corrió o falló.
    """
    logger.info("⏰ Sync programado France Travail: inicio")
    try:
        return service.run_sync(days=days)
    except SyncAlreadyRunningError:
        logger.warning("Sync programado omitido: ya hay una pasada en curso")
    except Exception as e:
        logger.exception(f"Sync programado France Travail falló: {e}")
    return None


def build_scheduler(
    service: FranceTravailSync,
    *,
    interval_hours: float = 2.0,
    days: Optional[int] = None,
) -> BackgroundScheduler:
    """
    Crea el scheduler con el job de sync registrado (sin arrancarlo).

    max_instances=1 y coalesce=True: si una pasada se alarga, las
    ejecuciones atrasadas se colapsan en una sola.
    """
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_scheduled_sync,
        trigger=IntervalTrigger(hours=interval_hours),
        id=SYNC_JOB_ID,
        name="Sync France Travail",
        kwargs={"service": service, "days": days},
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler
