"""
Endpoints para sincronizacion de ofertas externas.
Permite lanzar el sync France Travail -> PostgreSQL y consultar su estado.
"""
import asyncio
from datetime import datetime
from typing import Optional

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import APIRouter, HTTPException, Query, Request, status
from loguru import logger
from pydantic import BaseModel

from offres.core.config import settings
from offres.core.scheduler import SYNC_JOB_ID
from offres.infrastructure.external.france_travail.departements import resolve_departements
from offres.infrastructure.external.france_travail.sync_service import FranceTravailSync
from offres.shared.exceptions.integration import SyncConfigError


router = APIRouter(prefix="/sync", tags=["Sync"])


class SyncResultDTO(BaseModel):
    """Resultado de una pasada de sincronizacion."""
    status: str
    sync_started_at: str
    window_min: str
    window_max: str
    partitions_total: int
    partitions_failed: list[str] = []
    fetched: int = 0
    upserted: int = 0
    deactivated: int = 0
    run_id: Optional[int] = None
    error: Optional[str] = None


class SyncRunDTO(BaseModel):
    """Fila de la bitacora sync_runs."""
    id: int
    provider: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str
    days: int
    partitions_total: int
    partitions_failed: list[str] = []
    fetched_count: int = 0
    upserted_count: int = 0
    deactivated_count: int = 0
    error: Optional[str] = None


class SyncStatusDTO(BaseModel):
    running: bool
    last_run: Optional[SyncRunDTO] = None


def _get_sync_service(request: Request) -> FranceTravailSync:
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise SyncConfigError("Servicio de sincronizacion France Travail no configurado")
    return service


def _parse_departements(raw: Optional[str]) -> Optional[list[str]]:
    if not raw:
        return None
    codes = [c.strip() for c in raw.split(",") if c.strip()]
    try:
        return resolve_departements(codes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post(
    "/france-travail",
    response_model=SyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar ofertas France Travail con PostgreSQL"
)
async def sync_france_travail(
    request: Request,
    days: int = Query(
        default=settings.SYNC_LOOKBACK_DAYS,
        ge=1,
        le=90,
        description="Ventana hacia atras (dias) por fecha de creacion"
    ),
    departements: Optional[str] = Query(
        default=None,
        description="Subconjunto de departamentos separados por coma (ej: 31,75,974)"
    ),
) -> SyncResultDTO:
    """
    Ejecuta una pasada completa del sync France Travail.

    - Solo una pasada a la vez: si hay otra en curso responde 409.
    - Los departamentos que fallan se reportan en partitions_failed.

    Returns:
        SyncResultDTO con los contadores de la pasada
    """
    service = _get_sync_service(request)
    codes = _parse_departements(departements)

    logger.info(f"Iniciando sync France Travail desde API (days={days})")

    # Ejecutar sync en thread separado para no bloquear el event loop
    result = await asyncio.to_thread(service.run_sync, days=days, departements=codes)

    return SyncResultDTO(**result.as_dict())


@router.get(
    "/france-travail/status",
    response_model=SyncStatusDTO,
    summary="Estado del sync France Travail"
)
async def get_sync_status(request: Request) -> SyncStatusDTO:
    """Indica si hay una pasada en curso y retorna la ultima registrada."""
    service = _get_sync_service(request)
    last_run = await asyncio.to_thread(service.get_last_run)
    return SyncStatusDTO(
        running=service.is_running,
        last_run=SyncRunDTO(**last_run) if last_run else None,
    )


@router.post("/france-travail/interval")
async def update_sync_interval(
    request: Request,
    hours: float = Query(..., gt=0, description="Nuevo intervalo del job en horas"),
):
    """
    Cambia el intervalo del job programado sin reiniciar la aplicacion.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="El scheduler no esta activo (SYNC_SCHEDULER_ENABLED=false o sin credenciales)"
        )

    scheduler.reschedule_job(SYNC_JOB_ID, trigger=IntervalTrigger(hours=hours))
    logger.info(f"Intervalo del sync actualizado a {hours}h")
    return {"message": f"Intervalo actualizado a {hours}h y job reiniciado", "success": True}
