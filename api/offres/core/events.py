"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
from fastapi import FastAPI
from loguru import logger

from offres.core.config import settings
from offres.core.scheduler import build_scheduler
from offres.infrastructure.external.france_travail.sync_service import build_sync_service
from offres.shared.exceptions.integration import SyncConfigError


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa recursos al inicio de la aplicacion."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            # Validar configuracion critica
            _validate_config()

            # Servicio de sync (los tests pueden inyectar uno propio)
            if getattr(app.state, "sync_service", None) is None:
                try:
                    app.state.sync_service = build_sync_service(settings)
                    logger.info("Servicio de sync France Travail inicializado")
                except SyncConfigError as e:
                    app.state.sync_service = None
                    logger.warning(f"CONFIG: {e.message} - el sync no estara disponible")

            # Scheduler del sync periodico
            app.state.scheduler = None
            if settings.SYNC_SCHEDULER_ENABLED and app.state.sync_service is not None:
                scheduler = build_scheduler(
                    app.state.sync_service,
                    interval_hours=settings.SYNC_INTERVAL_HOURS,
                    days=settings.SYNC_LOOKBACK_DAYS,
                )
                scheduler.start()
                app.state.scheduler = scheduler
                logger.info(f"Scheduler iniciado: sync cada {settings.SYNC_INTERVAL_HOURS}h")

            logger.success("Aplicacion iniciada correctamente")

            # Mostrar URLs disponibles
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _validate_config() -> None:
    """Valida que la configuracion critica este presente."""
    warnings = []

    if not settings.FRANCE_TRAVAIL_CLIENT_ID or not settings.FRANCE_TRAVAIL_CLIENT_SECRET:
        warnings.append("FRANCE_TRAVAIL_CLIENT_ID/SECRET no configuradas - el sync no funcionara")

    if settings.FRANCE_TRAVAIL_PAGE_SIZE > 150:
        warnings.append("FRANCE_TRAVAIL_PAGE_SIZE > 150 - la API lo limita a 150")

    # Mostrar advertencias
    for warning in warnings:
        logger.warning(f"CONFIG: {warning}")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    # Determinar la URL base de acceso
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync:        {base_url}/api/v1/sync/france-travail</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            # No esperar a una pasada en curso: el advisory lock se libera al cerrar la conexion
            scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Ciclo de vida de la aplicacion: startup antes de servir, shutdown al cerrar.

    Args:
        app: Instancia de FastAPI
    """
    await startup_handler(app)()
    try:
        yield
    finally:
        await shutdown_handler(app)()
