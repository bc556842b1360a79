"""
Excepciones de la integración France Travail y del pipeline de sincronización.

Taxonomía:
- FranceTravailAuthError: falló el intercambio client_credentials.
- FranceTravailFetchError: la búsqueda falló o devolvió un status inesperado.
- OffresStorageError: PostgreSQL rechazó un upsert/update.
- SyncAlreadyRunningError / SyncCancelledError / SyncConfigError: control del job.

Los defectos de mapeo no tienen excepción: el mapper degrada a None.
"""
from typing import Optional

from offres.shared.exceptions.base import AppException


class FranceTravailAuthError(AppException):
    """No se pudo obtener un token OAuth2 de France Travail."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="FT_AUTH_ERROR",
            details={"upstream_status": upstream_status} if upstream_status else None,
        )
        self.upstream_status = upstream_status


class FranceTravailFetchError(AppException):
    """La búsqueda de ofertas falló (red o status distinto de 200/204/206)."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="FT_FETCH_ERROR",
            details={"upstream_status": upstream_status} if upstream_status else None,
        )
        self.upstream_status = upstream_status


class OffresStorageError(AppException):
    """Error de persistencia de ofertas (constraint, conectividad...)."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=500,
            error_code="STORAGE_ERROR",
            details={"chunk_index": chunk_index} if chunk_index is not None else None,
        )
        self.chunk_index = chunk_index


class SyncAlreadyRunningError(AppException):
    """Ya hay una pasada de sincronización en curso."""

    def __init__(self, provider: str):
        super().__init__(
            message=f"Ya hay una sincronización '{provider}' en curso",
            status_code=409,
            error_code="SYNC_ALREADY_RUNNING",
            details={"provider": provider},
        )


class SyncCancelledError(AppException):
    """La pasada fue cancelada (evento o deadline)."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Sincronización cancelada: {reason}",
            status_code=499,
            error_code="SYNC_CANCELLED",
            details={"reason": reason},
        )
        self.reason = reason


class SyncConfigError(AppException):
    """Configuración incompleta o inválida del pipeline."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=500,
            error_code="SYNC_CONFIG_ERROR",
        )
