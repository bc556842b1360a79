"""
Utilidades para manejo de fechas y horas.

France Travail espera fechas ISO-8601 en UTC sin milisegundos
(``2025-01-31T12:00:00Z``) y devuelve fechas con o sin zona.
Todo lo que entra o sale del pipeline pasa por aquí.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza un datetime a UTC (aware).

    Un datetime naive se interpreta como UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """Serializa a ISO-8601 con sufijo 'Z' y sin microsegundos."""
    dt_utc = ensure_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """
    Convierte un string ISO-8601 a datetime UTC.

    Returns:
        datetime aware, o None si el valor falta o no es parseable.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)
