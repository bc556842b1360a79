"""
Tipos y utilidades puras para el pipeline France Travail -> Postgres.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from offres.shared.exceptions.integration import SyncCancelledError
from offres.shared.utils.datetime_utils import ensure_utc, isoformat_z, utc_now

PROVIDER = "france_travail"

# Límites de paginación de la API Offres v2 (entête Range).
PAGE_SIZE = 150
MAX_FIRST_INDEX = 1000
MAX_LAST_INDEX = 1149
RESULT_CEILING = MAX_LAST_INDEX + 1

RawListing = dict[str, Any]
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class FranceTravailCredentials:
    client_id: str
    client_secret: str
    scope: str
    token_url: str


@dataclass(frozen=True)
class AccessToken:
    """Token OAuth2 emitido por France Travail. Se reemplaza, nunca se muta."""

    value: str
    issued_at: datetime
    expires_at: datetime

    def is_usable(self, now: datetime, margin: timedelta) -> bool:
        return now < self.expires_at - margin


@dataclass(frozen=True)
class PageResult:
    """Una página de la búsqueda: ofertas + total reportado por Content-Range."""

    items: list[RawListing]
    total: Optional[int]


@dataclass(frozen=True)
class SearchWindow:
    """
    Ventana de búsqueda por fecha de creación.

    min_creation es inclusivo y max_creation exclusivo. Nunca se persiste:
    solo vive durante la recursión del windower.
    """

    partition_key: Optional[str]
    min_creation: datetime
    max_creation: datetime
    extra_filters: dict[str, Any] = field(default_factory=dict)

    @property
    def span(self) -> timedelta:
        return self.max_creation - self.min_creation

    def to_params(self) -> dict[str, Any]:
        return {
            **self.extra_filters,
            "minCreationDate": isoformat_z(self.min_creation),
            "maxCreationDate": isoformat_z(self.max_creation),
        }

    def split(self) -> tuple["SearchWindow", "SearchWindow"]:
        """Bisecta en el punto medio (redondeado a segundos)."""
        half = timedelta(seconds=int(self.span.total_seconds() // 2))
        mid = self.min_creation + half
        left = SearchWindow(self.partition_key, self.min_creation, mid, self.extra_filters)
        right = SearchWindow(self.partition_key, mid, self.max_creation, self.extra_filters)
        return left, right


class SyncCancellation:
    """
    Cancelación cooperativa de una pasada.

    - cancel_event: threading.Event que otro hilo puede activar.
    - deadline: instante a partir del cual la pasada se aborta.
    """

    def __init__(
        self,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[datetime] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._event = cancel_event
        self._deadline = ensure_utc(deadline) if deadline else None
        self._clock = clock

    def check(self) -> None:
        if self._event is not None and self._event.is_set():
            raise SyncCancelledError("cancel_event activado")
        if self._deadline is not None and self._clock() >= self._deadline:
            raise SyncCancelledError(f"deadline {isoformat_z(self._deadline)} alcanzado")
