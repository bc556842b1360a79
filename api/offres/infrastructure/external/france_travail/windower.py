"""
Fenêtrage por dates de création.

La API corta cualquier consulta en 1150 resultados (índices 0..1149).
Cuando una ventana reporta más, se parte en dos mitades temporales y se
vuelve a consultar cada una, hasta que todas las hojas quepan bajo el techo
o la ventana sea más corta que la granularidad mínima (un día por defecto).

La recursión se implementa con una pila explícita de ventanas.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from loguru import logger

from offres.shared.utils.datetime_utils import ensure_utc, isoformat_z

from .client import FranceTravailClient
from .types import (
    MAX_FIRST_INDEX,
    MAX_LAST_INDEX,
    PAGE_SIZE,
    RESULT_CEILING,
    PageResult,
    RawListing,
    SearchWindow,
    SyncCancellation,
)

MIN_SPLITTABLE_SPAN = timedelta(seconds=2)


def split_window(window: SearchWindow, min_span: timedelta) -> Optional[tuple[SearchWindow, SearchWindow]]:
    """
    Bisecta una ventana demasiado densa.

    Retorna None si la ventana ya no es divisible (span <= min_span, o menos
    de dos segundos: el punto medio se redondea a segundos y una mitad
    quedaría vacía).
    Las dos mitades son disjuntas y contiguas: [min, mid) y [mid, max).
    """
    if window.span <= min_span or window.span < MIN_SPLITTABLE_SPAN:
        return None
    return window.split()


class DateWindower:
    """
    Recupera todas las ofertas de una ventana [min, max) para unos filtros.

    Uso:
        windower = DateWindower(client)
        offers = windower.fetch_all_in_window({"departement": "31"}, since, now)
    """

    def __init__(
        self,
        client: FranceTravailClient,
        *,
        page_size: int = PAGE_SIZE,
        min_span: timedelta = timedelta(days=1),
    ) -> None:
        if min_span < timedelta(seconds=1):
            raise ValueError(f"min_span debe ser >= 1 segundo (recibido: {min_span})")
        self._client = client
        self._page_size = page_size
        self._min_span = min_span

    def fetch_all_pages(
        self,
        filters: Mapping[str, Any],
        *,
        cancellation: Optional[SyncCancellation] = None,
        stop_when_dense: bool = False,
    ) -> PageResult:
        """
        Recorre las páginas 0-149, 150-299, ..., hasta el índice 1149 de un juego de filtros.

        El primer índice de un Range no puede pasar de 1000: la última página
        se pide como 1000-1149 y se descartan los índices ya recibidos.

        Se detiene con una página corta o vacía, o al alcanzar el techo absoluto.
        Con stop_when_dense=True se corta tras la primera página si el total
        reportado ya supera el techo (el caller va a re-consultar por mitades).
        """
        items: list[RawListing] = []
        total: Optional[int] = None
        from_index = 0

        while from_index <= MAX_LAST_INDEX:
            if cancellation is not None:
                cancellation.check()

            request_from = min(from_index, MAX_FIRST_INDEX)
            expected = min(self._page_size, MAX_LAST_INDEX - request_from + 1)
            page = self._client.fetch_page(filters, request_from, self._page_size)
            if page.total is not None:
                total = page.total
            items.extend(page.items[from_index - request_from:])

            if stop_when_dense and total is not None and total > RESULT_CEILING:
                break
            if len(page.items) < expected:
                break

            from_index = request_from + len(page.items)

        return PageResult(items=items, total=total)

    def fetch_all_in_window(
        self,
        filters: Mapping[str, Any],
        min_dt: datetime,
        max_dt: datetime,
        *,
        partition_key: Optional[str] = None,
        cancellation: Optional[SyncCancellation] = None,
    ) -> list[RawListing]:
        """
        Retorna cada oferta creada en [min_dt, max_dt) una sola vez.

        Los fallos de fetch se propagan de inmediato (sin saltar ventanas).
        """
        root = SearchWindow(
            partition_key=partition_key,
            min_creation=ensure_utc(min_dt),
            max_creation=ensure_utc(max_dt),
            extra_filters=dict(filters),
        )
        if root.span <= timedelta(0):
            return []

        results: list[RawListing] = []
        seen_ids: set[str] = set()
        stack: list[SearchWindow] = [root]
        leaves = 0

        while stack:
            window = stack.pop()
            halves = split_window(window, self._min_span)

            page = self.fetch_all_pages(
                window.to_params(),
                cancellation=cancellation,
                stop_when_dense=halves is not None,
            )

            if page.total is not None and page.total > RESULT_CEILING:
                if halves is not None:
                    logger.debug(
                        f"Ventana densa ({page.total} > {RESULT_CEILING}) "
                        f"[{isoformat_z(window.min_creation)} -> {isoformat_z(window.max_creation)}]: bisectando"
                    )
                    left, right = halves
                    # LIFO: la mitad izquierda se procesa primero
                    stack.append(right)
                    stack.append(left)
                    continue

                logger.warning(
                    f"Ventana mínima truncada: {page.total} ofertas reportadas, "
                    f"{len(page.items)} recuperadas "
                    f"[{isoformat_z(window.min_creation)} -> {isoformat_z(window.max_creation)}] "
                    f"partition={partition_key}"
                )

            leaves += 1
            for item in page.items:
                offer_id = item.get("id") if isinstance(item, dict) else None
                if offer_id is not None:
                    key = str(offer_id)
                    if key in seen_ids:
                        continue
                    seen_ids.add(key)
                results.append(item)

        logger.debug(f"Ventana completa partition={partition_key}: {len(results)} ofertas en {leaves} hoja(s)")
        return results
