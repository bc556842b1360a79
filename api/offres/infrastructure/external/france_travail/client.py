"""
Cliente mínimo de la API Offres d'emploi v2 de France Travail.

Requisitos cubiertos:
- requests
- paginación por entête Range ("offres 0-149"), NO por query string
- total de resultados leído del entête Content-Range ("offres 0-149/3021")
- rate-limit propio (~3 req/s) y backoff para 429/5xx
"""

from __future__ import annotations

import math
import re
import time
from typing import Any, Callable, Mapping, Optional

import requests
from loguru import logger

from offres.shared.exceptions.integration import FranceTravailFetchError

from .token_cache import TokenCache
from .types import MAX_FIRST_INDEX, MAX_LAST_INDEX, PAGE_SIZE, PageResult

RANGE_UNIT = "offres"

_CONTENT_RANGE_TOTAL = re.compile(r"/\s*(\d+)\s*$")


def build_range_header(from_index: int, to_index: int) -> str:
    """
    Construye el entête Range acotado a los límites de la API.

    - from nunca supera MAX_FIRST_INDEX (1000)
    - to nunca supera MAX_LAST_INDEX (1149) y siempre es >= from
    """
    first = max(0, min(from_index, MAX_FIRST_INDEX))
    last = max(first, min(to_index, MAX_LAST_INDEX))
    return f"{RANGE_UNIT} {first}-{last}"


def parse_total_from_content_range(header: Optional[str]) -> Optional[int]:
    """
    Extrae el total de un Content-Range "<unidad> <from>-<to>/<total>".

    Retorna None si el entête falta o no es parseable (p.ej. "/*").
    """
    if not header:
        return None
    match = _CONTENT_RANGE_TOTAL.search(str(header))
    if not match:
        return None
    return int(match.group(1))


def clean_filters(filters: Mapping[str, Any]) -> dict[str, str]:
    """Descarta filtros vacíos y serializa el resto como texto."""
    return {
        k: str(v)
        for k, v in filters.items()
        if v is not None and v != ""
    }


class FranceTravailClient:
    """
    Cliente HTTP de la búsqueda de ofertas. Una llamada = una página.

    Importante:
    - No transforma las ofertas: eso lo decide el mapper.
    - Respeta un intervalo mínimo entre requests consecutivos.
    """

    def __init__(
        self,
        token_cache: TokenCache,
        *,
        search_url: str,
        session: Optional[requests.Session] = None,
        timeout_s: int = 30,
        request_delay_s: float = 0.35,
        max_retries: int = 3,
        min_backoff_s: float = 1.0,
        max_backoff_s: float = 20.0,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tokens = token_cache
        self._search_url = search_url
        self._session = session or requests.Session()
        self._timeout_s = timeout_s
        self._request_delay_s = request_delay_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._sleep = sleep
        self._monotonic = monotonic
        self._last_request_at: Optional[float] = None

    def fetch_page(
        self,
        filters: Mapping[str, Any],
        from_index: int = 0,
        page_size: int = PAGE_SIZE,
    ) -> PageResult:
        """
        Pide una página de resultados para un juego de filtros.

        Args:
            filters: filtros FT (departement, motsCles, codeROME, minCreationDate...)
            from_index: índice del primer resultado (0-based)
            page_size: tamaño de página (máx. 150)

        Returns:
            PageResult con las ofertas (`resultats`) y el total reportado.
        """
        size = max(1, min(page_size, PAGE_SIZE))
        range_header = build_range_header(from_index, from_index + size - 1)
        params = clean_filters(filters)

        resp = self._request(params, range_header)

        if resp.status_code == 204:
            # Sin resultados para estos filtros
            return PageResult(items=[], total=0)

        try:
            payload = resp.json()
        except ValueError as e:
            raise FranceTravailFetchError(
                f"Respuesta no JSON de la búsqueda ({range_header})",
                upstream_status=resp.status_code,
            ) from e

        items = payload.get("resultats") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            items = []

        total = parse_total_from_content_range(resp.headers.get("Content-Range"))
        return PageResult(items=items, total=total)

    def _request(self, params: dict[str, str], range_header: str) -> requests.Response:
        """
        GET con backoff para 429/5xx y una renovación de token ante 401.

        Estrategia:
        - 200/206 (y 204 sin resultados): éxito.
        - 401: se invalida el token y se reintenta una vez.
        - 429: respeta Retry-After si existe, si no exponencial.
        - 5xx: exponencial.
        - resto: error inmediato.
        """
        token_refreshed = False
        attempt = 0

        while True:
            self._throttle()
            headers = {
                "Authorization": f"Bearer {self._tokens.get_token()}",
                "Accept": "application/json",
                "Range": range_header,
            }
            try:
                resp = self._session.get(
                    self._search_url,
                    params=params,
                    headers=headers,
                    timeout=self._timeout_s,
                )
            except requests.RequestException as e:
                raise FranceTravailFetchError(f"Error de red en la búsqueda France Travail: {e}") from e

            if resp.status_code in (200, 204, 206):
                return resp

            if resp.status_code == 401 and not token_refreshed:
                logger.warning("France Travail respondió 401: renovando token")
                self._tokens.invalidate()
                token_refreshed = True
                continue

            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise FranceTravailFetchError(
                        f"France Travail error {resp.status_code} tras {attempt} reintentos: {resp.text[:500]}",
                        upstream_status=resp.status_code,
                    )
                sleep_s = self._backoff_seconds(attempt, resp.headers.get("Retry-After"))
                logger.warning(
                    f"France Travail {resp.status_code} ({range_header}); reintento {attempt + 1} en {sleep_s:.1f}s"
                )
                self._sleep(sleep_s)
                attempt += 1
                continue

            raise FranceTravailFetchError(
                f"Búsqueda France Travail falló {resp.status_code}: {resp.text[:500]}",
                upstream_status=resp.status_code,
            )

    def _backoff_seconds(self, attempt: int, retry_after: Optional[str]) -> float:
        # Retry-After acotado a [0, max_backoff_s]
        if retry_after:
            try:
                seconds = float(retry_after)
            except ValueError:
                seconds = None
            if seconds is not None and math.isfinite(seconds):
                return min(self._max_backoff_s, max(0.0, seconds))
        return min(self._max_backoff_s, self._min_backoff_s * (2**attempt))

    def _throttle(self) -> None:
        """Garantiza request_delay_s entre dos requests consecutivos."""
        now = self._monotonic()
        if self._last_request_at is not None:
            wait = self._request_delay_s - (now - self._last_request_at)
            if wait > 0:
                self._sleep(wait)
                now = self._monotonic()
        self._last_request_at = now
