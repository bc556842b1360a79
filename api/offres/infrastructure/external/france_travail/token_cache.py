"""
Cache del token OAuth2 (client_credentials) de France Travail.

Política de concurrencia:
- Un único threading.Lock protege lectura y renovación.
- El lock se mantiene durante el intercambio HTTP: los hilos que llegan
  mientras hay una renovación en vuelo esperan y reciben el token nuevo.
  Nunca hay dos intercambios simultáneos.

No hay reintentos aquí: un fallo se propaga como FranceTravailAuthError y
decide el caller (el orquestador registra el departamento como fallido).
"""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Optional

import requests
from loguru import logger

from offres.shared.exceptions.integration import FranceTravailAuthError
from offres.shared.utils.datetime_utils import utc_now

from .types import AccessToken, Clock, FranceTravailCredentials


class TokenCache:
    """
    Mantiene como máximo un token y su expiración.

    Se construye una vez al inicio del proceso y se inyecta al cliente de
    búsqueda (no hay estado global de módulo).
    """

    def __init__(
        self,
        credentials: FranceTravailCredentials,
        *,
        session: Optional[requests.Session] = None,
        safety_margin_s: int = 60,
        default_ttl_s: int = 1500,
        timeout_s: int = 10,
        clock: Clock = utc_now,
    ) -> None:
        self._creds = credentials
        self._session = session or requests.Session()
        self._margin = timedelta(seconds=safety_margin_s)
        self._default_ttl_s = default_ttl_s
        self._timeout_s = timeout_s
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    def get_token(self) -> str:
        """Retorna un bearer válido, renovándolo si está dentro del margen de expiración."""
        with self._lock:
            now = self._clock()
            if self._token is not None and self._token.is_usable(now, self._margin):
                return self._token.value

            self._token = self._exchange()
            return self._token.value

    def invalidate(self) -> None:
        """Descarta el token actual (p.ej. tras un 401 de la búsqueda)."""
        with self._lock:
            self._token = None

    def _exchange(self) -> AccessToken:
        data = {
            "grant_type": "client_credentials",
            "client_id": self._creds.client_id,
            "client_secret": self._creds.client_secret,
        }
        if self._creds.scope:
            data["scope"] = self._creds.scope

        try:
            resp = self._session.post(
                self._creds.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout_s,
            )
        except requests.RequestException as e:
            logger.error(f"Fallo de red obteniendo token France Travail: {e}")
            raise FranceTravailAuthError(f"Error de red en el token endpoint: {e}") from e

        if not 200 <= resp.status_code < 300:
            logger.error(f"Token France Travail rechazado ({resp.status_code}): {resp.text[:500]}")
            raise FranceTravailAuthError(
                f"Token endpoint respondió {resp.status_code}",
                upstream_status=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise FranceTravailAuthError("Respuesta del token endpoint no es JSON") from e

        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not value:
            raise FranceTravailAuthError("Respuesta del token endpoint sin access_token")

        ttl = self._parse_ttl(payload.get("expires_in"))
        issued_at = self._clock()
        logger.debug(f"Token France Travail renovado (ttl={ttl}s)")
        return AccessToken(
            value=str(value),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=ttl),
        )

    def _parse_ttl(self, raw) -> int:
        try:
            ttl = int(raw)
        except (TypeError, ValueError):
            return self._default_ttl_s
        return ttl if ttl > 0 else self._default_ttl_s
