"""
Servicio de sincronización France Travail -> Postgres.

Diseño (resumen):
- Una pasada = todos los departamentos, en secuencia (rate-limit de la API).
- Por departamento: fenêtrage por fechas -> mapeo -> UPSERT por chunks.
- sync_started_at se captura una sola vez y se usa para estampar
  last_seen_at y para reconciliar al final.
- Reconciliación: las ofertas con last_seen_at < sync_started_at pasan a
  is_active=false (nunca se borran). Solo se reconcilian los departamentos
  procesados con éxito; una pasada completa sin fallos cubre todo el provider.

Política de resiliencia:
- Un departamento que falla (auth, fetch o storage) se registra y se
  continúa con el siguiente. Se acepta staleness parcial a cambio de progreso.
- Si todos fallan, no se reconcilia (nada fue re-confirmado).
- Si la pasada se cancela, no se reconcilia.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from loguru import logger

from offres.core.config import Settings
from offres.shared.exceptions.integration import (
    SyncAlreadyRunningError,
    SyncCancelledError,
    SyncConfigError,
)
from offres.shared.utils.datetime_utils import isoformat_z, utc_now

from .batcher import UpsertBatcher
from .client import FranceTravailClient
from .departements import DEPARTEMENTS, resolve_departements
from .mapper import normalize_offer
from .pg_repository import OffresRepository
from .token_cache import TokenCache
from .types import PROVIDER, Clock, FranceTravailCredentials, SyncCancellation
from .windower import DateWindower


@dataclass(frozen=True)
class SyncResult:
    status: str
    sync_started_at: datetime
    window_min: datetime
    window_max: datetime
    partitions_total: int
    partitions_failed: list[str] = field(default_factory=list)
    fetched: int = 0
    upserted: int = 0
    deactivated: int = 0
    run_id: Optional[int] = None
    error: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "sync_started_at": isoformat_z(self.sync_started_at),
            "window_min": isoformat_z(self.window_min),
            "window_max": isoformat_z(self.window_max),
            "partitions_total": self.partitions_total,
            "partitions_failed": list(self.partitions_failed),
            "fetched": self.fetched,
            "upserted": self.upserted,
            "deactivated": self.deactivated,
            "run_id": self.run_id,
            "error": self.error,
        }


class FranceTravailSync:
    """
    Orquestador de una pasada completa.

    Solo una pasada a la vez: lock de proceso (no bloqueante) + advisory
    lock de Postgres sobre la conexión de la pasada.
    """

    _run_lock = threading.Lock()

    def __init__(
        self,
        *,
        repository: OffresRepository,
        windower: DateWindower,
        batcher: Optional[UpsertBatcher] = None,
        lookback_days: int = 14,
        chunk_size: int = 1000,
        advisory_lock_key: int = 731_150,
        base_filters: Optional[dict[str, Any]] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repo = repository
        self._windower = windower
        self._batcher = batcher or UpsertBatcher(repository)
        self._lookback_days = lookback_days
        self._chunk_size = chunk_size
        self._lock_key = advisory_lock_key
        self._base_filters = dict(base_filters or {})
        self._clock = clock

    @property
    def windower(self) -> DateWindower:
        return self._windower

    @property
    def repository(self) -> OffresRepository:
        return self._repo

    @property
    def base_filters(self) -> dict[str, Any]:
        return dict(self._base_filters)

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def get_last_run(self) -> Optional[dict[str, Any]]:
        """Última fila de sync_runs del provider (o None si nunca corrió)."""
        with self._repo.connect() as conn:
            return self._repo.get_last_run(conn, provider=PROVIDER)

    def run_sync(
        self,
        *,
        days: Optional[int] = None,
        departements: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[datetime] = None,
    ) -> SyncResult:
        """
        Ejecuta una pasada completa.

        Args:
            days: ventana hacia atrás en días (default: lookback_days)
            departements: subconjunto de departamentos (default: todos)
            cancel_event: evento de cancelación cooperativa
            deadline: instante límite de la pasada

        Raises:
            SyncAlreadyRunningError: si otra pasada tiene el lock.
        """
        days = self._lookback_days if days is None else days
        if days <= 0:
            raise ValueError("days debe ser > 0")
        codes = resolve_departements(departements)

        if not self._run_lock.acquire(blocking=False):
            logger.warning("Sync France Travail ya está corriendo en este proceso. Saliendo.")
            raise SyncAlreadyRunningError(PROVIDER)
        try:
            with self._repo.connect() as conn:
                if not self._repo.try_advisory_lock(conn, self._lock_key):
                    logger.warning("Sync France Travail ya está corriendo (advisory lock ocupado). Saliendo.")
                    raise SyncAlreadyRunningError(PROVIDER)
                try:
                    cancellation = SyncCancellation(cancel_event, deadline, clock=self._clock)
                    return self._run_locked(conn, days=days, codes=codes, cancellation=cancellation)
                finally:
                    self._release_advisory_lock(conn)
        finally:
            self._run_lock.release()

    def _run_locked(self, conn, *, days: int, codes: list[str], cancellation: SyncCancellation) -> SyncResult:
        sync_started_at = self._clock()
        window_min = sync_started_at - timedelta(days=days)
        window_max = sync_started_at

        logger.info(
            f"Sync France Travail: {len(codes)} departamento(s) "
            f"[{isoformat_z(window_min)} -> {isoformat_z(window_max)})"
        )
        run_id = self._repo.start_run(
            conn,
            provider=PROVIDER,
            started_at=sync_started_at,
            days=days,
            partitions_total=len(codes),
        )

        failed: list[str] = []
        fetched = upserted = deactivated = 0
        status = "success"
        error: Optional[str] = None

        try:
            for code in codes:
                cancellation.check()
                try:
                    n_fetched, n_upserted = self._sync_partition(
                        conn,
                        code=code,
                        window_min=window_min,
                        window_max=window_max,
                        seen_at=sync_started_at,
                        cancellation=cancellation,
                    )
                except SyncCancelledError:
                    raise
                except Exception as e:
                    conn.rollback()
                    failed.append(code)
                    logger.exception(f"↳ Departamento {code} fallido, se continúa: {e}")
                    continue
                fetched += n_fetched
                upserted += n_upserted

            if codes and len(failed) == len(codes):
                status = "error"
                error = "Todos los departamentos fallaron; reconciliación omitida"
                logger.error(error)
            else:
                deactivated = self._repo.deactivate_unseen(
                    conn,
                    provider=PROVIDER,
                    seen_before=sync_started_at,
                    departements=_reconcile_scope(codes, failed),
                )
                conn.commit()
                status = "partial" if failed else "success"

        except SyncCancelledError as e:
            conn.rollback()
            status = "cancelled"
            error = e.message
            logger.warning(f"{e.message}; reconciliación omitida")

        except Exception as e:
            conn.rollback()
            # Intentar persistir el error del run. Si esto falla, igual relanzamos.
            try:
                self._repo.finish_run(
                    conn,
                    run_id=run_id,
                    status="error",
                    partitions_failed=failed,
                    fetched_count=fetched,
                    upserted_count=upserted,
                    deactivated_count=deactivated,
                    error=str(e)[:2000],
                )
            except Exception:
                conn.rollback()
            raise

        self._repo.finish_run(
            conn,
            run_id=run_id,
            status=status,
            partitions_failed=failed,
            fetched_count=fetched,
            upserted_count=upserted,
            deactivated_count=deactivated,
            error=error,
        )

        result = SyncResult(
            status=status,
            sync_started_at=sync_started_at,
            window_min=window_min,
            window_max=window_max,
            partitions_total=len(codes),
            partitions_failed=failed,
            fetched=fetched,
            upserted=upserted,
            deactivated=deactivated,
            run_id=run_id,
            error=error,
        )
        if status == "success":
            logger.success(
                f"✓ Sync France Travail terminado: fetched={fetched}, upserted={upserted}, deactivated={deactivated}"
            )
        else:
            logger.warning(
                f"Sync France Travail terminado con status={status}: fetched={fetched}, "
                f"upserted={upserted}, deactivated={deactivated}, fallidos={failed}"
            )
        return result

    def _sync_partition(
        self,
        conn,
        *,
        code: str,
        window_min: datetime,
        window_max: datetime,
        seen_at: datetime,
        cancellation: SyncCancellation,
    ) -> tuple[int, int]:
        offers = self._windower.fetch_all_in_window(
            {**self._base_filters, "departement": code},
            window_min,
            window_max,
            partition_key=code,
            cancellation=cancellation,
        )

        rows: list[dict[str, Any]] = []
        skipped = 0
        for raw in offers:
            row = normalize_offer(raw)
            if not row["external_id"]:
                skipped += 1
                continue
            row["departement"] = code
            row["last_seen_at"] = seen_at
            row["is_active"] = True
            rows.append(row)

        if skipped:
            logger.warning(f"↳ Departamento {code}: {skipped} oferta(s) sin id descartada(s)")

        result = self._batcher.upsert_all(conn, rows, self._chunk_size)
        logger.info(f"↳ Departamento {code}: {len(offers)} ofertas, {result.upserted_count} upserts")
        return len(offers), result.upserted_count

    def _release_advisory_lock(self, conn) -> None:
        try:
            conn.rollback()
            self._repo.advisory_unlock(conn, self._lock_key)
            conn.commit()
        except Exception as e:
            # Al cerrar la conexión Postgres libera el lock igualmente.
            logger.warning(f"No se pudo liberar el advisory lock {self._lock_key}: {e}")


def _reconcile_scope(codes: list[str], failed: list[str]) -> Optional[list[str]]:
    """
    Particiones a reconciliar.

    None (todo el provider) solo para una pasada completa y sin fallos; si no,
    únicamente los departamentos procesados con éxito en esta pasada.
    """
    if not failed and set(codes) == set(DEPARTEMENTS):
        return None
    return [c for c in codes if c not in failed]


def build_sync_service(config: Settings) -> FranceTravailSync:
    """
    Constructor "oficial" del pipeline a partir de Settings.

    Se llama una vez al arrancar el proceso (API o script): el TokenCache
    resultante se comparte entre todas las pasadas.

    Raises:
        SyncConfigError: si faltan credenciales de France Travail.
    """
    missing = [
        name
        for name in ("FRANCE_TRAVAIL_CLIENT_ID", "FRANCE_TRAVAIL_CLIENT_SECRET", "FRANCE_TRAVAIL_TOKEN_URL")
        if not getattr(config, name)
    ]
    if missing:
        raise SyncConfigError(f"Faltan variables de entorno obligatorias: {', '.join(missing)}")

    token_cache = TokenCache(
        FranceTravailCredentials(
            client_id=config.FRANCE_TRAVAIL_CLIENT_ID,
            client_secret=config.FRANCE_TRAVAIL_CLIENT_SECRET,
            scope=config.FRANCE_TRAVAIL_SCOPE,
            token_url=config.FRANCE_TRAVAIL_TOKEN_URL,
        ),
        safety_margin_s=config.FRANCE_TRAVAIL_TOKEN_MARGIN_S,
        default_ttl_s=config.FRANCE_TRAVAIL_DEFAULT_TOKEN_TTL_S,
        timeout_s=config.FRANCE_TRAVAIL_TIMEOUT_S,
    )
    client = FranceTravailClient(
        token_cache,
        search_url=config.FRANCE_TRAVAIL_SEARCH_URL,
        timeout_s=config.FRANCE_TRAVAIL_TIMEOUT_S,
        request_delay_s=config.FRANCE_TRAVAIL_REQUEST_DELAY_MS / 1000,
        max_retries=config.FRANCE_TRAVAIL_MAX_RETRIES,
    )
    windower = DateWindower(
        client,
        page_size=config.FRANCE_TRAVAIL_PAGE_SIZE,
        min_span=timedelta(hours=config.SYNC_MIN_WINDOW_HOURS),
    )
    repository = OffresRepository(config.psycopg_dsn)
    return FranceTravailSync(
        repository=repository,
        windower=windower,
        lookback_days=config.SYNC_LOOKBACK_DAYS,
        chunk_size=config.SYNC_UPSERT_CHUNK_SIZE,
        advisory_lock_key=config.SYNC_ADVISORY_LOCK_KEY,
        base_filters=config.FRANCE_TRAVAIL_SEARCH_FILTERS,
    )
