"""
Repositorio Postgres (psycopg) para:
- tabla `offres` (UPSERT por clave natural provider + external_id)
- reconciliación de ofertas no vistas (is_active=false, nunca DELETE)
- tabla `sync_runs` (bitácora de pasadas)
- advisory lock para evitar pasadas simultáneas

El DDL vive en las migraciones de Alembic (ver OffreModel / SyncRunModel).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from offres.shared.exceptions.integration import OffresStorageError
from offres.shared.utils.datetime_utils import ensure_utc

OFFRES_TABLE = "offres"
SYNC_RUNS_TABLE = "sync_runs"
NATURAL_KEY: tuple[str, ...] = ("provider", "external_id")
JSON_COLUMNS = frozenset({"source_payload"})


def build_upsert_sql(
    columns: Sequence[str],
    *,
    table: str = OFFRES_TABLE,
    conflict_keys: Sequence[str] = NATURAL_KEY,
) -> str:
    """
    INSERT ... ON CONFLICT (clave natural) DO UPDATE.

    La fila existente se reemplaza completa con los valores nuevos, salvo
    last_seen_at que nunca retrocede (GREATEST).
    """
    missing = [k for k in conflict_keys if k not in columns]
    if missing:
        raise ValueError(f"Faltan columnas de la clave natural para UPSERT: {missing}")

    insert_cols_sql = ", ".join(f'"{c}"' for c in columns)
    placeholders = ", ".join(["%s"] * len(columns))
    conflict_sql = ", ".join(f'"{k}"' for k in conflict_keys)

    set_parts = []
    for c in columns:
        if c in conflict_keys:
            continue
        if c == "last_seen_at":
            set_parts.append(f'"{c}" = GREATEST("{table}"."{c}", EXCLUDED."{c}")')
        else:
            set_parts.append(f'"{c}" = EXCLUDED."{c}"')
    set_parts.append('"synced_at" = now()')

    return f"""
        INSERT INTO "{table}" ({insert_cols_sql})
        VALUES ({placeholders})
        ON CONFLICT ({conflict_sql})
        DO UPDATE SET
            {", ".join(set_parts)}
    """


def _adapt(column: str, value: Any) -> Any:
    if column in JSON_COLUMNS and value is not None:
        return Jsonb(value)
    return value


class OffresRepository:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def connect(self) -> psycopg.Connection:
        """
        Abre conexión (autocommit False). El caller controla commits.
        """
        try:
            return psycopg.connect(self._dsn, row_factory=dict_row)
        except psycopg.OperationalError as e:
            raise OffresStorageError(f"No se pudo conectar a Postgres: {e}") from e

    def try_advisory_lock(self, conn: psycopg.Connection, lock_key: int) -> bool:
        """
        Evita pasadas simultáneas (incluso desde procesos distintos).
        """
        with conn.cursor() as cur:
            cur.execute("SELECT pg_try_advisory_lock(%s) AS locked", (lock_key,))
            row = cur.fetchone()
            return bool(row and row.get("locked"))

    def advisory_unlock(self, conn: psycopg.Connection, lock_key: int) -> None:
        with conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_unlock(%s)", (lock_key,))

    def upsert_rows(
        self,
        conn: psycopg.Connection,
        *,
        rows: Iterable[dict[str, Any]],
        table: str = OFFRES_TABLE,
    ) -> int:
        """
        UPSERT de un chunk por clave natural. Retorna las filas enviadas.

        Asume que todas las filas traen el mismo conjunto de columnas.
        No hace commit: cada chunk es una unidad de trabajo del caller.
        """
        rows_list = list(rows)
        if not rows_list:
            return 0

        columns = list(rows_list[0].keys())
        sql = build_upsert_sql(columns, table=table)
        values = [tuple(_adapt(c, row.get(c)) for c in columns) for row in rows_list]

        try:
            with conn.cursor() as cur:
                cur.executemany(sql, values)
        except psycopg.Error as e:
            raise OffresStorageError(f"UPSERT en {table} rechazado: {e}") from e
        return len(rows_list)

    def deactivate_unseen(
        self,
        conn: psycopg.Connection,
        *,
        provider: str,
        seen_before: datetime,
        departements: Optional[Sequence[str]] = None,
        table: str = OFFRES_TABLE,
    ) -> int:
        """
        Reconciliación: is_active=false para las ofertas del provider cuyo
        last_seen_at es anterior a la pasada (estrictamente menor).

        Las ofertas estampadas con el inicio de la pasada quedan activas.
        Con departements, solo se reconcilian esas particiones.
        """
        sql = f"""
            UPDATE "{table}"
            SET is_active = false,
                synced_at = now()
            WHERE provider = %s
              AND is_active = true
              AND (last_seen_at IS NULL OR last_seen_at < %s)
        """
        params: list[Any] = [provider, ensure_utc(seen_before)]
        if departements is not None:
            sql += "  AND departement = ANY(%s)\n"
            params.append(list(departements))

        try:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                return cur.rowcount or 0
        except psycopg.Error as e:
            raise OffresStorageError(f"Reconciliación de {table} rechazada: {e}") from e

    def count_active_offers(
        self,
        conn: psycopg.Connection,
        *,
        provider: str,
        departement: str,
        published_from: datetime,
        published_to: datetime,
        table: str = OFFRES_TABLE,
    ) -> int:
        """Cuenta ofertas activas de un departamento publicadas en [from, to)."""
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT count(*) AS total
                FROM "{table}"
                WHERE provider = %s
                  AND departement = %s
                  AND is_active = true
                  AND published_at >= %s
                  AND published_at < %s
                """,
                (provider, departement, ensure_utc(published_from), ensure_utc(published_to)),
            )
            row = cur.fetchone()
            return int(row["total"]) if row else 0

    def start_run(
        self,
        conn: psycopg.Connection,
        *,
        provider: str,
        started_at: datetime,
        days: int,
        partitions_total: int,
    ) -> int:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO "{SYNC_RUNS_TABLE}" (provider, started_at, status, days, partitions_total)
                VALUES (%s, %s, 'running', %s, %s)
                RETURNING id
                """,
                (provider, ensure_utc(started_at), days, partitions_total),
            )
            row = cur.fetchone()
        conn.commit()
        return int(row["id"])

    def finish_run(
        self,
        conn: psycopg.Connection,
        *,
        run_id: int,
        status: str,
        partitions_failed: Sequence[str],
        fetched_count: int,
        upserted_count: int,
        deactivated_count: int,
        error: Optional[str],
    ) -> None:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE "{SYNC_RUNS_TABLE}"
                SET finished_at = now(),
                    status = %s,
                    partitions_failed = %s,
                    fetched_count = %s,
                    upserted_count = %s,
                    deactivated_count = %s,
                    error = %s
                WHERE id = %s
                """,
                (
                    status,
                    list(partitions_failed),
                    fetched_count,
                    upserted_count,
                    deactivated_count,
                    error,
                    run_id,
                ),
            )
        conn.commit()

    def get_last_run(self, conn: psycopg.Connection, *, provider: str) -> Optional[dict[str, Any]]:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT id, provider, started_at, finished_at, status, days,
                       partitions_total, partitions_failed, fetched_count,
                       upserted_count, deactivated_count, error
                FROM "{SYNC_RUNS_TABLE}"
                WHERE provider = %s
                ORDER BY started_at DESC
                LIMIT 1
                """,
                (provider,),
            )
            return cur.fetchone()
