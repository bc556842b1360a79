"""
Persistencia por chunks de las ofertas mapeadas.

Garantía: at-least-once sobre el lote completo. Cada chunk es una
transacción independiente; si un chunk falla, los anteriores quedan
confirmados y los siguientes no se envían.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import psycopg
from loguru import logger

from offres.shared.exceptions.integration import OffresStorageError

from .pg_repository import NATURAL_KEY, OffresRepository


@dataclass(frozen=True)
class UpsertResult:
    upserted_count: int
    chunks: int


def dedupe_by_natural_key(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Una fila por (provider, external_id); gana la última ocurrencia."""
    by_key: dict[tuple, dict[str, Any]] = {}
    for row in rows:
        key = tuple(row.get(k) for k in NATURAL_KEY)
        by_key.pop(key, None)
        by_key[key] = row
    return list(by_key.values())


class UpsertBatcher:
    def __init__(self, repository: OffresRepository) -> None:
        self._repo = repository

    def upsert_all(self, conn, rows: Iterable[dict[str, Any]], chunk_size: int = 1000) -> UpsertResult:
        """
        Divide las filas en chunks de como máximo chunk_size y hace un UPSERT
        + commit por chunk.

        Raises:
            OffresStorageError: el chunk que falló (con su índice); se hace
                rollback solo de ese chunk.
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size debe ser > 0")

        unique_rows = dedupe_by_natural_key(rows)
        total = 0
        chunks = 0

        for index, start in enumerate(range(0, len(unique_rows), chunk_size)):
            chunk = unique_rows[start:start + chunk_size]
            try:
                total += self._repo.upsert_rows(conn, rows=chunk)
                conn.commit()
            except (OffresStorageError, psycopg.Error) as e:
                conn.rollback()
                message = e.message if isinstance(e, OffresStorageError) else str(e)
                logger.error(f"Chunk {index} ({len(chunk)} filas) rechazado: {message}")
                raise OffresStorageError(message, chunk_index=index) from e
            chunks += 1

        return UpsertResult(upserted_count=total, chunks=chunks)
