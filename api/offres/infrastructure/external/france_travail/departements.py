"""
Particiones del sync: departamentos franceses (metrópoli + DROM).

Cada departamento es una consulta independiente a la API: mantiene el tamaño
de resultado manejable y aísla los fallos (un departamento roto no aborta
la pasada).
"""

from __future__ import annotations

from typing import Iterable, Optional

_METROPOLE = [f"{n:02d}" for n in range(1, 96) if n != 20]
_CORSE = ["2A", "2B"]
_DROM = ["971", "972", "973", "974", "976"]

DEPARTEMENTS: tuple[str, ...] = tuple(
    sorted(_METROPOLE + _CORSE) + _DROM
)


def resolve_departements(codes: Optional[Iterable[str]] = None) -> list[str]:
    """
    Retorna los departamentos a sincronizar, en orden estable.

    - codes None/vacío: todos.
    - Acepta "1" como "01" y es case-insensitive para Córcega.
    - Un código desconocido es un error de configuración (ValueError).
    """
    if not codes:
        return list(DEPARTEMENTS)

    wanted: list[str] = []
    for raw in codes:
        code = str(raw).strip().upper()
        if code.isdigit() and len(code) == 1:
            code = f"0{code}"
        if code not in DEPARTEMENTS:
            raise ValueError(f"Departamento desconocido: {raw!r}")
        if code not in wanted:
            wanted.append(code)
    return [c for c in DEPARTEMENTS if c in wanted]


def departement_from_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """Deriva el departamento de un código postal (2A/2B para Córcega, 97x para DROM)."""
    if not postal_code:
        return None
    pc = str(postal_code).strip()
    if len(pc) < 2 or not pc[:2].isdigit():
        return None
    if pc.startswith("97") and len(pc) >= 3:
        return pc[:3] if pc[:3] in DEPARTEMENTS else None
    if pc.startswith("20"):
        # 200xx/201xx -> Corse-du-Sud, 202xx/206xx -> Haute-Corse
        return "2A" if pc[:3] in ("200", "201") else "2B"
    return pc[:2] if pc[:2] in DEPARTEMENTS else None
