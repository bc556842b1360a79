"""
Mapeo de ofertas France Travail (API Offres v2) a filas de la tabla `offres`.

Reglas:
- Nunca levanta excepciones: un campo ausente o malformado queda en None.
- Los textos se truncan a los límites de columna (ver COLUMN_LIMITS).
- La oferta original se conserva en `source_payload`, salvo los caracteres
  NUL: PostgreSQL los rechaza en TEXT y en JSONB, así que se eliminan
  de todos los textos y del payload.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

from offres.shared.utils.datetime_utils import parse_iso_datetime

from .departements import DEPARTEMENTS, departement_from_postal_code
from .types import PROVIDER, RawListing

# Alineado con las columnas String(n) de OffreModel
COLUMN_LIMITS: dict[str, int] = {
    "external_id": 64,
    "title": 255,
    "company_name": 255,
    "location_label": 255,
    "city": 255,
    "postal_code": 20,
    "departement": 3,
    "contract_type": 120,
    "work_time": 120,
    "experience": 120,
    "education_level": 255,
    "rome_code": 20,
    "rome_label": 255,
    "salary_text": 255,
    "source_url": 2048,
}

_URL_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9+.-]*://\S+")
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_MONTHS_RE = re.compile(r"sur\s+\d+(?:[.,]\d+)?\s+mois", re.IGNORECASE)
_LABEL_DEPARTEMENT_RE = re.compile(r"^\s*(\d{2,3}|2[AaBb])\s*-")


def strip_nul(text: str) -> str:
    return text.replace("\x00", "")


def scrub_payload(value: Any) -> Any:
    """Copia del payload sin caracteres NUL en claves ni en textos."""
    if isinstance(value, str):
        return strip_nul(value)
    if isinstance(value, dict):
        return {scrub_payload(k): scrub_payload(v) for k, v in value.items()}
    if isinstance(value, list):
        return [scrub_payload(v) for v in value]
    return value


def truncate(value: Any, max_len: int) -> Optional[str]:
    """Convierte a texto, quita NUL y recorta; None y cadenas vacías quedan en None."""
    if value is None:
        return None
    text = strip_nul(str(value))
    if not text:
        return None
    return text[:max_len]


def to_number(value: Any) -> Optional[float]:
    """Parse numérico seguro: None si no es convertible o no es finito."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_url(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    match = _URL_RE.search(value)
    return match.group(0) if match else None


def guess_source_url(raw: RawListing) -> Optional[str]:
    """
    URL pública de la oferta, por prioridad:
    1. origineOffre.urlOrigine
    2. primera URL pegada en contact.courriel (algunos partenaires lo hacen)
    3. primera URL en contact.coordonnees1
    """
    origine = _as_dict(raw.get("origineOffre"))
    url = origine.get("urlOrigine")
    if isinstance(url, str) and url.strip():
        return url.strip()

    contact = _as_dict(raw.get("contact"))
    return _first_url(contact.get("courriel")) or _first_url(contact.get("coordonnees1"))


def parse_salary_to_monthly(text: Any) -> tuple[Optional[float], Optional[float]]:
    """
    Salario mín/máx mensual a partir del libellé de France Travail.

    Heurística (best-effort, no garantizada):
    - Solo si el texto menciona "mensuel" o "annuel".
    - Toma los dos primeros números; "annuel" se divide entre 12.
    Ej: "Mensuel de 1800.00 Euros à 2200.00 Euros sur 12 mois" -> (1800.0, 2200.0)
    """
    if not isinstance(text, str) or not text:
        return None, None

    lower = text.lower()
    is_monthly = "mensuel" in lower
    is_annual = "annuel" in lower
    if not (is_monthly or is_annual):
        return None, None

    # "sur 12 mois" no es un importe
    amounts = _MONTHS_RE.sub(" ", text)
    numbers = [to_number(n.replace(",", ".")) for n in _NUMBER_RE.findall(amounts)[:2]]
    numbers = [n for n in numbers if n]
    if not numbers:
        return None, None

    low, high = min(numbers), max(numbers)
    if is_annual and not is_monthly:
        low, high = low / 12, high / 12
    return round(low, 2), round(high, 2)


def _departement_from_label(label: Any) -> Optional[str]:
    # "31 - TOULOUSE" -> "31"
    if not isinstance(label, str):
        return None
    match = _LABEL_DEPARTEMENT_RE.match(label)
    if not match:
        return None
    code = match.group(1).upper()
    return code if code in DEPARTEMENTS else None


def normalize_offer(raw: RawListing) -> dict[str, Any]:
    """
    Proyecta una oferta cruda al esquema local.

    No asigna last_seen_at: lo estampa el orquestador con el inicio de la pasada.
    """
    o = _as_dict(raw)
    lieu = _as_dict(o.get("lieuTravail"))
    entreprise = _as_dict(o.get("entreprise"))
    salaire = _as_dict(o.get("salaire"))
    formations = o.get("formations")
    formation = _as_dict(formations[0]) if isinstance(formations, list) and formations else {}

    postal_code = truncate(lieu.get("codePostal"), COLUMN_LIMITS["postal_code"])
    salary_text = truncate(salaire.get("libelle"), COLUMN_LIMITS["salary_text"])
    salary_min, salary_max = parse_salary_to_monthly(salaire.get("libelle"))
    description = strip_nul(o["description"]) if isinstance(o.get("description"), str) else None

    return {
        # clave natural del upsert
        "provider": PROVIDER,
        "external_id": truncate(o.get("id"), COLUMN_LIMITS["external_id"]),

        "title": truncate(o.get("intitule"), COLUMN_LIMITS["title"]),
        "description": description or None,
        "company_name": truncate(entreprise.get("nom"), COLUMN_LIMITS["company_name"]),

        "location_label": truncate(lieu.get("libelle"), COLUMN_LIMITS["location_label"]),
        # ojo: a veces es un código INSEE y no un nombre
        "city": truncate(lieu.get("commune"), COLUMN_LIMITS["city"]),
        "postal_code": postal_code,
        "departement": _departement_from_label(lieu.get("libelle")) or departement_from_postal_code(postal_code),
        "latitude": to_number(lieu.get("latitude")),
        "longitude": to_number(lieu.get("longitude")),

        "contract_type": truncate(
            o.get("typeContratLibelle") or o.get("typeContrat"), COLUMN_LIMITS["contract_type"]
        ),
        "work_time": truncate(
            o.get("dureeTravailLibelleConverti") or o.get("dureeTravailLibelle"), COLUMN_LIMITS["work_time"]
        ),
        "experience": truncate(o.get("experienceLibelle"), COLUMN_LIMITS["experience"]),
        "education_level": truncate(formation.get("niveauLibelle"), COLUMN_LIMITS["education_level"]),
        "rome_code": truncate(o.get("romeCode"), COLUMN_LIMITS["rome_code"]),
        "rome_label": truncate(o.get("romeLibelle"), COLUMN_LIMITS["rome_label"]),

        "salary_text": salary_text,
        "salary_min": salary_min,
        "salary_max": salary_max,

        "source_url": truncate(guess_source_url(o), COLUMN_LIMITS["source_url"]),
        "published_at": parse_iso_datetime(o.get("dateCreation")),
        "updated_at_source": parse_iso_datetime(o.get("dateActualisation")),

        "is_active": True,
        "source_payload": scrub_payload(raw),
    }
