import pytest
from pydantic import ValidationError

from offres.core.config import Settings, get_cors_origins, normalize_psycopg_dsn


def test_normalize_psycopg_dsn_strips_driver():
    assert normalize_psycopg_dsn("postgresql+psycopg://u:p@h:5432/db") == "postgresql://u:p@h:5432/db"
    assert normalize_psycopg_dsn("postgres+asyncpg://u@h/db") == "postgres://u@h/db"


def test_normalize_psycopg_dsn_keeps_compatible_values():
    assert normalize_psycopg_dsn("postgresql://u@h/db") == "postgresql://u@h/db"
    assert normalize_psycopg_dsn("host=h dbname=db") == "host=h dbname=db"


def test_effective_database_url_from_components():
    s = Settings(
        DATABASE_URL="",
        DATABASE_USER="u",
        DATABASE_PASSWORD="p",
        DATABASE_HOST="db",
        DATABASE_PORT=5433,
        DATABASE_NAME="offres",
    )
    assert s.effective_database_url == "postgresql+psycopg://u:p@db:5433/offres"
    assert s.psycopg_dsn == "postgresql://u:p@db:5433/offres"


def test_sync_defaults():
    s = Settings(_env_file=None)
    assert s.FRANCE_TRAVAIL_REQUEST_DELAY_MS == 350
    assert s.FRANCE_TRAVAIL_PAGE_SIZE == 150
    assert s.SYNC_UPSERT_CHUNK_SIZE == 1000
    assert s.FRANCE_TRAVAIL_SCOPE == "api_offresdemploiv2 o2dsoffre"


def test_cors_origins_parsing():
    assert get_cors_origins("*") == ["*"]
    assert get_cors_origins('["https://a.fr"]') == ["https://a.fr"]
    assert get_cors_origins("https://a.fr, https://b.fr") == ["https://a.fr", "https://b.fr"]


def test_min_window_hours_rejects_zero():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, SYNC_MIN_WINDOW_HOURS=0)


def test_search_filters_are_read_as_json(monkeypatch):
    monkeypatch.setenv("FRANCE_TRAVAIL_SEARCH_FILTERS", '{"natureContrat": "E1"}')
    s = Settings(_env_file=None)
    assert s.FRANCE_TRAVAIL_SEARCH_FILTERS == {"natureContrat": "E1"}
