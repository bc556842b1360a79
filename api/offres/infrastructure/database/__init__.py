"""
Modelos SQLAlchemy del esquema.

Solo describen las tablas (Alembic los usa para autogenerate); el sync
escribe con psycopg a través de OffresRepository.
"""
from offres.infrastructure.database.models import (
    Base,
    OffreModel,
    SyncRunModel,
)
