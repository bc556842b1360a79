"""
Modelos de base de datos (ORM).
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

# Base para modelos de SQLAlchemy
Base = declarative_base()


class OffreModel(Base):
    """
    Oferta de empleo sincronizada desde un proveedor externo.

    Clave natural: (provider, external_id). Las ofertas que dejan de aparecer
    en una pasada completa se marcan is_active=false; nunca se borran.
    """

    __tablename__ = "offres"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_offres_provider_external_id"),
        Index("ix_offres_provider_active_dep", "provider", "is_active", "departement"),
        Index("ix_offres_published_at", "published_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(32), nullable=False)
    external_id = Column(String(64), nullable=False)

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    company_name = Column(String(255), nullable=True)

    location_label = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    postal_code = Column(String(20), nullable=True)
    departement = Column(String(3), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    contract_type = Column(String(120), nullable=True)
    work_time = Column(String(120), nullable=True)
    experience = Column(String(120), nullable=True)
    education_level = Column(String(255), nullable=True)
    rome_code = Column(String(20), nullable=True)
    rome_label = Column(String(255), nullable=True)

    salary_text = Column(String(255), nullable=True)
    salary_min = Column(Float, nullable=True)
    salary_max = Column(Float, nullable=True)

    source_url = Column(String(2048), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    updated_at_source = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, server_default="true")
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    source_payload = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    synced_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Offre(id={self.id}, provider={self.provider}, external_id={self.external_id})>"


class SyncRunModel(Base):
    """Bitácora de pasadas de sincronización (una fila por pasada)."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(32), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    # running | success | partial | cancelled | error
    status = Column(String(20), nullable=False, server_default="running")
    days = Column(Integer, nullable=False)
    partitions_total = Column(Integer, nullable=False, server_default="0")
    partitions_failed = Column(ARRAY(String(3)), nullable=False, server_default="{}")
    fetched_count = Column(Integer, nullable=False, server_default="0")
    upserted_count = Column(Integer, nullable=False, server_default="0")
    deactivated_count = Column(Integer, nullable=False, server_default="0")
    error = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SyncRun(id={self.id}, provider={self.provider}, status={self.status})>"
