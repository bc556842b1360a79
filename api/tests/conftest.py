"""
Configuración de fixtures para pytest.

Ningún test toca la red ni una base de datos real: France Travail y
PostgreSQL se reemplazan por dobles escritos a mano en cada módulo.
"""
from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Reloj controlable desde el test."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    return FakeClock(fixed_now)
