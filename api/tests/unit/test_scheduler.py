"""
Tests unitarios para core/scheduler.py.

El job programado nunca debe propagar errores: los registra y espera
a la próxima ejecución.
"""
from __future__ import annotations

from datetime import timedelta

from offres.core.scheduler import SYNC_JOB_ID, build_scheduler, run_scheduled_sync
from offres.shared.exceptions.integration import FranceTravailAuthError, SyncAlreadyRunningError


class _Service:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[int | None] = []

    def run_sync(self, *, days=None):
        self.calls.append(days)
        if self.error is not None:
            raise self.error
        return "ok"


class TestRunScheduledSync:
    def test_returns_result_on_success(self) -> None:
        service = _Service()
        assert run_scheduled_sync(service, days=14) == "ok"
        assert service.calls == [14]

    def test_busy_pass_is_skipped(self) -> None:
        assert run_scheduled_sync(_Service(SyncAlreadyRunningError("france_travail"))) is None

    def test_errors_are_logged_not_raised(self) -> None:
        assert run_scheduled_sync(_Service(FranceTravailAuthError("invalid_client"))) is None
        assert run_scheduled_sync(_Service(RuntimeError("unexpected"))) is None


class TestBuildScheduler:
    def test_registers_single_instance_interval_job(self) -> None:
        service = _Service()
        scheduler = build_scheduler(service, interval_hours=2, days=14)

        job = scheduler.get_job(SYNC_JOB_ID)

        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(hours=2)
        assert job.kwargs == {"service": service, "days": 14}
        assert scheduler.running is False
