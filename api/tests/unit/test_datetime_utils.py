from datetime import datetime, timedelta, timezone

import pytest

from offres.infrastructure.external.france_travail.types import AccessToken, SyncCancellation
from offres.shared.exceptions.integration import SyncCancelledError
from offres.shared.utils.datetime_utils import ensure_utc, isoformat_z, parse_iso_datetime

NOW = datetime(2025, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


def test_isoformat_z_drops_microseconds_and_uses_z():
    assert isoformat_z(datetime(2025, 1, 31, 12, 0, 0, 123456, tzinfo=timezone.utc)) == "2025-01-31T12:00:00Z"


def test_isoformat_z_converts_to_utc():
    paris = timezone(timedelta(hours=2))
    assert isoformat_z(datetime(2025, 10, 15, 14, 0, 0, tzinfo=paris)) == "2025-10-15T12:00:00Z"


def test_naive_datetime_is_utc():
    assert ensure_utc(datetime(2025, 1, 1)) == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2025-10-15T12:00:00Z", NOW),
        ("2025-10-15T12:00:00.000Z", NOW),
        ("2025-10-15T14:00:00+02:00", NOW),
        (NOW, NOW),
        ("hier", None),
        ("", None),
        (None, None),
        (1234, None),
    ],
)
def test_parse_iso_datetime(value, expected):
    assert parse_iso_datetime(value) == expected


def test_access_token_margin():
    token = AccessToken(value="t", issued_at=NOW, expires_at=NOW + timedelta(seconds=1500))
    margin = timedelta(seconds=60)

    assert token.is_usable(NOW + timedelta(seconds=1439), margin) is True
    assert token.is_usable(NOW + timedelta(seconds=1440), margin) is False


def test_cancellation_without_signals_never_raises():
    SyncCancellation().check()


def test_cancellation_deadline():
    clock_value = [NOW]
    cancellation = SyncCancellation(deadline=NOW + timedelta(minutes=5), clock=lambda: clock_value[0])

    cancellation.check()
    clock_value[0] = NOW + timedelta(minutes=5)

    with pytest.raises(SyncCancelledError) as exc_info:
        cancellation.check()
    assert "deadline" in exc_info.value.reason
