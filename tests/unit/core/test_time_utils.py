from datetime import datetime, timedelta, timezone

from app.core.time_utils import (
    ensure_utc,
    from_epoch_ms,
    to_epoch_ms,
)


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2024, 1, 1, 12, 0, 0)

    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_aware_datetimes_are_converted():
    offset = datetime(2024, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))

    assert ensure_utc(offset) == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_epoch_milliseconds():
    dt = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

    assert to_epoch_ms(dt) == 1704067200000
    assert from_epoch_ms("1704067200000") == dt
    assert from_epoch_ms(None) is None
    assert from_epoch_ms("") is None

