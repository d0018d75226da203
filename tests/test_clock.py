from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from errorledger.core.clock import FrozenClock, parse_stamp, to_stamp


def test_stamps_are_fixed_width_utc_and_sort_like_datetimes() -> None:
    early = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
    late = datetime(2026, 3, 2, 11, 0, 0, 5, tzinfo=timezone(timedelta(hours=1)))
    assert to_stamp(early) == "2026-03-02T09:00:00.000000+00:00"
    assert len(to_stamp(early)) == len(to_stamp(late))
    assert to_stamp(early) < to_stamp(late)
    assert parse_stamp(to_stamp(late)) == late


def test_parse_stamp_treats_naive_values_as_utc() -> None:
    assert parse_stamp("2026-03-02T09:00:00") == datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
    with pytest.raises(ValueError):
        parse_stamp("not a time")


def test_frozen_clock_normalizes_to_utc_and_advances() -> None:
    clock = FrozenClock(datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=1))))
    assert clock.now().tzinfo == UTC
    assert clock.advance(minutes=5) == datetime(2026, 3, 2, 9, 5, tzinfo=UTC)
