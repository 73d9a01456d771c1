"""Clocks and timestamp conversions."""

import datetime

import pytest

from eth_fee_vault.timestamp import ManualClock, SystemClock, from_unix_timestamp, to_unix_timestamp


def test_unix_timestamp_round_trip():
    dt = datetime.datetime(2025, 1, 1, 12, 0)
    assert from_unix_timestamp(to_unix_timestamp(dt)) == dt
    assert to_unix_timestamp(datetime.datetime(1970, 1, 1)) == 0


def test_manual_clock():
    clock = ManualClock(datetime.datetime(2025, 1, 1))
    start = clock.now()
    assert clock.increase(3600) == start + 3600
    assert clock.now() == start + 3600

    clock.set(start - 1)
    assert clock.now() == start - 1

    with pytest.raises(AssertionError):
        clock.increase(-1)


def test_system_clock():
    now = SystemClock().now()
    assert type(now) == int
    assert now > 1_700_000_000
