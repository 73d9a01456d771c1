"""Time sources for fee accrual.

- Fee accrual is measured in whole UNIX seconds, like block timestamps
- :py:class:`ManualClock` lets tests and simulations fast forward time
"""

import calendar
import datetime
import logging
import time
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


def to_unix_timestamp(dt: datetime.datetime) -> int:
    """Convert Python UTC datetime to UNIX seconds since epoch.

    Example:

    .. code-block:: python

        import datetime
        from eth_fee_vault.timestamp import to_unix_timestamp

        dt = datetime.datetime(1970, 1, 1)
        unix_time = to_unix_timestamp(dt)
        assert unix_time == 0

    :param dt:
        Naive UTC datetime to convert

    :return:
        Datetime as seconds since 1970-1-1
    """
    return calendar.timegm(dt.utctimetuple())


def from_unix_timestamp(timestamp: int) -> datetime.datetime:
    """Convert UNIX seconds since epoch to naive Python datetime."""
    assert type(timestamp) in (int, float), f"Got {type(timestamp)}: {timestamp}"
    return datetime.datetime.fromtimestamp(timestamp, tz=datetime.timezone.utc).replace(tzinfo=None)


class Clock(ABC):
    """Source of the current timestamp for a vault."""

    @abstractmethod
    def now(self) -> int:
        """Current UNIX timestamp in seconds."""


class SystemClock(Clock):
    """Wall clock time."""

    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Clock that only moves when told to.

    Example:

    .. code-block:: python

        clock = ManualClock(datetime.datetime(2025, 1, 1))
        vault = FeeVault.create(..., clock=clock)

        # Advance by one year
        clock.increase(365 * 24 * 3600)
    """

    def __init__(self, start: int | datetime.datetime = 1_700_000_000):
        if isinstance(start, datetime.datetime):
            start = to_unix_timestamp(start)
        assert type(start) == int, f"Got {type(start)}: {start}"
        self.timestamp = start

    def __repr__(self):
        return f"<ManualClock {self.timestamp} ({from_unix_timestamp(self.timestamp)})>"

    def now(self) -> int:
        return self.timestamp

    def increase(self, seconds: int) -> int:
        """Move the clock forward.

        :return:
            The new timestamp
        """
        assert seconds >= 0, f"Clock cannot go backwards, got {seconds}"
        self.timestamp += seconds
        logger.debug("Clock advanced by %d seconds to %d", seconds, self.timestamp)
        return self.timestamp

    def set(self, timestamp: int):
        """Jump to a timestamp.

        Going backwards is allowed so tests can exercise clock skew.
        """
        self.timestamp = timestamp
