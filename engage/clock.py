"""
clock.py - Civil-day calendar anchored to one fixed timezone.

Daily caps, consolation caps and "retry after" values all roll over at local
midnight of the platform timezone, never the server's locale.
"""

import math
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from pytz import timezone as tz

DEFAULT_TIMEZONE = "Asia/Kolkata"


class CivilClock:
    """Wall clock plus calendar helpers for the platform timezone."""

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE, time_fn: Callable[[], float] = time.time):
        self.tz_name = tz_name
        self.tz = tz(tz_name)
        self._time_fn = time_fn

    def now(self) -> float:
        return float(self._time_fn())

    def localtime(self, ts: Optional[float] = None) -> datetime:
        if ts is None:
            ts = self.now()
        return datetime.fromtimestamp(ts, self.tz)

    def date_key(self, ts: Optional[float] = None) -> str:
        """YYYY-MM-DD of the civil day containing ``ts``."""
        return self.localtime(ts).strftime("%Y-%m-%d")

    def next_midnight(self, ts: Optional[float] = None) -> float:
        local = self.localtime(ts)
        tomorrow = local.date() + timedelta(days=1)
        midnight = self.tz.localize(datetime(tomorrow.year, tomorrow.month, tomorrow.day))
        return midnight.timestamp()

    def seconds_until_midnight(self, ts: Optional[float] = None) -> int:
        if ts is None:
            ts = self.now()
        return max(1, math.ceil(self.next_midnight(ts) - ts))

    def format_until_midnight(self, ts: Optional[float] = None) -> str:
        secs = self.seconds_until_midnight(ts)
        hours, rem = divmod(secs, 3600)
        minutes = rem // 60
        if hours > 0:
            return f"{hours} hour{'s' if hours != 1 else ''} {minutes} minute{'s' if minutes != 1 else ''}"
        return f"{minutes} minute{'s' if minutes != 1 else ''}"


class FrozenClock(CivilClock):
    """Manually driven clock for tests and replay tooling."""

    def __init__(self, start: float, tz_name: str = DEFAULT_TIMEZONE):
        self._now = float(start)
        super().__init__(tz_name, time_fn=lambda: self._now)

    def set(self, ts: float):
        self._now = float(ts)

    def advance(self, seconds: float):
        self._now += seconds
