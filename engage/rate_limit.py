"""
rate_limit.py - Fixed-window request limiter for the URL checker.

Windows are 60 seconds wide and aligned to the epoch. Authenticated callers
are limited per user (10/min) and every caller per IP (50/min). When the
counter store fails the request goes through and a warning is logged: the
URL checker is a convenience endpoint, not part of the money path.
"""

import logging
import math
from typing import TYPE_CHECKING, Optional

import aiosqlite

from engage.errors import RateLimited

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.storage import StorageManager

logger = logging.getLogger("ratelimit")

WINDOW_SEC = 60
USER_LIMIT = 10
IP_LIMIT = 50


class FixedWindowRateLimiter:
    def __init__(
        self,
        storage: "StorageManager",
        clock: "CivilClock",
        window: int = WINDOW_SEC,
        user_limit: int = USER_LIMIT,
        ip_limit: int = IP_LIMIT,
    ):
        self._storage = storage
        self._clock = clock
        self._window = window
        self._limits = {"USER": user_limit, "IP": ip_limit}

    def _window_start(self, now: float) -> int:
        return int(now // self._window) * self._window

    async def check(self, identifier: str, identifier_type: str) -> dict:
        """Count one request; ``allowed`` is False once the window is full."""
        limit = self._limits[identifier_type]
        now = self._clock.now()
        window_start = self._window_start(now)
        reset_at = window_start + self._window
        try:
            async with self._storage.transaction():
                count = await self._storage.rate_limits.hit(identifier, identifier_type, window_start)
        except aiosqlite.Error as e:
            logger.warning("Rate limit store unavailable for %s %s, allowing: %s",
                           identifier_type, identifier, e)
            return {"allowed": True, "current": 0, "limit": limit, "reset_at": reset_at}
        return {
            "allowed": count <= limit,
            "current": count,
            "limit": limit,
            "reset_at": reset_at,
        }

    async def enforce(self, user_id: Optional[str], ip_address: Optional[str]) -> dict:
        """Apply the user and IP windows; raises RateLimited on the first full one."""
        result = None
        for identifier, kind in ((user_id, "USER"), (ip_address, "IP")):
            if not identifier:
                continue
            result = await self.check(identifier, kind)
            if not result["allowed"]:
                retry_after = max(1, math.ceil(result["reset_at"] - self._clock.now()))
                logger.info("Rate limit hit for %s %s (%d/%d)",
                            kind, identifier, result["current"], result["limit"])
                raise RateLimited(
                    f"Too many validation requests. Please try again in {retry_after} seconds.",
                    details={"retry_after_sec": retry_after, "limit": result["limit"]},
                )
        return result or {"allowed": True, "current": 0, "limit": self._limits["IP"], "reset_at": None}

    async def purge_old_windows(self) -> int:
        cutoff = self._window_start(self._clock.now()) - self._window
        async with self._storage.transaction():
            return await self._storage.rate_limits.purge_before(cutoff)
