import aiosqlite


class RateLimitRepo:
    """Fixed-window request counters."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def hit(self, identifier: str, identifier_type: str, window_start: int) -> int:
        """Count one request in the window and return the window's total."""
        await self._db.execute(
            "INSERT INTO rate_limit_windows (identifier, identifier_type, window_start, request_count) "
            "VALUES (?, ?, ?, 1) "
            "ON CONFLICT (identifier, identifier_type, window_start) DO UPDATE SET "
            "request_count = request_count + 1",
            (identifier, identifier_type, window_start),
        )
        async with self._db.execute(
            "SELECT request_count FROM rate_limit_windows "
            "WHERE identifier = ? AND identifier_type = ? AND window_start = ?",
            (identifier, identifier_type, window_start),
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def purge_before(self, window_start: int) -> int:
        cursor = await self._db.execute(
            "DELETE FROM rate_limit_windows WHERE window_start < ?", (window_start,),
        )
        return cursor.rowcount
