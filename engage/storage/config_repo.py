import json
from typing import Dict

import aiosqlite


class LimitConfigRepo:
    """Key -> JSON blob store backing the runtime limit configuration."""

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    async def load_all(self) -> Dict[str, dict]:
        """Return {key: {"value", "description", "updated_at"}}.

        Rows whose JSON does not parse come back with value None.
        """
        results = {}
        async with self._db.execute(
            "SELECT config_key, config_value, description, updated_at FROM limit_config"
        ) as cursor:
            async for row in cursor:
                try:
                    value = json.loads(row[1])
                except ValueError:
                    value = None
                results[row[0]] = {
                    "value": value,
                    "description": row[2],
                    "updated_at": row[3],
                }
        return results

    async def upsert(self, key: str, value: dict, description: str, now: float):
        await self._db.execute(
            "INSERT INTO limit_config (config_key, config_value, description, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT (config_key) DO UPDATE SET config_value = excluded.config_value, "
            "description = CASE WHEN excluded.description != '' THEN excluded.description "
            "ELSE limit_config.description END, updated_at = excluded.updated_at",
            (key, json.dumps(value, sort_keys=True), description, now),
        )
