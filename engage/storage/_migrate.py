import logging
import time

import aiosqlite

from ._schema import SCHEMA_SQL, SCHEMA_VERSION

logger = logging.getLogger("storage")


async def run_migrations(db, logger_override=None):
    log = logger_override or logger
    current_version = 0
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            row = await cursor.fetchone()
            if row and row[0] is not None:
                current_version = row[0]
    except aiosqlite.OperationalError:
        # fresh database: schema_version does not exist yet
        current_version = 0

    if current_version < SCHEMA_VERSION:
        log.info("Migrating database from v%d to v%d", current_version, SCHEMA_VERSION)
        await db.executescript(SCHEMA_SQL)

        if current_version < 2:
            # v2: consolation caps count by the campaign a reward was issued
            # for, even after the campaign row is gone
            try:
                await db.execute(
                    "ALTER TABLE consolation_rewards "
                    "ADD COLUMN origin_campaign_id INTEGER NOT NULL DEFAULT 0"
                )
                await db.execute(
                    "UPDATE consolation_rewards SET origin_campaign_id = campaign_id "
                    "WHERE campaign_id IS NOT NULL"
                )
            except aiosqlite.OperationalError:
                log.debug("consolation_rewards.origin_campaign_id already present")
            for idx_sql in [
                "CREATE INDEX IF NOT EXISTS idx_consolation_origin_day "
                "ON consolation_rewards(origin_campaign_id, date_key)",
                "CREATE INDEX IF NOT EXISTS idx_consolation_day ON consolation_rewards(date_key)",
            ]:
                await db.execute(idx_sql)

        await db.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION, time.time()),
        )
        log.info("Migration complete (v%d)", SCHEMA_VERSION)
    else:
        log.debug("Database schema up to date (v%d)", current_version)
