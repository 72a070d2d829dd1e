import asyncio
import contextvars
import logging
from contextlib import asynccontextmanager
from typing import Optional

try:
    import aiosqlite
except ImportError:
    raise ImportError(
        "aiosqlite is required for the storage layer. "
        "Install with: pip install aiosqlite"
    )

from ._schema import SCHEMA_VERSION
from ._migrate import run_migrations
from .audit import AuditRepo
from .campaigns import CampaignRepo
from .claim_counters import ClaimCounterRepo
from .config_repo import LimitConfigRepo
from .consolations import ConsolationRepo
from .enforcement import EnforcementLogRepo
from .questions import QuestionRepo
from .quiz_attempts import QuizAttemptRepo
from .rate_limits import RateLimitRepo
from .rotation import RotationRepo
from .sessions import SessionRepo
from .wallet_txns import WalletTxnRepo
from .wallets import WalletRepo

logger = logging.getLogger("storage")


class StorageManager:
    """Top-level manager: opens the database, runs migrations, exposes repos.

    Repos never commit. Every write unit goes through ``transaction()``,
    which holds SQLite's write lock (BEGIN IMMEDIATE) for its duration, so
    read-check-write sequences inside it are serialized across tasks and
    across processes sharing the database file.
    """

    def __init__(self, db_path: str = "data/engage.db", busy_timeout: float = 5.0):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._active = contextvars.ContextVar(f"storage_txn_{id(self)}", default=False)
        self._reading = contextvars.ContextVar(f"storage_read_{id(self)}", default=False)
        self.campaigns: Optional[CampaignRepo] = None
        self.questions: Optional[QuestionRepo] = None
        self.wallets: Optional[WalletRepo] = None
        self.wallet_txns: Optional[WalletTxnRepo] = None
        self.audit: Optional[AuditRepo] = None
        self.claim_counters: Optional[ClaimCounterRepo] = None
        self.enforcement: Optional[EnforcementLogRepo] = None
        self.rotation: Optional[RotationRepo] = None
        self.quiz_attempts: Optional[QuizAttemptRepo] = None
        self.consolations: Optional[ConsolationRepo] = None
        self.sessions: Optional[SessionRepo] = None
        self.limit_config: Optional[LimitConfigRepo] = None
        self.rate_limits: Optional[RateLimitRepo] = None

    async def initialize(self):
        # isolation_level=None: transactions are opened explicitly below
        self._db = await aiosqlite.connect(
            self.db_path, isolation_level=None, timeout=self.busy_timeout,
        )
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await run_migrations(self._db, logger)

        self.campaigns = CampaignRepo(self._db)
        self.questions = QuestionRepo(self._db)
        self.wallets = WalletRepo(self._db)
        self.wallet_txns = WalletTxnRepo(self._db)
        self.audit = AuditRepo(self._db)
        self.claim_counters = ClaimCounterRepo(self._db)
        self.enforcement = EnforcementLogRepo(self._db)
        self.rotation = RotationRepo(self._db)
        self.quiz_attempts = QuizAttemptRepo(self._db)
        self.consolations = ConsolationRepo(self._db)
        self.sessions = SessionRepo(self._db)
        self.limit_config = LimitConfigRepo(self._db)
        self.rate_limits = RateLimitRepo(self._db)

        logger.info("Storage initialized: %s (schema v%d)", self.db_path, SCHEMA_VERSION)

    @property
    def db(self) -> aiosqlite.Connection:
        return self._db

    @property
    def in_transaction(self) -> bool:
        return self._active.get()

    @asynccontextmanager
    async def transaction(self):
        """Run the enclosed block as one atomic write unit.

        Nested calls from the same task join the outer unit.
        """
        if self._active.get():
            yield self._db
            return
        if self._reading.get():
            raise RuntimeError("transaction() cannot be opened inside read()")
        async with self._lock:
            token = self._active.set(True)
            try:
                await self._db.execute("BEGIN IMMEDIATE")
                try:
                    yield self._db
                    await self._db.execute("COMMIT")
                except BaseException:
                    await self._rollback()
                    raise
            finally:
                self._active.reset(token)

    @asynccontextmanager
    async def read(self):
        """Read-only unit that never sees another task's uncommitted writes.

        All tasks share one connection, so reads wait for any open write
        unit to finish. Inside ``transaction()`` or ``read()`` it joins.
        """
        if self._active.get() or self._reading.get():
            yield self._db
            return
        async with self._lock:
            token = self._reading.set(True)
            try:
                yield self._db
            finally:
                self._reading.reset(token)

    @asynccontextmanager
    async def savepoint(self, name: str):
        """Nested unit that can fail without aborting the enclosing transaction."""
        if not self._active.get():
            raise RuntimeError("savepoint() requires an open transaction")
        await self._db.execute(f"SAVEPOINT {name}")
        try:
            yield self._db
        except BaseException:
            await self._db.execute(f"ROLLBACK TO SAVEPOINT {name}")
            await self._db.execute(f"RELEASE SAVEPOINT {name}")
            raise
        await self._db.execute(f"RELEASE SAVEPOINT {name}")

    async def _rollback(self):
        try:
            await self._db.execute("ROLLBACK")
        except aiosqlite.Error:
            logger.exception("Rollback failed")

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Storage closed")
