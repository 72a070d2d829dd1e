"""
server.py - Engage rewards server entry point.

Single-process server combining:
 - SQLite persistent storage via StorageManager
 - Reward services (ledger, eligibility, scoring, consolation, claims, campaigns)
 - REST API (FastAPI on uvicorn, port 8080)

Usage:
    python -m engage.server [--api-port 8080] [--db-path data/engage.db] [--jwt-secret SECRET]
"""

import argparse
import asyncio
import logging
import os
import random
from typing import Optional

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request
import uvicorn

from engage import __version__
from engage.auth import AuthService
from engage.campaigns import CampaignService
from engage.claims import ClaimService
from engage.clock import DEFAULT_TIMEZONE, CivilClock
from engage.consolation import ConsolationService
from engage.eligibility import EligibilityEngine
from engage.errors import EligibilityDenied, EngageError, ValidationError
from engage.ledger import LedgerService
from engage.limits_config import DEFAULT_TTL_SEC, LimitConfigStore
from engage.rate_limit import FixedWindowRateLimiter
from engage.routers import register_all_routers
from engage.scoring import ScoringEngine
from engage.sessions import SessionTokenService
from engage.storage import StorageManager

LOG_FORMAT = "%(asctime)s [%(name)-10s] %(levelname)-5s %(message)s"

logger = logging.getLogger("server")


def register_error_handlers(app: FastAPI):
    @app.exception_handler(EngageError)
    async def engage_error(request: Request, exc: EngageError):
        headers = {}
        if isinstance(exc, EligibilityDenied) and exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse({"error": exc.to_dict()}, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        error = ValidationError("Invalid request body", details={"errors": jsonable_encoder(exc.errors())})
        return JSONResponse({"error": error.to_dict()}, status_code=error.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
            status_code=500,
        )


class EngageServer:
    """Storage, services and the REST API in one process."""

    def __init__(
        self,
        api_port: int = 8080,
        db_path: str = "data/engage.db",
        jwt_secret: str = "",
        tz_name: str = DEFAULT_TIMEZONE,
        config_ttl: float = DEFAULT_TTL_SEC,
        clock: Optional[CivilClock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_port = api_port
        self.db_path = db_path
        self.config_ttl = config_ttl
        self.clock = clock or CivilClock(tz_name)
        self._rng = rng
        self._uvicorn_server: Optional[uvicorn.Server] = None

        self.auth = AuthService(jwt_secret)

        # Storage + services are initialized async in start()
        self.storage: Optional[StorageManager] = None
        self.config: Optional[LimitConfigStore] = None
        self.ledger: Optional[LedgerService] = None
        self.eligibility: Optional[EligibilityEngine] = None
        self.scoring: Optional[ScoringEngine] = None
        self.consolation: Optional[ConsolationService] = None
        self.sessions: Optional[SessionTokenService] = None
        self.claims: Optional[ClaimService] = None
        self.campaigns: Optional[CampaignService] = None
        self.rate_limiter: Optional[FixedWindowRateLimiter] = None

        self.app = FastAPI(title="Engage Rewards", version=__version__)
        self.app.state.server = self
        register_all_routers(self.app)
        register_error_handlers(self.app)

    async def _init_services(self):
        """Open storage and wire up services (must be called in async context)."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self.storage = StorageManager(self.db_path)
        await self.storage.initialize()

        clock = self.clock
        self.config = LimitConfigStore(self.storage, clock, ttl=self.config_ttl)
        self.ledger = LedgerService(self.storage, clock)
        self.eligibility = EligibilityEngine(self.storage, self.config, clock)
        self.scoring = ScoringEngine(self.storage, self.config, self.eligibility, clock, rng=self._rng)
        self.consolation = ConsolationService(self.storage, self.ledger, self.config, clock)
        self.sessions = SessionTokenService(self.storage, clock)
        self.claims = ClaimService(
            self.storage, self.ledger, self.eligibility, self.consolation, self.sessions, clock,
        )
        self.campaigns = CampaignService(self.storage, self.ledger, clock, rng=self._rng)
        self.rate_limiter = FixedWindowRateLimiter(self.storage, clock)

        logger.info("Services initialized (db=%s, tz=%s)", self.db_path, clock.tz_name)

    # -------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------

    async def start(self):
        """Start storage and the API server."""
        await self._init_services()

        config = uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=self.api_port,
            log_level="info",
        )
        self._uvicorn_server = uvicorn.Server(config)
        logger.info("REST API starting on port %d", self.api_port)
        try:
            await self._uvicorn_server.serve()
        finally:
            if self.storage:
                await self.storage.close()

    async def stop(self):
        """Stop the API server; storage closes when start() returns."""
        if self._uvicorn_server is not None:
            self._uvicorn_server.should_exit = True


def main():
    """CLI entry point for the rewards server."""
    parser = argparse.ArgumentParser(description="Engage Rewards Server")
    parser.add_argument("--api-port", type=int, default=8080, help="REST API port (default: 8080)")
    parser.add_argument("--db-path", default="data/engage.db", help="SQLite database path (default: data/engage.db)")
    parser.add_argument("--jwt-secret", default=os.environ.get("ENGAGE_JWT_SECRET", ""),
                        help="HS256 secret for bearer tokens (default: $ENGAGE_JWT_SECRET)")
    parser.add_argument("--timezone", default=DEFAULT_TIMEZONE,
                        help=f"Civil timezone for daily resets (default: {DEFAULT_TIMEZONE})")
    parser.add_argument("--config-ttl", type=float, default=DEFAULT_TTL_SEC,
                        help=f"Seconds to cache limit config (default: {DEFAULT_TTL_SEC})")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )

    server = EngageServer(
        api_port=args.api_port, db_path=args.db_path, jwt_secret=args.jwt_secret,
        tz_name=args.timezone, config_ttl=args.config_ttl,
    )

    logger.info("=" * 60)
    logger.info("  Engage Rewards Server v%s", __version__)
    logger.info("  REST API:    http://localhost:%d", args.api_port)
    logger.info("  Database:    %s", args.db_path)
    logger.info("  Timezone:    %s", args.timezone)
    logger.info("=" * 60)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
