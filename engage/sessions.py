"""
sessions.py - Claim session (visit) tokens.

A token is issued when a user starts a campaign visit and is spent by the
quiz submission. Tokens are 64 hex chars, expire after 10 minutes and can be
consumed once. The campaign id is stored as a plain value so a session still
resolves after its campaign is deleted.
"""

import logging
import secrets
from typing import TYPE_CHECKING, Optional

from engage.errors import Forbidden, NotFound, SessionInvalid

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.storage import StorageManager

logger = logging.getLogger("sessions")

TOKEN_TTL_SEC = 600


class SessionTokenService:
    def __init__(self, storage: "StorageManager", clock: "CivilClock", ttl: int = TOKEN_TTL_SEC):
        self._storage = storage
        self._clock = clock
        self._ttl = ttl

    async def issue(self, user_id: str, campaign_id: int) -> dict:
        token = secrets.token_hex(32)
        now = self._clock.now()
        expires_at = now + self._ttl
        async with self._storage.transaction():
            await self._storage.sessions.create(token, user_id, campaign_id, now, expires_at)
        logger.debug("Issued session for user=%s campaign=%s", user_id, campaign_id)
        return {"token": token, "expires_at": expires_at}

    async def find_open(self, user_id: str, campaign_id: int) -> Optional[dict]:
        token = await self._storage.sessions.find_open(user_id, campaign_id, self._clock.now())
        if token is None:
            return None
        return await self._storage.sessions.get(token)

    async def resolve(self, token: str, user_id: str) -> dict:
        """Look up a token owned by ``user_id`` (expired or consumed included)."""
        session = await self._storage.sessions.get(token)
        if session is None:
            raise NotFound("Invalid session token")
        if session["user_id"] != user_id:
            raise Forbidden("Session token belongs to another user")
        return session

    def ensure_usable(self, session: dict):
        if session["consumed_at"] is not None:
            raise SessionInvalid("Session token already used")
        if self._clock.now() >= session["expires_at"]:
            raise SessionInvalid("Session token expired")

    async def consume(self, token: str) -> bool:
        async with self._storage.transaction():
            return await self._storage.sessions.consume(token, self._clock.now())

    async def purge_expired(self) -> int:
        async with self._storage.transaction():
            return await self._storage.sessions.delete_expired(self._clock.now())
