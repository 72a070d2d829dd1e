"""
auth.py - Bearer token authentication.

Accounts, passwords and OTP live in another service; this one only checks
the HS256 JWT it is handed. Claims used:

    sub   user id
    role  "user" or "admin"

issue_jwt() exists for operators and tests.
"""

import logging
import secrets
import time
from typing import Optional

import jwt as pyjwt
from fastapi import Header

from engage.errors import Forbidden, Unauthorized

logger = logging.getLogger("auth")

JWT_TTL = 86400  # 24 hours
ROLES = ("user", "admin")


class AuthService:
    """JWT verification and role checks for the REST layer."""

    def __init__(self, jwt_secret: str = "", ttl: int = JWT_TTL):
        self._jwt_secret = jwt_secret or secrets.token_hex(32)
        self._ttl = ttl
        if not jwt_secret:
            logger.warning(
                "No --jwt-secret provided; generated ephemeral secret "
                "(JWTs will invalidate on restart)"
            )

    def issue_jwt(self, user_id: str, role: str = "user") -> str:
        if role not in ROLES:
            raise ValueError(f"Role must be one of {ROLES}")
        now = int(time.time())
        payload = {
            "sub": str(user_id),
            "role": role,
            "iat": now,
            "exp": now + self._ttl,
        }
        return pyjwt.encode(payload, self._jwt_secret, algorithm="HS256")

    def decode_jwt(self, token: str) -> Optional[dict]:
        try:
            return pyjwt.decode(token, self._jwt_secret, algorithms=["HS256"])
        except pyjwt.ExpiredSignatureError:
            return None
        except pyjwt.InvalidTokenError:
            return None

    def resolve_user(self, authorization: str = "") -> Optional[dict]:
        """Caller from an ``Authorization: Bearer`` header, or None."""
        if not authorization.startswith("Bearer "):
            return None
        claims = self.decode_jwt(authorization[7:])
        if not claims or not claims.get("sub"):
            return None
        role = claims.get("role", "user")
        return {"user_id": claims["sub"], "role": role if role in ROLES else "user"}

    # -------------------------------------------------------------------
    # FastAPI dependencies
    # -------------------------------------------------------------------

    async def get_current_user(self, authorization: str = Header(default="")) -> dict:
        user = self.resolve_user(authorization)
        if user is None:
            raise Unauthorized("Missing or invalid credentials. Pass Authorization: Bearer <jwt>.")
        return user

    async def require_admin(self, authorization: str = Header(default="")) -> dict:
        user = await self.get_current_user(authorization)
        if user["role"] != "admin":
            raise Forbidden("Admin access required")
        return user
