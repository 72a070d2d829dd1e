"""
errors.py - Error taxonomy shared by services and the REST layer.

Every error carries a stable ``code`` and the HTTP status the API maps it
to. Service code raises these; routers never build HTTP errors for them.
"""

from typing import Optional


class EngageError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "", details: Optional[dict] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


class ValidationError(EngageError, ValueError):
    code = "VALIDATION_ERROR"
    status_code = 422


class NotFound(EngageError, LookupError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(EngageError, PermissionError):
    code = "FORBIDDEN"
    status_code = 403


class Unauthorized(EngageError):
    code = "UNAUTHORIZED"
    status_code = 401


class InsufficientFunds(EngageError, ValueError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 402


class SessionInvalid(EngageError):
    code = "SESSION_INVALID"
    status_code = 400


class CampaignUnavailable(EngageError):
    code = "CAMPAIGN_UNAVAILABLE"
    status_code = 409


class EligibilityDenied(EngageError):
    """Claim refused by the eligibility engine (daily cap or cooldown)."""

    status_code = 429

    def __init__(self, decision: dict):
        self.decision = decision
        self.code = decision["outcome"]
        super().__init__(
            decision.get("message") or decision["outcome"],
            details={"retry_after_sec": decision.get("retry_after_sec")},
        )

    @property
    def retry_after(self) -> Optional[int]:
        return self.decision.get("retry_after_sec")


class RateLimited(EngageError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429


class InternalError(EngageError, RuntimeError):
    code = "INTERNAL_ERROR"
    status_code = 500
