"""
Engage Rewards - Server Package

Visit-and-quiz reward platform: campaign queue ranking, claim eligibility
(tiered daily caps, cooldowns, civil-day resets), idempotent coin ledger,
consolation payouts, SQLite storage and the REST API.
"""

__version__ = "0.1.0"

__all__ = [
    "auth",
    "campaigns",
    "claims",
    "clock",
    "consolation",
    "deps",
    "eligibility",
    "errors",
    "ledger",
    "limits_config",
    "models",
    "money",
    "pricing",
    "quiz",
    "rate_limit",
    "routers",
    "scoring",
    "server",
    "sessions",
    "storage",
    "url_check",
]
