"""
limits_config.py - Runtime limit configuration.

Business limits (tier thresholds, attempt caps, cooldown, rotation windows,
scoring weights, consolation caps) live as JSON blobs in the limit_config
table so operators can change them without a deploy. Each blob is parsed
into a pydantic model; a blob with the wrong shape is logged and replaced by
that key's defaults, never half-applied.

Reads go through a TTL cache. Storage errors propagate so the claim path
fails closed.
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as ModelValidationError

from engage.errors import ValidationError

if TYPE_CHECKING:
    from engage.clock import CivilClock
    from engage.storage import StorageManager

logger = logging.getLogger("config")

DEFAULT_TTL_SEC = 300


class _ConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ValueThresholds(_ConfigModel):
    high: float = Field(default=10.0, gt=0)
    medium: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _ordered(self):
        if self.medium > self.high:
            raise ValueError("medium threshold must not exceed high threshold")
        return self


class AttemptLimits(_ConfigModel):
    high: int = Field(default=2, ge=0)
    medium: int = Field(default=3, ge=0)
    low: int = Field(default=5, ge=0)


class CooldownSeconds(_ConfigModel):
    value: int = Field(default=3600, ge=0)


class RotationWindows(_ConfigModel):
    high: int = Field(default=21600, ge=0)
    medium: int = Field(default=10800, ge=0)
    low: int = Field(default=3600, ge=0)


class ScoringWeights(_ConfigModel):
    payout: float = 1.0
    progress: float = 0.5
    fresh: float = 0.25
    recent_penalty: float = 1.5


class ScoringConfig(_ConfigModel):
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    freshness_cap_sec: int = Field(default=259200, gt=0)
    jitter_band: float = Field(default=0.02, ge=0)


class ConsolationConfig(_ConfigModel):
    amount: float = Field(default=1.0, gt=0)
    user_daily_limit: int = Field(default=3, ge=0)
    user_campaign_cooldown_hours: float = Field(default=12, ge=0)
    campaign_daily_limit: int = Field(default=10, ge=0)
    global_daily_budget: float = Field(default=100.0, ge=0)


CONFIG_MODELS: Dict[str, Type[_ConfigModel]] = {
    "value_thresholds": ValueThresholds,
    "attempt_limits": AttemptLimits,
    "cooldown_seconds": CooldownSeconds,
    "rotation_windows": RotationWindows,
    "scoring_config": ScoringConfig,
    "consolation_config": ConsolationConfig,
}

DESCRIPTIONS = {
    "value_thresholds": "Payout thresholds separating HIGH / MEDIUM / LOW tiers",
    "attempt_limits": "Successful claims allowed per user per campaign per civil day, by tier",
    "cooldown_seconds": "Minimum spacing between claims on HIGH-tier campaigns",
    "rotation_windows": "Seconds a served campaign is penalised in the queue, by tier",
    "scoring_config": "Queue ranking weights, freshness cap and jitter band",
    "consolation_config": "Consolation amount and daily caps",
}


class LimitsSnapshot(_ConfigModel):
    """All limit settings as read at one instant."""

    value_thresholds: ValueThresholds = Field(default_factory=ValueThresholds)
    attempt_limits: AttemptLimits = Field(default_factory=AttemptLimits)
    cooldown_seconds: CooldownSeconds = Field(default_factory=CooldownSeconds)
    rotation_windows: RotationWindows = Field(default_factory=RotationWindows)
    scoring_config: ScoringConfig = Field(default_factory=ScoringConfig)
    consolation_config: ConsolationConfig = Field(default_factory=ConsolationConfig)


def parse_config_value(key: str, value) -> _ConfigModel:
    """Parse one stored blob; raises ValidationError on the wrong shape."""
    model = CONFIG_MODELS.get(key)
    if model is None:
        raise ValidationError(f"Unknown config key: {key}")
    if not isinstance(value, dict):
        raise ValidationError(f"Config {key} must be a JSON object")
    try:
        return model.model_validate(value)
    except ModelValidationError as e:
        raise ValidationError(f"Invalid {key}: {e.errors()[0]['msg']}")


class LimitConfigStore:
    """Read-through TTL cache over the limit_config table."""

    def __init__(
        self,
        storage: "StorageManager",
        clock: "CivilClock",
        ttl: float = DEFAULT_TTL_SEC,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._storage = storage
        self._clock = clock
        self._ttl = ttl
        self._monotonic = monotonic
        self._cached: Optional[LimitsSnapshot] = None
        self._stored_keys: frozenset = frozenset()
        self._loaded_at = 0.0

    async def get(self) -> LimitsSnapshot:
        if self._cached is None or self._monotonic() - self._loaded_at >= self._ttl:
            return await self.refresh()
        return self._cached

    async def refresh(self) -> LimitsSnapshot:
        async with self._storage.read():
            rows = await self._storage.limit_config.load_all()
        parsed = {}
        for key in CONFIG_MODELS:
            row = rows.get(key)
            if row is None:
                continue
            try:
                parsed[key] = parse_config_value(key, row["value"])
            except ValidationError as e:
                logger.warning("Config %s has unexpected shape, using defaults: %s", key, e.message)
        snapshot = LimitsSnapshot(**parsed)
        self._cached = snapshot
        self._stored_keys = frozenset(parsed)
        self._loaded_at = self._monotonic()
        logger.debug("Limit config refreshed (%d stored keys)", len(parsed))
        return snapshot

    def invalidate(self):
        self._cached = None

    async def set(self, key: str, value: dict, description: str = "") -> dict:
        model = parse_config_value(key, value)
        stored = model.model_dump()
        async with self._storage.transaction():
            await self._storage.limit_config.upsert(key, stored, description, self._clock.now())
        self.invalidate()
        logger.info("Config %s updated: %s", key, stored)
        return stored

    async def describe(self) -> dict:
        """Effective values per key, with where each one came from."""
        async with self._storage.read():
            rows = await self._storage.limit_config.load_all()
            snapshot = await self.refresh()
        result = {}
        for key in CONFIG_MODELS:
            row = rows.get(key)
            effective = getattr(snapshot, key).model_dump()
            result[key] = {
                "value": effective,
                "source": "stored" if key in self._stored_keys else "default",
                "description": (row or {}).get("description") or DESCRIPTIONS[key],
                "updated_at": (row or {}).get("updated_at"),
            }
        return result
