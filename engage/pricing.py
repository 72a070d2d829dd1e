"""
pricing.py - Campaign pricing.

Advertisers pay payout x total_completions up front, plus a flat fee for
watch time beyond 30 seconds: 5 coins per extra 15-second step, charged once
for the whole campaign. Visitors get the payout plus their share of that
fee. Deleting a campaign refunds the unconsumed part of both.
"""

from decimal import Decimal

from engage.errors import ValidationError
from engage.money import ZERO, to_amount

MIN_WATCH_DURATION = 30
MAX_WATCH_DURATION = 120
WATCH_DURATION_STEP = 15
EXTRA_TIME_COST_PER_STEP = Decimal(5)

MIN_PAYOUT = Decimal("0.001")
MAX_PAYOUT = Decimal("1000.000")
MIN_TOTAL_COMPLETIONS = 1
MAX_TOTAL_COMPLETIONS = 100000


def validate_watch_duration(duration) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError("Watch duration must be an integer number of seconds")
    if duration < MIN_WATCH_DURATION or duration > MAX_WATCH_DURATION:
        raise ValidationError(
            f"Watch duration must be between {MIN_WATCH_DURATION} and {MAX_WATCH_DURATION} seconds"
        )
    if (duration - MIN_WATCH_DURATION) % WATCH_DURATION_STEP != 0:
        raise ValidationError(f"Watch duration must be in {WATCH_DURATION_STEP}-second steps")
    return duration


def validate_payout(payout) -> Decimal:
    value = to_amount(payout)
    if value < MIN_PAYOUT:
        raise ValidationError(f"Coins per visit must be at least {MIN_PAYOUT}")
    if value > MAX_PAYOUT:
        raise ValidationError(f"Coins per visit must not exceed {MAX_PAYOUT}")
    return value


def validate_total_completions(total) -> int:
    if isinstance(total, bool) or not isinstance(total, int):
        raise ValidationError("Total visits must be an integer")
    if total < MIN_TOTAL_COMPLETIONS or total > MAX_TOTAL_COMPLETIONS:
        raise ValidationError(
            f"Total visits must be between {MIN_TOTAL_COMPLETIONS} and {MAX_TOTAL_COMPLETIONS}"
        )
    return total


def extra_time_cost(duration: int) -> Decimal:
    steps = (duration - MIN_WATCH_DURATION) // WATCH_DURATION_STEP
    return EXTRA_TIME_COST_PER_STEP * steps


def total_campaign_cost(payout, duration: int, total: int) -> Decimal:
    return to_amount(to_amount(payout) * total + extra_time_cost(duration))


def reward_per_visit(payout, duration: int, total: int) -> Decimal:
    """Full (5/5) reward for one visit: payout plus a share of the watch-time fee."""
    return to_amount(to_amount(payout) + extra_time_cost(duration) / total)


def refund_for_remaining(payout, duration: int, total: int, served: int) -> Decimal:
    """(total - served) x payout + extra_time x (total - served) / total."""
    remaining = max(0, total - served)
    if remaining == 0:
        return ZERO
    return to_amount(
        to_amount(payout) * remaining + extra_time_cost(duration) * remaining / total
    )
