"""
test_money_clock.py - Amount rounding and civil-day calendar arithmetic.
"""

from decimal import Decimal

import pytest

from engage.clock import CivilClock, FrozenClock
from engage.errors import ValidationError
from engage.money import from_milli, milli_to_float, to_amount, to_milli

NOON_IST = 1705300200.0       # 2024-01-15 12:00:00 IST (06:30 UTC)
MIDNIGHT_IST = 1705343400.0   # 2024-01-16 00:00:00 IST (2024-01-15 18:30 UTC)


# ── Amounts ────────────────────────────────────────────────────────────────

class TestAmounts:

    def test_rounds_half_up_to_three_places(self):
        assert to_amount("1.0005") == Decimal("1.001")
        assert to_amount("1.0004") == Decimal("1.000")
        assert to_amount("2.3335") == Decimal("2.334")

    def test_float_input_has_no_binary_noise(self):
        assert to_amount(0.1) == Decimal("0.100")
        assert to_amount(0.1 + 0.2) == Decimal("0.300")

    @pytest.mark.parametrize("bad", ["abc", None, True, float("nan"), float("inf")])
    def test_rejects_non_amounts(self, bad):
        with pytest.raises(ValidationError):
            to_amount(bad)

    def test_milli_conversion(self):
        assert to_milli("1.5") == 1500
        assert to_milli(0.0005) == 1
        assert from_milli(2167) == Decimal("2.167")
        assert milli_to_float(1500) == 1.5


# ── Civil clock ────────────────────────────────────────────────────────────

class TestCivilClock:

    def test_date_key_uses_platform_zone(self):
        clock = CivilClock("Asia/Kolkata", time_fn=lambda: NOON_IST)
        assert clock.date_key() == "2024-01-15"
        # 18:30 UTC on the 15th is already the 16th in Kolkata
        assert clock.date_key(MIDNIGHT_IST) == "2024-01-16"
        assert clock.date_key(MIDNIGHT_IST - 1) == "2024-01-15"

    def test_date_key_differs_by_zone(self):
        utc = CivilClock("UTC")
        assert utc.date_key(MIDNIGHT_IST) == "2024-01-15"

    def test_next_midnight(self):
        clock = CivilClock("Asia/Kolkata")
        assert clock.next_midnight(NOON_IST) == MIDNIGHT_IST
        assert clock.next_midnight(MIDNIGHT_IST) == MIDNIGHT_IST + 86400

    def test_seconds_until_midnight(self):
        clock = CivilClock("Asia/Kolkata")
        assert clock.seconds_until_midnight(NOON_IST) == 12 * 3600
        assert clock.seconds_until_midnight(MIDNIGHT_IST - 60) == 60
        assert clock.seconds_until_midnight(MIDNIGHT_IST - 0.25) == 1

    def test_format_until_midnight(self):
        clock = CivilClock("Asia/Kolkata")
        assert clock.format_until_midnight(NOON_IST) == "12 hours 0 minutes"
        assert clock.format_until_midnight(MIDNIGHT_IST - 3600 - 120) == "1 hour 2 minutes"
        assert clock.format_until_midnight(MIDNIGHT_IST - 60) == "1 minute"

    def test_frozen_clock(self):
        clock = FrozenClock(NOON_IST)
        assert clock.now() == NOON_IST
        clock.advance(90)
        assert clock.now() == NOON_IST + 90
        clock.set(MIDNIGHT_IST)
        assert clock.date_key() == "2024-01-16"
