"""
Tests for the monthly quota ledger.
"""
from datetime import datetime, timedelta, timezone

import pytest

from translation_relay.core.quota import QuotaLedger, current_period_key
from translation_relay.storage.models import QuotaState


class TestReserve:
    """Test reservation accounting."""

    def test_reserve_records_usage_when_budget_allows(self):
        """Test a reservation within budget is recorded."""
        ledger = QuotaLedger(limit=100, used_characters=40, period_key="2026-10")

        assert ledger.reserve(60) is True
        assert ledger.used_characters == 100
        assert ledger.remaining() == 0

    def test_reserve_refused_without_change(self):
        """Test a reservation over budget changes nothing."""
        ledger = QuotaLedger(limit=100, used_characters=95, period_key="2026-10")

        assert ledger.reserve(6) is False
        assert ledger.used_characters == 95

    def test_reserve_never_overshoots_by_more_than_cost(self):
        """Test usage stays within limit + cost across many reservations."""
        ledger = QuotaLedger(limit=1000, period_key="2026-10")
        for cost in [7, 300, 13, 250, 90, 400, 1, 64, 999, 5]:
            before = ledger.remaining()
            granted = ledger.reserve(cost)
            assert granted == (before >= cost)
            assert ledger.used_characters <= ledger.limit + cost

    def test_gate_checks_smaller_budget_than_billed(self):
        """Test the gate decides, while the full cost is recorded."""
        ledger = QuotaLedger(limit=100, used_characters=85, period_key="2026-10")

        assert ledger.reserve(20, gate=10) is True
        assert ledger.used_characters == 105
        assert ledger.remaining() == 0

    def test_release_returns_reservation(self):
        """Test release undoes a failed reservation."""
        ledger = QuotaLedger(limit=100, period_key="2026-10")
        ledger.reserve(30)
        ledger.release(30)
        assert ledger.used_characters == 0

        ledger.release(10)
        assert ledger.used_characters == 0

    def test_negative_cost_rejected(self):
        """Test negative costs are rejected."""
        ledger = QuotaLedger(limit=100, period_key="2026-10")
        with pytest.raises(ValueError, match="cannot be negative"):
            ledger.reserve(-1)

    def test_invalid_limit_rejected(self):
        """Test non-positive limits are rejected."""
        with pytest.raises(ValueError, match="limit must be > 0"):
            QuotaLedger(limit=0)


class TestWarningThreshold:
    """Test the one-time low budget warning."""

    def test_warning_fires_once_per_period(self):
        """Test two consecutive checks return True then False."""
        ledger = QuotaLedger(limit=1000, used_characters=950, period_key="2026-10")

        assert ledger.check_warning_threshold() is True
        assert ledger.warning_sent is True
        assert ledger.check_warning_threshold() is False

    def test_no_warning_above_threshold(self):
        """Test nothing fires while more than 10% remains."""
        ledger = QuotaLedger(limit=1000, used_characters=899, period_key="2026-10")

        assert ledger.check_warning_threshold() is False
        assert ledger.warning_sent is False

    def test_warning_at_exact_threshold(self):
        """Test exactly 10% remaining triggers the warning."""
        ledger = QuotaLedger(limit=1000, used_characters=900, period_key="2026-10")
        assert ledger.check_warning_threshold() is True

    def test_warning_fires_again_after_rollover(self):
        """Test a new period re-arms the warning."""
        ledger = QuotaLedger(limit=1000, used_characters=990, period_key="2026-09")
        assert ledger.check_warning_threshold() is True

        ledger.rollover_if_needed("2026-10")
        ledger.reserve(950)
        assert ledger.check_warning_threshold() is True


class TestRollover:
    """Test billing period resets."""

    def test_rollover_resets_usage(self):
        """Test a new period resets usage and the warning flag."""
        ledger = QuotaLedger(limit=1000, used_characters=700, period_key="2026-09", warning_sent=True)

        assert ledger.rollover_if_needed("2026-10") is True
        assert ledger.used_characters == 0
        assert ledger.warning_sent is False
        assert ledger.period_key == "2026-10"

    def test_rollover_idempotent_within_period(self):
        """Test a second rollover in the same period changes nothing."""
        ledger = QuotaLedger(limit=1000, used_characters=700, period_key="2026-09")
        ledger.rollover_if_needed("2026-10")
        ledger.reserve(25)

        assert ledger.rollover_if_needed("2026-10") is False
        assert ledger.used_characters == 25

    def test_current_period_key_format(self):
        """Test period keys are year-month."""
        assert current_period_key(datetime(2026, 1, 31, 23, 59)) == "2026-01"

    def test_period_follows_utc_month(self):
        """Test the period changes at UTC midnight, not local midnight."""
        tokyo = timezone(timedelta(hours=9))
        assert current_period_key(datetime(2026, 11, 1, 8, 59, tzinfo=tokyo)) == "2026-10"
        assert current_period_key(datetime(2026, 11, 1, 9, 0, tzinfo=tokyo)) == "2026-11"

    def test_default_period_is_utc(self):
        before = datetime.now(timezone.utc).strftime("%Y-%m")
        key = current_period_key()
        after = datetime.now(timezone.utc).strftime("%Y-%m")
        assert key in (before, after)


class TestStateConversion:
    """Test conversion to and from the persisted state."""

    def test_round_trip(self):
        """Test the ledger survives conversion to QuotaState."""
        state = QuotaState(used_characters=12, period_key="2026-10", limit=500, warning_sent=True)
        ledger = QuotaLedger.from_state(state)

        assert ledger.remaining() == 488
        assert ledger.to_state() == state

    def test_usage_percentage(self):
        """Test usage percentage is rounded to two decimals."""
        ledger = QuotaLedger(limit=3, used_characters=1, period_key="2026-10")
        assert ledger.usage_percentage() == 33.33
