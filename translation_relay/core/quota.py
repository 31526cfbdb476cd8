"""
Monthly character quota for the metered translation provider.

Accounting rules:
1. Usage is recorded only through reserve() - callers reserve before a
   translation is treated as billed
2. A reservation whose provider call failed is returned with release()
3. Usage resets when the billing period (calendar month) changes
4. The low-budget warning fires at most once per period
"""

from datetime import datetime, timezone
from typing import Optional

from translation_relay.storage.models import QuotaState

DEFAULT_CHARACTER_LIMIT = 500000
DEFAULT_WARNING_RATIO = 0.10


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def current_period_key(now: Optional[datetime] = None) -> str:
    """Billing period key (YYYY-MM) for the given time, in UTC.

    Naive datetimes are taken as UTC already.
    """
    now = now or utc_now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m")


class QuotaLedger:
    """Tracks cumulative character usage against a monthly limit.

    No method awaits, so a check-and-increment in reserve() can never be
    interleaved with another reservation on the event loop.
    """

    def __init__(
        self,
        limit: int = DEFAULT_CHARACTER_LIMIT,
        used_characters: int = 0,
        period_key: Optional[str] = None,
        warning_sent: bool = False,
        warning_ratio: float = DEFAULT_WARNING_RATIO
    ):
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if not 0 <= warning_ratio <= 1:
            raise ValueError("warning_ratio must be between 0 and 1")
        self.limit = limit
        self.used_characters = max(0, used_characters)
        self.period_key = period_key or current_period_key()
        self.warning_sent = warning_sent
        self.warning_ratio = warning_ratio

    @classmethod
    def from_state(cls, state: QuotaState, warning_ratio: float = DEFAULT_WARNING_RATIO) -> "QuotaLedger":
        return cls(
            limit=state.limit,
            used_characters=state.used_characters,
            period_key=state.period_key,
            warning_sent=state.warning_sent,
            warning_ratio=warning_ratio
        )

    def to_state(self) -> QuotaState:
        return QuotaState(
            used_characters=self.used_characters,
            period_key=self.period_key,
            limit=self.limit,
            warning_sent=self.warning_sent
        )

    def remaining(self) -> int:
        """Characters left in this period, never negative."""
        return max(0, self.limit - self.used_characters)

    def usage_percentage(self) -> float:
        return round(self.used_characters / self.limit * 100, 2)

    def reserve(self, cost: int, gate: Optional[int] = None) -> bool:
        """Record `cost` characters if the remaining budget allows it.

        Args:
            cost: Characters to record on success
            gate: Budget that must remain for the reservation to succeed.
                Defaults to `cost`; the home-language leg checks one text
                length but bills two.

        Returns:
            True if the usage was recorded, False if nothing changed
        """
        if cost < 0:
            raise ValueError("cost cannot be negative")
        required = cost if gate is None else gate
        if self.remaining() < required:
            return False
        self.used_characters += cost
        return True

    def release(self, cost: int) -> None:
        """Return a reservation whose translation did not go through."""
        self.used_characters = max(0, self.used_characters - cost)

    def check_warning_threshold(self) -> bool:
        """True exactly once per period when the budget runs low."""
        if self.warning_sent:
            return False
        if self.remaining() > self.limit * self.warning_ratio:
            return False
        self.warning_sent = True
        return True

    def rollover_if_needed(self, period_key: Optional[str] = None) -> bool:
        """Reset usage when a new billing period starts.

        Returns:
            True if the ledger was reset
        """
        period_key = period_key or current_period_key()
        if period_key == self.period_key:
            return False
        self.used_characters = 0
        self.warning_sent = False
        self.period_key = period_key
        return True
