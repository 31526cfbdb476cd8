"""
Translation planning across the metered and unmetered providers.

Produces the home-language and complementary-language legs for one message.

Planning Order:
1. Quota warning check - Flags a one-time low-budget notice
2. Detection call - One primary call into the home language
3. Primary legs - Branch on the detected language, billing through the ledger
4. Secondary fallback - Each leg still missing is requested independently
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .quota import QuotaLedger, current_period_key, utc_now
from ..providers.gateway import ProviderGateway
from ..storage.models import ErrorKind, TranslationResult

log = logging.getLogger(__name__)


class RelayError(Exception):
    """Raised when a message cannot be relayed."""
    def __init__(self, message: str, kind: ErrorKind):
        super().__init__(message)
        self.kind = kind


class NoTranslationProduced(RelayError):
    """Raised when neither provider produced either leg."""
    def __init__(self, message: str = "No translation produced by any provider", quota_warning: bool = False):
        super().__init__(message, ErrorKind.NO_TRANSLATION_PRODUCED)
        self.quota_warning = quota_warning


@dataclass(frozen=True)
class TranslationPlan:
    """Outcome of planning one message."""
    home_text: Optional[str]
    complementary_text: Optional[str]
    detected_source_language: Optional[str]
    used_primary: bool
    quota_warning: bool = False
    billed_characters: int = 0


def same_language(code: Optional[str], other: Optional[str]) -> bool:
    """Compare language codes by their base tag (EN-US matches EN)."""
    if not code or not other:
        return False
    return code.split("-")[0].upper() == other.split("-")[0].upper()


class TranslationPlanner:
    """Decides which provider calls a message needs and bills the ledger."""

    def __init__(
        self,
        gateway: ProviderGateway,
        ledger: QuotaLedger,
        home_language: str = "JA",
        complementary_language: str = "EN",
        clock: Callable[[], datetime] = utc_now
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.home_language = home_language
        self.complementary_language = complementary_language
        self.clock = clock

    async def plan(self, text: str) -> TranslationPlan:
        """Compute both legs for `text`.

        Args:
            text: Mention-stripped, non-empty message text

        Returns:
            TranslationPlan with at least one leg set

        Raises:
            NoTranslationProduced: If no provider produced either leg
        """
        if self.ledger.rollover_if_needed(current_period_key(self.clock())):
            log.info("Quota period rolled over to %s", self.ledger.period_key)

        home: Optional[str] = None
        complementary: Optional[str] = None
        detected: Optional[str] = None
        used_primary = False
        quota_warning = False
        billed = 0

        if self.gateway.primary_configured:
            quota_warning = self.ledger.check_warning_threshold()
            if quota_warning:
                log.warning(
                    "Quota warning threshold reached: %s / %s characters used",
                    self.ledger.used_characters, self.ledger.limit
                )

            first = await self.gateway.translate_primary(text, self.home_language)
            if first.success:
                detected = first.detected_source_language
                home, complementary, billed = await self._primary_legs(text, first)
                used_primary = True
            else:
                log.warning("Primary detection call failed: %s", first.error_message)

        if home is None:
            home = await self._secondary_leg(text, self.home_language)
        if complementary is None:
            complementary = await self._secondary_leg(text, self.complementary_language)

        if home is None and complementary is None:
            raise NoTranslationProduced(quota_warning=quota_warning)

        return TranslationPlan(
            home_text=home,
            complementary_text=complementary,
            detected_source_language=detected,
            used_primary=used_primary,
            quota_warning=quota_warning,
            billed_characters=billed
        )

    async def _primary_legs(self, text: str, first: TranslationResult):
        """Branch on the detected language.

        Returns:
            (home_text, complementary_text, billed_characters)
        """
        detected = first.detected_source_language
        length = len(text)

        if same_language(detected, self.home_language):
            # Home leg is the original; checks one length, bills both directions
            cost = length * 2
            if not self.ledger.reserve(cost, gate=length):
                log.warning("Quota exhausted, skipping primary %s leg", self.complementary_language)
                return text, None, 0
            second = await self.gateway.translate_primary(text, self.complementary_language)
            if not second.success:
                self.ledger.release(cost)
                log.warning("Primary %s leg failed: %s", self.complementary_language, second.error_message)
                return text, None, 0
            return text, second.text, cost

        if same_language(detected, self.complementary_language):
            if not self.ledger.reserve(length):
                log.warning("Quota exhausted, skipping primary %s leg", self.home_language)
                return None, text, 0
            return first.text, text, length

        # Estimated as both directions regardless of actual output lengths
        cost = length * 2
        if not self.ledger.reserve(cost):
            log.warning("Quota exhausted, skipping both primary legs")
            return None, None, 0
        second = await self.gateway.translate_primary(text, self.complementary_language)
        if not second.success:
            self.ledger.release(cost)
            log.warning("Primary %s leg failed: %s", self.complementary_language, second.error_message)
            return None, None, 0
        return first.text, second.text, cost

    async def _secondary_leg(self, text: str, language: str) -> Optional[str]:
        result = await self.gateway.translate_secondary(text, language)
        if result.success:
            return result.text
        log.warning("Secondary %s leg failed: %s", language, result.error_message)
        return None
