"""
Shared fakes for relay tests.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pytest

from translation_relay.core.quota import QuotaLedger, current_period_key
from translation_relay.core.render import RenderedPayload
from translation_relay.storage.models import ErrorKind, TranslationResult

FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0)


def upstream_failure() -> TranslationResult:
    return TranslationResult.failure(ErrorKind.UPSTREAM_ERROR, "HTTP 500: boom")


class FakeGateway:
    """Provider gateway answering from per-language tables."""

    def __init__(
        self,
        primary: Optional[Dict[str, TranslationResult]] = None,
        secondary: Optional[Dict[str, TranslationResult]] = None,
        configured: bool = True
    ):
        self.primary = primary or {}
        self.secondary = secondary or {}
        self.primary_configured = configured
        self.primary_calls: List[Tuple[str, str]] = []
        self.secondary_calls: List[Tuple[str, str]] = []

    async def translate_primary(self, text: str, target_language: str) -> TranslationResult:
        self.primary_calls.append((text, target_language))
        if not self.primary_configured:
            return TranslationResult.failure(ErrorKind.UNCONFIGURED, "no key")
        return self.primary.get(target_language, upstream_failure())

    async def translate_secondary(self, text: str, target_language: str) -> TranslationResult:
        self.secondary_calls.append((text, target_language))
        return self.secondary.get(target_language, upstream_failure())


class FakeBroadcaster:
    """Channel broadcaster recording every mutation."""

    def __init__(self):
        self.sent: List[Tuple[str, RenderedPayload]] = []
        self.edited: List[Tuple[str, RenderedPayload]] = []
        self.deleted: List[str] = []
        self.notices: List[Tuple[str, str, str]] = []
        self.fail_send = False
        self._next_id = 9000

    @property
    def mutations(self) -> int:
        return len(self.sent) + len(self.edited) + len(self.deleted)

    async def find_or_create(self, channel_id: str) -> str:
        return f"hook-{channel_id}"

    def handle_id(self, handle: str) -> str:
        return handle

    async def send(self, handle: str, payload: RenderedPayload) -> str:
        if self.fail_send:
            raise RuntimeError("webhook send failed")
        self._next_id += 1
        self.sent.append((handle, payload))
        return str(self._next_id)

    async def edit(self, handle: str, message_id: str, payload: RenderedPayload) -> None:
        self.edited.append((message_id, payload))

    async def delete(self, handle: str, message_id: str) -> None:
        self.deleted.append(message_id)

    async def notify(self, channel_id: str, title: str, description: str) -> None:
        self.notices.append((channel_id, title, description))


def make_ledger(limit: int = 500000, used: int = 0, warning_sent: bool = False) -> QuotaLedger:
    return QuotaLedger(
        limit=limit,
        used_characters=used,
        period_key=current_period_key(FIXED_NOW),
        warning_sent=warning_sent
    )


@pytest.fixture
def broadcaster():
    return FakeBroadcaster()
