"""
Settings document persistence.

Owns the relay configuration and quota ledger for the running process and
writes them to a single JSON document. Fields belonging to the voice monitor
are carried through untouched.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.quota import (
    DEFAULT_CHARACTER_LIMIT,
    DEFAULT_WARNING_RATIO,
    QuotaLedger,
    current_period_key
)
from .models import ChannelRelayConfig

log = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = ".data/settings.json"


def default_document(period_key: Optional[str] = None) -> Dict[str, Any]:
    return {
        "enabled": False,
        "channelId": None,
        "voiceMonitorChannelId": None,
        "voiceNotificationChannelId": None,
        "voiceChannelMembers": {},
        "deeplUsageCount": 0,
        "deeplLastResetDate": period_key or current_period_key(),
        "deeplUsageWarningSent": False,
    }


def _migrate_legacy_keys(document: Dict[str, Any]) -> Dict[str, Any]:
    """Translate the old trst/msgch flags into enabled/channelId."""
    if "trst" in document:
        document.setdefault("enabled", document["trst"] == 1)
        del document["trst"]
    if "msgch" in document:
        channel = document.pop("msgch")
        if channel in (0, "0", None, ""):
            channel = None
        document.setdefault("channelId", channel)
    return document


class EngineState:
    """Process state of the relay: channel config and quota ledger.

    Saves are serialized through one lock so overlapping events never
    interleave partial writes of the document.
    """

    def __init__(
        self,
        settings_path: str = DEFAULT_SETTINGS_PATH,
        character_limit: int = DEFAULT_CHARACTER_LIMIT,
        warning_ratio: float = DEFAULT_WARNING_RATIO
    ):
        self.settings_path = Path(settings_path)
        self.character_limit = character_limit
        self.warning_ratio = warning_ratio
        self.relay = ChannelRelayConfig()
        self.ledger = QuotaLedger(limit=character_limit, warning_ratio=warning_ratio)
        self._extra: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    def load(self) -> None:
        """Read the settings document, creating it with defaults if missing.

        An unreadable document leaves defaults in memory; the next save
        replaces it.
        """
        if not self.settings_path.exists():
            document = default_document()
            self._apply(document)
            if self._write_logged():
                log.info("Settings document created at %s", self.settings_path)
            return

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                document = json.load(f)
            if not isinstance(document, dict):
                raise ValueError("settings document must be a JSON object")
        except (OSError, ValueError) as e:
            log.error("Could not read %s, starting with defaults: %s", self.settings_path, e)
            self._apply(default_document())
            return

        migrated = "trst" in document or "msgch" in document
        self._apply(_migrate_legacy_keys(document))
        rolled = self.ledger.rollover_if_needed(current_period_key())
        if rolled:
            log.info("Quota usage reset for period %s", self.ledger.period_key)
        if rolled or migrated:
            self._write_logged()
        log.info(
            "Settings loaded: relay=%s channel=%s usage=%s/%s",
            self.relay.enabled, self.relay.channel_id,
            self.ledger.used_characters, self.ledger.limit
        )

    def _apply(self, document: Dict[str, Any]) -> None:
        channel_id = document.get("channelId")
        self.relay = ChannelRelayConfig(
            enabled=bool(document.get("enabled", False)),
            channel_id=str(channel_id) if channel_id is not None else None
        )
        # Updated in place; the planner holds a reference to this ledger
        self.ledger.used_characters = max(0, int(document.get("deeplUsageCount") or 0))
        self.ledger.period_key = document.get("deeplLastResetDate") or current_period_key()
        self.ledger.warning_sent = bool(document.get("deeplUsageWarningSent", False))
        known = set(default_document())
        self._extra = {key: value for key, value in document.items() if key not in known}
        for key in ("voiceMonitorChannelId", "voiceNotificationChannelId", "voiceChannelMembers"):
            self._extra[key] = document.get(key, default_document()[key])

    def to_document(self) -> Dict[str, Any]:
        document = dict(self._extra)
        document.update({
            "enabled": self.relay.enabled,
            "channelId": self.relay.channel_id,
            "deeplUsageCount": self.ledger.used_characters,
            "deeplLastResetDate": self.ledger.period_key,
            "deeplUsageWarningSent": self.ledger.warning_sent,
        })
        return document

    def write(self) -> None:
        """Write the document atomically (temp file, then rename)."""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.settings_path.with_suffix(self.settings_path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self.to_document(), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.settings_path)

    def _write_logged(self) -> bool:
        try:
            self.write()
        except OSError as e:
            log.error("Saving settings to %s failed: %s", self.settings_path, e)
            return False
        return True

    async def save(self) -> bool:
        """Persist the current state; failures are logged, not raised.

        In-memory state stays authoritative until a write succeeds.

        Returns:
            True if the document was written
        """
        async with self._lock:
            written = await asyncio.to_thread(self._write_logged)
        if written:
            log.debug("Settings saved to %s", self.settings_path)
        return written

    def set_relay_channel(self, channel_id: str) -> None:
        self.relay = ChannelRelayConfig(enabled=True, channel_id=str(channel_id))

    def disable_relay(self) -> None:
        self.relay = ChannelRelayConfig(enabled=False, channel_id=None)

    def toggle_relay(self, channel_id: str) -> bool:
        """Stop the relay if it runs in this channel, otherwise move it here.

        Returns:
            True if the relay is now enabled for `channel_id`
        """
        if self.relay.is_relayed(channel_id):
            self.disable_relay()
            return False
        self.set_relay_channel(channel_id)
        return True
