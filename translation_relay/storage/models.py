"""
Data models for storage layer.

Defines relay records, quota state and translation results.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RelayState(Enum):
    """Lifecycle of an original message in the relay channel."""
    UNTRANSLATED = "untranslated"  # No mirror has been produced
    MIRRORED = "mirrored"          # Mirror exists and tracks edits
    REMOVED = "removed"            # Mirror retracted; terminal


class ErrorKind(Enum):
    """Failure categories reported by providers and the planner."""
    UNCONFIGURED = "unconfigured"
    UPSTREAM_ERROR = "upstream_error"
    TRANSPORT_ERROR = "transport_error"
    NO_TRANSLATION_PRODUCED = "no_translation_produced"


@dataclass(frozen=True)
class TranslationResult:
    """Normalized output of a single provider call."""
    success: bool
    text: Optional[str] = None
    detected_source_language: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, text: str, detected_source_language: Optional[str] = None) -> "TranslationResult":
        return cls(success=True, text=text, detected_source_language=detected_source_language)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "TranslationResult":
        return cls(success=False, error_kind=kind, error_message=message)


@dataclass
class QuotaState:
    """Persisted monthly usage of the metered provider."""
    used_characters: int
    period_key: str
    limit: int
    warning_sent: bool = False

    def __post_init__(self):
        if self.used_characters < 0:
            raise ValueError("used_characters cannot be negative")
        if self.limit <= 0:
            raise ValueError("limit must be > 0")


@dataclass
class ChannelRelayConfig:
    """Which channel, if any, is relayed."""
    enabled: bool = False
    channel_id: Optional[str] = None

    def is_relayed(self, channel_id: str) -> bool:
        return self.enabled and self.channel_id is not None and self.channel_id == str(channel_id)


@dataclass(frozen=True)
class RelayRecord:
    """Mapping from an original message to its mirrored translation.

    Written only after the mirror was dispatched successfully, so a stored
    record always points at a message that exists in the channel.
    """
    mirrored_message_id: str
    broadcaster_id: str
    original_text: str
    rendered_text: str
    detected_source_language: Optional[str] = None
    state: RelayState = RelayState.MIRRORED
    updated_at: Optional[datetime] = None
