"""
Rendering and dispatch of mirrored translations.

Turns a translation plan into one display payload and hands it to the
channel broadcaster, skipping mutations that would not change anything.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Protocol

from .planner import TranslationPlan
from ..storage.models import RelayRecord

log = logging.getLogger(__name__)

DEFAULT_HOME_LABEL = "🇯🇵"
DEFAULT_COMPLEMENTARY_LABEL = "🇺🇸"


@dataclass(frozen=True)
class RenderedPayload:
    """What the broadcaster posts under the proxy identity."""
    text: str
    author_name: Optional[str] = None
    author_icon_url: Optional[str] = None


class ChannelBroadcaster(Protocol):
    """Posts messages into a channel under a proxy identity."""

    async def find_or_create(self, channel_id: str) -> Any: ...

    def handle_id(self, handle: Any) -> str: ...

    async def send(self, handle: Any, payload: RenderedPayload) -> str: ...

    async def edit(self, handle: Any, message_id: str, payload: RenderedPayload) -> None: ...

    async def delete(self, handle: Any, message_id: str) -> None: ...

    async def notify(self, channel_id: str, title: str, description: str) -> None: ...


class DispatchAction(Enum):
    """What dispatch did with the channel."""
    CREATED = auto()
    UPDATED = auto()
    UNCHANGED = auto()


@dataclass(frozen=True)
class DispatchOutcome:
    action: DispatchAction
    mirrored_message_id: str
    broadcaster_id: str


def render_translation(
    plan: TranslationPlan,
    home_label: str = DEFAULT_HOME_LABEL,
    complementary_label: str = DEFAULT_COMPLEMENTARY_LABEL
) -> Optional[str]:
    """Format the plan's legs into a single block.

    Returns:
        Two labeled lines when both legs exist and differ, one labeled line
        when only one exists (or both are equal), None when there is nothing
        to show
    """
    home = plan.home_text
    complementary = plan.complementary_text
    if home and complementary and home != complementary:
        return f"{home_label} {home}\n{complementary_label} {complementary}"
    if home:
        return f"{home_label} {home}"
    if complementary:
        return f"{complementary_label} {complementary}"
    return None


class RelayDispatcher:
    """Creates, updates and retracts mirrored messages."""

    def __init__(self, broadcaster: ChannelBroadcaster):
        self.broadcaster = broadcaster

    async def dispatch(
        self,
        channel_id: str,
        payload: RenderedPayload,
        record: Optional[RelayRecord] = None
    ) -> DispatchOutcome:
        """Create a mirror, or update the one described by `record`.

        An update whose text matches the previous render makes no call.
        """
        if record is not None and record.rendered_text == payload.text:
            log.info("Rendered text unchanged, skipping edit of %s", record.mirrored_message_id)
            return DispatchOutcome(
                DispatchAction.UNCHANGED, record.mirrored_message_id, record.broadcaster_id
            )

        handle = await self.broadcaster.find_or_create(channel_id)
        if record is None:
            message_id = await self.broadcaster.send(handle, payload)
            log.info("Mirror created: %s", message_id)
            return DispatchOutcome(DispatchAction.CREATED, str(message_id), self.broadcaster.handle_id(handle))

        await self.broadcaster.edit(handle, record.mirrored_message_id, payload)
        log.info("Mirror updated: %s", record.mirrored_message_id)
        return DispatchOutcome(
            DispatchAction.UPDATED, record.mirrored_message_id, self.broadcaster.handle_id(handle)
        )

    async def retract(self, channel_id: str, record: RelayRecord) -> None:
        handle = await self.broadcaster.find_or_create(channel_id)
        await self.broadcaster.delete(handle, record.mirrored_message_id)
        log.info("Mirror deleted: %s", record.mirrored_message_id)
