"""
Relay orchestration for message create, edit and delete events.

Per original message the relay moves UNTRANSLATED -> MIRRORED -> REMOVED.
A record is written only after its mirror was dispatched, and a failure in
one event never reaches the gateway loop or other messages.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

from .message_filter import has_ignored_prefix, is_translatable, strip_mentions
from .planner import NoTranslationProduced, TranslationPlanner
from .render import (
    DEFAULT_COMPLEMENTARY_LABEL,
    DEFAULT_HOME_LABEL,
    DispatchAction,
    RelayDispatcher,
    RenderedPayload,
    render_translation
)
from ..storage.models import RelayRecord, RelayState
from ..storage.repository import RelayRepository
from ..storage.settings import EngineState

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IGNORED_PREFIXES = ("v!", "m!")


@dataclass(frozen=True)
class MessageEvent:
    """A message as delivered by the chat gateway."""
    message_id: str
    channel_id: str
    content: str
    author_is_bot: bool = False
    author_name: Optional[str] = None
    author_icon_url: Optional[str] = None


class RelayOrchestrator:
    """Entry point for gateway events in the relay channel."""

    def __init__(
        self,
        state: EngineState,
        planner: TranslationPlanner,
        dispatcher: RelayDispatcher,
        repository: RelayRepository,
        home_label: str = DEFAULT_HOME_LABEL,
        complementary_label: str = DEFAULT_COMPLEMENTARY_LABEL,
        ignored_prefixes: Iterable[str] = DEFAULT_IGNORED_PREFIXES
    ):
        self.state = state
        self.planner = planner
        self.dispatcher = dispatcher
        self.repository = repository
        self.home_label = home_label
        self.complementary_label = complementary_label
        self.ignored_prefixes = tuple(ignored_prefixes)

    def _accepts(self, event: MessageEvent) -> bool:
        if event.author_is_bot:
            return False
        if not self.state.relay.is_relayed(event.channel_id):
            return False
        return not has_ignored_prefix(event.content, self.ignored_prefixes)

    async def handle_create(self, event: MessageEvent) -> RelayState:
        """Translate a new message and post its mirror."""
        if not self._accepts(event):
            return RelayState.UNTRANSLATED
        text = strip_mentions(event.content)
        if not is_translatable(text):
            log.info("Skipping message %s: empty or emoji only", event.message_id)
            return RelayState.UNTRANSLATED

        try:
            return await self._relay(event, text, record=None)
        except Exception:
            log.exception("Relaying message %s failed", event.message_id)
            return await self._stored_state(event.message_id, RelayState.UNTRANSLATED)

    async def handle_update(self, event: MessageEvent) -> RelayState:
        """Bring the mirror of an edited message up to date."""
        if event.author_is_bot or not self.state.relay.is_relayed(event.channel_id):
            return await self._stored_state(event.message_id, RelayState.UNTRANSLATED)

        known = RelayState.UNTRANSLATED
        try:
            record = await self._store(self.repository.lookup, event.message_id)
            if record is None:
                log.debug("No mirror for edited message %s", event.message_id)
                return await self._store(self.repository.state_of, event.message_id)
            known = record.state

            text = strip_mentions(event.content)
            if not is_translatable(text):
                await self.dispatcher.retract(event.channel_id, record)
                await self._store(self.repository.remove, event.message_id)
                log.info("Message %s edited to nothing translatable, mirror removed", event.message_id)
                return RelayState.REMOVED

            if text == record.original_text:
                log.debug("Message %s edited without text change", event.message_id)
                return RelayState.MIRRORED

            return await self._relay(event, text, record=record)
        except Exception:
            log.exception("Updating mirror of message %s failed", event.message_id)
            return await self._stored_state(event.message_id, known)

    async def handle_delete(self, message_id: str, channel_id: str) -> RelayState:
        """Retract the mirror of a deleted message."""
        known = RelayState.UNTRANSLATED
        try:
            record = await self._store(self.repository.lookup, message_id)
            if record is None:
                return await self._store(self.repository.state_of, message_id)
            known = record.state
            await self.dispatcher.retract(channel_id, record)
            await self._store(self.repository.remove, message_id)
            log.info("Message %s deleted, mirror removed", message_id)
            return RelayState.REMOVED
        except Exception:
            log.exception("Removing mirror of deleted message %s failed", message_id)
            return await self._stored_state(message_id, known)

    async def _store(self, operation: Callable[..., T], *args: Any) -> T:
        """Run a blocking repository call off the event loop."""
        return await asyncio.to_thread(operation, *args)

    async def _stored_state(self, message_id: str, known: RelayState) -> RelayState:
        """Stored state of a message, or `known` when the store cannot be read."""
        try:
            return await self._store(self.repository.state_of, message_id)
        except Exception:
            log.exception("Reading relay state of message %s failed", message_id)
            return known

    async def _relay(self, event: MessageEvent, text: str, record: Optional[RelayRecord]) -> RelayState:
        try:
            plan = await self.planner.plan(text)
        except NoTranslationProduced as e:
            log.warning("No translation produced for message %s: %r", event.message_id, text)
            if e.quota_warning:
                await self._post_quota_warning(event.channel_id)
            return await self._store(self.repository.state_of, event.message_id)

        if plan.quota_warning:
            await self._post_quota_warning(event.channel_id)

        rendered = render_translation(plan, self.home_label, self.complementary_label)
        if rendered is None:
            await self._persist_usage(plan.billed_characters > 0, plan.quota_warning)
            return await self._store(self.repository.state_of, event.message_id)

        payload = RenderedPayload(
            text=rendered,
            author_name=event.author_name,
            author_icon_url=event.author_icon_url
        )
        outcome = await self.dispatcher.dispatch(event.channel_id, payload, record)

        await self._store(self.repository.upsert, event.message_id, RelayRecord(
            mirrored_message_id=outcome.mirrored_message_id,
            broadcaster_id=outcome.broadcaster_id,
            original_text=text,
            rendered_text=rendered,
            detected_source_language=plan.detected_source_language,
            state=RelayState.MIRRORED,
            updated_at=datetime.now()
        ))
        if outcome.action != DispatchAction.UNCHANGED:
            log.info(
                "Message %s relayed (%s, detected=%s, billed=%s)",
                event.message_id, outcome.action.name.lower(),
                plan.detected_source_language, plan.billed_characters
            )
        await self._persist_usage(plan.billed_characters > 0, plan.quota_warning)
        return RelayState.MIRRORED

    async def _persist_usage(self, billed: bool, warned: bool) -> None:
        if billed or warned:
            await self.state.save()

    async def _post_quota_warning(self, channel_id: str) -> None:
        ledger = self.state.ledger
        description = (
            f"This month's DeepL character budget is running low: "
            f"{ledger.used_characters:,} / {ledger.limit:,} characters "
            f"({ledger.usage_percentage():.2f}%) used. "
            f"Translations may fall back to the secondary provider."
        )
        try:
            await self.state.save()
            await self.dispatcher.broadcaster.notify(channel_id, "⚠️ DeepL quota almost exhausted", description)
        except Exception:
            log.exception("Posting the quota warning failed")
