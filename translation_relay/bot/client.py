"""
Discord adapter for the translation relay.

Feeds gateway events into the orchestrator, provides the webhook-backed
channel broadcaster and the slash commands that toggle the relay and report
quota usage.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

import aiohttp
import discord
from discord import app_commands
from discord.ext import tasks

from ..config.loader import RelayConfig
from ..core.planner import TranslationPlanner
from ..core.relay import MessageEvent, RelayOrchestrator
from ..core.render import RelayDispatcher, RenderedPayload
from ..providers.gateway import ProviderGateway
from ..storage.repository import RelayRepository, initialize_schema
from ..storage.settings import EngineState

log = logging.getLogger(__name__)

MIRROR_COLOR = discord.Color.from_str("#87a6c4")
WARNING_COLOR = discord.Color.from_str("#FFA500")
STATUS_COLOR = discord.Color.from_str("#2C88D9")

START_COMMAND = "v!start"
STOP_COMMAND = "v!stop"


def build_mirror_embed(payload: RenderedPayload) -> discord.Embed:
    embed = discord.Embed(
        description=payload.text,
        color=MIRROR_COLOR,
        timestamp=discord.utils.utcnow()
    )
    if payload.author_name:
        embed.set_footer(text=payload.author_name, icon_url=payload.author_icon_url)
    return embed


class WebhookBroadcaster:
    """Channel broadcaster posting through one bot-owned webhook per channel."""

    def __init__(self, client: discord.Client):
        self.client = client
        self._webhooks: Dict[str, discord.Webhook] = {}

    async def _channel(self, channel_id: str):
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            channel = await self.client.fetch_channel(int(channel_id))
        return channel

    async def find_or_create(self, channel_id: str) -> discord.Webhook:
        channel_id = str(channel_id)
        if channel_id in self._webhooks:
            return self._webhooks[channel_id]

        channel = await self._channel(channel_id)
        me = self.client.user
        for webhook in await channel.webhooks():
            if webhook.user is not None and webhook.user.id == me.id:
                self._webhooks[channel_id] = webhook
                return webhook

        webhook = await channel.create_webhook(
            name=f"{me.name} Translator",
            avatar=await me.display_avatar.read()
        )
        log.info("Webhook created in channel %s", channel_id)
        self._webhooks[channel_id] = webhook
        return webhook

    def handle_id(self, handle: discord.Webhook) -> str:
        return str(handle.id)

    async def send(self, handle: discord.Webhook, payload: RenderedPayload) -> str:
        me = self.client.user
        message = await handle.send(
            embed=build_mirror_embed(payload),
            username=me.name,
            avatar_url=me.display_avatar.url,
            wait=True
        )
        return str(message.id)

    async def edit(self, handle: discord.Webhook, message_id: str, payload: RenderedPayload) -> None:
        await handle.edit_message(int(message_id), embed=build_mirror_embed(payload))

    async def delete(self, handle: discord.Webhook, message_id: str) -> None:
        try:
            await handle.delete_message(int(message_id))
        except discord.NotFound:
            log.info("Mirror %s was already gone", message_id)

    async def notify(self, channel_id: str, title: str, description: str) -> None:
        channel = await self._channel(channel_id)
        embed = discord.Embed(
            title=title,
            description=description,
            color=WARNING_COLOR,
            timestamp=discord.utils.utcnow()
        )
        await channel.send(embed=embed)


class RelayBot(discord.Client):
    """Discord client hosting the relay engine."""

    def __init__(self, config: RelayConfig):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True
        super().__init__(intents=intents)
        self.config = config
        self.tree = app_commands.CommandTree(self)
        self.state = EngineState(
            settings_path=config.storage.settings_path,
            character_limit=config.quota.monthly_limit,
            warning_ratio=config.quota.warning_ratio
        )
        self.session: Optional[aiohttp.ClientSession] = None
        self.gateway: Optional[ProviderGateway] = None
        self.orchestrator: Optional[RelayOrchestrator] = None

    async def setup_hook(self) -> None:
        self.state.load()
        initialize_schema(self.config.storage.db_path)
        repository = RelayRepository(self.config.storage.db_path)
        purged = await asyncio.to_thread(repository.purge_removed)
        if purged:
            log.info("Purged %s old relay tombstones", purged)

        self.session = aiohttp.ClientSession()
        self.gateway = ProviderGateway(
            self.session,
            primary_api_key=self.config.deepl_api_key,
            primary_url=self.config.providers.primary_url,
            secondary_url=self.config.providers.secondary_url,
            timeout_seconds=self.config.providers.timeout_seconds
        )
        languages = self.config.languages
        planner = TranslationPlanner(
            self.gateway,
            self.state.ledger,
            home_language=languages.home,
            complementary_language=languages.complementary
        )
        self.orchestrator = RelayOrchestrator(
            state=self.state,
            planner=planner,
            dispatcher=RelayDispatcher(WebhookBroadcaster(self)),
            repository=repository,
            home_label=self.config.label_for(languages.home),
            complementary_label=self.config.label_for(languages.complementary),
            ignored_prefixes=self.config.ignored_prefixes
        )
        if not self.gateway.primary_configured:
            log.warning("DEEPL_API_KEY is not set; every leg uses the secondary provider")

        register_commands(self)
        await self.tree.sync()
        self.periodic_save.start()

    async def close(self) -> None:
        if self.periodic_save.is_running():
            self.periodic_save.cancel()
        await self.state.save()
        if self.session:
            await self.session.close()
        await super().close()

    @tasks.loop(minutes=5)
    async def periodic_save(self) -> None:
        await self.state.save()

    async def on_ready(self) -> None:
        log.info("Logged in as %s", self.user)
        await self.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="translations")
        )

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return

        if message.content in (START_COMMAND, STOP_COMMAND):
            await self._handle_text_command(message)
            return

        await self.orchestrator.handle_create(_to_event(message))

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        if after.guild is None or before.content == after.content:
            return
        await self.orchestrator.handle_update(_to_event(after))

    async def on_raw_message_delete(self, payload: discord.RawMessageDeleteEvent) -> None:
        if payload.guild_id is None:
            return
        await self.orchestrator.handle_delete(str(payload.message_id), str(payload.channel_id))

    async def _handle_text_command(self, message: discord.Message) -> None:
        if message.content == START_COMMAND:
            self.state.set_relay_channel(str(message.channel.id))
            reply = f"Automatic translation **started** in this channel. ({START_COMMAND})"
        else:
            self.state.disable_relay()
            reply = f"Automatic translation **stopped**. ({STOP_COMMAND})"
        await self.state.save()
        await message.reply(reply)


def _to_event(message: discord.Message) -> MessageEvent:
    return MessageEvent(
        message_id=str(message.id),
        channel_id=str(message.channel.id),
        content=message.content,
        author_is_bot=message.author.bot,
        author_name=message.author.display_name,
        author_icon_url=message.author.display_avatar.url
    )


def register_commands(bot: RelayBot) -> None:
    """Attach the slash commands to the bot's command tree."""

    @bot.tree.command(name="automatictranslation", description="Start or stop automatic translation in this channel.")
    async def automatic_translation(interaction: discord.Interaction):
        enabled = bot.state.toggle_relay(str(interaction.channel_id))
        await bot.state.save()
        verb = "started" if enabled else "stopped"
        await interaction.response.send_message(f"Automatic translation **{verb}** in this channel.")

    @bot.tree.command(name="deeplstatus", description="Show DeepL character usage for this month.")
    async def deepl_status(interaction: discord.Interaction):
        if not bot.gateway.primary_configured:
            await interaction.response.send_message("DeepL API key is not configured.", ephemeral=True)
            return
        await interaction.response.defer()
        ledger = bot.state.ledger
        embed = discord.Embed(title="📚 DeepL API usage", color=STATUS_COLOR, timestamp=discord.utils.utcnow())
        usage = await bot.gateway.fetch_primary_usage()
        if usage is not None:
            percentage = usage["character_count"] / usage["character_limit"] * 100 if usage["character_limit"] else 0
            embed.add_field(
                name="Characters used (DeepL)",
                value=f"{usage['character_count']:,} / {usage['character_limit']:,} ({percentage:.2f}%)",
                inline=False
            )
        else:
            embed.add_field(name="Characters used (DeepL)", value="unavailable", inline=False)
        embed.add_field(
            name="Internal counter",
            value=f"{ledger.used_characters:,} / {ledger.limit:,} ({ledger.usage_percentage():.2f}%)",
            inline=False
        )
        embed.set_footer(text=f"Billing period {ledger.period_key}")
        await interaction.followup.send(embed=embed)

    @bot.tree.command(name="ping", description="Show gateway latency and provider response times.")
    async def ping(interaction: discord.Interaction):
        await interaction.response.defer()
        started = time.perf_counter()
        preview = await bot.gateway.translate_secondary("test", bot.config.languages.home)
        secondary_ms = (time.perf_counter() - started) * 1000
        secondary_value = preview.text if preview.success else f"Error: {preview.error_message}"

        embed = discord.Embed(title="📶 Ping", color=STATUS_COLOR, timestamp=discord.utils.utcnow())
        embed.add_field(name="Gateway latency", value=f"{bot.latency * 1000:.0f}ms", inline=True)
        embed.add_field(name="Secondary provider", value=f"{secondary_ms:.0f}ms", inline=True)
        embed.add_field(name="Secondary preview", value=f"`{(secondary_value or '')[:50]}`", inline=False)
        relay = bot.state.relay
        embed.add_field(
            name="Relay channel",
            value=f"<#{relay.channel_id}>" if relay.enabled and relay.channel_id else "not set",
            inline=False
        )
        await interaction.followup.send(embed=embed)
