"""
CLI interface for Translation Relay.

Provides command-line access to setup, quota status, one-off translation and
the Discord bot itself.
"""

import asyncio
import logging
import sys
from typing import Optional

import aiohttp
import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from translation_relay.config.loader import RelayConfig, load_relay_config
from translation_relay.core.planner import NoTranslationProduced, TranslationPlan, TranslationPlanner
from translation_relay.core.render import render_translation
from translation_relay.providers.gateway import ProviderGateway
from translation_relay.storage.models import RelayState
from translation_relay.storage.repository import RelayRepository, initialize_schema
from translation_relay.storage.settings import EngineState

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML relay configuration")


def _load_config(config_path: Optional[str]) -> RelayConfig:
    try:
        return load_relay_config(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _load_state(config: RelayConfig) -> EngineState:
    state = EngineState(
        settings_path=config.storage.settings_path,
        character_limit=config.quota.monthly_limit,
        warning_ratio=config.quota.warning_ratio
    )
    state.load()
    return state


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Translation Relay CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Translation Relay - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = CONFIG_OPTION):
    """Create the settings document and the relay record database."""
    config = _load_config(config_path)
    try:
        _load_state(config)
        initialize_schema(config.storage.db_path)
        console.print("[green]✓[/] Settings and relay database initialized")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(config_path: Optional[str] = CONFIG_OPTION):
    """Show relay channel, quota usage and mirrored message counts."""
    config = _load_config(config_path)
    state = _load_state(config)
    ledger = state.ledger

    table = Table(title="Translation Relay Status")
    table.add_column("Item")
    table.add_column("Value", justify="right")
    table.add_row("Relay", "enabled" if state.relay.enabled else "disabled")
    table.add_row("Channel", state.relay.channel_id or "-")
    table.add_row("Billing period", ledger.period_key)
    table.add_row("Characters used", f"{ledger.used_characters:,} / {ledger.limit:,}")
    table.add_row("Usage", f"{ledger.usage_percentage():.2f}%")
    table.add_row("Remaining", f"{ledger.remaining():,}")
    table.add_row("Warning sent", "yes" if ledger.warning_sent else "no")
    table.add_row("DeepL key", "configured" if config.deepl_api_key else "missing")

    try:
        initialize_schema(config.storage.db_path)
        counts = RelayRepository(config.storage.db_path).count_by_state()
        table.add_row("Mirrored messages", str(counts[RelayState.MIRRORED]))
        table.add_row("Removed mirrors", str(counts[RelayState.REMOVED]))
    except Exception as e:
        console.print(f"[yellow]Relay database unavailable:[/] {e}")

    console.print(table)
    sys.exit(EXIT_CODE_PASS)


async def _plan_once(config: RelayConfig, state: EngineState, text: str) -> TranslationPlan:
    async with aiohttp.ClientSession() as session:
        gateway = ProviderGateway(
            session,
            primary_api_key=config.deepl_api_key,
            primary_url=config.providers.primary_url,
            secondary_url=config.providers.secondary_url,
            timeout_seconds=config.providers.timeout_seconds
        )
        planner = TranslationPlanner(
            gateway,
            state.ledger,
            home_language=config.languages.home,
            complementary_language=config.languages.complementary
        )
        plan = await planner.plan(text)
        await state.save()
        return plan


@app.command()
def translate(
    text: str = typer.Argument(..., help="Text to translate into both languages"),
    config_path: Optional[str] = CONFIG_OPTION
):
    """
    Translate TEXT the way the relay would.

    Primary provider usage is billed to the same monthly counter as the bot.
    """
    config = _load_config(config_path)
    state = _load_state(config)
    try:
        plan = asyncio.run(_plan_once(config, state, text))
    except NoTranslationProduced as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    rendered = render_translation(
        plan,
        config.label_for(config.languages.home),
        config.label_for(config.languages.complementary)
    )
    console.print(rendered or "[dim](empty translation)[/]")
    console.print(
        f"[dim]detected={plan.detected_source_language or '-'} "
        f"billed={plan.billed_characters} "
        f"remaining={state.ledger.remaining():,}[/]"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def run(
    config_path: Optional[str] = CONFIG_OPTION,
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level")
):
    """Start the Discord bot."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )
    config = _load_config(config_path)
    if not config.discord_token:
        console.print("[red]DISCORD_BOT_TOKEN is not set[/]")
        sys.exit(EXIT_CODE_FAIL)

    from translation_relay.bot.client import RelayBot

    bot = RelayBot(config)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    app()
