"""CLI commands for the upstream caches."""

import click
from rich.console import Console

from ..core.cli_base import ContextAwareGroup, async_command, dashboard_services
from ..visualization.terminal import TerminalRenderer

console = Console()


@click.group(cls=ContextAwareGroup)
def cache():
    """Inspect and reset upstream caches."""
    pass


@cache.command()
@async_command
async def status():
    """Show cache state and rate-limit flags."""
    async with dashboard_services() as services:
        stats = services.price_service.get_cache_stats() + [services.news_proxy.cache.get_stats()]
        social_disabled = services.news_aggregator.social_disabled

    console.print(TerminalRenderer(console).cache_table(stats))
    if social_disabled:
        console.print("[yellow]Social posts are disabled after rate limiting[/yellow]")


@cache.command()
@click.confirmation_option(prompt='Clear all cached data and rate-limit flags?')
@async_command
async def clear():
    """Clear cached payloads and rate-limit flags."""
    async with dashboard_services() as services:
        count = await services.clear_caches()

    console.print(f"[green]Cleared {count} cached payloads[/green]")
