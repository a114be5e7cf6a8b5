"""CLI command for the Pi news feed."""

import json

import click
from rich.console import Console

from ..core.cli_base import ContextAwareCommand, async_command, dashboard_services
from ..news.aggregator import CATEGORIES
from ..visualization.terminal import TerminalRenderer

console = Console()


@click.command(cls=ContextAwareCommand)
@click.option('--category', type=click.Choice(CATEGORIES), default='all', help='Only show one category')
@click.option('--retry', is_flag=True, help='Clear the social rate-limit flag before fetching')
@click.option('--limit', type=click.IntRange(1, 100), default=10, help='Items to show')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@async_command
async def news(category: str, retry: bool, limit: int, output_format: str):
    """Show the merged Pi news feed.

    Examples:
        pi-dashboard news
        pi-dashboard news --category twitter --retry
    """
    renderer = TerminalRenderer(console)

    async with dashboard_services() as services:
        aggregator = services.news_aggregator
        feed = await (aggregator.retry() if retry else aggregator.fetch())

    if output_format == 'json':
        console.print_json(json.dumps(feed.to_dict(category)))
        return

    if feed.notice:
        console.print(f"[yellow]{feed.notice}[/yellow]")

    items = feed.filter(category)[:limit]
    if not items:
        console.print("[yellow]No news in this category[/yellow]")
        return

    console.print(renderer.news_table(items))
