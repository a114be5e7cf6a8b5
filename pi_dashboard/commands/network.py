"""CLI commands for network statistics and the Pi value calculator."""

import json
import random
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from ..core.cli_base import ContextAwareCommand, async_command, dashboard_services
from ..stats.calculator import PRESET_AMOUNTS, calculate as calculate_value, format_amount, is_valid_amount_input
from ..stats.network import NetworkStatsSimulator
from ..visualization.terminal import TerminalRenderer

console = Console()


@click.command(cls=ContextAwareCommand)
@click.option('--seed', type=int, default=None, help='Seed for the simulated figures')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
def stats(seed: Optional[int], output_format: str):
    """Show Pi network statistics (simulated)."""
    simulator = NetworkStatsSimulator(random.Random(seed) if seed is not None else None)
    snapshot = simulator.sample()

    if output_format == 'json':
        console.print_json(json.dumps(snapshot.to_dict()))
        return

    console.print(TerminalRenderer(console).stats_table(snapshot))


@click.command(cls=ContextAwareCommand)
@click.argument('amount', required=False)
@async_command
async def calculate(amount: Optional[str]):
    """Convert an amount of Pi to the display currency.

    Without AMOUNT the preset amounts are listed.

    Examples:
        pi-dashboard calculate 2500
        pi-dashboard --currency JPY calculate
    """
    if amount is not None and not is_valid_amount_input(amount):
        raise click.BadParameter(f"'{amount}' is not a non-negative decimal number",
                                 param_hint='AMOUNT')

    async with dashboard_services() as services:
        quote = await services.price_service.get_current_price()

    if quote.error:
        console.print(f"[yellow]{quote.error}[/yellow]")

    if amount is not None:
        result = calculate_value(amount, quote.price, quote.currency)
        console.print(TerminalRenderer(console).calculation_panel(result))
        return

    table = Table(title=f"Pi value ({quote.currency})", box=box.ROUNDED)
    table.add_column("Amount", justify="right", style="cyan")
    table.add_column("Value", justify="right", style="bold")
    for preset in PRESET_AMOUNTS:
        result = calculate_value(preset, quote.price, quote.currency)
        table.add_row(f"{format_amount(preset)} π", result.formatted)
    console.print(table)
