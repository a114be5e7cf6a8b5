"""CLI commands for Pi price, history and prediction."""

import json
import random
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..core.cli_base import ContextAwareCommand, async_command, dashboard_services
from ..core.context import get_current_context
from ..data.models import TimeFrame
from ..prediction.estimator import PredictionEstimator
from ..visualization.charts import ChartConfig, PredictionChart
from ..visualization.terminal import TerminalRenderer

console = Console()

FORMAT_OPTION = click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
                             default='table', help='Output format')


def _print_json(data) -> None:
    console.print_json(json.dumps(data))


@click.command(cls=ContextAwareCommand)
@click.option('--force', is_flag=True, help='Skip the cache window and call upstream')
@FORMAT_OPTION
@async_command
async def price(force: bool, output_format: str):
    """Show the current Pi price.

    Examples:
        pi-dashboard price
        pi-dashboard --currency EUR price --format json
    """
    renderer = TerminalRenderer(console)

    async with dashboard_services() as services:
        quote = await services.price_service.get_current_price(force=force)
        change = services.price_service.get_price_change()

    if output_format == 'json':
        _print_json({**quote.to_dict(), 'change': change.absolute, 'changePercent': change.percent})
        return

    console.print(renderer.price_panel(quote, change))


@click.command(cls=ContextAwareCommand)
@click.option('--days', type=click.IntRange(1, 300), default=None,
              help='Days of hourly history (default from configuration)')
@click.option('--limit', type=click.IntRange(1, 500), default=24, help='Rows to show')
@FORMAT_OPTION
@async_command
async def history(days: Optional[int], limit: int, output_format: str):
    """Show hourly Pi price history."""
    app_ctx = get_current_context()
    renderer = TerminalRenderer(console)

    async with dashboard_services() as services:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Fetching price history...", total=None)
            result = await services.price_service.get_historical_prices(days=days)

    if output_format == 'json':
        _print_json({
            'points': [p.to_dict() for p in result.value],
            'error': result.error,
            'notice': result.notice,
        })
        return

    for line in renderer.notices(result):
        console.print(line)

    if not result.value:
        console.print("[yellow]No historical data available[/yellow]")
        return

    console.print(renderer.history_table(result.value, app_ctx.currency.currency, limit=limit))


@click.command(cls=ContextAwareCommand)
@click.option('--timeframe', '-t', type=click.Choice([tf.value for tf in TimeFrame]),
              default=None, help='Prediction horizon (default from configuration)')
@click.option('--seed', type=int, default=None, help='Seed for the reason selection')
@click.option('--export', 'export_path', type=click.Path(dir_okay=False),
              help='Write the chart to a file (.html, .png, .svg or .json)')
@FORMAT_OPTION
@async_command
async def predict(timeframe: Optional[str], seed: Optional[int], export_path: Optional[str],
                  output_format: str):
    """Project the Pi price over a short horizon.

    Examples:
        pi-dashboard predict
        pi-dashboard predict --timeframe 6hours --export chart.html
    """
    app_ctx = get_current_context()
    renderer = TerminalRenderer(console)

    async with dashboard_services() as services:
        if seed is not None:
            services.estimator = PredictionEstimator(random.Random(seed))
        time_frame = TimeFrame.parse(timeframe) if timeframe else services.default_time_frame
        report = await services.predict(time_frame=time_frame)

    if export_path:
        chart = PredictionChart(ChartConfig(title=f"Pi price projection ({time_frame.value})"))
        chart.create(report.prediction, report.history, time_frame)
        try:
            written = chart.export(export_path)
        except ValueError as e:
            raise click.ClickException(str(e))
        console.print(f"[green]Chart written to {written}[/green]")

    if output_format == 'json':
        _print_json(report.to_dict())
        return

    for message in (report.quote.error, report.history_error, report.notice):
        if message:
            console.print(f"[yellow]{message}[/yellow]")

    console.print(renderer.prediction_panel(report.prediction, app_ctx.currency.currency,
                                            report.history[-time_frame.chart_points:]))
