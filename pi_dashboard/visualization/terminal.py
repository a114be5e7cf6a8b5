"""Rich renderables for the terminal dashboard."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.context import Currency
from ..data.models import FetchResult, NewsItem, Prediction, PriceChange, PricePoint, PriceQuote, Trend
from ..news.aggregator import format_relative_date
from ..stats.calculator import Calculation, format_amount
from ..stats.network import NetworkStats, format_compact

logger = logging.getLogger(__name__)

SPARKLINE_CHARS = ['▁', '▂', '▃', '▄', '▅', '▆', '▇', '█']

TREND_STYLES = {
    Trend.UP: ("green", "▲"),
    Trend.DOWN: ("red", "▼"),
    Trend.STABLE: ("yellow", "■"),
}


def create_sparkline(values: Sequence[float], width: int = 40) -> str:
    """Create a sparkline chart.

    Args:
        values: Numeric values, oldest first
        width: Maximum number of characters

    Returns:
        Sparkline string
    """
    if not values or len(values) < 2:
        return '─' * width

    if len(values) > width:
        step = len(values) / width
        sampled = [values[int(i * step)] for i in range(width)]
    else:
        sampled = list(values)

    min_val = min(sampled)
    max_val = max(sampled)

    if min_val == max_val:
        return '─' * len(sampled)

    line = ''
    for value in sampled:
        normalized = (value - min_val) / (max_val - min_val)
        index = min(int(normalized * len(SPARKLINE_CHARS)), len(SPARKLINE_CHARS) - 1)
        line += SPARKLINE_CHARS[index]
    return line


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M')


class TerminalRenderer:
    """Builds Rich panels and tables for dashboard data."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def price_panel(self, quote: PriceQuote, change: Optional[PriceChange] = None) -> Panel:
        currency = Currency.parse(quote.currency)
        text = Text(currency.format_price(quote.price), style="bold")

        if change is not None and change.absolute is not None:
            style = "green" if change.direction > 0 else "red" if change.direction < 0 else "dim"
            percent = f" ({change.percent:+.2f}%)" if change.percent is not None else ""
            text.append(f"  {change.absolute:+.8f}{percent}", style=style)

        lines = [text, Text(f"Source: {quote.source.value}", style="dim")]
        if quote.from_cache:
            lines.append(Text("Served from cache" + (" (stale)" if quote.stale else ""), style="dim"))
        if quote.error:
            lines.append(Text(quote.error, style="yellow"))

        return Panel(Group(*lines), title=f"Pi / {currency.value}", box=box.ROUNDED)

    def prediction_panel(self, prediction: Prediction, currency: Currency,
                         history: Sequence[PricePoint] = ()) -> Panel:
        style, arrow = TREND_STYLES[prediction.trend]

        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Trend", f"[{style}]{arrow} {prediction.trend.value}[/{style}]")
        table.add_row("Confidence", f"{prediction.confidence:.0f}%")
        table.add_row("Current", currency.format_price(prediction.current_price, 8))
        table.add_row("Target", f"{currency.format_price(prediction.target_price, 8)} "
                                f"({prediction.change_percent:+.2f}%)")
        if history:
            table.add_row("History", create_sparkline([p.price for p in history]))

        reasons = Text()
        for reason in prediction.reasons:
            reasons.append(f"• {reason}\n")

        return Panel(
            Group(table, reasons),
            title=f"Prediction ({prediction.time_frame.value})",
            border_style=style,
            box=box.ROUNDED,
        )

    def history_table(self, points: Sequence[PricePoint], currency: Currency,
                      limit: int = 24) -> Table:
        table = Table(title=f"Pi price history ({currency.value})", box=box.ROUNDED)
        table.add_column("Time (UTC)", style="cyan")
        table.add_column("Price", justify="right")
        table.add_column("Change", justify="right")

        shown = list(points)[-limit:]
        previous = None
        for point in shown:
            change = PriceChange.between(previous, point.price)
            if change.percent is None:
                change_text = "-"
            else:
                color = "green" if change.direction > 0 else "red" if change.direction < 0 else "dim"
                change_text = f"[{color}]{change.percent:+.2f}%[/{color}]"
            table.add_row(_format_timestamp(point.timestamp),
                          currency.format_price(point.price, 8), change_text)
            previous = point.price
        return table

    def news_table(self, items: Sequence[NewsItem], now: Optional[datetime] = None) -> Table:
        table = Table(title="Pi Network news", box=box.ROUNDED, show_lines=True)
        table.add_column("When", style="dim", no_wrap=True)
        table.add_column("Source", style="cyan")
        table.add_column("Title")

        for item in items:
            table.add_row(
                format_relative_date(item.published, now),
                item.source,
                f"[bold]{item.title}[/bold]\n{item.summary}",
            )
        return table

    def stats_table(self, stats: NetworkStats) -> Table:
        table = Table(title="Network statistics", box=box.ROUNDED, show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="bold")
        table.add_row("Active users", format_compact(stats.active_users))
        table.add_row("Nodes", format_compact(stats.total_nodes))
        table.add_row("Block height", f"{stats.block_height:,}")
        table.add_row("Transactions/s", str(stats.transactions_per_second))
        table.add_row("Consensus", f"{stats.consensus_rate:.1f}%")
        return table

    def calculation_panel(self, calculation: Calculation) -> Panel:
        return Panel(
            f"{format_amount(calculation.amount)} π = [bold]{calculation.formatted}[/bold]",
            title=f"Calculator ({calculation.currency.value})",
            box=box.ROUNDED,
        )

    def cache_table(self, stats: List[Dict[str, Any]]) -> Table:
        table = Table(title="Upstream caches", box=box.ROUNDED)
        table.add_column("Cache", style="cyan")
        table.add_column("State")
        table.add_column("Age (s)", justify="right")
        table.add_column("Hits", justify="right")
        table.add_column("Misses", justify="right")
        table.add_column("Rate limited until")

        for entry in stats:
            until = entry.get('rate_limited_until')
            table.add_row(
                entry['name'],
                entry['state'],
                str(entry['entry_age_seconds']) if entry.get('entry_age_seconds') is not None else "-",
                str(entry.get('hits', 0)),
                str(entry.get('misses', 0)),
                _format_timestamp(until) if until else "-",
            )
        return table

    def notices(self, *results: Optional[FetchResult]) -> List[Text]:
        """Warning lines for degraded fetch results."""
        lines = []
        for result in results:
            if result is None:
                continue
            for message in (result.error, result.notice):
                if message:
                    lines.append(Text(message, style="yellow"))
        return lines
