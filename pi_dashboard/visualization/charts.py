"""Prediction chart rendering using Plotly.

Rendering happens in two steps. :func:`compute_geometry` turns a prediction
and its history into a :class:`ChartGeometry` (axis scale, ranges, ticks and
line coordinates) without touching plotly. :class:`PredictionChart` then
draws that geometry. The same inputs always produce the same figure.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import plotly.graph_objects as go

from ..data.models import Prediction, PricePoint, TimeFrame, Trend

logger = logging.getLogger(__name__)

LOG_SCALE_RATIO = 10
PADDING_RATIO = 0.1
MIN_VISIBLE_RANGE = 0.005
TICK_PROXIMITY = 0.01
MIN_LOG_PRICE = 1e-7

HISTORY_COLOR = "#cbd5e1"
NOW_COLOR = "#0f172a"
TREND_COLORS = {
    Trend.UP: "#10b981",
    Trend.DOWN: "#ef4444",
    Trend.STABLE: "#6366f1",
}


class ExportFormat(Enum):
    """Chart export format enumeration."""
    HTML = "html"
    PNG = "png"
    SVG = "svg"
    JSON = "json"


@dataclass
class ChartConfig:
    """Chart configuration settings."""
    title: str = "Price Prediction"
    width: int = 800
    height: int = 400
    theme: str = "plotly_white"
    show_legend: bool = False


@dataclass(frozen=True)
class ChartGeometry:
    """Everything needed to draw a prediction chart.

    X values are minutes relative to the latest history point ("now").
    """

    log_scale: bool
    y_range: Tuple[float, float]
    y_ticks: Tuple[float, ...]
    y_tick_labels: Tuple[str, ...]
    x_range: Tuple[float, float]
    x_ticks: Tuple[float, ...]
    x_tick_labels: Tuple[str, ...]
    history_x: Tuple[float, ...] = field(default_factory=tuple)
    history_y: Tuple[float, ...] = field(default_factory=tuple)
    projection_x: Tuple[float, float] = (0.0, 0.0)
    projection_y: Tuple[float, float] = (0.0, 0.0)
    line_color: str = TREND_COLORS[Trend.STABLE]


def select_log_scale(prices: Sequence[float]) -> bool:
    """Use a logarithmic axis when the prices span more than a factor of 10."""
    return max(prices) / min(prices) > LOG_SCALE_RATIO


def format_price_label(price: float) -> str:
    """Format an axis price by magnitude."""
    if price < 0.001:
        return f"{price:.2e}"
    if price < 0.01:
        return f"{price:.6f}"
    if price < 1:
        return f"{price:.4f}"
    return f"{price:.2f}"


def format_offset(minutes: float) -> str:
    """Format a time offset such as -240 as ``-4h``."""
    sign = "-" if minutes < 0 else "+"
    minutes = abs(minutes)
    if minutes >= 60:
        hours = minutes / 60
        text = f"{hours:g}h"
    else:
        text = f"{minutes:g}m"
    return f"{sign}{text}"


def _price_range(prices: Sequence[float], current_price: float,
                 log_scale: bool) -> Tuple[float, float]:
    low = min(prices)
    high = max(prices)

    if log_scale:
        log_low = math.log10(max(low, MIN_LOG_PRICE))
        log_high = math.log10(high)
        pad = (log_high - log_low) * PADDING_RATIO
        return 10 ** (log_low - pad), 10 ** (log_high + pad)

    effective_range = max(high - low, current_price * MIN_VISIBLE_RANGE)
    pad = effective_range * PADDING_RATIO
    return low - pad, high + pad


def _price_ticks(y_range: Tuple[float, float], current_price: float,
                 log_scale: bool) -> List[float]:
    low, high = y_range
    if log_scale:
        ticks = list(np.logspace(math.log10(low), math.log10(high), 5))
    else:
        ticks = list(np.linspace(low, high, 4))
    ticks = [float(t) for t in ticks]

    if not any(abs(t - current_price) / current_price < TICK_PROXIMITY for t in ticks):
        ticks.append(current_price)
        ticks.sort()
    return ticks


def compute_geometry(prediction: Prediction, history: Sequence[PricePoint],
                     time_frame: Optional[TimeFrame] = None) -> ChartGeometry:
    """Compute the chart layout for a prediction.

    Args:
        prediction: Prediction to draw
        history: Price points ascending by timestamp
        time_frame: Horizon, defaults to the prediction's own

    Returns:
        ChartGeometry
    """
    time_frame = time_frame or prediction.time_frame
    horizon = float(time_frame.horizon_minutes)
    history_span = 2 * horizon

    history = list(history)
    recent = history[-time_frame.chart_points:]

    prices = [prediction.current_price, prediction.target_price]
    prices.extend(p.price for p in history[-time_frame.range_points:])

    log_scale = select_log_scale(prices)
    y_range = _price_range(prices, prediction.current_price, log_scale)
    y_ticks = _price_ticks(y_range, prediction.current_price, log_scale)

    history_x: List[float] = []
    history_y: List[float] = []
    if recent:
        now_ts = recent[-1].timestamp
        earliest = now_ts - history_span * 60 * 1000
        for point in recent:
            if point.timestamp >= earliest:
                history_x.append((point.timestamp - now_ts) / 60000)
                history_y.append(point.price)

    x_ticks = [-history_span, -horizon] + [horizon * i / 4 for i in range(5)]
    x_labels = [format_offset(-history_span), format_offset(-horizon)] + time_frame.time_labels

    return ChartGeometry(
        log_scale=log_scale,
        y_range=y_range,
        y_ticks=tuple(y_ticks),
        y_tick_labels=tuple(format_price_label(t) for t in y_ticks),
        x_range=(-history_span, horizon),
        x_ticks=tuple(x_ticks),
        x_tick_labels=tuple(x_labels),
        history_x=tuple(history_x),
        history_y=tuple(history_y),
        projection_x=(0.0, horizon),
        projection_y=(prediction.current_price, prediction.target_price),
        line_color=TREND_COLORS[prediction.trend],
    )


class PredictionChart:
    """Plotly chart of recent history and the projected segment."""

    def __init__(self, config: Optional[ChartConfig] = None):
        """Initialize prediction chart.

        Args:
            config: Chart configuration
        """
        self.config = config or ChartConfig()
        self.figure: Optional[go.Figure] = None
        self.geometry: Optional[ChartGeometry] = None

    def create(self, prediction: Prediction, history: Sequence[PricePoint],
               time_frame: Optional[TimeFrame] = None) -> go.Figure:
        """Create the chart.

        Args:
            prediction: Prediction to draw
            history: Price points ascending by timestamp
            time_frame: Horizon, defaults to the prediction's own

        Returns:
            Plotly figure object
        """
        self.geometry = compute_geometry(prediction, history, time_frame)
        self.figure = self._draw(self.geometry)
        return self.figure

    def _draw(self, geometry: ChartGeometry) -> go.Figure:
        fig = go.Figure()

        if geometry.history_x:
            fig.add_trace(go.Scatter(
                x=list(geometry.history_x),
                y=list(geometry.history_y),
                mode='lines',
                name='History',
                line=dict(color=HISTORY_COLOR, width=2),
                hovertemplate='%{y}<extra>History</extra>'
            ))

        fig.add_trace(go.Scatter(
            x=list(geometry.projection_x),
            y=list(geometry.projection_y),
            mode='lines',
            name='Projection',
            line=dict(color=geometry.line_color, width=2),
            hovertemplate='%{y}<extra>Projection</extra>'
        ))

        fig.add_trace(go.Scatter(
            x=[geometry.projection_x[0]],
            y=[geometry.projection_y[0]],
            mode='markers',
            name='Now',
            marker=dict(color=NOW_COLOR, size=8, line=dict(color='#ffffff', width=1))
        ))

        fig.add_trace(go.Scatter(
            x=[geometry.projection_x[1]],
            y=[geometry.projection_y[1]],
            mode='markers',
            name='Target',
            marker=dict(color=geometry.line_color, size=8, line=dict(color='#ffffff', width=1))
        ))

        if geometry.log_scale:
            y_range = [math.log10(geometry.y_range[0]), math.log10(geometry.y_range[1])]
        else:
            y_range = list(geometry.y_range)

        fig.update_layout(
            title=self.config.title,
            template=self.config.theme,
            width=self.config.width,
            height=self.config.height,
            showlegend=self.config.show_legend,
            xaxis=dict(
                range=list(geometry.x_range),
                tickvals=list(geometry.x_ticks),
                ticktext=list(geometry.x_tick_labels),
                showgrid=True,
                zeroline=False,
            ),
            yaxis=dict(
                type='log' if geometry.log_scale else 'linear',
                range=y_range,
                tickvals=list(geometry.y_ticks),
                ticktext=list(geometry.y_tick_labels),
                showgrid=True,
            ),
        )

        if geometry.log_scale:
            fig.add_annotation(
                text="log scale",
                xref='paper', yref='paper',
                x=0.01, y=0.99,
                showarrow=False,
                font=dict(size=10, color='#64748b')
            )

        return fig

    def export(self, filename: str, format: Optional[ExportFormat] = None) -> str:
        """Export chart to file.

        Args:
            filename: Output filename
            format: Export format, inferred from the file extension by default

        Returns:
            Path to exported file
        """
        if not self.figure:
            raise ValueError("Chart must be created before export")

        if format is None:
            suffix = filename.rsplit('.', 1)[-1].lower() if '.' in filename else 'html'
            try:
                format = ExportFormat(suffix)
            except ValueError:
                raise ValueError(f"Unsupported export format: {suffix}")

        if format == ExportFormat.HTML:
            self.figure.write_html(filename)
        elif format in (ExportFormat.PNG, ExportFormat.SVG):
            self.figure.write_image(filename, format=format.value)
        elif format == ExportFormat.JSON:
            with open(filename, 'w') as f:
                f.write(self.figure.to_json())

        logger.info(f"Exported prediction chart to {filename}")
        return filename

    def to_html(self, full_html: bool = True) -> str:
        if not self.figure:
            raise ValueError("Chart must be created before conversion")
        return self.figure.to_html(full_html=full_html, include_plotlyjs='cdn')

    def to_json(self) -> str:
        if not self.figure:
            raise ValueError("Chart must be created before conversion")
        return self.figure.to_json()
