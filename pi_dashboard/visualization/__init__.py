"""Chart and terminal rendering."""

from .charts import ChartConfig, ChartGeometry, ExportFormat, PredictionChart, compute_geometry
from .terminal import TerminalRenderer, create_sparkline

__all__ = [
    'ChartConfig',
    'ChartGeometry',
    'ExportFormat',
    'PredictionChart',
    'TerminalRenderer',
    'compute_geometry',
    'create_sparkline',
]
