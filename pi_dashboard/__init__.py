"""
Pi Dashboard - price, prediction and news dashboard for Pi Network.

This package provides a FastAPI web dashboard and a click CLI on top of
cached OKX/CoinGecko price data, a heuristic price projection, simulated
network statistics and a news feed mixing fixed articles with posts from X.
"""

__version__ = "0.1.0"
__author__ = "Pi Dashboard Team"
__license__ = "MIT"

from pi_dashboard.core.context import AppContext, Currency, CurrencyContext
from pi_dashboard.core.config import ConfigManager

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "AppContext",
    "Currency",
    "CurrencyContext",
    "ConfigManager",
]
