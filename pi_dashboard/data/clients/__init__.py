"""Upstream API clients."""

from .coingecko import CoinGeckoClient
from .okx import OKXClient
from .twitter import TwitterClient

__all__ = [
    'CoinGeckoClient',
    'OKXClient',
    'TwitterClient',
]
