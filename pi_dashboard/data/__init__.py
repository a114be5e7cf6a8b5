"""Data layer for the Pi dashboard.

This module provides data models, the cache-and-backoff policy, key-value
stores and API clients for price, history and social data.
"""

from .models import (
    PricePoint,
    Prediction,
    CacheEntry,
    RateLimitState,
    FetchResult,
    PriceQuote,
    NewsItem,
    NewsFeed,
    Trend,
    TimeFrame,
)
from .cache import CacheConfig, UpstreamCache, UpstreamState
from .storage import KeyValueStore, MemoryStore, JsonFileStore, SqliteStore

__all__ = [
    'PricePoint',
    'Prediction',
    'CacheEntry',
    'RateLimitState',
    'FetchResult',
    'PriceQuote',
    'NewsItem',
    'NewsFeed',
    'Trend',
    'TimeFrame',
    'CacheConfig',
    'UpstreamCache',
    'UpstreamState',
    'KeyValueStore',
    'MemoryStore',
    'JsonFileStore',
    'SqliteStore',
]
