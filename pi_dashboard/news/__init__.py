"""News feed: fixed articles plus recent posts from X."""

from .aggregator import NewsAggregator, format_relative_date, process_posts
from .mock import mock_articles
from .proxy import NewsProxy

__all__ = [
    'NewsAggregator',
    'NewsProxy',
    'format_relative_date',
    'mock_articles',
    'process_posts',
]
