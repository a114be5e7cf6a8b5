"""Server-side wrapper around the X recent-search call.

Mirrors the HTTP contract of ``GET /api/twitter-news``: every outcome is a
``(status, body)`` pair, never an exception.
"""

import logging
from typing import Any, Dict, Tuple

from ..data.cache import UpstreamCache
from ..data.clients.twitter import TwitterClient
from ..data.errors import ConfigMissing, UpstreamUnavailable

logger = logging.getLogger(__name__)

RATE_LIMITED_ERROR = "Twitter API is rate limited"
FETCH_ERROR = "Failed to fetch tweets"


class NewsProxy:
    """Cached, rate-limit aware access to recent posts."""

    def __init__(self, client: TwitterClient, cache: UpstreamCache):
        self.client = client
        self.cache = cache

    async def handle(self, force: bool = False) -> Tuple[int, Dict[str, Any]]:
        """Fetch posts through the cache.

        Returns:
            (status, body) where body is ``{data, includes, meta?}`` on
            success, optionally with ``fromCache`` and ``notice``, or
            ``{error, details?}`` on failure
        """
        result = await self.cache.fetch(self.client.get_recent_posts, force=force)

        if result.ok:
            body = dict(result.value)
            if result.from_cache:
                body['fromCache'] = True
                if result.notice:
                    body['notice'] = result.notice
            return 200, body

        if result.rate_limited:
            return 429, {'error': RATE_LIMITED_ERROR, 'details': {'resetTime': result.reset_time}}

        exc = result.exception
        if isinstance(exc, ConfigMissing):
            logger.error(exc.message)
            return 500, {'error': exc.message}

        if isinstance(exc, UpstreamUnavailable) and exc.status_code:
            return exc.status_code, {'error': FETCH_ERROR, 'details': exc.details}

        return 500, {'error': FETCH_ERROR, 'details': result.error}
