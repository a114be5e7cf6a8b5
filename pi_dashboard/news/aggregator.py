"""News feed combining fixed articles with recent posts from X.

The aggregator keeps its own rate-limit flag under the ``twitter-rate-limited``
key. While it is set, social posts are not requested at all and the feed shows
only the fixed articles with a notice. ``retry()`` clears the flag.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..data.models import NewsCategory, NewsFeed, NewsItem, RateLimitState, now_ms
from ..data.cache import DEFAULT_BACKOFF_SECONDS
from ..data.storage import KeyValueStore, MemoryStore
from .mock import mock_articles
from .proxy import NewsProxy

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "twitter-rate-limited"
SOCIAL_SOURCE = "X (Twitter)"
CATEGORIES = ["all"] + [c.value for c in NewsCategory]

CACHED_NOTICE = "Using cached Twitter data due to rate limits."
UNEXPECTED_NOTICE = "Twitter data format is unexpected. Showing other news sources only."
RETRY_NOTICE = "Retrying Twitter integration..."
DEFAULT_ERROR_NOTICE = "Could not load Twitter data."


def rate_limited_notice(minutes: int) -> str:
    return f"Twitter API is rate limited. Will try again in approximately {minutes} minutes."


def process_posts(payload: Dict[str, Any]) -> List[NewsItem]:
    """Turn an X ``{data, includes}`` payload into news items.

    Posts whose author is not in ``includes.users`` are skipped.
    """
    posts = payload.get('data') or []
    users = (payload.get('includes') or {}).get('users') or []
    if not posts or not users:
        return []

    users_by_id = {user.get('id'): user for user in users}
    items = []

    for post in posts:
        author = users_by_id.get(post.get('author_id'))
        if not author:
            continue

        metrics = post.get('public_metrics') or {}
        items.append(NewsItem(
            id=str(post.get('id')),
            title=f"{author.get('name')} (@{author.get('username')})",
            summary=post.get('text', ''),
            source=SOCIAL_SOURCE,
            url=f"https://twitter.com/{author.get('username')}/status/{post.get('id')}",
            published_at=post.get('created_at', ''),
            category=NewsCategory.TWITTER,
            author={
                'name': author.get('name'),
                'username': author.get('username'),
                'profileImageUrl': author.get('profile_image_url'),
            },
            metrics={
                'likes': metrics.get('like_count'),
                'retweets': metrics.get('retweet_count'),
                'replies': metrics.get('reply_count'),
            },
        ))

    return items


def _sort_key(item: NewsItem) -> float:
    try:
        return item.published.timestamp()
    except ValueError:
        return 0.0


def format_relative_date(published: datetime, now: Optional[datetime] = None) -> str:
    """Format a publication time as ``5 minutes ago``, ``2 days ago`` or ``Jan 5, 2025``."""
    now = now or datetime.now(timezone.utc)
    diff_minutes = int((now - published).total_seconds() // 60)
    diff_hours = diff_minutes // 60
    diff_days = diff_hours // 24

    if diff_minutes < 60:
        return f"{diff_minutes} minute{'s' if diff_minutes != 1 else ''} ago"
    if diff_hours < 24:
        return f"{diff_hours} hour{'s' if diff_hours != 1 else ''} ago"
    if diff_days < 7:
        return f"{diff_days} day{'s' if diff_days != 1 else ''} ago"
    return f"{published:%b} {published.day}, {published.year}"


class NewsAggregator:
    """Builds the merged news feed."""

    def __init__(self, proxy: NewsProxy, store: Optional[KeyValueStore] = None,
                 backoff: int = DEFAULT_BACKOFF_SECONDS, clock=now_ms):
        """Initialize news aggregator.

        Args:
            proxy: Cached access to social posts
            store: Key-value store holding the rate-limit flag
            backoff: Seconds social fetching stays disabled after a 429
            clock: Returns the current time in epoch ms
        """
        self.proxy = proxy
        self.store = store or MemoryStore()
        self.backoff_ms = backoff * 1000
        self.clock = clock

        self.rate_limit = RateLimitState()
        self.feed = NewsFeed()
        self._loaded = False

    @property
    def social_disabled(self) -> bool:
        return self.rate_limit.is_limited(self.clock())

    async def load(self) -> None:
        """Restore the persisted rate-limit flag, dropping it if expired."""
        self._loaded = True
        stored = await self.store.get(RATE_LIMIT_KEY)
        if not stored:
            return

        state = RateLimitState.from_dict(stored)
        if state.is_limited(self.clock()):
            self.rate_limit = state
            logger.info(f"Social posts disabled for ~{state.remaining_minutes(self.clock())} minutes")
        else:
            await self.store.delete(RATE_LIMIT_KEY)

    async def _disable_social(self, reset_time: Optional[int]) -> int:
        now = self.clock()
        if not reset_time or reset_time <= now:
            reset_time = now + self.backoff_ms

        self.rate_limit = RateLimitState(disabled_until=reset_time)
        await self.store.set(RATE_LIMIT_KEY, {'timestamp': now, **self.rate_limit.to_dict()})
        return self.rate_limit.remaining_minutes(now)

    async def fetch(self) -> NewsFeed:
        """Refresh the feed.

        Never raises; degraded states are reported through ``notice``.
        """
        if not self._loaded:
            await self.load()

        now = self.clock()
        now_dt = datetime.fromtimestamp(now / 1000, tz=timezone.utc)
        items = mock_articles(now_dt)
        notice = None

        if self.rate_limit.disabled_until and not self.rate_limit.is_limited(now):
            self.rate_limit = RateLimitState()
            await self.store.delete(RATE_LIMIT_KEY)

        if self.rate_limit.is_limited(now):
            notice = rate_limited_notice(self.rate_limit.remaining_minutes(now))
        else:
            status, body = await self.proxy.handle()

            if status == 429:
                reset_time = (body.get('details') or {}).get('resetTime')
                minutes = await self._disable_social(reset_time)
                notice = rate_limited_notice(minutes)
            elif status != 200:
                notice = body.get('error') or DEFAULT_ERROR_NOTICE
                logger.warning(f"Social posts unavailable ({status}): {notice}")
            elif body.get('data') and body.get('includes'):
                items = process_posts(body) + items
                if body.get('fromCache'):
                    notice = CACHED_NOTICE
                await self.store.delete(RATE_LIMIT_KEY)
            else:
                notice = UNEXPECTED_NOTICE

        items.sort(key=_sort_key, reverse=True)

        self.feed = NewsFeed(
            items=items,
            notice=notice,
            last_updated=now_dt,
            social_disabled=self.social_disabled,
        )
        logger.debug(f"News feed refreshed with {len(items)} items")
        return self.feed

    async def reset_rate_limit(self) -> None:
        self.rate_limit = RateLimitState()
        await self.store.delete(RATE_LIMIT_KEY)

    async def retry(self) -> NewsFeed:
        """Clear every rate-limit flag and fetch again."""
        logger.info(RETRY_NOTICE)
        await self.reset_rate_limit()
        await self.proxy.cache.reset()
        return await self.fetch()
