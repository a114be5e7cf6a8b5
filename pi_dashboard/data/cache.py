"""Cache-and-backoff policy wrapping a single upstream.

Each upstream (price, history, news) owns one :class:`UpstreamCache`. The
cache decides whether a network call is made at all, remembers the last good
payload, and tracks the rate-limit window after an HTTP 429.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import RateLimited, UpstreamError
from .models import CacheEntry, FetchResult, RateLimitState, now_ms
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

# Default backoff after a 429 when the upstream gives no reset hint
DEFAULT_BACKOFF_SECONDS = 4 * 60 * 60


@dataclass
class CacheConfig:
    """Windows for one upstream, in seconds."""

    window: int = 15 * 60
    backoff: int = DEFAULT_BACKOFF_SECONDS
    persist: bool = True

    @property
    def window_ms(self) -> int:
        return self.window * 1000

    @property
    def backoff_ms(self) -> int:
        return self.backoff * 1000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CacheConfig':
        data = data or {}
        return cls(
            window=int(data.get('window', 15 * 60)),
            backoff=int(data.get('backoff', DEFAULT_BACKOFF_SECONDS)),
            persist=bool(data.get('persist', True)),
        )


class UpstreamState(Enum):
    """Availability of an upstream."""
    AVAILABLE = "available"
    RATE_LIMITED = "rate_limited"


class UpstreamCache:
    """Fixed-window cache with a rate-limit flag for one upstream."""

    def __init__(self, name: str, config: Optional[CacheConfig] = None,
                 store: Optional[KeyValueStore] = None,
                 clock: Callable[[], int] = now_ms):
        """Initialize upstream cache.

        Args:
            name: Upstream name, used as the storage key prefix
            config: Validity and backoff windows
            store: Key-value store used for persistence
            clock: Returns the current time in epoch ms
        """
        self.name = name
        self.config = config or CacheConfig()
        self.store = store or MemoryStore()
        self.clock = clock

        self.entry: Optional[CacheEntry] = None
        self.rate_limit = RateLimitState()

        self._stats = {
            'hits': 0,
            'misses': 0,
            'fallbacks': 0,
            'rate_limited': 0,
        }

    @property
    def cache_key(self) -> str:
        return f"{self.name}:cache"

    @property
    def rate_limit_key(self) -> str:
        return f"{self.name}:rate_limit"

    @property
    def state(self) -> UpstreamState:
        if self.rate_limit.is_limited(self.clock()):
            return UpstreamState.RATE_LIMITED
        return UpstreamState.AVAILABLE

    async def load(self) -> None:
        """Restore cache entry and rate-limit state from the store."""
        if not self.config.persist:
            return

        now = self.clock()

        stored_entry = await self.store.get(self.cache_key)
        if stored_entry:
            self.entry = CacheEntry.from_dict(stored_entry)
            logger.debug(f"Restored {self.name} cache entry (age {self.entry.age_ms(now)} ms)")

        stored_limit = await self.store.get(self.rate_limit_key)
        if stored_limit:
            state = RateLimitState.from_dict(stored_limit)
            if state.is_limited(now):
                self.rate_limit = state
                logger.info(f"{self.name} upstream still rate limited for "
                            f"~{state.remaining_minutes(now)} minutes")
            else:
                await self.store.delete(self.rate_limit_key)

    async def reset(self) -> None:
        """Forget the rate-limit flag so the next fetch calls upstream."""
        self.rate_limit = RateLimitState()
        if self.config.persist:
            await self.store.delete(self.rate_limit_key)
        logger.info(f"Reset rate limit state for {self.name}")

    async def clear(self) -> None:
        """Drop the cached payload and the rate-limit flag."""
        self.entry = None
        if self.config.persist:
            await self.store.delete(self.cache_key)
        await self.reset()

    async def fetch(self, factory: Callable[[], Awaitable[Any]], force: bool = False) -> FetchResult:
        """Return cached data or call upstream through ``factory``.

        Never raises for upstream failures: they come back as a FetchResult
        with ``error`` set and, when available, the stale cached payload.

        Args:
            factory: Coroutine function performing the upstream call
            force: Skip the validity-window short circuit

        Returns:
            FetchResult describing the outcome
        """
        now = self.clock()

        if not force and self.entry and self.entry.is_valid(now, self.config.window_ms):
            self._stats['hits'] += 1
            logger.debug(f"Cache hit for {self.name}")
            return FetchResult(value=self.entry.payload, from_cache=True)

        if self.rate_limit.is_limited(now):
            logger.info(f"{self.name} upstream rate limited, skipping API call")
            return self._fallback(
                f"{self.name} API is rate limited",
                notice="Using cached data due to API rate limits",
                rate_limited=True,
            )

        if self.rate_limit.disabled_until:
            # Backoff window elapsed
            await self.reset()

        self._stats['misses'] += 1

        try:
            payload = await factory()
        except RateLimited as e:
            reset_time = e.reset_time if e.reset_time and e.reset_time > now else now + self.config.backoff_ms
            await self._set_rate_limited(reset_time)
            return self._fallback(
                e.message,
                notice="Using cached data due to API rate limits",
                rate_limited=True,
                exception=e,
            )
        except UpstreamError as e:
            logger.warning(f"{self.name} upstream failed: {e.message}")
            return self._fallback(e.message, notice="Using cached data due to API error", exception=e)
        except Exception as e:
            logger.error(f"Unexpected error fetching {self.name}: {e}")
            return self._fallback(str(e), notice="Using cached data due to API error", exception=e)

        self.entry = CacheEntry(payload=payload, timestamp=now)
        if self.config.persist:
            await self.store.set(self.cache_key, self.entry.to_dict())

        return FetchResult(value=payload)

    async def _set_rate_limited(self, reset_time: int) -> None:
        self.rate_limit = RateLimitState(disabled_until=reset_time)
        self._stats['rate_limited'] += 1
        if self.config.persist:
            await self.store.set(self.rate_limit_key, self.rate_limit.to_dict())
        logger.warning(f"{self.name} upstream rate limited for "
                       f"~{self.rate_limit.remaining_minutes(self.clock())} minutes")

    def _fallback(self, error: str, notice: str, rate_limited: bool = False,
                  exception: Optional[Exception] = None) -> FetchResult:
        reset_time = self.rate_limit.disabled_until if rate_limited else None

        if self.entry is not None:
            self._stats['fallbacks'] += 1
            return FetchResult(
                value=self.entry.payload,
                error=error,
                from_cache=True,
                stale=True,
                notice=notice,
                rate_limited=rate_limited,
                reset_time=reset_time,
                exception=exception,
            )

        return FetchResult(error=error, rate_limited=rate_limited,
                           reset_time=reset_time, exception=exception)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self.clock()
        return {
            'name': self.name,
            'state': self.state.value,
            'has_entry': self.entry is not None,
            'entry_age_seconds': self.entry.age_ms(now) // 1000 if self.entry else None,
            'window_seconds': self.config.window,
            'rate_limited_until': self.rate_limit.disabled_until or None,
            **self._stats,
        }
