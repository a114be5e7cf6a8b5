"""Price and history service combining clients, caches and fallbacks."""

import logging
from typing import Any, Dict, List, Optional, Union

from ..core.context import Currency, CurrencyContext
from .api_client import APIClientManager
from .cache import CacheConfig, UpstreamCache
from .models import DataSource, FetchResult, PriceChange, PricePoint, PriceQuote, now_ms
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

PRICE_ERROR = "Failed to fetch price data. Using fallback data."
HISTORY_ERROR = "Failed to fetch historical data. Prediction may be less accurate."
CACHE_KINDS = ("price", "history")


class PriceService:
    """Price Fetcher and Historical Fetcher for the selected currency.

    One :class:`UpstreamCache` is kept per (kind, currency) pair so that
    switching currency never serves a payload quoted in another currency.
    History requested for a non-default number of days gets its own cache.
    """

    def __init__(self, client_manager: APIClientManager,
                 currency_context: Optional[CurrencyContext] = None,
                 store: Optional[KeyValueStore] = None,
                 price_cache: Optional[CacheConfig] = None,
                 history_cache: Optional[CacheConfig] = None,
                 history_days: int = 7,
                 clock=now_ms):
        """Initialize price service.

        Args:
            client_manager: Price clients with failover
            currency_context: Process-wide selected currency
            store: Key-value store for cache persistence
            price_cache: Windows for current-price caching
            history_cache: Windows for historical-data caching
            history_days: Days of candles requested
            clock: Returns the current time in epoch ms
        """
        self.client_manager = client_manager
        self.currency_context = currency_context or CurrencyContext()
        self.store = store or MemoryStore()
        self.price_cache_config = price_cache or CacheConfig()
        self.history_cache_config = history_cache or CacheConfig(window=60 * 60)
        self.history_days = history_days
        self.clock = clock

        self._caches: Dict[str, UpstreamCache] = {}
        self._last_price: Dict[Currency, float] = {}
        self._previous_price: Dict[Currency, float] = {}
        self._initialized = False

    async def initialize(self):
        """Start clients and restore persisted cache state for every currency."""
        if self._initialized:
            return
        await self.client_manager.start_all()
        for currency in Currency:
            for kind in CACHE_KINDS:
                await self._cache_for(kind, currency)
        self._initialized = True
        logger.info("Price service initialized")

    async def shutdown(self):
        """Stop clients."""
        if not self._initialized:
            return
        await self.client_manager.stop_all()
        self._initialized = False
        logger.info("Price service shutdown")

    def _resolve(self, currency: Optional[Union[str, Currency]]) -> Currency:
        if currency is None:
            return self.currency_context.currency
        return Currency.parse(currency)

    def _cache_name(self, kind: str, currency: Currency, days: Optional[int] = None) -> str:
        name = f"{kind}:{currency.value}"
        if kind == "history" and days not in (None, self.history_days):
            name = f"{name}:{days}d"
        return name

    async def _cache_for(self, kind: str, currency: Currency,
                         days: Optional[int] = None) -> UpstreamCache:
        name = self._cache_name(kind, currency, days)
        cache = self._caches.get(name)
        if cache is None:
            config = self.price_cache_config if kind == "price" else self.history_cache_config
            cache = UpstreamCache(name, config, self.store, clock=self.clock)
            await cache.load()
            self._caches[name] = cache
        return cache

    async def get_current_price(self, currency: Optional[Union[str, Currency]] = None,
                                force: bool = False) -> PriceQuote:
        """Get the current Pi price.

        Falls back to the stale cache, then to the currency's fallback constant.
        Never raises for upstream failures.
        """
        cur = self._resolve(currency)
        cache = await self._cache_for("price", cur)

        async def fetch_price() -> Dict[str, Any]:
            price = await self.client_manager.get_current_price(cur.value)
            source = self.client_manager.last_source or DataSource.OKX
            return {'price': price, 'source': source.value}

        result = await cache.fetch(fetch_price, force=force)

        if result.ok:
            quote = PriceQuote(
                price=float(result.value['price']),
                currency=cur.value,
                source=DataSource(result.value['source']),
                error=PRICE_ERROR if result.error else None,
                from_cache=result.from_cache,
                stale=result.stale,
            )
        else:
            logger.warning(f"Using fallback price for {cur.value}: {result.error}")
            quote = PriceQuote(
                price=cur.fallback_price,
                currency=cur.value,
                source=DataSource.FALLBACK,
                error=PRICE_ERROR,
            )

        self._record(cur, quote.price)
        return quote

    def _record(self, currency: Currency, price: float) -> None:
        if currency in self._last_price:
            self._previous_price[currency] = self._last_price[currency]
        self._last_price[currency] = price

    def get_price_change(self, currency: Optional[Union[str, Currency]] = None) -> PriceChange:
        """Change between the last two readings for a currency."""
        cur = self._resolve(currency)
        return PriceChange.between(self._previous_price.get(cur), self._last_price.get(cur))

    async def get_historical_prices(self, currency: Optional[Union[str, Currency]] = None,
                                    days: Optional[int] = None,
                                    force: bool = False) -> FetchResult:
        """Get the recent price series.

        Returns:
            FetchResult whose value is a list of PricePoint (possibly empty)
        """
        cur = self._resolve(currency)
        days = days or self.history_days
        cache = await self._cache_for("history", cur, days)

        async def fetch_points() -> List[Dict[str, Any]]:
            points = await self.client_manager.get_historical_prices(cur.value, days)
            return [p.to_dict() for p in points]

        result = await cache.fetch(fetch_points, force=force)

        points = [PricePoint.from_dict(p) for p in (result.value or [])]
        return FetchResult(
            value=points,
            error=HISTORY_ERROR if result.error else None,
            from_cache=result.from_cache,
            stale=result.stale,
            notice=result.notice,
            rate_limited=result.rate_limited,
            reset_time=result.reset_time,
        )

    async def clear_cache(self) -> int:
        """Clear every price and history cache."""
        count = 0
        for cache in self._caches.values():
            if cache.entry is not None:
                count += 1
            await cache.clear()
        return count

    def get_cache_stats(self) -> List[Dict[str, Any]]:
        return [cache.get_stats() for cache in self._caches.values()]
