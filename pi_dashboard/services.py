"""Service container shared by the web dashboard and the CLI.

``DashboardServices.from_config`` wires clients, caches, the key-value store
and the periodic refresh tasks from a loaded :class:`ConfigManager`.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .core.config import ConfigManager
from .core.context import Currency, CurrencyContext
from .core.scheduler import Scheduler
from .data.api_client import APIClientManager
from .data.cache import CacheConfig, UpstreamCache
from .data.clients import CoinGeckoClient, OKXClient, TwitterClient
from .data.models import Prediction, PricePoint, PriceQuote, TimeFrame, now_ms
from .data.service import PriceService
from .data.storage import KeyValueStore, create_store
from .news.aggregator import NewsAggregator
from .news.proxy import NewsProxy
from .prediction.estimator import PredictionEstimator
from .stats.calculator import Calculation, calculate
from .stats.network import NetworkStatsSimulator

logger = logging.getLogger(__name__)

DEFAULT_PRICE_REFRESH = 30
DEFAULT_NEWS_REFRESH = 300


@dataclass
class PredictionReport:
    """A prediction together with the data it was computed from."""
    prediction: Prediction
    quote: PriceQuote
    history: List[PricePoint] = field(default_factory=list)
    history_error: Optional[str] = None
    notice: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prediction': self.prediction.to_dict(),
            'price': self.quote.to_dict(),
            'history': [p.to_dict() for p in self.history],
            'historyError': self.history_error,
            'notice': self.notice,
        }


class DashboardServices:
    """Owns every long-lived service of the dashboard."""

    def __init__(self, price_service: PriceService, news_aggregator: NewsAggregator,
                 estimator: Optional[PredictionEstimator] = None,
                 network_stats: Optional[NetworkStatsSimulator] = None,
                 price_refresh: float = DEFAULT_PRICE_REFRESH,
                 news_refresh: float = DEFAULT_NEWS_REFRESH,
                 default_time_frame: TimeFrame = TimeFrame.HOURS_2):
        self.price_service = price_service
        self.news_aggregator = news_aggregator
        self.estimator = estimator or PredictionEstimator()
        self.network_stats = network_stats or NetworkStatsSimulator()
        self.price_refresh = price_refresh
        self.news_refresh = news_refresh
        self.default_time_frame = default_time_frame
        self.scheduler = Scheduler()
        self.started_at: Optional[int] = None

    @property
    def currency_context(self) -> CurrencyContext:
        return self.price_service.currency_context

    @property
    def news_proxy(self) -> NewsProxy:
        return self.news_aggregator.proxy

    @classmethod
    def from_config(cls, config: ConfigManager,
                    currency_context: Optional[CurrencyContext] = None,
                    store: Optional[KeyValueStore] = None,
                    rng: Optional[random.Random] = None) -> 'DashboardServices':
        """Build services from configuration.

        Args:
            config: Loaded configuration manager
            currency_context: Shared currency selection, created from
                ``currency.default`` when omitted
            store: Key-value store, built from ``storage`` when omitted
            rng: Random source for the estimator and the stats simulator
        """
        currency_context = currency_context or CurrencyContext(config.get('currency.default', 'USD'))
        store = store or create_store(config.section('storage'))
        rng = rng or random.Random()

        client_manager = APIClientManager()
        okx_config = config.section('clients.okx')
        if okx_config.get('enabled', True):
            client_manager.register_client(OKXClient(
                api_key=config.get_credential('okx_api_key'),
                api_secret=config.get_credential('okx_api_secret'),
                passphrase=config.get_credential('okx_passphrase'),
                timeout=okx_config.get('timeout', 30),
            ), is_primary=True)

        gecko_config = config.section('clients.coingecko')
        if gecko_config.get('enabled', True):
            client_manager.register_client(CoinGeckoClient(
                api_key=config.get_credential('coingecko_api_key'),
                timeout=gecko_config.get('timeout', 30),
            ))

        price_service = PriceService(
            client_manager,
            currency_context=currency_context,
            store=store,
            price_cache=CacheConfig.from_dict(config.get('cache.price')),
            history_cache=CacheConfig.from_dict(config.get('cache.history', {'window': 3600})),
            history_days=config.get('history.days', 7),
        )

        twitter_config = config.section('clients.twitter')
        twitter_client = TwitterClient(
            bearer_token=config.get_credential('twitter_bearer_token'),
            account=twitter_config.get('account', 'PiNetwork'),
            max_results=twitter_config.get('max_results', 10),
            timeout=twitter_config.get('timeout', 30),
        )
        news_cache_config = CacheConfig.from_dict(config.get('cache.news'))
        proxy = NewsProxy(twitter_client, UpstreamCache("news", news_cache_config, store))
        aggregator = NewsAggregator(proxy, store=store, backoff=news_cache_config.backoff)

        return cls(
            price_service=price_service,
            news_aggregator=aggregator,
            estimator=PredictionEstimator(rng),
            network_stats=NetworkStatsSimulator(rng),
            price_refresh=config.get('refresh.price', DEFAULT_PRICE_REFRESH),
            news_refresh=config.get('refresh.news', DEFAULT_NEWS_REFRESH),
            default_time_frame=TimeFrame.parse(config.get('prediction.timeframe', '2hours')),
        )

    async def start(self) -> None:
        """Start clients and restore persisted cache state."""
        await self.price_service.initialize()
        await self.news_proxy.cache.load()
        await self.news_aggregator.load()
        self.started_at = now_ms()
        logger.info("Dashboard services started")

    def start_refresh(self) -> None:
        """Start the periodic price, news and network-stats refresh."""
        if not self.scheduler.get('price'):
            self.scheduler.add('price', self.refresh_price, self.price_refresh)
            self.scheduler.add('news', self.refresh_news, self.news_refresh)
            self.scheduler.add('network-stats', self.network_stats.refresh, self.price_refresh)
        self.scheduler.start()

    async def stop(self) -> None:
        """Cancel refresh tasks and close clients."""
        await self.scheduler.stop()
        await self.news_proxy.client.stop()
        await self.price_service.shutdown()
        logger.info("Dashboard services stopped")

    async def refresh_price(self) -> None:
        await self.price_service.get_current_price()

    async def refresh_news(self) -> None:
        await self.news_aggregator.fetch()

    async def predict(self, currency: Optional[Union[str, Currency]] = None,
                      time_frame: Optional[TimeFrame] = None,
                      force: bool = False) -> PredictionReport:
        """Fetch price and history, then run the estimator.

        Degraded inputs (fallback price, missing history) still produce a
        prediction; the report carries the error messages.
        """
        time_frame = time_frame or self.default_time_frame
        quote = await self.price_service.get_current_price(currency, force=force)
        history = await self.price_service.get_historical_prices(currency, force=force)

        prediction = self.estimator.predict(quote.price, history.value, time_frame)
        return PredictionReport(
            prediction=prediction,
            quote=quote,
            history=history.value,
            history_error=history.error,
            notice=history.notice,
        )

    async def clear_caches(self) -> int:
        """Drop every cached payload and rate-limit flag.

        Returns the number of caches that held a payload.
        """
        count = await self.price_service.clear_cache()
        if self.news_proxy.cache.entry is not None:
            count += 1
        await self.news_proxy.cache.clear()
        await self.news_aggregator.reset_rate_limit()
        logger.info(f"Cleared {count} cached payloads")
        return count

    async def calculate(self, amount: Union[str, float, None],
                        currency: Optional[Union[str, Currency]] = None) -> Calculation:
        quote = await self.price_service.get_current_price(currency)
        return calculate(amount, quote.price, quote.currency)

    def get_status(self) -> Dict[str, Any]:
        return {
            'currency': self.currency_context.currency.value,
            'startedAt': self.started_at,
            'socialDisabled': self.news_aggregator.social_disabled,
            'caches': self.price_service.get_cache_stats() + [self.news_proxy.cache.get_stats()],
            'tasks': self.scheduler.get_stats(),
        }
