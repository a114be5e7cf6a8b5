"""
Pytest configuration and shared fixtures for the test suite.

Provides a controllable clock, in-memory stores, scripted price clients,
sample upstream payloads and a loaded configuration manager.
"""

import os
import random
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import MagicMock

import pytest
import yaml
from click.testing import CliRunner

from pi_dashboard.core.config import ConfigManager
from pi_dashboard.core.context import CurrencyContext
from pi_dashboard.data.api_client import APIClientConfig, APIClientManager, PriceClient
from pi_dashboard.data.cache import CacheConfig, UpstreamCache
from pi_dashboard.data.clients.twitter import TwitterClient
from pi_dashboard.data.models import DataSource, PricePoint
from pi_dashboard.data.service import PriceService
from pi_dashboard.data.storage import MemoryStore
from pi_dashboard.news import NewsAggregator, NewsProxy
from pi_dashboard.prediction.estimator import PredictionEstimator
from pi_dashboard.services import DashboardServices
from pi_dashboard.stats.network import NetworkStatsSimulator

START_MS = 1_700_000_000_000
HOUR_MS = 60 * 60 * 1000


class FakeClock:
    """Callable clock returning epoch ms, advanced by hand."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class ScriptedPriceClient(PriceClient):
    """Price client whose answers (or errors) are set by the test."""

    def __init__(self, data_source: DataSource = DataSource.OKX,
                 price: float = 0.5, history: Optional[List[PricePoint]] = None):
        super().__init__(APIClientConfig(base_url="https://example.invalid"), data_source)
        self.price = price
        self.history = history or []
        self.price_error: Optional[Exception] = None
        self.history_error: Optional[Exception] = None
        self.price_calls: List[str] = []
        self.history_calls: List[tuple] = []

    async def start(self):
        pass

    async def stop(self):
        pass

    async def get_current_price(self, currency: str = "USD") -> float:
        self.price_calls.append(currency)
        if self.price_error:
            raise self.price_error
        return self.price

    async def get_historical_prices(self, currency: str = "USD", days: int = 7) -> List[PricePoint]:
        self.history_calls.append((currency, days))
        if self.history_error:
            raise self.history_error
        return list(self.history)


def make_history(prices: Sequence[float], start: int = START_MS,
                 step: int = HOUR_MS) -> List[PricePoint]:
    """Build an ascending price series one step apart."""
    return [PricePoint(timestamp=start + i * step, price=p) for i, p in enumerate(prices)]


@pytest.fixture
def cli_runner():
    """Create a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def history_factory():
    """Factory for ascending hourly price series."""
    return make_history


@pytest.fixture
def client_factory():
    """Factory for scripted price clients."""
    return ScriptedPriceClient


@pytest.fixture
def primary_client():
    return ScriptedPriceClient(DataSource.OKX, price=0.5)


@pytest.fixture
def fallback_client():
    return ScriptedPriceClient(DataSource.COINGECKO, price=0.49)


@pytest.fixture
def services(primary_client, fallback_client, memory_store):
    """Dashboard services over scripted price clients and a tokenless X client."""
    primary_client.history = make_history([0.5 + 0.001 * i for i in range(30)])
    fallback_client.history = make_history([0.49] * 30)

    client_manager = APIClientManager()
    client_manager.register_client(primary_client, is_primary=True)
    client_manager.register_client(fallback_client)

    price_service = PriceService(client_manager, currency_context=CurrencyContext("USD"),
                                 store=memory_store)
    proxy = NewsProxy(TwitterClient(bearer_token=None),
                      UpstreamCache("news", CacheConfig(window=900, backoff=3600), memory_store))
    aggregator = NewsAggregator(proxy, store=memory_store, backoff=3600)

    return DashboardServices(
        price_service,
        aggregator,
        estimator=PredictionEstimator(random.Random(1)),
        network_stats=NetworkStatsSimulator(random.Random(1)),
    )


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Configuration overrides used by the config and services tests."""
    return {
        "currency": {"default": "EUR"},
        "cache": {
            "price": {"window": 60, "backoff": 600},
            "news": {"window": 120, "backoff": 900},
        },
        "storage": {"backend": "memory"},
        "refresh": {"price": 15, "news": 120},
        "prediction": {"timeframe": "6hours"},
        "logging": {
            "level": "INFO",
            "structured": True,
            "sampling_rate": 1.0,
        },
    }


@pytest.fixture
async def config_manager(temp_dir, sample_config, monkeypatch):
    """Create a loaded ConfigManager rooted in a temporary directory."""
    for name in list(os.environ):
        if name.startswith("PI_DASHBOARD_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("ENVIRONMENT", "test")

    config_dir = temp_dir / "config"
    config_dir.mkdir()
    with open(config_dir / "config.yaml", 'w') as f:
        yaml.dump(sample_config, f)

    manager = ConfigManager(config_dir=config_dir)
    await manager.initialize()
    return manager


@pytest.fixture
def twitter_payload() -> Dict[str, Any]:
    """Recent-search payload with two posts by one author."""
    return {
        "data": [
            {
                "id": "1001",
                "text": "Mainnet migration update: another 2M Pioneers migrated this week",
                "created_at": "2023-11-14T20:00:00.000Z",
                "author_id": "42",
                "public_metrics": {"retweet_count": 10, "reply_count": 2,
                                   "like_count": 150, "quote_count": 1},
            },
            {
                "id": "1002",
                "text": "Pi Hackathon winners announced",
                "created_at": "2023-11-14T21:30:00.000Z",
                "author_id": "42",
                "public_metrics": {"retweet_count": 3, "reply_count": 0,
                                   "like_count": 40, "quote_count": 0},
            },
        ],
        "includes": {
            "users": [
                {"id": "42", "name": "Pi Network", "username": "PiNetwork",
                 "profile_image_url": "https://pbs.twimg.com/profile_images/pi.jpg"},
            ],
        },
        "meta": {"result_count": 2},
    }


@pytest.fixture
def mock_sentry(monkeypatch):
    """Mock Sentry SDK for testing error reporting."""
    mock_sentry_sdk = MagicMock()
    monkeypatch.setattr("pi_dashboard.core.logging.sentry_sdk", mock_sentry_sdk)
    return mock_sentry_sdk


@pytest.fixture
def sample_log_records():
    """Provide sample log records for testing."""
    import logging

    logger = logging.getLogger("test_logger")
    records = [
        logger.makeRecord("test_logger", logging.INFO, __file__, 100,
                          "Test info message", (), None),
    ]

    try:
        raise ValueError("Test exception")
    except ValueError:
        records.append(logger.makeRecord(
            "test_logger", logging.ERROR, __file__, 200,
            "Test error message", (), sys.exc_info()
        ))

    records.append(logger.makeRecord("test_logger", logging.DEBUG, __file__, 300,
                                     "Test debug message", (), None))
    return records
