"""Tests for the API client framework and failover."""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from pi_dashboard.data.api_client import (
    APIClientConfig,
    APIClientManager,
    BaseAPIClient,
    parse_reset_hint,
)
from pi_dashboard.data.errors import RateLimited, UpstreamUnavailable
from pi_dashboard.data.models import APIResponse, DataSource


class PlainClient(BaseAPIClient):
    """Concrete client for exercising the base class."""

    def __init__(self, max_retries: int = 2):
        super().__init__(
            APIClientConfig(base_url="https://api.test.com", max_retries=max_retries, retry_delay=0),
            DataSource.OKX,
        )


def response_with(status: int, headers=None, data=None) -> APIResponse:
    return APIResponse(data=data or {}, status_code=status, headers=headers or {})


class TestResetHint:
    """Test rate-limit reset header parsing."""

    def test_x_rate_limit_reset_is_epoch_seconds(self):
        response = response_with(429, {'x-rate-limit-reset': '1700000900'})

        assert parse_reset_hint(response, now=0) == 1_700_000_900_000

    def test_retry_after_is_relative(self):
        response = response_with(429, {'Retry-After': '120'})

        assert parse_reset_hint(response, now=1_000) == 121_000

    def test_missing_or_invalid_headers(self):
        assert parse_reset_hint(response_with(429), now=0) is None
        assert parse_reset_hint(response_with(429, {'Retry-After': 'soon'}), now=0) is None


class TestBaseAPIClient:
    """Test BaseAPIClient request handling."""

    def test_raise_for_status_maps_429(self):
        client = PlainClient()
        response = response_with(429, {'Retry-After': '60'}, {'error': 'slow down'})

        with pytest.raises(RateLimited) as exc_info:
            client._raise_for_status(response, "failed")

        assert exc_info.value.reset_time is not None
        assert exc_info.value.details == {'error': 'slow down'}

    def test_raise_for_status_maps_other_errors(self):
        client = PlainClient()

        with pytest.raises(UpstreamUnavailable) as exc_info:
            client._raise_for_status(response_with(503), "Ticker failed")

        assert exc_info.value.status_code == 503
        assert "503" in exc_info.value.message

    def test_raise_for_status_accepts_success(self):
        PlainClient()._raise_for_status(response_with(200), "unused")

    @pytest.mark.asyncio
    async def test_network_errors_retry_then_raise(self):
        client = PlainClient(max_retries=2)
        session = MagicMock()
        session.request.side_effect = aiohttp.ClientConnectionError("refused")
        client._session = session

        with patch('asyncio.sleep', new=AsyncMock()):
            with pytest.raises(UpstreamUnavailable):
                await client._make_request("GET", "market/ticker")

        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_successful_json_request(self):
        client = PlainClient()

        raw = MagicMock()
        raw.status = 200
        raw.content_type = 'application/json'
        raw.headers = {'Content-Type': 'application/json'}
        raw.json = AsyncMock(return_value={'code': '0'})

        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=raw)
        context.__aexit__ = AsyncMock(return_value=False)

        session = MagicMock()
        session.request.return_value = context
        client._session = session

        response = await client._make_request("GET", "/market/ticker", params={'instId': 'PI-USDT'})

        assert response.is_success
        assert response.data == {'code': '0'}
        assert session.request.call_args.kwargs['url'] == "https://api.test.com/market/ticker"
        assert client.get_stats()['request_count'] == 1


class TestAPIClientManager:
    """Test failover between price clients."""

    @pytest.mark.asyncio
    async def test_primary_is_used_first(self, primary_client, fallback_client):
        manager = APIClientManager()
        manager.register_client(fallback_client)
        manager.register_client(primary_client, is_primary=True)

        price = await manager.get_current_price("EUR")

        assert price == 0.5
        assert manager.last_source == DataSource.OKX
        assert fallback_client.price_calls == []

    @pytest.mark.asyncio
    async def test_fallback_on_primary_failure(self, primary_client, fallback_client):
        primary_client.price_error = UpstreamUnavailable("OKX down")
        manager = APIClientManager()
        manager.register_client(primary_client, is_primary=True)
        manager.register_client(fallback_client)

        price = await manager.get_current_price("USD")

        assert price == 0.49
        assert manager.last_source == DataSource.COINGECKO

    @pytest.mark.asyncio
    async def test_all_failing_raises_primary_error(self, primary_client, fallback_client):
        primary_error = RateLimited("okx API is rate limited")
        primary_client.history_error = primary_error
        fallback_client.history_error = UpstreamUnavailable("gecko down")
        manager = APIClientManager()
        manager.register_client(primary_client, is_primary=True)
        manager.register_client(fallback_client)

        with pytest.raises(RateLimited) as exc_info:
            await manager.get_historical_prices("USD", 7)

        assert exc_info.value is primary_error

    @pytest.mark.asyncio
    async def test_no_clients(self):
        with pytest.raises(UpstreamUnavailable):
            await APIClientManager().get_current_price()

    @pytest.mark.asyncio
    async def test_reregistering_as_primary_moves_source_first(self, primary_client, fallback_client):
        manager = APIClientManager()
        manager.register_client(primary_client)
        manager.register_client(fallback_client)
        manager.register_client(fallback_client, is_primary=True)

        assert manager._ordered_sources() == [DataSource.COINGECKO, DataSource.OKX]
        assert await manager.get_current_price() == 0.49
        assert primary_client.price_calls == []


class TestRetryDelays:
    """Test the exponential retry schedule."""

    def test_one_delay_per_retry(self):
        client = PlainClient(max_retries=3)
        client.config.retry_delay = 1.0
        client.config.backoff_factor = 2.0

        assert list(client._retry_delays()) == [1.0, 2.0, 4.0]

    def test_no_retries(self):
        assert list(PlainClient(max_retries=0)._retry_delays()) == []
