"""CoinGecko API client implementation."""

import logging
from typing import Dict, List, Optional, Any

from ..api_client import APIClientConfig, PriceClient
from ..errors import MalformedResponse
from ..models import DataSource, PricePoint

logger = logging.getLogger(__name__)

PI_COIN_ID = "pi-network-iou"


class CoinGeckoClient(PriceClient):
    """CoinGecko API client for Pi price data."""

    def __init__(self, api_key: Optional[str] = None,
                 base_url: str = "https://api.coingecko.com/api/v3", timeout: int = 30):
        """Initialize CoinGecko client.

        Args:
            api_key: Optional CoinGecko demo API key for higher rate limits
        """
        config = APIClientConfig(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            headers={
                "Accept": "application/json",
                "User-Agent": "PiDashboard/1.0"
            }
        )
        super().__init__(config, DataSource.COINGECKO)

    def _get_auth_headers(self, method: str, endpoint: str,
                          params: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        if self.config.api_key:
            return {"x-cg-demo-api-key": self.config.api_key}
        return {}

    async def get_current_price(self, currency: str = "USD") -> float:
        """Get the current Pi price in ``currency``."""
        currency_key = currency.lower()
        params = {
            "ids": PI_COIN_ID,
            "vs_currencies": currency_key,
            "include_24hr_change": "true",
        }

        response = await self._make_request("GET", "simple/price", params=params)
        self._raise_for_status(response, "CoinGecko price request failed")

        data = response.data
        if not isinstance(data, dict) or PI_COIN_ID not in data:
            raise MalformedResponse("Pi Network price data not found")

        pi_data = data[PI_COIN_ID]
        if not pi_data.get(currency_key):
            raise MalformedResponse(f"Price data not available for {currency.upper()}")

        return float(pi_data[currency_key])

    async def get_historical_prices(self, currency: str = "USD", days: int = 7) -> List[PricePoint]:
        """Get Pi market chart prices for the last ``days`` days."""
        params = {"vs_currency": currency.lower(), "days": str(days)}

        response = await self._make_request("GET", f"coins/{PI_COIN_ID}/market_chart", params=params)
        self._raise_for_status(response, "CoinGecko history request failed")

        data = response.data
        if not isinstance(data, dict) or not isinstance(data.get("prices"), list):
            raise MalformedResponse("Historical price data not found")

        points = []
        for item in data["prices"]:
            try:
                points.append(PricePoint(timestamp=int(item[0]), price=float(item[1])))
            except (IndexError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed CoinGecko price row {item!r}: {e}")

        points.sort(key=lambda p: p.timestamp)
        return points

    async def health_check(self) -> bool:
        """Check if the CoinGecko API answers ping."""
        try:
            response = await self._make_request("GET", "ping")
            return response.is_success and isinstance(response.data, dict) and "gecko_says" in response.data
        except Exception as e:
            logger.error(f"CoinGecko health check failed: {e}")
            return False
