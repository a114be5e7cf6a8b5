"""OKX market API client implementation."""

import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from ..api_client import APIClientConfig, PriceClient
from ..errors import MalformedResponse, UpstreamUnavailable
from ..models import DataSource, PricePoint

logger = logging.getLogger(__name__)

PI_INSTRUMENT = "PI-USDT"


class OKXClient(PriceClient):
    """OKX v5 REST client for Pi ticker and candle data."""

    def __init__(self, api_key: Optional[str] = None, api_secret: Optional[str] = None,
                 passphrase: Optional[str] = None, base_url: str = "https://www.okx.com/api/v5",
                 timeout: int = 30):
        """Initialize OKX client.

        Market endpoints are public. Requests are signed when all three
        credentials are configured.

        Args:
            api_key: OKX API key
            api_secret: OKX API secret used for HMAC signing
            passphrase: OKX API passphrase
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
        super().__init__(config, DataSource.OKX)

        self.api_secret = api_secret
        self.passphrase = passphrase

    @property
    def has_credentials(self) -> bool:
        return bool(self.config.api_key and self.api_secret and self.passphrase)

    def sign(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        """Compute the OK-ACCESS-SIGN value for a request."""
        message = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(
            (self.api_secret or "").encode(),
            message.encode(),
            hashlib.sha256
        ).digest()
        return base64.b64encode(digest).decode()

    def _get_auth_headers(self, method: str, endpoint: str,
                          params: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        if not self.has_credentials:
            return {}

        timestamp = datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
        request_path = "/api/v5/" + endpoint.lstrip('/')
        if params:
            request_path += "?" + urlencode(params)

        return {
            "OK-ACCESS-KEY": self.config.api_key,
            "OK-ACCESS-SIGN": self.sign(timestamp, method, request_path),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": self.passphrase,
        }

    def _extract_data(self, payload: Any, what: str) -> List[Any]:
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Unexpected {what} payload from OKX")

        code = str(payload.get('code', '0'))
        if code != '0':
            raise UpstreamUnavailable(f"OKX returned error code {code}: {payload.get('msg', '')}",
                                      details=payload)

        data = payload.get('data')
        if not data:
            raise MalformedResponse(f"{what} not found in OKX response")
        return data

    async def get_ticker(self, instrument: str) -> float:
        """Get the last trade price for an instrument."""
        response = await self._make_request("GET", "market/ticker", params={"instId": instrument})
        self._raise_for_status(response, f"OKX ticker request for {instrument} failed")

        data = self._extract_data(response.data, "Price data")
        try:
            return float(data[0]['last'])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid ticker row for {instrument}: {e}")

    async def get_conversion_rate(self, currency: str) -> float:
        """Get how many units of ``currency`` one USDT buys."""
        currency = currency.upper()
        if currency in ("USD", "USDT"):
            return 1.0

        # <CUR>-USDT quotes USDT per unit of currency
        usdt_per_unit = await self.get_ticker(f"{currency}-USDT")
        if usdt_per_unit <= 0:
            raise MalformedResponse(f"Invalid {currency}-USDT rate: {usdt_per_unit}")
        return 1.0 / usdt_per_unit

    async def get_current_price(self, currency: str = "USD") -> float:
        """Get the current Pi price in ``currency``.

        A second ticker lookup converts from USDT when the currency is not USD.
        """
        price = await self.get_ticker(PI_INSTRUMENT)

        if currency.upper() != "USD":
            price *= await self.get_conversion_rate(currency)

        return price

    async def get_historical_prices(self, currency: str = "USD", days: int = 7) -> List[PricePoint]:
        """Get daily closing prices for the last ``days`` days."""
        params = {"instId": PI_INSTRUMENT, "bar": "1D", "limit": str(days)}
        response = await self._make_request("GET", "market/candles", params=params)
        self._raise_for_status(response, "OKX historical data request failed")

        rows = self._extract_data(response.data, "Historical data")

        rate = 1.0
        if currency.upper() != "USD":
            rate = await self.get_conversion_rate(currency)

        points = []
        for candle in rows:
            try:
                # [ts, open, high, low, close, ...]
                points.append(PricePoint(timestamp=int(candle[0]), price=float(candle[4]) * rate))
            except (IndexError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed OKX candle {candle!r}: {e}")

        if not points:
            raise MalformedResponse("Historical data not found")

        # OKX returns newest first
        points.sort(key=lambda p: p.timestamp)
        return points
