"""
HTTP plumbing shared by the OKX, CoinGecko and X clients.

A request is retried only when the network fails. Any HTTP status comes
back as an :class:`APIResponse`, and each client decides with
``_raise_for_status`` which statuses are errors. The manager tries price
sources in order (primary first) and reports which one answered.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import aiohttp

from .errors import RateLimited, UpstreamError, UpstreamUnavailable
from .models import APIResponse, DataSource, PricePoint, now_ms

logger = logging.getLogger(__name__)


@dataclass
class APIClientConfig:
    base_url: str
    api_key: Optional[str] = None
    timeout: int = 30
    max_retries: int = 2
    retry_delay: float = 1.0
    backoff_factor: float = 1.5
    headers: Dict[str, str] = field(default_factory=dict)


def _header_ms(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(float(value) * 1000)
    except ValueError:
        logger.debug(f"Ignoring unparseable rate-limit header: {value}")
        return None


def parse_reset_hint(response: APIResponse, now: Optional[int] = None) -> Optional[int]:
    """When a rate limit lifts, in epoch ms.

    X sends ``x-rate-limit-reset`` as epoch seconds; other services send
    ``Retry-After`` as a delay in seconds.
    """
    absolute = _header_ms(response.header('x-rate-limit-reset'))
    if absolute is not None:
        return absolute

    delay = _header_ms(response.header('retry-after'))
    if delay is not None:
        return (now if now is not None else now_ms()) + delay

    return None


class BaseAPIClient(ABC):
    """One upstream service reached over a shared aiohttp session."""

    def __init__(self, config: APIClientConfig, data_source: DataSource):
        self.config = config
        self.data_source = data_source
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_count = 0

    @property
    def name(self) -> str:
        return self.data_source.value

    async def start(self):
        if self._session is not None:
            return
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            headers=self.config.headers
        )
        logger.info(f"Opened {self.name} session")

    async def stop(self):
        session, self._session = self._session, None
        if session is not None:
            await session.close()
            logger.info(f"Closed {self.name} session")

    def _url(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _retry_delays(self) -> Iterator[float]:
        """Sleep before each retry; one entry per retry allowed."""
        for retry in range(self.config.max_retries):
            yield self.config.retry_delay * (self.config.backoff_factor ** retry)

    async def _send(self, method: str, url: str, params: Optional[Dict[str, Any]],
                    headers: Dict[str, str]) -> APIResponse:
        started = time.monotonic()
        async with self._session.request(method=method, url=url, params=params,
                                         headers=headers) as raw:
            if raw.content_type == 'application/json':
                body = await raw.json()
            else:
                body = await raw.text()

        elapsed = time.monotonic() - started
        self._request_count += 1
        logger.debug(f"{method} {url} -> {raw.status} in {elapsed:.3f}s")

        return APIResponse(
            data=body,
            status_code=raw.status,
            headers=dict(raw.headers),
            response_time=elapsed,
            data_source=self.data_source,
        )

    async def _make_request(self, method: str, endpoint: str,
                            params: Optional[Dict[str, Any]] = None,
                            headers: Optional[Dict[str, str]] = None) -> APIResponse:
        """Perform a request, retrying on connection errors and timeouts.

        Raises:
            UpstreamUnavailable: when the last attempt also failed to connect
        """
        if self._session is None:
            await self.start()

        url = self._url(endpoint)
        request_headers = dict(self.config.headers)
        request_headers.update(self._get_auth_headers(method, endpoint, params))
        request_headers.update(headers or {})

        delays = self._retry_delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send(method, url, params, request_headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                delay = next(delays, None)
                if delay is None:
                    raise UpstreamUnavailable(
                        f"{self.name} unreachable after {attempt} attempts: {e}"
                    ) from e
                logger.warning(f"{self.name} attempt {attempt} failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

    def _raise_for_status(self, response: APIResponse, message: str) -> None:
        """Raise RateLimited for 429 and UpstreamUnavailable for other non-2xx."""
        if response.is_success:
            return

        if response.status_code == 429:
            raise RateLimited(
                f"{self.name} API is rate limited",
                reset_time=parse_reset_hint(response),
                details=response.data,
            )

        raise UpstreamUnavailable(
            f"{message} (status {response.status_code})",
            status_code=response.status_code,
            details=response.data,
        )

    def _get_auth_headers(self, method: str, endpoint: str,
                          params: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """Per-request credentials; public endpoints need none."""
        return {}

    def get_stats(self) -> Dict[str, Any]:
        return {
            'data_source': self.name,
            'request_count': self._request_count,
            'base_url': self.config.base_url,
            'has_api_key': bool(self.config.api_key),
        }


class PriceClient(BaseAPIClient):
    """A source for the Pi price."""

    @abstractmethod
    async def get_current_price(self, currency: str = "USD") -> float:
        """Latest price in ``currency``. Raises UpstreamError."""

    @abstractmethod
    async def get_historical_prices(self, currency: str = "USD", days: int = 7) -> List[PricePoint]:
        """Daily closes for the last ``days`` days, oldest first. Raises UpstreamError."""


class APIClientManager:
    """Price sources tried in order until one answers."""

    def __init__(self):
        self._clients: Dict[DataSource, PriceClient] = {}
        self._order: List[DataSource] = []
        self.last_source: Optional[DataSource] = None

    def register_client(self, client: PriceClient, is_primary: bool = False):
        source = client.data_source
        self._clients[source] = client
        if source in self._order:
            self._order.remove(source)

        if is_primary:
            self._order.insert(0, source)
        else:
            self._order.append(source)
        logger.info(f"Registered {source.value} price source{' (primary)' if is_primary else ''}")

    def _ordered_sources(self) -> List[DataSource]:
        return list(self._order)

    def get_client(self, data_source: DataSource) -> Optional[PriceClient]:
        return self._clients.get(data_source)

    async def get_current_price(self, currency: str = "USD") -> float:
        return await self._first_answer('get_current_price', currency)

    async def get_historical_prices(self, currency: str = "USD", days: int = 7) -> List[PricePoint]:
        return await self._first_answer('get_historical_prices', currency, days)

    async def _first_answer(self, method: str, *args):
        """Call ``method`` on each source in turn.

        Raises:
            UpstreamError: the first source's error once every source failed
        """
        errors: List[UpstreamError] = []

        for position, source in enumerate(self._ordered_sources()):
            try:
                result = await getattr(self._clients[source], method)(*args)
            except UpstreamError as e:
                logger.warning(f"{source.value} {method} failed: {e.message}")
                errors.append(e)
                continue

            if position:
                logger.info(f"{method} answered by fallback {source.value}")
            self.last_source = source
            return result

        if not errors:
            raise UpstreamUnavailable("No price clients registered")
        raise errors[0]

    async def start_all(self):
        for client in self._clients.values():
            await client.start()

    async def stop_all(self):
        for client in self._clients.values():
            await client.stop()
