"""Data models for Pi price, prediction, cache and news data."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class DataSource(Enum):
    """Supported upstream data sources."""
    OKX = "okx"
    COINGECKO = "coingecko"
    TWITTER = "twitter"
    FALLBACK = "fallback"


class Trend(Enum):
    """Classified direction of projected price movement."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class TimeFrame(Enum):
    """Prediction horizons offered by the dashboard."""
    MIN_30 = "30min"
    HOUR_1 = "1hour"
    HOURS_2 = "2hours"
    HOURS_6 = "6hours"
    HOURS_12 = "12hours"

    @property
    def horizon_ms(self) -> int:
        """Length of the prediction horizon in milliseconds."""
        return _HORIZON_MINUTES[self] * 60 * 1000

    @property
    def horizon_minutes(self) -> int:
        return _HORIZON_MINUTES[self]

    @property
    def multiplier(self) -> float:
        """Volatility multiplier applied for this horizon."""
        return _MULTIPLIERS[self]

    @property
    def is_long(self) -> bool:
        """Whether this horizon uses long-term volatility blending."""
        return self in (TimeFrame.HOURS_6, TimeFrame.HOURS_12)

    @property
    def chart_points(self) -> int:
        """Number of recent history points the chart shows."""
        return _CHART_POINTS[self]

    @property
    def range_points(self) -> int:
        """Number of recent history points the price axis range covers."""
        return _RANGE_POINTS[self]

    @property
    def time_labels(self) -> List[str]:
        return list(_TIME_LABELS[self])

    @classmethod
    def parse(cls, value: str) -> 'TimeFrame':
        """Parse a time frame from its value or a short alias like ``2h``."""
        normalized = value.strip().lower()
        for tf in cls:
            if normalized == tf.value:
                return tf
        aliases = {
            "30m": cls.MIN_30,
            "1h": cls.HOUR_1,
            "2h": cls.HOURS_2,
            "6h": cls.HOURS_6,
            "12h": cls.HOURS_12,
        }
        if normalized in aliases:
            return aliases[normalized]
        raise ValueError(f"Unknown time frame: {value}")


_HORIZON_MINUTES = {
    TimeFrame.MIN_30: 30,
    TimeFrame.HOUR_1: 60,
    TimeFrame.HOURS_2: 120,
    TimeFrame.HOURS_6: 360,
    TimeFrame.HOURS_12: 720,
}

_MULTIPLIERS = {
    TimeFrame.MIN_30: 0.3,
    TimeFrame.HOUR_1: 0.6,
    TimeFrame.HOURS_2: 1.0,
    TimeFrame.HOURS_6: 2.0,
    TimeFrame.HOURS_12: 3.0,
}

_CHART_POINTS = {
    TimeFrame.MIN_30: 6,
    TimeFrame.HOUR_1: 12,
    TimeFrame.HOURS_2: 24,
    TimeFrame.HOURS_6: 48,
    TimeFrame.HOURS_12: 96,
}

_RANGE_POINTS = {
    TimeFrame.MIN_30: 24,
    TimeFrame.HOUR_1: 24,
    TimeFrame.HOURS_2: 24,
    TimeFrame.HOURS_6: 48,
    TimeFrame.HOURS_12: 96,
}

_TIME_LABELS = {
    TimeFrame.MIN_30: ("Now", "+7.5m", "+15m", "+22.5m", "+30m"),
    TimeFrame.HOUR_1: ("Now", "+15m", "+30m", "+45m", "+1h"),
    TimeFrame.HOURS_2: ("Now", "+30m", "+1h", "+1.5h", "+2h"),
    TimeFrame.HOURS_6: ("Now", "+1.5h", "+3h", "+4.5h", "+6h"),
    TimeFrame.HOURS_12: ("Now", "+3h", "+6h", "+9h", "+12h"),
}


@dataclass(frozen=True)
class PricePoint:
    """A single (timestamp, price) observation."""

    timestamp: int  # epoch ms
    price: float

    def __post_init__(self):
        if self.price <= 0:
            raise ValueError(f"Price must be positive, got {self.price}")

    def to_dict(self) -> Dict[str, Any]:
        return {'timestamp': self.timestamp, 'price': self.price}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PricePoint':
        return cls(timestamp=int(data['timestamp']), price=float(data['price']))


@dataclass
class Prediction:
    """Short-horizon price projection with its rationale."""

    trend: Trend
    confidence: float
    target_price: float
    current_price: float
    time_frame: TimeFrame
    reasons: List[str] = field(default_factory=list)

    @property
    def change_percent(self) -> float:
        """Projected change relative to the current price, in percent."""
        return (self.target_price - self.current_price) / self.current_price * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trend': self.trend.value,
            'confidence': self.confidence,
            'targetPrice': self.target_price,
            'currentPrice': self.current_price,
            'timeFrame': self.time_frame.value,
            'reasons': list(self.reasons),
        }


@dataclass
class CacheEntry:
    """Cached upstream payload with the time it was fetched."""

    payload: Any
    timestamp: int  # epoch ms

    def age_ms(self, now: int) -> int:
        return now - self.timestamp

    def is_valid(self, now: int, window_ms: int) -> bool:
        """Check whether the entry is still inside its validity window."""
        return now - self.timestamp < window_ms

    def to_dict(self) -> Dict[str, Any]:
        return {'payload': self.payload, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheEntry':
        return cls(payload=data['payload'], timestamp=int(data['timestamp']))


@dataclass
class RateLimitState:
    """Rate-limit flag for one upstream."""

    disabled_until: int = 0  # epoch ms

    def is_limited(self, now: int) -> bool:
        return now < self.disabled_until

    def remaining_minutes(self, now: int) -> int:
        remaining = max(self.disabled_until - now, 0)
        return -(-remaining // 60000)

    def to_dict(self) -> Dict[str, Any]:
        return {'resetTime': self.disabled_until}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RateLimitState':
        return cls(disabled_until=int(data.get('resetTime', 0)))


@dataclass
class FetchResult:
    """Outcome of a guarded upstream fetch.

    ``value`` holds the fresh payload, a stale cached payload, or None.
    ``error`` is set whenever the upstream call did not succeed.
    """

    value: Any = None
    error: Optional[str] = None
    from_cache: bool = False
    stale: bool = False
    notice: Optional[str] = None
    rate_limited: bool = False
    reset_time: Optional[int] = None
    # Upstream failure behind ``error``, if one was raised
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'value': self.value,
            'error': self.error,
            'fromCache': self.from_cache,
            'stale': self.stale,
            'notice': self.notice,
        }


@dataclass
class PriceQuote:
    """Current price reading in a given currency."""

    price: float
    currency: str
    source: DataSource
    fetched_at: int = field(default_factory=now_ms)
    error: Optional[str] = None
    from_cache: bool = False
    stale: bool = False

    @property
    def is_fallback(self) -> bool:
        return self.source == DataSource.FALLBACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'currency': self.currency,
            'source': self.source.value,
            'fetchedAt': self.fetched_at,
            'error': self.error,
            'fromCache': self.from_cache,
            'stale': self.stale,
        }


@dataclass
class PriceChange:
    """Difference between two consecutive price readings."""

    absolute: Optional[float]
    percent: Optional[float]

    @classmethod
    def between(cls, previous: Optional[float], current: Optional[float]) -> 'PriceChange':
        if previous is None or current is None:
            return cls(None, None)
        absolute = current - previous
        percent = (absolute / previous * 100) if previous != 0 else None
        return cls(absolute, percent)

    @property
    def direction(self) -> int:
        if not self.absolute:
            return 0
        return 1 if self.absolute > 0 else -1


class NewsCategory(Enum):
    """News feed categories."""
    ANNOUNCEMENTS = "announcements"
    COMMUNITY = "community"
    DEVELOPMENT = "development"
    TWITTER = "twitter"


@dataclass
class NewsItem:
    """A single entry of the news feed."""

    id: str
    title: str
    summary: str
    source: str
    url: str
    published_at: str  # ISO 8601
    category: NewsCategory
    image_url: Optional[str] = None
    author: Optional[Dict[str, Any]] = None
    metrics: Optional[Dict[str, Any]] = None

    @property
    def published(self) -> datetime:
        value = self.published_at.replace('Z', '+00:00')
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'title': self.title,
            'summary': self.summary,
            'source': self.source,
            'url': self.url,
            'publishedAt': self.published_at,
            'category': self.category.value,
        }
        if self.image_url:
            data['imageUrl'] = self.image_url
        if self.author:
            data['author'] = self.author
        if self.metrics:
            data['metrics'] = self.metrics
        return data


@dataclass
class NewsFeed:
    """Merged news feed with any degraded-state notice."""

    items: List[NewsItem] = field(default_factory=list)
    notice: Optional[str] = None
    error: Optional[str] = None
    last_updated: Optional[datetime] = None
    social_disabled: bool = False

    def filter(self, category: str = "all") -> List[NewsItem]:
        if category == "all":
            return list(self.items)
        return [item for item in self.items if item.category.value == category]

    def to_dict(self, category: str = "all") -> Dict[str, Any]:
        return {
            'items': [item.to_dict() for item in self.filter(category)],
            'notice': self.notice,
            'error': self.error,
            'lastUpdated': self.last_updated.isoformat() if self.last_updated else None,
            'socialDisabled': self.social_disabled,
        }


@dataclass
class APIResponse:
    """Wrapper for upstream HTTP responses with metadata."""

    data: Any
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    response_time: float = 0.0
    data_source: DataSource = DataSource.OKX
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None
