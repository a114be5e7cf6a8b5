"""Exceptions raised by upstream clients.

Clients raise these; :class:`pi_dashboard.data.cache.UpstreamCache` catches
them at the fetch boundary and turns them into a ``FetchResult``.
"""

from typing import Any, Optional


class UpstreamError(Exception):
    """Base class for upstream failures."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class UpstreamUnavailable(UpstreamError):
    """Network failure or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message, details)
        self.status_code = status_code


class RateLimited(UpstreamError):
    """Upstream answered with HTTP 429."""

    status_code = 429

    def __init__(self, message: str = "Upstream API is rate limited",
                 reset_time: Optional[int] = None, details: Any = None):
        super().__init__(message, details)
        # Epoch ms hint from the response, if the upstream sent one
        self.reset_time = reset_time


class MalformedResponse(UpstreamError):
    """Response arrived but lacked the expected fields."""


class ConfigMissing(UpstreamError):
    """Required credentials are not configured."""
