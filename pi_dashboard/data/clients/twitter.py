"""X (Twitter) API v2 client for recent posts by an account."""

import json
import logging
from typing import Any, Dict, Optional

from ..api_client import APIClientConfig, BaseAPIClient
from ..errors import ConfigMissing, MalformedResponse
from ..models import DataSource

logger = logging.getLogger(__name__)


class TwitterClient(BaseAPIClient):
    """Client for the X recent-search endpoint."""

    def __init__(self, bearer_token: Optional[str] = None, account: str = "PiNetwork",
                 max_results: int = 10, base_url: str = "https://api.twitter.com/2",
                 timeout: int = 30):
        """Initialize X client.

        Args:
            bearer_token: App bearer token, required for every request
            account: Account whose posts are fetched
            max_results: Number of posts per request (10-100)
        """
        config = APIClientConfig(
            base_url=base_url,
            api_key=bearer_token,
            timeout=timeout,
            max_retries=0,
            headers={"User-Agent": "v2RecentSearchPython"}
        )
        super().__init__(config, DataSource.TWITTER)

        self.account = account
        self.max_results = max_results

    def _get_auth_headers(self, method: str, endpoint: str,
                          params: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        if self.config.api_key:
            return {"Authorization": f"Bearer {self.config.api_key}"}
        return {}

    def build_params(self) -> Dict[str, str]:
        return {
            "query": f"from:{self.account} -is:retweet",
            "tweet.fields": "created_at,public_metrics",
            "expansions": "author_id",
            "user.fields": "name,username,profile_image_url",
            "max_results": str(self.max_results),
        }

    async def get_recent_posts(self) -> Dict[str, Any]:
        """Fetch recent posts with their author records.

        Returns:
            The raw ``{data, includes, meta}`` payload

        Raises:
            ConfigMissing: no bearer token configured
            RateLimited: the API answered 429
            UpstreamUnavailable: any other non-2xx answer
        """
        if not self.config.api_key:
            raise ConfigMissing("Twitter Bearer Token is not configured")

        response = await self._make_request("GET", "tweets/search/recent", params=self.build_params())

        if not response.is_success:
            logger.error(f"X API error status: {response.status_code} Response: {response.data}")
            if isinstance(response.data, str):
                try:
                    response.data = json.loads(response.data)
                except ValueError:
                    response.data = {"message": response.data}

        self._raise_for_status(response, "Failed to fetch tweets")

        if not isinstance(response.data, dict):
            raise MalformedResponse("Unexpected response from X API")

        return response.data
