"""
Follower count lookup against the platform friends API.

Used by popularity escalation. Errors are raised; the caller treats a failed
lookup as "not popular".
"""

import logging
from typing import Optional

import httpx

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class FollowerTool:
    """FollowerLookup implementation: GET {base}/v1/users/{id}/followers/count."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client

    async def get_follower_count(self, account_id: int) -> int:
        url = f"{self.settings.friends_api_url.rstrip('/')}/v1/users/{account_id}/followers/count"
        if self._client is not None:
            response = await self._client.get(url)
        else:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                response = await client.get(url)

        if response.status_code == 429:
            logger.warning(f"Friends API: rate limited on follower count for {account_id}")
        response.raise_for_status()

        count = response.json().get("count")
        if not isinstance(count, int):
            raise ValueError(f"Follower count missing for {account_id}")
        return count
