"""
Thumbnail enrichment for flagged records.

One batch request per entity kind against the thumbnails API:
  users  -> /v1/users/avatar-headshot?userIds=1,2,3
  groups -> /v1/groups/icons?groupIds=4,5

Records are never mutated; enriched copies are returned in input order.
A failed request leaves that kind's records without a thumbnail.
"""

import logging
from typing import Dict, List, Optional

import httpx

from ..config import Settings, get_settings
from ..schemas import EntityKind, FlaggedRecord

logger = logging.getLogger(__name__)

_ENDPOINTS = {
    EntityKind.USER: ("/v1/users/avatar-headshot", "userIds"),
    EntityKind.GROUP: ("/v1/groups/icons", "groupIds"),
}

# Thumbnails API caps ids per request
_BATCH_SIZE = 100


class ThumbnailTool:
    """Enricher that fills FlaggedRecord.thumbnail_url."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._client = client

    async def enrich(self, records: List[FlaggedRecord]) -> List[FlaggedRecord]:
        if not records:
            return []

        urls: Dict[tuple, str] = {}
        for kind in EntityKind:
            ids = [r.id for r in records if r.kind == kind]
            for start in range(0, len(ids), _BATCH_SIZE):
                chunk = ids[start:start + _BATCH_SIZE]
                try:
                    found = await self._fetch(kind, chunk)
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Thumbnail lookup failed for {len(chunk)} {kind.value}s: {e}")
                    continue
                urls.update({(kind, i): u for i, u in found.items()})

        logger.info(f"Thumbnails: {len(urls)}/{len(records)} records enriched")
        return [
            r.model_copy(update={"thumbnail_url": urls[(r.kind, r.id)]})
            if (r.kind, r.id) in urls else r
            for r in records
        ]

    async def _fetch(self, kind: EntityKind, ids: List[int]) -> Dict[int, str]:
        path, id_param = _ENDPOINTS[kind]
        url = f"{self.settings.thumbnails_api_url.rstrip('/')}{path}"
        params = {
            id_param: ",".join(str(i) for i in ids),
            "size": "150x150",
            "format": "Png",
        }
        if self._client is not None:
            response = await self._client.get(url, params=params)
        else:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                response = await client.get(url, params=params)
        response.raise_for_status()

        result: Dict[int, str] = {}
        for item in response.json().get("data", []):
            if item.get("state") == "Completed" and item.get("imageUrl"):
                result[int(item["targetId"])] = item["imageUrl"]
        return result
