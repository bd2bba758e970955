"""
Popularity Escalation — forces maximum confidence on widely followed accounts.

Secondary safety net applied to the flagged user records. Follower lookups run
concurrently; a failed lookup is logged and the record is left as it was.
"""

import logging
from typing import List, Optional

from ..config import Settings, get_settings
from ..schemas import EntityKind, FlaggedRecord
from ..tools.parallel import parallel_map
from .deps import FollowerLookup

logger = logging.getLogger(__name__)


def popularity_banner(follower_count: int) -> str:
    return f"⚠️ **WARNING: Popular account with {follower_count} followers**\n\n"


class PopularityEscalation:
    """Escalates records whose follower count is >= FOLLOWER_THRESHOLD."""

    def __init__(self, follower_lookup: FollowerLookup, settings: Optional[Settings] = None):
        self.follower_lookup = follower_lookup
        self.settings = settings or get_settings()

    async def apply(self, records: List[FlaggedRecord]) -> List[FlaggedRecord]:
        """Return records in input order; escalated ones are new copies.

        Only user records are looked up: follower counts exist for user
        accounts, so group records pass through untouched.
        """
        users = [r for r in records if r.kind == EntityKind.USER]
        if not users:
            return list(records)

        outcomes = await parallel_map(
            users,
            lambda r: self.follower_lookup.get_follower_count(r.id),
            key=lambda r: r.id,
            max_concurrency=self.settings.max_concurrency,
        )

        threshold = self.settings.follower_threshold
        result: List[FlaggedRecord] = []
        escalated = 0
        for record in records:
            if record.kind != EntityKind.USER:
                result.append(record)
                continue
            outcome = outcomes[record.id]
            if not outcome.ok:
                logger.warning(f"Follower lookup failed for {record.id}, not escalating: {outcome.error!r}")
                result.append(record)
                continue

            followers = outcome.value
            if followers >= threshold:
                escalated += 1
                logger.info(f"Popular account flagged: {record.id} ({followers} followers)")
                result.append(record.model_copy(update={
                    "confidence": 1.0,
                    "reason": popularity_banner(followers) + record.reason,
                    "follower_count": followers,
                }))
            else:
                result.append(record.model_copy(update={"follower_count": followers}))

        logger.info(f"Popularity: {escalated}/{len(users)} user records escalated")
        return result
