"""
Friend-Network Check — flags profiles with many flagged or confirmed friends.

Zero LLM calls. One lookup per profile; profiles without friends are passed
through without a lookup.
"""

import logging
from typing import Optional

from ..config import Settings, get_settings
from ..schemas import CandidateProfile, FlaggedRecord, FlagSource
from .deps import UserLookup

logger = logging.getLogger(__name__)


class FriendNetworkCheck:
    """Flags when flagged friends >= MIN_FLAGGED_FRIENDS or ratio >= MIN_FLAGGED_FRIEND_RATIO."""

    def __init__(self, lookup: UserLookup, settings: Optional[Settings] = None):
        self.lookup = lookup
        self.settings = settings or get_settings()

    async def check(self, profile: CandidateProfile) -> Optional[FlaggedRecord]:
        """Return a record or None. Lookup errors propagate to the caller."""
        friend_ids = list(dict.fromkeys(profile.friend_ids))
        if not friend_ids:
            return None

        known = set(friend_ids)
        flagged = [f for f in dict.fromkeys(await self.lookup.match_flagged_or_confirmed(friend_ids)) if f in known]
        count = len(flagged)
        ratio = count / len(friend_ids)

        if count < self.settings.min_flagged_friends and ratio < self.settings.min_flagged_friend_ratio:
            return None

        logger.debug(f"Friend check: {profile.id} has {count}/{len(friend_ids)} flagged friends")
        return FlaggedRecord.from_profile(
            profile,
            reason=f"User has {count} flagged friends ({ratio * 100:.2f}%)",
            confidence=round(ratio, 2),
            source=FlagSource.FRIEND,
            flagged_friend_ids=flagged,
        )
