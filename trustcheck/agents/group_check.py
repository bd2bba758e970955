"""
Group Affiliation Check — flags profiles that belong to several known-bad groups.

Zero LLM calls. One lookup per profile against the group status store.
"""

import logging
from typing import Optional

from ..config import Settings, get_settings
from ..schemas import CandidateProfile, FlaggedRecord, FlagSource
from .deps import GroupLookup

logger = logging.getLogger(__name__)


class GroupAffiliationCheck:
    """Flags a profile when >= MIN_FLAGGED_GROUPS of its groups are known-bad."""

    def __init__(self, lookup: GroupLookup, settings: Optional[Settings] = None):
        self.lookup = lookup
        self.settings = settings or get_settings()

    async def check(self, profile: CandidateProfile) -> Optional[FlaggedRecord]:
        """Return a record or None. Lookup errors propagate to the caller."""
        group_ids = list(dict.fromkeys(profile.group_ids))
        if not group_ids:
            return None

        known = set(group_ids)
        matched = [g for g in dict.fromkeys(await self.lookup.match_known_bad_groups(group_ids)) if g in known]
        if len(matched) < self.settings.min_flagged_groups:
            return None

        confidence = round(len(matched) / len(group_ids), 2)
        logger.debug(f"Group check: {profile.id} in {len(matched)}/{len(group_ids)} flagged groups")
        return FlaggedRecord.from_profile(
            profile,
            reason=f"Member of {len(matched)} flagged groups",
            confidence=confidence,
            source=FlagSource.GROUP,
            flagged_group_ids=matched,
        )
