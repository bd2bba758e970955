"""
Tracking Aggregator — promotes entities whose confirmed tally crosses the threshold.

Runs out-of-band, triggered by the caller (no internal timer):
  1. Atomically take every tally with >= MIN_CONFIRMED_ENTITIES_FOR_FLAG ids
  2. Batch-fetch the entities' current profiles (one call per entity kind)
  3. confidence = confirmed / member_count (groups) or / friend_count (users)
  4. Enrich, then persist the resulting FlaggedRecords

Tallies are keyed by (entity_id, kind): a group and a user may share an id.
A consumed tally whose entity cannot be fetched, or whose entity reports no
members / friends to measure against, is unresolved: dropped, or merged back
into the store when REQUEUE_UNRESOLVED_TALLIES is on.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import Settings, get_settings
from ..schemas import (
    CandidateProfile, EntityKind, FlaggedRecord, FlagSource, TrackingPassResult, TrackingTally,
)
from .deps import Enricher, FlaggedRecordStore, ProfileFetcher, TrackingStore
from .enrichment import apply_enrichers

logger = logging.getLogger(__name__)

_TallyKey = Tuple[int, EntityKind]


def tally_confidence(tally: TrackingTally, profile: CandidateProfile) -> Optional[float]:
    """Share of the entity's members (or friends) that are confirmed, in [0, 1].

    None when the entity reports no members (or friends): the ratio is
    unknown and the tally is not promoted.
    """
    total = profile.member_count if tally.kind == EntityKind.GROUP else len(profile.friends)
    if total <= 0:
        return None
    return max(0.0, min(1.0, tally.confirmed_count / total))


def tally_reason(tally: TrackingTally) -> str:
    if tally.kind == EntityKind.GROUP:
        return f"Group has {tally.confirmed_count} confirmed members"
    return f"User has {tally.confirmed_count} confirmed friends"


class TrackingAggregator:
    """One pass over qualified tallies."""

    def __init__(
        self,
        tracking_store: TrackingStore,
        profile_fetcher: ProfileFetcher,
        record_store: FlaggedRecordStore,
        settings: Optional[Settings] = None,
        enrichers: Sequence[Enricher] = (),
    ):
        self.tracking_store = tracking_store
        self.profile_fetcher = profile_fetcher
        self.record_store = record_store
        self.settings = settings or get_settings()
        self.enrichers = list(enrichers)

    async def run(self) -> TrackingPassResult:
        threshold = self.settings.min_confirmed_entities_for_flag

        # A failure here propagates unmodified: nothing has been consumed yet
        tallies = await self.tracking_store.get_and_clear_qualified_tallies(threshold)
        if not tallies:
            logger.info("Tracking: no tallies qualified")
            return TrackingPassResult()

        by_key: Dict[_TallyKey, TrackingTally] = {(t.entity_id, t.kind): t for t in tallies}
        logger.info(f"Tracking: {len(by_key)} tallies reached {threshold} confirmed entities")

        try:
            found = await self._fetch_profiles(by_key)
        except Exception:
            logger.error(f"Tracking: profile fetch failed for {len(by_key)} consumed tallies")
            if self.settings.requeue_unresolved_tallies:
                await self.tracking_store.requeue_tallies(list(by_key.values()))
            raise

        records: List[FlaggedRecord] = []
        unresolved: List[_TallyKey] = []
        for key, tally in by_key.items():
            profile = found.get(key)
            confidence = tally_confidence(tally, profile) if profile is not None else None
            if confidence is None:
                if profile is not None:
                    logger.warning(f"Tracking: {tally.kind.value} {tally.entity_id} reports no members, not promoting")
                unresolved.append(key)
                continue
            records.append(FlaggedRecord.from_profile(
                profile,
                reason=tally_reason(tally),
                confidence=confidence,
                source=FlagSource.TRACKING,
                flagged_friend_ids=tally.confirmed_ids if tally.kind == EntityKind.USER else None,
            ))

        requeued: List[int] = []
        dropped: List[int] = []
        if unresolved:
            if self.settings.requeue_unresolved_tallies:
                await self.tracking_store.requeue_tallies([by_key[k] for k in unresolved])
                requeued = [entity_id for entity_id, _ in unresolved]
                logger.warning(f"Tracking: re-queued {len(unresolved)} unresolved tallies")
            else:
                dropped = [entity_id for entity_id, _ in unresolved]
                logger.warning(f"Tracking: dropped {len(unresolved)} unresolved tallies")

        if records:
            records = await apply_enrichers(self.enrichers, records)
            await self.record_store.save_flagged_records(records)
        logger.info(f"Tracking: flagged {len(records)} entities")

        return TrackingPassResult(
            flagged=records,
            consumed_tallies=len(by_key),
            dropped_ids=dropped,
            requeued_ids=requeued,
        )

    async def _fetch_profiles(self, by_key: Dict[_TallyKey, TrackingTally]) -> Dict[_TallyKey, CandidateProfile]:
        """One batch fetch per entity kind; profiles of the wrong kind are ignored."""
        ids_by_kind: Dict[EntityKind, List[int]] = {}
        for entity_id, kind in by_key:
            ids_by_kind.setdefault(kind, []).append(entity_id)

        found: Dict[_TallyKey, CandidateProfile] = {}
        for kind, ids in ids_by_kind.items():
            for profile in await self.profile_fetcher.fetch_profiles(ids, kind):
                key = (profile.id, profile.kind)
                if key in by_key:
                    found[key] = profile
        return found
