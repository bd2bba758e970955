"""
Pipeline Orchestrator — runs one batch of candidate profiles end to end.

Flow: deterministic checks -> content classifier -> popularity -> enrichment -> persist
  1. Group + friend checks, both concurrently for every profile
     (group wins when both fire; errored lookups -> unresolved)
  2. Profiles not flagged and not unresolved are classified as ONE sub-batch
  3. Union of flagged records -> popularity escalation -> each enricher
  4. Save, then append flagged users to the tallies of their groups

No stage is retried here. A ClassificationBatchError reaches the caller
unchanged and nothing from that run is persisted.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..schemas import (
    CandidateProfile, EntityKind, FlaggedRecord, PipelineRunResult, TrackingPassResult,
)
from ..tools.parallel import parallel_map
from .content_classifier import ContentClassifier
from .deps import PipelineDeps
from .enrichment import apply_enrichers
from .friend_check import FriendNetworkCheck
from .group_check import GroupAffiliationCheck
from .popularity import PopularityEscalation
from .tracking_aggregator import TrackingAggregator

logger = logging.getLogger(__name__)

# (group record, friend record, first lookup error)
_CheckOutcome = Tuple[Optional[FlaggedRecord], Optional[FlaggedRecord], Optional[Exception]]
_RecordKey = Tuple[int, EntityKind]


class ProfilePipeline:
    """Wires the pipeline stages to the collaborators in PipelineDeps."""

    def __init__(self, deps: Optional[PipelineDeps] = None):
        self.deps = deps or PipelineDeps.create()
        settings = self.deps.settings
        self.settings = settings
        self.group_check = GroupAffiliationCheck(self.deps.group_lookup, settings)
        self.friend_check = FriendNetworkCheck(self.deps.user_lookup, settings)
        self.classifier = ContentClassifier(self.deps.classifier, self.deps.translator, settings)
        self.popularity = PopularityEscalation(self.deps.follower_lookup, settings)

    async def process_profiles(self, batch: List[CandidateProfile]) -> PipelineRunResult:
        profiles = list({(p.id, p.kind): p for p in batch}.values())
        counts: Dict[str, int] = {"input": len(profiles)}
        if not profiles:
            return PipelineRunResult(stage_counts=counts)

        # ── Stage 1: deterministic checks ──
        logger.info("=" * 50)
        logger.info(f"STAGE 1: GROUP + FRIEND CHECKS ({len(profiles)} profiles)")
        logger.info("=" * 50)

        outcomes = await parallel_map(
            profiles, self._run_checks,
            key=lambda p: (p.id, p.kind),
            max_concurrency=self.settings.max_concurrency,
        )

        flagged: Dict[_RecordKey, FlaggedRecord] = {}
        unresolved: List[int] = []
        remaining: List[CandidateProfile] = []
        counts["group_flagged"] = counts["friend_flagged"] = 0
        for profile in profiles:
            key = (profile.id, profile.kind)
            outcome = outcomes[key]
            group_record, friend_record, error = outcome.value if outcome.ok else (None, None, outcome.error)
            if group_record is not None:
                flagged[key] = group_record
                counts["group_flagged"] += 1
            elif friend_record is not None:
                flagged[key] = friend_record
                counts["friend_flagged"] += 1
            elif error is not None:
                logger.warning(f"Checks unresolved for {profile.id}: {error!r}")
                unresolved.append(profile.id)
            else:
                remaining.append(profile)
        counts["unresolved"] = len(unresolved)
        logger.info(
            f"Checks: {counts['group_flagged']} group, {counts['friend_flagged']} friend, "
            f"{len(unresolved)} unresolved, {len(remaining)} to classifier"
        )

        # ── Stage 2: content classifier ──
        logger.info("=" * 50)
        logger.info(f"STAGE 2: CONTENT CLASSIFIER ({len(remaining)} profiles)")
        logger.info("=" * 50)

        failed_validation: List[int] = []
        counts["classified"] = len(remaining)
        counts["content_flagged"] = 0
        if remaining:
            result = await self.classifier.classify(remaining)
            for record in result.flagged:
                if (record.id, record.kind) not in flagged:
                    flagged[(record.id, record.kind)] = record
                    counts["content_flagged"] += 1
            failed_validation = result.failed_validation_ids
        counts["failed_validation"] = len(failed_validation)

        # ── Stage 3: popularity + enrichment ──
        logger.info("=" * 50)
        logger.info(f"STAGE 3: POPULARITY + ENRICHMENT ({len(flagged)} records)")
        logger.info("=" * 50)

        before = list(flagged.values())
        records = await self.popularity.apply(before)
        counts["escalated"] = sum(1 for old, new in zip(before, records) if new.reason != old.reason)
        records = await apply_enrichers(self.deps.enrichers, records)

        # ── Stage 4: persist ──
        if records:
            await self.deps.record_store.save_flagged_records(records)
            flagged_users = [
                p for p in profiles
                if (p.id, p.kind) in flagged and p.kind == EntityKind.USER and p.groups
            ]
            if flagged_users:
                tracked = await self.deps.tracking_store.track_flagged_memberships(flagged_users)
                counts["tracked_memberships"] = tracked
        counts["saved"] = len(records)

        logger.info(f"Pipeline complete: {counts}")
        return PipelineRunResult(
            flagged=records,
            failed_validation_ids=failed_validation,
            unresolved_ids=unresolved,
            stage_counts=counts,
        )

    async def run_tracking_pass(self) -> TrackingPassResult:
        """Out-of-band tally promotion, triggered by the caller."""
        logger.info("=" * 50)
        logger.info("TRACKING PASS")
        logger.info("=" * 50)
        aggregator = TrackingAggregator(
            self.deps.tracking_store,
            self.deps.profile_fetcher,
            self.deps.record_store,
            self.settings,
            enrichers=self.deps.enrichers,
        )
        return await aggregator.run()

    # ── Internals ────────────────────────────────────────────────────

    async def _run_checks(self, profile: CandidateProfile) -> _CheckOutcome:
        group_result, friend_result = await asyncio.gather(
            self.group_check.check(profile),
            self.friend_check.check(profile),
            return_exceptions=True,
        )
        error = None
        for r in (group_result, friend_result):
            if isinstance(r, BaseException):
                if not isinstance(r, Exception):
                    raise r
                error = error or r
        return (
            None if isinstance(group_result, BaseException) else group_result,
            None if isinstance(friend_result, BaseException) else friend_result,
            error,
        )

