"""
Pipeline output models.

FlaggedRecord is the verdict for one profile. It is created exactly once per
pipeline run and never mutated afterwards: later stages (popularity
escalation, enrichment) derive a new record with model_copy(update=...).
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import ConfidenceBand, EntityKind, FlagSource
from .profiles import CandidateProfile


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlaggedRecord(BaseModel):
    """Confidence-scored verdict with the evidence a moderator needs."""
    model_config = ConfigDict(frozen=True)

    id: int
    kind: EntityKind = EntityKind.USER
    name: str = ""
    display_name: str = ""
    # Always the original, untranslated description
    description: str = ""
    reason: str
    flagged_content: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    source: FlagSource

    # Denormalized evidence for review
    friend_ids: List[int] = Field(default_factory=list)
    group_ids: List[int] = Field(default_factory=list)
    flagged_friend_ids: List[int] = Field(default_factory=list)
    flagged_group_ids: List[int] = Field(default_factory=list)

    follower_count: Optional[int] = None
    thumbnail_url: str = ""
    last_updated: datetime = Field(default_factory=_utcnow)

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return max(0.0, min(1.0, float(v)))

    @property
    def band(self) -> ConfidenceBand:
        return ConfidenceBand.from_score(self.confidence)

    @classmethod
    def from_profile(
        cls,
        profile: CandidateProfile,
        *,
        reason: str,
        confidence: float,
        source: FlagSource,
        flagged_content: Optional[List[str]] = None,
        flagged_friend_ids: Optional[List[int]] = None,
        flagged_group_ids: Optional[List[int]] = None,
    ) -> "FlaggedRecord":
        """Build a record whose evidence comes only from the examined profile."""
        return cls(
            id=profile.id,
            kind=profile.kind,
            name=profile.name,
            display_name=profile.display_name,
            description=profile.description,
            reason=reason,
            flagged_content=list(flagged_content or []),
            confidence=confidence,
            source=source,
            friend_ids=profile.friend_ids,
            group_ids=profile.group_ids,
            flagged_friend_ids=list(flagged_friend_ids or []),
            flagged_group_ids=list(flagged_group_ids or []),
            last_updated=profile.last_updated,
        )


class TrackingTally(BaseModel):
    """Running list of already-confirmed entities associated with one entity."""
    entity_id: int
    kind: EntityKind = EntityKind.GROUP
    confirmed_ids: List[int] = Field(default_factory=list)
    last_appended: datetime = Field(default_factory=_utcnow)

    @property
    def confirmed_count(self) -> int:
        return len(self.confirmed_ids)


class PipelineRunResult(BaseModel):
    """Outcome of one orchestrator run over a batch."""
    flagged: List[FlaggedRecord] = Field(default_factory=list)
    # Failed classifier validation: caller may re-run or discard, never "cleared"
    failed_validation_ids: List[int] = Field(default_factory=list)
    # Lookup errored in a deterministic check: caller decides whether to retry
    unresolved_ids: List[int] = Field(default_factory=list)
    stage_counts: Dict[str, int] = Field(default_factory=dict)

    @property
    def flagged_ids(self) -> List[int]:
        return [r.id for r in self.flagged]


class TrackingPassResult(BaseModel):
    """Outcome of one Tracking Aggregator pass."""
    flagged: List[FlaggedRecord] = Field(default_factory=list)
    consumed_tallies: int = 0
    dropped_ids: List[int] = Field(default_factory=list)
    requeued_ids: List[int] = Field(default_factory=list)
