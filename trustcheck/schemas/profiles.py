"""
Candidate profile models — fetched account snapshots pending classification.

A CandidateProfile is owned by the profile source; the pipeline only reads
it. Models are frozen so concurrent stages can share one instance safely.
"""

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import EntityKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FriendRef(BaseModel):
    """A friend edge. Flagged/confirmed status is resolved lazily by lookup."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""


class GroupMembership(BaseModel):
    """A group the profile belongs to."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    member_count: int = Field(default=0, ge=0)
    role: str = ""


class CandidateProfile(BaseModel):
    """A fetched user or group snapshot."""
    model_config = ConfigDict(frozen=True)

    id: int
    kind: EntityKind = EntityKind.USER
    name: str
    display_name: str = ""
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    friends: List[FriendRef] = Field(default_factory=list)
    groups: List[GroupMembership] = Field(default_factory=list)
    # Groups only: total member count reported by the platform
    member_count: int = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=_utcnow)

    # Description is kept byte-for-byte: it is persisted as evidence
    @field_validator("name", "display_name", mode="before")
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v

    @property
    def friend_ids(self) -> List[int]:
        return [f.id for f in self.friends]

    @property
    def group_ids(self) -> List[int]:
        return [g.id for g in self.groups]
