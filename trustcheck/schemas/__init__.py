"""
Schemas package — all data models for the trustcheck pipeline.

Models are organized by domain in submodules:
  - base.py: Common enums (EntityKind, AccountStatus, FlagSource, ConfidenceBand)
  - profiles.py: CandidateProfile, FriendRef, GroupMembership
  - records.py: FlaggedRecord, TrackingTally, PipelineRunResult, TrackingPassResult
  - llm_outputs.py: Structured classifier output models
  - validation.py: ClaimValidation, ClaimVerdict, ClassificationResult
"""

# base.py — enums
from trustcheck.schemas.base import (
    EntityKind, AccountStatus, FlagSource, ConfidenceBand,
)

# profiles.py — input snapshots
from trustcheck.schemas.profiles import CandidateProfile, FriendRef, GroupMembership

# records.py — pipeline output
from trustcheck.schemas.records import (
    FlaggedRecord, TrackingTally, PipelineRunResult, TrackingPassResult,
)

# llm_outputs.py — classifier schema
from trustcheck.schemas.llm_outputs import (
    FlaggedProfileLLM, FlaggedProfilesLLM, ProfilePayloadLLM,
)

# validation.py — claim validation
from trustcheck.schemas.validation import (
    ClaimVerdict, ClaimValidation, ClassificationResult,
)

__all__ = [
    # base
    "EntityKind", "AccountStatus", "FlagSource", "ConfidenceBand",
    # profiles
    "CandidateProfile", "FriendRef", "GroupMembership",
    # records
    "FlaggedRecord", "TrackingTally", "PipelineRunResult", "TrackingPassResult",
    # llm outputs
    "FlaggedProfileLLM", "FlaggedProfilesLLM", "ProfilePayloadLLM",
    # validation
    "ClaimVerdict", "ClaimValidation", "ClassificationResult",
]
