"""
Common enums used across the pipeline.

These define the vocabulary of the system: what kind of entity a profile
describes, which stage produced a verdict, and how a confidence score
reads to a moderator.
"""

from enum import Enum


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Classification Types
# ══════════════════════════════════════════════════════════════════════════════

class EntityKind(str, Enum):
    """Kind of account a profile snapshot describes."""
    USER = "user"
    GROUP = "group"


class AccountStatus(str, Enum):
    """Moderation status of an account already known to the store."""
    FLAGGED = "flagged"        # Pending moderator review
    CONFIRMED = "confirmed"    # Reviewed and confirmed as violating
    CLEARED = "cleared"        # Reviewed and cleared


class FlagSource(str, Enum):
    """Pipeline stage that produced a flagged record."""
    GROUP = "group"            # Group Affiliation Check
    FRIEND = "friend"          # Friend-Network Check
    CONTENT = "content"        # Content Classifier
    TRACKING = "tracking"      # Tracking Aggregator


class ConfidenceBand(str, Enum):
    """Banded reading of a confidence score (matches the classifier rubric)."""
    HIGH = "high"              # 0.8 - 1.0
    MEDIUM = "medium"          # 0.4 - 0.7
    LOW = "low"                # 0.0 - 0.3

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceBand":
        if score >= 0.8:
            return cls.HIGH
        if score >= 0.4:
            return cls.MEDIUM
        return cls.LOW
