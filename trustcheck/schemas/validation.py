"""
Validation result models for checking classifier claims against source text.

Every model claim is scored by word overlap between its flagged excerpts and
the profile's own name/description. No additional LLM call is involved.

Verdict flow:
  ACCEPT  -> claim substantiated, FlaggedRecord built from original text
  REJECT  -> claim unsubstantiated, profile id returned for retry/discard
  ANOMALY -> claim names a profile outside the batch, logged and discarded
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from .records import FlaggedRecord


class ClaimVerdict(str, Enum):
    """Outcome of validating one model claim."""
    ACCEPT = "accept"
    REJECT = "reject"
    ANOMALY = "anomaly"


class ClaimValidation(BaseModel):
    """Word-overlap assessment of one claim against one profile."""
    verdict: ClaimVerdict
    total_words: int = 0
    matched_words: int = 0
    match_ratio: float = Field(ge=0.0, le=1.0, default=0.0)
    threshold: float = 0.0
    unmatched_words: List[str] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.verdict == ClaimVerdict.ACCEPT

    def summary(self) -> str:
        """One-line summary for logging."""
        return (
            f"[{self.verdict.value.upper()}] {self.matched_words}/{self.total_words} words "
            f"({self.match_ratio:.0%}, threshold {self.threshold:.0%})"
        )


class ClassificationResult(BaseModel):
    """Outcome of classifying one sub-batch."""
    flagged: List[FlaggedRecord] = Field(default_factory=list)
    failed_validation_ids: List[int] = Field(default_factory=list)
    anomalies: List[str] = Field(default_factory=list)
