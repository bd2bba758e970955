"""
Claim validation — checks classifier evidence against the profile's own text.

Anti-hallucination gate between the LLM and persistence. A model claim is
only trusted when the words of its flagged excerpts literally appear in the
profile it names.

ALGORITHM (zero LLM calls, pure function of its inputs):
    1. Split every flagged excerpt into whitespace-separated words
    2. Count words contained (normalized) in the profile name or description
    3. ratio = matched / total; ACCEPT if ratio >= threshold, else REJECT
    4. A claim with no words at all is REJECTED (nothing to substantiate)

Thresholds (app config):
    VALIDATION_THRESHOLD_TRANSLATED:   0.5  (description passed through translation)
    VALIDATION_THRESHOLD_UNTRANSLATED: 0.8  (raw description)
"""

from typing import List

from trustcheck.schemas.validation import ClaimValidation, ClaimVerdict
from trustcheck.tools.text_normalizer import contains_normalized, split_words


def validate_claim(
    flagged_content: List[str],
    name: str,
    description: str,
    threshold: float,
) -> ClaimValidation:
    """Score one claim's excerpts against one profile's name and description."""
    words = split_words(flagged_content)
    if not words:
        return ClaimValidation(verdict=ClaimVerdict.REJECT, threshold=threshold)

    matched = 0
    unmatched: List[str] = []
    for word in words:
        if contains_normalized(name, word) or contains_normalized(description, word):
            matched += 1
        else:
            unmatched.append(word)

    ratio = matched / len(words)
    return ClaimValidation(
        verdict=ClaimVerdict.ACCEPT if ratio >= threshold else ClaimVerdict.REJECT,
        total_words=len(words),
        matched_words=matched,
        match_ratio=ratio,
        threshold=threshold,
        unmatched_words=unmatched,
    )
