"""
Inner Pydantic models for LLM structured output.

These models define ONLY what the LLM produces. Profile ids are never part
of the model's input or output; claims are matched back to profiles by name.
Used with LLMService.classify() under strict JSON-schema enforcement.

Convention: Suffix with "LLM" to distinguish from the pipeline's own models.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FlaggedProfileLLM(BaseModel):
    """One model claim: a profile the model believes violates policy."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Exact name of the flagged profile")
    reason: str = Field(description="Clear one-sentence explanation of why the profile was flagged")
    flagged_content: List[str] = Field(
        alias="flaggedContent",
        description="Exact content that was flagged without alterations",
    )
    confidence: float = Field(description="Confidence level of the assessment, 0.0 to 1.0")

    @field_validator('flagged_content', mode='before')
    @classmethod
    def coerce_content(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return max(0.0, min(1.0, float(v)))


class FlaggedProfilesLLM(BaseModel):
    """Top-level classifier output."""
    users: List[FlaggedProfileLLM] = Field(description="List of flagged profiles")


class ProfilePayloadLLM(BaseModel):
    """What the model sees for each profile: name and description only."""
    name: str
    description: str = ""
