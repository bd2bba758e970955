# Pipeline stage exports
from .deps import (
    PipelineDeps,
    GroupLookup, UserLookup, Translator, ClassifierClient, FollowerLookup,
    TrackingStore, FlaggedRecordStore, ProfileFetcher, Enricher,
)
from .claim_validator import validate_claim
from .group_check import GroupAffiliationCheck
from .friend_check import FriendNetworkCheck
from .content_classifier import ContentClassifier, ClassificationBatchError, SYSTEM_PROMPT
from .tracking_aggregator import TrackingAggregator
from .popularity import PopularityEscalation, popularity_banner
from .enrichment import apply_enrichers
from .orchestrator import ProfilePipeline

__all__ = [
    # Dependencies / collaborator contracts
    "PipelineDeps",
    "GroupLookup", "UserLookup", "Translator", "ClassifierClient", "FollowerLookup",
    "TrackingStore", "FlaggedRecordStore", "ProfileFetcher", "Enricher",
    # Stages
    "validate_claim",
    "GroupAffiliationCheck",
    "FriendNetworkCheck",
    "ContentClassifier", "ClassificationBatchError", "SYSTEM_PROMPT",
    "TrackingAggregator",
    "PopularityEscalation", "popularity_banner",
    "apply_enrichers",
    "ProfilePipeline",
]
