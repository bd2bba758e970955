"""
Collaborator contracts and the shared dependency container.

Every external capability the pipeline touches is a typing.Protocol, so
production implementations (Database, LLMService, httpx tools) and the
in-memory fakes used by tests are interchangeable.

PipelineDeps follows the lazy-initialized tool pattern: anything not
injected explicitly is created from settings on first use.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Type, TypeVar, runtime_checkable

from pydantic import BaseModel

from ..schemas import CandidateProfile, EntityKind, FlaggedRecord, TrackingTally

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


# ══════════════════════════════════════════════════════════════════════════════
# COLLABORATOR PROTOCOLS
# ══════════════════════════════════════════════════════════════════════════════

@runtime_checkable
class GroupLookup(Protocol):
    async def match_known_bad_groups(self, group_ids: List[int]) -> List[int]:
        """Subset of `group_ids` already known to be bad."""
        ...


@runtime_checkable
class UserLookup(Protocol):
    async def match_flagged_or_confirmed(self, user_ids: List[int]) -> List[int]:
        """Subset of `user_ids` already flagged or confirmed."""
        ...


@runtime_checkable
class Translator(Protocol):
    async def translate(self, text: str, source: str = "auto", target: str = "en") -> str:
        ...


@runtime_checkable
class ClassifierClient(Protocol):
    async def classify(self, schema: Type[T], system_prompt: str, payload: str) -> T:
        """Return an instance of `schema` produced under strict schema enforcement."""
        ...


@runtime_checkable
class FollowerLookup(Protocol):
    async def get_follower_count(self, account_id: int) -> int:
        """Follower count of a user account."""
        ...


@runtime_checkable
class TrackingStore(Protocol):
    async def get_and_clear_qualified_tallies(self, min_confirmed: int) -> List[TrackingTally]:
        """Atomically return and remove every tally with >= min_confirmed entries."""
        ...

    async def requeue_tallies(self, tallies: List[TrackingTally]) -> None:
        """Merge consumed tallies back into the store."""
        ...

    async def track_flagged_memberships(self, profiles: List[CandidateProfile]) -> int:
        """Append each flagged user to the tallies of its (small enough) groups."""
        ...


@runtime_checkable
class FlaggedRecordStore(Protocol):
    async def save_flagged_records(self, records: List[FlaggedRecord]) -> None:
        """Upsert by (id, kind); last write wins."""
        ...


@runtime_checkable
class ProfileFetcher(Protocol):
    async def fetch_profiles(self, ids: List[int], kind: EntityKind) -> List[CandidateProfile]:
        """Batch fetch entities of one kind. Ids that cannot be resolved are simply absent."""
        ...


@runtime_checkable
class Enricher(Protocol):
    async def enrich(self, records: List[FlaggedRecord]) -> List[FlaggedRecord]:
        """Return enriched copies, same order, never mutating the inputs."""
        ...


# ══════════════════════════════════════════════════════════════════════════════
# DEPENDENCY CONTAINER
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class PipelineDeps:
    """Shared dependencies for the pipeline stages.

    Pass explicit collaborators to override any default. Lookups go through
    a StatusCache that the caller owns and may reuse across runs.
    """

    def __hash__(self):
        return id(self)

    settings: Optional[object] = field(default=None, repr=False)
    mock_mode: bool = False

    _database: Optional[object] = field(default=None, repr=False)
    _status_cache: Optional[object] = field(default=None, repr=False)
    _group_lookup: Optional[object] = field(default=None, repr=False)
    _user_lookup: Optional[object] = field(default=None, repr=False)
    _translator: Optional[object] = field(default=None, repr=False)
    _classifier: Optional[object] = field(default=None, repr=False)
    _follower_lookup: Optional[object] = field(default=None, repr=False)
    _record_store: Optional[object] = field(default=None, repr=False)
    _tracking_store: Optional[object] = field(default=None, repr=False)
    _profile_fetcher: Optional[object] = field(default=None, repr=False)
    _enrichers: Optional[List[object]] = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        settings=None,
        mock_mode: bool = False,
        *,
        database=None,
        status_cache=None,
        group_lookup=None,
        user_lookup=None,
        translator=None,
        classifier=None,
        follower_lookup=None,
        record_store=None,
        tracking_store=None,
        profile_fetcher=None,
        enrichers=None,
    ) -> PipelineDeps:
        """Create deps with settings-aware mock_mode."""
        from trustcheck.config import get_settings
        settings = settings or get_settings()
        return cls(
            settings=settings,
            mock_mode=mock_mode or settings.mock_mode,
            _database=database,
            _status_cache=status_cache,
            _group_lookup=group_lookup,
            _user_lookup=user_lookup,
            _translator=translator,
            _classifier=classifier,
            _follower_lookup=follower_lookup,
            _record_store=record_store,
            _tracking_store=tracking_store,
            _profile_fetcher=profile_fetcher,
            _enrichers=enrichers,
        )

    # ── Tool properties (lazy init) ──────────────────────────────────

    @property
    def database(self):
        if self._database is None:
            from trustcheck.database import Database
            self._database = Database(self.settings.database_url, settings=self.settings)
            self._database.create_tables()
        return self._database

    @property
    def status_cache(self):
        if self._status_cache is None:
            from trustcheck.tools.status_cache import StatusCache
            self._status_cache = StatusCache(
                group_lookup=self._group_lookup or self.database,
                user_lookup=self._user_lookup or self.database,
                ttl_seconds=self.settings.status_cache_ttl_seconds,
            )
        return self._status_cache

    @property
    def group_lookup(self) -> GroupLookup:
        return self.status_cache

    @property
    def user_lookup(self) -> UserLookup:
        return self.status_cache

    @property
    def translator(self) -> Optional[Translator]:
        """None when translation is disabled."""
        if self._translator is None and self.settings.translation_enabled and not self.mock_mode:
            from trustcheck.tools.translator import TranslatorTool
            self._translator = TranslatorTool(settings=self.settings)
        return self._translator

    @property
    def classifier(self) -> ClassifierClient:
        if self._classifier is None:
            from trustcheck.tools.llm_service import LLMService
            self._classifier = LLMService(settings=self.settings, mock_mode=self.mock_mode)
        return self._classifier

    @property
    def follower_lookup(self) -> FollowerLookup:
        if self._follower_lookup is None:
            from trustcheck.tools.follower_tool import FollowerTool
            self._follower_lookup = FollowerTool(settings=self.settings)
        return self._follower_lookup

    @property
    def record_store(self) -> FlaggedRecordStore:
        if self._record_store is None:
            self._record_store = self.database
        return self._record_store

    @property
    def tracking_store(self) -> TrackingStore:
        if self._tracking_store is None:
            self._tracking_store = self.database
        return self._tracking_store

    @property
    def profile_fetcher(self) -> ProfileFetcher:
        if self._profile_fetcher is None:
            raise RuntimeError("No ProfileFetcher configured (profile discovery is external)")
        return self._profile_fetcher

    @property
    def enrichers(self) -> List[Enricher]:
        if self._enrichers is None:
            if self.mock_mode:
                self._enrichers = []
            else:
                from trustcheck.tools.thumbnail_tool import ThumbnailTool
                self._enrichers = [ThumbnailTool(settings=self.settings)]
        return self._enrichers
