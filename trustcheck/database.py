"""
SQL storage — flagged records, account status, and tracking tallies.

Tables:
  - flagged_records: Pipeline output, upserted by (id, kind), last write wins
  - known_groups: Group moderation status (flagged / confirmed / cleared)
  - known_users: User moderation status (flagged / confirmed / cleared)
  - tracking_tallies: Confirmed ids accumulated per entity

Database implements GroupLookup, UserLookup, TrackingStore and
FlaggedRecordStore. Every async method runs its synchronous session work in
a worker thread (asyncio.to_thread); each one is a single transaction.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import (
    create_engine, Column, String, Integer, BigInteger, Float, Text, DateTime,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings
from .schemas import (
    AccountStatus, CandidateProfile, EntityKind, FlaggedRecord, FlagSource, TrackingTally,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


# ── Models ───────────────────────────────────────────────────────────────────

class FlaggedRecordModel(Base):
    """Flagged account awaiting review."""
    __tablename__ = "flagged_records"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    kind = Column(String(10), primary_key=True, default=EntityKind.USER.value)

    name = Column(String(300), default="")
    display_name = Column(String(300), default="")
    description = Column(Text, default="")
    reason = Column(Text, nullable=False)
    flagged_content = Column(Text, default="[]")  # JSON array
    confidence = Column(Float, default=0.0)
    source = Column(String(20), nullable=False, index=True)

    friend_ids = Column(Text, default="[]")  # JSON array
    group_ids = Column(Text, default="[]")  # JSON array
    flagged_friend_ids = Column(Text, default="[]")  # JSON array
    flagged_group_ids = Column(Text, default="[]")  # JSON array

    follower_count = Column(Integer)
    thumbnail_url = Column(String(500), default="")
    last_updated = Column(DateTime)
    saved_at = Column(DateTime, default=_utcnow)


class KnownGroupModel(Base):
    """Moderation status of a group."""
    __tablename__ = "known_groups"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    status = Column(String(20), nullable=False, index=True)
    updated_at = Column(DateTime, default=_utcnow)


class KnownUserModel(Base):
    """Moderation status of a user."""
    __tablename__ = "known_users"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    status = Column(String(20), nullable=False, index=True)
    updated_at = Column(DateTime, default=_utcnow)


class TrackingTallyModel(Base):
    """Confirmed ids associated with one entity since tracking began."""
    __tablename__ = "tracking_tallies"

    entity_id = Column(BigInteger, primary_key=True, autoincrement=False)
    kind = Column(String(10), primary_key=True, default=EntityKind.GROUP.value)
    confirmed_ids = Column(Text, default="[]")  # JSON array, insertion order
    confirmed_count = Column(Integer, default=0, index=True)
    last_appended = Column(DateTime, default=_utcnow, index=True)


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Database manager backing the pipeline's lookup and store protocols."""

    def __init__(self, database_url: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        url = database_url or self.settings.database_url
        if "aiosqlite" in url:
            url = url.replace("sqlite+aiosqlite", "sqlite")

        kwargs = {}
        if url.startswith("sqlite"):
            # Sessions run in worker threads
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool

        self.engine = create_engine(url, echo=False, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Account status (GroupLookup / UserLookup) ─────────────────────

    def mark_groups(self, group_ids: Iterable[int], status: AccountStatus):
        """Set moderation status for groups (upsert)."""
        with self.get_session() as session:
            for gid in group_ids:
                session.merge(KnownGroupModel(id=gid, status=AccountStatus(status).value, updated_at=_utcnow()))

    def mark_users(self, user_ids: Iterable[int], status: AccountStatus):
        """Set moderation status for users (upsert)."""
        with self.get_session() as session:
            for uid in user_ids:
                session.merge(KnownUserModel(id=uid, status=AccountStatus(status).value, updated_at=_utcnow()))

    def confirmed_group_ids(self, group_ids: List[int]) -> List[int]:
        """Subset of `group_ids` whose status is confirmed."""
        if not group_ids:
            return []
        with self.get_session() as session:
            rows = session.query(KnownGroupModel.id).filter(
                KnownGroupModel.id.in_(group_ids),
                KnownGroupModel.status == AccountStatus.CONFIRMED.value,
            ).all()
            found = {r[0] for r in rows}
        return [g for g in dict.fromkeys(group_ids) if g in found]

    def flagged_or_confirmed_user_ids(self, user_ids: List[int]) -> List[int]:
        """Subset of `user_ids` whose status is flagged or confirmed."""
        if not user_ids:
            return []
        with self.get_session() as session:
            rows = session.query(KnownUserModel.id).filter(
                KnownUserModel.id.in_(user_ids),
                KnownUserModel.status.in_([AccountStatus.FLAGGED.value, AccountStatus.CONFIRMED.value]),
            ).all()
            found = {r[0] for r in rows}
        return [u for u in dict.fromkeys(user_ids) if u in found]

    async def match_known_bad_groups(self, group_ids: List[int]) -> List[int]:
        return await asyncio.to_thread(self.confirmed_group_ids, list(group_ids))

    async def match_flagged_or_confirmed(self, user_ids: List[int]) -> List[int]:
        return await asyncio.to_thread(self.flagged_or_confirmed_user_ids, list(user_ids))

    # ── Flagged records (FlaggedRecordStore) ──────────────────────────

    def save_flagged_records_sync(self, records: List[FlaggedRecord]) -> int:
        """Upsert records by (id, kind). Returns number written."""
        with self.get_session() as session:
            for r in records:
                session.merge(FlaggedRecordModel(
                    id=r.id,
                    kind=r.kind.value,
                    name=r.name,
                    display_name=r.display_name,
                    description=r.description,
                    reason=r.reason,
                    flagged_content=json.dumps(r.flagged_content, ensure_ascii=False),
                    confidence=r.confidence,
                    source=r.source.value,
                    friend_ids=json.dumps(r.friend_ids),
                    group_ids=json.dumps(r.group_ids),
                    flagged_friend_ids=json.dumps(r.flagged_friend_ids),
                    flagged_group_ids=json.dumps(r.flagged_group_ids),
                    follower_count=r.follower_count,
                    thumbnail_url=r.thumbnail_url,
                    last_updated=_naive_utc(r.last_updated),
                    saved_at=_utcnow(),
                ))
        logger.info(f"Saved {len(records)} flagged records")
        return len(records)

    async def save_flagged_records(self, records: List[FlaggedRecord]) -> None:
        if records:
            await asyncio.to_thread(self.save_flagged_records_sync, list(records))

    def get_flagged_records(
        self,
        limit: int = 100,
        kind: Optional[EntityKind] = None,
        min_confidence: float = 0.0,
    ) -> List[FlaggedRecord]:
        """Most confident first."""
        with self.get_session() as session:
            query = session.query(FlaggedRecordModel)
            if kind:
                query = query.filter(FlaggedRecordModel.kind == EntityKind(kind).value)
            if min_confidence > 0:
                query = query.filter(FlaggedRecordModel.confidence >= min_confidence)
            rows = query.order_by(
                FlaggedRecordModel.confidence.desc(), FlaggedRecordModel.id,
            ).limit(limit).all()
            return [self._to_record(r) for r in rows]

    @staticmethod
    def _to_record(row: FlaggedRecordModel) -> FlaggedRecord:
        data = dict(
            id=row.id,
            kind=EntityKind(row.kind),
            name=row.name or "",
            display_name=row.display_name or "",
            description=row.description or "",
            reason=row.reason,
            flagged_content=json.loads(row.flagged_content or "[]"),
            confidence=row.confidence or 0.0,
            source=FlagSource(row.source),
            friend_ids=json.loads(row.friend_ids or "[]"),
            group_ids=json.loads(row.group_ids or "[]"),
            flagged_friend_ids=json.loads(row.flagged_friend_ids or "[]"),
            flagged_group_ids=json.loads(row.flagged_group_ids or "[]"),
            follower_count=row.follower_count,
            thumbnail_url=row.thumbnail_url or "",
        )
        if row.last_updated is not None:
            data["last_updated"] = row.last_updated.replace(tzinfo=timezone.utc)
        return FlaggedRecord(**data)

    # ── Tracking tallies (TrackingStore) ──────────────────────────────

    @staticmethod
    def _append_ids(row: TrackingTallyModel, ids: Iterable[int]) -> int:
        """Append ids not already present. Returns how many were new."""
        current = json.loads(row.confirmed_ids or "[]")
        seen = set(current)
        added = 0
        for i in ids:
            if i not in seen:
                current.append(i)
                seen.add(i)
                added += 1
        if added:
            row.confirmed_ids = json.dumps(current)
            row.confirmed_count = len(current)
            row.last_appended = _utcnow()
        return added

    def _is_confirmed(self, session: Session, entity_id: int, kind: EntityKind) -> bool:
        model = KnownGroupModel if kind == EntityKind.GROUP else KnownUserModel
        row = session.get(model, entity_id)
        return row is not None and row.status == AccountStatus.CONFIRMED.value

    def _add_in_session(self, session: Session, entity_id: int, kind: EntityKind, ids: List[int]) -> int:
        if self._is_confirmed(session, entity_id, kind):
            return 0
        row = session.get(TrackingTallyModel, (entity_id, kind.value))
        if row is None:
            row = TrackingTallyModel(
                entity_id=entity_id, kind=kind.value,
                confirmed_ids="[]", confirmed_count=0, last_appended=_utcnow(),
            )
            session.add(row)
            session.flush()
        return self._append_ids(row, ids)

    def add_to_tracking_sync(self, entity_id: int, confirmed_id: int, kind: EntityKind = EntityKind.GROUP) -> bool:
        """Record that `confirmed_id` is associated with `entity_id`.

        Entities that are already confirmed are not tracked. Returns True when
        the id was new for that tally.
        """
        with self.get_session() as session:
            return self._add_in_session(session, entity_id, EntityKind(kind), [confirmed_id]) > 0

    async def add_to_tracking(self, entity_id: int, confirmed_id: int, kind: EntityKind = EntityKind.GROUP) -> bool:
        return await asyncio.to_thread(self.add_to_tracking_sync, entity_id, confirmed_id, kind)

    def track_flagged_memberships_sync(self, profiles: List[CandidateProfile]) -> int:
        """Add each flagged user to the tallies of its groups.

        Groups with more than MAX_GROUP_MEMBERS_TRACK members are skipped.
        Returns the number of new (group, user) associations.
        """
        limit = self.settings.max_group_members_track
        added = 0
        with self.get_session() as session:
            for profile in profiles:
                for group in profile.groups:
                    if group.member_count > limit:
                        continue
                    added += self._add_in_session(session, group.id, EntityKind.GROUP, [profile.id])
        if added:
            logger.info(f"Tracking: {added} memberships appended for {len(profiles)} flagged users")
        return added

    async def track_flagged_memberships(self, profiles: List[CandidateProfile]) -> int:
        return await asyncio.to_thread(self.track_flagged_memberships_sync, list(profiles))

    def get_and_clear_qualified_tallies_sync(self, min_confirmed: int) -> List[TrackingTally]:
        """Select and delete qualified tallies in one transaction."""
        with self.get_session() as session:
            rows = session.query(TrackingTallyModel).filter(
                TrackingTallyModel.confirmed_count >= min_confirmed,
            ).with_for_update().all()
            tallies = [
                TrackingTally(
                    entity_id=r.entity_id,
                    kind=EntityKind(r.kind),
                    confirmed_ids=json.loads(r.confirmed_ids or "[]"),
                    last_appended=(r.last_appended or _utcnow()).replace(tzinfo=timezone.utc),
                )
                for r in rows
            ]
            for r in rows:
                session.delete(r)
        if tallies:
            logger.info(f"Tracking: consumed {len(tallies)} tallies with >= {min_confirmed} confirmed")
        return tallies

    async def get_and_clear_qualified_tallies(self, min_confirmed: int) -> List[TrackingTally]:
        return await asyncio.to_thread(self.get_and_clear_qualified_tallies_sync, min_confirmed)

    def requeue_tallies_sync(self, tallies: List[TrackingTally]) -> int:
        """Merge consumed tallies back, keeping any ids appended since."""
        with self.get_session() as session:
            for t in tallies:
                row = session.get(TrackingTallyModel, (t.entity_id, t.kind.value))
                if row is None:
                    row = TrackingTallyModel(
                        entity_id=t.entity_id, kind=t.kind.value,
                        confirmed_ids="[]", confirmed_count=0,
                    )
                    session.add(row)
                    session.flush()
                self._append_ids(row, t.confirmed_ids)
                row.last_appended = max(row.last_appended or _utcnow(), _naive_utc(t.last_appended))
        return len(tallies)

    async def requeue_tallies(self, tallies: List[TrackingTally]) -> None:
        if tallies:
            await asyncio.to_thread(self.requeue_tallies_sync, list(tallies))

    def get_tallies(self, kind: EntityKind = EntityKind.GROUP) -> Dict[int, TrackingTally]:
        """Tallies of one entity kind keyed by entity id (inspection and tests)."""
        with self.get_session() as session:
            rows = session.query(TrackingTallyModel).filter(TrackingTallyModel.kind == kind.value).all()
            return {
                r.entity_id: TrackingTally(
                    entity_id=r.entity_id,
                    kind=EntityKind(r.kind),
                    confirmed_ids=json.loads(r.confirmed_ids or "[]"),
                    last_appended=(r.last_appended or _utcnow()).replace(tzinfo=timezone.utc),
                )
                for r in rows
            }

    def purge_old_tallies(self, cutoff: Optional[datetime] = None) -> int:
        """Delete tallies not appended to since `cutoff` (default: TRACKING_RETENTION_DAYS ago)."""
        if cutoff is None:
            cutoff = _utcnow() - timedelta(days=self.settings.tracking_retention_days)
        with self.get_session() as session:
            deleted = session.query(TrackingTallyModel).filter(
                TrackingTallyModel.last_appended < _naive_utc(cutoff),
            ).delete(synchronize_session=False)
        if deleted:
            logger.info(f"Tracking: purged {deleted} tallies older than {cutoff:%Y-%m-%d}")
        return deleted


# ── Singleton ────────────────────────────────────────────────────────────────

_db: Optional[Database] = None


def get_database() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db
