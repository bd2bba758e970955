"""
SQLite storage: status lookups, record upsert, tally bookkeeping.

Run: pytest test_database.py -v
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

from trustcheck.config import Settings
from trustcheck.database import Database, TrackingTallyModel
from trustcheck.schemas import (
    AccountStatus, CandidateProfile, EntityKind, FlaggedRecord, FlagSource, GroupMembership, TrackingTally,
)

SETTINGS = Settings(_env_file=None, mock_mode=True, max_group_members_track=100)


def with_db(fn):
    def wrapper():
        with tempfile.TemporaryDirectory() as tmp:
            db = Database(f"sqlite:///{os.path.join(tmp, 'test.db')}", settings=SETTINGS)
            db.create_tables()
            try:
                fn(db)
            finally:
                db.engine.dispose()
    wrapper.__name__ = fn.__name__
    return wrapper


# ════════════════════════════════════════════════════════════════════
# Status lookups
# ════════════════════════════════════════════════════════════════════

@with_db
def test_known_bad_groups_are_confirmed_only(db):
    db.mark_groups([1, 2], AccountStatus.CONFIRMED)
    db.mark_groups([3], AccountStatus.FLAGGED)
    db.mark_groups([4], AccountStatus.CLEARED)
    assert asyncio.run(db.match_known_bad_groups([4, 3, 2, 1, 5])) == [2, 1]


@with_db
def test_flagged_or_confirmed_users(db):
    db.mark_users([1], AccountStatus.FLAGGED)
    db.mark_users([2], AccountStatus.CONFIRMED)
    db.mark_users([3], AccountStatus.CLEARED)
    assert asyncio.run(db.match_flagged_or_confirmed([1, 2, 3, 4])) == [1, 2]
    assert asyncio.run(db.match_flagged_or_confirmed([])) == []


@with_db
def test_mark_is_upsert(db):
    db.mark_groups([1], AccountStatus.FLAGGED)
    db.mark_groups([1], AccountStatus.CONFIRMED)
    assert asyncio.run(db.match_known_bad_groups([1])) == [1]
    db.mark_groups([1], AccountStatus.CLEARED)
    assert asyncio.run(db.match_known_bad_groups([1])) == []


# ════════════════════════════════════════════════════════════════════
# Flagged records
# ════════════════════════════════════════════════════════════════════

@with_db
def test_save_and_read_back(db):
    record = FlaggedRecord(
        id=9, name="n", display_name="N", description="d", reason="r",
        flagged_content=["a", "b"], confidence=0.8, source=FlagSource.CONTENT,
        friend_ids=[1, 2], group_ids=[3], flagged_group_ids=[3],
        follower_count=12, thumbnail_url="https://img.test/9.png",
    )
    asyncio.run(db.save_flagged_records([record]))
    loaded = db.get_flagged_records()[0]
    assert loaded.model_dump(exclude={"last_updated"}) == record.model_dump(exclude={"last_updated"})


@with_db
def test_save_is_last_write_wins(db):
    asyncio.run(db.save_flagged_records([FlaggedRecord(id=1, reason="first", confidence=0.3, source=FlagSource.GROUP)]))
    asyncio.run(db.save_flagged_records([FlaggedRecord(id=1, reason="second", confidence=0.9, source=FlagSource.CONTENT)]))
    records = db.get_flagged_records()
    assert len(records) == 1
    assert records[0].reason == "second" and records[0].source == FlagSource.CONTENT


@with_db
def test_user_and_group_with_same_id_kept_apart(db):
    asyncio.run(db.save_flagged_records([
        FlaggedRecord(id=1, kind=EntityKind.USER, reason="u", confidence=0.5, source=FlagSource.FRIEND),
        FlaggedRecord(id=1, kind=EntityKind.GROUP, reason="g", confidence=0.6, source=FlagSource.TRACKING),
    ]))
    assert len(db.get_flagged_records()) == 2
    assert [r.reason for r in db.get_flagged_records(kind=EntityKind.GROUP)] == ["g"]
    assert [r.reason for r in db.get_flagged_records(min_confidence=0.55)] == ["g"]


# ════════════════════════════════════════════════════════════════════
# Tracking tallies
# ════════════════════════════════════════════════════════════════════

@with_db
def test_add_to_tracking_deduplicates(db):
    assert db.add_to_tracking_sync(5, 100)
    assert not db.add_to_tracking_sync(5, 100)
    assert asyncio.run(db.add_to_tracking(5, 101))
    assert db.get_tallies()[5].confirmed_ids == [100, 101]


@with_db
def test_confirmed_group_not_tracked(db):
    db.mark_groups([5], AccountStatus.CONFIRMED)
    assert not db.add_to_tracking_sync(5, 100)
    assert db.get_tallies() == {}


@with_db
def test_track_flagged_memberships_respects_size_limit(db):
    profiles = [
        CandidateProfile(id=1, name="a", groups=[
            GroupMembership(id=10, member_count=50),
            GroupMembership(id=11, member_count=101),
        ]),
        CandidateProfile(id=2, name="b", groups=[GroupMembership(id=10, member_count=50)]),
    ]
    assert asyncio.run(db.track_flagged_memberships(profiles)) == 2
    tallies = db.get_tallies()
    assert list(tallies) == [10]
    assert tallies[10].confirmed_ids == [1, 2]


@with_db
def test_requeue_merges_with_new_ids(db):
    for i in range(3):
        db.add_to_tracking_sync(5, i)
    taken = asyncio.run(db.get_and_clear_qualified_tallies(3))
    db.add_to_tracking_sync(5, 99)

    asyncio.run(db.requeue_tallies(taken))
    assert db.get_tallies()[5].confirmed_ids == [99, 0, 1, 2]


@with_db
def test_purge_old_tallies(db):
    db.add_to_tracking_sync(1, 100)
    db.add_to_tracking_sync(2, 100)
    old = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=45)
    with db.get_session() as session:
        session.get(TrackingTallyModel, (1, EntityKind.GROUP.value)).last_appended = old

    assert db.purge_old_tallies() == 1
    assert list(db.get_tallies()) == [2]
    assert db.purge_old_tallies(cutoff=datetime.now(timezone.utc) + timedelta(seconds=5)) == 1


@with_db
def test_get_and_clear_returns_tally_models(db):
    for i in range(4):
        db.add_to_tracking_sync(8, i)
    tallies = asyncio.run(db.get_and_clear_qualified_tallies(4))
    assert len(tallies) == 1
    assert isinstance(tallies[0], TrackingTally)
    assert tallies[0].kind == EntityKind.GROUP
    assert tallies[0].confirmed_count == 4
