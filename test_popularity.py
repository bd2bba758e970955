"""
Popularity escalation: follower threshold, banner, fail-open lookups.

Run: pytest test_popularity.py -v
"""

import asyncio

from trustcheck.agents.popularity import PopularityEscalation, popularity_banner
from trustcheck.config import Settings
from trustcheck.schemas import EntityKind, FlaggedRecord, FlagSource

SETTINGS = Settings(_env_file=None, mock_mode=True)


class FakeFollowers:
    def __init__(self, counts, failing=()):
        self.counts = counts
        self.failing = set(failing)
        self.calls = []

    async def get_follower_count(self, account_id):
        self.calls.append(account_id)
        if account_id in self.failing:
            raise ConnectionError("friends API down")
        return self.counts.get(account_id, 0)


def record(rid, confidence=0.5, reason="Member of 2 flagged groups"):
    return FlaggedRecord(id=rid, name=f"user{rid}", reason=reason, confidence=confidence, source=FlagSource.GROUP)


def test_popular_account_escalated():
    original = record(1)
    result = asyncio.run(PopularityEscalation(FakeFollowers({1: 1500}), SETTINGS).apply([original]))

    escalated = result[0]
    assert escalated.confidence == 1.0
    assert "1500" in escalated.reason
    assert escalated.reason.startswith(popularity_banner(1500))
    assert escalated.reason.endswith("Member of 2 flagged groups")
    assert escalated.follower_count == 1500
    # Inputs are never mutated
    assert original.confidence == 0.5 and original.reason == "Member of 2 flagged groups"


def test_threshold_is_inclusive():
    result = asyncio.run(PopularityEscalation(FakeFollowers({1: 1000, 2: 999}), SETTINGS).apply(
        [record(1), record(2)]
    ))
    assert result[0].confidence == 1.0
    assert result[1].confidence == 0.5
    assert result[1].reason == "Member of 2 flagged groups"
    assert result[1].follower_count == 999


def test_lookup_failure_treated_as_not_popular():
    followers = FakeFollowers({1: 5000, 2: 5000}, failing={1})
    originals = [record(1), record(2)]
    result = asyncio.run(PopularityEscalation(followers, SETTINGS).apply(originals))

    assert result[0] is originals[0]
    assert result[0].confidence == 0.5 and result[0].follower_count is None
    assert result[1].confidence == 1.0
    assert sorted(followers.calls) == [1, 2]


def test_order_preserved_and_all_looked_up():
    ids = list(range(30))
    followers = FakeFollowers({i: i * 100 for i in ids})
    result = asyncio.run(PopularityEscalation(followers, SETTINGS).apply([record(i) for i in ids]))

    assert [r.id for r in result] == ids
    assert [r.id for r in result if r.confidence == 1.0] == list(range(10, 30))


def test_empty_input():
    followers = FakeFollowers({})
    assert asyncio.run(PopularityEscalation(followers, SETTINGS).apply([])) == []
    assert followers.calls == []


def test_group_records_not_looked_up():
    followers = FakeFollowers({42: 5000})
    group = FlaggedRecord(id=42, kind=EntityKind.GROUP, name="group42", reason="Group has 20 confirmed members",
                          confidence=0.2, source=FlagSource.TRACKING)
    user = record(42, confidence=0.4)

    result = asyncio.run(PopularityEscalation(followers, SETTINGS).apply([group, user]))

    assert result[0] is group
    assert result[0].confidence == 0.2 and result[0].follower_count is None
    assert result[1].kind == EntityKind.USER and result[1].confidence == 1.0
    assert followers.calls == [42]


def test_only_group_records():
    followers = FakeFollowers({1: 5000})
    group = FlaggedRecord(id=1, kind=EntityKind.GROUP, reason="r", confidence=0.3, source=FlagSource.TRACKING)
    assert asyncio.run(PopularityEscalation(followers, SETTINGS).apply([group])) == [group]
    assert followers.calls == []
