"""
Tests for standard competition ranking.
"""

from datetime import datetime, timedelta

import pytest
import pytz

from reelrank.services import ranking_service
from reelrank.services.ranking_service import (
    RankEntry,
    assign_ranks,
    rank_entries,
    timestamp_tiebreak,
)
from reelrank.tests.factories import add_competition, add_participant, create_user
from reelrank.utils.datetime_utils import utcnow


def test_ties_share_rank_and_skip_positions():
    entries = [
        RankEntry(key="a", score=100),
        RankEntry(key="b", score=80),
        RankEntry(key="c", score=100),
        RankEntry(key="d", score=50),
    ]
    ranked = rank_entries(entries)
    assert [r.rank for r in ranked] == [1, 1, 3, 4]
    assert [r.key for r in ranked][2:] == ["b", "d"]


def test_all_tied():
    ranked = rank_entries([RankEntry(key=i, score=7) for i in range(3)])
    assert [r.rank for r in ranked] == [1, 1, 1]


def test_tiebreak_orders_equal_scores():
    early = datetime(2026, 1, 1, tzinfo=pytz.UTC)
    late = early + timedelta(hours=1)
    entries = [
        RankEntry(key="late", score=10, tiebreak=timestamp_tiebreak(late, 1)),
        RankEntry(key="early", score=10, tiebreak=timestamp_tiebreak(early, 2)),
    ]
    ranked = rank_entries(entries)
    assert [r.key for r in ranked] == ["early", "late"]
    assert [r.rank for r in ranked] == [1, 1]


def test_missing_timestamp_sorts_last():
    early = datetime(2026, 1, 1)
    entries = [
        RankEntry(key="none", score=5, tiebreak=timestamp_tiebreak(None, 1)),
        RankEntry(key="naive", score=5, tiebreak=timestamp_tiebreak(early, 2)),
    ]
    assert [r.key for r in rank_entries(entries)] == ["naive", "none"]


def test_zero_activity_is_unranked():
    entries = [
        RankEntry(key="a", score=0, activity=0),
        RankEntry(key="b", score=3, activity=1),
        RankEntry(key="c", score=0, activity=2),
    ]
    ranked = rank_entries(entries)
    assert [r.key for r in ranked] == ["b", "c"]

    ranks = assign_ranks(entries)
    assert ranks == {"a": None, "b": 1, "c": 2}


def test_ranking_is_deterministic():
    entries = [RankEntry(key=i, score=i % 3, tiebreak=(i,)) for i in range(10)]
    first = [(r.key, r.rank) for r in rank_entries(entries)]
    second = [(r.key, r.rank) for r in rank_entries(list(reversed(entries)))]
    assert first == second


@pytest.mark.asyncio
async def test_rank_competition_stores_ranks(db_session):
    """Participants get stored ranks; zero-catch participants stay unranked."""
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    carol = await create_user(db_session, "carol")
    competition = await add_competition(db_session, alice)

    now = utcnow()
    p_alice = await add_participant(db_session, competition.id, alice, joined_at=now - timedelta(hours=2))
    p_bob = await add_participant(db_session, competition.id, bob, joined_at=now - timedelta(hours=1))
    p_carol = await add_participant(db_session, competition.id, carol, joined_at=now)

    p_alice.score, p_alice.catch_count = 40.0, 2
    p_bob.score, p_bob.catch_count = 40.0, 1
    p_carol.score, p_carol.catch_count = 0.0, 0
    await db_session.flush()

    ranked = await ranking_service.rank_competition(db_session, competition.id)

    assert [p.user_id for p in ranked] == [alice, bob]
    assert p_alice.rank == 1
    assert p_bob.rank == 1
    assert p_carol.rank is None
