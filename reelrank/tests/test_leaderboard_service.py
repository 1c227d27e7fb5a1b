"""
Tests for the global, state and friends leaderboards and the cache behind them.
"""

from datetime import datetime

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import select

from reelrank.database.models import LeaderboardCache, User
from reelrank.services import leaderboard_service
from reelrank.tests.factories import add_catch, create_species, create_user, make_friends


def at(day, hour=12):
    return datetime(2026, 5, day, hour, tzinfo=pytz.UTC)


@pytest_asyncio.fixture
async def anglers(db_session):
    """Three Texas/Oklahoma anglers with catches and one without any."""
    alice = await create_user(db_session, "alice", state="TX")
    bob = await create_user(db_session, "bob", state="TX")
    carol = await create_user(db_session, "carol", state="OK")
    dave = await create_user(db_session, "dave", state="TX")
    bass = await create_species(db_session)

    # alice: 55 + 34 = 89 points, 2 catches, heaviest 8
    await add_catch(db_session, alice, bass, at(1, 6), weight=8)
    await add_catch(db_session, alice, bass, at(2), length=12)
    # bob: 60 points, 1 catch, heaviest 12
    await add_catch(db_session, bob, bass, at(3), weight=12)
    # carol: 3 catches, 30 points
    for day in (4, 5, 6):
        await add_catch(db_session, carol, bass, at(day), points=10)

    for user_id in (alice, bob, carol, dave):
        await leaderboard_service.refresh_user_leaderboard(db_session, user_id)
    return {"alice": alice, "bob": bob, "carol": carol, "dave": dave, "bass": bass}


async def _cache_rows(db_session, user_id):
    result = await db_session.execute(
        select(LeaderboardCache)
        .where(LeaderboardCache.user_id == user_id)
        .order_by(LeaderboardCache.state)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_refresh_writes_global_and_state_rows(db_session, anglers):
    rows = await _cache_rows(db_session, anglers["alice"])

    assert [r.state for r in rows] == ["", "TX"]
    for row in rows:
        assert row.total_catches == 2
        assert row.total_points == 89
        assert row.biggest_fish_weight == 8
        assert row.biggest_fish_length == 12


@pytest.mark.asyncio
async def test_refresh_returns_totals(db_session, anglers):
    totals = await leaderboard_service.refresh_user_leaderboard(db_session, anglers["bob"])
    assert totals["total_catches"] == 1
    assert totals["total_points"] == 60


@pytest.mark.asyncio
async def test_user_without_catches_has_zero_row(db_session, anglers):
    rows = await _cache_rows(db_session, anglers["dave"])
    assert [(r.state, r.total_catches, r.total_points) for r in rows] == [("", 0, 0), ("TX", 0, 0)]


@pytest.mark.asyncio
async def test_state_change_moves_partition(db_session, anglers):
    user = await db_session.get(User, anglers["alice"])
    user.state = "LA"
    await db_session.flush()

    await leaderboard_service.refresh_user_leaderboard(db_session, anglers["alice"])

    rows = await _cache_rows(db_session, anglers["alice"])
    assert [r.state for r in rows] == ["", "LA"]


@pytest.mark.asyncio
async def test_global_leaderboard_by_points(db_session, anglers):
    board = await leaderboard_service.get_leaderboard(db_session)

    assert [(e["user_id"], e["rank"]) for e in board] == [
        (anglers["alice"], 1),
        (anglers["bob"], 2),
        (anglers["carol"], 3),
    ]
    assert board[0]["username"] == "alice"
    assert board[0]["total_points"] == 89


@pytest.mark.asyncio
async def test_state_leaderboard(db_session, anglers):
    board = await leaderboard_service.get_leaderboard(db_session, state="OK")
    assert [e["user_id"] for e in board] == [anglers["carol"]]

    board = await leaderboard_service.get_leaderboard(db_session, state="TX")
    assert [e["user_id"] for e in board] == [anglers["alice"], anglers["bob"]]


@pytest.mark.asyncio
async def test_leaderboard_by_other_metrics(db_session, anglers):
    by_catches = await leaderboard_service.get_leaderboard(db_session, metric="catches")
    assert [e["user_id"] for e in by_catches] == [anglers["carol"], anglers["alice"], anglers["bob"]]

    by_weight = await leaderboard_service.get_leaderboard(db_session, metric="weight")
    assert [(e["user_id"], e["rank"]) for e in by_weight] == [
        (anglers["bob"], 1),
        (anglers["alice"], 2),
        (anglers["carol"], 3),
    ]


@pytest.mark.asyncio
async def test_leaderboard_limit(db_session, anglers):
    board = await leaderboard_service.get_leaderboard(db_session, limit=2)
    assert len(board) == 2


@pytest.mark.asyncio
async def test_ties_break_on_first_catch(db_session, anglers):
    """Equal points: the angler whose first catch came earlier ranks first."""
    early = await create_user(db_session, "early_bird", state="OK")
    await add_catch(db_session, early, anglers["bass"], at(1, 1), points=30)
    await leaderboard_service.refresh_user_leaderboard(db_session, early)

    board = await leaderboard_service.get_leaderboard(db_session, state="OK")
    assert [(e["user_id"], e["rank"]) for e in board] == [(early, 1), (anglers["carol"], 1)]


@pytest.mark.asyncio
async def test_friends_leaderboard_reranks_subset(db_session, anglers):
    await make_friends(db_session, anglers["bob"], anglers["carol"])

    board = await leaderboard_service.get_friends_leaderboard(db_session, anglers["bob"])

    assert [(e["user_id"], e["rank"]) for e in board] == [(anglers["bob"], 1), (anglers["carol"], 2)]


@pytest.mark.asyncio
async def test_friends_leaderboard_without_friends(db_session, anglers):
    board = await leaderboard_service.get_friends_leaderboard(db_session, anglers["carol"])
    assert [e["user_id"] for e in board] == [anglers["carol"]]


@pytest.mark.asyncio
async def test_get_user_rank(db_session, anglers):
    rank = await leaderboard_service.get_user_rank(db_session, anglers["bob"])
    assert rank == {
        "user_id": anglers["bob"],
        "state": "",
        "rank": 2,
        "total_points": 60,
        "total_catches": 1,
    }

    state_rank = await leaderboard_service.get_user_rank(db_session, anglers["bob"], state="TX")
    assert state_rank["rank"] == 2

    # Cached but without catches: present, unranked
    dave = await leaderboard_service.get_user_rank(db_session, anglers["dave"])
    assert dave["rank"] is None

    assert await leaderboard_service.get_user_rank(db_session, anglers["carol"], state="TX") is None


@pytest.mark.asyncio
async def test_refresh_sees_new_catches(db_session, anglers):
    await add_catch(db_session, anglers["carol"], anglers["bass"], at(7), points=65)
    await leaderboard_service.refresh_user_leaderboard(db_session, anglers["carol"])

    board = await leaderboard_service.get_leaderboard(db_session)
    assert board[0]["user_id"] == anglers["carol"]
    assert board[0]["total_points"] == 95


@pytest.mark.asyncio
async def test_rebuild_matches_incremental_refresh(db_session, anglers):
    before = await leaderboard_service.get_leaderboard(db_session)

    await db_session.execute(LeaderboardCache.__table__.delete())
    result = await leaderboard_service.rebuild_leaderboard_cache(db_session)

    assert result == {"user_count": 4, "row_count": 8}
    after = await leaderboard_service.get_leaderboard(db_session)
    assert after == before


@pytest.mark.asyncio
async def test_rebuild_stores_points_rank_and_drops_stale_rows(db_session, anglers):
    user = await db_session.get(User, anglers["carol"])
    user.state = None
    await db_session.flush()

    await leaderboard_service.rebuild_leaderboard_cache(db_session)

    carol_rows = await _cache_rows(db_session, anglers["carol"])
    assert [r.state for r in carol_rows] == [""]
    assert carol_rows[0].rank == 3

    alice_rows = await _cache_rows(db_session, anglers["alice"])
    assert [r.rank for r in alice_rows] == [1, 1]
    dave_rows = await _cache_rows(db_session, anglers["dave"])
    assert [r.rank for r in dave_rows] == [None, None]
