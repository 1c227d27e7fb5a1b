"""
Tests for catch logging and the rescoring that follows every catch write.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import select

from reelrank.database.models import LeaderboardCache, ScoreRecomputeJob, TackleItem
from reelrank.services import catch_service, competition_service, score_service, weather_service
from reelrank.services.weather_service import WeatherData
from reelrank.tests.factories import (
    add_competition,
    add_participant,
    create_location,
    create_species,
    create_user,
)
from reelrank.utils.datetime_utils import utcnow
from reelrank.utils.exceptions import CatchNotFoundError, NotCatchOwnerError, ValidationError


@pytest_asyncio.fixture
async def setup(db_session):
    """An angler enrolled in an active weight competition."""
    alice = await create_user(db_session, "alice", state="TX")
    bob = await create_user(db_session, "bob")
    bass = await create_species(db_session, "Largemouth Bass")
    trout = await create_species(db_session, "Rainbow Trout")
    competition = await add_competition(db_session, alice, metric="weight")
    await add_participant(db_session, competition.id, alice)
    await db_session.commit()
    return {
        "alice": alice,
        "bob": bob,
        "bass": bass,
        "trout": trout,
        "competition_id": competition.id,
    }


async def _standing(db_session, setup, user="alice"):
    return await competition_service.get_user_competition_rank(
        db_session, setup["competition_id"], setup[user]
    )


async def _global_row(db_session, user_id):
    result = await db_session.execute(
        select(LeaderboardCache)
        .where(LeaderboardCache.user_id == user_id, LeaderboardCache.state == "")
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ──────────────────────────────────────────────────────────────
# Create
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_points_are_computed_server_side(db_session, setup):
    caught_at = datetime(2026, 6, 1, 6, 30, tzinfo=pytz.UTC)
    result = await catch_service.create_catch(
        db_session,
        setup["alice"],
        {"fish_species_id": setup["bass"], "weight": 8, "caught_at": caught_at, "points": 999},
    )

    assert result["points"] == 55
    assert result["bonuses"] == ["Size bonus: +40", "Time bonus: +5"]
    assert result["caught_at"] == "2026-06-01T06:30:00+00:00"


@pytest.mark.asyncio
async def test_create_catch_updates_competition_and_leaderboard(db_session, setup):
    await catch_service.create_catch(
        db_session,
        setup["alice"],
        {"fish_species_id": setup["bass"], "weight": 4.2, "caught_at": utcnow() - timedelta(hours=1)},
    )

    standing = await _standing(db_session, setup)
    assert standing["score"] == 4.2
    assert standing["catch_count"] == 1
    assert standing["rank"] == 1

    row = await _global_row(db_session, setup["alice"])
    assert row.total_catches == 1
    assert row.biggest_fish_weight == 4.2


@pytest.mark.asyncio
async def test_catch_outside_window_does_not_score(db_session, setup):
    await catch_service.create_catch(
        db_session,
        setup["alice"],
        {"fish_species_id": setup["bass"], "weight": 4.2, "caught_at": utcnow() - timedelta(days=30)},
    )

    standing = await _standing(db_session, setup)
    assert standing["catch_count"] == 0
    assert standing["rank"] is None

    # The leaderboard counts every catch
    row = await _global_row(db_session, setup["alice"])
    assert row.total_catches == 1


@pytest.mark.asyncio
async def test_caught_at_defaults_to_now(db_session, setup):
    result = await catch_service.create_catch(db_session, setup["alice"], {"fish_species_id": setup["bass"]})
    assert result["caught_at"] is not None
    assert result["points"] >= 10


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data,message",
    [
        ({"weight": 0}, "Weight must be between 0 and 1000"),
        ({"weight": 1000}, "Weight must be between 0 and 1000"),
        ({"length": -3}, "Length must be between 0 and 200"),
        ({"length": 200}, "Length must be between 0 and 200"),
        ({"fish_species_id": None}, "Fish species is required"),
        ({"fish_species_id": 999}, "Fish species 999 not found"),
        ({"location_id": 999}, "Location 999 not found"),
    ],
)
async def test_create_catch_validation(db_session, setup, data, message):
    payload = {"fish_species_id": setup["bass"], **data}
    with pytest.raises(ValidationError, match=message):
        await catch_service.create_catch(db_session, setup["alice"], payload)


@pytest.mark.asyncio
async def test_tackle_item_must_belong_to_angler(db_session, setup):
    item = TackleItem(user_id=setup["bob"], name="Bob's Crankbait")
    db_session.add(item)
    await db_session.flush()

    with pytest.raises(ValidationError, match=f"Tackle item {item.id} not found"):
        await catch_service.create_catch(
            db_session, setup["alice"], {"fish_species_id": setup["bass"], "tackle_item_id": item.id}
        )


@pytest.mark.asyncio
async def test_weather_snapshot_is_stored(db_session, setup, monkeypatch):
    async def fake_weather(latitude, longitude):
        return WeatherData(temperature=72.5, pressure=30.1, humidity=60, conditions="Clear")

    monkeypatch.setattr(weather_service, "get_weather_data", fake_weather)
    location_id = await create_location(db_session)

    result = await catch_service.create_catch(
        db_session, setup["alice"], {"fish_species_id": setup["bass"], "location_id": location_id}
    )

    assert result["weather"]["temperature"] == 72.5
    assert result["weather"]["conditions"] == "Clear"


@pytest.mark.asyncio
async def test_missing_weather_does_not_block_catch(db_session, setup):
    location_id = await create_location(db_session)
    result = await catch_service.create_catch(
        db_session, setup["alice"], {"fish_species_id": setup["bass"], "location_id": location_id}
    )
    assert result["weather"] is None


@pytest.mark.asyncio
async def test_failed_recompute_is_queued(db_session, setup, monkeypatch):
    async def failing_recompute(*args, **kwargs):
        raise RuntimeError("database hiccup")

    monkeypatch.setattr(score_service, "recompute_participant", failing_recompute)

    result = await catch_service.create_catch(
        db_session,
        setup["alice"],
        {"fish_species_id": setup["bass"], "weight": 3, "caught_at": utcnow() - timedelta(hours=1)},
    )
    assert result["id"] > 0

    jobs = await db_session.execute(select(ScoreRecomputeJob))
    job = jobs.scalar_one()
    assert job.job_type == "participant"
    assert job.competition_id == setup["competition_id"]
    assert job.user_id == setup["alice"]

    # The leaderboard refresh still ran
    row = await _global_row(db_session, setup["alice"])
    assert row.total_catches == 1


# ──────────────────────────────────────────────────────────────
# Update / delete
# ──────────────────────────────────────────────────────────────


async def _log(db_session, setup, **data):
    payload = {"fish_species_id": setup["bass"], "caught_at": utcnow() - timedelta(hours=1), **data}
    return await catch_service.create_catch(db_session, setup["alice"], payload)


@pytest.mark.asyncio
async def test_update_rescores_points_and_competition(db_session, setup):
    catch = await _log(db_session, setup, weight=2)

    updated = await catch_service.update_catch(db_session, catch["id"], setup["alice"], {"weight": 9.5})

    assert updated["weight"] == 9.5
    assert updated["points"] == catch["points"] + 37  # size bonus 10 -> 47
    standing = await _standing(db_session, setup)
    assert standing["score"] == 9.5


@pytest.mark.asyncio
async def test_moving_catch_out_of_window_rescoring(db_session, setup):
    catch = await _log(db_session, setup, weight=6)
    assert (await _standing(db_session, setup))["score"] == 6.0

    await catch_service.update_catch(
        db_session, catch["id"], setup["alice"], {"caught_at": utcnow() - timedelta(days=40)}
    )

    standing = await _standing(db_session, setup)
    assert standing["score"] == 0.0
    assert standing["catch_count"] == 0
    assert standing["rank"] is None


@pytest.mark.asyncio
async def test_changing_species_keeps_points(db_session, setup):
    catch = await _log(db_session, setup, weight=6)
    updated = await catch_service.update_catch(
        db_session, catch["id"], setup["alice"], {"fish_species_id": setup["trout"], "notes": "Released"}
    )
    assert updated["fish_species_id"] == setup["trout"]
    assert updated["points"] == catch["points"]
    assert updated["notes"] == "Released"


@pytest.mark.asyncio
async def test_update_requires_owner(db_session, setup):
    catch = await _log(db_session, setup, weight=2)
    with pytest.raises(NotCatchOwnerError):
        await catch_service.update_catch(db_session, catch["id"], setup["bob"], {"weight": 3})


@pytest.mark.asyncio
async def test_update_validates_bounds(db_session, setup):
    catch = await _log(db_session, setup, weight=2)
    with pytest.raises(ValidationError):
        await catch_service.update_catch(db_session, catch["id"], setup["alice"], {"weight": 1500})


@pytest.mark.asyncio
async def test_future_caught_at_is_rejected(db_session, setup):
    tomorrow = utcnow() + timedelta(days=1)
    with pytest.raises(ValidationError, match="Catch time cannot be in the future"):
        await catch_service.create_catch(
            db_session, setup["alice"], {"fish_species_id": setup["bass"], "caught_at": tomorrow}
        )

    catch = await _log(db_session, setup, weight=2)
    with pytest.raises(ValidationError, match="Catch time cannot be in the future"):
        await catch_service.update_catch(db_session, catch["id"], setup["alice"], {"caught_at": tomorrow})

    stored = await catch_service.get_catch(db_session, catch["id"])
    assert stored["caught_at"] == catch["caught_at"]


@pytest.mark.asyncio
async def test_update_unknown_catch(db_session, setup):
    with pytest.raises(CatchNotFoundError, match="Catch 404 not found"):
        await catch_service.update_catch(db_session, 404, setup["alice"], {"weight": 3})


@pytest.mark.asyncio
async def test_delete_catch_rescoring(db_session, setup):
    first = await _log(db_session, setup, weight=6)
    await _log(db_session, setup, weight=3)

    await catch_service.delete_catch(db_session, first["id"], setup["alice"])

    standing = await _standing(db_session, setup)
    assert standing["score"] == 3.0
    assert standing["catch_count"] == 1
    row = await _global_row(db_session, setup["alice"])
    assert row.total_catches == 1
    assert row.biggest_fish_weight == 3

    with pytest.raises(CatchNotFoundError):
        await catch_service.get_catch(db_session, first["id"])


@pytest.mark.asyncio
async def test_delete_requires_owner(db_session, setup):
    catch = await _log(db_session, setup, weight=2)
    with pytest.raises(NotCatchOwnerError):
        await catch_service.delete_catch(db_session, catch["id"], setup["bob"])


# ──────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_catches_newest_first(db_session, setup):
    now = utcnow()
    older = await _log(db_session, setup, weight=1, caught_at=now - timedelta(hours=3))
    newer = await _log(db_session, setup, weight=2, caught_at=now - timedelta(hours=2))
    trout = await _log(db_session, setup, weight=3, fish_species_id=setup["trout"], caught_at=now - timedelta(hours=4))

    catches = await catch_service.get_catches(db_session, setup["alice"])
    assert [c["id"] for c in catches] == [newer["id"], older["id"], trout["id"]]

    trout_only = await catch_service.get_catches(db_session, setup["alice"], fish_species_id=setup["trout"])
    assert [c["id"] for c in trout_only] == [trout["id"]]

    assert await catch_service.get_catches(db_session, setup["bob"]) == []


@pytest.mark.asyncio
async def test_affected_competitions(db_session, setup):
    now = utcnow()
    ids = await catch_service.get_affected_competition_ids(
        db_session, setup["alice"], [now, now - timedelta(days=60), None]
    )
    assert ids == [setup["competition_id"]]
    assert await catch_service.get_affected_competition_ids(db_session, setup["bob"], [now]) == []


@pytest.mark.asyncio
async def test_naive_caught_at_is_stored_as_scoring_time(db_session, setup, monkeypatch):
    monkeypatch.setattr(catch_service, "SCORING_TIMEZONE", "America/Chicago")

    result = await catch_service.create_catch(
        db_session,
        setup["alice"],
        {"fish_species_id": setup["bass"], "weight": 2, "caught_at": datetime(2026, 6, 1, 6, 30)},
    )

    # 06:30 CDT is 11:30 UTC, still a prime-time catch in Chicago
    assert result["caught_at"] == "2026-06-01T11:30:00+00:00"
    assert result["bonuses"] == ["Size bonus: +10", "Time bonus: +5"]
