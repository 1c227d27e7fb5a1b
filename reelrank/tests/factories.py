"""
Row builders shared by the service tests.

Everything here flushes but never commits, so callers decide where the
transaction ends.
"""

from datetime import timedelta

from reelrank.database.models import (
    Catch,
    Competition,
    CompetitionParticipant,
    FishSpecies,
    Friendship,
    FriendshipStatus,
    Location,
    User,
)
from reelrank.services.points_service import compute_points
from reelrank.utils.datetime_utils import utcnow


async def create_user(session, username, state=None, display_name=None):
    """Helper: create a user, return its id."""
    user = User(username=username, display_name=display_name, state=state)
    session.add(user)
    await session.flush()
    return user.id


async def create_species(session, common_name="Largemouth Bass"):
    """Helper: create a fish species, return its id."""
    species = FishSpecies(common_name=common_name)
    session.add(species)
    await session.flush()
    return species.id


async def create_location(session, name="Lake Fork", latitude=32.8, longitude=-95.6, state="TX"):
    """Helper: create a location, return its id."""
    location = Location(name=name, latitude=latitude, longitude=longitude, state=state)
    session.add(location)
    await session.flush()
    return location.id


async def add_catch(session, user_id, species_id, caught_at, weight=None, length=None, points=None):
    """Helper: insert a catch row directly, return it.

    Points default to what the scoring rules award for the measurements.
    """
    if points is None:
        points = compute_points(weight=weight, length=length, caught_at=caught_at).points
    catch = Catch(
        user_id=user_id,
        fish_species_id=species_id,
        weight=weight,
        length=length,
        caught_at=caught_at,
        points=points,
    )
    session.add(catch)
    await session.flush()
    return catch


async def add_competition(
    session,
    creator_id,
    metric="points",
    status="active",
    start_date=None,
    end_date=None,
    target_species_id=None,
    type="weekly",
    name="Test Competition",
    max_participants=None,
    is_public=True,
):
    """Helper: insert a competition row directly (no auto-join), return it."""
    now = utcnow()
    competition = Competition(
        creator_id=creator_id,
        name=name,
        type=type,
        metric=metric,
        target_species_id=target_species_id,
        start_date=start_date or now - timedelta(days=1),
        end_date=end_date or now + timedelta(days=6),
        status=status,
        is_public=is_public,
        max_participants=max_participants,
    )
    session.add(competition)
    await session.flush()
    return competition


async def add_participant(session, competition_id, user_id, joined_at=None):
    """Helper: enroll a user directly, return the participant row."""
    participant = CompetitionParticipant(
        competition_id=competition_id,
        user_id=user_id,
        score=0.0,
        catch_count=0,
        joined_at=joined_at or utcnow(),
    )
    session.add(participant)
    await session.flush()
    return participant


async def make_friends(session, user_id, friend_id):
    """Helper: create an accepted friendship."""
    session.add(
        Friendship(user_id=user_id, friend_id=friend_id, status=FriendshipStatus.ACCEPTED.value)
    )
    await session.flush()
