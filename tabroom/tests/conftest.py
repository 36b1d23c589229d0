"""
Shared fixtures: a fresh in-memory database per test and a seeded tournament.

Fixtures hand out ids rather than ORM instances. A failed operation rolls the
session back, which expires every loaded instance, so tests keep plain ids.
"""
from types import SimpleNamespace

import pytest_asyncio
from sqlalchemy.pool import StaticPool

from tabroom.database import build_engine, build_sessionmaker, init_db
from tabroom.rbac import resolve_actor
from tabroom.schemas.tournament import (
    AttendeeCreate, LocationCreate, PhaseCreate, RoomCreate, RoundCreate, TeamCreate, TournamentCreate
)
from tabroom.services import participant_service, structure_service, tournament_service, venue_service

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = build_sessionmaker(engine)
    async with session_factory() as session:
        yield session


async def advance(db, actor, kind, entity_id, *statuses):
    for status in statuses:
        await structure_service.transition_status(kind, entity_id, status, actor, db)


@pytest_asyncio.fixture
async def world(db):
    """
    One tournament with an organizer, four teams of two speakers, six judges,
    two marshals, one location with four rooms, a group phase (group_size=2)
    and a first round in DRAFT.
    """
    organizer = await tournament_service.create_user("organizer", db)
    tournament = await tournament_service.create_tournament(
        TournamentCreate(full_name="Spring Open 2026", shortened_name="SO26"),
        organizer.id,
        db,
    )
    actor = await resolve_actor(db, organizer.id, tournament.id)

    team_ids = []
    attendee_ids = {}
    for i in range(4):
        team = await participant_service.create_team(
            tournament.id,
            TeamCreate(full_name=f"Team {chr(65 + i)}", shortened_name=f"T{chr(65 + i)}"),
            actor,
            db,
        )
        team_ids.append(team.id)
        attendee_ids[team.id] = []
        for position in (1, 2):
            attendee = await participant_service.create_attendee(
                team.id,
                AttendeeCreate(name=f"Speaker {chr(65 + i)}{position}", position=position),
                actor,
                db,
            )
            attendee_ids[team.id].append(attendee.id)

    judge_ids = [(await tournament_service.create_user(f"judge{i}", db)).id for i in range(6)]
    marshal_ids = [(await tournament_service.create_user(f"marshal{i}", db)).id for i in range(2)]

    location = await venue_service.create_location(tournament.id, LocationCreate(name="Main Hall"), actor, db)
    room_ids = [
        (await venue_service.create_room(location.id, RoomCreate(name=f"Room {i}"), actor, db)).id
        for i in range(4)
    ]

    phase = await structure_service.create_phase(
        tournament.id, PhaseCreate(name="Group Stage", group_size=2), actor, db
    )
    round_obj = await structure_service.create_round(phase.id, RoundCreate(name="Round 1"), actor, db)

    return SimpleNamespace(
        organizer_id=organizer.id,
        tournament_id=tournament.id,
        actor=actor,
        team_ids=team_ids,
        attendee_ids=attendee_ids,
        judge_ids=judge_ids,
        marshal_ids=marshal_ids,
        location_id=location.id,
        room_ids=room_ids,
        phase_id=phase.id,
        round_id=round_obj.id,
    )
