"""
Registry tests: users, tournaments, roles, participants, venues and motions.
"""
import uuid

import pytest
from sqlalchemy import func, select

from tabroom.core.entity_store import find_entity
from tabroom.errors import ConflictError, ErrorCode, ForbiddenError, NotFoundError, ValidationError
from tabroom.orm.location import Room
from tabroom.orm.motion import Motion
from tabroom.orm.roles import Affiliation, TournamentRole
from tabroom.orm.team import Attendee, Team
from tabroom.rbac import Actor, Permission, Role, parse_roles, require_permission, resolve_actor
from tabroom.schemas.draw import DrawRequest
from tabroom.schemas.tournament import (
    AttendeeCreate, AttendeeUpdate, LocationCreate, LocationUpdate, MotionCreate, MotionUpdate, RoomCreate,
    RoomUpdate, TeamCreate, TeamUpdate, TournamentCreate, TournamentTimingUpdate
)
from tabroom.services import draw_service, participant_service, tournament_service, venue_service


# =============================================================================
# Role Matrix
# =============================================================================

class TestRoleMatrix:

    def test_organizer_can_write_structure(self):
        actor = Actor(user_id=uuid.uuid4(), tournament_id=uuid.uuid4(), roles=frozenset({Role.ORGANIZER}))
        assert actor.can(Permission.WRITE_STRUCTURE)
        assert actor.can(Permission.SUBMIT_VERDICT)
        assert not actor.can(Permission.SUBMIT_OWN_VERDICT)

    def test_coordinator_only_draws(self):
        actor = Actor(
            user_id=uuid.uuid4(),
            tournament_id=uuid.uuid4(),
            roles=frozenset({Role.ADJUDICATION_COORDINATOR}),
        )
        assert actor.can(Permission.WRITE_DRAW)
        assert not actor.can(Permission.WRITE_STRUCTURE)
        assert not actor.can(Permission.OVERRIDE_STATUS)

    def test_roles_combine(self):
        actor = Actor(
            user_id=uuid.uuid4(),
            tournament_id=uuid.uuid4(),
            roles=frozenset({Role.JUDGE, Role.ADJUDICATION_COORDINATOR}),
        )
        assert actor.permissions() == frozenset({
            Permission.READ_TOURNAMENT,
            Permission.WRITE_DRAW,
            Permission.SUBMIT_OWN_VERDICT,
        })

    def test_admin_holds_everything(self):
        actor = Actor(user_id=uuid.uuid4(), tournament_id=uuid.uuid4(), roles=frozenset({Role.ADMIN}))
        assert all(actor.can(p) for p in Permission)

    def test_parse_roles_rejects_unknown_tags(self):
        assert parse_roles(["judge", "marshal"]) == frozenset({Role.JUDGE, Role.MARSHAL})
        assert parse_roles(None) == frozenset()
        with pytest.raises(ValidationError):
            parse_roles(["judge", "overlord"])

    def test_require_permission_checks_scope_first(self):
        actor = Actor(user_id=uuid.uuid4(), tournament_id=uuid.uuid4(), roles=frozenset({Role.ADMIN}))
        with pytest.raises(ForbiddenError) as exc:
            require_permission(actor, Permission.READ_TOURNAMENT, uuid.uuid4())
        assert exc.value.code == ErrorCode.SCOPE_VIOLATION


# =============================================================================
# Users and Tournaments
# =============================================================================

async def test_duplicate_handle_rejected(db):
    await tournament_service.create_user("alice", db)
    with pytest.raises(ValidationError) as exc:
        await tournament_service.create_user("alice", db)
    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY


async def test_blank_handle_rejected(db):
    with pytest.raises(ValidationError):
        await tournament_service.create_user("   ", db)


async def test_creator_becomes_organizer(db):
    user = await tournament_service.create_user("founder", db)
    user_id = user.id
    tournament = await tournament_service.create_tournament(
        TournamentCreate(full_name="Winter Invitational", shortened_name="WI"), user_id, db
    )

    actor = await resolve_actor(db, user_id, tournament.id)
    assert actor.roles == frozenset({Role.ORGANIZER})
    assert tournament.speech_time == 300
    assert tournament.debate_preparation_time == 15


async def test_tournament_requires_existing_creator(db):
    with pytest.raises(NotFoundError):
        await tournament_service.create_tournament(
            TournamentCreate(full_name="Ghost Cup", shortened_name="GC"), uuid.uuid4(), db
        )


async def test_duplicate_tournament_name_rejected(db, world):
    with pytest.raises(ValidationError):
        await tournament_service.create_tournament(
            TournamentCreate(full_name="Spring Open 2026", shortened_name="SO"), world.organizer_id, db
        )


async def test_update_timing_is_partial(db, world):
    tournament = await tournament_service.update_tournament_timing(
        world.tournament_id, TournamentTimingUpdate(speech_time=420, beep_on_speech_end=False), world.actor, db
    )
    assert tournament.speech_time == 420
    assert tournament.beep_on_speech_end is False
    assert tournament.ad_vocem_time == 60


async def test_update_timing_requires_permission(db, world):
    judge = await resolve_actor(db, world.judge_ids[0], world.tournament_id)
    with pytest.raises(ForbiddenError):
        await tournament_service.update_tournament_timing(
            world.tournament_id, TournamentTimingUpdate(speech_time=1), judge, db
        )


# =============================================================================
# Role Assignment
# =============================================================================

async def test_assign_and_replace_roles(db, world):
    user_id = world.judge_ids[0]
    await tournament_service.assign_roles(world.tournament_id, user_id, ["marshal", "judge"], world.actor, db)
    actor = await resolve_actor(db, user_id, world.tournament_id)
    assert actor.roles == frozenset({Role.JUDGE, Role.MARSHAL})

    await tournament_service.assign_roles(world.tournament_id, user_id, ["judge"], world.actor, db)
    actor = await resolve_actor(db, user_id, world.tournament_id)
    assert actor.roles == frozenset({Role.JUDGE})

    result = await db.execute(
        select(TournamentRole.roles).where(
            TournamentRole.user_id == user_id,
            TournamentRole.tournament_id == world.tournament_id
        )
    )
    assert result.scalar_one() == ["judge"]


async def test_assign_unknown_role_rejected(db, world):
    with pytest.raises(ValidationError):
        await tournament_service.assign_roles(world.tournament_id, world.judge_ids[0], ["emperor"], world.actor, db)


async def test_only_role_managers_assign_roles(db, world):
    await tournament_service.assign_roles(world.tournament_id, world.judge_ids[0], ["judge"], world.actor, db)
    judge = await resolve_actor(db, world.judge_ids[0], world.tournament_id)
    with pytest.raises(ForbiddenError):
        await tournament_service.assign_roles(world.tournament_id, world.judge_ids[0], ["organizer"], judge, db)


# =============================================================================
# Teams and Attendees
# =============================================================================

async def test_duplicate_team_name_rejected(db, world):
    with pytest.raises(ValidationError):
        await participant_service.create_team(
            world.tournament_id, TeamCreate(full_name="Team A", shortened_name="TA2"), world.actor, db
        )


async def test_attendee_position_unique_within_team(db, world):
    team_id = world.team_ids[0]
    with pytest.raises(ValidationError) as exc:
        await participant_service.create_attendee(
            team_id, AttendeeCreate(name="Latecomer", position=1), world.actor, db
        )
    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY

    attendee = await participant_service.create_attendee(
        world.team_ids[1], AttendeeCreate(name="Reserve", position=3), world.actor, db
    )
    assert attendee.position == 3


async def test_detach_attendee_frees_position(db, world):
    team_id = world.team_ids[0]
    speaker_id = world.attendee_ids[team_id][0]

    detached = await participant_service.detach_attendee(speaker_id, world.actor, db)
    assert detached.team_id is None
    assert detached.position is None

    replacement = await participant_service.create_attendee(
        team_id, AttendeeCreate(name="Replacement", position=1), world.actor, db
    )
    result = await db.execute(select(Attendee.id).where(Attendee.team_id == team_id, Attendee.position == 1))
    assert result.scalar_one() == replacement.id


async def test_affiliation_scope_and_uniqueness(db, world):
    await participant_service.create_affiliation(
        world.tournament_id, world.team_ids[0], world.judge_ids[0], world.actor, db
    )
    with pytest.raises(ValidationError):
        await participant_service.create_affiliation(
            world.tournament_id, world.team_ids[0], world.judge_ids[0], world.actor, db
        )


# =============================================================================
# Venues and Motions
# =============================================================================

async def test_duplicate_room_name_rejected(db, world):
    with pytest.raises(ValidationError):
        await venue_service.create_room(world.location_id, RoomCreate(name="Room 0"), world.actor, db)


async def test_new_room_is_free(db, world):
    room = await venue_service.create_room(world.location_id, RoomCreate(name="Annex"), world.actor, db)
    assert room.is_occupied is False


async def test_motion_text_unique(db):
    await venue_service.create_motion(MotionCreate(motion="This house would abolish homework"), db)
    with pytest.raises(ValidationError):
        await venue_service.create_motion(MotionCreate(motion="This house would abolish homework"), db)


# =============================================================================
# Editing and Removal
# =============================================================================

async def _draw_first_debate(db, world):
    await draw_service.generate_draw(
        world.round_id,
        DrawRequest(team_pool=world.team_ids[:2], judge_pool=world.judge_ids[:1], room_pool=world.room_ids[:1]),
        world.actor,
        db,
    )


async def test_update_team_keeps_names_unique(db, world):
    team = await participant_service.update_team(
        world.team_ids[0], TeamUpdate(shortened_name="A!"), world.actor, db
    )
    assert team.shortened_name == "A!"
    assert team.full_name == "Team A"

    with pytest.raises(ValidationError) as exc:
        await participant_service.update_team(world.team_ids[0], TeamUpdate(full_name="Team B"), world.actor, db)
    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY


async def test_update_team_requires_permission(db, world):
    judge = await resolve_actor(db, world.judge_ids[0], world.tournament_id)
    with pytest.raises(ForbiddenError):
        await participant_service.update_team(world.team_ids[0], TeamUpdate(shortened_name="X"), judge, db)


async def test_delete_undrawn_team_detaches_attendees(db, world):
    team_id = world.team_ids[3]
    await participant_service.create_affiliation(world.tournament_id, team_id, world.judge_ids[0], world.actor, db)

    await participant_service.delete_team(team_id, world.actor, db)

    assert await find_entity(db, Team, team_id) is None
    detached = await db.execute(
        select(Attendee.team_id, Attendee.position).where(Attendee.id.in_(world.attendee_ids[team_id]))
    )
    assert [tuple(row) for row in detached.all()] == [(None, None), (None, None)]
    affiliations = await db.execute(select(func.count(Affiliation.id)).where(Affiliation.team_id == team_id))
    assert affiliations.scalar_one() == 0


async def test_drawn_team_cannot_be_deleted(db, world):
    await _draw_first_debate(db, world)
    with pytest.raises(ConflictError):
        await participant_service.delete_team(world.team_ids[0], world.actor, db)
    assert await find_entity(db, Team, world.team_ids[0]) is not None


async def test_update_attendee_position(db, world):
    first, second = world.attendee_ids[world.team_ids[0]]
    with pytest.raises(ValidationError) as exc:
        await participant_service.update_attendee(second, AttendeeUpdate(position=1), world.actor, db)
    assert exc.value.code == ErrorCode.DUPLICATE_ENTRY

    attendee = await participant_service.update_attendee(
        second, AttendeeUpdate(name="Renamed", position=3), world.actor, db
    )
    assert (attendee.name, attendee.position) == ("Renamed", 3)

    await participant_service.detach_attendee(first, world.actor, db)
    with pytest.raises(ValidationError):
        await participant_service.update_attendee(first, AttendeeUpdate(name="Ghost"), world.actor, db)


async def test_update_room_keeps_names_unique(db, world):
    room = await venue_service.update_room(world.room_ids[0], RoomUpdate(remarks="Projector"), world.actor, db)
    assert room.remarks == "Projector"
    with pytest.raises(ValidationError):
        await venue_service.update_room(world.room_ids[0], RoomUpdate(name="Room 1"), world.actor, db)


async def test_occupied_room_cannot_be_deleted(db, world):
    await _draw_first_debate(db, world)
    with pytest.raises(ConflictError) as exc:
        await venue_service.delete_room(world.room_ids[0], world.actor, db)
    assert exc.value.code == ErrorCode.DOUBLE_BOOKING

    await venue_service.delete_room(world.room_ids[3], world.actor, db)
    assert await find_entity(db, Room, world.room_ids[3]) is None


async def test_delete_location_removes_its_rooms(db, world):
    annex = await venue_service.create_location(world.tournament_id, LocationCreate(name="Annex"), world.actor, db)
    annex_id = annex.id
    await venue_service.create_room(annex_id, RoomCreate(name="A1"), world.actor, db)
    annex = await venue_service.update_location(annex_id, LocationUpdate(address="Side street 1"), world.actor, db)
    assert annex.address == "Side street 1"

    await venue_service.delete_location(annex_id, world.actor, db)
    rooms = await db.execute(select(func.count(Room.id)).where(Room.location_id == annex_id))
    assert rooms.scalar_one() == 0


async def test_location_with_drawn_room_cannot_be_deleted(db, world):
    await _draw_first_debate(db, world)
    with pytest.raises(ConflictError):
        await venue_service.delete_location(world.location_id, world.actor, db)


async def test_update_and_delete_motion(db):
    first = await venue_service.create_motion(MotionCreate(motion="This house would ban cars"), db)
    await venue_service.create_motion(MotionCreate(motion="This house regrets social media"), db)
    first_id = first.id

    with pytest.raises(ValidationError):
        await venue_service.update_motion(first_id, MotionUpdate(motion="This house regrets social media"), db)

    motion = await venue_service.update_motion(first_id, MotionUpdate(adinfo="Urban centres only"), db)
    assert motion.adinfo == "Urban centres only"

    await venue_service.delete_motion(first_id, db)
    assert await find_entity(db, Motion, first_id) is None
