"""
Draw / Assignment Engine

Generates a round's debates from explicitly supplied team, judge and room
pools, and mutates single assignments afterwards.

Guarantees, scoped to one round:
- a team appears in at most one debate
- a judge appears in at most one debate panel
- a room is occupied by at most one live debate
- a marshal oversees at most one debate and never judges or competes

Every operation locks the round row for the duration of its transaction and
bumps the round version, so a concurrent writer on the same round loses with
ConflictError. All checks run before any write; a failure leaves no partial
draw behind. Allocation is deterministic: pools are consumed in the order
given and no randomness is used.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.config.settings import settings
from tabroom.core.entity_store import check_version, get_entity, lock_entity, transaction
from tabroom.errors import ConflictError, ErrorCode, NotFoundError, StateError, ValidationError
from tabroom.orm.debate import Debate, DebateJudgeAssignment, DebateTeamAssignment
from tabroom.orm.ledger import ScoreEntry
from tabroom.orm.location import Location, Room
from tabroom.orm.motion import Motion
from tabroom.orm.phase import Phase, Round, TERMINAL_STATUSES
from tabroom.orm.roles import Affiliation
from tabroom.orm.team import Attendee, Team
from tabroom.orm.user import User
from tabroom.rbac import Actor, Permission, require_permission
from tabroom.schemas.draw import DebateView, DrawRequest, TeamSlot
from tabroom.services.side_policy import assign_sides, max_per_side, resolve_policy

logger = logging.getLogger(__name__)


# =============================================================================
# Round Scope
# =============================================================================

async def _round_scope(db: AsyncSession, round_id: UUID) -> Tuple[Round, Phase]:
    round_obj = await lock_entity(db, Round, round_id)
    phase = await get_entity(db, Phase, round_obj.phase_id)
    return round_obj, phase


def _ensure_mutable(round_obj: Round) -> None:
    if round_obj.status in TERMINAL_STATUSES:
        raise StateError(
            f"Round {round_obj.id} is {round_obj.status.value}; its draw can no longer change",
            details={"status": round_obj.status.value}
        )


async def _debate_scope(
    db: AsyncSession,
    debate_id: UUID,
    actor: Actor,
    expected_version: Optional[int]
) -> Tuple[Debate, Round]:
    debate = await get_entity(db, Debate, debate_id)
    round_obj, phase = await _round_scope(db, debate.round_id)
    require_permission(actor, Permission.WRITE_DRAW, phase.tournament_id)
    check_version(round_obj, expected_version)
    _ensure_mutable(round_obj)
    return debate, round_obj


async def _flush_assignments(db: AsyncSession) -> None:
    """Flush, mapping store-level double-booking to ConflictError."""
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError(
            "Assignment would double-book a team, judge, room or marshal in this round",
            code=ErrorCode.DOUBLE_BOOKING,
            details={"constraint": str(e.orig)}
        ) from e


async def _commit_round_change(db: AsyncSession, round_obj: Round) -> None:
    """Bump the round version so concurrent writers on the same round conflict."""
    round_obj.draw_updated_at = datetime.utcnow()
    await _flush_assignments(db)


# =============================================================================
# Pool Validation
# =============================================================================

def _reject_duplicates(pool_name: str, pool: Sequence[UUID]) -> None:
    seen: Set[UUID] = set()
    duplicates = []
    for item in pool:
        if item in seen:
            duplicates.append(str(item))
        seen.add(item)
    if duplicates:
        raise ValidationError(
            f"{pool_name} contains duplicate entries",
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"pool": pool_name, "duplicates": duplicates}
        )


async def _load_teams(db: AsyncSession, team_ids: Sequence[UUID], tournament_id: UUID) -> Dict[UUID, Team]:
    result = await db.execute(select(Team).where(Team.id.in_(team_ids)))
    teams = {team.id: team for team in result.scalars()}
    for team_id in team_ids:
        team = teams.get(team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        if team.tournament_id != tournament_id:
            raise ValidationError(
                f"Team {team_id} belongs to another tournament",
                code=ErrorCode.SCOPE_VIOLATION
            )
    return teams


async def _ensure_users(db: AsyncSession, user_ids: Sequence[UUID]) -> None:
    if not user_ids:
        return
    result = await db.execute(select(User.id).where(User.id.in_(user_ids)))
    found = set(result.scalars())
    for user_id in user_ids:
        if user_id not in found:
            raise NotFoundError("User", user_id)


async def _load_rooms(db: AsyncSession, room_ids: Sequence[UUID], tournament_id: UUID) -> Dict[UUID, Room]:
    result = await db.execute(
        select(Room, Location.tournament_id)
        .join(Location, Location.id == Room.location_id)
        .where(Room.id.in_(room_ids))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    rooms = {}
    owners = {}
    for room, owner in result.all():
        rooms[room.id] = room
        owners[room.id] = owner

    for room_id in room_ids:
        room = rooms.get(room_id)
        if room is None:
            raise NotFoundError("Room", room_id)
        if owners[room_id] != tournament_id:
            raise ValidationError(
                f"Room {room_id} belongs to another tournament",
                code=ErrorCode.SCOPE_VIOLATION
            )
        if room.is_occupied:
            raise ConflictError(
                f"Room {room_id} is already occupied by a live debate",
                code=ErrorCode.DOUBLE_BOOKING,
                details={"room_id": str(room_id)}
            )
    return rooms


async def _room_tournament_id(db: AsyncSession, room: Room) -> UUID:
    location = await get_entity(db, Location, room.location_id)
    return location.tournament_id


# =============================================================================
# Conflict Sources
# =============================================================================

async def _affiliations(db: AsyncSession, tournament_id: UUID, team_ids: Sequence[UUID]) -> Dict[UUID, Set[UUID]]:
    """team_id -> judges affiliated with that team."""
    result = await db.execute(
        select(Affiliation.team_id, Affiliation.judge_user_id).where(
            Affiliation.tournament_id == tournament_id,
            Affiliation.team_id.in_(team_ids)
        )
    )
    mapping: Dict[UUID, Set[UUID]] = {}
    for team_id, judge_id in result.all():
        mapping.setdefault(team_id, set()).add(judge_id)
    return mapping


async def _competitor_users(db: AsyncSession, team_ids: Sequence[UUID]) -> Set[UUID]:
    """User ids of attendees competing for any of the given teams."""
    if not team_ids:
        return set()
    result = await db.execute(
        select(Attendee.user_id).where(
            Attendee.team_id.in_(team_ids),
            Attendee.user_id.is_not(None)
        )
    )
    return set(result.scalars())


async def _round_team_ids(db: AsyncSession, round_id: UUID) -> List[UUID]:
    result = await db.execute(
        select(DebateTeamAssignment.team_id).where(DebateTeamAssignment.round_id == round_id)
    )
    return list(result.scalars())


async def _round_judge_ids(db: AsyncSession, round_id: UUID) -> Set[UUID]:
    result = await db.execute(
        select(DebateJudgeAssignment.judge_user_id).where(DebateJudgeAssignment.round_id == round_id)
    )
    return set(result.scalars())


async def _round_marshal_ids(db: AsyncSession, round_id: UUID, exclude_debate_id: Optional[UUID] = None) -> Set[UUID]:
    query = select(Debate.marshal_user_id).where(
        Debate.round_id == round_id,
        Debate.marshal_user_id.is_not(None)
    )
    if exclude_debate_id is not None:
        query = query.where(Debate.id != exclude_debate_id)
    result = await db.execute(query)
    return set(result.scalars())


# =============================================================================
# Allocation
# =============================================================================

def _allocate_panels(
    groups: List[List[UUID]],
    judge_pool: Sequence[UUID],
    panel_size: int,
    affiliations: Dict[UUID, Set[UUID]],
    competitors: Set[UUID]
) -> List[List[UUID]]:
    """
    Greedy, in pool order: each debate takes the first unused judges that are
    not affiliated with any of its teams and do not compete in the round.
    """
    used: Set[UUID] = set()
    panels = []
    for index, group in enumerate(groups):
        conflicted = set().union(*(affiliations.get(team_id, set()) for team_id in group))
        panel = []
        for judge_id in judge_pool:
            if len(panel) == panel_size:
                break
            if judge_id in used or judge_id in conflicted or judge_id in competitors:
                continue
            panel.append(judge_id)
            used.add(judge_id)
        if len(panel) < panel_size:
            raise ConflictError(
                f"Not enough eligible judges for debate {index + 1}",
                code=ErrorCode.POOL_EXHAUSTED,
                details={"debate_index": index, "panel_size": panel_size, "assigned": len(panel)}
            )
        panels.append(panel)
    return panels


def _allocate_marshals(
    group_count: int,
    marshal_pool: Sequence[UUID],
    competitors: Set[UUID]
) -> List[Optional[UUID]]:
    """One marshal per debate while eligible marshals last; the rest get none."""
    eligible = [m for m in marshal_pool if m not in competitors]
    return [eligible[i] if i < len(eligible) else None for i in range(group_count)]


# =============================================================================
# Room Occupancy
# =============================================================================

async def release_round_rooms(db: AsyncSession, round_id: UUID) -> int:
    """Free every room held by the round's debates."""
    result = await db.execute(
        select(Room)
        .join(Debate, Debate.room_id == Room.id)
        .where(Debate.round_id == round_id, Room.is_occupied.is_(True))
        .with_for_update()
    )
    rooms = list(result.scalars())
    for room in rooms:
        room.is_occupied = False
    await db.flush()
    return len(rooms)


async def reoccupy_round_rooms(db: AsyncSession, round_id: UUID) -> int:
    """Claim the round's rooms again; fails if any was taken in the meantime."""
    result = await db.execute(
        select(Room)
        .join(Debate, Debate.room_id == Room.id)
        .where(Debate.round_id == round_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    rooms = list(result.scalars())
    taken = [str(room.id) for room in rooms if room.is_occupied]
    if taken:
        raise ConflictError(
            "Rooms of this round are now occupied by another debate",
            code=ErrorCode.DOUBLE_BOOKING,
            details={"room_ids": taken}
        )
    for room in rooms:
        room.is_occupied = True
    await db.flush()
    return len(rooms)


# =============================================================================
# Draw Generation
# =============================================================================

async def generate_draw(
    round_id: UUID,
    request: DrawRequest,
    actor: Actor,
    db: AsyncSession
) -> List[Debate]:
    """
    Create one debate per group of teams for the round.

    Raises:
        ConflictError: round already drawn, occupied room, pool exhausted
        ValidationError: duplicate pool entries, indivisible team pool, bad sizes
        NotFoundError: unknown round, team, user, room or motion
        StateError: round already completed or cancelled
    """
    policy = resolve_policy(request.side_policy)

    async with transaction(db):
        round_obj, phase = await _round_scope(db, round_id)
        tournament_id = phase.tournament_id
        require_permission(actor, Permission.WRITE_DRAW, tournament_id)
        check_version(round_obj, request.expected_version)
        _ensure_mutable(round_obj)

        existing = await db.execute(select(func.count(Debate.id)).where(Debate.round_id == round_id))
        if existing.scalar_one() > 0:
            raise ConflictError(
                f"Round {round_id} already has a draw",
                code=ErrorCode.ALREADY_DRAWN
            )

        if request.group_size is not None:
            group_size = request.group_size
        else:
            group_size = phase.group_size or settings.DEFAULT_GROUP_SIZE
        panel_size = request.panel_size if request.panel_size is not None else settings.DEFAULT_PANEL_SIZE
        if group_size < 2:
            raise ValidationError("group_size must be at least 2", details={"group_size": group_size})
        if panel_size < 1:
            raise ValidationError("panel_size must be at least 1", details={"panel_size": panel_size})

        _reject_duplicates("team_pool", request.team_pool)
        _reject_duplicates("judge_pool", request.judge_pool)
        _reject_duplicates("room_pool", request.room_pool)
        _reject_duplicates("marshal_pool", request.marshal_pool)
        overlap = set(request.marshal_pool) & set(request.judge_pool)
        if overlap:
            raise ValidationError(
                "Marshals cannot also be in the judge pool",
                details={"user_ids": sorted(str(u) for u in overlap)}
            )
        if not request.team_pool:
            raise ValidationError("team_pool must not be empty")

        await _load_teams(db, request.team_pool, tournament_id)
        await _ensure_users(db, list(request.judge_pool) + list(request.marshal_pool))
        rooms = await _load_rooms(db, request.room_pool, tournament_id)
        if request.motion_id is not None:
            await get_entity(db, Motion, request.motion_id)
        motion_id = request.motion_id or round_obj.motion_id

        if len(request.team_pool) % group_size != 0:
            raise ValidationError(
                f"{len(request.team_pool)} teams cannot be split into groups of {group_size}",
                code=ErrorCode.INDIVISIBLE_POOL,
                details={"teams": len(request.team_pool), "group_size": group_size}
            )
        groups = [
            list(request.team_pool[i:i + group_size])
            for i in range(0, len(request.team_pool), group_size)
        ]

        if len(groups) > len(request.room_pool):
            raise ConflictError(
                f"{len(groups)} debates need rooms but only {len(request.room_pool)} supplied",
                code=ErrorCode.POOL_EXHAUSTED,
                details={"debates": len(groups), "rooms": len(request.room_pool)}
            )
        if len(request.judge_pool) < len(groups) * panel_size:
            raise ConflictError(
                f"{len(groups)} debates with panels of {panel_size} need "
                f"{len(groups) * panel_size} judges, got {len(request.judge_pool)}",
                code=ErrorCode.POOL_EXHAUSTED,
                details={"debates": len(groups), "panel_size": panel_size, "judges": len(request.judge_pool)}
            )

        affiliations = await _affiliations(db, tournament_id, request.team_pool)
        competitors = await _competitor_users(db, request.team_pool)
        panels = _allocate_panels(groups, request.judge_pool, panel_size, affiliations, competitors)
        marshals = _allocate_marshals(len(groups), request.marshal_pool, competitors)

        debates = []
        for position in range(len(groups)):
            debate = Debate(
                round_id=round_id,
                tournament_id=tournament_id,
                motion_id=motion_id,
                marshal_user_id=marshals[position],
                room_id=request.room_pool[position],
                draw_position=position,
            )
            db.add(debate)
            debates.append(debate)
        await _flush_assignments(db)

        for position, group in enumerate(groups):
            debate = debates[position]
            sides = assign_sides(policy, round_id, group)
            for slot, team_id in enumerate(group):
                db.add(DebateTeamAssignment(
                    debate_id=debate.id,
                    round_id=round_id,
                    team_id=team_id,
                    is_proposition=sides[team_id],
                    slot=slot,
                ))
            for slot, judge_id in enumerate(panels[position]):
                db.add(DebateJudgeAssignment(
                    debate_id=debate.id,
                    round_id=round_id,
                    judge_user_id=judge_id,
                    slot=slot,
                ))
            rooms[request.room_pool[position]].is_occupied = True
        await _commit_round_change(db, round_obj)

    logger.info(
        f"Draw generated for round {round_id}: {len(debates)} debates, group_size={group_size}, "
        f"panel_size={panel_size}, side_policy={policy.value}"
    )
    return debates


async def discard_draw(
    round_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> int:
    """Delete a round's draw and free its rooms. Refused once any result is recorded."""
    async with transaction(db):
        round_obj, phase = await _round_scope(db, round_id)
        require_permission(actor, Permission.WRITE_DRAW, phase.tournament_id)
        check_version(round_obj, expected_version)
        _ensure_mutable(round_obj)

        scored = await db.execute(select(func.count(ScoreEntry.id)).where(ScoreEntry.round_id == round_id))
        if scored.scalar_one() > 0:
            raise StateError(
                "Results have been recorded for this round; the draw cannot be discarded",
                code=ErrorCode.PREREQUISITE_NOT_MET
            )

        drawn = await db.execute(select(func.count(Debate.id)).where(Debate.round_id == round_id))
        count = drawn.scalar_one()

        await release_round_rooms(db, round_id)
        await db.execute(delete(DebateTeamAssignment).where(DebateTeamAssignment.round_id == round_id))
        await db.execute(delete(DebateJudgeAssignment).where(DebateJudgeAssignment.round_id == round_id))
        await db.execute(delete(Debate).where(Debate.round_id == round_id))
        await _commit_round_change(db, round_obj)

    logger.info(f"Draw discarded for round {round_id}: {count} debates removed")
    return count


# =============================================================================
# Single-Assignment Mutations
# =============================================================================

async def reassign_team(
    debate_id: UUID,
    old_team_id: UUID,
    new_team_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> DebateTeamAssignment:
    """Swap one team in a debate for a team not yet drawn in the round. The side stays with the slot."""
    if old_team_id == new_team_id:
        raise ValidationError("Replacement team is the same as the current team")

    async with transaction(db):
        debate, round_obj = await _debate_scope(db, debate_id, actor, expected_version)
        if debate.result_recorded_at is not None:
            raise StateError("Results already recorded for this debate", code=ErrorCode.PREREQUISITE_NOT_MET)

        result = await db.execute(
            select(DebateTeamAssignment).where(
                DebateTeamAssignment.debate_id == debate_id,
                DebateTeamAssignment.team_id == old_team_id
            )
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("DebateTeamAssignment", old_team_id)

        new_team = await get_entity(db, Team, new_team_id)
        if new_team.tournament_id != debate.tournament_id:
            raise ValidationError(f"Team {new_team_id} belongs to another tournament", code=ErrorCode.SCOPE_VIOLATION)

        if new_team_id in await _round_team_ids(db, round_obj.id):
            raise ConflictError(
                f"Team {new_team_id} is already drawn in this round",
                code=ErrorCode.DOUBLE_BOOKING
            )

        panel = await db.execute(
            select(DebateJudgeAssignment.judge_user_id).where(DebateJudgeAssignment.debate_id == debate_id)
        )
        affiliated = (await _affiliations(db, debate.tournament_id, [new_team_id])).get(new_team_id, set())
        if affiliated & set(panel.scalars()):
            raise ConflictError(
                f"Team {new_team_id} is affiliated with a judge on this debate",
                code=ErrorCode.DOUBLE_BOOKING
            )

        officials = await _round_judge_ids(db, round_obj.id) | await _round_marshal_ids(db, round_obj.id)
        if await _competitor_users(db, [new_team_id]) & officials:
            raise ConflictError(
                f"A member of team {new_team_id} is judging or marshalling in this round",
                code=ErrorCode.DOUBLE_BOOKING
            )

        assignment.team_id = new_team_id
        await _commit_round_change(db, round_obj)

    logger.info(f"Debate {debate_id}: team {old_team_id} replaced by {new_team_id}")
    return assignment


async def reassign_judge(
    debate_id: UUID,
    old_judge_id: UUID,
    new_judge_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> DebateJudgeAssignment:
    if old_judge_id == new_judge_id:
        raise ValidationError("Replacement judge is the same as the current judge")

    async with transaction(db):
        debate, round_obj = await _debate_scope(db, debate_id, actor, expected_version)

        result = await db.execute(
            select(DebateJudgeAssignment).where(
                DebateJudgeAssignment.debate_id == debate_id,
                DebateJudgeAssignment.judge_user_id == old_judge_id
            )
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("DebateJudgeAssignment", old_judge_id)

        await get_entity(db, User, new_judge_id)

        if new_judge_id in await _round_judge_ids(db, round_obj.id):
            raise ConflictError(
                f"Judge {new_judge_id} is already on a panel in this round",
                code=ErrorCode.DOUBLE_BOOKING
            )
        if new_judge_id in await _round_marshal_ids(db, round_obj.id):
            raise ConflictError(
                f"User {new_judge_id} is marshalling in this round",
                code=ErrorCode.DOUBLE_BOOKING
            )
        if new_judge_id in await _competitor_users(db, await _round_team_ids(db, round_obj.id)):
            raise ConflictError(
                f"User {new_judge_id} is competing in this round",
                code=ErrorCode.DOUBLE_BOOKING
            )

        teams = await db.execute(
            select(DebateTeamAssignment.team_id).where(DebateTeamAssignment.debate_id == debate_id)
        )
        affiliations = await _affiliations(db, debate.tournament_id, list(teams.scalars()))
        if any(new_judge_id in judges for judges in affiliations.values()):
            raise ConflictError(
                f"Judge {new_judge_id} is affiliated with a team in this debate",
                code=ErrorCode.DOUBLE_BOOKING
            )

        assignment.judge_user_id = new_judge_id
        await _commit_round_change(db, round_obj)

    logger.info(f"Debate {debate_id}: judge {old_judge_id} replaced by {new_judge_id}")
    return assignment


async def reassign_room(
    debate_id: UUID,
    new_room_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Debate:
    async with transaction(db):
        debate, round_obj = await _debate_scope(db, debate_id, actor, expected_version)
        if debate.room_id == new_room_id:
            return debate

        room = await lock_entity(db, Room, new_room_id)
        if await _room_tournament_id(db, room) != debate.tournament_id:
            raise ValidationError(f"Room {new_room_id} belongs to another tournament", code=ErrorCode.SCOPE_VIOLATION)
        if room.is_occupied:
            raise ConflictError(
                f"Room {new_room_id} is already occupied by a live debate",
                code=ErrorCode.DOUBLE_BOOKING
            )

        if debate.room_id is not None:
            old_room = await lock_entity(db, Room, debate.room_id)
            old_room.is_occupied = False
        room.is_occupied = True
        old_room_id = debate.room_id
        debate.room_id = new_room_id
        await _commit_round_change(db, round_obj)

    logger.info(f"Debate {debate_id}: room {old_room_id} replaced by {new_room_id}")
    return debate


async def set_proposition_side(
    debate_id: UUID,
    team_id: UUID,
    side: Optional[bool],
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> DebateTeamAssignment:
    """
    Set a team's side: True proposition, False opposition, None undecided.
    Neither side may hold more than half the debate's teams (rounded up).
    """
    async with transaction(db):
        debate, round_obj = await _debate_scope(db, debate_id, actor, expected_version)

        result = await db.execute(
            select(DebateTeamAssignment).where(DebateTeamAssignment.debate_id == debate_id)
        )
        assignments = list(result.scalars())
        target = next((a for a in assignments if a.team_id == team_id), None)
        if target is None:
            raise NotFoundError("DebateTeamAssignment", team_id)

        if side is not None:
            same_side = sum(1 for a in assignments if a.team_id != team_id and a.is_proposition is side)
            limit = max_per_side(len(assignments))
            if same_side + 1 > limit:
                raise ConflictError(
                    f"{'Proposition' if side else 'Opposition'} already has {same_side} of {limit} teams",
                    code=ErrorCode.DOUBLE_BOOKING,
                    details={"limit": limit}
                )

        target.is_proposition = side
        await _commit_round_change(db, round_obj)

    logger.info(f"Debate {debate_id}: team {team_id} side set to {side}")
    return target


async def assign_marshal(
    debate_id: UUID,
    marshal_user_id: Optional[UUID],
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Debate:
    """Set or clear a debate's marshal."""
    async with transaction(db):
        debate, round_obj = await _debate_scope(db, debate_id, actor, expected_version)

        if marshal_user_id is not None:
            await get_entity(db, User, marshal_user_id)
            if marshal_user_id in await _round_marshal_ids(db, round_obj.id, exclude_debate_id=debate_id):
                raise ConflictError(
                    f"User {marshal_user_id} already marshals another debate in this round",
                    code=ErrorCode.DOUBLE_BOOKING
                )
            if marshal_user_id in await _round_judge_ids(db, round_obj.id):
                raise ConflictError(
                    f"User {marshal_user_id} is judging in this round",
                    code=ErrorCode.DOUBLE_BOOKING
                )
            if marshal_user_id in await _competitor_users(db, await _round_team_ids(db, round_obj.id)):
                raise ConflictError(
                    f"User {marshal_user_id} is competing in this round",
                    code=ErrorCode.DOUBLE_BOOKING
                )

        debate.marshal_user_id = marshal_user_id
        await _commit_round_change(db, round_obj)

    logger.info(f"Debate {debate_id}: marshal set to {marshal_user_id}")
    return debate


# =============================================================================
# Read Model
# =============================================================================

async def get_round_draw(round_id: UUID, db: AsyncSession) -> List[DebateView]:
    await get_entity(db, Round, round_id)

    debates = await db.execute(
        select(Debate).where(Debate.round_id == round_id).order_by(Debate.draw_position)
    )
    team_rows = await db.execute(
        select(DebateTeamAssignment)
        .where(DebateTeamAssignment.round_id == round_id)
        .order_by(DebateTeamAssignment.slot)
    )
    judge_rows = await db.execute(
        select(DebateJudgeAssignment)
        .where(DebateJudgeAssignment.round_id == round_id)
        .order_by(DebateJudgeAssignment.slot)
    )

    teams_by_debate: Dict[UUID, List[TeamSlot]] = {}
    for row in team_rows.scalars():
        teams_by_debate.setdefault(row.debate_id, []).append(
            TeamSlot(team_id=row.team_id, is_proposition=row.is_proposition)
        )
    judges_by_debate: Dict[UUID, List[UUID]] = {}
    for row in judge_rows.scalars():
        judges_by_debate.setdefault(row.debate_id, []).append(row.judge_user_id)

    return [
        DebateView(
            id=debate.id,
            round_id=debate.round_id,
            room_id=debate.room_id,
            motion_id=debate.motion_id,
            marshal_user_id=debate.marshal_user_id,
            teams=teams_by_debate.get(debate.id, []),
            judge_user_ids=judges_by_debate.get(debate.id, []),
            has_result=debate.result_recorded_at is not None,
        )
        for debate in debates.scalars()
    ]
