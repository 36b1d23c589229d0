"""
Participant registry service: teams, attendees and judge affiliations.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.core.entity_store import (
    create_entity, delete_entity, find_entity, get_entity, lock_entity, transaction, update_entity
)
from tabroom.errors import ConflictError, ErrorCode, ValidationError
from tabroom.orm.debate import DebateTeamAssignment
from tabroom.orm.ledger import ScoreEntry
from tabroom.orm.roles import Affiliation
from tabroom.orm.team import Attendee, Team
from tabroom.orm.tournament import Tournament
from tabroom.orm.user import User
from tabroom.rbac import Actor, Permission, require_permission
from tabroom.schemas.tournament import AttendeeCreate, AttendeeUpdate, TeamCreate, TeamUpdate

logger = logging.getLogger(__name__)


async def _ensure_team_name_free(
    db: AsyncSession,
    tournament_id: UUID,
    full_name: str,
    exclude_id: Optional[UUID] = None
) -> None:
    query = select(Team.id).where(Team.tournament_id == tournament_id, Team.full_name == full_name)
    if exclude_id is not None:
        query = query.where(Team.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ValidationError(
            f"Team '{full_name}' already exists in this tournament",
            code=ErrorCode.DUPLICATE_ENTRY
        )


async def _ensure_position_free(
    db: AsyncSession,
    team_id: UUID,
    position: int,
    exclude_id: Optional[UUID] = None
) -> None:
    query = select(Attendee.id).where(Attendee.team_id == team_id, Attendee.position == position)
    if exclude_id is not None:
        query = query.where(Attendee.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ValidationError(
            f"Position {position} is already taken in team {team_id}",
            code=ErrorCode.DUPLICATE_ENTRY
        )


# =============================================================================
# Teams
# =============================================================================

async def create_team(tournament_id: UUID, data: TeamCreate, actor: Actor, db: AsyncSession) -> Team:
    require_permission(actor, Permission.WRITE_TEAMS, tournament_id)

    async with transaction(db):
        await get_entity(db, Tournament, tournament_id)
        await _ensure_team_name_free(db, tournament_id, data.full_name)
        team = await create_entity(db, Team, tournament_id=tournament_id, **data.model_dump())

    logger.info(f"Created team {team.id} '{team.shortened_name}' in tournament {tournament_id}")
    return team


async def update_team(team_id: UUID, data: TeamUpdate, actor: Actor, db: AsyncSession) -> Team:
    """Rename a team. Omitted fields keep their stored value."""
    async with transaction(db):
        team = await get_entity(db, Team, team_id)
        require_permission(actor, Permission.WRITE_TEAMS, team.tournament_id)

        fields = data.model_dump(exclude_none=True)
        if "full_name" in fields:
            await _ensure_team_name_free(db, team.tournament_id, fields["full_name"], exclude_id=team_id)
        await update_entity(db, team, **fields)

    logger.info(f"Updated team {team_id}")
    return team


async def delete_team(team_id: UUID, actor: Actor, db: AsyncSession) -> None:
    """
    Delete a team that never took part in a draw.

    Its attendees are detached and keep their accumulators; its judge
    affiliations go with it.

    Raises:
        ConflictError: the team appears in a draw or in the scoring ledger
    """
    async with transaction(db):
        team = await lock_entity(db, Team, team_id)
        require_permission(actor, Permission.WRITE_TEAMS, team.tournament_id)

        drawn = await db.execute(
            select(func.count(DebateTeamAssignment.id)).where(DebateTeamAssignment.team_id == team_id)
        )
        scored = await db.execute(select(func.count(ScoreEntry.id)).where(ScoreEntry.team_id == team_id))
        debates, results = drawn.scalar_one(), scored.scalar_one()
        if debates or results:
            raise ConflictError(
                f"Team {team_id} has been drawn and cannot be deleted",
                details={"debates": debates, "results": results}
            )

        attendees = await db.execute(select(Attendee).where(Attendee.team_id == team_id))
        for attendee in attendees.scalars().all():
            attendee.team_id = None
            attendee.position = None
        await db.flush()

        await delete_entity(db, Team, team_id)

    logger.info(f"Deleted team {team_id}")


# =============================================================================
# Attendees
# =============================================================================

async def create_attendee(team_id: UUID, data: AttendeeCreate, actor: Actor, db: AsyncSession) -> Attendee:
    """Add a speaker to a team. Two speakers of one team never share a position."""
    async with transaction(db):
        team = await get_entity(db, Team, team_id)
        require_permission(actor, Permission.WRITE_ATTENDEES, team.tournament_id)

        if data.user_id is not None:
            await get_entity(db, User, data.user_id)
        if data.position is not None:
            await _ensure_position_free(db, team_id, data.position)

        attendee = await create_entity(
            db,
            Attendee,
            team_id=team_id,
            name=data.name,
            position=data.position,
            user_id=data.user_id,
            individual_points=0,
            penalty_points=0,
        )

    logger.info(f"Created attendee {attendee.id} in team {team_id}")
    return attendee


async def update_attendee(attendee_id: UUID, data: AttendeeUpdate, actor: Actor, db: AsyncSession) -> Attendee:
    """Rename or re-seat a speaker of a team. Point accumulators are not editable here."""
    async with transaction(db):
        attendee = await get_entity(db, Attendee, attendee_id)
        team = await find_entity(db, Team, attendee.team_id)
        if team is None:
            raise ValidationError(f"Attendee {attendee_id} is detached and can no longer be edited")
        require_permission(actor, Permission.WRITE_ATTENDEES, team.tournament_id)

        fields = data.model_dump(exclude_none=True)
        if "position" in fields:
            await _ensure_position_free(db, team.id, fields["position"], exclude_id=attendee_id)
        await update_entity(db, attendee, **fields)

    logger.info(f"Updated attendee {attendee_id}")
    return attendee


async def detach_attendee(attendee_id: UUID, actor: Actor, db: AsyncSession) -> Attendee:
    """Remove an attendee from its team. Recorded results stay in the ledger."""
    async with transaction(db):
        attendee = await get_entity(db, Attendee, attendee_id)
        team = await find_entity(db, Team, attendee.team_id)
        if team is None:
            return attendee
        require_permission(actor, Permission.WRITE_ATTENDEES, team.tournament_id)

        await update_entity(db, attendee, team_id=None, position=None)

    logger.info(f"Detached attendee {attendee_id} from team {team.id}")
    return attendee


# =============================================================================
# Affiliations
# =============================================================================

async def create_affiliation(
    tournament_id: UUID,
    team_id: UUID,
    judge_user_id: UUID,
    actor: Actor,
    db: AsyncSession
) -> Affiliation:
    """Mark a judge as affiliated with a team; the draw never pairs them."""
    require_permission(actor, Permission.WRITE_TEAMS, tournament_id)

    async with transaction(db):
        team = await get_entity(db, Team, team_id)
        if team.tournament_id != tournament_id:
            raise ValidationError(
                f"Team {team_id} does not belong to tournament {tournament_id}",
                code=ErrorCode.SCOPE_VIOLATION
            )
        await get_entity(db, User, judge_user_id)

        existing = await db.execute(
            select(Affiliation.id).where(
                Affiliation.tournament_id == tournament_id,
                Affiliation.team_id == team_id,
                Affiliation.judge_user_id == judge_user_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError("Affiliation already exists", code=ErrorCode.DUPLICATE_ENTRY)

        affiliation = await create_entity(
            db,
            Affiliation,
            tournament_id=tournament_id,
            team_id=team_id,
            judge_user_id=judge_user_id,
        )

    logger.info(f"Judge {judge_user_id} affiliated with team {team_id}")
    return affiliation
