"""
Tournament registry service.

Users, tournaments, timing configuration and per-tournament role sets.
The creator of a tournament is made its organizer in the same transaction.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.core.entity_store import create_entity, get_entity, transaction, update_entity
from tabroom.errors import ErrorCode, ValidationError
from tabroom.orm.roles import TournamentRole
from tabroom.orm.tournament import Tournament
from tabroom.orm.user import User
from tabroom.rbac import Actor, Permission, Role, parse_roles, require_permission
from tabroom.schemas.tournament import TournamentCreate, TournamentTimingUpdate

logger = logging.getLogger(__name__)


async def create_user(handle: str, db: AsyncSession, picture_link: Optional[str] = None) -> User:
    """Register a user row. Credentials live with the identity collaborator."""
    handle = (handle or "").strip()
    if not handle:
        raise ValidationError("User handle must not be empty")

    async with transaction(db):
        existing = await db.execute(select(User.id).where(User.handle == handle))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(
                f"User handle '{handle}' is already taken",
                code=ErrorCode.DUPLICATE_ENTRY
            )
        user = await create_entity(db, User, handle=handle, picture_link=picture_link)

    logger.info(f"Created user {user.id} ({handle})")
    return user


async def create_tournament(data: TournamentCreate, creator_user_id: UUID, db: AsyncSession) -> Tournament:
    """Create a tournament and grant its creator the organizer role."""
    async with transaction(db):
        await get_entity(db, User, creator_user_id)

        existing = await db.execute(
            select(Tournament.id).where(Tournament.full_name == data.full_name)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(
                f"Tournament '{data.full_name}' already exists",
                code=ErrorCode.DUPLICATE_ENTRY
            )

        tournament = await create_entity(db, Tournament, **data.model_dump())
        await create_entity(
            db,
            TournamentRole,
            user_id=creator_user_id,
            tournament_id=tournament.id,
            roles=[Role.ORGANIZER.value],
        )

    logger.info(f"Created tournament {tournament.id} '{tournament.shortened_name}' by user={creator_user_id}")
    return tournament


async def get_tournament(tournament_id: UUID, db: AsyncSession) -> Tournament:
    return await get_entity(db, Tournament, tournament_id)


async def update_tournament_timing(
    tournament_id: UUID,
    data: TournamentTimingUpdate,
    actor: Actor,
    db: AsyncSession
) -> Tournament:
    require_permission(actor, Permission.WRITE_TOURNAMENT, tournament_id)

    async with transaction(db):
        tournament = await get_entity(db, Tournament, tournament_id)
        await update_entity(db, tournament, **data.model_dump(exclude_none=True))

    logger.info(f"Updated timing for tournament {tournament_id}")
    return tournament


async def assign_roles(
    tournament_id: UUID,
    user_id: UUID,
    roles: List[str],
    actor: Actor,
    db: AsyncSession
) -> TournamentRole:
    """Replace a user's role set in a tournament. An empty list revokes all roles."""
    require_permission(actor, Permission.MODIFY_ROLES, tournament_id)
    parsed = parse_roles(roles)

    async with transaction(db):
        await get_entity(db, Tournament, tournament_id)
        await get_entity(db, User, user_id)

        result = await db.execute(
            select(TournamentRole).where(
                TournamentRole.user_id == user_id,
                TournamentRole.tournament_id == tournament_id
            )
        )
        row = result.scalar_one_or_none()
        tags = sorted(role.value for role in parsed)
        if row is None:
            row = await create_entity(
                db, TournamentRole, user_id=user_id, tournament_id=tournament_id, roles=tags
            )
        else:
            row.roles = tags
            await db.flush()

    logger.info(f"Roles for user={user_id} in tournament {tournament_id} set to {tags} by user={actor.user_id}")
    return row
