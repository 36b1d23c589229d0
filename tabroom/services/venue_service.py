"""
Venue and motion registry: locations, rooms and the global motion bank.

Room occupancy belongs to the draw engine; the registry only refuses to
remove a room that a debate holds or has held.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.core.entity_store import (
    create_entity, delete_entity, get_entity, lock_entity, transaction, update_entity
)
from tabroom.errors import ConflictError, ErrorCode, ValidationError
from tabroom.orm.debate import Debate
from tabroom.orm.location import Location, Room
from tabroom.orm.motion import Motion
from tabroom.orm.phase import Round
from tabroom.orm.tournament import Tournament
from tabroom.rbac import Actor, Permission, require_permission
from tabroom.schemas.tournament import (
    LocationCreate, LocationUpdate, MotionCreate, MotionUpdate, RoomCreate, RoomUpdate
)

logger = logging.getLogger(__name__)


async def _ensure_room_name_free(
    db: AsyncSession,
    location_id: UUID,
    name: str,
    exclude_id: Optional[UUID] = None
) -> None:
    query = select(Room.id).where(Room.location_id == location_id, Room.name == name)
    if exclude_id is not None:
        query = query.where(Room.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ValidationError(
            f"Room '{name}' already exists at this location",
            code=ErrorCode.DUPLICATE_ENTRY
        )


async def _ensure_motion_text_free(db: AsyncSession, text: str, exclude_id: Optional[UUID] = None) -> None:
    query = select(Motion.id).where(Motion.motion == text)
    if exclude_id is not None:
        query = query.where(Motion.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ValidationError("Motion text already exists", code=ErrorCode.DUPLICATE_ENTRY)


# =============================================================================
# Locations
# =============================================================================

async def create_location(tournament_id: UUID, data: LocationCreate, actor: Actor, db: AsyncSession) -> Location:
    require_permission(actor, Permission.WRITE_TOURNAMENT, tournament_id)

    async with transaction(db):
        await get_entity(db, Tournament, tournament_id)
        location = await create_entity(db, Location, tournament_id=tournament_id, **data.model_dump())

    logger.info(f"Created location {location.id} in tournament {tournament_id}")
    return location


async def update_location(location_id: UUID, data: LocationUpdate, actor: Actor, db: AsyncSession) -> Location:
    async with transaction(db):
        location = await get_entity(db, Location, location_id)
        require_permission(actor, Permission.WRITE_TOURNAMENT, location.tournament_id)
        await update_entity(db, location, **data.model_dump(exclude_none=True))

    logger.info(f"Updated location {location_id}")
    return location


async def delete_location(location_id: UUID, actor: Actor, db: AsyncSession) -> None:
    """Delete a location and its rooms. Refused while any of its rooms is used by a debate."""
    async with transaction(db):
        location = await lock_entity(db, Location, location_id)
        require_permission(actor, Permission.WRITE_TOURNAMENT, location.tournament_id)

        used = await db.execute(
            select(func.count(Debate.id))
            .join(Room, Debate.room_id == Room.id)
            .where(Room.location_id == location_id)
        )
        debates = used.scalar_one()
        if debates:
            raise ConflictError(
                f"Rooms of location {location_id} are referenced by {debates} debates",
                details={"debates": debates}
            )

        rooms = await db.execute(select(Room).where(Room.location_id == location_id))
        for room in rooms.scalars().all():
            await db.delete(room)
        await db.flush()

        await delete_entity(db, Location, location_id)

    logger.info(f"Deleted location {location_id}")


# =============================================================================
# Rooms
# =============================================================================

async def create_room(location_id: UUID, data: RoomCreate, actor: Actor, db: AsyncSession) -> Room:
    async with transaction(db):
        location = await get_entity(db, Location, location_id)
        require_permission(actor, Permission.WRITE_TOURNAMENT, location.tournament_id)
        await _ensure_room_name_free(db, location_id, data.name)
        room = await create_entity(db, Room, location_id=location_id, is_occupied=False, **data.model_dump())

    logger.info(f"Created room {room.id} at location {location_id}")
    return room


async def update_room(room_id: UUID, data: RoomUpdate, actor: Actor, db: AsyncSession) -> Room:
    async with transaction(db):
        room = await get_entity(db, Room, room_id)
        location = await get_entity(db, Location, room.location_id)
        require_permission(actor, Permission.WRITE_TOURNAMENT, location.tournament_id)

        fields = data.model_dump(exclude_none=True)
        if "name" in fields:
            await _ensure_room_name_free(db, room.location_id, fields["name"], exclude_id=room_id)
        await update_entity(db, room, **fields)

    logger.info(f"Updated room {room_id}")
    return room


async def delete_room(room_id: UUID, actor: Actor, db: AsyncSession) -> None:
    """
    Raises:
        ConflictError: the room is occupied or a debate references it
    """
    async with transaction(db):
        room = await lock_entity(db, Room, room_id)
        location = await get_entity(db, Location, room.location_id)
        require_permission(actor, Permission.WRITE_TOURNAMENT, location.tournament_id)

        if room.is_occupied:
            raise ConflictError(f"Room {room_id} is occupied by a live debate", code=ErrorCode.DOUBLE_BOOKING)
        used = await db.execute(select(func.count(Debate.id)).where(Debate.room_id == room_id))
        debates = used.scalar_one()
        if debates:
            raise ConflictError(
                f"Room {room_id} is referenced by {debates} debates",
                details={"debates": debates}
            )

        await delete_entity(db, Room, room_id)

    logger.info(f"Deleted room {room_id}")


# =============================================================================
# Motions
# =============================================================================

async def create_motion(data: MotionCreate, db: AsyncSession) -> Motion:
    """Motions are shared across tournaments; the text is unique."""
    async with transaction(db):
        await _ensure_motion_text_free(db, data.motion)
        motion = await create_entity(db, Motion, motion=data.motion, adinfo=data.adinfo)

    logger.info(f"Created motion {motion.id}")
    return motion


async def update_motion(motion_id: UUID, data: MotionUpdate, db: AsyncSession) -> Motion:
    async with transaction(db):
        motion = await get_entity(db, Motion, motion_id)
        fields = data.model_dump(exclude_none=True)
        if "motion" in fields:
            await _ensure_motion_text_free(db, fields["motion"], exclude_id=motion_id)
        await update_entity(db, motion, **fields)

    logger.info(f"Updated motion {motion_id}")
    return motion


async def delete_motion(motion_id: UUID, db: AsyncSession) -> None:
    """Refused while any round or debate still uses the motion."""
    async with transaction(db):
        await get_entity(db, Motion, motion_id)

        rounds = (await db.execute(select(func.count(Round.id)).where(Round.motion_id == motion_id))).scalar_one()
        debates = (await db.execute(select(func.count(Debate.id)).where(Debate.motion_id == motion_id))).scalar_one()
        if rounds or debates:
            raise ConflictError(
                f"Motion {motion_id} is still in use",
                details={"rounds": rounds, "debates": debates}
            )

        await delete_entity(db, Motion, motion_id)

    logger.info(f"Deleted motion {motion_id}")
