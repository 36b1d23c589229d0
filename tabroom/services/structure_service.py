"""
Tournament Structure Manager

Owns phases and rounds: creation, predecessor chains and status lifecycles.

Predecessor rules (phases and rounds alike):
- a predecessor must exist and already be COMPLETED
- a phase's predecessor is in the same tournament; a round's predecessor is
  in the same phase or in the phase directly before it
- an entity is the predecessor of at most one entity
- the chain stays acyclic; re-linking that would close a loop is refused

Status coupling between a phase and its rounds:
- a round can start only while its phase is IN_PROGRESS
- a phase completes only when every round is terminal
- cancelling a phase cancels its open rounds
- a round reaching a terminal status frees its rooms; reopening reclaims them
"""
import enum
import logging
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.core.entity_store import (
    check_version, create_entity, delete_entity, get_entity, lock_entity, transaction, update_entity
)
from tabroom.errors import ConflictError, ErrorCode, StateError, ValidationError
from tabroom.orm.debate import Debate
from tabroom.orm.motion import Motion
from tabroom.orm.phase import Phase, Round, StageStatus, TERMINAL_STATUSES
from tabroom.orm.tournament import Tournament
from tabroom.rbac import Actor, Permission, require_permission
from tabroom.schemas.tournament import PhaseCreate, PhaseUpdate, RoundCreate, RoundUpdate
from tabroom.services.draw_service import release_round_rooms, reoccupy_round_rooms
from tabroom.state_machines.stage_status import StageStateMachine

logger = logging.getLogger(__name__)


class EntityKind(str, enum.Enum):
    PHASE = "phase"
    ROUND = "round"


def _parse_kind(kind: Union[str, EntityKind]) -> EntityKind:
    try:
        return EntityKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown entity kind '{kind}'", details={"allowed": [k.value for k in EntityKind]})


def _parse_status(status: Union[str, StageStatus]) -> StageStatus:
    try:
        return StageStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown status '{status}'", details={"allowed": [s.value for s in StageStatus]})


# =============================================================================
# Chain Helpers
# =============================================================================

async def phase_ancestry(db: AsyncSession, phase_id: UUID) -> List[UUID]:
    """Ids from phase_id back to the root of its chain, phase_id first."""
    chain = []
    current = phase_id
    while current is not None and current not in chain:
        chain.append(current)
        result = await db.execute(select(Phase.previous_phase_id).where(Phase.id == current))
        current = result.scalar_one_or_none()
    return chain


async def _round_ancestry(db: AsyncSession, round_id: UUID) -> List[UUID]:
    chain = []
    current = round_id
    while current is not None and current not in chain:
        chain.append(current)
        result = await db.execute(select(Round.previous_round_id).where(Round.id == current))
        current = result.scalar_one_or_none()
    return chain


async def _validate_phase_predecessor(
    db: AsyncSession,
    tournament_id: UUID,
    previous_phase_id: UUID,
    phase_id: Optional[UUID] = None
) -> Phase:
    if phase_id is not None and previous_phase_id == phase_id:
        raise ValidationError("A phase cannot be its own predecessor", code=ErrorCode.INVALID_PREDECESSOR)

    predecessor = await get_entity(db, Phase, previous_phase_id)
    if predecessor.tournament_id != tournament_id:
        raise ValidationError(
            f"Phase {previous_phase_id} belongs to another tournament",
            code=ErrorCode.INVALID_PREDECESSOR
        )
    if predecessor.status != StageStatus.COMPLETED:
        raise ValidationError(
            f"Predecessor phase {previous_phase_id} is {predecessor.status.value}, not completed",
            code=ErrorCode.INVALID_PREDECESSOR
        )

    query = select(Phase.id).where(Phase.previous_phase_id == previous_phase_id)
    if phase_id is not None:
        query = query.where(Phase.id != phase_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError(
            f"Phase {previous_phase_id} already precedes another phase",
            code=ErrorCode.CONFLICT
        )

    if phase_id is not None and phase_id in await phase_ancestry(db, previous_phase_id):
        raise ConflictError(
            "Linking these phases would create a cycle",
            code=ErrorCode.CYCLIC_PREDECESSOR
        )
    return predecessor


async def _validate_round_predecessor(
    db: AsyncSession,
    phase: Phase,
    previous_round_id: UUID,
    round_id: Optional[UUID] = None
) -> Round:
    if round_id is not None and previous_round_id == round_id:
        raise ValidationError("A round cannot be its own predecessor", code=ErrorCode.INVALID_PREDECESSOR)

    predecessor = await get_entity(db, Round, previous_round_id)
    if predecessor.phase_id not in (phase.id, phase.previous_phase_id):
        raise ValidationError(
            f"Round {previous_round_id} is not from this phase or the one before it",
            code=ErrorCode.INVALID_PREDECESSOR
        )
    if predecessor.status != StageStatus.COMPLETED:
        raise ValidationError(
            f"Predecessor round {previous_round_id} is {predecessor.status.value}, not completed",
            code=ErrorCode.INVALID_PREDECESSOR
        )

    query = select(Round.id).where(Round.previous_round_id == previous_round_id)
    if round_id is not None:
        query = query.where(Round.id != round_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError(
            f"Round {previous_round_id} already precedes another round",
            code=ErrorCode.CONFLICT
        )

    if round_id is not None and round_id in await _round_ancestry(db, previous_round_id):
        raise ConflictError(
            "Linking these rounds would create a cycle",
            code=ErrorCode.CYCLIC_PREDECESSOR
        )
    return predecessor


async def _other_root_phase(db: AsyncSession, tournament_id: UUID, exclude_id: Optional[UUID] = None) -> Optional[UUID]:
    query = select(Phase.id).where(
        Phase.tournament_id == tournament_id,
        Phase.previous_phase_id.is_(None)
    )
    if exclude_id is not None:
        query = query.where(Phase.id != exclude_id)
    result = await db.execute(query)
    return result.scalars().first()


# =============================================================================
# Creation
# =============================================================================

async def create_phase(tournament_id: UUID, data: PhaseCreate, actor: Actor, db: AsyncSession) -> Phase:
    require_permission(actor, Permission.WRITE_STRUCTURE, tournament_id)

    name = data.name.strip()
    if not name:
        raise ValidationError("Phase name must not be empty")
    if data.is_finals and data.group_size is not None:
        raise ValidationError("A finals phase cannot define a group size")
    if data.group_size is not None and data.group_size < 2:
        raise ValidationError("group_size must be at least 2", details={"group_size": data.group_size})

    async with transaction(db):
        await get_entity(db, Tournament, tournament_id)

        existing = await db.execute(
            select(Phase.id).where(Phase.tournament_id == tournament_id, Phase.name == name)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(f"Phase '{name}' already exists in this tournament", code=ErrorCode.DUPLICATE_ENTRY)

        if data.previous_phase_id is not None:
            await _validate_phase_predecessor(db, tournament_id, data.previous_phase_id)
        elif await _other_root_phase(db, tournament_id) is not None:
            raise ConflictError(
                "Tournament already has a first phase; later phases need a predecessor",
                code=ErrorCode.CONFLICT
            )

        phase = await create_entity(
            db,
            Phase,
            tournament_id=tournament_id,
            name=name,
            is_finals=data.is_finals,
            previous_phase_id=data.previous_phase_id,
            group_size=data.group_size,
            status=StageStatus.DRAFT,
        )

    logger.info(f"Created phase {phase.id} '{name}' in tournament {tournament_id}")
    return phase


async def create_round(phase_id: UUID, data: RoundCreate, actor: Actor, db: AsyncSession) -> Round:
    name = data.name.strip()
    if not name:
        raise ValidationError("Round name must not be empty")
    if (
        data.planned_start_time is not None
        and data.planned_end_time is not None
        and data.planned_start_time > data.planned_end_time
    ):
        raise ValidationError("Planned start must not be after planned end")

    async with transaction(db):
        phase = await get_entity(db, Phase, phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        if phase.status in TERMINAL_STATUSES:
            raise StateError(f"Phase {phase_id} is {phase.status.value}; no rounds can be added")

        existing = await db.execute(
            select(Round.id).where(Round.phase_id == phase_id, Round.name == name)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(f"Round '{name}' already exists in this phase", code=ErrorCode.DUPLICATE_ENTRY)

        if data.motion_id is not None:
            await get_entity(db, Motion, data.motion_id)
        if data.previous_round_id is not None:
            await _validate_round_predecessor(db, phase, data.previous_round_id)

        round_obj = await create_entity(
            db,
            Round,
            phase_id=phase_id,
            name=name,
            planned_start_time=data.planned_start_time,
            planned_end_time=data.planned_end_time,
            motion_id=data.motion_id,
            previous_round_id=data.previous_round_id,
            status=StageStatus.DRAFT,
        )

    logger.info(f"Created round {round_obj.id} '{name}' in phase {phase_id}")
    return round_obj


# =============================================================================
# Predecessor Re-linking
# =============================================================================

async def link_previous_phase(
    phase_id: UUID,
    previous_phase_id: Optional[UUID],
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Phase:
    """Point an existing phase at a new predecessor, or detach it with None."""
    async with transaction(db):
        phase = await lock_entity(db, Phase, phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(phase, expected_version)

        if previous_phase_id is None:
            if await _other_root_phase(db, phase.tournament_id, exclude_id=phase_id) is not None:
                raise ConflictError(
                    "Tournament already has a first phase",
                    code=ErrorCode.CONFLICT
                )
        else:
            await _validate_phase_predecessor(db, phase.tournament_id, previous_phase_id, phase_id=phase_id)

        phase.previous_phase_id = previous_phase_id
        await db.flush()

    logger.info(f"Phase {phase_id} predecessor set to {previous_phase_id}")
    return phase


async def link_previous_round(
    round_id: UUID,
    previous_round_id: Optional[UUID],
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Round:
    async with transaction(db):
        round_obj = await lock_entity(db, Round, round_id)
        phase = await get_entity(db, Phase, round_obj.phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(round_obj, expected_version)

        if previous_round_id is not None:
            await _validate_round_predecessor(db, phase, previous_round_id, round_id=round_id)

        round_obj.previous_round_id = previous_round_id
        await db.flush()

    logger.info(f"Round {round_id} predecessor set to {previous_round_id}")
    return round_obj


# =============================================================================
# Editing and Removal
# =============================================================================

async def update_phase(
    phase_id: UUID,
    data: PhaseUpdate,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Phase:
    """
    Edit a non-terminal phase. An explicit group_size of None clears it.

    Raises:
        StateError: the phase is COMPLETED or CANCELLED
        ValidationError: duplicate name or an invalid finals/group_size pair
    """
    fields = data.model_dump(exclude_unset=True)
    for key in ("name", "is_finals"):
        if key in fields and fields[key] is None:
            del fields[key]
    if "name" in fields:
        fields["name"] = fields["name"].strip()
        if not fields["name"]:
            raise ValidationError("Phase name must not be empty")

    async with transaction(db):
        phase = await lock_entity(db, Phase, phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(phase, expected_version)
        if phase.status in TERMINAL_STATUSES:
            raise StateError(f"Phase {phase_id} is {phase.status.value} and can no longer be edited")

        is_finals = fields.get("is_finals", phase.is_finals)
        group_size = fields.get("group_size", phase.group_size)
        if is_finals and group_size is not None:
            raise ValidationError("A finals phase cannot define a group size")
        if group_size is not None and group_size < 2:
            raise ValidationError("group_size must be at least 2", details={"group_size": group_size})

        if "name" in fields:
            existing = await db.execute(
                select(Phase.id).where(
                    Phase.tournament_id == phase.tournament_id,
                    Phase.name == fields["name"],
                    Phase.id != phase_id
                )
            )
            if existing.first() is not None:
                raise ValidationError(
                    f"Phase '{fields['name']}' already exists in this tournament",
                    code=ErrorCode.DUPLICATE_ENTRY
                )

        await update_entity(db, phase, **fields)

    logger.info(f"Updated phase {phase_id}: {sorted(fields)}")
    return phase


async def delete_phase(
    phase_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> None:
    """Only a DRAFT phase without rounds can be deleted."""
    async with transaction(db):
        phase = await lock_entity(db, Phase, phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(phase, expected_version)
        if phase.status != StageStatus.DRAFT:
            raise StateError(f"Phase {phase_id} is {phase.status.value}; only draft phases can be deleted")

        rounds = await db.execute(select(func.count(Round.id)).where(Round.phase_id == phase_id))
        remaining = rounds.scalar_one()
        if remaining:
            raise ConflictError(
                f"Phase {phase_id} still has {remaining} rounds",
                details={"rounds": remaining}
            )

        await delete_entity(db, Phase, phase_id)

    logger.info(f"Deleted phase {phase_id}")


async def update_round(
    round_id: UUID,
    data: RoundUpdate,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> Round:
    """
    Edit a non-terminal round's name, motion or planned times. Explicit None
    clears the motion or a planned time.

    Raises:
        StateError: the round is COMPLETED or CANCELLED
        ValidationError: duplicate name or planned start after planned end
        NotFoundError: unknown motion
    """
    fields = data.model_dump(exclude_unset=True)
    if "name" in fields and fields["name"] is None:
        del fields["name"]
    if "name" in fields:
        fields["name"] = fields["name"].strip()
        if not fields["name"]:
            raise ValidationError("Round name must not be empty")

    async with transaction(db):
        round_obj = await lock_entity(db, Round, round_id)
        phase = await get_entity(db, Phase, round_obj.phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(round_obj, expected_version)
        if round_obj.status in TERMINAL_STATUSES:
            raise StateError(f"Round {round_id} is {round_obj.status.value} and can no longer be edited")

        start = fields.get("planned_start_time", round_obj.planned_start_time)
        end = fields.get("planned_end_time", round_obj.planned_end_time)
        if start is not None and end is not None and start > end:
            raise ValidationError("Planned start must not be after planned end")

        if fields.get("motion_id") is not None:
            await get_entity(db, Motion, fields["motion_id"])

        if "name" in fields:
            existing = await db.execute(
                select(Round.id).where(
                    Round.phase_id == round_obj.phase_id,
                    Round.name == fields["name"],
                    Round.id != round_id
                )
            )
            if existing.first() is not None:
                raise ValidationError(
                    f"Round '{fields['name']}' already exists in this phase",
                    code=ErrorCode.DUPLICATE_ENTRY
                )

        await update_entity(db, round_obj, **fields)

    logger.info(f"Updated round {round_id}: {sorted(fields)}")
    return round_obj


async def delete_round(
    round_id: UUID,
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None
) -> None:
    """Only a DRAFT round without a draw can be deleted."""
    async with transaction(db):
        round_obj = await lock_entity(db, Round, round_id)
        phase = await get_entity(db, Phase, round_obj.phase_id)
        require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
        check_version(round_obj, expected_version)
        if round_obj.status != StageStatus.DRAFT:
            raise StateError(f"Round {round_id} is {round_obj.status.value}; only draft rounds can be deleted")

        drawn = await db.execute(select(func.count(Debate.id)).where(Debate.round_id == round_id))
        if drawn.scalar_one():
            raise ConflictError(
                f"Round {round_id} has a draw; discard it first",
                code=ErrorCode.ALREADY_DRAWN
            )

        await delete_entity(db, Round, round_id)

    logger.info(f"Deleted round {round_id}")


# =============================================================================
# Status Transitions
# =============================================================================

async def _transition_phase(
    db: AsyncSession,
    phase: Phase,
    new_status: StageStatus,
    actor: Actor,
    reason: Optional[str]
) -> None:
    machine = StageStateMachine(db, phase)
    machine.ensure_transition(new_status)

    if new_status == StageStatus.COMPLETED:
        open_rounds = await db.execute(
            select(func.count(Round.id)).where(
                Round.phase_id == phase.id,
                Round.status.not_in(TERMINAL_STATUSES)
            )
        )
        remaining = open_rounds.scalar_one()
        if remaining:
            raise StateError(
                f"Phase {phase.id} still has {remaining} open rounds",
                code=ErrorCode.PREREQUISITE_NOT_MET,
                details={"open_rounds": remaining}
            )

    await machine.transition(new_status, actor.user_id, reason)

    if new_status == StageStatus.CANCELLED:
        result = await db.execute(
            select(Round)
            .where(Round.phase_id == phase.id, Round.status.not_in(TERMINAL_STATUSES))
            .with_for_update()
        )
        for round_obj in result.scalars().all():
            await StageStateMachine(db, round_obj).transition(
                StageStatus.CANCELLED, actor.user_id, reason or "phase cancelled"
            )
            await release_round_rooms(db, round_obj.id)


async def _transition_round(
    db: AsyncSession,
    round_obj: Round,
    phase: Phase,
    new_status: StageStatus,
    actor: Actor,
    reason: Optional[str]
) -> None:
    machine = StageStateMachine(db, round_obj)
    machine.ensure_transition(new_status)

    if new_status == StageStatus.IN_PROGRESS and phase.status != StageStatus.IN_PROGRESS:
        raise StateError(
            f"Round cannot start while its phase is {phase.status.value}",
            code=ErrorCode.PREREQUISITE_NOT_MET
        )

    await machine.transition(new_status, actor.user_id, reason)

    if new_status in TERMINAL_STATUSES:
        await release_round_rooms(db, round_obj.id)


async def transition_status(
    kind: Union[str, EntityKind],
    entity_id: UUID,
    new_status: Union[str, StageStatus],
    actor: Actor,
    db: AsyncSession,
    expected_version: Optional[int] = None,
    reason: Optional[str] = None
) -> Union[Phase, Round]:
    """
    Move a phase or round forward through its lifecycle.

    Raises:
        StateError: transition not allowed or a prerequisite is unmet
        ConflictError: expected_version is stale or a concurrent writer won
    """
    kind = _parse_kind(kind)
    new_status = _parse_status(new_status)

    async with transaction(db):
        if kind == EntityKind.PHASE:
            entity = await lock_entity(db, Phase, entity_id)
            require_permission(actor, Permission.WRITE_STRUCTURE, entity.tournament_id)
            check_version(entity, expected_version)
            await _transition_phase(db, entity, new_status, actor, reason)
        else:
            entity = await lock_entity(db, Round, entity_id)
            phase = await get_entity(db, Phase, entity.phase_id)
            require_permission(actor, Permission.WRITE_STRUCTURE, phase.tournament_id)
            check_version(entity, expected_version)
            await _transition_round(db, entity, phase, new_status, actor, reason)

    return entity


async def reopen(
    kind: Union[str, EntityKind],
    entity_id: UUID,
    actor: Actor,
    db: AsyncSession,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None
) -> Union[Phase, Round]:
    """Administrative override: COMPLETED -> IN_PROGRESS, recorded in the transition log."""
    kind = _parse_kind(kind)

    async with transaction(db):
        if kind == EntityKind.PHASE:
            entity = await lock_entity(db, Phase, entity_id)
            require_permission(actor, Permission.OVERRIDE_STATUS, entity.tournament_id)
            check_version(entity, expected_version)
            await StageStateMachine(db, entity).reopen(actor.user_id, reason)
        else:
            entity = await lock_entity(db, Round, entity_id)
            phase = await get_entity(db, Phase, entity.phase_id)
            require_permission(actor, Permission.OVERRIDE_STATUS, phase.tournament_id)
            check_version(entity, expected_version)
            if phase.status in TERMINAL_STATUSES:
                raise StateError(
                    f"Cannot reopen a round while its phase is {phase.status.value}",
                    code=ErrorCode.PREREQUISITE_NOT_MET
                )
            await StageStateMachine(db, entity).reopen(actor.user_id, reason)
            await reoccupy_round_rooms(db, entity.id)

    return entity


# =============================================================================
# Queries
# =============================================================================

async def get_phase_chain(phase_id: UUID, db: AsyncSession) -> List[Phase]:
    """The phase and its ancestors, first phase first."""
    await get_entity(db, Phase, phase_id)
    ids = list(reversed(await phase_ancestry(db, phase_id)))
    return [await get_entity(db, Phase, pid) for pid in ids]


async def list_phases(tournament_id: UUID, db: AsyncSession) -> List[Phase]:
    result = await db.execute(
        select(Phase).where(Phase.tournament_id == tournament_id).order_by(Phase.created_at, Phase.name)
    )
    return list(result.scalars())


async def list_rounds(phase_id: UUID, db: AsyncSession) -> List[Round]:
    await get_entity(db, Phase, phase_id)
    result = await db.execute(
        select(Round).where(Round.phase_id == phase_id).order_by(Round.created_at, Round.name)
    )
    return list(result.scalars())
