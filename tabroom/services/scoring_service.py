"""
Scoring Ledger

record_result appends one ScoreEntry per attendee and mirrors the deltas
onto the attendee accumulators. A debate accepts one submission. Standings
are always recomputed from the ScoreEntry rows; the accumulators are never
read back for ranking.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.core.entity_store import get_entity, lock_entity, transaction
from tabroom.errors import ErrorCode, ForbiddenError, StateError, ValidationError
from tabroom.orm.debate import Debate, DebateJudgeAssignment, DebateTeamAssignment
from tabroom.orm.ledger import ScoreEntry
from tabroom.orm.phase import Phase, Round, StageStatus
from tabroom.orm.team import Attendee, Team
from tabroom.rbac import Actor, Permission, require_permission
from tabroom.schemas.draw import ScoreDelta, TeamStanding
from tabroom.services.structure_service import phase_ancestry

logger = logging.getLogger(__name__)

RESULT_STATUSES = (StageStatus.IN_PROGRESS, StageStatus.COMPLETED)


async def _require_verdict_rights(db: AsyncSession, actor: Actor, debate: Debate) -> None:
    """Organizers may record any result; judges and marshals only their own debate."""
    require_permission(actor, Permission.READ_TOURNAMENT, debate.tournament_id)
    if actor.can(Permission.SUBMIT_VERDICT):
        return
    if actor.can(Permission.SUBMIT_OWN_VERDICT):
        if actor.user_id == debate.marshal_user_id:
            return
        panel = await db.execute(
            select(DebateJudgeAssignment.id).where(
                DebateJudgeAssignment.debate_id == debate.id,
                DebateJudgeAssignment.judge_user_id == actor.user_id
            )
        )
        if panel.first() is not None:
            return
    raise ForbiddenError("Actor may not record results for this debate")


async def record_result(
    debate_id: UUID,
    deltas: List[ScoreDelta],
    actor: Actor,
    db: AsyncSession
) -> List[ScoreEntry]:
    """
    Append per-attendee point deltas for a debate.

    Raises:
        StateError: the debate's round is not IN_PROGRESS or COMPLETED, or the
            debate already has a recorded result
        ValidationError: empty/duplicate deltas or attendee not competing in the debate
        NotFoundError: unknown debate or attendee
    """
    async with transaction(db):
        debate = await get_entity(db, Debate, debate_id)
        round_obj = await lock_entity(db, Round, debate.round_id)
        debate = await lock_entity(db, Debate, debate_id)
        await _require_verdict_rights(db, actor, debate)

        if round_obj.status not in RESULT_STATUSES:
            raise StateError(
                f"Results can be recorded only once the round is in progress (status: {round_obj.status.value})",
                code=ErrorCode.PREREQUISITE_NOT_MET,
                details={"status": round_obj.status.value}
            )
        if debate.result_recorded_at is not None:
            logger.warning(f"Rejected second result for debate {debate_id} from user={actor.user_id}")
            raise StateError(
                f"Debate {debate_id} already has a recorded result",
                details={"result_recorded_at": debate.result_recorded_at.isoformat()}
            )

        if not deltas:
            raise ValidationError("At least one attendee result is required")
        attendee_ids = [d.attendee_id for d in deltas]
        if len(set(attendee_ids)) != len(attendee_ids):
            raise ValidationError("An attendee appears more than once", code=ErrorCode.DUPLICATE_ENTRY)

        competing = await db.execute(
            select(DebateTeamAssignment.team_id).where(DebateTeamAssignment.debate_id == debate_id)
        )
        team_ids = set(competing.scalars())

        entries = []
        for delta in deltas:
            attendee = await get_entity(db, Attendee, delta.attendee_id)
            if attendee.team_id not in team_ids:
                raise ValidationError(
                    f"Attendee {delta.attendee_id} is not competing in debate {debate_id}",
                    code=ErrorCode.SCOPE_VIOLATION
                )
            entry = ScoreEntry(
                debate_id=debate_id,
                round_id=round_obj.id,
                team_id=attendee.team_id,
                attendee_id=attendee.id,
                individual_points=delta.individual_points,
                penalty_points=delta.penalty_points,
                recorded_by=actor.user_id,
            )
            db.add(entry)
            entries.append(entry)
            attendee.individual_points += delta.individual_points
            attendee.penalty_points += delta.penalty_points

        debate.result_recorded_at = datetime.utcnow()
        await db.flush()

    logger.info(f"Recorded {len(entries)} results for debate {debate_id} by user={actor.user_id}")
    return entries


async def compute_standings(phase_id: UUID, db: AsyncSession, cumulative: bool = False) -> List[TeamStanding]:
    """
    Net points per team (individual minus penalty) over debates of the
    phase's non-cancelled rounds, optionally including all ancestor phases.

    Ordered by net points desc, then penalty asc, then team name. Teams that
    were drawn but have no results appear with zero. Equal net and penalty
    share a rank.
    """
    await get_entity(db, Phase, phase_id)
    phase_ids = await phase_ancestry(db, phase_id) if cumulative else [phase_id]

    live_rounds = select(Round.id).where(
        Round.phase_id.in_(phase_ids),
        Round.status != StageStatus.CANCELLED
    )

    totals = await db.execute(
        select(
            ScoreEntry.team_id,
            func.coalesce(func.sum(ScoreEntry.individual_points), 0),
            func.coalesce(func.sum(ScoreEntry.penalty_points), 0),
        )
        .where(ScoreEntry.round_id.in_(live_rounds))
        .group_by(ScoreEntry.team_id)
    )
    sums: Dict[UUID, List[int]] = {
        team_id: [int(individual), int(penalty)]
        for team_id, individual, penalty in totals.all()
    }

    drawn = await db.execute(
        select(DebateTeamAssignment.team_id)
        .where(DebateTeamAssignment.round_id.in_(live_rounds))
        .distinct()
    )
    for team_id in drawn.scalars():
        sums.setdefault(team_id, [0, 0])

    if not sums:
        return []

    names = await db.execute(select(Team.id, Team.full_name).where(Team.id.in_(list(sums))))
    team_names = dict(names.all())

    ordered = sorted(
        sums.items(),
        key=lambda item: (
            -(item[1][0] - item[1][1]),
            item[1][1],
            team_names.get(item[0], ""),
            str(item[0]),
        )
    )

    standings = []
    previous_key: Optional[tuple] = None
    rank = 0
    for position, (team_id, (individual, penalty)) in enumerate(ordered, start=1):
        key = (individual - penalty, penalty)
        if key != previous_key:
            rank = position
            previous_key = key
        standings.append(TeamStanding(
            rank=rank,
            team_id=team_id,
            team_name=team_names.get(team_id, ""),
            individual_points=individual,
            penalty_points=penalty,
            net_points=individual - penalty,
        ))
    return standings


async def get_standings(phase_id: UUID, db: AsyncSession, cumulative: bool = False) -> List[TeamStanding]:
    return await compute_standings(phase_id, db, cumulative=cumulative)
