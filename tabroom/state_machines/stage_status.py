"""
Stage Status State Machine
Lifecycle enforcement shared by phases and rounds.

    DRAFT -> SCHEDULED -> IN_PROGRESS -> COMPLETED
    any non-terminal status -> CANCELLED

Transitions are forward-only. The single exception is an administrative
reopen (COMPLETED -> IN_PROGRESS), which is recorded as an override.
"""
import logging
from typing import Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tabroom.errors import ErrorCode, StateError
from tabroom.orm.ledger import StatusTransitionLog
from tabroom.orm.phase import Phase, Round, StageStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class StageStateMachine:
    """
    Applies status transitions to one Phase or Round and writes an audit
    row for each. Cross-entity rules (phase/round coupling, room release)
    are the caller's responsibility.
    """

    ALLOWED_TRANSITIONS: Dict[StageStatus, List[StageStatus]] = {
        StageStatus.DRAFT: [
            StageStatus.SCHEDULED,
            StageStatus.CANCELLED
        ],
        StageStatus.SCHEDULED: [
            StageStatus.IN_PROGRESS,
            StageStatus.CANCELLED
        ],
        StageStatus.IN_PROGRESS: [
            StageStatus.COMPLETED,
            StageStatus.CANCELLED
        ],
        StageStatus.COMPLETED: [],
        StageStatus.CANCELLED: []
    }

    def __init__(self, db: AsyncSession, entity: Union[Phase, Round]):
        self.db = db
        self.entity = entity
        self.entity_type = "phase" if isinstance(entity, Phase) else "round"

    @classmethod
    def is_valid_transition(cls, from_status: StageStatus, to_status: StageStatus) -> bool:
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, [])

    @staticmethod
    def is_terminal(status: StageStatus) -> bool:
        return status in TERMINAL_STATUSES

    def ensure_transition(self, to_status: StageStatus) -> None:
        from_status = self.entity.status
        if not self.is_valid_transition(from_status, to_status):
            raise StateError(
                f"Cannot move {self.entity_type} from {from_status.value} to {to_status.value}",
                code=ErrorCode.STATE_TRANSITION_INVALID,
                details={
                    "from": from_status.value,
                    "to": to_status.value,
                    "allowed": [s.value for s in self.ALLOWED_TRANSITIONS.get(from_status, [])]
                }
            )

    async def transition(
        self,
        to_status: StageStatus,
        actor_user_id: Optional[UUID],
        reason: Optional[str] = None
    ) -> StatusTransitionLog:
        from_status = self.entity.status
        self.ensure_transition(to_status)
        return await self._apply(from_status, to_status, actor_user_id, reason, is_override=False)

    async def reopen(
        self,
        actor_user_id: Optional[UUID],
        reason: Optional[str] = None
    ) -> StatusTransitionLog:
        from_status = self.entity.status
        if from_status != StageStatus.COMPLETED:
            raise StateError(
                f"Only a completed {self.entity_type} can be reopened (status: {from_status.value})",
                code=ErrorCode.STATE_TRANSITION_INVALID
            )
        logger.warning(
            f"Override: reopening {self.entity_type} {self.entity.id} by user={actor_user_id} "
            f"reason={reason!r}"
        )
        return await self._apply(from_status, StageStatus.IN_PROGRESS, actor_user_id, reason, is_override=True)

    async def _apply(
        self,
        from_status: StageStatus,
        to_status: StageStatus,
        actor_user_id: Optional[UUID],
        reason: Optional[str],
        is_override: bool
    ) -> StatusTransitionLog:
        self.entity.status = to_status
        entry = StatusTransitionLog(
            entity_type=self.entity_type,
            entity_id=self.entity.id,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_user_id=actor_user_id,
            is_override=is_override,
            reason=reason,
        )
        self.db.add(entry)
        await self.db.flush()
        logger.info(
            f"{self.entity_type} {self.entity.id}: {from_status.value} -> {to_status.value}"
        )
        return entry
