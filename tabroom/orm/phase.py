"""
Phase and Round models.

A Phase is a stage of a tournament (group stage, elimination bracket).
A Round is one set of simultaneous debates inside a Phase. Both carry the
same five-state lifecycle and a version counter for optimistic locking.
"""
import enum

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Enum, Index, UniqueConstraint, Uuid
)

from tabroom.orm.base import BaseModel


class StageStatus(str, enum.Enum):
    """Lifecycle states shared by Phase and Round."""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (StageStatus.COMPLETED, StageStatus.CANCELLED)


class Phase(BaseModel):
    __tablename__ = "phases"

    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_finals = Column(Boolean, nullable=False, default=False)
    previous_phase_id = Column(Uuid, ForeignKey("phases.id"), nullable=True, unique=True)
    group_size = Column(Integer, nullable=True)
    status = Column(Enum(StageStatus), nullable=False, default=StageStatus.DRAFT, index=True)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "name", name="uq_phase_tournament_name"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Phase(id={self.id}, name={self.name}, status={self.status})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "tournament_id": str(self.tournament_id),
            "name": self.name,
            "is_finals": self.is_finals,
            "previous_phase_id": str(self.previous_phase_id) if self.previous_phase_id else None,
            "group_size": self.group_size,
            "status": self.status.value,
            "version": self.version,
        }


class Round(BaseModel):
    __tablename__ = "rounds"

    phase_id = Column(Uuid, ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    planned_start_time = Column(DateTime, nullable=True)
    planned_end_time = Column(DateTime, nullable=True)
    motion_id = Column(Uuid, ForeignKey("motions.id"), nullable=True)
    previous_round_id = Column(Uuid, ForeignKey("rounds.id"), nullable=True, unique=True)
    status = Column(Enum(StageStatus), nullable=False, default=StageStatus.DRAFT, index=True)
    draw_updated_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("phase_id", "name", name="uq_round_phase_name"),
        Index("ix_rounds_phase_status", "phase_id", "status"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Round(id={self.id}, name={self.name}, status={self.status})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "phase_id": str(self.phase_id),
            "name": self.name,
            "planned_start_time": self.planned_start_time.isoformat() if self.planned_start_time else None,
            "planned_end_time": self.planned_end_time.isoformat() if self.planned_end_time else None,
            "motion_id": str(self.motion_id) if self.motion_id else None,
            "previous_round_id": str(self.previous_round_id) if self.previous_round_id else None,
            "status": self.status.value,
            "version": self.version,
        }
