"""
Append-only ledgers: recorded point deltas and status transitions.

Standings are derived from ScoreEntry rows alone; attendee accumulators are
a convenience copy and never authoritative.
"""
from datetime import datetime

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, Index, Uuid

from tabroom.orm.base import BaseModel


class ScoreEntry(BaseModel):
    __tablename__ = "score_entries"

    debate_id = Column(Uuid, ForeignKey("debates.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Uuid, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Uuid, ForeignKey("teams.id"), nullable=False, index=True)
    attendee_id = Column(Uuid, ForeignKey("attendees.id"), nullable=False, index=True)
    individual_points = Column(Integer, nullable=False, default=0)
    penalty_points = Column(Integer, nullable=False, default=0)
    recorded_by = Column(Uuid, ForeignKey("users.id"), nullable=True)


class StatusTransitionLog(BaseModel):
    __tablename__ = "status_transition_log"

    entity_type = Column(String(20), nullable=False)  # "phase" | "round"
    entity_id = Column(Uuid, nullable=False)
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    actor_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    is_override = Column(Boolean, nullable=False, default=False)
    reason = Column(Text, nullable=True)
    transitioned_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_status_log_entity", "entity_type", "entity_id"),
    )
