"""
Debate and assignment models.

A Debate is produced by the draw engine for one group of teams in a round.
Assignment rows carry the round id redundantly so the store itself enforces
that a team or judge is booked at most once per round.
"""
from sqlalchemy import Column, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint, Index, Uuid

from tabroom.orm.base import BaseModel


class Debate(BaseModel):
    __tablename__ = "debates"

    round_id = Column(Uuid, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    motion_id = Column(Uuid, ForeignKey("motions.id"), nullable=True)
    marshal_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    room_id = Column(Uuid, ForeignKey("rooms.id"), nullable=True)
    draw_position = Column(Integer, nullable=False, default=0)
    result_recorded_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("round_id", "marshal_user_id", name="uq_debate_round_marshal"),
        UniqueConstraint("round_id", "room_id", name="uq_debate_round_room"),
    )

    def __repr__(self):
        return f"<Debate(id={self.id}, round_id={self.round_id}, room_id={self.room_id})>"


class DebateTeamAssignment(BaseModel):
    __tablename__ = "debate_team_assignments"

    debate_id = Column(Uuid, ForeignKey("debates.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Uuid, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Uuid, ForeignKey("teams.id"), nullable=False)
    # None = undecided, True = proposition, False = opposition
    is_proposition = Column(Boolean, nullable=True)
    slot = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("round_id", "team_id", name="uq_team_once_per_round"),
        Index("ix_team_assignments_team", "team_id"),
    )


class DebateJudgeAssignment(BaseModel):
    __tablename__ = "debate_judge_assignments"

    debate_id = Column(Uuid, ForeignKey("debates.id", ondelete="CASCADE"), nullable=False, index=True)
    round_id = Column(Uuid, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    judge_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    slot = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("round_id", "judge_user_id", name="uq_judge_once_per_round"),
    )
