"""
Team and Attendee models.
"""
from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint, Uuid

from tabroom.orm.base import BaseModel


class Team(BaseModel):
    __tablename__ = "teams"

    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    shortened_name = Column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "full_name", name="uq_team_tournament_name"),
    )

    def __repr__(self):
        return f"<Team(id={self.id}, shortened_name={self.shortened_name})>"


class Attendee(BaseModel):
    """
    A speaker. May be detached from its team (team_id NULL) without losing
    its recorded results. Point accumulators are written only by the
    scoring ledger.
    """
    __tablename__ = "attendees"

    name = Column(String(255), nullable=False)
    team_id = Column(Uuid, ForeignKey("teams.id"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    position = Column(Integer, nullable=True)
    individual_points = Column(Integer, nullable=False, default=0)
    penalty_points = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("team_id", "position", name="uq_attendee_team_position"),
    )

    def __repr__(self):
        return f"<Attendee(id={self.id}, name={self.name}, team_id={self.team_id})>"
