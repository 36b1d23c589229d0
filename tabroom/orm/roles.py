"""
Per-tournament role assignments and judge/team affiliations.
"""
from sqlalchemy import Column, ForeignKey, UniqueConstraint, Uuid

from tabroom.core.db_types import RoleTags
from tabroom.orm.base import BaseModel


class TournamentRole(BaseModel):
    __tablename__ = "roles"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    roles = Column(RoleTags, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("user_id", "tournament_id", name="uq_role_user_tournament"),
    )


class Affiliation(BaseModel):
    """A judge affiliated with a team may never judge that team."""
    __tablename__ = "affiliations"

    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    judge_user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("tournament_id", "team_id", "judge_user_id", name="uq_affiliation"),
    )
