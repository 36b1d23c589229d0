"""
tabroom/schemas/draw.py
Draw requests, result deltas and the read models returned to the API layer.
"""
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DrawRequest(BaseModel):
    """
    Resource pools for one round's draw.

    Pools are passed by value; team_pool order decides grouping, judge_pool
    and room_pool order decide allocation. group_size falls back to the
    phase's group_size, then to the configured default.
    """
    team_pool: List[UUID]
    judge_pool: List[UUID]
    room_pool: List[UUID]
    motion_id: Optional[UUID] = None
    group_size: Optional[int] = None
    panel_size: Optional[int] = None
    marshal_pool: List[UUID] = Field(default_factory=list)
    side_policy: Optional[str] = Field(None, description="manual | seeded")
    expected_version: Optional[int] = None


class ScoreDelta(BaseModel):
    attendee_id: UUID
    individual_points: int = 0
    penalty_points: int = Field(0, ge=0)


class TeamSlot(BaseModel):
    team_id: UUID
    is_proposition: Optional[bool] = None


class DebateView(BaseModel):
    id: UUID
    round_id: UUID
    room_id: Optional[UUID] = None
    motion_id: Optional[UUID] = None
    marshal_user_id: Optional[UUID] = None
    teams: List[TeamSlot]
    judge_user_ids: List[UUID]
    has_result: bool = False


class TeamStanding(BaseModel):
    rank: int
    team_id: UUID
    team_name: str
    individual_points: int
    penalty_points: int
    net_points: int
