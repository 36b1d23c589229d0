"""
tabroom/schemas/tournament.py
Pydantic models for tournament registry and structure operations.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TournamentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    shortened_name: str = Field(..., min_length=1, max_length=100)
    speech_time: int = Field(300, ge=0, description="Seconds")
    end_protected_time: int = Field(30, ge=0, description="Seconds")
    start_protected_time: int = Field(0, ge=0, description="Seconds")
    ad_vocem_time: int = Field(60, ge=0, description="Seconds")
    debate_time_slot: int = Field(120, ge=0, description="Minutes")
    debate_preparation_time: int = Field(15, ge=0, description="Minutes")
    beep_on_speech_end: bool = True
    beep_on_protected_time: bool = True
    visualize_protected_times: bool = True


class TournamentTimingUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""
    speech_time: Optional[int] = Field(None, ge=0)
    end_protected_time: Optional[int] = Field(None, ge=0)
    start_protected_time: Optional[int] = Field(None, ge=0)
    ad_vocem_time: Optional[int] = Field(None, ge=0)
    debate_time_slot: Optional[int] = Field(None, ge=0)
    debate_preparation_time: Optional[int] = Field(None, ge=0)
    beep_on_speech_end: Optional[bool] = None
    beep_on_protected_time: Optional[bool] = None
    visualize_protected_times: Optional[bool] = None


class PhaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    is_finals: bool = False
    previous_phase_id: Optional[UUID] = None
    group_size: Optional[int] = None


class RoundCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    previous_round_id: Optional[UUID] = None
    motion_id: Optional[UUID] = None
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None


class PhaseUpdate(BaseModel):
    """Partial update; predecessor changes go through link_previous_phase."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_finals: Optional[bool] = None
    group_size: Optional[int] = None


class RoundUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    motion_id: Optional[UUID] = None
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None


class TeamCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    shortened_name: str = Field(..., min_length=1, max_length=100)


class TeamUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    shortened_name: Optional[str] = Field(None, min_length=1, max_length=100)


class AttendeeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    position: Optional[int] = Field(None, ge=0)
    user_id: Optional[UUID] = None


class AttendeeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    position: Optional[int] = Field(None, ge=0)


class MotionCreate(BaseModel):
    motion: str = Field(..., min_length=1)
    adinfo: Optional[str] = None


class MotionUpdate(BaseModel):
    motion: Optional[str] = Field(None, min_length=1)
    adinfo: Optional[str] = None


class LocationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None
    remarks: Optional[str] = None


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None
    remarks: Optional[str] = None


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    remarks: Optional[str] = None


class RoomUpdate(BaseModel):
    """Occupancy is owned by the draw engine and cannot be patched."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    remarks: Optional[str] = None


class RoleAssignment(BaseModel):
    user_id: UUID
    roles: List[str] = Field(default_factory=list)
