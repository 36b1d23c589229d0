"""
Location and Room models.

is_occupied is set by the draw engine while a live debate holds the room
and cleared when its round reaches a terminal status.
"""
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, UniqueConstraint, Uuid

from tabroom.orm.base import BaseModel


class Location(BaseModel):
    __tablename__ = "locations"

    tournament_id = Column(Uuid, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    remarks = Column(Text, nullable=True)


class Room(BaseModel):
    __tablename__ = "rooms"

    location_id = Column(Uuid, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    remarks = Column(Text, nullable=True)
    is_occupied = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("location_id", "name", name="uq_room_location_name"),
    )
