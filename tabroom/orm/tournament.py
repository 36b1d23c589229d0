"""
Tournament model.

Holds the timing configuration shared by every debate of the tournament:
speech and protected times are in seconds, slots and preparation in minutes.
"""
from sqlalchemy import Column, String, Integer, Boolean

from tabroom.orm.base import BaseModel


class Tournament(BaseModel):
    __tablename__ = "tournaments"

    full_name = Column(String(255), unique=True, nullable=False)
    shortened_name = Column(String(100), nullable=False)

    # Timing configuration
    speech_time = Column(Integer, nullable=False, default=300)
    end_protected_time = Column(Integer, nullable=False, default=30)
    start_protected_time = Column(Integer, nullable=False, default=0)
    ad_vocem_time = Column(Integer, nullable=False, default=60)
    debate_time_slot = Column(Integer, nullable=False, default=120)
    debate_preparation_time = Column(Integer, nullable=False, default=15)
    beep_on_speech_end = Column(Boolean, nullable=False, default=True)
    beep_on_protected_time = Column(Boolean, nullable=False, default=True)
    visualize_protected_times = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Tournament(id={self.id}, shortened_name={self.shortened_name})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "shortened_name": self.shortened_name,
            "speech_time": self.speech_time,
            "end_protected_time": self.end_protected_time,
            "start_protected_time": self.start_protected_time,
            "ad_vocem_time": self.ad_vocem_time,
            "debate_time_slot": self.debate_time_slot,
            "debate_preparation_time": self.debate_preparation_time,
            "beep_on_speech_end": self.beep_on_speech_end,
            "beep_on_protected_time": self.beep_on_protected_time,
            "visualize_protected_times": self.visualize_protected_times,
        }
