from sqlalchemy import Column, Text

from tabroom.orm.base import BaseModel


class Motion(BaseModel):
    __tablename__ = "motions"

    motion = Column(Text, unique=True, nullable=False)
    adinfo = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Motion(id={self.id})>"
