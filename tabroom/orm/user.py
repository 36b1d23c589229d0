"""
User model.

Users are the identities behind judges, marshals and staff. Credentials
are owned by the identity collaborator and never stored here.
"""
from sqlalchemy import Column, String, Text

from tabroom.orm.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    handle = Column(String(100), unique=True, nullable=False, index=True)
    picture_link = Column(Text, nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, handle={self.handle})>"

    def to_dict(self):
        return {
            "id": str(self.id),
            "handle": self.handle,
            "picture_link": self.picture_link,
        }
