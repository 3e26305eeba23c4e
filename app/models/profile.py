# app/models/profile.py

from sqlalchemy import Column, String
from infrastructure.postgres_connection import Base


class Profile(Base):
    """Public profile of an identity, owned by the profile directory"""
    __tablename__ = "profiles"

    user_id = Column(String(255), primary_key=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(1000), nullable=True)

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, full_name='{self.full_name}')>"
