"""
User model

Rows are written by the authentication collaborator; this service only reads
nicknames and profile images from here.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from tripsync.core.db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    nickname = Column(String(100), nullable=False)
    profile_image = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
