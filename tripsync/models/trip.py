"""
Trip and itinerary location models
"""

from datetime import datetime
from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String

from tripsync.core.db import Base

class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def date_range(self) -> str:
        """Range descriptor in the "start~end" form clients exchange"""
        return f"{self.start_date.isoformat()}~{self.end_date.isoformat()}"

class TripLocation(Base):
    __tablename__ = "trip_locations"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    destination = Column(String(255), default="")
    name = Column(String(255), nullable=False)
    address = Column(String(500), default="")
    visit_time = Column(String(20), default="")  # HH:MM, orders stops within a day
    category = Column(String(100), default="")
    hashtag = Column(String(255), default="")
    thumbnail = Column(String(500), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
