"""
Shared expense models
"""

from datetime import date, datetime
from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String

from tripsync.core.db import Base

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    category = Column(String(100), nullable=False)
    description = Column(String(500), default="")
    total_price = Column(Integer, nullable=False)
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, default=date.today)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

class PaymentShare(Base):
    """One member's part of an evenly split payment"""

    __tablename__ = "payment_shares"

    payment_id = Column(Integer, ForeignKey("payments.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    is_paid = Column(Boolean, default=False, nullable=False)
