"""
Database models package
"""

from .user import User
from .group import Group, GroupMember, GroupInvite, GroupBackground, CalendarEntry, MemberRole
from .trip import Trip, TripLocation
from .payment import Payment, PaymentShare

__all__ = [
    "User",
    "Group",
    "GroupMember",
    "GroupInvite",
    "GroupBackground",
    "CalendarEntry",
    "MemberRole",
    "Trip",
    "TripLocation",
    "Payment",
    "PaymentShare",
]
