"""
Pydantic schemas package
"""

from .common import *
from .group import *
from .trip import *
from .payment import *
from .realtime import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "GroupCreate",
    "GroupImageUpdate",
    "LocationCreate",
    "TripDay",
    "TripCreate",
    "LocationDayCreate",
    "LocationAdd",
    "LocationUpdate",
    "parse_date_range",
    "PaymentCreate",
    "PaymentUpdate",
    "PaymentSaveRequest",
    "PaymentUpdateRequest",
    "InboundMessage",
    "GroupRef",
    "GroupUserRef",
    "DateRange",
    "CalendarSet",
    "TripCreatedNotice",
]
