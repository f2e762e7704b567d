"""
Inbound realtime message payloads
"""

from datetime import date
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

class InboundMessage(BaseModel):
    """Envelope of every client message; payload fields sit beside `type`"""
    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)

class GroupRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    group_id: int = Field(alias="groupId")

class GroupUserRef(GroupRef):
    user_id: Optional[int] = Field(None, alias="userId")

class DateRange(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self):
        if self.start > self.end:
            raise ValueError("start date is after end date")
        return self

class CalendarSet(GroupUserRef):
    date_range: DateRange = Field(alias="dateRange")

class TripCreatedNotice(GroupRef):
    trip_id: int = Field(alias="tripId")
