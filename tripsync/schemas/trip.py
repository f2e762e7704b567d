"""
Trip and itinerary location schemas
"""

from datetime import date as date_type
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, model_validator

def parse_date_range(descriptor: str) -> Tuple[date_type, date_type]:
    """Split a "start~end" descriptor into two dates"""
    parts = descriptor.split("~")
    if len(parts) != 2:
        raise ValueError(f"Invalid date range descriptor: {descriptor!r}")
    start, end = (date_type.fromisoformat(part.strip()) for part in parts)
    if start > end:
        raise ValueError("Trip start date is after its end date")
    return start, end

class LocationCreate(BaseModel):
    """A stop on one day of the itinerary"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    address: str = ""
    visit_time: str = Field("", alias="visitTime")
    category: str = ""
    hashtag: str = ""
    thumbnail: Optional[str] = None

class TripDay(BaseModel):
    day: int = Field(ge=1)
    destination: str = ""
    locations: List[LocationCreate] = []

class TripCreate(BaseModel):
    """Schema for finalizing a group's schedule into a trip.

    Either `date` ("start~end") or explicit `startDate`/`endDate` is accepted.
    """
    model_config = ConfigDict(populate_by_name=True)

    group_id: int = Field(alias="groupId")
    group_name: Optional[str] = Field(None, alias="groupName")
    group_thumbnail: Optional[str] = Field(None, alias="groupThumbnail")
    date: Optional[str] = None
    start_date: Optional[date_type] = Field(None, alias="startDate")
    end_date: Optional[date_type] = Field(None, alias="endDate")
    days: List[TripDay] = []

    @model_validator(mode="after")
    def resolve_dates(self):
        if self.date:
            self.start_date, self.end_date = parse_date_range(self.date)
        if self.start_date is None or self.end_date is None:
            raise ValueError("Trip dates are required")
        if self.start_date > self.end_date:
            raise ValueError("Trip start date is after its end date")
        return self

class LocationDayCreate(LocationCreate):
    """A stop posted under a trip path; the trip comes from the URL"""
    day: int = Field(ge=1)
    destination: str = ""

class LocationAdd(LocationDayCreate):
    trip_id: int = Field(alias="tripId")

class LocationUpdate(BaseModel):
    """Partial location update; `version` enables the conflict check"""
    model_config = ConfigDict(populate_by_name=True)

    location_id: int = Field(alias="locationId")
    name: Optional[str] = None
    address: Optional[str] = None
    visit_time: Optional[str] = Field(None, alias="visitTime")
    category: Optional[str] = None
    hashtag: Optional[str] = None
    thumbnail: Optional[str] = None
    version: Optional[int] = None

    def changes(self) -> dict:
        return self.model_dump(
            exclude={"location_id", "version"}, exclude_unset=True, exclude_none=True
        )
