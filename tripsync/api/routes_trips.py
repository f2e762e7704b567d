"""
Trip and itinerary API routes
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from tripsync.api.deps import get_event_handlers, get_membership_service, get_trip_service
from tripsync.realtime.handlers import GroupEventHandlers
from tripsync.schemas.trip import LocationAdd, LocationDayCreate, LocationUpdate, TripCreate
from tripsync.services.membership_service import MembershipService
from tripsync.services.trip_service import TripService
from tripsync.utils.responses import success_response
from tripsync.utils.security import get_current_user_id

router = APIRouter()

@router.post("")
async def create_trip(
    trip_data: TripCreate,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Finalize the group's schedule into a trip"""
    trip = await run_in_threadpool(trips.create_trip, user_id, trip_data)
    return success_response(message="Trip created successfully", data=trip, status_code=201)

@router.get("/mine")
async def get_my_trips(
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Trips of every group the caller belongs to"""
    data = await run_in_threadpool(trips.list_user_trips, user_id)
    return success_response(message="Trips retrieved", data=data)

@router.get("/history")
async def get_trip_history(
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Past trips of the caller's finished groups, latest first"""
    data = await run_in_threadpool(trips.list_history, user_id)
    return success_response(message="Trip history retrieved", data=data)

@router.get("/groups/{group_id}")
async def get_group_trip(
    group_id: int,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Trip id of an existing group"""
    data = await run_in_threadpool(trips.trip_for_group, group_id, user_id)
    return success_response(message="Trip retrieved", data=data)

@router.put("/groups/{group_id}/locations")
async def update_location(
    group_id: int,
    update: LocationUpdate,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Edit a stop; send the last seen `version` to detect concurrent edits"""
    location = await run_in_threadpool(trips.update_location, group_id, user_id, update)
    return success_response(message="Location updated", data=location)

@router.delete("/locations/{location_id}")
async def delete_location(
    location_id: int,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    data = await run_in_threadpool(trips.delete_location, location_id, user_id)
    return success_response(message="Location deleted", data=data)

@router.get("/{trip_id}")
async def get_trip_details(
    trip_id: int,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Trip with locations grouped by day"""
    data = await run_in_threadpool(trips.get_trip_details, trip_id, user_id)
    return success_response(message="Trip details retrieved", data=data)

@router.post("/{trip_id}/locations")
async def add_location(
    trip_id: int,
    location: LocationDayCreate,
    user_id: int = Depends(get_current_user_id),
    trips: TripService = Depends(get_trip_service)
):
    """Add a stop to one day of the trip"""
    location_data = LocationAdd(trip_id=trip_id, **location.model_dump())
    data = await run_in_threadpool(trips.add_location, user_id, location_data)
    return success_response(message="Location added", data=data, status_code=201)

@router.delete("/{trip_id}/membership")
async def leave_trip_group(
    trip_id: int,
    user_id: int = Depends(get_current_user_id),
    membership: MembershipService = Depends(get_membership_service),
    handlers: GroupEventHandlers = Depends(get_event_handlers)
):
    """Leave the group that owns the trip; the last member deletes it"""
    result = await run_in_threadpool(membership.leave_trip, trip_id, user_id)
    await handlers.announce_departure(user_id, result)
    message = "Group deleted" if result["group_deleted"] else "Left the group"
    return success_response(message=message, data=result)
