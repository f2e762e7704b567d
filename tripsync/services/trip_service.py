"""
Trip itinerary service: trip creation, reads and location edits
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from tripsync.core.db import Store
from tripsync.core.errors import ConflictError, NotFound, ValidationFailed, VersionConflict
from tripsync.models import Trip, TripLocation
from tripsync.schemas.trip import LocationAdd, LocationUpdate, TripCreate
from tripsync.services.group_service import require_member, require_user
from tripsync.services.repositories import GroupRepo, LocationRepo, TripRepo

logger = logging.getLogger(__name__)

def location_to_dict(location: TripLocation) -> Dict:
    return {
        "location_id": location.id,
        "trip_id": location.trip_id,
        "day": location.day,
        "destination": location.destination,
        "name": location.name,
        "address": location.address,
        "visit_time": location.visit_time,
        "category": location.category,
        "hashtag": location.hashtag,
        "thumbnail": location.thumbnail,
        "version": location.version,
    }

def trip_to_dict(trip: Trip) -> Dict:
    return {
        "trip_id": trip.id,
        "group_id": trip.group_id,
        "date": trip.date_range,
        "start_date": trip.start_date.isoformat(),
        "end_date": trip.end_date.isoformat(),
        "created_at": trip.created_at.isoformat() if trip.created_at else None,
    }

class TripService:
    """Service for trips and their itinerary locations"""

    def __init__(self, store: Store):
        self.store = store

    def create_trip(self, user_id: Optional[int], trip_data: TripCreate) -> Dict:
        """Finalize a group's schedule into its trip with every day's stops"""
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            group_id = trip_data.group_id
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            require_member(db, group_id, user_id)
            if TripRepo.for_group(db, group_id) is not None:
                raise ConflictError("This group already has a trip")

            group_fields = {"schedule": True}
            if trip_data.group_name:
                group_fields["name"] = trip_data.group_name
            if trip_data.group_thumbnail:
                group_fields["thumbnail"] = trip_data.group_thumbnail
            GroupRepo.update_fields(db, group_id, **group_fields)

            trip = TripRepo.create(db, group_id, trip_data.start_date, trip_data.end_date)
            for day in trip_data.days:
                for location in day.locations:
                    LocationRepo.add(
                        db,
                        trip.id,
                        day.day,
                        day.destination,
                        **location.model_dump(),
                    )
            return trip_to_dict(trip)

        trip = self.store.run_in_transaction(work)
        logger.info(f"Trip {trip['trip_id']} created for group {trip['group_id']}")
        return trip

    def get_trip(self, trip_id: int) -> Dict:
        with self.store.session() as db:
            trip = TripRepo.get(db, trip_id)
            if trip is None:
                raise NotFound("Trip")
            return trip_to_dict(trip)

    def get_trip_details(self, trip_id: int, user_id: Optional[int]) -> Dict:
        """Trip with its group's name and the locations grouped by day"""
        user_id = require_user(user_id)
        with self.store.session() as db:
            trip = TripRepo.get(db, trip_id)
            if trip is None:
                raise NotFound("Trip")
            require_member(db, trip.group_id, user_id)
            group = GroupRepo.get(db, trip.group_id)

            days: Dict[int, Dict] = {}
            for location in LocationRepo.list_for_trip(db, trip_id):
                day = days.setdefault(location.day, {
                    "day": location.day,
                    "destination": location.destination or "",
                    "locations": [],
                })
                day["locations"].append(location_to_dict(location))

            details = trip_to_dict(trip)
            details.update({
                "group_name": group.name,
                "group_thumbnail": group.thumbnail,
                "days": list(days.values()),
            })
            return details

    def list_user_trips(self, user_id: Optional[int]) -> List[Dict]:
        user_id = require_user(user_id)
        with self.store.session() as db:
            return [
                {**trip_to_dict(trip), "group_name": group.name}
                for trip, group in TripRepo.list_for_user(db, user_id)
            ]

    def list_history(self, user_id: Optional[int]) -> List[Dict]:
        """Past trips of the caller's finished groups, most recent first"""
        user_id = require_user(user_id)
        with self.store.session() as db:
            return [
                {**trip_to_dict(trip), "group_name": group.name, "background_url": background_url}
                for trip, group, background_url in TripRepo.list_history(db, user_id)
            ]

    def trip_for_group(self, group_id: int, user_id: Optional[int]) -> Dict:
        user_id = require_user(user_id)
        with self.store.session() as db:
            if GroupRepo.get(db, group_id) is None:
                raise NotFound("Group")
            require_member(db, group_id, user_id)
            trip = TripRepo.for_group(db, group_id)
            if trip is None:
                raise NotFound("Trip")
            return {"trip_id": trip.id, "group_id": group_id}

    def add_location(self, user_id: Optional[int], location_data: LocationAdd) -> Dict:
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            trip = TripRepo.lock(db, location_data.trip_id)
            if trip is None:
                raise NotFound("Trip")
            require_member(db, trip.group_id, user_id)
            fields = location_data.model_dump(exclude={"trip_id", "day", "destination"})
            location = LocationRepo.add(db, trip.id, location_data.day, location_data.destination, **fields)
            return location_to_dict(location)

        return self.store.run_in_transaction(work)

    def update_location(self, group_id: int, user_id: Optional[int], update: LocationUpdate) -> Dict:
        """Edit an itinerary stop with optimistic concurrency.

        When `update.version` is given it must equal the stored version,
        otherwise VersionConflict is raised and the row is left untouched.
        The version is incremented in the same statement as the edit.
        """
        user_id = require_user(user_id)
        changes = update.changes()
        if not changes:
            raise ValidationFailed("No location fields to update")

        def work(db: Session) -> Dict:
            require_member(db, group_id, user_id)

            location = LocationRepo.lock(db, update.location_id)
            if location is None:
                raise NotFound("Location")
            trip = TripRepo.get(db, location.trip_id)
            if trip is None or trip.group_id != group_id:
                raise NotFound("Location")

            if update.version is not None and update.version != location.version:
                raise VersionConflict("Location", update.version, location.version)

            if LocationRepo.update_versioned(db, location.id, location.version, changes) == 0:
                db.refresh(location)
                raise VersionConflict("Location", update.version or location.version, location.version)

            db.refresh(location)
            return location_to_dict(location)

        location = self.store.run_in_transaction(work)
        logger.info(f"Location {update.location_id} updated to version {location['version']} by user {user_id}")
        return location

    def delete_location(self, location_id: int, user_id: Optional[int]) -> Dict:
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            location = LocationRepo.lock(db, location_id)
            if location is None:
                raise NotFound("Location")
            trip = TripRepo.get(db, location.trip_id)
            require_member(db, trip.group_id, user_id)
            LocationRepo.delete(db, location_id)
            return {"location_id": location_id, "trip_id": trip.id}

        return self.store.run_in_transaction(work)
