"""
Joining, leaving and deleting groups.

Every operation here locks the group row first. Concurrent departures from
the same group therefore run one after the other, and the second one sees
the member count left behind by the first.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from tripsync.core.db import Store
from tripsync.core.errors import NotAuthorized, NotFound
from tripsync.models import MemberRole
from tripsync.services.group_service import require_member, require_user
from tripsync.services.repositories import (
    CalendarRepo,
    GroupRepo,
    MemberRepo,
    TripRepo,
    UserRepo,
    delete_group_cascade,
)

logger = logging.getLogger(__name__)

class MembershipService:
    """Service for group membership transitions"""

    def __init__(self, store: Store):
        self.store = store

    def join_group(self, group_id: int, user_id: Optional[int]) -> Dict:
        """Add the user as a COMPANION unless already a member.

        Returns `joined` True only when a membership row was inserted.
        """
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            user = UserRepo.get(db, user_id)
            if user is None:
                raise NotFound("User")

            member = MemberRepo.get(db, group_id, user_id)
            joined = member is None
            if joined:
                member = MemberRepo.add(db, group_id, user_id, MemberRole.COMPANION)

            return {
                "group_id": group_id,
                "joined": joined,
                "member": {
                    "user_id": user.id,
                    "nickname": user.nickname,
                    "profile_image": user.profile_image,
                    "role": member.role,
                },
            }

        result = self.store.run_in_transaction(work)
        if result["joined"]:
            logger.info(f"User {user_id} joined group {group_id}")
        return result

    def leave_trip(self, trip_id: int, user_id: Optional[int]) -> Dict:
        """Leave the group owning a trip.

        The last member leaving deletes the group and everything referencing
        it. Otherwise only the leaver's membership and calendar entry go; a
        departing HOST hands the role to the earliest-joined remaining member.
        """
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            trip = TripRepo.get(db, trip_id)
            if trip is None:
                raise NotFound("Trip")
            group_id = trip.group_id
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")

            member = require_member(db, group_id, user_id)
            remaining = MemberRepo.count(db, group_id)

            if remaining == 1:
                delete_group_cascade(db, group_id)
                return {"group_id": group_id, "group_deleted": True, "new_host_id": None}

            new_host_id = None
            if member.role == MemberRole.HOST:
                successor = MemberRepo.earliest_other(db, group_id, user_id)
                successor.role = MemberRole.HOST
                new_host_id = successor.user_id
                GroupRepo.update_fields(db, group_id, host_id=new_host_id)

            CalendarRepo.remove(db, group_id, user_id)
            MemberRepo.remove(db, group_id, user_id)
            return {"group_id": group_id, "group_deleted": False, "new_host_id": new_host_id}

        result = self.store.run_in_transaction(work)
        logger.info(f"User {user_id} left group {result['group_id']} via trip {trip_id}: {result}")
        return result

    def leave_group(self, group_id: int, user_id: Optional[int]) -> Dict:
        """Explicit leave from a live group channel.

        A HOST leaving deletes the whole group. Anyone else loses only their
        membership and calendar entry.
        """
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            member = require_member(db, group_id, user_id)

            if member.role == MemberRole.HOST or MemberRepo.count(db, group_id) == 1:
                delete_group_cascade(db, group_id)
                return {"group_id": group_id, "group_deleted": True, "calendar_cleared": True}

            cleared = CalendarRepo.remove(db, group_id, user_id) > 0
            MemberRepo.remove(db, group_id, user_id)
            return {"group_id": group_id, "group_deleted": False, "calendar_cleared": cleared}

        result = self.store.run_in_transaction(work)
        logger.info(f"User {user_id} left group {group_id}: {result}")
        return result

    def delete_group(self, group_id: int, user_id: Optional[int]) -> Dict:
        """Delete the group on the HOST's explicit request"""
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            member = require_member(db, group_id, user_id)
            if member.role != MemberRole.HOST:
                raise NotAuthorized("Only the host can delete the group")
            removed = delete_group_cascade(db, group_id)
            return {"group_id": group_id, "group_deleted": True, "removed": removed}

        return self.store.run_in_transaction(work)
