"""
Per-member availability calendar of a group
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from tripsync.core.db import Store
from tripsync.core.errors import NotFound, ValidationFailed
from tripsync.models import CalendarEntry, User
from tripsync.services.group_service import require_member, require_user
from tripsync.services.repositories import CalendarRepo, GroupRepo

logger = logging.getLogger(__name__)

def calendar_to_dict(entry: CalendarEntry, user: User) -> Dict:
    return {
        "user_id": entry.user_id,
        "nickname": user.nickname,
        "start": entry.start_date.isoformat(),
        "end": entry.end_date.isoformat(),
    }

class CalendarService:
    """Service for the group scheduling calendar"""

    def __init__(self, store: Store):
        self.store = store

    def set_date(self, group_id: int, user_id: Optional[int], start: date, end: date) -> Dict:
        """Replace the caller's entry: delete then insert, never a partial update"""
        user_id = require_user(user_id)
        if start > end:
            raise ValidationFailed("start date is after end date")

        def work(db: Session) -> Dict:
            require_member(db, group_id, user_id)
            CalendarRepo.remove(db, group_id, user_id)
            CalendarRepo.add(db, group_id, user_id, start, end)
            rows = CalendarRepo.list_with_users(db, group_id, user_id)
            entry, user = rows[0]
            return calendar_to_dict(entry, user)

        return self.store.run_in_transaction(work)

    def clear_date(self, group_id: int, user_id: Optional[int]) -> bool:
        """Delete the caller's entry; False when there was nothing to delete"""
        user_id = require_user(user_id)
        removed = self.store.run_in_transaction(lambda db: CalendarRepo.remove(db, group_id, user_id))
        return removed > 0

    def list_dates(self, group_id: int) -> List[Dict]:
        with self.store.session() as db:
            if GroupRepo.get(db, group_id) is None:
                raise NotFound("Group")
            return [calendar_to_dict(entry, user) for entry, user in CalendarRepo.list_with_users(db, group_id)]
