"""
Group creation and group-level reads/updates
"""

import logging
import secrets
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from tripsync.core.db import Store
from tripsync.core.errors import NotAuthenticated, NotAuthorized, NotFound, ValidationFailed
from tripsync.models import Group, MemberRole
from tripsync.services.repositories import GroupRepo, MemberRepo, UserRepo

logger = logging.getLogger(__name__)

def group_to_dict(group: Group) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "host_id": group.host_id,
        "thumbnail": group.thumbnail,
        "finished": group.finished,
        "schedule": group.schedule,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }

def require_user(user_id: Optional[int]) -> int:
    """Mutations need an identity resolved by the authentication collaborator"""
    if not user_id:
        raise NotAuthenticated()
    return user_id

def require_member(db: Session, group_id: int, user_id: int):
    member = MemberRepo.get(db, group_id, user_id)
    if member is None:
        raise NotAuthorized("Not a member of this group")
    return member

class GroupService:
    """Service for group lifecycle operations other than departure"""

    def __init__(self, store: Store):
        self.store = store

    def create_group(self, name: str, user_id: Optional[int]) -> Dict:
        """Create a group with the caller as its HOST.

        The group row, the HOST membership and the re-read happen in one
        transaction; if the membership insert fails nothing is persisted, so a
        host-less group can never exist.
        """
        user_id = require_user(user_id)
        if not name or not name.strip():
            raise ValidationFailed("Group name is required")

        def work(db: Session) -> Dict:
            if UserRepo.get(db, user_id) is None:
                raise NotFound("User")
            group = GroupRepo.create(db, name.strip(), user_id)
            MemberRepo.add(db, group.id, user_id, MemberRole.HOST)
            created = GroupRepo.get(db, group.id)
            return group_to_dict(created)

        group = self.store.run_in_transaction(work)
        logger.info(f"Group {group['id']} created by user {user_id}")
        return group

    def get_group_details(self, group_id: int) -> Dict:
        with self.store.session() as db:
            group = GroupRepo.get(db, group_id)
            if group is None:
                raise NotFound("Group")
            return group_to_dict(group)

    def get_group_members(self, group_id: int) -> List[Dict]:
        """Members with display fields, HOST first then by join time"""
        with self.store.session() as db:
            if GroupRepo.get(db, group_id) is None:
                raise NotFound("Group")
            return [
                {
                    "user_id": member.user_id,
                    "nickname": user.nickname,
                    "profile_image": user.profile_image,
                    "role": member.role,
                }
                for member, user in MemberRepo.list_with_users(db, group_id)
            ]

    def create_invite(self, group_id: int, user_id: Optional[int]) -> Dict:
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.get(db, group_id) is None:
                raise NotFound("Group")
            require_member(db, group_id, user_id)

            code = secrets.token_urlsafe(8)
            while GroupRepo.invite_code_exists(db, code):
                code = secrets.token_urlsafe(8)

            invite = GroupRepo.create_invite(db, group_id, code, user_id)
            return {"group_id": invite.group_id, "code": invite.code}

        return self.store.run_in_transaction(work)

    def resolve_invite(self, code: str) -> Dict:
        with self.store.session() as db:
            invite = GroupRepo.get_invite(db, code)
            if invite is None:
                raise NotFound("Invite")
            return {"group_id": invite.group_id, "code": invite.code}

    def set_thumbnail(self, group_id: int, user_id: Optional[int], thumbnail_url: str) -> Dict:
        """Store a thumbnail reference returned by the object storage collaborator"""
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            require_member(db, group_id, user_id)
            GroupRepo.update_fields(db, group_id, thumbnail=thumbnail_url)
            return {"group_id": group_id, "thumbnail": thumbnail_url}

        return self.store.run_in_transaction(work)

    def set_background(self, group_id: int, user_id: Optional[int], background_url: str) -> Dict:
        user_id = require_user(user_id)

        def work(db: Session) -> Dict:
            if GroupRepo.lock(db, group_id) is None:
                raise NotFound("Group")
            require_member(db, group_id, user_id)
            background = GroupRepo.set_background(db, group_id, background_url)
            return {"group_id": group_id, "background_url": background.background_url}

        return self.store.run_in_transaction(work)

    def mark_finished(self, group_id: int) -> bool:
        """Unconditional flag update used by the expense analysis collaborator"""
        return self.store.run_in_transaction(
            lambda db: GroupRepo.update_fields(db, group_id, finished=True) > 0
        )
