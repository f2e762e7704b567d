"""
Repository layer: every statement issued against the relational store.

Repositories never open or commit transactions; callers pass the session of
the transaction they are running in.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from tripsync.models import (
    CalendarEntry,
    Group,
    GroupBackground,
    GroupInvite,
    GroupMember,
    MemberRole,
    Payment,
    PaymentShare,
    Trip,
    TripLocation,
    User,
)

logger = logging.getLogger(__name__)


# -------- User repository --------

class UserRepo:
    @staticmethod
    def get(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()


# -------- Group repository --------

class GroupRepo:
    @staticmethod
    def get(db: Session, group_id: int) -> Optional[Group]:
        return db.query(Group).filter(Group.id == group_id).first()

    @staticmethod
    def lock(db: Session, group_id: int) -> Optional[Group]:
        """Read the group row holding a row lock until the transaction ends"""
        return db.query(Group).filter(Group.id == group_id).with_for_update().first()

    @staticmethod
    def create(db: Session, name: str, host_id: int) -> Group:
        group = Group(name=name, host_id=host_id)
        db.add(group)
        db.flush()
        return group

    @staticmethod
    def update_fields(db: Session, group_id: int, **fields) -> int:
        if not fields:
            return 0
        return db.query(Group).filter(Group.id == group_id).update(fields, synchronize_session=False)

    @staticmethod
    def set_background(db: Session, group_id: int, background_url: str) -> GroupBackground:
        background = db.query(GroupBackground).filter(GroupBackground.group_id == group_id).first()
        if background is None:
            background = GroupBackground(group_id=group_id, background_url=background_url)
            db.add(background)
        else:
            background.background_url = background_url
            background.updated_at = datetime.utcnow()
        db.flush()
        return background

    @staticmethod
    def create_invite(db: Session, group_id: int, code: str, created_by: int) -> GroupInvite:
        invite = GroupInvite(group_id=group_id, code=code, created_by=created_by)
        db.add(invite)
        db.flush()
        return invite

    @staticmethod
    def invite_code_exists(db: Session, code: str) -> bool:
        return db.query(GroupInvite.id).filter(GroupInvite.code == code).first() is not None

    @staticmethod
    def get_invite(db: Session, code: str) -> Optional[GroupInvite]:
        return db.query(GroupInvite).filter(GroupInvite.code == code).first()


# -------- Member repository --------

class MemberRepo:
    @staticmethod
    def get(db: Session, group_id: int, user_id: int) -> Optional[GroupMember]:
        return db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        ).first()

    @staticmethod
    def add(db: Session, group_id: int, user_id: int, role: str = MemberRole.COMPANION) -> GroupMember:
        member = GroupMember(group_id=group_id, user_id=user_id, role=role)
        db.add(member)
        db.flush()
        return member

    @staticmethod
    def count(db: Session, group_id: int) -> int:
        return db.query(GroupMember).filter(GroupMember.group_id == group_id).count()

    @staticmethod
    def remove(db: Session, group_id: int, user_id: int) -> int:
        return db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        ).delete(synchronize_session=False)

    @staticmethod
    def member_ids(db: Session, group_id: int) -> List[int]:
        rows = db.query(GroupMember.user_id).filter(GroupMember.group_id == group_id).all()
        return [row.user_id for row in rows]

    @staticmethod
    def earliest_other(db: Session, group_id: int, excluded_user_id: int) -> Optional[GroupMember]:
        return db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id != excluded_user_id,
        ).order_by(GroupMember.joined_at, GroupMember.id).first()

    @staticmethod
    def list_with_users(db: Session, group_id: int) -> List[Tuple[GroupMember, User]]:
        """Members joined with their user rows, host first then by join time"""
        rows = db.query(GroupMember, User).join(
            User, GroupMember.user_id == User.id
        ).filter(GroupMember.group_id == group_id).order_by(
            GroupMember.joined_at, GroupMember.id
        ).all()
        return sorted(rows, key=lambda row: row[0].role != MemberRole.HOST)


# -------- Calendar repository --------

class CalendarRepo:
    @staticmethod
    def remove(db: Session, group_id: int, user_id: int) -> int:
        return db.query(CalendarEntry).filter(
            CalendarEntry.group_id == group_id,
            CalendarEntry.user_id == user_id,
        ).delete(synchronize_session=False)

    @staticmethod
    def add(db: Session, group_id: int, user_id: int, start_date, end_date) -> CalendarEntry:
        entry = CalendarEntry(group_id=group_id, user_id=user_id, start_date=start_date, end_date=end_date)
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def list_with_users(db: Session, group_id: int, user_id: Optional[int] = None) -> List[Tuple[CalendarEntry, User]]:
        query = db.query(CalendarEntry, User).join(
            User, CalendarEntry.user_id == User.id
        ).filter(CalendarEntry.group_id == group_id)
        if user_id is not None:
            query = query.filter(CalendarEntry.user_id == user_id)
        return query.order_by(CalendarEntry.start_date, CalendarEntry.id).all()


# -------- Trip repository --------

class TripRepo:
    @staticmethod
    def get(db: Session, trip_id: int) -> Optional[Trip]:
        return db.query(Trip).filter(Trip.id == trip_id).first()

    @staticmethod
    def lock(db: Session, trip_id: int) -> Optional[Trip]:
        return db.query(Trip).filter(Trip.id == trip_id).with_for_update().first()

    @staticmethod
    def for_group(db: Session, group_id: int) -> Optional[Trip]:
        return db.query(Trip).filter(Trip.group_id == group_id).order_by(Trip.id).first()

    @staticmethod
    def create(db: Session, group_id: int, start_date, end_date) -> Trip:
        trip = Trip(group_id=group_id, start_date=start_date, end_date=end_date)
        db.add(trip)
        db.flush()
        return trip

    @staticmethod
    def list_for_user(db: Session, user_id: int) -> List[Tuple[Trip, Group]]:
        return db.query(Trip, Group).join(
            Group, Trip.group_id == Group.id
        ).join(
            GroupMember, GroupMember.group_id == Group.id
        ).filter(GroupMember.user_id == user_id).order_by(
            Trip.created_at.desc(), Trip.id.desc()
        ).all()

    @staticmethod
    def list_history(db: Session, user_id: int) -> List[Tuple[Trip, Group, Optional[str]]]:
        """Trips of finished groups the user belongs to, latest first"""
        return db.query(Trip, Group, GroupBackground.background_url).join(
            Group, Trip.group_id == Group.id
        ).join(
            GroupMember, GroupMember.group_id == Group.id
        ).outerjoin(
            GroupBackground, GroupBackground.group_id == Group.id
        ).filter(
            GroupMember.user_id == user_id, Group.finished.is_(True)
        ).order_by(Trip.start_date.desc(), Trip.id.desc()).all()


# -------- Location repository --------

class LocationRepo:
    @staticmethod
    def lock(db: Session, location_id: int) -> Optional[TripLocation]:
        return db.query(TripLocation).filter(TripLocation.id == location_id).with_for_update().first()

    @staticmethod
    def add(db: Session, trip_id: int, day: int, destination: str, **fields) -> TripLocation:
        location = TripLocation(trip_id=trip_id, day=day, destination=destination, version=1, **fields)
        db.add(location)
        db.flush()
        return location

    @staticmethod
    def update_versioned(db: Session, location_id: int, read_version: int, changes: Dict) -> int:
        """Apply changes and bump the version in one statement.

        The version guard makes the statement a no-op (rowcount 0) when the
        row moved on since it was read.
        """
        values = dict(changes)
        values["version"] = TripLocation.version + 1
        return db.query(TripLocation).filter(
            TripLocation.id == location_id,
            TripLocation.version == read_version,
        ).update(values, synchronize_session=False)

    @staticmethod
    def delete(db: Session, location_id: int) -> int:
        return db.query(TripLocation).filter(TripLocation.id == location_id).delete(synchronize_session=False)

    @staticmethod
    def list_for_trip(db: Session, trip_id: int) -> List[TripLocation]:
        return db.query(TripLocation).filter(TripLocation.trip_id == trip_id).order_by(
            TripLocation.day, TripLocation.visit_time, TripLocation.id
        ).all()


# -------- Payment repository --------

class PaymentRepo:
    @staticmethod
    def lock(db: Session, payment_id: int) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()

    @staticmethod
    def create(db: Session, **fields) -> Payment:
        payment = Payment(version=1, **fields)
        db.add(payment)
        db.flush()
        return payment

    @staticmethod
    def update_versioned(db: Session, payment_id: int, read_version: int, changes: Dict) -> int:
        values = dict(changes)
        values["version"] = Payment.version + 1
        return db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.version == read_version,
        ).update(values, synchronize_session=False)

    @staticmethod
    def replace_shares(db: Session, payment_id: int, member_ids: Sequence[int], payer_id: int) -> int:
        db.query(PaymentShare).filter(PaymentShare.payment_id == payment_id).delete(synchronize_session=False)
        return PaymentRepo.add_shares(db, payment_id, member_ids, payer_id)

    @staticmethod
    def mark_payer(db: Session, payment_id: int, payer_id: int) -> int:
        """Only the payer's share counts as settled"""
        return db.query(PaymentShare).filter(PaymentShare.payment_id == payment_id).update(
            {PaymentShare.is_paid: case((PaymentShare.user_id == payer_id, True), else_=False)},
            synchronize_session=False,
        )

    @staticmethod
    def add_shares(db: Session, payment_id: int, member_ids: Sequence[int], payer_id: int) -> int:
        for member_id in member_ids:
            db.add(PaymentShare(payment_id=payment_id, user_id=member_id, is_paid=member_id == payer_id))
        db.flush()
        return len(member_ids)

    @staticmethod
    def list_for_trip(db: Session, trip_id: int) -> List[Payment]:
        return db.query(Payment).filter(Payment.trip_id == trip_id).order_by(Payment.date, Payment.id).all()

    @staticmethod
    def shares_with_users(db: Session, payment_ids: Sequence[int]) -> List[Tuple[PaymentShare, User]]:
        if not payment_ids:
            return []
        return db.query(PaymentShare, User).join(
            User, PaymentShare.user_id == User.id
        ).filter(PaymentShare.payment_id.in_(payment_ids)).order_by(PaymentShare.user_id).all()


# -------- Cascade deletion --------

def _trip_ids(group_id: int):
    return select(Trip.id).where(Trip.group_id == group_id)


def _payment_ids(group_id: int):
    return select(Payment.id).where(Payment.trip_id.in_(_trip_ids(group_id)))


def _delete(db: Session, model, *criteria) -> int:
    return db.query(model).filter(*criteria).delete(synchronize_session=False)


# children before parents; every step receives (db, group_id)
GROUP_DELETE_ORDER: List[Tuple[str, Callable[[Session, int], int]]] = [
    ("payment_shares", lambda db, gid: _delete(db, PaymentShare, PaymentShare.payment_id.in_(_payment_ids(gid)))),
    ("payments", lambda db, gid: _delete(db, Payment, Payment.trip_id.in_(_trip_ids(gid)))),
    ("trip_locations", lambda db, gid: _delete(db, TripLocation, TripLocation.trip_id.in_(_trip_ids(gid)))),
    ("trips", lambda db, gid: _delete(db, Trip, Trip.group_id == gid)),
    ("group_invites", lambda db, gid: _delete(db, GroupInvite, GroupInvite.group_id == gid)),
    ("group_backgrounds", lambda db, gid: _delete(db, GroupBackground, GroupBackground.group_id == gid)),
    ("group_calendars", lambda db, gid: _delete(db, CalendarEntry, CalendarEntry.group_id == gid)),
    ("group_members", lambda db, gid: _delete(db, GroupMember, GroupMember.group_id == gid)),
    ("groups", lambda db, gid: _delete(db, Group, Group.id == gid)),
]


def delete_group_cascade(db: Session, group_id: int) -> Dict[str, int]:
    """Delete a group and every row referencing it, in GROUP_DELETE_ORDER"""
    removed = {}
    for table, step in GROUP_DELETE_ORDER:
        removed[table] = step(db, group_id)
    logger.info(f"Deleted group {group_id}: {removed}")
    return removed
