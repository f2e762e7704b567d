"""
Shared expense service: saving, updating and listing trip payments
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from tripsync.core.db import Store
from tripsync.core.errors import NotAuthorized, NotFound, ValidationFailed, VersionConflict
from tripsync.models import Payment
from tripsync.schemas.payment import PaymentCreate, PaymentUpdate
from tripsync.services.group_service import require_member, require_user
from tripsync.services.repositories import MemberRepo, PaymentRepo, TripRepo, UserRepo

logger = logging.getLogger(__name__)

def _unique(ids: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(ids))

def _check_members(ids: Sequence[int], member_ids: Sequence[int], what: str) -> None:
    outsiders = [user_id for user_id in ids if user_id not in member_ids]
    if outsiders:
        raise ValidationFailed(f"{what} must be group members", {"user_ids": outsiders})

def payment_to_dict(payment: Payment) -> Dict:
    return {
        "payment_id": payment.id,
        "trip_id": payment.trip_id,
        "category": payment.category,
        "description": payment.description,
        "price": payment.total_price,
        "pay": payment.paid_by,
        "date": payment.date.isoformat() if payment.date else None,
        "version": payment.version,
    }

class PaymentService:
    """Service for payments and their even splits"""

    def __init__(self, store: Store):
        self.store = store

    def save_payments(self, user_id: Optional[int], payments: List[PaymentCreate]) -> List[Dict]:
        """Insert every payment and its shares in one transaction.

        A payment with a non-empty `group` is split evenly among those
        members; the payer's own share is stored as already paid. Without a
        group the payment is personal and gets no share rows.
        """
        user_id = require_user(user_id)
        if not payments:
            raise ValidationFailed("At least one payment is required")

        def work(db: Session) -> List[Dict]:
            saved = []
            for data in payments:
                trip = TripRepo.lock(db, data.trip_id)
                if trip is None:
                    raise NotFound("Trip")
                member_ids = MemberRepo.member_ids(db, trip.group_id)
                if user_id not in member_ids:
                    raise NotAuthorized("Not a member of this group")
                _check_members([data.pay], member_ids, "Payer")

                fields = {
                    "trip_id": trip.id,
                    "category": data.category,
                    "description": data.description,
                    "total_price": data.price,
                    "paid_by": data.pay,
                }
                if data.date is not None:
                    fields["date"] = data.date
                payment = PaymentRepo.create(db, **fields)

                share_ids = _unique(data.group or [])
                if share_ids:
                    _check_members(share_ids, member_ids, "Shared payment participants")
                    PaymentRepo.add_shares(db, payment.id, share_ids, data.pay)

                saved.append({**payment_to_dict(payment), "group": share_ids})
            return saved

        saved = self.store.run_in_transaction(work)
        logger.info(f"Saved {len(saved)} payments for user {user_id}")
        return saved

    def update_payments(self, user_id: Optional[int], updates: List[PaymentUpdate]) -> List[Dict]:
        """Apply partial updates to several payments atomically.

        Only fields that are set change. A set `version` must match the stored
        one. A `group` that is not None replaces every share of the payment;
        an empty list turns it into a personal expense.
        """
        user_id = require_user(user_id)
        if not updates:
            raise ValidationFailed("At least one payment is required")

        def work(db: Session) -> List[Dict]:
            updated = []
            for data in updates:
                payment = PaymentRepo.lock(db, data.payment_id)
                if payment is None:
                    raise NotFound("Payment")
                trip = TripRepo.get(db, payment.trip_id)
                member_ids = MemberRepo.member_ids(db, trip.group_id)
                if user_id not in member_ids:
                    raise NotAuthorized("Not a member of this group")

                if data.version is not None and data.version != payment.version:
                    raise VersionConflict("Payment", data.version, payment.version)

                changes = {}
                if data.category is not None:
                    changes["category"] = data.category
                if data.description is not None:
                    changes["description"] = data.description
                if data.price is not None:
                    changes["total_price"] = data.price
                if data.pay is not None:
                    _check_members([data.pay], member_ids, "Payer")
                    changes["paid_by"] = data.pay
                if data.date is not None:
                    changes["date"] = data.date

                if PaymentRepo.update_versioned(db, payment.id, payment.version, changes) == 0:
                    db.refresh(payment)
                    raise VersionConflict("Payment", data.version or payment.version, payment.version)
                db.refresh(payment)

                if data.group is not None:
                    share_ids = _unique(data.group)
                    _check_members(share_ids, member_ids, "Shared payment participants")
                    PaymentRepo.replace_shares(db, payment.id, share_ids, payment.paid_by)
                elif "paid_by" in changes:
                    PaymentRepo.mark_payer(db, payment.id, payment.paid_by)

                updated.append(payment_to_dict(payment))
            return updated

        updated = self.store.run_in_transaction(work)
        logger.info(f"Updated {len(updated)} payments for user {user_id}")
        return updated

    def list_payments(self, trip_id: int, user_id: Optional[int]) -> List[Dict]:
        """Payments of a trip with share members and the per-share amount"""
        user_id = require_user(user_id)
        with self.store.session() as db:
            trip = TripRepo.get(db, trip_id)
            if trip is None:
                raise NotFound("Trip")
            require_member(db, trip.group_id, user_id)

            payments = PaymentRepo.list_for_trip(db, trip_id)
            shares: Dict[int, List[Dict]] = {}
            for share, user in PaymentRepo.shares_with_users(db, [p.id for p in payments]):
                shares.setdefault(share.payment_id, []).append({
                    "user_id": user.id,
                    "nickname": user.nickname,
                    "is_paid": share.is_paid,
                })

            result = []
            for payment in payments:
                group = shares.get(payment.id, [])
                item = payment_to_dict(payment)
                item["group"] = group
                item["share_amount"] = payment.total_price // len(group) if group else payment.total_price
                result.append(item)
            return result

    def trip_members(self, trip_id: int, user_id: Optional[int]) -> List[Dict]:
        """Members who can take part in a split, flagging the caller"""
        user_id = require_user(user_id)
        with self.store.session() as db:
            trip = TripRepo.get(db, trip_id)
            if trip is None:
                raise NotFound("Trip")
            require_member(db, trip.group_id, user_id)

            members = []
            for member_id in MemberRepo.member_ids(db, trip.group_id):
                user = UserRepo.get(db, member_id)
                members.append({
                    "user_id": user.id,
                    "nickname": user.nickname,
                    "profile_image": user.profile_image,
                    "is_me": user.id == user_id,
                })
            return members
