"""
Tests for shared expenses and their even splits
"""

from datetime import date

import pytest

from conftest import count_rows
from tripsync.core.errors import NotAuthorized, NotFound, ValidationFailed, VersionConflict
from tripsync.models import Payment, PaymentShare
from tripsync.schemas.payment import PaymentCreate, PaymentUpdate

@pytest.fixture
def trip_of_three(make_group, make_trip):
    group_id, member_ids = make_group(companions=2)
    trip = make_trip(group_id, member_ids[0])
    return trip["trip_id"], member_ids

def shares_of(store, payment_id):
    with store.session() as db:
        rows = db.query(PaymentShare).filter(PaymentShare.payment_id == payment_id).all()
        return {row.user_id: row.is_paid for row in rows}

def test_split_payment_among_three(store, payments, trip_of_three):
    """300 split among three members: three shares, only the payer's is paid"""
    trip_id, (host_id, a_id, b_id) = trip_of_three

    saved = payments.save_payments(a_id, [
        PaymentCreate(tripId=trip_id, category="lodging", description="Hostel", price=300, pay=a_id,
                      group=[host_id, a_id, b_id], date=date(2025, 7, 1)),
    ])

    assert saved[0]["group"] == [host_id, a_id, b_id]
    assert shares_of(store, saved[0]["payment_id"]) == {host_id: False, a_id: True, b_id: False}

    listed = payments.list_payments(trip_id, b_id)
    assert listed[0]["share_amount"] == 100
    assert listed[0]["version"] == 1
    assert {share["user_id"]: share["is_paid"] for share in listed[0]["group"]} == {
        host_id: False,
        a_id: True,
        b_id: False,
    }

def test_personal_payment_has_no_shares(store, payments, trip_of_three):
    """A payment without a share list is a personal expense"""
    trip_id, (host_id, _, _) = trip_of_three

    saved = payments.save_payments(host_id, [
        PaymentCreate(tripId=trip_id, category="souvenir", price=15000, pay=host_id),
    ])

    assert saved[0]["group"] == []
    assert count_rows(store, PaymentShare) == 0
    assert payments.list_payments(trip_id, host_id)[0]["share_amount"] == 15000

def test_share_lists_accept_member_objects():
    """Share members may arrive as user objects instead of ids"""
    payment = PaymentCreate.model_validate({
        "tripId": 1,
        "category": "food",
        "price": 90,
        "pay": 2,
        "group": [{"user_id": 2, "nickname": "a"}, {"user_id": 3, "nickname": "b"}],
    })
    assert payment.group == [2, 3]

def test_batch_is_atomic(store, payments, trip_of_three, make_user):
    """One invalid record rolls back every payment in the batch"""
    trip_id, (host_id, a_id, _) = trip_of_three
    outsider = make_user("outsider")

    with pytest.raises(ValidationFailed):
        payments.save_payments(host_id, [
            PaymentCreate(tripId=trip_id, category="food", price=100, pay=host_id, group=[host_id, a_id]),
            PaymentCreate(tripId=trip_id, category="taxi", price=50, pay=host_id, group=[host_id, outsider]),
        ])

    assert count_rows(store, Payment) == 0
    assert count_rows(store, PaymentShare) == 0

def test_save_requires_membership(payments, trip_of_three, make_user):
    trip_id, (host_id, _, _) = trip_of_three

    with pytest.raises(NotAuthorized):
        payments.save_payments(make_user("outsider"), [
            PaymentCreate(tripId=trip_id, category="food", price=10, pay=host_id),
        ])
    with pytest.raises(NotFound):
        payments.save_payments(host_id, [PaymentCreate(tripId=999, category="food", price=10, pay=host_id)])

def test_partial_update_keeps_other_fields(store, payments, trip_of_three):
    """Only the fields present in the update change"""
    trip_id, (host_id, a_id, b_id) = trip_of_three
    saved = payments.save_payments(host_id, [
        PaymentCreate(tripId=trip_id, category="food", description="BBQ", price=90, pay=host_id,
                      group=[host_id, a_id, b_id]),
    ])
    payment_id = saved[0]["payment_id"]

    updated = payments.update_payments(a_id, [PaymentUpdate(paymentId=payment_id, price=120, version=1)])

    assert updated[0]["price"] == 120
    assert updated[0]["category"] == "food"
    assert updated[0]["description"] == "BBQ"
    assert updated[0]["version"] == 2
    assert shares_of(store, payment_id) == {host_id: True, a_id: False, b_id: False}

def test_update_replaces_shares(store, payments, trip_of_three):
    """A share list replaces the old shares; an empty one makes the payment personal"""
    trip_id, (host_id, a_id, b_id) = trip_of_three
    payment_id = payments.save_payments(host_id, [
        PaymentCreate(tripId=trip_id, category="food", price=90, pay=host_id, group=[host_id, a_id, b_id]),
    ])[0]["payment_id"]

    payments.update_payments(host_id, [PaymentUpdate(paymentId=payment_id, pay=b_id, group=[a_id, b_id])])
    assert shares_of(store, payment_id) == {a_id: False, b_id: True}

    payments.update_payments(host_id, [PaymentUpdate(paymentId=payment_id, group=[])])
    assert shares_of(store, payment_id) == {}

def test_new_payer_moves_paid_flag(store, payments, trip_of_three):
    """Changing only the payer settles the new payer's share and reopens the old one"""
    trip_id, (host_id, a_id, b_id) = trip_of_three
    payment_id = payments.save_payments(host_id, [
        PaymentCreate(tripId=trip_id, category="taxi", price=30, pay=host_id, group=[host_id, a_id, b_id]),
    ])[0]["payment_id"]

    updated = payments.update_payments(host_id, [PaymentUpdate(paymentId=payment_id, pay=a_id)])

    assert updated[0]["pay"] == a_id
    assert shares_of(store, payment_id) == {host_id: False, a_id: True, b_id: False}
    listed = payments.list_payments(trip_id, host_id)[0]["group"]
    assert [share["user_id"] for share in listed if share["is_paid"]] == [a_id]

def test_update_with_stale_version(store, payments, trip_of_three):
    """A stale version leaves the payment unchanged"""
    trip_id, (host_id, a_id, _) = trip_of_three
    payment_id = payments.save_payments(host_id, [
        PaymentCreate(tripId=trip_id, category="food", price=90, pay=host_id),
    ])[0]["payment_id"]
    payments.update_payments(host_id, [PaymentUpdate(paymentId=payment_id, category="dinner", version=1)])

    with pytest.raises(VersionConflict):
        payments.update_payments(a_id, [PaymentUpdate(paymentId=payment_id, price=1, version=1)])

    with store.session() as db:
        payment = db.query(Payment).filter(Payment.id == payment_id).one()
    assert (payment.total_price, payment.category, payment.version) == (90, "dinner", 2)

def test_trip_members_flags_caller(payments, trip_of_three):
    trip_id, (host_id, a_id, b_id) = trip_of_three

    members = payments.trip_members(trip_id, a_id)

    assert {m["user_id"]: m["is_me"] for m in members} == {host_id: False, a_id: True, b_id: False}
