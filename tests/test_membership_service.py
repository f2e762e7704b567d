"""
Tests for joining, leaving and cascade-deleting groups
"""

import threading
from datetime import date

import pytest

from conftest import count_rows
from tripsync.core.errors import NotAuthorized, NotFound
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
)
from tripsync.schemas.payment import PaymentCreate

GROUP_TABLES = [
    Group,
    GroupMember,
    GroupInvite,
    GroupBackground,
    CalendarEntry,
    Trip,
    TripLocation,
    Payment,
    PaymentShare,
]

@pytest.fixture
def busy_group(make_group, make_trip, groups, payments, calendar):
    """A group with a trip, a split payment, calendar entries, an invite and a background"""
    def _busy_group(companions=1):
        group_id, member_ids = make_group(companions=companions)
        host_id = member_ids[0]
        trip = make_trip(group_id, host_id)
        payments.save_payments(host_id, [
            PaymentCreate(tripId=trip["trip_id"], category="food", price=300, pay=host_id, group=member_ids),
        ])
        for user_id in member_ids:
            calendar.set_date(group_id, user_id, date(2025, 7, 1), date(2025, 7, 3))
        groups.create_invite(group_id, host_id)
        groups.set_background(group_id, host_id, "https://cdn.example.com/bg.png")
        return group_id, member_ids, trip["trip_id"]
    return _busy_group

def test_join_is_idempotent(membership, make_group, make_user):
    """Joining twice inserts one COMPANION row and reports joined only once"""
    group_id, _ = make_group()
    user_id = make_user("newbie")

    first = membership.join_group(group_id, user_id)
    second = membership.join_group(group_id, user_id)

    assert first["joined"] is True
    assert first["member"]["role"] == MemberRole.COMPANION
    assert first["member"]["nickname"] == "newbie"
    assert second["joined"] is False

def test_join_unknown_group(membership, make_user):
    """Joining a group that does not exist raises NotFound"""
    with pytest.raises(NotFound):
        membership.join_group(404, make_user())

def test_last_member_leaving_deletes_everything(store, membership, busy_group):
    """Departure with one member left removes the group and every referencing row"""
    group_id, (host_id,), trip_id = busy_group(companions=0)

    result = membership.leave_trip(trip_id, host_id)

    assert result == {"group_id": group_id, "group_deleted": True, "new_host_id": None}
    for model in GROUP_TABLES:
        assert count_rows(store, model) == 0, model.__tablename__

def test_companion_leaving_keeps_shared_data(store, membership, busy_group):
    """With more members only the leaver's membership and calendar entry go"""
    group_id, (host_id, companion_id), trip_id = busy_group(companions=1)

    result = membership.leave_trip(trip_id, companion_id)

    assert result["group_deleted"] is False
    assert result["new_host_id"] is None
    assert count_rows(store, Group) == 1
    assert count_rows(store, GroupMember, GroupMember.user_id == companion_id) == 0
    assert count_rows(store, CalendarEntry, CalendarEntry.user_id == companion_id) == 0
    assert count_rows(store, CalendarEntry, CalendarEntry.user_id == host_id) == 1
    assert count_rows(store, Payment) == 1
    assert count_rows(store, PaymentShare) == 2
    assert count_rows(store, TripLocation) == 3

def test_host_leaving_promotes_earliest_member(store, membership, busy_group):
    """A departing HOST hands the role to the earliest-joined remaining member"""
    group_id, (host_id, first_id, second_id), trip_id = busy_group(companions=2)

    result = membership.leave_trip(trip_id, host_id)

    assert result["new_host_id"] == first_id
    with store.session() as db:
        group = db.query(Group).filter(Group.id == group_id).one()
        roles = {m.user_id: m.role for m in db.query(GroupMember).filter(GroupMember.group_id == group_id)}
    assert group.host_id == first_id
    assert roles == {first_id: MemberRole.HOST, second_id: MemberRole.COMPANION}

def test_non_member_cannot_leave(store, membership, busy_group, make_user):
    """A user outside the group gets an authorization error and nothing changes"""
    group_id, member_ids, trip_id = busy_group(companions=1)

    with pytest.raises(NotAuthorized):
        membership.leave_trip(trip_id, make_user("stranger"))

    assert count_rows(store, GroupMember) == len(member_ids)

def test_leave_unknown_trip(membership, make_user):
    with pytest.raises(NotFound):
        membership.leave_trip(777, make_user())

def test_concurrent_departures_delete_group(store, membership, busy_group):
    """Both members of a two-member group leave at once: the group ends fully deleted"""
    group_id, member_ids, trip_id = busy_group(companions=1)
    barrier = threading.Barrier(len(member_ids))
    results, errors = [], []

    def leave(user_id):
        barrier.wait()
        try:
            results.append(membership.leave_trip(trip_id, user_id))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=leave, args=(user_id,)) for user_id in member_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert sorted(r["group_deleted"] for r in results) == [False, True]
    for model in GROUP_TABLES:
        assert count_rows(store, model) == 0, model.__tablename__

def test_leave_group_companion_and_host(store, membership, busy_group):
    """Over the live channel a companion leaves alone, a host takes the group down"""
    group_id, (host_id, companion_id), _ = busy_group(companions=1)

    companion_result = membership.leave_group(group_id, companion_id)
    assert companion_result == {"group_id": group_id, "group_deleted": False, "calendar_cleared": True}
    assert count_rows(store, Group) == 1

    host_result = membership.leave_group(group_id, host_id)
    assert host_result["group_deleted"] is True
    for model in GROUP_TABLES:
        assert count_rows(store, model) == 0, model.__tablename__

def test_only_host_deletes_group(store, membership, busy_group):
    """deleteGroup from a companion is refused; from the host it cascades"""
    group_id, (host_id, companion_id), _ = busy_group(companions=1)

    with pytest.raises(NotAuthorized):
        membership.delete_group(group_id, companion_id)
    assert count_rows(store, Group) == 1

    result = membership.delete_group(group_id, host_id)
    assert result["removed"]["groups"] == 1
    assert result["removed"]["payment_shares"] == 2
    assert count_rows(store, Trip) == 0
