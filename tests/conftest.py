"""
Shared test fixtures: a file-backed SQLite store, services and data builders
"""

import pytest

from tripsync.core.db import Store
from tripsync.core.retry import RetryPolicy
from tripsync.models import User
from tripsync.schemas.trip import TripCreate
from tripsync.services.calendar_service import CalendarService
from tripsync.services.group_service import GroupService
from tripsync.services.membership_service import MembershipService
from tripsync.services.payment_service import PaymentService
from tripsync.services.trip_service import TripService

@pytest.fixture
def sleeps():
    """Backoff delays requested by the store, recorded instead of slept"""
    return []

@pytest.fixture
def store(tmp_path, sleeps):
    """Fresh database file per test"""
    store = Store(
        f"sqlite:///{tmp_path / 'tripsync_test.db'}",
        lock_wait_timeout=5.0,
        retry_policy=RetryPolicy(max_retries=3, base_delay=0.05, max_delay=0.5),
        sleep=sleeps.append,
    )
    store.create_all()
    try:
        yield store
    finally:
        store.drop_all()
        store.dispose()

@pytest.fixture
def groups(store):
    return GroupService(store)

@pytest.fixture
def membership(store):
    return MembershipService(store)

@pytest.fixture
def trips(store):
    return TripService(store)

@pytest.fixture
def payments(store):
    return PaymentService(store)

@pytest.fixture
def calendar(store):
    return CalendarService(store)

@pytest.fixture
def make_user(store):
    """Insert a user row the way the authentication collaborator would"""
    def _make_user(nickname="traveler", profile_image=None):
        with store.transaction() as db:
            user = User(nickname=nickname, profile_image=profile_image)
            db.add(user)
            db.flush()
            return user.id
    return _make_user

@pytest.fixture
def make_group(groups, membership, make_user):
    """Create a group with a host and `companions` extra members.

    Returns (group_id, [host_id, companion ids...]).
    """
    def _make_group(companions=0, name="Busan Trip"):
        host_id = make_user("host")
        group = groups.create_group(name, host_id)
        member_ids = [host_id]
        for index in range(companions):
            user_id = make_user(f"companion{index + 1}")
            membership.join_group(group["id"], user_id)
            member_ids.append(user_id)
        return group["id"], member_ids
    return _make_group

@pytest.fixture
def make_trip(trips):
    """Finalize a group into a trip with two days of stops"""
    def _make_trip(group_id, user_id):
        trip_data = TripCreate.model_validate({
            "groupId": group_id,
            "date": "2025-07-01~2025-07-03",
            "days": [
                {
                    "day": 1,
                    "destination": "Busan",
                    "locations": [
                        {"name": "Haeundae Beach", "visitTime": "10:00", "category": "beach"},
                        {"name": "Gukje Market", "visitTime": "15:00", "category": "market"},
                    ],
                },
                {
                    "day": 2,
                    "destination": "Gyeongju",
                    "locations": [{"name": "Bulguksa", "visitTime": "09:30"}],
                },
            ],
        })
        return trips.create_trip(user_id, trip_data)
    return _make_trip

def count_rows(store, model, *criteria):
    """Row count for a model, optionally filtered"""
    with store.session() as db:
        return db.query(model).filter(*criteria).count()

@pytest.fixture
def make_client(store):
    """TestClient over an app wired to the test store; runs the lifespan"""
    from fastapi.testclient import TestClient

    from main import create_app
    from tripsync.core.config import Settings

    clients = []

    def _make_client(tokens=None):
        app = create_app(settings=Settings(AUTH_TOKENS=tokens or {}), store=store)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make_client
    for client in clients:
        client.__exit__(None, None, None)
