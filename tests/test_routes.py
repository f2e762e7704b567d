"""
Tests for the HTTP surface: envelopes, identity and error mapping
"""

import pytest

@pytest.fixture
def api(make_client, make_user):
    host_id = make_user("host")
    friend_id = make_user("friend")
    client = make_client({"host-token": host_id, "friend-token": friend_id})
    return client, host_id, friend_id

def auth(token):
    return {"Authorization": f"Bearer {token}"}

TRIP_BODY = {
    "date": "2025-10-01~2025-10-02",
    "groupName": "Autumn Escape",
    "days": [
        {"day": 1, "destination": "Seoul", "locations": [{"name": "Gyeongbokgung", "visitTime": "10:00"}]},
    ],
}

@pytest.fixture
def group_with_trip(api, membership):
    client, host_id, friend_id = api
    group_id = client.post("/groups", json={"name": "Weekend"}, headers=auth("host-token")).json()["data"]["id"]
    membership.join_group(group_id, friend_id)
    response = client.post("/trips", json={**TRIP_BODY, "groupId": group_id}, headers=auth("host-token"))
    assert response.status_code == 201
    return group_id, response.json()["data"]["trip_id"]

def test_health_check(api):
    client, _, _ = api
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

def test_identity_is_required(api):
    """Missing or unknown credentials map to 401 in the error envelope"""
    client, _, _ = api

    missing = client.post("/groups", json={"name": "Trip"})
    unknown = client.post("/groups", json={"name": "Trip"}, headers=auth("nope"))

    assert missing.status_code == 401
    assert missing.json()["success"] is False
    assert missing.json()["error_code"] == "authorization"
    assert unknown.status_code == 401

def test_group_endpoints(api, membership):
    client, host_id, friend_id = api

    created = client.post("/groups", json={"name": "Weekend"}, headers=auth("host-token"))
    assert created.status_code == 201
    group = created.json()["data"]
    assert group["host_id"] == host_id

    membership.join_group(group["id"], friend_id)
    members = client.get(f"/groups/{group['id']}/members", headers=auth("friend-token")).json()["data"]
    assert [m["user_id"] for m in members] == [host_id, friend_id]

    invite = client.post(f"/groups/{group['id']}/invites", headers=auth("host-token")).json()["data"]
    resolved = client.get(f"/groups/invites/{invite['code']}", headers=auth("friend-token")).json()["data"]
    assert resolved["group_id"] == group["id"]

    thumb = client.put(
        f"/groups/{group['id']}/thumbnail",
        json={"url": "https://cdn.example.com/t.png"},
        headers=auth("friend-token"),
    )
    assert thumb.status_code == 200
    details = client.get(f"/groups/{group['id']}", headers=auth("host-token")).json()["data"]
    assert details["thumbnail"] == "https://cdn.example.com/t.png"

    missing = client.get("/groups/9999", headers=auth("host-token"))
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "not_found"

def test_trip_endpoints(api, group_with_trip):
    client, _, friend_id = api
    group_id, trip_id = group_with_trip

    details = client.get(f"/trips/{trip_id}", headers=auth("friend-token")).json()["data"]
    assert details["group_name"] == "Autumn Escape"
    assert client.get(f"/trips/groups/{group_id}", headers=auth("friend-token")).json()["data"]["trip_id"] == trip_id
    assert [t["trip_id"] for t in client.get("/trips/mine", headers=auth("host-token")).json()["data"]] == [trip_id]

    duplicate = client.post("/trips", json={**TRIP_BODY, "groupId": group_id}, headers=auth("host-token"))
    assert duplicate.status_code == 409

    added = client.post(
        f"/trips/{trip_id}/locations",
        json={"tripId": trip_id, "day": 2, "name": "Namsan Tower"},
        headers=auth("friend-token"),
    )
    assert added.status_code == 201
    location_id = added.json()["data"]["location_id"]

    # the trip id in the path is enough
    by_path = client.post(
        f"/trips/{trip_id}/locations",
        json={"day": 1, "destination": "Seoul", "name": "Bukchon Hanok Village"},
        headers=auth("host-token"),
    )
    assert by_path.status_code == 201
    assert by_path.json()["data"]["name"] == "Bukchon Hanok Village"
    deleted = client.delete(f"/trips/locations/{location_id}", headers=auth("host-token"))
    assert deleted.status_code == 200

def test_trip_history_endpoint(api, group_with_trip, groups):
    """Finished groups show up in the members' history"""
    client, _, _ = api
    group_id, trip_id = group_with_trip

    assert client.get("/trips/history", headers=auth("friend-token")).json()["data"] == []

    groups.mark_finished(group_id)
    history = client.get("/trips/history", headers=auth("friend-token"))

    assert history.status_code == 200
    assert [(h["trip_id"], h["group_name"]) for h in history.json()["data"]] == [(trip_id, "Autumn Escape")]
    assert client.get("/trips/history").status_code == 401

def test_location_version_conflict(api, group_with_trip):
    """Concurrent edits: the second writer with a stale version gets 409"""
    client, _, _ = api
    group_id, trip_id = group_with_trip
    location_id = client.get(f"/trips/{trip_id}", headers=auth("host-token")).json()["data"]["days"][0]["locations"][0]["location_id"]

    first = client.put(
        f"/trips/groups/{group_id}/locations",
        json={"locationId": location_id, "name": "Palace", "version": 1},
        headers=auth("host-token"),
    )
    second = client.put(
        f"/trips/groups/{group_id}/locations",
        json={"locationId": location_id, "name": "Other palace", "version": 1},
        headers=auth("friend-token"),
    )

    assert first.status_code == 200
    assert first.json()["data"]["version"] == 2
    assert second.status_code == 409
    assert second.json()["error_code"] == "conflict"
    assert second.json()["details"] == {"expected_version": 1, "current_version": 2}

def test_payment_endpoints(api, group_with_trip):
    client, host_id, friend_id = api
    _, trip_id = group_with_trip

    saved = client.post("/payments", json={"payments": [
        {"tripId": trip_id, "category": "food", "price": 200, "pay": host_id, "group": [host_id, friend_id]},
    ]}, headers=auth("friend-token"))
    assert saved.status_code == 201
    payment_id = saved.json()["data"][0]["payment_id"]

    updated = client.put("/payments", json={"payments": [
        {"paymentId": payment_id, "description": "Bibimbap", "version": 1},
    ]}, headers=auth("host-token"))
    assert updated.json()["data"][0]["version"] == 2

    listed = client.get(f"/payments/trips/{trip_id}", headers=auth("host-token")).json()["data"]
    assert listed[0]["share_amount"] == 100
    assert listed[0]["description"] == "Bibimbap"

    members = client.get(f"/payments/trips/{trip_id}/members", headers=auth("friend-token")).json()["data"]
    assert {m["user_id"] for m in members if m["is_me"]} == {friend_id}

    empty = client.post("/payments", json={"payments": []}, headers=auth("host-token"))
    assert empty.status_code == 422

def test_leaving_by_trip(api, group_with_trip):
    """Members leave one by one; the last departure deletes the group"""
    client, _, _ = api
    group_id, trip_id = group_with_trip

    first = client.delete(f"/trips/{trip_id}/membership", headers=auth("host-token"))
    assert first.json()["data"]["group_deleted"] is False

    last = client.delete(f"/trips/{trip_id}/membership", headers=auth("friend-token"))
    assert last.json()["data"]["group_deleted"] is True
    assert client.get(f"/groups/{group_id}", headers=auth("friend-token")).status_code == 404

def test_http_departure_reaches_room(api, group_with_trip):
    """Leaving over HTTP is announced to connected members"""
    client, host_id, friend_id = api
    group_id, trip_id = group_with_trip

    with client.websocket_connect("/ws?token=host-token") as host_ws:
        host_ws.receive_json()
        host_ws.send_json({"type": "joinGroup", "groupId": group_id, "userId": host_id})
        host_ws.send_json({"type": "ping", "timestamp": 0})
        assert host_ws.receive_json()["type"] == "pong"

        client.delete(f"/trips/{trip_id}/membership", headers=auth("friend-token"))

        left = host_ws.receive_json()
        assert left["type"] == "memberLeft"
        assert left["userId"] == friend_id
