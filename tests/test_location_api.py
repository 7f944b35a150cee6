"""Location, friends' locations and meeting history API tests."""

from datetime import datetime, timedelta, timezone

T0 = datetime(2026, 4, 2, 17, 0, tzinfo=timezone.utc)


def _post(client, headers, lat, lon, at, **extra):
    return client.post(
        "/location",
        headers=headers,
        json={"latitude": lat, "longitude": lon, "timestamp": at.isoformat(), **extra},
    )


def test_location_requires_auth(client):
    r = client.post("/location", json={"latitude": 1, "longitude": 2})
    assert r.status_code == 401


def test_location_rejects_bad_token(client):
    r = client.post("/location", headers={"Authorization": "Bearer nope"}, json={"latitude": 1, "longitude": 2})
    assert r.status_code == 401


def test_location_validation(client, make_user, auth):
    h = auth(make_user("Alice"))
    assert client.post("/location", headers=h, json={"latitude": 91, "longitude": 0}).status_code == 422
    assert client.post("/location", headers=h, json={"latitude": 0, "longitude": 181}).status_code == 422
    assert client.post("/location", headers=h, json={"longitude": 0}).status_code == 422
    assert client.post("/location", headers=h, json={"latitude": 0, "longitude": 0, "speed": -1}).status_code == 422


def test_report_location_and_nearby(client, make_user, befriend, auth):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)

    r = _post(client, auth(a), 40.7128, -74.0060, T0, accuracy=5.0, speed=0.4)
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "nearby": []}

    r = _post(client, auth(b), 40.7129, -74.0061, T0)
    assert r.status_code == 200
    [near] = r.json()["nearby"]
    assert near["friend_id"] == a.id
    assert near["name"] == "Alice"
    assert near["distance_m"] < 50


def test_stale_location_is_ignored(client, make_user, auth):
    h = auth(make_user("Alice"))
    assert _post(client, h, 40.0, -74.0, T0).json()["status"] == "ok"
    assert _post(client, h, 41.0, -75.0, T0 - timedelta(seconds=1)).json()["status"] == "stale"


def test_friends_locations_hide_ghosts(client, make_user, befriend, auth):
    a, b, ghost, stranger = make_user("Alice"), make_user("Bob"), make_user("Ghost", ghost=True), make_user("Zed")
    befriend(a, b, ghost)
    for user in (b, ghost, stranger):
        _post(client, auth(user), 40.0, -74.0, T0)

    r = client.get("/location/friends", headers=auth(a))
    assert r.status_code == 200
    assert [f["user_id"] for f in r.json()] == [b.id]


def test_meeting_history(client, make_user, befriend, auth):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)

    _post(client, auth(a), 40.7128, -74.0060, T0)
    _post(client, auth(b), 40.7129, -74.0061, T0)
    _post(client, auth(b), 41.0, -75.0, T0 + timedelta(minutes=20))
    # a short encounter that is hidden by default
    _post(client, auth(b), 40.7129, -74.0061, T0 + timedelta(minutes=30))
    _post(client, auth(b), 41.0, -75.0, T0 + timedelta(minutes=32))

    r = client.get("/meetings", headers=auth(a))
    assert r.status_code == 200
    [meeting] = r.json()
    assert meeting["friend_id"] == b.id
    assert meeting["duration_minutes"] == 20

    r = client.get("/meetings?min_minutes=0", headers=auth(b))
    assert [m["duration_minutes"] for m in r.json()] == [2, 20]
    assert all(m["friend_id"] == a.id for m in r.json())
