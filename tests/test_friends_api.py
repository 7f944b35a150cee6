"""Friend graph, ghost mode, meeting point, battery and weather API tests."""


def test_add_and_list_friends(client, make_user, auth):
    a, b = make_user("Alice"), make_user("Bob")

    r = client.post(f"/friends/{b.id}", headers=auth(a))
    assert r.status_code == 200
    assert r.json()["id"] == b.id

    # adding twice is harmless and the link is mutual
    assert client.post(f"/friends/{a.id}", headers=auth(b)).status_code == 200
    assert [f["id"] for f in client.get("/friends", headers=auth(a)).json()] == [b.id]
    assert [f["id"] for f in client.get("/friends", headers=auth(b)).json()] == [a.id]


def test_add_friend_errors(client, make_user, auth):
    a = make_user("Alice")
    assert client.post(f"/friends/{a.id}", headers=auth(a)).status_code == 400
    assert client.post("/friends/999999", headers=auth(a)).status_code == 404


def test_remove_friend(client, make_user, befriend, auth):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)

    assert client.delete(f"/friends/{b.id}", headers=auth(a)).status_code == 204
    assert client.get("/friends", headers=auth(b)).json() == []
    assert client.delete(f"/friends/{b.id}", headers=auth(a)).status_code == 404


def test_ghost_mode_toggle(client, make_user, auth):
    h = auth(make_user("Alice"))
    r = client.put("/friends/ghost-mode", headers=h, json={"enabled": True})
    assert r.status_code == 200
    assert r.json() == {"is_ghost_mode": True}
    assert client.put("/friends/ghost-mode", headers=h, json={"enabled": False}).json() == {"is_ghost_mode": False}


def test_meeting_point(client, make_user, befriend, auth):
    a, b, stranger = make_user("Alice"), make_user("Bob"), make_user("Zed")
    befriend(a, b)

    assert client.get(f"/friends/{stranger.id}/meetpoint", headers=auth(a)).status_code == 403
    assert client.get(f"/friends/{b.id}/meetpoint", headers=auth(a)).status_code == 404

    client.post("/location", headers=auth(a), json={"latitude": 40.0, "longitude": -74.0})
    client.post("/location", headers=auth(b), json={"latitude": 41.0, "longitude": -75.0})

    r = client.get(f"/friends/{b.id}/meetpoint", headers=auth(a))
    assert r.status_code == 200
    body = r.json()
    assert body["latitude"] == 40.5
    assert body["longitude"] == -74.5
    assert body["distance_m"] > 100_000


def test_battery_update(client, make_user, auth):
    h = auth(make_user("Alice"))
    r = client.put("/presence/battery", headers=h, json={"battery_level": 55})
    assert r.status_code == 200
    assert r.json()["battery_level"] == 55
    assert client.put("/presence/battery", headers=h, json={"battery_level": 101}).status_code == 422


def test_weather_share_requires_friendship(client, make_user, befriend, auth):
    a, b, stranger = make_user("Alice"), make_user("Bob"), make_user("Zed")
    befriend(a, b)
    weather = {"temp_c": 21, "summary": "Sunny"}

    r = client.post("/weather/share", headers=auth(a), json={"friend_id": stranger.id, "weather": weather})
    assert r.status_code == 403

    r = client.post("/weather/share", headers=auth(a), json={"friend_id": b.id, "weather": weather})
    assert r.status_code == 200
    assert r.json() == {"status": "shared", "delivered": 0}


def test_search_users(client, make_user, auth):
    me = make_user("Searcher")
    target = make_user("Quentinella")
    make_user("Other")

    r = client.get("/friends/search?q=quentin", headers=auth(me))
    assert r.status_code == 200
    assert [u["id"] for u in r.json()] == [target.id]
    assert set(r.json()[0]) == {"id", "full_name", "email"}

    # the caller never finds themselves
    assert client.get("/friends/search?q=searcher", headers=auth(me)).json() == []


def test_search_users_needs_two_characters(client, make_user, auth):
    r = client.get("/friends/search?q=a", headers=auth(make_user("Alice")))
    assert r.status_code == 400
