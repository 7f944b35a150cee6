"""Proximity engine tests: edge-triggered alerts and meeting sessions."""

from datetime import datetime, timedelta, timezone

import pytest

from friendradar.core.clock import as_utc, utcnow
from friendradar.core.presence import NEARBY_ALERT
from friendradar.services import proximity
from friendradar.services.engine import PresenceEngine
from friendradar.services.location_store import get_location
from friendradar.services.proximity import EdgeState

T0 = datetime(2026, 3, 1, 18, 0, tzinfo=timezone.utc)

NYC_A = (40.7128, -74.0060)
NYC_B = (40.7129, -74.0061)
FAR = (41.0, -75.0)


def _report(engine, db, user, point, at):
    return engine.report_location(db, user, latitude=point[0], longitude=point[1], timestamp=at)


def test_engine_requires_positive_threshold(broadcaster):
    with pytest.raises(ValueError):
        PresenceEngine(broadcaster, nearby_threshold_m=0)


def test_meeting_scenario(db, make_user, befriend, recorder, presence_engine):
    """Two friends a few meters apart meet, then one leaves 12 minutes later."""
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    rec_a, rec_b = recorder(a.id), recorder(b.id)

    first = _report(presence_engine, db, a, NYC_A, T0)
    assert first.accepted and first.nearby == []

    second = _report(presence_engine, db, b, NYC_B, T0 + timedelta(seconds=10))
    assert [n.friend_id for n in second.nearby] == [a.id]
    assert second.nearby[0].distance_m < 50

    [alert_for_a] = rec_a.named(NEARBY_ALERT)
    [alert_for_b] = rec_b.named(NEARBY_ALERT)
    assert alert_for_a["friend"] == {"id": b.id, "name": "Bob"}
    assert alert_for_b["friend"] == {"id": a.id, "name": "Alice"}
    assert alert_for_a["message"] == "You are near Bob!"

    session = presence_engine.meetings.get_open(db, a.id, b.id)
    assert session is not None
    assert session.latitude == pytest.approx((NYC_A[0] + NYC_B[0]) / 2)

    _report(presence_engine, db, b, FAR, T0 + timedelta(minutes=12, seconds=10))
    assert presence_engine.meetings.get_open(db, a.id, b.id) is None
    [record] = presence_engine.meetings.history_for_user(db, a.id)
    assert record.duration_minutes == 12
    assert record.session_id == session.id
    assert presence_engine.proximity.edge(a.id, b.id).state is EdgeState.APART


def test_staying_near_alerts_once(db, make_user, befriend, recorder, presence_engine):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    rec_a, rec_b = recorder(a.id), recorder(b.id)

    _report(presence_engine, db, a, NYC_A, T0)
    for minute in range(1, 6):
        _report(presence_engine, db, b, NYC_B, T0 + timedelta(minutes=minute))
        _report(presence_engine, db, a, NYC_A, T0 + timedelta(minutes=minute, seconds=30))

    assert len(rec_a.named(NEARBY_ALERT)) == 1
    assert len(rec_b.named(NEARBY_ALERT)) == 1


def test_meeting_again_alerts_again(db, make_user, befriend, recorder, presence_engine):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    rec_a = recorder(a.id)

    _report(presence_engine, db, a, NYC_A, T0)
    _report(presence_engine, db, b, NYC_B, T0 + timedelta(minutes=1))
    _report(presence_engine, db, b, FAR, T0 + timedelta(minutes=2))
    _report(presence_engine, db, b, NYC_B, T0 + timedelta(minutes=3))

    assert len(rec_a.named(NEARBY_ALERT)) == 2
    assert len(presence_engine.meetings.history_for_user(db, a.id)) == 1


def test_strangers_are_ignored(db, make_user, recorder, presence_engine):
    a, b = make_user("Alice"), make_user("Bob")
    rec_a = recorder(a.id)

    _report(presence_engine, db, a, NYC_A, T0)
    report = _report(presence_engine, db, b, NYC_B, T0)

    assert report.nearby == []
    assert rec_a.events == []
    assert presence_engine.meetings.get_open(db, a.id, b.id) is None


def test_ghost_mode_hides_alerts_but_tracks_session(db, make_user, befriend, recorder, presence_engine):
    ghost, b = make_user("Ghost", ghost=True), make_user("Bob")
    befriend(ghost, b)
    rec_ghost, rec_b = recorder(ghost.id), recorder(b.id)

    _report(presence_engine, db, ghost, NYC_A, T0)
    report = _report(presence_engine, db, b, NYC_B, T0)

    assert report.nearby == []
    assert rec_b.named(NEARBY_ALERT) == []
    assert len(rec_ghost.named(NEARBY_ALERT)) == 1
    assert presence_engine.meetings.get_open(db, ghost.id, b.id) is not None


def test_stale_sample_is_ignored(db, make_user, presence_engine):
    a = make_user("Alice")
    assert _report(presence_engine, db, a, NYC_A, T0).accepted
    stale = _report(presence_engine, db, a, FAR, T0 - timedelta(minutes=1))
    assert not stale.accepted

    stored = get_location(db, a.id, fresh=True)
    assert (stored.latitude, stored.longitude) == NYC_A


def test_restart_does_not_reopen_session(db, make_user, befriend, broadcaster, recorder):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    rec_a = recorder(a.id)

    before = PresenceEngine(broadcaster, nearby_threshold_m=50.0)
    _report(before, db, a, NYC_A, T0)
    _report(before, db, b, NYC_B, T0 + timedelta(minutes=1))
    opened = before.meetings.get_open(db, a.id, b.id)

    after = PresenceEngine(broadcaster, nearby_threshold_m=50.0)
    _report(after, db, a, NYC_A, T0 + timedelta(minutes=2))
    assert len(rec_a.named(NEARBY_ALERT)) == 1
    assert after.meetings.get_open(db, a.id, b.id).id == opened.id

    _report(after, db, b, FAR, T0 + timedelta(minutes=9))
    [record] = after.meetings.history_for_user(db, a.id)
    assert record.duration_minutes == 8


def test_remove_friend_closes_meeting(db, make_user, befriend, presence_engine):
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    _report(presence_engine, db, a, NYC_A, T0)
    _report(presence_engine, db, b, NYC_B, T0)

    assert presence_engine.remove_friend(db, a.id, b.id)
    assert presence_engine.meetings.get_open(db, a.id, b.id) is None
    assert presence_engine.proximity.edge(a.id, b.id) is None
    assert not presence_engine.remove_friend(db, a.id, b.id)


def test_future_timestamp_is_capped_at_server_time(db, make_user, presence_engine):
    a = make_user("Alice")
    ahead = _report(presence_engine, db, a, (40.0, -74.0), utcnow() + timedelta(days=1))
    assert ahead.accepted
    assert as_utc(get_location(db, a.id, fresh=True).recorded_at) <= utcnow()

    # a later sample stamped by the server still wins
    later = presence_engine.report_location(db, a, latitude=41.0, longitude=-75.0)
    assert later.accepted
    assert get_location(db, a.id, fresh=True).latitude == 41.0


def test_unfriended_pair_is_skipped(db, make_user, befriend, recorder, presence_engine, monkeypatch):
    """A friend list read just before an unfriend must not open a meeting."""
    a, b = make_user("Alice"), make_user("Bob")
    befriend(a, b)
    rec_a = recorder(a.id)
    _report(presence_engine, db, a, NYC_A, T0)
    presence_engine.remove_friend(db, a.id, b.id)

    monkeypatch.setattr(proximity, "get_friend_ids", lambda session, user_id: [a.id])
    report = _report(presence_engine, db, b, NYC_B, T0 + timedelta(minutes=1))

    assert report.nearby == []
    assert rec_a.events == []
    assert presence_engine.meetings.get_open(db, a.id, b.id) is None
