"""Presence broadcaster tests."""

import asyncio

import pytest

from friendradar.core.presence import Channel, PresenceBroadcaster, WebSocketChannel


class FakeWebSocket:
    def __init__(self):
        self.sent = []

    async def send_text(self, text):
        self.sent.append(text)


class BrokenChannel(Channel):
    def offer(self, event, data):
        raise ConnectionError("gone")


def test_emit_reaches_every_channel_of_user(broadcaster):
    got_a, got_b = [], []
    broadcaster.subscribe(1, lambda e, d: got_a.append((e, d)))
    broadcaster.subscribe(1, lambda e, d: got_b.append((e, d)))

    assert broadcaster.emit(1, "nearbyAlert", {"x": 1}) == 2
    assert got_a == [("nearbyAlert", {"x": 1})]
    assert got_b == [("nearbyAlert", {"x": 1})]
    assert broadcaster.channels_for(1) == 2


def test_emit_without_channel_is_dropped(broadcaster):
    assert broadcaster.emit(42, "sosAlert", {}) == 0


def test_emit_does_not_leak_to_other_users(broadcaster):
    got = []
    broadcaster.subscribe(1, lambda e, d: got.append(e))
    broadcaster.emit(2, "sosAlert", {})
    assert got == []


def test_emit_many(broadcaster):
    got = []
    for uid in (1, 2, 3):
        broadcaster.subscribe(uid, lambda e, d, uid=uid: got.append(uid))
    assert broadcaster.emit_many([1, 3, 4], "sosResolved", {}) == 2
    assert sorted(got) == [1, 3]


def test_unsubscribe_stops_delivery(broadcaster):
    got = []
    channel = broadcaster.subscribe(1, lambda e, d: got.append(e))
    broadcaster.unsubscribe(channel)
    assert broadcaster.emit(1, "weatherShare", {}) == 0
    assert got == []
    assert broadcaster.total_channels == 0


def test_failing_channel_is_removed(broadcaster):
    got = []
    broken = BrokenChannel()
    broadcaster.join(1, broken)
    broadcaster.subscribe(1, lambda e, d: got.append(e))

    assert broadcaster.emit(1, "nearbyAlert", {}) == 1
    assert got == ["nearbyAlert"]
    assert broadcaster.channels_for(1) == 1


def test_closed_channel_is_removed(broadcaster):
    channel = broadcaster.subscribe(1, lambda e, d: None)
    channel.close()
    assert broadcaster.emit(1, "nearbyAlert", {}) == 0
    assert broadcaster.channels_for(1) == 0


def test_join_requires_running_broadcaster():
    b = PresenceBroadcaster()
    with pytest.raises(RuntimeError):
        b.subscribe(1, lambda e, d: None)


def test_close_releases_all_channels():
    b = PresenceBroadcaster()
    b.start()
    channel = b.subscribe(1, lambda e, d: None)
    b.subscribe(2, lambda e, d: None)
    b.close()
    assert b.total_channels == 0
    assert channel.closed
    assert not b.running


def test_websocket_channel_drops_when_outbox_full():
    async def scenario():
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws, maxsize=1)
        assert channel.offer("nearbyAlert", {"n": 1}) is True
        assert channel.offer("nearbyAlert", {"n": 2}) is False

        pump = asyncio.create_task(channel.pump())
        await asyncio.sleep(0.01)
        pump.cancel()
        return ws.sent

    sent = asyncio.run(scenario())
    assert sent == ['{"event": "nearbyAlert", "data": {"n": 1}}']


def test_websocket_channel_accepts_offers_from_other_threads():
    async def scenario():
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws)
        pump = asyncio.create_task(channel.pump())
        accepted = await asyncio.to_thread(channel.offer, "sosAlert", {"alertId": 7})
        await asyncio.sleep(0.01)
        pump.cancel()
        return accepted, ws.sent

    accepted, sent = asyncio.run(scenario())
    assert accepted is True
    assert sent == ['{"event": "sosAlert", "data": {"alertId": 7}}']


def test_closed_websocket_channel_refuses_offers():
    async def scenario():
        channel = WebSocketChannel(FakeWebSocket())
        channel.close()
        return channel.offer("sosAlert", {})

    assert asyncio.run(scenario()) is False


class HalfClosedWebSocket:
    async def send_text(self, text):
        raise RuntimeError("Cannot call send once a close message has been sent")


def test_channel_is_pruned_after_send_failure(broadcaster):
    async def scenario():
        channel = WebSocketChannel(HalfClosedWebSocket())
        broadcaster.join(1, channel)
        pump = asyncio.create_task(channel.pump())
        broadcaster.emit(1, "sosAlert", {"alertId": 1})
        await asyncio.wait_for(pump, timeout=1)
        return channel, pump

    channel, pump = asyncio.run(scenario())
    assert pump.exception() is None
    assert channel.closed
    assert broadcaster.emit(1, "sosAlert", {"alertId": 2}) == 0
    assert broadcaster.channels_for(1) == 0


def test_channel_base_is_abstract():
    with pytest.raises(TypeError):
        Channel()
