"""Presence broadcaster: per-user rooms of real-time delivery channels.

Every user id owns a room. A room holds zero or more channels (one per
connected device/session, or an in-process subscriber). ``emit`` is
fire-and-forget: it never blocks, never retries, and silently drops events
for users with no channel joined.
"""

from __future__ import annotations

import abc
import asyncio
import itertools
import json
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Event names pushed to clients
NEARBY_ALERT = "nearbyAlert"
WEATHER_SHARE = "weatherShare"
SOS_ALERT = "sosAlert"
SOS_RESOLVED = "sosResolved"
FRIEND_ON_MY_WAY = "friendOnMyWay"
FRIEND_BATTERY_UPDATE = "friendBatteryUpdate"

EventHandler = Callable[[str, Any], None]

_channel_ids = itertools.count(1)


class Channel(abc.ABC):
    """A delivery endpoint. ``offer`` must return immediately."""

    def __init__(self) -> None:
        self.id = next(_channel_ids)
        self.closed = False

    @abc.abstractmethod
    def offer(self, event: str, data: Any) -> bool:
        """Hand an event to the channel. Returns False if it was not accepted."""

    def close(self) -> None:
        self.closed = True


class CallbackChannel(Channel):
    """In-process subscriber; the handler runs on the emitting thread."""

    def __init__(self, handler: EventHandler) -> None:
        super().__init__()
        self._handler = handler

    def offer(self, event: str, data: Any) -> bool:
        if self.closed:
            return False
        self._handler(event, data)
        return True


class WebSocketChannel(Channel):
    """WebSocket connection with a bounded outbox drained by ``pump``.

    ``offer`` may be called from any thread (sync endpoints run in the
    threadpool); the message is handed to the connection's event loop. When
    the outbox is full the message is dropped for this connection only.
    """

    def __init__(self, websocket: WebSocket, maxsize: int = 100, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__()
        self.websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)

    def offer(self, event: str, data: Any) -> bool:
        if self.closed:
            return False
        payload = json.dumps({"event": event, "data": data}, default=str)
        if self._on_own_loop():
            return self._enqueue(payload)
        try:
            self._loop.call_soon_threadsafe(self._enqueue, payload)
        except RuntimeError:
            # event loop already shut down
            self.close()
            return False
        return True

    def _on_own_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _enqueue(self, payload: str) -> bool:
        try:
            self._outbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.debug("Outbox full, dropping message for channel=%s", self.id)
            return False
        return True

    async def pump(self) -> None:
        """Forward queued messages to the socket until cancelled.

        A failed send closes the channel; the broadcaster prunes it on the next emit.
        """
        while True:
            payload = await self._outbox.get()
            try:
                await self.websocket.send_text(payload)
            except Exception:
                logger.debug("Send failed on channel=%s, closing it", self.id, exc_info=True)
                self.close()
                return


class PresenceBroadcaster:
    """Maps user ids to their joined channels and multicasts named events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # user_id -> {channel_id: channel}
        self._rooms: dict[int, dict[int, Channel]] = {}
        # channel_id -> user ids whose room it joined
        self._memberships: dict[int, set[int]] = {}
        self._running = False

    def start(self) -> None:
        self._running = True
        logger.info("Presence broadcaster started")

    def close(self) -> None:
        """Drop every room and close every channel."""
        with self._lock:
            channels = {ch.id: ch for room in self._rooms.values() for ch in room.values()}
            self._rooms.clear()
            self._memberships.clear()
            self._running = False
        for ch in channels.values():
            ch.close()
        logger.info("Presence broadcaster closed (%s channels released)", len(channels))

    @property
    def running(self) -> bool:
        return self._running

    def join(self, user_id: int, channel: Channel) -> None:
        if not self._running:
            raise RuntimeError("Presence broadcaster is not running")
        with self._lock:
            self._rooms.setdefault(user_id, {})[channel.id] = channel
            self._memberships.setdefault(channel.id, set()).add(user_id)
        logger.info("Channel joined: user=%s channel=%s (total=%s)", user_id, channel.id, self.total_channels)

    def leave(self, channel: Channel) -> None:
        """Remove a channel from every room it joined."""
        with self._lock:
            user_ids = self._memberships.pop(channel.id, set())
            for uid in user_ids:
                room = self._rooms.get(uid)
                if room is None:
                    continue
                room.pop(channel.id, None)
                if not room:
                    del self._rooms[uid]
        if user_ids:
            logger.info("Channel left: users=%s channel=%s (total=%s)", sorted(user_ids), channel.id, self.total_channels)

    def subscribe(self, user_id: int, handler: EventHandler) -> CallbackChannel:
        """Register an in-process observer for a user's events."""
        channel = CallbackChannel(handler)
        self.join(user_id, channel)
        return channel

    def unsubscribe(self, channel: Channel) -> None:
        self.leave(channel)
        channel.close()

    def emit(self, user_id: int, event: str, data: Any) -> int:
        """Deliver an event to every channel of a user. Returns how many accepted it."""
        with self._lock:
            channels = list(self._rooms.get(user_id, {}).values())
        if not channels:
            logger.debug("Dropped %s for user=%s: no channel joined", event, user_id)
            return 0

        delivered = 0
        dead: list[Channel] = []
        for ch in channels:
            try:
                accepted = ch.offer(event, data)
            except Exception:
                logger.debug("Channel %s failed on %s, removing it", ch.id, event, exc_info=True)
                dead.append(ch)
                continue
            if ch.closed:
                dead.append(ch)
            elif accepted:
                delivered += 1
        for ch in dead:
            self.leave(ch)
        return delivered

    def emit_many(self, user_ids: Iterable[int], event: str, data: Any) -> int:
        """Broadcast the same event to several users."""
        return sum(self.emit(uid, event, data) for uid in user_ids)

    def channels_for(self, user_id: int) -> int:
        with self._lock:
            return len(self._rooms.get(user_id, {}))

    @property
    def total_channels(self) -> int:
        with self._lock:
            return len(self._memberships)
