"""Client-side location sampler.

Decides how often a device reports its position, based on speed:

  FAST    speed > 5 m/s           every 30 s
  SLOW    1 < speed <= 5 m/s      every 60 s
  PAUSED  stationary for 5 min    nothing is sent until the device moves

A fix is only sent when it is at least 50 m from the last position that was
sent. Delivery failures are logged and dropped; the next tick sends whatever
fix is current then.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httpx

from friendradar.core.clock import as_utc, utcnow
from friendradar.core.policies import (
    FAST_INTERVAL_SECONDS,
    FAST_SPEED_MPS,
    MAX_BACKOFF_SECONDS,
    MIN_EMIT_DISTANCE_M,
    SLOW_INTERVAL_SECONDS,
    SLOW_SPEED_MPS,
    STATIONARY_PAUSE_SECONDS,
)
from friendradar.services.geo import haversine_m

logger = logging.getLogger(__name__)


@dataclass
class PositionFix:
    """A raw reading from the platform location provider."""

    latitude: float
    longitude: float
    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "altitude": self.altitude,
            "speed": self.speed,
            "timestamp": as_utc(self.timestamp).isoformat(),
        }


class SamplingState(str, enum.Enum):
    FAST = "FAST"
    SLOW = "SLOW"
    PAUSED = "PAUSED"


@dataclass
class SamplingDecision:
    state: SamplingState
    interval_seconds: int
    emit: bool


class SamplingPolicy:
    """Pure speed/distance policy. Holds no I/O."""

    def __init__(self) -> None:
        self.state = SamplingState.SLOW
        self.last_emitted: PositionFix | None = None
        self._stationary_since: datetime | None = None

    def on_fix(self, fix: PositionFix, now: datetime | None = None) -> SamplingDecision:
        now = as_utc(now or fix.timestamp)
        speed = fix.speed or 0.0

        if speed > FAST_SPEED_MPS:
            self._stationary_since = None
            self.state = SamplingState.FAST
            interval = FAST_INTERVAL_SECONDS
        elif speed > SLOW_SPEED_MPS:
            self._stationary_since = None
            self.state = SamplingState.SLOW
            interval = SLOW_INTERVAL_SECONDS
        else:
            if self._stationary_since is None:
                self._stationary_since = now
            stationary_for = (now - self._stationary_since).total_seconds()
            if stationary_for >= STATIONARY_PAUSE_SECONDS:
                self.state = SamplingState.PAUSED
            else:
                self.state = SamplingState.SLOW
            interval = SLOW_INTERVAL_SECONDS

        emit = self.state is not SamplingState.PAUSED and self._far_enough(fix)
        return SamplingDecision(state=self.state, interval_seconds=interval, emit=emit)

    def mark_emitted(self, fix: PositionFix) -> None:
        self.last_emitted = fix

    def _far_enough(self, fix: PositionFix) -> bool:
        if self.last_emitted is None:
            return True
        moved = haversine_m(self.last_emitted.latitude, self.last_emitted.longitude, fix.latitude, fix.longitude)
        return moved >= MIN_EMIT_DISTANCE_M


class FixSubscription:
    """Handle on a LatestFixSource. Reads the newest fix without blocking."""

    def __init__(self, source: LatestFixSource) -> None:
        self._source = source
        self.closed = False

    def latest(self) -> PositionFix | None:
        if self.closed:
            return None
        return self._source.latest

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._source._release(self)


class LatestFixSource:
    """Keeps the newest fix published by the platform provider.

    ``publish`` may be called from any thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: PositionFix | None = None
        self._subscriptions: set[FixSubscription] = set()

    @property
    def latest(self) -> PositionFix | None:
        with self._lock:
            return self._latest

    @property
    def subscribers(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, fix: PositionFix) -> None:
        with self._lock:
            self._latest = fix

    def subscribe(self) -> FixSubscription:
        subscription = FixSubscription(self)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def _release(self, subscription: FixSubscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)


class LocationSink(Protocol):
    async def push(self, fix: PositionFix) -> None: ...


class HttpLocationSink:
    """Posts fixes to the server's ``/location`` endpoint."""

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    async def push(self, fix: PositionFix) -> None:
        response = await self._client.post(
            "/location",
            json=fix.to_payload(),
            headers={"Authorization": f"Bearer {self._token}"},
        )
        response.raise_for_status()


def backoff_seconds(interval_seconds: float, failures: int) -> float:
    """Wait after ``failures`` consecutive delivery failures."""
    if failures <= 0:
        return interval_seconds
    return min(interval_seconds * 2 ** (failures - 1), MAX_BACKOFF_SECONDS)


class LocationSampler:
    """Cancellable loop: read the current fix, ask the policy, maybe push, sleep."""

    def __init__(
        self,
        source: LatestFixSource,
        sink: LocationSink,
        policy: SamplingPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._source = source
        self._sink = sink
        self.policy = policy or SamplingPolicy()
        self._sleep = sleep
        self._clock = clock
        self._task: asyncio.Task | None = None
        self.failures = 0
        self.sent = 0

    async def tick(self, subscription: FixSubscription) -> float:
        """One sampling step. Returns how long to wait before the next one."""
        fix = subscription.latest()
        if fix is None:
            return SLOW_INTERVAL_SECONDS

        decision = self.policy.on_fix(fix, now=self._clock())
        if not decision.emit:
            return decision.interval_seconds

        try:
            await self._sink.push(fix)
        except Exception as e:
            self.failures += 1
            logger.warning("Location push failed (%s in a row): %s", self.failures, e)
            return backoff_seconds(decision.interval_seconds, self.failures)

        self.failures = 0
        self.sent += 1
        self.policy.mark_emitted(fix)
        return decision.interval_seconds

    async def run(self) -> None:
        subscription = self._source.subscribe()
        try:
            while True:
                wait = await self.tick(subscription)
                await self._sleep(wait)
        finally:
            subscription.close()
            logger.debug("Location sampler stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
