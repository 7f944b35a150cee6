"""Proximity engine.

On every stored location sample the engine recomputes the distance from the
reporting user to each friend with a known location and watches for
threshold crossings:

  APART -> NEAR   nearbyAlert to both sides (once), meeting session opened
  NEAR  -> APART  meeting session closed

Edges live in memory only. The scan is linear in the number of friends.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from friendradar.core.clock import as_utc
from friendradar.core.locks import KeyedLocks, pair_key
from friendradar.core.presence import NEARBY_ALERT, PresenceBroadcaster
from friendradar.models.user import User
from friendradar.models.user_location import UserLocation
from friendradar.services.friend_graph import are_friends, get_friend_ids
from friendradar.services.geo import haversine_m, midpoint
from friendradar.services.location_store import get_location
from friendradar.services.meetings import MeetingSessionTracker

logger = logging.getLogger(__name__)


class EdgeState(str, enum.Enum):
    APART = "APART"
    NEAR = "NEAR"


@dataclass
class ProximityEdge:
    """Current distance and state for an unordered pair (user_a_id < user_b_id)."""

    user_a_id: int
    user_b_id: int
    distance_m: float
    state: EdgeState
    updated_at: datetime


@dataclass
class NearbyFriend:
    friend_id: int
    name: str
    distance_m: float


class ProximityEngine:
    """Detects APART/NEAR crossings between friends."""

    def __init__(
        self,
        nearby_threshold_m: float,
        tracker: MeetingSessionTracker,
        broadcaster: PresenceBroadcaster,
        locks: KeyedLocks,
    ) -> None:
        if nearby_threshold_m <= 0:
            raise ValueError("nearby_threshold_m must be positive")
        self.nearby_threshold_m = nearby_threshold_m
        self._tracker = tracker
        self._broadcaster = broadcaster
        self._locks = locks
        self._edges: dict[tuple[int, int], ProximityEdge] = {}
        self._edges_lock = threading.Lock()

    def edge(self, user_id: int, other_id: int) -> ProximityEdge | None:
        with self._edges_lock:
            return self._edges.get(tuple(sorted((user_id, other_id))))

    def forget(self, user_id: int, other_id: int) -> None:
        """Drop the edge for a pair (e.g. after an unfriend)."""
        with self._edges_lock:
            self._edges.pop(tuple(sorted((user_id, other_id))), None)

    def on_sample(self, db: Session, user: User, location: UserLocation) -> list[NearbyFriend]:
        """Recompute every edge touching ``user``. Returns visible friends currently NEAR."""
        friend_ids = get_friend_ids(db, user.id)
        if not friend_ids:
            return []

        friends = {
            u.id: u
            for u in db.execute(
                select(User).where(User.id.in_(friend_ids)).execution_options(populate_existing=True)
            ).scalars().all()
        }
        now = as_utc(location.recorded_at)

        nearby: list[NearbyFriend] = []
        for fid in friend_ids:
            friend = friends.get(fid)
            if friend is None:
                continue
            with self._locks.hold(pair_key(user.id, fid)):
                # an unfriend may have landed since the friend list was read
                if not are_friends(db, user.id, fid):
                    continue
                other = get_location(db, fid, fresh=True)
                if other is None:
                    continue
                edge = self._update_edge(db, user, location, friend, other, now)
            if edge.state is EdgeState.NEAR and not friend.is_ghost_mode:
                nearby.append(NearbyFriend(friend_id=fid, name=friend.full_name, distance_m=round(edge.distance_m, 1)))
        return nearby

    def _update_edge(
        self,
        db: Session,
        user: User,
        location: UserLocation,
        friend: User,
        other: UserLocation,
        now: datetime,
    ) -> ProximityEdge:
        """Store the new edge and act on a crossing. Caller holds the pair lock."""
        low, high = sorted((user.id, friend.id))
        distance = haversine_m(location.latitude, location.longitude, other.latitude, other.longitude)
        state = EdgeState.NEAR if distance <= self.nearby_threshold_m else EdgeState.APART

        with self._edges_lock:
            previous = self._edges.get((low, high))
        if previous is not None:
            previous_state = previous.state
        elif self._tracker.get_open(db, low, high) is not None:
            # no edge in memory (restart); an open session means they were NEAR
            previous_state = EdgeState.NEAR
        else:
            previous_state = EdgeState.APART

        edge = ProximityEdge(user_a_id=low, user_b_id=high, distance_m=distance, state=state, updated_at=now)
        with self._edges_lock:
            self._edges[(low, high)] = edge

        if previous_state is EdgeState.APART and state is EdgeState.NEAR:
            center = midpoint(location.latitude, location.longitude, other.latitude, other.longitude)
            self._tracker.start(db, user.id, friend.id, center, now)
            self._alert_pair(user, friend, distance)
        elif previous_state is EdgeState.NEAR and state is EdgeState.APART:
            self._tracker.end(db, user.id, friend.id, now)
        return edge

    def _alert_pair(self, user: User, friend: User, distance: float) -> None:
        """nearbyAlert to each side, unless the other side is hidden by ghost mode."""
        meters = round(distance)
        logger.info("Nearby: users=(%s, %s) distance=%sm", user.id, friend.id, meters)
        if not friend.is_ghost_mode:
            self._broadcaster.emit(user.id, NEARBY_ALERT, _alert_payload(friend, meters))
        if not user.is_ghost_mode:
            self._broadcaster.emit(friend.id, NEARBY_ALERT, _alert_payload(user, meters))


def _alert_payload(about: User, meters: int) -> dict:
    return {
        "type": "NEARBY_ALERT",
        "friend": {"id": about.id, "name": about.full_name},
        "distance": meters,
        "message": f"You are near {about.full_name or 'a friend'}!",
    }
