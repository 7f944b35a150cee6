"""Presence engine: the operations the API layer calls.

Wires the location store, proximity engine, meeting tracker, SOS lifecycle
and presence broadcaster together around one lock registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from friendradar.core.clock import as_utc, utcnow
from friendradar.core.locks import KeyedLocks, pair_key
from friendradar.core.presence import (
    FRIEND_BATTERY_UPDATE,
    FRIEND_ON_MY_WAY,
    WEATHER_SHARE,
    PresenceBroadcaster,
)
from friendradar.models.sos_alert import SosAlert
from friendradar.models.user import User
from friendradar.services import friend_graph
from friendradar.services.geo import validate_coordinates
from friendradar.services.location_store import LocationSample, upsert_location
from friendradar.services.meetings import MeetingSessionTracker, PlaceResolver
from friendradar.services.proximity import NearbyFriend, ProximityEngine
from friendradar.services.sos import SOSLifecycle, validate_battery_level

logger = logging.getLogger(__name__)


@dataclass
class LocationReport:
    accepted: bool
    nearby: list[NearbyFriend] = field(default_factory=list)


class PresenceEngine:
    def __init__(
        self,
        broadcaster: PresenceBroadcaster,
        nearby_threshold_m: float,
        place_resolver: PlaceResolver | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.broadcaster = broadcaster
        self.locks = locks or KeyedLocks()
        self.meetings = MeetingSessionTracker(self.locks, place_resolver)
        self.proximity = ProximityEngine(nearby_threshold_m, self.meetings, broadcaster, self.locks)
        self.sos = SOSLifecycle(broadcaster, self.locks)

    # ---------- location ----------

    def report_location(
        self,
        db: Session,
        user: User,
        latitude: float,
        longitude: float,
        accuracy: float | None = None,
        altitude: float | None = None,
        speed: float | None = None,
        timestamp: datetime | None = None,
    ) -> LocationReport:
        """Store a sample and run proximity on it.

        A sample older than the stored one is ignored (``accepted=False``).
        """
        validate_coordinates(latitude, longitude)
        now = utcnow()
        # client clocks may run ahead; never store a time the server has not reached
        recorded_at = min(as_utc(timestamp), now) if timestamp else now
        sample = LocationSample(
            user_id=user.id,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            altitude=altitude,
            speed=speed,
            recorded_at=recorded_at,
        )
        with self.locks.hold(("user", user.id)):
            stored = upsert_location(db, sample)
            if stored is None:
                logger.info("Stale location ignored: user=%s at=%s", user.id, sample.recorded_at.isoformat())
                return LocationReport(accepted=False)
            nearby = self.proximity.on_sample(db, user, stored)
        return LocationReport(accepted=True, nearby=nearby)

    # ---------- SOS ----------

    def send_sos(
        self,
        db: Session,
        sender: User,
        latitude: float,
        longitude: float,
        battery_level: int | None = None,
        message: str | None = None,
    ) -> SosAlert:
        return self.sos.send(db, sender, latitude, longitude, battery_level, message)

    def resolve_sos(self, db: Session, alert_id: int, requester_id: int) -> SosAlert:
        return self.sos.resolve(db, alert_id, requester_id)

    # ---------- friend graph ----------

    def remove_friend(self, db: Session, user_id: int, friend_id: int) -> bool:
        """Unfriend both sides; an open meeting between them is closed first."""
        with self.locks.hold(pair_key(user_id, friend_id)):
            self.meetings.end(db, user_id, friend_id, utcnow())
            removed = friend_graph.remove_friend(db, user_id, friend_id)
            self.proximity.forget(user_id, friend_id)
        return removed

    # ---------- relays ----------

    def share_weather(self, db: Session, sender: User, friend_id: int, weather: dict[str, Any]) -> int:
        """Relay caller-supplied weather to one friend."""
        if not friend_graph.are_friends(db, sender.id, friend_id):
            raise ValueError("You can only share weather with your friends")
        payload = {
            "type": "WEATHER_SHARE",
            "from": {"id": sender.id, "name": sender.full_name},
            "weather": weather,
            "sharedAt": utcnow().isoformat(),
        }
        return self.broadcaster.emit(friend_id, WEATHER_SHARE, payload)

    def on_my_way(
        self,
        db: Session,
        sender: User,
        friend_id: int,
        latitude: float,
        longitude: float,
        destination: str | None = None,
    ) -> int:
        """Tell a friend the sender is heading their way."""
        validate_coordinates(latitude, longitude)
        if not friend_graph.are_friends(db, sender.id, friend_id):
            raise ValueError("You can only share your trip with your friends")
        payload = {
            "type": "ON_MY_WAY",
            "from": {"id": sender.id, "name": sender.full_name},
            "location": {"latitude": latitude, "longitude": longitude},
            "destination": destination,
        }
        return self.broadcaster.emit(friend_id, FRIEND_ON_MY_WAY, payload)

    def update_battery(self, db: Session, user: User, battery_level: int) -> User:
        """Store the battery level and push it to every friend."""
        validate_battery_level(battery_level)
        user.battery_level = battery_level
        db.commit()
        db.refresh(user)
        friend_ids = friend_graph.get_friend_ids(db, user.id)
        self.broadcaster.emit_many(
            friend_ids,
            FRIEND_BATTERY_UPDATE,
            {"userId": user.id, "batteryLevel": battery_level},
        )
        return user
