"""Latest-location store: one row per user, last write wins."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from friendradar.core.clock import as_utc, utcnow
from friendradar.models.user import User
from friendradar.models.user_location import UserLocation
from friendradar.services.friend_graph import get_friend_ids


@dataclass
class LocationSample:
    """A single position reading reported by a client."""

    user_id: int
    latitude: float
    longitude: float
    accuracy: float | None = None
    altitude: float | None = None
    speed: float | None = None
    recorded_at: datetime = field(default_factory=utcnow)


def get_location(db: Session, user_id: int, fresh: bool = False) -> UserLocation | None:
    """Stored location for a user. ``fresh`` bypasses the session's identity map."""
    stmt = select(UserLocation).where(UserLocation.user_id == user_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def upsert_location(db: Session, sample: LocationSample) -> UserLocation | None:
    """Store the sample unless it is older than the stored one.

    Returns the stored row, or None when the sample was stale and ignored.
    Callers serialize per user.
    """
    recorded_at = as_utc(sample.recorded_at)
    current = get_location(db, sample.user_id, fresh=True)
    if current is not None and recorded_at < as_utc(current.recorded_at):
        return None

    if current is None:
        current = UserLocation(user_id=sample.user_id)
        db.add(current)
    current.latitude = sample.latitude
    current.longitude = sample.longitude
    current.accuracy = sample.accuracy
    current.altitude = sample.altitude
    current.speed = sample.speed
    current.recorded_at = recorded_at
    db.commit()
    db.refresh(current)
    return current


def get_visible_friend_locations(db: Session, user_id: int) -> list[tuple[User, UserLocation]]:
    """Friends' latest locations, excluding friends in ghost mode."""
    friend_ids = get_friend_ids(db, user_id)
    if not friend_ids:
        return []
    result = db.execute(
        select(User, UserLocation)
        .join(UserLocation, UserLocation.user_id == User.id)
        .where(User.id.in_(friend_ids), User.is_ghost_mode.is_(False))
        .order_by(User.id)
    )
    return [(u, loc) for u, loc in result.all()]
