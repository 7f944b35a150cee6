"""Meeting session tracker.

Each unordered friend pair moves through ``None -> Open -> Closed``. Closing a
session appends a MeetingHistory record. start/end for the same pair are
serialized with the pair lock; the partial unique index on open sessions
catches anything that slips past it (another process).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from friendradar.core.clock import as_utc
from friendradar.core.locks import KeyedLocks, pair_key
from friendradar.core.policies import MEETING_HISTORY_LIMIT
from friendradar.models.meeting_history import MeetingHistory
from friendradar.models.meeting_session import MeetingSession

logger = logging.getLogger(__name__)

# (latitude, longitude) -> human readable place, or None
PlaceResolver = Callable[[float, float], str | None]


def whole_minutes(started_at: datetime, ended_at: datetime) -> int:
    """Elapsed whole minutes, never negative."""
    seconds = (as_utc(ended_at) - as_utc(started_at)).total_seconds()
    return max(0, int(seconds // 60))


class MeetingSessionTracker:
    """Opens and closes meeting sessions per friend pair."""

    def __init__(self, locks: KeyedLocks, place_resolver: PlaceResolver | None = None) -> None:
        self._locks = locks
        self._place_resolver = place_resolver

    def get_open(self, db: Session, user_id: int, other_id: int) -> MeetingSession | None:
        low, high = sorted((user_id, other_id))
        return db.execute(
            select(MeetingSession)
            .where(
                MeetingSession.user_a_id == low,
                MeetingSession.user_b_id == high,
                MeetingSession.ended_at.is_(None),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def start(
        self,
        db: Session,
        user_id: int,
        other_id: int,
        location: tuple[float, float],
        at: datetime,
    ) -> MeetingSession:
        """Open a session for the pair, or return the one already open."""
        if user_id == other_id:
            raise ValueError("A meeting needs two different users")
        low, high = sorted((user_id, other_id))
        with self._locks.hold(pair_key(low, high)):
            existing = self.get_open(db, low, high)
            if existing is not None:
                return existing

            latitude, longitude = location
            session = MeetingSession(
                user_a_id=low,
                user_b_id=high,
                started_at=as_utc(at),
                latitude=latitude,
                longitude=longitude,
                place_name=self._resolve_place(latitude, longitude),
            )
            db.add(session)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info("Meeting already open for pair=(%s, %s), ignoring duplicate start", low, high)
                return self.get_open(db, low, high)
            db.refresh(session)
            logger.info("Meeting opened: id=%s pair=(%s, %s)", session.id, low, high)
            return session

    def end(self, db: Session, user_id: int, other_id: int, at: datetime) -> MeetingHistory | None:
        """Close the pair's open session and log it. No open session is a no-op."""
        low, high = sorted((user_id, other_id))
        with self._locks.hold(pair_key(low, high)):
            session = self.get_open(db, low, high)
            if session is None:
                return None

            ended_at = as_utc(at)
            session.ended_at = ended_at
            record = MeetingHistory(
                session_id=session.id,
                user_a_id=low,
                user_b_id=high,
                latitude=session.latitude,
                longitude=session.longitude,
                place_name=session.place_name,
                started_at=session.started_at,
                ended_at=ended_at,
                duration_minutes=whole_minutes(session.started_at, ended_at),
            )
            db.add(record)
            db.commit()
            db.refresh(record)
            logger.info(
                "Meeting closed: id=%s pair=(%s, %s) duration=%smin",
                session.id,
                low,
                high,
                record.duration_minutes,
            )
            return record

    def history_for_user(
        self,
        db: Session,
        user_id: int,
        min_minutes: int = 0,
        limit: int = MEETING_HISTORY_LIMIT,
    ) -> list[MeetingHistory]:
        """Closed meetings involving the user, newest first."""
        stmt = (
            select(MeetingHistory)
            .where(or_(MeetingHistory.user_a_id == user_id, MeetingHistory.user_b_id == user_id))
            .where(MeetingHistory.duration_minutes >= min_minutes)
            .order_by(MeetingHistory.ended_at.desc(), MeetingHistory.id.desc())
            .limit(limit)
        )
        return list(db.execute(stmt).scalars().all())

    def _resolve_place(self, latitude: float, longitude: float) -> str | None:
        if self._place_resolver is None:
            return None
        try:
            return self._place_resolver(latitude, longitude)
        except Exception:  # noqa: BLE001
            logger.warning("Place lookup failed for (%s, %s)", latitude, longitude, exc_info=True)
            return None
