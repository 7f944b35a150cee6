"""SOS alert lifecycle: ACTIVE -> RESOLVED.

An alert is fanned out to the sender's friends at send time; that recipient
set is frozen and reused when the alert is resolved. Alerts are never
deleted and never expire on their own.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from friendradar.core.clock import as_utc, utcnow
from friendradar.core.locks import KeyedLocks
from friendradar.core.policies import DEFAULT_SOS_MESSAGE
from friendradar.core.presence import SOS_ALERT, SOS_RESOLVED, PresenceBroadcaster
from friendradar.models.sos_alert import SosAlert
from friendradar.models.sos_recipient import SosRecipient
from friendradar.models.user import User
from friendradar.services.friend_graph import get_friend_ids
from friendradar.services.geo import validate_coordinates

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
RESOLVED = "RESOLVED"


def validate_battery_level(battery_level: int | None) -> None:
    if battery_level is not None and not 0 <= battery_level <= 100:
        raise ValueError("Battery level must be between 0 and 100")


class SOSLifecycle:
    def __init__(self, broadcaster: PresenceBroadcaster, locks: KeyedLocks) -> None:
        self._broadcaster = broadcaster
        self._locks = locks

    def send(
        self,
        db: Session,
        sender: User,
        latitude: float,
        longitude: float,
        battery_level: int | None = None,
        message: str | None = None,
        at: datetime | None = None,
    ) -> SosAlert:
        """Create an ACTIVE alert and push ``sosAlert`` to every friend of the sender."""
        validate_coordinates(latitude, longitude)
        validate_battery_level(battery_level)

        if battery_level is not None:
            sender.battery_level = battery_level

        recipients = get_friend_ids(db, sender.id)
        alert = SosAlert(
            sender_id=sender.id,
            latitude=latitude,
            longitude=longitude,
            battery_level=battery_level if battery_level is not None else sender.battery_level,
            message=(message or "").strip() or DEFAULT_SOS_MESSAGE,
            status=ACTIVE,
            created_at=as_utc(at) if at else utcnow(),
        )
        db.add(alert)
        db.flush()
        for uid in recipients:
            db.add(SosRecipient(sos_alert_id=alert.id, user_id=uid))
        db.commit()
        db.refresh(alert)

        logger.info("SOS sent: id=%s sender=%s recipients=%s", alert.id, sender.id, len(recipients))
        payload = {
            "type": "SOS_ALERT",
            "alertId": alert.id,
            "from": {"id": sender.id, "name": sender.full_name},
            "location": {"latitude": alert.latitude, "longitude": alert.longitude},
            "batteryLevel": alert.battery_level,
            "message": alert.message,
            "sentAt": as_utc(alert.created_at).isoformat(),
        }
        self._broadcaster.emit_many(recipients, SOS_ALERT, payload)
        return alert

    def resolve(self, db: Session, alert_id: int, requester_id: int, at: datetime | None = None) -> SosAlert:
        """Mark an alert RESOLVED and tell the original recipients.

        Only the sender may resolve. Resolving twice is a no-op.
        """
        with self._locks.hold(("sos", alert_id)):
            alert = db.get(SosAlert, alert_id, populate_existing=True)
            if alert is None:
                raise ValueError("SOS not found")
            if alert.sender_id != requester_id:
                raise ValueError("Only the sender can resolve this SOS")
            if alert.status == RESOLVED:
                return alert

            alert.status = RESOLVED
            alert.resolved_at = as_utc(at) if at else utcnow()
            db.commit()
            db.refresh(alert)

        recipients = self.recipient_ids(db, alert.id)
        sender = db.get(User, alert.sender_id)
        name = sender.full_name if sender and sender.full_name else "Your friend"
        logger.info("SOS resolved: id=%s sender=%s", alert.id, alert.sender_id)
        self._broadcaster.emit_many(
            recipients,
            SOS_RESOLVED,
            {"type": "SOS_RESOLVED", "alertId": alert.id, "message": f"{name} is now safe!"},
        )
        return alert

    def recipient_ids(self, db: Session, alert_id: int) -> list[int]:
        result = db.execute(
            select(SosRecipient.user_id).where(SosRecipient.sos_alert_id == alert_id).order_by(SosRecipient.id)
        )
        return list(result.scalars().all())

    def list_sent(self, db: Session, sender_id: int, limit: int = 20) -> list[SosAlert]:
        """Alerts the user raised, newest first."""
        result = db.execute(
            select(SosAlert)
            .where(SosAlert.sender_id == sender_id)
            .order_by(SosAlert.created_at.desc(), SosAlert.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def list_incoming(self, db: Session, user_id: int, active_only: bool = True) -> list[SosAlert]:
        """Alerts the user was notified about, newest first."""
        stmt = (
            select(SosAlert)
            .join(SosRecipient, SosRecipient.sos_alert_id == SosAlert.id)
            .where(SosRecipient.user_id == user_id)
        )
        if active_only:
            stmt = stmt.where(SosAlert.status == ACTIVE)
        result = db.execute(stmt.order_by(SosAlert.created_at.desc(), SosAlert.id.desc()))
        return list(result.scalars().all())
