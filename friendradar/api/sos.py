"""SOS alerts API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from friendradar.core.deps import get_current_user, get_engine
from friendradar.db.session import get_db
from friendradar.models.sos_alert import SosAlert
from friendradar.models.user import User
from friendradar.schemas.sos import IncomingSosResponse, SosAlertResponse, SosSendRequest
from friendradar.services.engine import PresenceEngine

router = APIRouter(prefix="/sos", tags=["sos"])


def _to_response(alert: SosAlert, engine: PresenceEngine, db: Session) -> SosAlertResponse:
    return SosAlertResponse(
        id=alert.id,
        sender_id=alert.sender_id,
        latitude=alert.latitude,
        longitude=alert.longitude,
        battery_level=alert.battery_level,
        message=alert.message,
        status=alert.status,
        created_at=alert.created_at,
        resolved_at=alert.resolved_at,
        notified_users=engine.sos.recipient_ids(db, alert.id),
    )


@router.post("", response_model=SosAlertResponse)
def send_sos(
    data: SosSendRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Broadcast an emergency alert to all of the caller's friends."""
    try:
        alert = engine.send_sos(
            db,
            current_user,
            latitude=data.latitude,
            longitude=data.longitude,
            battery_level=data.battery_level,
            message=data.message,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _to_response(alert, engine, db)


@router.get("/me", response_model=list[SosAlertResponse])
def list_my_alerts(
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Alerts the caller raised, newest first."""
    return [_to_response(a, engine, db) for a in engine.sos.list_sent(db, current_user.id, limit)]


@router.get("/incoming", response_model=list[IncomingSosResponse])
def list_incoming(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Active alerts the caller was notified about."""
    out = []
    for alert in engine.sos.list_incoming(db, current_user.id):
        sender = db.get(User, alert.sender_id)
        out.append(
            IncomingSosResponse(
                alert_id=alert.id,
                sender_id=alert.sender_id,
                sender_name=sender.full_name if sender else "",
                latitude=alert.latitude,
                longitude=alert.longitude,
                battery_level=alert.battery_level,
                message=alert.message,
                created_at=alert.created_at,
            )
        )
    return out


@router.get("/{alert_id}", response_model=SosAlertResponse)
def get_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Alert status. Visible to the sender and to notified friends."""
    alert = db.get(SosAlert, alert_id)
    if not alert:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SOS not found")
    response = _to_response(alert, engine, db)
    if current_user.id != alert.sender_id and current_user.id not in response.notified_users:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SOS not found")
    return response


@router.post("/{alert_id}/resolve", response_model=SosAlertResponse)
def resolve_alert(
    alert_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Resolve an alert. Only the sender can; resolving twice is harmless."""
    try:
        alert = engine.resolve_sos(db, alert_id, current_user.id)
    except ValueError as e:
        if "not found" in str(e).lower():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return _to_response(alert, engine, db)
