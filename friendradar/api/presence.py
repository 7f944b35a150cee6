"""Presence API: battery level and weather sharing."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from friendradar.core.deps import get_current_user, get_engine
from friendradar.db.session import get_db
from friendradar.models.user import User
from friendradar.schemas.friends import BatteryUpdate, FriendResponse, WeatherShareRequest
from friendradar.services.engine import PresenceEngine

router = APIRouter(tags=["presence"])


@router.put("/presence/battery", response_model=FriendResponse)
def update_battery(
    data: BatteryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Store the caller's battery level and push it to friends."""
    return engine.update_battery(db, current_user, data.battery_level)


@router.post("/weather/share")
def share_weather(
    data: WeatherShareRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Relay weather (looked up by the client) to one friend."""
    try:
        delivered = engine.share_weather(db, current_user, data.friend_id, data.weather)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return {"status": "shared", "delivered": delivered}
