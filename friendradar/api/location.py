"""Location reporting, friends' locations and meeting history API."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from friendradar.core.config import settings
from friendradar.core.deps import get_current_user, get_engine
from friendradar.db.session import get_db
from friendradar.models.user import User
from friendradar.schemas.location import (
    FriendLocationResponse,
    LocationReportResponse,
    LocationUpdate,
    MeetingResponse,
    NearbyFriendResponse,
)
from friendradar.services.engine import PresenceEngine
from friendradar.services.location_store import get_visible_friend_locations

router = APIRouter(tags=["location"])


@router.post("/location", response_model=LocationReportResponse)
def report_location(
    data: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Store the caller's location and check proximity to friends."""
    try:
        report = engine.report_location(
            db,
            current_user,
            latitude=data.latitude,
            longitude=data.longitude,
            accuracy=data.accuracy,
            altitude=data.altitude,
            speed=data.speed,
            timestamp=data.timestamp,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return LocationReportResponse(
        status="ok" if report.accepted else "stale",
        nearby=[
            NearbyFriendResponse(friend_id=n.friend_id, name=n.name, distance_m=n.distance_m)
            for n in report.nearby
        ],
    )


@router.get("/location/friends", response_model=list[FriendLocationResponse])
def friends_locations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Latest location of every friend not in ghost mode."""
    return [
        FriendLocationResponse(
            user_id=friend.id,
            name=friend.full_name,
            latitude=loc.latitude,
            longitude=loc.longitude,
            accuracy=loc.accuracy,
            speed=loc.speed,
            battery_level=friend.battery_level,
            recorded_at=loc.recorded_at,
        )
        for friend, loc in get_visible_friend_locations(db, current_user.id)
    ]


@router.get("/meetings", response_model=list[MeetingResponse])
def meeting_history(
    min_minutes: int | None = Query(default=None, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    """Closed meetings for the caller, newest first. Short meetings are hidden by default."""
    threshold = settings.meeting_min_minutes if min_minutes is None else min_minutes
    records = engine.meetings.history_for_user(db, current_user.id, min_minutes=threshold, limit=limit)
    return [
        MeetingResponse(
            id=r.id,
            session_id=r.session_id,
            friend_id=r.user_b_id if r.user_a_id == current_user.id else r.user_a_id,
            latitude=r.latitude,
            longitude=r.longitude,
            place_name=r.place_name,
            started_at=r.started_at,
            ended_at=r.ended_at,
            duration_minutes=r.duration_minutes,
        )
        for r in records
    ]
