"""Friend graph API: list, search, add, remove, ghost mode, meeting point."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from friendradar.core.deps import get_current_user, get_engine
from friendradar.db.session import get_db
from friendradar.models.user import User
from friendradar.schemas.friends import (
    FriendResponse,
    GhostModeResponse,
    GhostModeUpdate,
    MeetPointResponse,
    UserSearchResult,
)
from friendradar.services import friend_graph
from friendradar.services.engine import PresenceEngine
from friendradar.services.geo import haversine_m, midpoint
from friendradar.services.location_store import get_location

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("", response_model=list[FriendResponse])
def list_friends(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return friend_graph.get_friends(db, current_user.id)


@router.get("/search", response_model=list[UserSearchResult])
def search_users(
    q: str = Query(default=""),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Find people to add by name or email."""
    try:
        return friend_graph.search_users(db, current_user.id, q)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/ghost-mode", response_model=GhostModeResponse)
def set_ghost_mode(
    data: GhostModeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Hide (or show) the caller's location from friends. Friendships are kept."""
    user = friend_graph.set_ghost_mode(db, current_user, data.enabled)
    return GhostModeResponse(is_ghost_mode=user.is_ghost_mode)


@router.post("/{friend_id}", response_model=FriendResponse)
def add_friend(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Make the caller and friend_id friends (both directions at once)."""
    try:
        friend_graph.add_friend(db, current_user.id, friend_id)
    except ValueError as e:
        if "not found" in str(e).lower():
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return db.get(User, friend_id)


@router.delete("/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_friend(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: PresenceEngine = Depends(get_engine),
):
    if not engine.remove_friend(db, current_user.id, friend_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friendship not found")


@router.get("/{friend_id}/meetpoint", response_model=MeetPointResponse)
def meeting_point(
    friend_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Geographic midpoint between the caller and a friend."""
    if not friend_graph.are_friends(db, current_user.id, friend_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not friends with this user")
    friend = db.get(User, friend_id)
    mine = get_location(db, current_user.id)
    theirs = get_location(db, friend_id)
    if not mine or not theirs or (friend and friend.is_ghost_mode):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location data not available for both users")
    lat, lon = midpoint(mine.latitude, mine.longitude, theirs.latitude, theirs.longitude)
    return MeetPointResponse(
        latitude=lat,
        longitude=lon,
        distance_m=round(haversine_m(mine.latitude, mine.longitude, theirs.latitude, theirs.longitude), 1),
    )
