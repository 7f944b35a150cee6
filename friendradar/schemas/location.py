"""Location and meeting schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    altitude: float | None = None
    speed: float | None = Field(default=None, ge=0)
    timestamp: datetime | None = None


class NearbyFriendResponse(BaseModel):
    friend_id: int
    name: str
    distance_m: float


class LocationReportResponse(BaseModel):
    status: str  # ok | stale
    nearby: list[NearbyFriendResponse] = []


class FriendLocationResponse(BaseModel):
    user_id: int
    name: str
    latitude: float
    longitude: float
    accuracy: float | None
    speed: float | None
    battery_level: int | None
    recorded_at: datetime


class MeetingResponse(BaseModel):
    id: int
    session_id: int
    friend_id: int
    latitude: float
    longitude: float
    place_name: str | None
    started_at: datetime
    ended_at: datetime
    duration_minutes: int
