"""Friend graph and presence schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class FriendResponse(BaseModel):
    id: int
    full_name: str
    email: str
    is_ghost_mode: bool
    battery_level: int | None

    model_config = {"from_attributes": True}


class UserSearchResult(BaseModel):
    id: int
    full_name: str
    email: str

    model_config = {"from_attributes": True}


class GhostModeUpdate(BaseModel):
    enabled: bool


class GhostModeResponse(BaseModel):
    is_ghost_mode: bool


class BatteryUpdate(BaseModel):
    battery_level: int = Field(ge=0, le=100)


class MeetPointResponse(BaseModel):
    latitude: float
    longitude: float
    distance_m: float


class WeatherShareRequest(BaseModel):
    friend_id: int
    weather: dict[str, Any]
