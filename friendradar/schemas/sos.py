"""SOS schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SosSendRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    battery_level: int | None = Field(default=None, ge=0, le=100)
    message: str | None = Field(default=None, max_length=500)


class SosAlertResponse(BaseModel):
    id: int
    sender_id: int
    latitude: float
    longitude: float
    battery_level: int | None
    message: str
    status: str
    created_at: datetime
    resolved_at: datetime | None
    notified_users: list[int] = []


class IncomingSosResponse(BaseModel):
    alert_id: int
    sender_id: int
    sender_name: str
    latitude: float
    longitude: float
    battery_level: int | None
    message: str
    created_at: datetime
