"""SQLAlchemy models."""

from __future__ import annotations

from friendradar.models.friendship import Friendship
from friendradar.models.meeting_history import MeetingHistory
from friendradar.models.meeting_session import MeetingSession
from friendradar.models.sos_alert import SosAlert
from friendradar.models.sos_recipient import SosRecipient
from friendradar.models.user import User
from friendradar.models.user_location import UserLocation

__all__ = [
    "User",
    "Friendship",
    "MeetingHistory",
    "MeetingSession",
    "SosAlert",
    "SosRecipient",
    "UserLocation",
]
