"""SOS recipient model - friend notified for an SOS alert."""

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from friendradar.db.base import Base


class SosRecipient(Base):
    """Friend notified for an SOS alert, frozen at send time."""

    __tablename__ = "sos_recipients"
    __table_args__ = (
        UniqueConstraint("sos_alert_id", "user_id", name="uq_sos_recipient"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sos_alert_id: Mapped[int] = mapped_column(ForeignKey("sos_alerts.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
