from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base


NOTIFICATION_TYPES = ("info", "success", "warning", "error", "interest", "chat", "system")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    title = Column(String)
    message = Column(Text)
    type = Column(String, default="info")
    read = Column(Boolean, nullable=False, default=False)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class NotificationOutbox(Base):
    """Notification events waiting to be turned into Notification rows."""

    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)
    title = Column(String)
    message = Column(Text)
    type = Column(String, default="info")
    event_metadata = Column("metadata", JSON, nullable=True)
    status = Column(String, index=True, default="pending")  # pending | dispatched | failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    notification_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
