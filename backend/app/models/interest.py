from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


INTEREST_STATUSES = ("pending", "contacted", "viewing-scheduled", "closed")


class Interest(Base):
    __tablename__ = "interests"
    __table_args__ = (UniqueConstraint("property_id", "seeker_id", name="uq_interests_property_seeker"),)

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    property_id = Column(String, index=True)
    seeker_id = Column(String, index=True)
    seeker_name = Column(String, default="")
    seeker_phone = Column(String, default="")
    message = Column(Text, default="")
    seriousness_score = Column(Integer, default=5)
    unlocked = Column(Boolean, nullable=False, default=False)
    status = Column(String, index=True, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
