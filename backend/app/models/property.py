from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.core.database import Base


class Property(Base):
    __tablename__ = "properties"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    agent_id = Column(String, index=True)
    title = Column(String)
    location = Column(String, default="")
    price = Column(Integer, default=0)
    status = Column(String, index=True, default="available")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
