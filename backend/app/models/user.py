from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, index=True)
    name = Column(String, default="")
    phone = Column(String, default="")
    role = Column(String, index=True, default="seeker")  # seeker | agent | admin
    credits = Column(Integer, nullable=False, default=0)
    wallet_balance = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
