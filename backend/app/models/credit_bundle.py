from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.core.database import Base


class CreditBundle(Base):
    __tablename__ = "credit_bundles"

    id = Column(String, primary_key=True, index=True)
    credits = Column(Integer, nullable=False)
    bonus = Column(Integer, nullable=False, default=0)
    price = Column(Integer, nullable=False)  # major currency units
    popular = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def total_credits(self) -> int:
        return int(self.credits or 0) + int(self.bonus or 0)
