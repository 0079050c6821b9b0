from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


TRANSACTION_TYPES = ("credit_purchase", "credit_spent", "wallet_load", "wallet_debit")
TRANSACTION_STATUSES = ("pending", "completed", "failed")


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (UniqueConstraint("gateway", "reference", name="uq_transactions_gateway_reference"),)

    id = Column(String, primary_key=True, index=True, default=lambda: str(uuid4()))
    user_id = Column(String, index=True)
    type = Column(String, index=True)
    amount = Column(Integer, nullable=False, default=0)  # major currency units
    credits = Column(Integer, nullable=True)
    description = Column(String, default="")
    status = Column(String, index=True, default="pending")
    gateway = Column(String, nullable=True)
    reference = Column(String, index=True, nullable=True)
    bundle_id = Column(String, nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
