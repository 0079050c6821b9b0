from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models import credit_bundle, interest, notification, property, transaction, user  # noqa: F401
from app.models.interest import Interest
from app.models.property import Property
from app.models.user import User
from app.services.paystack import InitializeResult, VerifyResult


def make_session_factory(url: str = "sqlite://"):
    kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


def success_payment(reference: str, amount: int, status: str = "success", **extra: Any) -> VerifyResult:
    return VerifyResult(
        ok=True,
        message="Verification successful",
        status=status,
        reference=reference,
        amount=amount,
        currency="NGN",
        channel="card",
        paid_at="2026-10-19T10:00:00.000Z",
        payment_id=extra.pop("payment_id", "4099260516"),
        metadata=extra.pop("metadata", {}),
    )


class FakeGateway:
    """Stands in for PaystackClient; answers verify() from a reference -> result map."""

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.payments: dict[str, VerifyResult] = {}
        self.init_result: InitializeResult | None = None
        self.verify_calls: list[str] = []
        self.init_calls: list[dict[str, Any]] = []

    def verify(self, reference: str) -> VerifyResult:
        self.verify_calls.append(reference)
        result = self.payments.get(reference)
        if result is None:
            return VerifyResult(ok=False, message="Transaction reference not found")
        return result

    def initialize(self, **kwargs: Any) -> InitializeResult:
        self.init_calls.append(kwargs)
        if self.init_result is not None:
            return self.init_result
        return InitializeResult(
            ok=True,
            message="Authorization URL created",
            authorization_url=f"https://checkout.paystack.com/{kwargs['reference']}",
            access_code="access_code_1",
            reference=kwargs["reference"],
        )


def add_user(db, user_id: str, role: str = "agent", credits: int = 0, **fields: Any) -> User:
    u = User(
        id=user_id,
        email=fields.pop("email", f"{user_id}@example.com"),
        name=fields.pop("name", user_id.title()),
        phone=fields.pop("phone", "08012345678"),
        role=role,
        credits=credits,
        **fields,
    )
    db.add(u)
    db.commit()
    return u


def add_property(db, property_id: str, agent_id: str, status: str = "available") -> Property:
    p = Property(id=property_id, agent_id=agent_id, title=f"Listing {property_id}", location="Lekki", price=5000000, status=status)
    db.add(p)
    db.commit()
    return p


def add_interest(db, interest_id: str, property_id: str, seeker_id: str, phone: str = "08012345678") -> Interest:
    i = Interest(
        id=interest_id,
        property_id=property_id,
        seeker_id=seeker_id,
        seeker_name=seeker_id.title(),
        seeker_phone=phone,
        message="Is this still available?",
        seriousness_score=7,
        unlocked=False,
        status="pending",
    )
    db.add(i)
    db.commit()
    return i
