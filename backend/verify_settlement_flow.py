from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.interest import Interest
from app.models.notification import NotificationOutbox
from app.models.property import Property
from app.models.transaction import Transaction
from app.models.user import User
from app.services import ledger
from app.services.interest_unlock import InsufficientCredits, unlock_interest
from app.services.notifications import dispatch_pending
from app.services.paystack import VerifyResult
from app.services.settlement import AlreadySettled, Settled, settle_payment


class _Gateway:
    configured = True

    def __init__(self) -> None:
        self.calls = 0

    def verify(self, reference: str) -> VerifyResult:
        self.calls += 1
        return VerifyResult(ok=True, message="Verification successful", status="success", reference=reference, amount=200000, payment_id="1")


def main() -> None:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        ledger.seed_default_bundles(db)
        db.add(User(id="agent-1", email="agent@example.com", name="Ada", role="agent", credits=0))
        db.add(User(id="seeker-1", email="seeker@example.com", name="Sam", phone="08012345678", role="seeker"))
        db.add(Property(id="prop-1", agent_id="agent-1", title="2 Bed Flat", status="available"))
        db.add(Interest(id="int-1", property_id="prop-1", seeker_id="seeker-1", seeker_phone="08012345678"))
        db.commit()

        bundle = ledger.get_active_bundle(db, "bundle-2")
        tx = ledger.create_pending_purchase(db, "agent-1", bundle, "CREDIT_TEST_1")
        gateway = _Gateway()

        first = settle_payment(db, gateway, "CREDIT_TEST_1")
        assert isinstance(first, Settled), first
        assert first.new_balance == 30, first.new_balance

        second = settle_payment(db, gateway, tx.id)
        assert isinstance(second, AlreadySettled), second
        assert ledger.get_balance(db, "agent-1") == 30
        assert gateway.calls == 1, gateway.calls

        for n in range(6):
            db.add(Interest(property_id="prop-1", seeker_id=f"s-{n}"))
        db.commit()
        interest_ids = [i.id for i in db.query(Interest).order_by(Interest.id).all()]
        unlocked = 0
        for interest_id in interest_ids:
            try:
                unlock_interest(db, interest_id, "agent-1")
                unlocked += 1
            except InsufficientCredits:
                break
        assert unlocked == 6, unlocked
        assert ledger.get_balance(db, "agent-1") == 0

        spends = db.query(Transaction).filter(Transaction.type == "credit_spent").count()
        assert spends == 6, spends
        assert ledger.ledger_drift(db) == []

        delivered = dispatch_pending(db)
        assert len(delivered) == 7, len(delivered)
        assert db.query(NotificationOutbox).filter(NotificationOutbox.status == "pending").count() == 0
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
