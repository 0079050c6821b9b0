from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.credit_bundle import CreditBundle
from app.models.transaction import Transaction
from app.models.user import User


DEFAULT_BUNDLES: list[dict[str, Any]] = [
    {"id": "bundle-1", "credits": 10, "price": 1000, "bonus": 0, "popular": False},
    {"id": "bundle-2", "credits": 25, "price": 2000, "bonus": 5, "popular": True},
    {"id": "bundle-3", "credits": 50, "price": 3500, "bonus": 10, "popular": False},
    {"id": "bundle-4", "credits": 100, "price": 6000, "bonus": 25, "popular": False},
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_user(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_balance(db: Session, user_id: str) -> int:
    credits = db.query(User.credits).filter(User.id == user_id).scalar()
    return int(credits or 0)


def credit_user(db: Session, user_id: str, credits: int) -> int | None:
    """Atomically add credits; returns the balance after, or None if the user is missing.

    Does not commit.
    """
    credits = int(credits)
    updated = (
        db.query(User)
        .filter(User.id == user_id)
        .update({User.credits: User.credits + credits}, synchronize_session=False)
    )
    if not updated:
        return None
    return get_balance(db, user_id)


def debit_user(db: Session, user_id: str, credits: int) -> int | None:
    """Atomically subtract credits if the balance covers them.

    Returns the balance after, or None when the user is missing or short. Does not commit.
    """
    credits = int(credits)
    updated = (
        db.query(User)
        .filter(User.id == user_id, User.credits >= credits)
        .update({User.credits: User.credits - credits}, synchronize_session=False)
    )
    if not updated:
        return None
    return get_balance(db, user_id)


def seed_default_bundles(db: Session) -> int:
    if db.query(func.count(CreditBundle.id)).scalar():
        return 0
    for row in DEFAULT_BUNDLES:
        db.add(CreditBundle(active=True, **row))
    db.commit()
    return len(DEFAULT_BUNDLES)


def active_bundles(db: Session) -> list[CreditBundle]:
    return db.query(CreditBundle).filter(CreditBundle.active.is_(True)).order_by(CreditBundle.price.asc()).all()


def get_active_bundle(db: Session, bundle_id: str) -> CreditBundle | None:
    return db.query(CreditBundle).filter(CreditBundle.id == bundle_id, CreditBundle.active.is_(True)).first()


def create_pending_purchase(
    db: Session,
    user_id: str,
    bundle: CreditBundle,
    reference: str,
    gateway: str = "paystack",
) -> Transaction:
    tx = Transaction(
        id=str(uuid4()),
        user_id=user_id,
        type="credit_purchase",
        amount=int(bundle.price),
        credits=bundle.total_credits,
        description=f"Purchase {bundle.credits} + {bundle.bonus} bonus credits",
        status="pending",
        gateway=gateway,
        reference=reference,
        bundle_id=bundle.id,
        event_metadata={
            "bundle_id": bundle.id,
            "reference": reference,
            "base_credits": int(bundle.credits),
            "bonus_credits": int(bundle.bonus or 0),
        },
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx


def record_spend(
    db: Session,
    user_id: str,
    credits: int,
    description: str,
    metadata: dict[str, Any] | None = None,
) -> Transaction:
    """Add a completed credit_spent row. Does not commit."""
    tx = Transaction(
        id=str(uuid4()),
        user_id=user_id,
        type="credit_spent",
        amount=0,
        credits=int(credits),
        description=description,
        status="completed",
        event_metadata=(metadata or None),
        completed_at=utcnow(),
    )
    db.add(tx)
    return tx


def get_wallet_balance(db: Session, user_id: str) -> int:
    balance = db.query(User.wallet_balance).filter(User.id == user_id).scalar()
    return int(balance or 0)


def load_wallet(db: Session, user_id: str, amount: int) -> tuple[Transaction, int] | None:
    """Top up the wallet and record a completed wallet_load row in one commit.

    Returns (transaction, wallet balance after), or None if the user is missing.
    """
    amount = int(amount)
    if amount <= 0:
        raise ValueError("amount must be positive")
    updated = (
        db.query(User)
        .filter(User.id == user_id)
        .update({User.wallet_balance: User.wallet_balance + amount}, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        return None
    tx = Transaction(
        id=str(uuid4()),
        user_id=user_id,
        type="wallet_load",
        amount=amount,
        description=f"Wallet loaded with {amount}",
        status="completed",
        completed_at=utcnow(),
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return tx, get_wallet_balance(db, user_id)


def find_transaction(db: Session, reference: str, user_id: str | None = None) -> Transaction | None:
    ref = str(reference or "").strip()
    if not ref:
        return None
    q = db.query(Transaction).filter(or_(Transaction.reference == ref, Transaction.id == ref))
    if user_id is not None:
        q = q.filter(Transaction.user_id == user_id)
    return q.first()


def list_transactions(
    db: Session,
    user_id: str,
    tx_type: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    q = db.query(Transaction).filter(Transaction.user_id == user_id)
    if tx_type:
        q = q.filter(Transaction.type == tx_type)
    total = q.count()
    rows = q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset(offset).limit(limit).all()
    return rows, int(total)


def pending_purchases(db: Session, older_than: datetime | None = None, limit: int = 200) -> list[Transaction]:
    q = db.query(Transaction).filter(Transaction.type == "credit_purchase", Transaction.status == "pending")
    if older_than is not None:
        q = q.filter(Transaction.created_at <= older_than)
    return q.order_by(Transaction.created_at.asc()).limit(limit).all()


def ledger_balance(db: Session, user_id: str) -> int:
    def _sum(tx_type: str) -> int:
        total = (
            db.query(func.coalesce(func.sum(Transaction.credits), 0))
            .filter(Transaction.user_id == user_id, Transaction.type == tx_type, Transaction.status == "completed")
            .scalar()
        )
        return int(total or 0)

    return _sum("credit_purchase") - _sum("credit_spent")


def ledger_drift(db: Session, user_id: str | None = None) -> list[dict[str, Any]]:
    """Users whose stored balance disagrees with completed purchases minus spends."""
    q = db.query(User)
    if user_id is not None:
        q = q.filter(User.id == user_id)
    out: list[dict[str, Any]] = []
    for user in q.all():
        expected = ledger_balance(db, user.id)
        actual = int(user.credits or 0)
        if expected != actual:
            out.append({"user_id": user.id, "balance": actual, "ledger": expected, "drift": actual - expected})
    return out
