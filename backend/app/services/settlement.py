"""Credit settlement for Paystack purchases.

The verify, callback and webhook routes all come through ``settle_payment``.
A transaction is claimed with a conditional UPDATE (``status='pending'`` in
the WHERE clause) in the same database transaction as the balance increment
and the outbox entry. Concurrent callers therefore apply a purchase once:
whoever loses the claim gets ``AlreadySettled``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy.orm import Session

from app.models.transaction import Transaction
from app.services import ledger
from app.services.notifications import notify_credits_purchased
from app.services.paystack import PaystackClient, VerifyResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settled:
    transaction: Transaction
    credits_added: int
    previous_balance: int
    new_balance: int


@dataclass(frozen=True)
class AlreadySettled:
    transaction: Transaction
    balance: int


@dataclass(frozen=True)
class NotFound:
    reference: str
    message: str = "Transaction not found"


@dataclass(frozen=True)
class UpstreamFailure:
    reference: str
    message: str


@dataclass(frozen=True)
class PaymentFailed:
    transaction: Transaction
    status: str = "failed"


@dataclass(frozen=True)
class PaymentPending:
    transaction: Transaction
    status: str


@dataclass(frozen=True)
class AmountMismatch:
    transaction: Transaction
    expected_amount: int
    reported_amount: int | None


SettlementOutcome = Union[Settled, AlreadySettled, NotFound, UpstreamFailure, PaymentFailed, PaymentPending, AmountMismatch]


def _gateway_candidates(payment: VerifyResult) -> list[str]:
    meta = payment.metadata or {}
    raw = [
        payment.reference,
        meta.get("transaction_id"),
        meta.get("transactionId"),
        meta.get("reference"),
    ]
    out: list[str] = []
    for value in raw:
        v = str(value or "").strip()
        if v and v not in out:
            out.append(v)
    return out


def _match_gateway_payment(db: Session, payment: VerifyResult, user_id: str | None) -> Transaction | None:
    for candidate in _gateway_candidates(payment):
        tx = ledger.find_transaction(db, candidate, user_id=user_id)
        if tx is not None and tx.type == "credit_purchase":
            return tx
    return None


def expected_amount_minor(tx: Transaction) -> int:
    return int(tx.amount or 0) * 100


def settle_payment(
    db: Session,
    gateway: PaystackClient,
    reference: str,
    *,
    user_id: str | None = None,
    payment: VerifyResult | None = None,
    source: str = "verify",
) -> SettlementOutcome:
    reference = str(reference or "").strip()
    tx = ledger.find_transaction(db, reference, user_id=user_id)
    if tx is not None and tx.type != "credit_purchase":
        tx = None

    if tx is None:
        if payment is None:
            payment = gateway.verify(reference)
            if not payment.ok:
                logger.warning("settlement.upstream_failure reference=%s source=%s message=%s", reference, source, payment.message)
                return UpstreamFailure(reference=reference, message=payment.message or "Payment verification failed")
        tx = _match_gateway_payment(db, payment, user_id)
        if tx is None:
            logger.warning(
                "settlement.not_found reference=%s source=%s gateway_reference=%s metadata=%s",
                reference,
                source,
                payment.reference,
                payment.metadata,
            )
            return NotFound(reference=reference)

    if tx.status == "completed":
        return AlreadySettled(transaction=tx, balance=ledger.get_balance(db, tx.user_id))
    if tx.status == "failed":
        return PaymentFailed(transaction=tx)

    if payment is None:
        payment = gateway.verify(tx.reference or reference)
        if not payment.ok:
            logger.warning("settlement.upstream_failure reference=%s source=%s message=%s", reference, source, payment.message)
            return UpstreamFailure(reference=reference, message=payment.message or "Payment verification failed")

    if payment.status == "failed":
        mark_failed(db, tx, payment, source=source)
        return PaymentFailed(transaction=tx)
    if payment.status != "success":
        return PaymentPending(transaction=tx, status=payment.status or "pending")

    expected = expected_amount_minor(tx)
    if payment.amount != expected:
        logger.warning(
            "settlement.amount_mismatch transaction_id=%s reference=%s expected=%s reported=%s",
            tx.id,
            tx.reference,
            expected,
            payment.amount,
        )
        return AmountMismatch(transaction=tx, expected_amount=expected, reported_amount=payment.amount)

    return apply_settlement(db, tx, payment, source=source)


def apply_settlement(db: Session, tx: Transaction, payment: VerifyResult, source: str = "verify") -> SettlementOutcome:
    credits = int(tx.credits or 0)
    metadata: dict[str, Any] = dict(tx.event_metadata or {})
    metadata.update(
        {
            "paystack_id": payment.payment_id,
            "paid_at": payment.paid_at or ledger.utcnow().isoformat(),
            "channel": payment.channel,
            "settled_via": source,
            "applied": True,
        }
    )
    tx_id = tx.id
    user_id = tx.user_id
    try:
        claimed = (
            db.query(Transaction)
            .filter(Transaction.id == tx_id, Transaction.status == "pending")
            .update(
                {
                    Transaction.status: "completed",
                    Transaction.completed_at: ledger.utcnow(),
                    Transaction.event_metadata: metadata,
                },
                synchronize_session=False,
            )
        )
        if not claimed:
            db.rollback()
            db.refresh(tx)
            logger.info("settlement.lost_claim transaction_id=%s source=%s status=%s", tx_id, source, tx.status)
            if tx.status == "failed":
                return PaymentFailed(transaction=tx)
            return AlreadySettled(transaction=tx, balance=ledger.get_balance(db, user_id))

        new_balance = ledger.credit_user(db, user_id, credits)
        if new_balance is None:
            db.rollback()
            logger.warning("settlement.user_missing transaction_id=%s user_id=%s", tx_id, user_id)
            return NotFound(reference=tx.reference or tx_id, message="User not found")

        notify_credits_purchased(db, user_id=user_id, transaction_id=tx_id, credits=credits, new_balance=new_balance)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(tx)
    logger.info(
        "settlement.applied transaction_id=%s user_id=%s credits=%s balance_after=%s source=%s",
        tx_id,
        user_id,
        credits,
        new_balance,
        source,
    )
    return Settled(transaction=tx, credits_added=credits, previous_balance=new_balance - credits, new_balance=new_balance)


def mark_failed(db: Session, tx: Transaction, payment: VerifyResult | None = None, source: str = "verify") -> bool:
    metadata: dict[str, Any] = dict(tx.event_metadata or {})
    metadata["failed_via"] = source
    if payment is not None:
        metadata["gateway_status"] = payment.status
        metadata["paystack_id"] = payment.payment_id
    try:
        updated = (
            db.query(Transaction)
            .filter(Transaction.id == tx.id, Transaction.status == "pending")
            .update({Transaction.status: "failed", Transaction.event_metadata: metadata}, synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(tx)
    if updated:
        logger.info("settlement.marked_failed transaction_id=%s source=%s", tx.id, source)
    return bool(updated)


def handle_webhook_event(db: Session, gateway: PaystackClient, event: dict[str, Any]) -> SettlementOutcome | None:
    """Settle a signature-checked webhook event. Only ``charge.success`` is acted on."""
    if str(event.get("event") or "") != "charge.success":
        return None
    data = event.get("data")
    if not isinstance(data, dict):
        return None
    payment = VerifyResult.from_payload(data)
    reference = payment.reference or str((payment.metadata or {}).get("reference") or "")
    return settle_payment(db, gateway, reference, payment=payment, source="webhook")
