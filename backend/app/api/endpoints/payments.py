from __future__ import annotations

import json
import logging
import math
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.database import get_db, get_session_factory
from app.core.security import CurrentUser, get_current_user, require_role
from app.core.settings import settings
from app.models.credit_bundle import CreditBundle
from app.models.transaction import TRANSACTION_TYPES, Transaction
from app.schemas.payment import PurchaseRequest, VerifyInlineRequest, WalletLoadRequest
from app.services import ledger
from app.services.notifications import dispatch_outbox_task
from app.services.paystack import PaystackClient, generate_reference, get_gateway, verify_webhook_signature
from app.services.settlement import (
    AlreadySettled,
    AmountMismatch,
    NotFound,
    PaymentFailed,
    PaymentPending,
    Settled,
    SettlementOutcome,
    UpstreamFailure,
    handle_webhook_event,
    mark_failed,
    settle_payment,
)


logger = logging.getLogger(__name__)

router = APIRouter()

CURRENCY_SYMBOLS = {"NGN": "₦", "GHS": "GH₵", "ZAR": "R", "KES": "KSh", "USD": "$"}


def _format_price(price: int) -> str:
    symbol = CURRENCY_SYMBOLS.get(settings.payment_currency, f"{settings.payment_currency} ")
    return f"{symbol}{int(price):,}"


def _bundle_out(bundle: CreditBundle) -> dict[str, Any]:
    total = bundle.total_credits
    return {
        "id": bundle.id,
        "credits": int(bundle.credits),
        "bonus": int(bundle.bonus or 0),
        "total_credits": total,
        "price": int(bundle.price),
        "price_formatted": _format_price(bundle.price),
        "price_per_credit": (round(int(bundle.price) / total) if total else None),
        "popular": bool(bundle.popular),
    }


def _transaction_out(tx: Transaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "type": tx.type,
        "amount": int(tx.amount or 0),
        "credits": tx.credits,
        "description": tx.description,
        "status": tx.status,
        "reference": tx.reference,
        "bundle_id": tx.bundle_id,
        "metadata": tx.event_metadata or {},
        "created_at": (tx.created_at.isoformat() if tx.created_at else None),
        "completed_at": (tx.completed_at.isoformat() if tx.completed_at else None),
    }


def _settlement_response(
    outcome: SettlementOutcome,
    background_tasks: BackgroundTasks,
    session_factory,
) -> dict[str, Any]:
    if isinstance(outcome, Settled):
        background_tasks.add_task(dispatch_outbox_task, session_factory)
        return {
            "success": True,
            "message": "Payment successful! Credits added to your account.",
            "data": {
                "credits_added": outcome.credits_added,
                "previous_balance": outcome.previous_balance,
                "new_balance": outcome.new_balance,
                "status": "completed",
            },
        }
    if isinstance(outcome, AlreadySettled):
        return {
            "success": True,
            "message": "Payment already verified",
            "data": {
                "credits": outcome.transaction.credits,
                "new_balance": outcome.balance,
                "status": outcome.transaction.status,
            },
        }
    if isinstance(outcome, PaymentPending):
        return {
            "success": False,
            "message": "Payment pending or abandoned",
            "data": {"status": outcome.status},
        }
    if isinstance(outcome, NotFound):
        raise HTTPException(status_code=404, detail=outcome.message)
    if isinstance(outcome, UpstreamFailure):
        raise HTTPException(status_code=400, detail=outcome.message or "Payment verification failed")
    if isinstance(outcome, PaymentFailed):
        raise HTTPException(status_code=400, detail="Payment failed")
    if isinstance(outcome, AmountMismatch):
        raise HTTPException(status_code=400, detail="Payment amount does not match transaction")
    raise HTTPException(status_code=500, detail="Failed to verify payment")


@router.get("/payments/bundles")
async def list_bundles(db: Session = Depends(get_db)) -> dict:
    return {"success": True, "data": [_bundle_out(b) for b in ledger.active_bundles(db)]}


@router.get("/payments/balance")
async def get_balance(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_role("agent")),
) -> dict:
    agent = ledger.get_user(db, current_user.id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {
        "success": True,
        "data": {"credits": int(agent.credits or 0), "wallet_balance": int(agent.wallet_balance or 0)},
    }


@router.get("/payments/transactions")
async def list_transactions(
    type: str | None = None,
    limit: int = 20,
    page: int = 1,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_role("agent")),
) -> dict:
    if type and type not in TRANSACTION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid transaction type")
    limit = max(1, min(int(limit or 20), 100))
    page = max(1, int(page or 1))
    rows, total = ledger.list_transactions(db, current_user.id, tx_type=type, limit=limit, offset=(page - 1) * limit)
    return {
        "success": True,
        "data": [_transaction_out(tx) for tx in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


@router.post("/payments/wallet/load")
async def load_wallet(
    body: WalletLoadRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    if body.amount is None or body.amount <= 0:
        raise HTTPException(status_code=400, detail="Valid amount is required")
    loaded = ledger.load_wallet(db, current_user.id, body.amount)
    if loaded is None:
        raise HTTPException(status_code=404, detail="User not found")
    tx, wallet_balance = loaded
    logger.info("payments.wallet.loaded user_id=%s amount=%s transaction_id=%s", current_user.id, tx.amount, tx.id)
    return {
        "success": True,
        "message": "Wallet loaded successfully",
        "data": {"transaction": _transaction_out(tx), "wallet_balance": wallet_balance},
    }


@router.post("/payments/purchase")
async def purchase_credits(
    body: PurchaseRequest,
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    current_user: CurrentUser = Depends(require_role("agent")),
) -> dict:
    bundle_id = (body.bundle_id or "").strip()
    if not bundle_id:
        raise HTTPException(status_code=400, detail="Bundle ID is required")
    if not gateway.configured:
        raise HTTPException(status_code=503, detail="Payment service not configured. Please contact support.")

    bundle = ledger.get_active_bundle(db, bundle_id)
    if bundle is None:
        raise HTTPException(status_code=404, detail="Credit bundle not found or inactive")
    agent = ledger.get_user(db, current_user.id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")

    reference = generate_reference("CREDIT")
    tx = ledger.create_pending_purchase(db, agent.id, bundle, reference)
    logger.info(
        "payments.purchase.created transaction_id=%s user_id=%s reference=%s amount=%s",
        tx.id,
        agent.id,
        reference,
        tx.amount,
    )

    amount_minor = int(bundle.price) * 100
    checkout_metadata = {
        "transaction_id": tx.id,
        "user_id": agent.id,
        "bundle_id": bundle.id,
        "credits": bundle.total_credits,
    }
    bundle_summary = {
        "credits": int(bundle.credits),
        "bonus": int(bundle.bonus or 0),
        "total_credits": bundle.total_credits,
        "price": int(bundle.price),
    }

    if body.use_inline:
        return {
            "success": True,
            "data": {
                "transaction_id": tx.id,
                "reference": reference,
                "public_key": settings.paystack_public_key or "",
                "email": agent.email,
                "amount": amount_minor,
                "currency": settings.payment_currency,
                "bundle": bundle_summary,
                "metadata": checkout_metadata,
            },
        }

    init = gateway.initialize(
        email=agent.email,
        amount_minor=amount_minor,
        reference=reference,
        metadata=checkout_metadata,
        callback_url=(body.callback_url or settings.resolved_callback_url()),
    )
    if not init.ok:
        mark_failed(db, tx, source="initialize")
        raise HTTPException(status_code=500, detail=init.message or "Failed to initialize payment")

    return {
        "success": True,
        "data": {
            "transaction_id": tx.id,
            "reference": reference,
            "authorization_url": init.authorization_url,
            "access_code": init.access_code,
            "bundle": bundle_summary,
        },
    }


@router.post("/payments/verify-inline")
async def verify_inline(
    body: VerifyInlineRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    session_factory=Depends(get_session_factory),
) -> dict:
    reference = (body.reference or "").strip()
    if not reference:
        raise HTTPException(status_code=400, detail="Payment reference is required")
    outcome = settle_payment(db, gateway, reference, source="verify_inline")
    return _settlement_response(outcome, background_tasks, session_factory)


@router.get("/payments/verify/{reference}")
async def verify_reference(
    reference: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    session_factory=Depends(get_session_factory),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    outcome = settle_payment(db, gateway, reference, user_id=current_user.id, source="verify")
    return _settlement_response(outcome, background_tasks, session_factory)


@router.get("/payments/callback")
async def payment_callback(
    background_tasks: BackgroundTasks,
    reference: str | None = None,
    trxref: str | None = None,
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    session_factory=Depends(get_session_factory),
) -> dict:
    payment_reference = (reference or trxref or "").strip()
    if not payment_reference:
        raise HTTPException(status_code=400, detail="Payment reference is required")
    outcome = settle_payment(db, gateway, payment_reference, source="callback")
    return _settlement_response(outcome, background_tasks, session_factory)


@router.post("/payments/webhook")
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: PaystackClient = Depends(get_gateway),
    session_factory=Depends(get_session_factory),
) -> dict:
    raw_body = await request.body()
    secret = settings.resolved_webhook_secret()
    if not secret:
        raise HTTPException(status_code=500, detail="Paystack webhook secret is not configured")
    if not verify_webhook_signature(secret, raw_body, request.headers.get("x-paystack-signature")):
        logger.warning("payments.webhook.invalid_signature bytes=%s", len(raw_body))
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    try:
        outcome = handle_webhook_event(db, gateway, event)
    except Exception:
        db.rollback()
        raise

    if isinstance(outcome, Settled):
        background_tasks.add_task(dispatch_outbox_task, session_factory)
    elif outcome is not None and not isinstance(outcome, AlreadySettled):
        logger.warning("payments.webhook.unsettled event=%s outcome=%s", event.get("event"), type(outcome).__name__)
    return {"received": True}


@router.get("/payments/status")
async def payment_status(gateway: PaystackClient = Depends(get_gateway)) -> dict:
    configured = gateway.configured
    return {
        "success": True,
        "data": {
            "payment_enabled": configured,
            "provider": "paystack",
            "currency": settings.payment_currency,
            "message": ("Payment service is ready" if configured else "PAYSTACK_SECRET_KEY is not configured"),
        },
    }
