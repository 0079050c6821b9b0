"""In-app notifications.

Services never write Notification rows directly. They add an outbox entry in
the same database transaction as the change being announced, and
``dispatch_pending`` turns entries into notifications afterwards. A failed
dispatch is retried later and never touches the change that produced it.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.settings import settings
from app.models.notification import NOTIFICATION_TYPES, Notification, NotificationOutbox
from app.services.ledger import utcnow
from app.services.realtime import ConnectionHub, hub as default_hub


logger = logging.getLogger(__name__)


def enqueue_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    type: str = "info",
    metadata: dict[str, Any] | None = None,
) -> NotificationOutbox:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")
    entry = NotificationOutbox(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        event_metadata=(metadata or None),
        status="pending",
        attempts=0,
    )
    db.add(entry)
    return entry


def notify_credits_purchased(
    db: Session,
    *,
    user_id: str,
    transaction_id: str,
    credits: int,
    new_balance: int,
) -> NotificationOutbox:
    return enqueue_notification(
        db,
        user_id=user_id,
        title="Credits Purchased! 💰",
        message=f"{credits} credits have been added to your account. New balance: {new_balance} credits.",
        type="success",
        metadata={"transaction_id": transaction_id, "credits": credits, "new_balance": new_balance},
    )


def notify_interest_unlocked(
    db: Session,
    *,
    seeker_id: str,
    agent_name: str,
    property_title: str,
    interest_id: str,
) -> NotificationOutbox:
    return enqueue_notification(
        db,
        user_id=seeker_id,
        title="Agent Viewed Your Interest! 👀",
        message=f'{agent_name} has unlocked your interest in "{property_title}". Expect a message soon!',
        type="info",
        metadata={"interest_id": interest_id},
    )


def notify_interest_expressed(
    db: Session,
    *,
    agent_id: str,
    seeker_id: str,
    seeker_name: str,
    property_id: str,
    property_title: str,
) -> tuple[NotificationOutbox, NotificationOutbox]:
    agent_entry = enqueue_notification(
        db,
        user_id=agent_id,
        title="New Interest Received! 🎉",
        message=f'{seeker_name} has expressed interest in your property "{property_title}".',
        type="interest",
        metadata={"property_id": property_id, "seeker_id": seeker_id},
    )
    seeker_entry = enqueue_notification(
        db,
        user_id=seeker_id,
        title="Interest Sent Successfully! ✅",
        message=f'You\'ve expressed interest in "{property_title}". The agent will reach out to you soon!',
        type="success",
        metadata={"property_id": property_id, "agent_id": agent_id},
    )
    return agent_entry, seeker_entry


def dispatch_pending(db: Session, limit: int = 100, max_attempts: int | None = None) -> list[Notification]:
    """Turn pending outbox entries into notifications, committing each one separately."""
    max_attempts = max(1, int(max_attempts or settings.notification_max_attempts))
    entry_ids = [
        row.id
        for row in db.query(NotificationOutbox.id)
        .filter(NotificationOutbox.status == "pending")
        .order_by(NotificationOutbox.id.asc())
        .limit(limit)
        .all()
    ]
    delivered: list[Notification] = []
    for entry_id in entry_ids:
        entry = db.query(NotificationOutbox).filter(NotificationOutbox.id == entry_id).first()
        if entry is None or entry.status != "pending":
            continue
        try:
            notification = Notification(
                id=str(uuid4()),
                user_id=entry.user_id,
                title=entry.title,
                message=entry.message,
                type=entry.type,
                read=False,
                event_metadata=entry.event_metadata,
            )
            db.add(notification)
            entry.status = "dispatched"
            entry.attempts = int(entry.attempts or 0) + 1
            entry.notification_id = notification.id
            entry.dispatched_at = utcnow()
            entry.last_error = None
            db.commit()
            delivered.append(notification)
        except Exception as exc:
            db.rollback()
            _record_failure(db, entry_id, exc, max_attempts)
    if delivered:
        logger.info("notifications.dispatched count=%s", len(delivered))
    return delivered


def _record_failure(db: Session, entry_id: int, exc: Exception, max_attempts: int) -> None:
    entry = db.query(NotificationOutbox).filter(NotificationOutbox.id == entry_id).first()
    if entry is None:
        return
    entry.attempts = int(entry.attempts or 0) + 1
    entry.last_error = str(exc)[:500]
    if entry.attempts >= max_attempts:
        entry.status = "failed"
    db.commit()
    logger.warning(
        "notifications.dispatch_failed outbox_id=%s attempts=%s status=%s error=%s",
        entry_id,
        entry.attempts,
        entry.status,
        entry.last_error,
    )


async def push_realtime(hub: ConnectionHub, notifications: list[Notification]) -> int:
    pushed = 0
    for n in notifications:
        if not hub.is_connected(n.user_id):
            continue
        pushed += await hub.send_to_user(
            n.user_id,
            "notification:new",
            {
                "id": n.id,
                "title": n.title,
                "message": n.message,
                "type": n.type,
                "metadata": n.event_metadata or {},
            },
        )
    return pushed


async def dispatch_outbox_task(session_factory=None, hub: ConnectionHub | None = None) -> None:
    # Runs after the response, so it needs its own DB session.
    db = (session_factory or SessionLocal)()
    try:
        delivered = dispatch_pending(db)
        await push_realtime(hub or default_hub, delivered)
    except Exception:
        logger.exception("notifications.dispatch_task.error")
    finally:
        db.close()


def serialize_notification(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "read": bool(n.read),
        "metadata": n.event_metadata or {},
        "created_at": (n.created_at.isoformat() if n.created_at else None),
    }
