from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.models.interest import Interest
from app.models.property import Property
from app.models.transaction import Transaction
from app.services import ledger
from app.services.notifications import notify_interest_unlocked


logger = logging.getLogger(__name__)

UNLOCK_COST = 5


class UnlockError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InterestNotFound(UnlockError):
    status_code = 404


class NotAuthorizedToUnlock(UnlockError):
    status_code = 403


class AlreadyUnlocked(UnlockError):
    pass


class InsufficientCredits(UnlockError):
    pass


@dataclass(frozen=True)
class UnlockResult:
    interest: Interest
    credits_remaining: int
    transaction: Transaction


def unlock_interest(db: Session, interest_id: str, agent_id: str) -> UnlockResult:
    interest = db.query(Interest).filter(Interest.id == interest_id).first()
    if interest is None:
        raise InterestNotFound("Interest not found")

    prop = db.query(Property).filter(Property.id == interest.property_id).first()
    if prop is None or prop.agent_id != agent_id:
        raise NotAuthorizedToUnlock("Not authorized to unlock this interest")

    if interest.unlocked:
        raise AlreadyUnlocked("Interest is already unlocked")

    agent = ledger.get_user(db, agent_id)
    if agent is None or int(agent.credits or 0) < UNLOCK_COST:
        raise InsufficientCredits("Insufficient credits to unlock interest")
    agent_name = agent.name or "An agent"

    try:
        claimed = (
            db.query(Interest)
            .filter(Interest.id == interest_id, Interest.unlocked.is_(False))
            .update({Interest.unlocked: True, Interest.status: "contacted"}, synchronize_session=False)
        )
        if not claimed:
            db.rollback()
            raise AlreadyUnlocked("Interest is already unlocked")

        remaining = ledger.debit_user(db, agent_id, UNLOCK_COST)
        if remaining is None:
            db.rollback()
            raise InsufficientCredits("Insufficient credits to unlock interest")

        spend = ledger.record_spend(
            db,
            agent_id,
            UNLOCK_COST,
            description=f"Unlocked interest on {prop.title}",
            metadata={"interest_id": interest_id, "property_id": prop.id},
        )
        notify_interest_unlocked(
            db,
            seeker_id=interest.seeker_id,
            agent_name=agent_name,
            property_title=prop.title or "",
            interest_id=interest_id,
        )
        db.commit()
    except UnlockError:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(interest)
    db.refresh(spend)
    logger.info(
        "interest.unlocked interest_id=%s agent_id=%s cost=%s credits_remaining=%s",
        interest_id,
        agent_id,
        UNLOCK_COST,
        remaining,
    )
    return UnlockResult(interest=interest, credits_remaining=remaining, transaction=spend)


def mask_phone(phone: str | None) -> str:
    digits = str(phone or "")
    return "******" + digits[-4:]
