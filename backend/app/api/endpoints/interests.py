from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import get_db, get_session_factory
from app.core.security import CurrentUser, get_current_user, require_role
from app.models.interest import INTEREST_STATUSES, Interest
from app.models.property import Property
from app.schemas.interest import InterestCreate, InterestUpdate
from app.services import ledger
from app.services.interest_unlock import UNLOCK_COST, UnlockError, mask_phone, unlock_interest
from app.services.notifications import dispatch_outbox_task, notify_interest_expressed


logger = logging.getLogger(__name__)

router = APIRouter()


def _interest_out(interest: Interest, prop: Property | None = None) -> dict[str, Any]:
    unlocked = bool(interest.unlocked)
    return {
        "id": interest.id,
        "property_id": interest.property_id,
        "property_title": (prop.title if prop is not None else None),
        "seeker_id": interest.seeker_id,
        "seeker_name": interest.seeker_name,
        "seeker_phone": (interest.seeker_phone if unlocked else mask_phone(interest.seeker_phone)),
        "message": interest.message,
        "seriousness_score": interest.seriousness_score,
        "unlocked": unlocked,
        "status": interest.status,
        "created_at": (interest.created_at.isoformat() if interest.created_at else None),
    }


@router.post("/interests", status_code=201)
async def express_interest(
    body: InterestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    current_user: CurrentUser = Depends(require_role("seeker")),
) -> dict:
    property_id = (body.property_id or "").strip()
    if not property_id:
        raise HTTPException(status_code=400, detail="Property ID is required")

    prop = db.query(Property).filter(Property.id == property_id).first()
    if prop is None:
        raise HTTPException(status_code=404, detail="Property not found")
    if prop.status != "available":
        raise HTTPException(status_code=400, detail="Property is not available")

    existing = (
        db.query(Interest)
        .filter(Interest.property_id == property_id, Interest.seeker_id == current_user.id)
        .first()
    )
    if existing is not None:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "You have already expressed interest in this property",
                "interest_id": existing.id,
            },
        )

    seeker = ledger.get_user(db, current_user.id)
    seeker_name = (seeker.name if seeker is not None else "") or current_user.name or "A seeker"
    score = body.seriousness_score if body.seriousness_score is not None else 5
    interest = Interest(
        property_id=property_id,
        seeker_id=current_user.id,
        seeker_name=seeker_name,
        seeker_phone=(seeker.phone if seeker is not None else "") or "",
        message=(body.message or ""),
        seriousness_score=max(1, min(int(score), 10)),
        unlocked=False,
        status="pending",
    )
    try:
        db.add(interest)
        notify_interest_expressed(
            db,
            agent_id=prop.agent_id,
            seeker_id=current_user.id,
            seeker_name=seeker_name,
            property_id=prop.id,
            property_title=prop.title or "",
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="You have already expressed interest in this property")
    except Exception:
        db.rollback()
        raise

    db.refresh(interest)
    logger.info("interest.created interest_id=%s property_id=%s seeker_id=%s", interest.id, property_id, current_user.id)
    background_tasks.add_task(dispatch_outbox_task, session_factory)
    return {
        "success": True,
        "message": "Interest expressed successfully",
        "data": _interest_out(interest, prop),
    }


@router.get("/interests/agent/seekers")
async def list_agent_seekers(
    status: str | None = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_role("agent")),
) -> dict:
    properties = db.query(Property).filter(Property.agent_id == current_user.id).all()
    by_id = {p.id: p for p in properties}
    interests: list[Interest] = []
    if by_id:
        q = db.query(Interest).filter(Interest.property_id.in_(list(by_id.keys())))
        if status:
            q = q.filter(Interest.status == status)
        interests = q.order_by(Interest.created_at.desc()).all()

    unlocked = sum(1 for i in interests if i.unlocked)
    summary: dict[str, Any] = {
        "total": len(interests),
        "unlocked": unlocked,
        "locked": len(interests) - unlocked,
        "unlock_cost": UNLOCK_COST,
    }
    for name in INTEREST_STATUSES:
        summary[name.replace("-", "_")] = sum(1 for i in interests if i.status == name)
    return {
        "success": True,
        "data": {
            "seekers": [_interest_out(i, by_id.get(i.property_id)) for i in interests],
            "summary": summary,
        },
    }


@router.put("/interests/{interest_id}")
async def update_interest(
    interest_id: str,
    body: InterestUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    interest = db.query(Interest).filter(Interest.id == interest_id).first()
    if interest is None:
        raise HTTPException(status_code=404, detail="Interest not found")
    prop = db.query(Property).filter(Property.id == interest.property_id).first()

    is_owner = prop is not None and prop.agent_id == current_user.id
    if not (is_owner or interest.seeker_id == current_user.id or current_user.role == "admin"):
        raise HTTPException(status_code=403, detail="Not authorized to update this interest")

    # Identity fields and the unlock flag are not writable here; unlocking is paid for.
    if body.status is not None:
        if body.status not in INTEREST_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid interest status")
        interest.status = body.status
    if body.message is not None:
        interest.message = body.message
    if body.seriousness_score is not None:
        interest.seriousness_score = max(1, min(int(body.seriousness_score), 10))

    db.commit()
    db.refresh(interest)
    logger.info("interest.updated interest_id=%s user_id=%s status=%s", interest.id, current_user.id, interest.status)
    return {"success": True, "data": _interest_out(interest, prop)}


@router.post("/interests/{interest_id}/unlock")
async def unlock(
    interest_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    current_user: CurrentUser = Depends(require_role("agent")),
) -> dict:
    try:
        result = unlock_interest(db, interest_id, current_user.id)
    except UnlockError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)

    background_tasks.add_task(dispatch_outbox_task, session_factory)
    interest = result.interest
    return {
        "success": True,
        "message": "Interest unlocked successfully",
        "data": {
            "interest_id": interest.id,
            "seeker_name": interest.seeker_name,
            "seeker_phone": interest.seeker_phone,
            "status": interest.status,
            "credits_remaining": result.credits_remaining,
            "transaction_id": result.transaction.id,
        },
    }
