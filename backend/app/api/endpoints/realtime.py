from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from app.core.database import get_session_factory
from app.core.security import user_from_token
from app.services.realtime import hub


logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, session_factory=Depends(get_session_factory)) -> None:
    token = (websocket.query_params.get("token") or "").strip()
    if not token:
        await websocket.close(code=1008)
        return

    db = session_factory()
    try:
        user = user_from_token(db, token)
    except HTTPException as exc:
        logger.info("realtime.auth_rejected reason=%s", exc.detail)
        await websocket.close(code=1008)
        return
    finally:
        db.close()

    await websocket.accept()
    hub.connect(user.id, websocket)
    try:
        await websocket.send_json({"event": "connected", "data": {"user_id": user.id}})
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(user.id, websocket)
