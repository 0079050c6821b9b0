from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class ConnectionHub:
    """Open notification sockets per user. Delivery is best effort."""

    def __init__(self) -> None:
        self._sockets: dict[str, set[WebSocket]] = {}

    def connect(self, user_id: str, websocket: WebSocket) -> None:
        self._sockets.setdefault(user_id, set()).add(websocket)
        logger.info("realtime.connect user_id=%s sockets=%s", user_id, len(self._sockets[user_id]))

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self._sockets.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            self._sockets.pop(user_id, None)
        logger.info("realtime.disconnect user_id=%s", user_id)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._sockets.get(user_id))

    async def send_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> int:
        sent = 0
        for websocket in list(self._sockets.get(user_id, ())):
            try:
                await websocket.send_json({"event": event, "data": payload})
                sent += 1
            except Exception:
                logger.warning("realtime.send_failed user_id=%s event=%s", user_id, event)
                self.disconnect(user_id, websocket)
        return sent


hub = ConnectionHub()
