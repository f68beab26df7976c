"""Live notification channel for signed-in users.

Tracks WebSocket connections by google_id. One user can hold several
connections (tabs, devices); events go to every connection of one user and
are never broadcast. There is no queue: an event emitted while the user has
no connection is dropped.

Wire format:
    server -> client: {"event": "new_emails", "data": {...}}
    client -> server: "ping"   (answered with {"event": "pong"})

Usage:
    from networking_hub.web.live import NotificationDispatcher

    dispatcher = NotificationDispatcher()
    reached = await dispatcher.emit(google_id, "new_emails", {"count": 3})
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from networking_hub.core.logging import get_logger
from networking_hub.web.validation import is_valid_google_id

logger = get_logger(__name__)

PING = "ping"
PONG_EVENT = "pong"

ws_router = APIRouter(tags=["live"])


class NotificationDispatcher:
    """Per-user registry of live connections."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        """Register an accepted connection for a user."""
        self._connections.setdefault(user_id, set()).add(websocket)
        logger.info(
            "live_connected",
            user_id=user_id,
            connections=len(self._connections[user_id]),
        )

    async def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        """Remove a connection; unknown connections are ignored."""
        connections = self._connections.get(user_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self._connections[user_id]
        logger.info(
            "live_disconnected",
            user_id=user_id,
            remaining=len(self._connections.get(user_id, ())),
        )

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    def connection_count(self, user_id: str | None = None) -> int:
        """Connections held by one user, or by everyone when user_id is None."""
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(conns) for conns in self._connections.values())

    async def emit(self, user_id: str, event: str, payload: dict[str, Any]) -> int:
        """Send an event to all of a user's connections.

        A connection whose send fails is dropped from the registry.

        Args:
            user_id: Target user's google_id
            event: Event name (e.g. 'new_emails')
            payload: JSON-serializable event data

        Returns:
            Number of connections the event reached
        """
        connections = self._connections.get(user_id)
        if not connections:
            logger.debug("live_emit_no_connections", user_id=user_id, event=event)
            return 0

        message = {"event": event, "data": payload}
        reached = 0
        dead: list[WebSocket] = []

        for websocket in list(connections):
            try:
                await websocket.send_json(message)
                reached += 1
            except Exception as e:
                logger.warning(
                    "live_send_failed",
                    user_id=user_id,
                    event=event,
                    error=str(e),
                )
                dead.append(websocket)

        for websocket in dead:
            await self.disconnect(user_id, websocket)

        return reached

    def clear(self) -> None:
        self._connections.clear()


def _is_ping(raw: str) -> bool:
    """Accept the bare string and the JSON forms of a ping."""
    text = raw.strip()
    if text == PING:
        return True
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return False
    if data == PING:
        return True
    return isinstance(data, dict) and (data.get("type") == PING or data.get("event") == PING)


@ws_router.websocket("/ws/{google_id}")
async def live_endpoint(websocket: WebSocket, google_id: str) -> None:
    """Hold a live connection open for one user and answer pings."""
    if not is_valid_google_id(google_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    dispatcher: NotificationDispatcher = websocket.app.state.dispatcher

    await websocket.accept()
    await dispatcher.connect(google_id, websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            if _is_ping(raw):
                await websocket.send_json({"event": PONG_EVENT})
    except WebSocketDisconnect:
        pass
    finally:
        await dispatcher.disconnect(google_id, websocket)
