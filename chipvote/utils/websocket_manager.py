from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    """One display or participant socket subscribed to a session."""

    id: str
    websocket: WebSocket
    participant_id: Optional[str] = None
    role: str = "display"

    async def send_json(self, message: Dict[str, Any]) -> None:
        await self.websocket.send_json(message)


class WebSocketManager:
    """Fans session events out to every socket subscribed to that session."""

    def __init__(self):
        # Key: session_id, Value: {connection_id: ConnectionInfo}
        self.active_connections: Dict[str, Dict[str, ConnectionInfo]] = {}

    async def connect(
        self,
        websocket: WebSocket,
        session_id: str,
        *,
        participant_id: Optional[str] = None,
        role: str = "display",
    ) -> str:
        await websocket.accept()
        connection_id = str(uuid4())
        self.active_connections.setdefault(session_id, {})[connection_id] = (
            ConnectionInfo(
                id=connection_id,
                websocket=websocket,
                participant_id=participant_id,
                role=role,
            )
        )
        logger.debug(
            "WebSocket connected: session_id=%s connection_id=%s role=%s",
            session_id,
            connection_id,
            role,
        )
        return connection_id

    def disconnect(self, session_id: str, connection_id: str) -> None:
        session_connections = self.active_connections.get(session_id)
        if not session_connections:
            return
        if session_connections.pop(connection_id, None) is not None:
            logger.debug(
                "WebSocket disconnected: session_id=%s connection_id=%s",
                session_id,
                connection_id,
            )
        if not session_connections:
            self.active_connections.pop(session_id, None)

    async def broadcast(
        self,
        session_id: str,
        message: Dict[str, Any],
        *,
        skip_connection: Optional[str] = None,
    ) -> int:
        """Send ``message`` to every socket on the session; return deliveries."""
        session_connections = self.active_connections.get(session_id, {})
        disconnected: list[str] = []
        delivered = 0

        # Snapshot: disconnect() may run from other handlers mid-loop
        for connection_id, connection in list(session_connections.items()):
            if skip_connection and connection_id == skip_connection:
                continue
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception:  # pragma: no cover - depends on network
                disconnected.append(connection_id)

        for connection_id in disconnected:
            self.disconnect(session_id, connection_id)
        return delivered

    async def send_personal_message(
        self,
        session_id: str,
        connection_id: str,
        message: Dict[str, Any],
    ) -> None:
        connection = self.active_connections.get(session_id, {}).get(connection_id)
        if not connection:
            return
        try:
            await connection.send_json(message)
        except Exception:  # pragma: no cover - depends on network
            self.disconnect(session_id, connection_id)

    def connection_count(self, session_id: str) -> int:
        return len(self.active_connections.get(session_id, {}))


websocket_manager = WebSocketManager()
