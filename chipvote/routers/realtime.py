import logging
from datetime import datetime, UTC
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from chipvote.data.session_manager import SessionManager, get_session_manager
from chipvote.models.session import VotingSession
from chipvote.utils.websocket_manager import websocket_manager

router = APIRouter(prefix="/ws", tags=["realtime"])

logger = logging.getLogger(__name__)


def _session_snapshot(session: VotingSession) -> Dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "phase": session.phase,
        "participantCount": session.participant_count or 0,
        "layer1Allocations": session.layer1_allocations or 0,
        "layer2Allocations": session.layer2_allocations or 0,
        "totalAllocations": session.total_allocations or 0,
    }


@router.websocket("/sessions/{session_id}")
async def session_socket(
    websocket: WebSocket,
    session_id: str,
    session_manager: SessionManager = Depends(get_session_manager),
) -> None:
    """Push session events to displays and participant devices."""
    session = session_manager.get_session(session_id)
    if not session:
        logger.error("Session %s not found for WebSocket connection", session_id)
        await websocket.close(code=1008, reason="Session not found")
        return

    participant_id = websocket.query_params.get("participantId")
    role = "participant" if participant_id else "display"
    connection_id = await websocket_manager.connect(
        websocket, session_id, participant_id=participant_id, role=role
    )
    await websocket_manager.send_personal_message(
        session_id,
        connection_id,
        {
            "type": "connection_ack",
            "payload": {
                "connectionId": connection_id,
                "role": role,
                "state": _session_snapshot(session),
            },
        },
    )

    try:
        while True:
            message = await websocket.receive_json()
            message_type = message.get("type") if isinstance(message, dict) else None

            if message_type == "ping":
                await websocket_manager.send_personal_message(
                    session_id,
                    connection_id,
                    {
                        "type": "pong",
                        "payload": {
                            "sessionId": session_id,
                            "timestamp": datetime.now(UTC).isoformat(),
                        },
                    },
                )
            elif message_type == "state_request":
                session_manager.db.expire_all()
                current = session_manager.get_session(session_id)
                if current is None:
                    await websocket.close(code=1008, reason="Session not found")
                    break
                await websocket_manager.send_personal_message(
                    session_id,
                    connection_id,
                    {"type": "session_state", "payload": _session_snapshot(current)},
                )
            else:
                await websocket_manager.send_personal_message(
                    session_id,
                    connection_id,
                    {
                        "type": "error",
                        "payload": {"message": f"Unsupported message: {message_type}"},
                    },
                )
    except WebSocketDisconnect:
        logger.debug("WebSocket closed for session %s", session_id)
    finally:
        websocket_manager.disconnect(session_id, connection_id)
