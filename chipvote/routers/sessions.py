import logging
from datetime import datetime, UTC

from fastapi import APIRouter, Depends, status

from chipvote.data.session_manager import SessionManager, get_session_manager
from chipvote.schemas.session import (
    OptionUpdate,
    PhaseUpdate,
    SessionCreate,
    SessionResponse,
)
from chipvote.services.phase_controller import PhaseController
from chipvote.services.results_cache import results_cache
from chipvote.services.results_manager import ResultsManager
from chipvote.utils.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

logger = logging.getLogger(__name__)


async def _publish_session(session_manager: SessionManager, session, reason: str):
    payload = session_manager.serialize_session(session)
    await websocket_manager.broadcast(
        session.session_id,
        {
            "type": "session_updated",
            "payload": {
                "reason": reason,
                "session": payload,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        },
    )
    return payload


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreate,
    session_manager: SessionManager = Depends(get_session_manager),
):
    override = request.settings.to_override() if request.settings else None
    session = session_manager.create_session(request.facilitator_id, override)
    return SessionResponse(**session_manager.serialize_session(session))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    session_manager: SessionManager = Depends(get_session_manager),
):
    session = session_manager.require_session(session_id)
    return SessionResponse(**session_manager.serialize_session(session))


@router.put("/{session_id}/phase", response_model=SessionResponse)
async def transition_phase(
    session_id: str,
    request: PhaseUpdate,
    session_manager: SessionManager = Depends(get_session_manager),
):
    controller = PhaseController(
        session_manager.db, ResultsManager(session_manager.db, results_cache)
    )
    session = controller.transition(session_id, request.phase)
    payload = await _publish_session(session_manager, session, "phase_changed")
    return SessionResponse(**payload)


@router.patch("/{session_id}/options/{option_id}", response_model=SessionResponse)
async def update_option(
    session_id: str,
    option_id: str,
    request: OptionUpdate,
    session_manager: SessionManager = Depends(get_session_manager),
):
    session = session_manager.update_option(
        session_id, option_id, title=request.title, description=request.description
    )
    payload = await _publish_session(session_manager, session, "option_updated")
    return SessionResponse(**payload)
