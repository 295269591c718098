import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from chipvote.database import get_db
from chipvote.schemas.voting import VoteSubmitRequest, VoteSubmitResponse
from chipvote.services.results_cache import results_cache, results_refresh
from chipvote.services.results_manager import ResultsManager
from chipvote.services.voting_manager import VotingManager
from chipvote.utils.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/sessions/{session_id}", tags=["voting"])

logger = logging.getLogger(__name__)


def get_voting_manager(db: Session = Depends(get_db)) -> VotingManager:
    return VotingManager(db)


def get_results_manager(db: Session = Depends(get_db)) -> ResultsManager:
    return ResultsManager(db, results_cache)


@router.post(
    "/votes", response_model=VoteSubmitResponse, status_code=status.HTTP_201_CREATED
)
async def submit_vote(
    session_id: str,
    request: VoteSubmitRequest,
    voting_manager: VotingManager = Depends(get_voting_manager),
):
    outcome = voting_manager.submit_vote(
        session_id,
        request.participant_id,
        request.layer,
        request.allocations,
        group_id=request.group_id,
    )
    results_refresh.notify_vote(session_id)
    await websocket_manager.broadcast(
        session_id,
        {
            "type": "vote_submitted",
            "payload": {
                "sessionId": session_id,
                "participantId": request.participant_id,
                "layer": outcome["layer"],
                "groupId": outcome["group_id"],
                "totalChips": outcome["total_chips"],
            },
        },
    )
    return VoteSubmitResponse(**outcome)


@router.get("/results")
async def get_results(
    session_id: str,
    layer: Optional[str] = Query(default=None),
    group_id: Optional[str] = Query(default=None),
    refresh: bool = Query(default=False),
    results_manager: ResultsManager = Depends(get_results_manager),
) -> Dict[str, Any]:
    """
    Results document, or one round / group of it.

    ``refresh=true`` asks for a recompute; requests are throttled per session,
    so a refresh inside the current window returns the cached document and a
    single trailing recompute runs when the window closes.
    """
    if refresh:
        # Surface lookup errors here; the throttled recompute only logs them
        await asyncio.to_thread(
            results_manager.get_results, session_id, layer, group_id
        )
        await asyncio.to_thread(results_refresh.request_refresh, session_id)
    # Cold reads recompute the document
    return await asyncio.to_thread(
        results_manager.get_results, session_id, layer, group_id
    )
