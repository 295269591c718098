from typing import List

from fastapi import APIRouter, Depends, status

from chipvote.data.participant_manager import (
    ParticipantManager,
    get_participant_manager,
)
from chipvote.schemas.participant import ParticipantCreate, ParticipantResponse
from chipvote.utils.websocket_manager import websocket_manager

router = APIRouter(
    prefix="/api/sessions/{session_id}/participants", tags=["participants"]
)


@router.post(
    "", response_model=ParticipantResponse, status_code=status.HTTP_201_CREATED
)
async def register_participant(
    session_id: str,
    request: ParticipantCreate,
    participant_manager: ParticipantManager = Depends(get_participant_manager),
):
    participant = participant_manager.register_participant(
        session_id,
        name=request.name,
        department=request.department,
        device_id=request.device_id,
    )
    payload = ParticipantManager.serialize(participant)
    participant_count = participant.session.participant_count or 0
    await websocket_manager.broadcast(
        session_id,
        {
            "type": "participant_joined",
            "payload": {
                "sessionId": session_id,
                "participantId": participant.participant_id,
                "name": participant.name,
                "department": payload["department"],
                "playerAvatar": participant.player_avatar,
                "participantCount": participant_count,
            },
        },
    )
    return ParticipantResponse(**payload)


@router.get("", response_model=List[ParticipantResponse])
async def list_participants(
    session_id: str,
    participant_manager: ParticipantManager = Depends(get_participant_manager),
):
    return [
        ParticipantResponse(**ParticipantManager.serialize(participant))
        for participant in participant_manager.list_participants(session_id)
    ]


@router.get("/{participant_id}", response_model=ParticipantResponse)
async def get_participant(
    session_id: str,
    participant_id: str,
    participant_manager: ParticipantManager = Depends(get_participant_manager),
):
    participant = participant_manager.get_participant(session_id, participant_id)
    return ParticipantResponse(**ParticipantManager.serialize(participant))
