from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ParticipantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    department: Optional[str] = Field(default=None, max_length=255)
    device_id: Optional[str] = Field(default=None, max_length=128)


class ParticipantResponse(BaseModel):
    participant_id: str
    session_id: str
    name: str
    department: Optional[str] = None
    device_id: str
    player_avatar: Optional[str] = None
    registered_at: Optional[str] = None
    layer1_completed: bool = False
    layer2_completed: bool = False
    layer1_submitted_at: Optional[str] = None
    layer2_submitted_at: Optional[str] = None
    layer1_selection: Optional[str] = None
