from .session import (
    OptionUpdate,
    PhaseUpdate,
    SessionCreate,
    SessionResponse,
    SessionSettingsOverride,
)
from .participant import ParticipantCreate, ParticipantResponse
from .voting import VoteSubmitRequest, VoteSubmitResponse

__all__ = [
    "OptionUpdate",
    "PhaseUpdate",
    "SessionCreate",
    "SessionResponse",
    "SessionSettingsOverride",
    "ParticipantCreate",
    "ParticipantResponse",
    "VoteSubmitRequest",
    "VoteSubmitResponse",
]
