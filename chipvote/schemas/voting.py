from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class VoteSubmitRequest(BaseModel):
    participant_id: str = Field(..., min_length=1)
    layer: Literal["layer1", "layer2"]
    # Chip counts are checked by the engine so malformed maps get tagged errors
    allocations: Dict[str, Any]
    group_id: Optional[str] = None


class VoteSubmitResponse(BaseModel):
    vote_id: str
    layer: str
    group_id: Optional[str] = None
    total_chips: int
    routing_winner: Optional[str] = None
