from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LayerDurations(BaseModel):
    layer1: Optional[int] = Field(default=None, gt=0)
    layer2: Optional[int] = Field(default=None, gt=0)


class SessionSettingsOverride(BaseModel):
    """Facilitator overrides; keys follow the stored camelCase settings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chips_per_type: Optional[int] = Field(default=None, alias="chipsPerType", gt=0)
    layer_durations: Optional[LayerDurations] = Field(
        default=None, alias="layerDurations"
    )
    voting_duration: Optional[int] = Field(default=None, alias="votingDuration", gt=0)
    require_department: Optional[bool] = Field(
        default=None, alias="requireDepartment"
    )
    allow_revotes: Optional[bool] = Field(default=None, alias="allowRevotes")
    participant_base_url: Optional[str] = Field(
        default=None, alias="participantBaseUrl", max_length=500
    )

    def to_override(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SessionCreate(BaseModel):
    facilitator_id: str = Field(..., min_length=1, max_length=64)
    settings: Optional[SessionSettingsOverride] = None


class PhaseUpdate(BaseModel):
    phase: str = Field(..., min_length=1, max_length=32)


class OptionUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class SessionResponse(BaseModel):
    session_id: str
    facilitator_id: str
    phase: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    option_order: List[str] = Field(default_factory=list)
    options: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    solutions: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    metadata: Dict[str, int] = Field(default_factory=dict)
    join_url: Optional[str] = None
