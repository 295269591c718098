from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class SessionPhase(str, Enum):
    WAITING = "waiting"
    BETTING_LAYER1 = "betting_layer1"
    RESULTS_LAYER1 = "results_layer1"
    ROUTING = "routing"
    BETTING_LAYER2 = "betting_layer2"
    RESULTS_LAYER2 = "results_layer2"
    INSIGHTS = "insights"
    CLOSED = "closed"
    # Sessions created before the two-layer flow
    BETTING = "betting"
    RESULTS = "results"


class VotingLayer(str, Enum):
    LAYER1 = "layer1"
    LAYER2 = "layer2"


def generate_session_id() -> str:
    return uuid4().hex[:20]


class VotingSession(Base):
    __tablename__ = "voting_sessions"

    session_id = Column(
        String(36), primary_key=True, index=True, default=generate_session_id
    )
    facilitator_id = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    phase = Column(String(32), nullable=False, default=SessionPhase.WAITING.value)

    # Focus areas (round one) and their solutions (round two)
    option_order = Column(JSON, nullable=False, default=list)
    options = Column(JSON, nullable=False, default=dict)
    solutions = Column(JSON, nullable=False, default=dict)
    settings = Column(JSON, nullable=False, default=dict)

    # Display-only counters; results never read these
    participant_count = Column(Integer, nullable=False, default=0)
    layer1_allocations = Column(Integer, nullable=False, default=0)
    layer2_allocations = Column(Integer, nullable=False, default=0)
    total_allocations = Column(Integer, nullable=False, default=0)

    participants = relationship(
        "Participant",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
