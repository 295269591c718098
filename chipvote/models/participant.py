from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


def generate_participant_id() -> str:
    return uuid4().hex[:20]


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "device_id", name="uq_participants_session_device"
        ),
    )

    participant_id = Column(
        String(36), primary_key=True, index=True, default=generate_participant_id
    )
    session_id = Column(
        String(36),
        ForeignKey("voting_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(120), nullable=False)
    department = Column(String(255), nullable=False, default="")
    device_id = Column(String(128), nullable=False, index=True)
    player_avatar = Column(String(16), nullable=True)
    registered_at = Column(DateTime(timezone=True), server_default=func.now())

    layer1_completed = Column(Boolean, nullable=False, default=False)
    layer2_completed = Column(Boolean, nullable=False, default=False)
    layer1_submitted_at = Column(DateTime(timezone=True), nullable=True)
    layer2_submitted_at = Column(DateTime(timezone=True), nullable=True)
    # Routing winner from round one; selects the round-two group
    layer1_selection = Column(String(128), nullable=True)

    session = relationship("VotingSession", back_populates="participants")
