from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, func

from ..database import Base


def generate_vote_id() -> str:
    return str(uuid4())


class Vote(Base):
    __tablename__ = "votes"

    vote_id = Column(String(36), primary_key=True, default=generate_vote_id)
    session_id = Column(
        String(36),
        ForeignKey("voting_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    participant_id = Column(
        String(36),
        ForeignKey("participants.participant_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    layer = Column(String(8), nullable=False, index=True)
    group_id = Column(String(128), nullable=True, index=True)
    allocations = Column(JSON, nullable=False)
    total_chips = Column(Integer, nullable=False)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
