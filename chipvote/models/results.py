from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func

from ..database import Base


class SessionResults(Base):
    __tablename__ = "session_results"

    session_id = Column(
        String(36),
        ForeignKey("voting_sessions.session_id", ondelete="CASCADE"),
        primary_key=True,
    )
    payload = Column(JSON, nullable=False)
    generated_at = Column(DateTime(timezone=True), server_default=func.now())
