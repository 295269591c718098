# Import models to make them accessible via chipvote.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .session import SessionPhase, VotingLayer, VotingSession
from .participant import Participant
from .vote import Vote
from .results import SessionResults

__all__ = [
    "SessionPhase",
    "VotingLayer",
    "VotingSession",
    "Participant",
    "Vote",
    "SessionResults",
]
