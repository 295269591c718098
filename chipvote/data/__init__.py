"""
Data access layer providing managers for sessions and participants.
Each manager works against the SQLAlchemy session it is given.
"""

from .session_manager import SessionManager
from .participant_manager import ParticipantManager

__all__ = ["SessionManager", "ParticipantManager"]
