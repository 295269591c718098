import logging
import random
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.participant import Participant, generate_participant_id
from ..models.session import SessionPhase, VotingSession
from ..services.errors import NotFoundError, PhaseClosedError, ProfileRequiredError
from .session_manager import session_settings

logger = logging.getLogger(__name__)

PLAYER_AVATARS = ("♦️", "♥️", "♣️", "♠️", "🎲", "💎")


class ParticipantManager:
    """Registers participants and reads them back."""

    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    def _require_session(self, session_id: str) -> VotingSession:
        session = self.db.get(VotingSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        return session

    def _find_by_device(self, session_id: str, device_id: str) -> Optional[Participant]:
        return (
            self.db.query(Participant)
            .filter(
                Participant.session_id == session_id,
                Participant.device_id == device_id,
            )
            .first()
        )

    def register_participant(
        self,
        session_id: str,
        name: str,
        department: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> Participant:
        """
        Register a participant, or return the one already bound to this device.

        Re-registration from the same device never creates a second record or
        bumps the participant count, even when two requests race.
        """
        session = self._require_session(session_id)
        if session.phase == SessionPhase.CLOSED.value:
            raise PhaseClosedError("This session has ended.")

        device_key = (device_id or "").strip()
        if device_key:
            existing = self._find_by_device(session_id, device_key)
            if existing is not None:
                return existing
        else:
            device_key = uuid4().hex

        display_name = (name or "").strip()
        if not display_name:
            raise ProfileRequiredError("A display name is required to join.")
        department_value = (department or "").strip()
        if not department_value and session_settings(session)["requireDepartment"]:
            raise ProfileRequiredError()

        participant = Participant(
            participant_id=generate_participant_id(),
            session_id=session_id,
            name=display_name,
            department=department_value,
            device_id=device_key,
            player_avatar=self.rng.choice(PLAYER_AVATARS),
            layer1_completed=False,
            layer2_completed=False,
        )
        try:
            self.db.add(participant)
            self.db.flush()
            self.db.query(VotingSession).filter(
                VotingSession.session_id == session_id
            ).update(
                {VotingSession.participant_count: VotingSession.participant_count + 1},
                synchronize_session=False,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._find_by_device(session_id, device_key)
            if existing is None:
                raise
            logger.info(
                "Device %s already registered in session %s", device_key, session_id
            )
            return existing
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(participant)
        self.db.refresh(session)
        logger.info(
            "Registered participant %s in session %s",
            participant.participant_id,
            session_id,
        )
        return participant

    def get_participant(self, session_id: str, participant_id: str) -> Participant:
        participant = self.db.get(Participant, participant_id)
        if participant is None or participant.session_id != session_id:
            raise NotFoundError(f"Participant {participant_id} not found.")
        return participant

    def list_participants(self, session_id: str) -> List[Participant]:
        self._require_session(session_id)
        return (
            self.db.query(Participant)
            .filter(Participant.session_id == session_id)
            .order_by(Participant.registered_at.asc(), Participant.participant_id.asc())
            .all()
        )

    @staticmethod
    def serialize(participant: Participant) -> Dict[str, Any]:
        return {
            "participant_id": participant.participant_id,
            "session_id": participant.session_id,
            "name": participant.name,
            "department": participant.department or None,
            "device_id": participant.device_id,
            "player_avatar": participant.player_avatar,
            "registered_at": (
                participant.registered_at.isoformat()
                if participant.registered_at
                else None
            ),
            "layer1_completed": bool(participant.layer1_completed),
            "layer2_completed": bool(participant.layer2_completed),
            "layer1_submitted_at": (
                participant.layer1_submitted_at.isoformat()
                if participant.layer1_submitted_at
                else None
            ),
            "layer2_submitted_at": (
                participant.layer2_submitted_at.isoformat()
                if participant.layer2_submitted_at
                else None
            ),
            "layer1_selection": participant.layer1_selection,
        }


def get_participant_manager(db: Session = Depends(get_db)) -> ParticipantManager:
    """Dependency provider for ParticipantManager."""
    return ParticipantManager(db=db)
