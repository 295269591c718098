from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Dict, FrozenSet, Optional, Union

from sqlalchemy.orm import Session

from chipvote.models.session import SessionPhase, VotingLayer, VotingSession
from chipvote.services.errors import (
    IllegalTransitionError,
    NotFoundError,
    PhaseClosedError,
)
from chipvote.services.results_cache import results_cache
from chipvote.services.results_manager import ResultsManager

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.WAITING: frozenset({SessionPhase.BETTING_LAYER1}),
    SessionPhase.BETTING_LAYER1: frozenset({SessionPhase.RESULTS_LAYER1}),
    SessionPhase.RESULTS_LAYER1: frozenset({SessionPhase.ROUTING}),
    SessionPhase.ROUTING: frozenset({SessionPhase.BETTING_LAYER2}),
    SessionPhase.BETTING_LAYER2: frozenset({SessionPhase.RESULTS_LAYER2}),
    SessionPhase.RESULTS_LAYER2: frozenset({SessionPhase.INSIGHTS}),
    SessionPhase.INSIGHTS: frozenset({SessionPhase.CLOSED}),
    SessionPhase.CLOSED: frozenset(),
    # Single-round sessions from before the two-layer flow
    SessionPhase.BETTING: frozenset({SessionPhase.RESULTS}),
    SessionPhase.RESULTS: frozenset({SessionPhase.CLOSED}),
}

RESULT_PHASES = frozenset(
    {
        SessionPhase.RESULTS_LAYER1,
        SessionPhase.RESULTS_LAYER2,
        SessionPhase.INSIGHTS,
        SessionPhase.RESULTS,
    }
)

VOTING_PHASES: Dict[VotingLayer, FrozenSet[SessionPhase]] = {
    VotingLayer.LAYER1: frozenset({SessionPhase.BETTING_LAYER1, SessionPhase.BETTING}),
    VotingLayer.LAYER2: frozenset({SessionPhase.BETTING_LAYER2}),
}


def parse_phase(value: Union[str, SessionPhase]) -> SessionPhase:
    try:
        return SessionPhase(value)
    except ValueError as exc:
        raise IllegalTransitionError(f"Unknown phase: {value!r}.") from exc


def allowed_transitions(phase: Union[str, SessionPhase]) -> FrozenSet[SessionPhase]:
    return TRANSITIONS.get(parse_phase(phase), frozenset())


def ensure_voting_open(session: VotingSession, layer: VotingLayer) -> None:
    """Raise PhaseClosedError unless ``layer`` accepts votes in the session's phase."""
    try:
        phase = SessionPhase(session.phase)
    except ValueError:
        phase = None
    if phase not in VOTING_PHASES[layer]:
        raise PhaseClosedError(
            f"Voting for {layer.value} is not open (phase: {session.phase})."
        )


class PhaseController:
    def __init__(
        self, db: Session, results_manager: Optional[ResultsManager] = None
    ) -> None:
        self.db = db
        self.results_manager = results_manager or ResultsManager(db, results_cache)

    def transition(
        self, session_id: str, new_phase: Union[str, SessionPhase]
    ) -> VotingSession:
        target = parse_phase(new_phase)
        session = self.db.get(VotingSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")

        current_value = session.phase
        if current_value == target.value:
            return session

        current = parse_phase(current_value)
        if target not in TRANSITIONS.get(current, frozenset()):
            raise IllegalTransitionError(
                f"Cannot move session from {current.value} to {target.value}."
            )

        # Compare-and-set so two facilitators cannot both advance one origin
        updated = (
            self.db.query(VotingSession)
            .filter(
                VotingSession.session_id == session_id,
                VotingSession.phase == current_value,
            )
            .update(
                {
                    VotingSession.phase: target.value,
                    VotingSession.updated_at: datetime.now(UTC),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            raise IllegalTransitionError(
                f"Session {session_id} left phase {current_value} before this change."
            )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(session)
        logger.info(
            "Session %s phase %s -> %s", session_id, current_value, target.value
        )

        if target in RESULT_PHASES:
            try:
                self.results_manager.recompute(session_id)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Results recompute failed after session %s entered %s",
                    session_id,
                    target.value,
                )
        return session
