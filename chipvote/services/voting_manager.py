from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.orm import Session

from chipvote.data.session_manager import session_settings
from chipvote.models.participant import Participant
from chipvote.models.session import VotingLayer, VotingSession
from chipvote.models.vote import Vote, generate_vote_id
from chipvote.services.allocation import determine_routing_winner, validate_allocations
from chipvote.services.catalog import OptionCatalog
from chipvote.services.errors import (
    AlreadySubmittedError,
    InvalidAllocationError,
    NotFoundError,
    NotRoutedError,
)
from chipvote.services.phase_controller import ensure_voting_open

logger = logging.getLogger(__name__)

_COMPLETED_FLAGS = {
    VotingLayer.LAYER1: Participant.layer1_completed,
    VotingLayer.LAYER2: Participant.layer2_completed,
}
_SUBMITTED_AT = {
    VotingLayer.LAYER1: Participant.layer1_submitted_at,
    VotingLayer.LAYER2: Participant.layer2_submitted_at,
}
_LAYER_COUNTERS = {
    VotingLayer.LAYER1: VotingSession.layer1_allocations,
    VotingLayer.LAYER2: VotingSession.layer2_allocations,
}


def chips_per_type_for(session: VotingSession) -> int:
    """Chip budget per type; older records fall back to the configured default."""
    return session_settings(session)["chipsPerType"]


class VotingManager:
    def __init__(self, db: Session, rng: Optional[Callable[[], float]] = None) -> None:
        self.db = db
        self.rng = rng

    @staticmethod
    def _parse_layer(layer: Union[str, VotingLayer]) -> VotingLayer:
        try:
            return VotingLayer(layer)
        except ValueError as exc:
            raise InvalidAllocationError(f"Unknown voting layer: {layer!r}.") from exc

    def _load(self, session_id: str, participant_id: str):
        session = self.db.get(VotingSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        participant = self.db.get(Participant, participant_id)
        if participant is None or participant.session_id != session_id:
            raise NotFoundError(f"Participant {participant_id} not found.")
        return session, participant

    def submit_vote(
        self,
        session_id: str,
        participant_id: str,
        layer: Union[str, VotingLayer],
        allocations: Any,
        group_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        session, participant = self._load(session_id, participant_id)
        voting_layer = self._parse_layer(layer)
        ensure_voting_open(session, voting_layer)

        completed_column = _COMPLETED_FLAGS[voting_layer]
        if getattr(participant, completed_column.key):
            raise AlreadySubmittedError(
                f"Allocations already submitted for {voting_layer.value}."
            )

        if voting_layer == VotingLayer.LAYER2:
            if not group_id or group_id != participant.layer1_selection:
                raise NotRoutedError(
                    f"Participant {participant_id} is not routed to group {group_id}."
                )
        else:
            group_id = None

        catalog = OptionCatalog.from_session(session)
        parsed = validate_allocations(
            allocations,
            catalog.legal_option_ids(voting_layer, group_id),
            chips_per_type_for(session),
        )
        stored_allocations = {
            option_id: allocation.to_dict() for option_id, allocation in parsed.items()
        }
        total_chips = sum(allocation.total for allocation in parsed.values())
        routing_winner = None
        if voting_layer == VotingLayer.LAYER1:
            routing_winner = determine_routing_winner(stored_allocations, self.rng)

        now = datetime.now(UTC)
        participant_values = {completed_column: True, _SUBMITTED_AT[voting_layer]: now}
        if routing_winner is not None:
            participant_values[Participant.layer1_selection] = routing_winner

        vote = Vote(
            vote_id=generate_vote_id(),
            session_id=session_id,
            participant_id=participant_id,
            layer=voting_layer.value,
            group_id=group_id,
            allocations=stored_allocations,
            total_chips=total_chips,
            submitted_at=now,
        )
        counter = _LAYER_COUNTERS[voting_layer]
        try:
            claimed = (
                self.db.query(Participant)
                .filter(
                    Participant.participant_id == participant_id,
                    completed_column.is_(False),
                )
                .update(participant_values, synchronize_session=False)
            )
            if claimed != 1:
                self.db.rollback()
                raise AlreadySubmittedError(
                    f"Allocations already submitted for {voting_layer.value}."
                )
            self.db.add(vote)
            self.db.query(VotingSession).filter(
                VotingSession.session_id == session_id
            ).update(
                {
                    counter: counter + 1,
                    VotingSession.total_allocations: VotingSession.total_allocations
                    + 1,
                },
                synchronize_session=False,
            )
            self.db.commit()
        except AlreadySubmittedError:
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(participant)
        self.db.refresh(session)
        logger.info(
            "Vote %s recorded for participant %s in session %s (%s, %s chips)",
            vote.vote_id,
            participant_id,
            session_id,
            voting_layer.value,
            total_chips,
        )
        return {
            "vote_id": vote.vote_id,
            "layer": voting_layer.value,
            "group_id": group_id,
            "total_chips": total_chips,
            "routing_winner": routing_winner,
        }
