from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chipvote.models.participant import Participant
from chipvote.models.results import SessionResults
from chipvote.models.session import VotingLayer, VotingSession
from chipvote.models.vote import Vote
from chipvote.services.catalog import OptionCatalog
from chipvote.services.errors import InvalidOptionError, NotFoundError
from chipvote.services.results_engine import build_session_results

logger = logging.getLogger(__name__)

_LAYERS = {layer.value for layer in VotingLayer}


class ResultsManager:
    """
    Loads a session's votes, writes the results document and serves reads.

    ``cache`` is any object exposing ``get``/``set``/``invalidate_session``
    (normally the shared ``ResultsCache``); pass None to always hit the store.
    """

    def __init__(self, db: Session, cache=None) -> None:
        self.db = db
        self.cache = cache

    def _require_session(self, session_id: str) -> VotingSession:
        session = self.db.get(VotingSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        return session

    def compute(self, session_id: str) -> Dict[str, Any]:
        session = self._require_session(session_id)
        catalog = OptionCatalog.from_session(session)
        votes = (
            self.db.query(Vote)
            .filter(Vote.session_id == session_id)
            .order_by(Vote.submitted_at.asc(), Vote.vote_id.asc())
            .all()
        )
        departments = {
            participant_id: department
            for participant_id, department in self.db.query(
                Participant.participant_id, Participant.department
            ).filter(Participant.session_id == session_id)
        }
        return build_session_results(
            catalog, votes, departments, session.participant_count or 0
        )

    def recompute(self, session_id: str) -> Dict[str, Any]:
        """Rebuild the results document and replace the stored copy."""
        document = self.compute(session_id)
        record = self.db.get(SessionResults, session_id)
        if record is None:
            try:
                with self.db.begin_nested():
                    record = SessionResults(session_id=session_id, payload=document)
                    self.db.add(record)
            except IntegrityError:
                # Another writer stored the first document; overwrite it
                logger.debug("Results row for session %s already exists", session_id)
                record = self.db.get(SessionResults, session_id)
        record.payload = document
        record.generated_at = datetime.now(UTC)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if self.cache is not None:
            self.cache.invalidate_session(session_id)
            self.cache.set(session_id, document)
        logger.info(
            "Recomputed results for session %s (%s round-one, %s round-two allocations)",
            session_id,
            document["summary"]["layer1Allocations"],
            document["summary"]["layer2Allocations"],
        )
        return document

    def _load_document(self, session_id: str) -> Dict[str, Any]:
        if self.cache is not None:
            cached = self.cache.get(session_id)
            if cached is not None:
                return cached
        record = self.db.get(SessionResults, session_id)
        if record is not None and record.payload:
            if self.cache is not None:
                self.cache.set(session_id, record.payload)
            return record.payload
        return self.recompute(session_id)

    @staticmethod
    def _select(
        document: Dict[str, Any], layer: Optional[str], group_id: Optional[str]
    ) -> Dict[str, Any]:
        if layer is None:
            return document
        if layer == VotingLayer.LAYER1.value:
            return document["layer1"]
        groups = document.get("layer2") or {}
        if group_id is None:
            return groups
        if group_id not in groups:
            raise NotFoundError(f"Group {group_id} not found.")
        return groups[group_id]

    def get_results(
        self,
        session_id: str,
        layer: Optional[str] = None,
        group_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        if layer is None and group_id is not None:
            layer = VotingLayer.LAYER2.value
        if layer is not None and layer not in _LAYERS:
            raise InvalidOptionError(f"Unknown results layer: {layer}.")

        if force_refresh:
            return self._select(self.recompute(session_id), layer, group_id)

        if self.cache is not None:
            cached = self.cache.get(session_id, layer, group_id)
            if cached is not None:
                logger.debug("Results cache hit for session %s", session_id)
                return cached

        view = self._select(self._load_document(session_id), layer, group_id)
        if self.cache is not None and layer is not None:
            self.cache.set(session_id, view, layer, group_id)
        return view
