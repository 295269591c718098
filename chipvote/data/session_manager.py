import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import Depends
from sqlalchemy.orm import Session

from ..config.loader import get_participant_base_url, get_session_defaults, sanitize_base_url
from ..database import get_db
from ..models.session import SessionPhase, VotingSession, generate_session_id
from ..services.catalog import OptionCatalog, default_catalog_record
from ..services.errors import InvalidOptionError, NotFoundError

logger = logging.getLogger(__name__)


def _positive_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        candidate = int(value)
    except (TypeError, ValueError):
        return fallback
    return candidate if candidate > 0 else fallback


def build_session_settings(override: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge a facilitator's overrides onto the configured session defaults."""
    defaults = get_session_defaults()
    override = override or {}
    durations = override.get("layerDurations") or {}
    layer1_seconds = _positive_int(durations.get("layer1"), defaults["layer1_seconds"])
    layer2_seconds = _positive_int(durations.get("layer2"), defaults["layer2_seconds"])

    settings = {
        "chipsPerType": _positive_int(
            override.get("chipsPerType"), defaults["chips_per_type"]
        ),
        "layerDurations": {"layer1": layer1_seconds, "layer2": layer2_seconds},
        "votingDuration": _positive_int(override.get("votingDuration"), layer1_seconds),
        "requireDepartment": bool(
            override.get("requireDepartment", defaults["require_department"])
        ),
        "allowRevotes": bool(override.get("allowRevotes", defaults["allow_revotes"])),
    }
    base_url = sanitize_base_url(override.get("participantBaseUrl"))
    if base_url:
        settings["participantBaseUrl"] = base_url
    return settings


def session_settings(session: VotingSession) -> Dict[str, Any]:
    """Settings for a stored session, filling gaps left by older records."""
    stored = dict(session.settings or {})
    merged = build_session_settings(stored)
    if "layerDurations" not in stored and stored.get("votingDuration"):
        legacy = _positive_int(stored.get("votingDuration"), merged["votingDuration"])
        merged["layerDurations"] = {"layer1": legacy, "layer2": legacy}
    return merged


class SessionManager:
    """Creates, loads and edits voting sessions."""

    def __init__(self, db: Session):
        self.db = db

    def create_session(
        self,
        facilitator_id: str,
        settings_override: Optional[Dict[str, Any]] = None,
    ) -> VotingSession:
        order, options, solutions = default_catalog_record()
        session = VotingSession(
            session_id=generate_session_id(),
            facilitator_id=facilitator_id,
            phase=SessionPhase.WAITING.value,
            option_order=order,
            options=options,
            solutions=solutions,
            settings=build_session_settings(settings_override),
            participant_count=0,
            layer1_allocations=0,
            layer2_allocations=0,
            total_allocations=0,
        )
        self.db.add(session)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(session)
        logger.info(
            "Created session %s for facilitator %s", session.session_id, facilitator_id
        )
        return session

    def get_session(self, session_id: str) -> Optional[VotingSession]:
        return self.db.get(VotingSession, session_id)

    def require_session(self, session_id: str) -> VotingSession:
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found.")
        return session

    def update_option(
        self,
        session_id: str,
        option_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> VotingSession:
        """Edit the title or description of a focus area or solution."""
        session = self.require_session(session_id)
        catalog = OptionCatalog.from_session(session)
        if catalog.find(option_id) is None:
            raise InvalidOptionError(f"Option {option_id} is not part of this session.")

        if not session.options:
            # Legacy session running on the default deck; persist the deck first
            order, options, solutions = default_catalog_record()
            session.option_order = order
            session.options = options
            session.solutions = solutions

        changes = {}
        if title is not None and title.strip():
            changes["title"] = title.strip()
        if description is not None:
            changes["description"] = description.strip()
        if not changes:
            return session

        if option_id in (session.options or {}):
            options = dict(session.options)
            options[option_id] = {**options[option_id], **changes}
            session.options = options
        else:
            solutions = {
                group_id: [
                    {**entry, **changes} if entry.get("id") == option_id else dict(entry)
                    for entry in entries
                ]
                for group_id, entries in (session.solutions or {}).items()
            }
            session.solutions = solutions

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(session)
        logger.info("Updated option %s in session %s", option_id, session_id)
        return session

    def join_url(self, session: VotingSession) -> Optional[str]:
        base_url = sanitize_base_url(
            (session.settings or {}).get("participantBaseUrl")
        ) or get_participant_base_url()
        if not base_url:
            return None
        return f"{base_url}/join?session={quote(session.session_id)}"

    def serialize_session(self, session: VotingSession) -> Dict[str, Any]:
        catalog = OptionCatalog.from_session(session)
        layer1_allocations = session.layer1_allocations
        if layer1_allocations is None:
            layer1_allocations = session.total_allocations or 0
        return {
            "session_id": session.session_id,
            "facilitator_id": session.facilitator_id,
            "phase": session.phase,
            "created_at": session.created_at.isoformat() if session.created_at else None,
            "updated_at": session.updated_at.isoformat() if session.updated_at else None,
            "settings": session_settings(session),
            "option_order": list(catalog.focus_order),
            "options": {
                option.option_id: {
                    "title": option.title,
                    "description": option.description,
                }
                for option in catalog.focus_list()
            },
            "solutions": {
                group_id: [option.to_dict() for option in group]
                for group_id, group in catalog.solutions.items()
            },
            "metadata": {
                "participantCount": session.participant_count or 0,
                "layer1Allocations": layer1_allocations,
                "layer2Allocations": session.layer2_allocations or 0,
                "totalAllocations": session.total_allocations or 0,
            },
            "join_url": self.join_url(session),
        }


def get_session_manager(db: Session = Depends(get_db)) -> SessionManager:
    """Dependency provider for SessionManager."""
    return SessionManager(db=db)
