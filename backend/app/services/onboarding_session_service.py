"""
Onboarding session service for the owner and prospect chat flows

A session is keyed by the value of a cookie handed to an anonymous visitor.
It stores the chat history, what the assistant has gathered so far, and the
visitor's progress through a linear onboarding state machine:

    owner:    signup_pending -> consent_pending -> profile_pending
              -> boat_pending -> journey_pending -> completed
    prospect: signup_pending -> consent_pending -> profile_pending -> completed
"""
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import NotFoundError, PermissionDeniedError
from app.core.logging_config import LoggingConfig
from app.core.metrics import onboarding_transitions_total
from app.models.onboarding_session import (OwnerOnboardingState,
                                           OwnerSession,
                                           ProspectOnboardingState,
                                           ProspectSession)
from app.models.user import User
from app.utils.datetime_utils import parse_iso, to_iso, utc_now

logger = LoggingConfig.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

OWNER = "owner"
PROSPECT = "prospect"


@dataclass(frozen=True)
class FlowConfig:
    name: str
    model: Type
    states: Type[Enum]
    cookie_name: str
    # States in which the flow still has onboarding work left
    pending_states: Tuple[str, ...]


FLOWS: Dict[str, FlowConfig] = {
    OWNER: FlowConfig(
        name=OWNER,
        model=OwnerSession,
        states=OwnerOnboardingState,
        cookie_name="owner_session_id",
        pending_states=tuple(s.value for s in OwnerOnboardingState if s != OwnerOnboardingState.COMPLETED),
    ),
    PROSPECT: FlowConfig(
        name=PROSPECT,
        model=ProspectSession,
        states=ProspectOnboardingState,
        cookie_name="prospect_session_id",
        pending_states=tuple(s.value for s in ProspectOnboardingState if s != ProspectOnboardingState.COMPLETED),
    ),
}


def get_flow(flow: str) -> FlowConfig:
    try:
        return FLOWS[flow]
    except KeyError:
        raise ValueError(f"Unknown onboarding flow '{flow}'")


def _state_value(state: Any) -> str:
    return state.value if isinstance(state, Enum) else str(state)


def can_transition(flow: str, from_state: Any, to_state: Any) -> bool:
    """
    Whether a session may move from one state to another

    Forward moves (including skipping ahead) and staying put are allowed.
    Going back is refused except a reset to signup_pending.
    """
    order = [s.value for s in get_flow(flow).states]
    from_value, to_value = _state_value(from_state), _state_value(to_state)
    if from_value not in order or to_value not in order:
        return False
    if to_value == order[0]:
        return True
    return order.index(to_value) >= order.index(from_value)


def extract_email_from_message(text: Optional[str]) -> Optional[str]:
    """First email address in free text, lowercased"""
    match = EMAIL_PATTERN.search(text or "")
    return match.group(0).lower() if match else None


def _timestamp(message: Dict[str, Any]) -> Optional[datetime]:
    value = message.get("timestamp")
    if not value or not isinstance(value, str):
        return None
    try:
        return parse_iso(value)
    except ValueError:
        return None


def _message_key(message: Dict[str, Any]) -> Tuple:
    if message.get("id"):
        return ("id", str(message["id"]))
    return ("content", message.get("role"), message.get("content"), message.get("timestamp"))


def merge_conversations(
    server: Optional[List[Dict[str, Any]]],
    client: Optional[List[Dict[str, Any]]],
) -> List[Dict[str, Any]]:
    """
    Merge the stored conversation with the one the client sent

    Messages are matched by id (or by role, content and timestamp when they
    have none); the client copy wins. The result is ordered by timestamp and
    messages without one stay right after the message that preceded them.
    """
    merged: Dict[Tuple, Dict[str, Any]] = {}
    for message in (server or []) + (client or []):
        if not isinstance(message, dict):
            continue
        merged[_message_key(message)] = message

    keyed = []
    last_seen: Optional[datetime] = None
    for position, message in enumerate(merged.values()):
        ts = _timestamp(message)
        if ts is not None:
            last_seen = ts
        keyed.append(((ts or last_seen or datetime.min), position, message))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [message for _, _, message in keyed]


class OnboardingSessionService:
    """Cookie-keyed onboarding sessions for one flow (owner or prospect)"""

    def __init__(self, db: Session, flow: str):
        self.db = db
        self.flow = get_flow(flow)
        self.model = self.flow.model
        self.session_days = get_settings().onboarding_session_days

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self, record) -> Dict[str, Any]:
        data = {
            "sessionId": record.session_id,
            "createdAt": to_iso(record.created_at),
            "lastActiveAt": to_iso(record.last_active_at),
            "conversation": record.conversation or [],
            "gatheredPreferences": record.gathered_preferences or {},
            "sessionEmail": record.email,
            "hasSessionEmail": bool(record.email),
            "profileCompletionTriggeredAt": to_iso(record.profile_completion_triggered_at),
            "onboardingState": record.onboarding_state,
            "userId": str(record.user_id) if record.user_id else None,
        }
        if self.flow.name == OWNER:
            data["skipperProfile"] = record.skipper_profile
            data["crewRequirements"] = record.crew_requirements
            data["journeyDetails"] = record.journey_details
        else:
            data["viewedLegs"] = record.viewed_legs or []
        return data

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _load(self, session_id: str):
        return self.db.query(self.model).filter(self.model.session_id == session_id).first()

    def get_record(self, session_id: Optional[str], current_user_id: Any = None):
        """
        Load a live session row

        Expired sessions are deleted and reported as missing.

        Raises:
            PermissionDeniedError: If the session belongs to another user
        """
        if not session_id:
            return None
        record = self._load(session_id)
        if record is None:
            return None
        if record.expires_at and record.expires_at < utc_now():
            logger.info(f"Deleting expired {self.flow.name} session {session_id}")
            self.db.delete(record)
            self.db.commit()
            return None
        if record.user_id and current_user_id and record.user_id != current_user_id:
            raise PermissionDeniedError("Session belongs to another user")
        return record

    def get_session(self, session_id: Optional[str], current_user_id: Any = None) -> Optional[Dict[str, Any]]:
        record = self.get_record(session_id, current_user_id)
        return self.serialize(record) if record else None

    def find_user_sessions(self, user_id: Any) -> List[Any]:
        """Live sessions linked to a user, newest activity first"""
        return (
            self.db.query(self.model)
            .filter(self.model.user_id == user_id, self.model.expires_at >= utc_now())
            .order_by(self.model.last_active_at.desc())
            .all()
        )

    def recover_by_email(self, email: Optional[str]) -> Optional[Dict[str, Any]]:
        """Most recently active live session for an email address"""
        if not email or not email.strip():
            return None
        record = (
            self.db.query(self.model)
            .filter(self.model.email == email.strip().lower(), self.model.expires_at >= utc_now())
            .order_by(self.model.last_active_at.desc())
            .first()
        )
        if record:
            logger.info(f"Recovered {self.flow.name} session {record.session_id} by email")
        return self.serialize(record) if record else None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _validate_state(self, state: Any) -> str:
        value = _state_value(state)
        if value not in {s.value for s in self.flow.states}:
            raise ValueError(f"Invalid {self.flow.name} onboarding state '{value}'")
        return value

    def _refresh_expiry(self, record):
        now = utc_now()
        record.last_active_at = now
        record.expires_at = now + timedelta(days=self.session_days)

    def save_session(
        self,
        cookie_session_id: Optional[str],
        payload: Dict[str, Any],
        current_user: Optional[User] = None,
    ) -> Dict[str, Any]:
        """
        Upsert a session from a client payload

        Args:
            cookie_session_id: Session id from the flow's cookie
            payload: camelCase session data sent by the client
            current_user: Authenticated caller, if any

        Returns:
            The saved session in wire form

        Raises:
            ValueError: If there is no session cookie or a state is invalid
            PermissionDeniedError: If payload.sessionId does not match the cookie,
                or the session belongs to another user
        """
        if not cookie_session_id:
            raise ValueError("No session cookie")
        payload_session_id = payload.get("sessionId")
        if payload_session_id and payload_session_id != cookie_session_id:
            raise PermissionDeniedError("Session ID does not match the session cookie")

        current_user_id = current_user.id if current_user else None
        record = self.get_record(cookie_session_id, current_user_id)
        if record is None:
            record = self.model(
                session_id=cookie_session_id,
                conversation=[],
                gathered_preferences={},
                onboarding_state=self.flow.states.SIGNUP_PENDING.value,
                created_at=utc_now(),
            )
            if self.flow.name == PROSPECT:
                record.viewed_legs = []
            self.db.add(record)
            logger.info(f"Creating {self.flow.name} session {cookie_session_id}")

        preferences = dict(payload.get("gatheredPreferences") or {})
        preference_email = preferences.pop("email", None)
        if "gatheredPreferences" in payload:
            record.gathered_preferences = preferences

        if not record.email and isinstance(preference_email, str) and preference_email.strip():
            record.email = preference_email.strip().lower()
        if current_user is not None:
            if record.user_id is None:
                record.user_id = current_user.id
            if not record.email and current_user.email:
                record.email = current_user.email.lower()

        if "conversation" in payload:
            record.conversation = merge_conversations(record.conversation, payload.get("conversation"))

        new_state = payload.get("onboardingState")
        if new_state:
            new_state = self._validate_state(new_state)
            if can_transition(self.flow.name, record.onboarding_state, new_state):
                self._set_state(record, new_state)
            else:
                logger.warning(
                    f"Ignoring backwards {self.flow.name} transition "
                    f"{record.onboarding_state} -> {new_state} for session {cookie_session_id}"
                )

        if self.flow.name == OWNER:
            for key, column in (
                ("skipperProfile", "skipper_profile"),
                ("crewRequirements", "crew_requirements"),
                ("journeyDetails", "journey_details"),
            ):
                if key in payload:
                    setattr(record, column, payload[key])
        elif "viewedLegs" in payload:
            record.viewed_legs = list(dict.fromkeys(payload.get("viewedLegs") or []))

        self._refresh_expiry(record)
        self.db.commit()
        self.db.refresh(record)
        return self.serialize(record)

    def delete_session(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        record = self._load(session_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        logger.info(f"Deleted {self.flow.name} session {session_id}")
        return True

    def _set_state(self, record, state: str):
        if record.onboarding_state != state:
            logger.info(
                f"{self.flow.name} session {record.session_id}: {record.onboarding_state} -> {state}"
            )
            onboarding_transitions_total.labels(flow=self.flow.name, to_state=state).inc()
        record.onboarding_state = state

    def update_onboarding_state(self, session_id: str, new_state: Any, force: bool = False) -> Dict[str, Any]:
        """
        Move a session to another onboarding state

        Raises:
            ValueError: If the state is not part of the flow or the move is not allowed
            NotFoundError: If the session does not exist
        """
        value = self._validate_state(new_state)
        record = self.get_record(session_id)
        if record is None:
            raise NotFoundError("Session not found")
        if not force and not can_transition(self.flow.name, record.onboarding_state, value):
            raise ValueError(f"Cannot move from {record.onboarding_state} to {value}")
        self._set_state(record, value)
        self._refresh_expiry(record)
        self.db.commit()
        self.db.refresh(record)
        return self.serialize(record)

    def link_to_user(
        self,
        session_id: Optional[str],
        user: User,
        email: Optional[str] = None,
        post_signup_onboarding: bool = False,
    ) -> Dict[str, Any]:
        """
        Attach anonymous sessions to a freshly signed-up or logged-in user

        The current session gets the user id only if it has none and the email
        if it has none. Other unlinked sessions with the same email are linked
        too. With post_signup_onboarding the current session moves to
        consent_pending.

        Returns:
            {"linked": bool, "session": dict or None, "linkedSessions": int}
        """
        email = (email or user.email or "").strip().lower() or None
        record = self.get_record(session_id) if session_id else None
        linked = False

        if record is not None:
            if record.user_id is None:
                record.user_id = user.id
                linked = True
            if not record.email and email:
                record.email = email
            if post_signup_onboarding and record.user_id == user.id:
                self._set_state(record, self.flow.states.CONSENT_PENDING.value)
            self._refresh_expiry(record)

        others = 0
        if email:
            query = self.db.query(self.model).filter(
                self.model.email == email,
                self.model.user_id.is_(None),
            )
            if record is not None:
                query = query.filter(self.model.session_id != record.session_id)
            for other in query.all():
                other.user_id = user.id
                others += 1

        self.db.commit()
        if record is not None:
            self.db.refresh(record)
        logger.info(
            f"Linked {self.flow.name} sessions to user {user.id}",
            extra={"session_id": session_id, "current_linked": linked, "other_sessions": others},
        )
        return {
            "linked": linked,
            "session": self.serialize(record) if record else None,
            "linkedSessions": others + (1 if linked else 0),
        }

    def mark_profile_completion_triggered(
        self, session_id: str, user_id: Any, profile_created: bool = False
    ) -> Optional[Dict[str, Any]]:
        """
        Record that profile completion ran for this session

        A created profile moves an owner session to boat_pending and a
        prospect session to completed.
        """
        record = self.get_record(session_id)
        if record is None:
            logger.warning(f"Cannot mark profile completion: {self.flow.name} session {session_id} not found")
            return None
        record.profile_completion_triggered_at = utc_now()
        if record.user_id is None:
            record.user_id = user_id
        if profile_created:
            target = (
                OwnerOnboardingState.BOAT_PENDING.value
                if self.flow.name == OWNER
                else ProspectOnboardingState.COMPLETED.value
            )
            if can_transition(self.flow.name, record.onboarding_state, target):
                self._set_state(record, target)
        self._refresh_expiry(record)
        self.db.commit()
        self.db.refresh(record)
        return self.serialize(record)
