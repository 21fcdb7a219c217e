"""
Anonymous onboarding session models for the owner and prospect chat flows
"""
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid

from app.core.database import Base
from app.utils.datetime_utils import utc_now


class OwnerOnboardingState(str, Enum):
    """Owner onboarding progress, in order"""
    SIGNUP_PENDING = "signup_pending"
    CONSENT_PENDING = "consent_pending"
    PROFILE_PENDING = "profile_pending"
    BOAT_PENDING = "boat_pending"
    JOURNEY_PENDING = "journey_pending"
    COMPLETED = "completed"


class ProspectOnboardingState(str, Enum):
    """Prospect (crew) onboarding progress, in order"""
    SIGNUP_PENDING = "signup_pending"
    CONSENT_PENDING = "consent_pending"
    PROFILE_PENDING = "profile_pending"
    COMPLETED = "completed"


class OnboardingSessionMixin:
    """Columns shared by both onboarding session tables"""

    session_id = Column(String(100), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    conversation = Column(JSON, nullable=False, default=list)
    gathered_preferences = Column(JSON, nullable=False, default=dict)
    onboarding_state = Column(String(30), nullable=False, default="signup_pending")
    profile_completion_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    last_active_at = Column(DateTime, default=utc_now, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class OwnerSession(OnboardingSessionMixin, Base):
    """Server-side state of a skipper's onboarding chat"""
    __tablename__ = "owner_sessions"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    skipper_profile = Column(JSON, nullable=True)
    crew_requirements = Column(JSON, nullable=True)
    journey_details = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<OwnerSession(session_id={self.session_id}, state={self.onboarding_state})>"


class ProspectSession(OnboardingSessionMixin, Base):
    """Server-side state of a crew prospect's onboarding chat"""
    __tablename__ = "prospect_sessions"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    viewed_legs = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<ProspectSession(session_id={self.session_id}, state={self.onboarding_state})>"
