"""
User consent model (AI processing, profile sharing, marketing)
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Uuid

from app.core.database import Base
from app.utils.datetime_utils import utc_now


class UserConsent(Base):
    """GDPR-style consent flags with the time each one was last changed"""
    __tablename__ = "user_consents"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    terms_accepted_at = Column(DateTime, nullable=True)
    privacy_policy_accepted_at = Column(DateTime, nullable=True)

    ai_processing_consent = Column(Boolean, nullable=False, default=False)
    ai_processing_consent_at = Column(DateTime, nullable=True)

    profile_sharing_consent = Column(Boolean, nullable=False, default=False)
    profile_sharing_consent_at = Column(DateTime, nullable=True)

    marketing_consent = Column(Boolean, nullable=False, default=False)
    marketing_consent_at = Column(DateTime, nullable=True)

    consent_setup_completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<UserConsent(user_id={self.user_id}, ai_processing={self.ai_processing_consent})>"
