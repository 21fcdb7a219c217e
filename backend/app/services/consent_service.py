"""
User consent service and the post-consent onboarding hand-off
"""
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.models.consent import UserConsent
from app.services.onboarding_session_service import (OWNER, PROSPECT,
                                                     OnboardingSessionService)
from app.utils.datetime_utils import to_iso, utc_now

logger = LoggingConfig.get_logger(__name__)

CONSENT_FLAGS = ("ai_processing", "profile_sharing", "marketing")

AFTER_CONSENT_REDIRECTS = {
    OWNER: "/welcome/owner?profile_completion=true",
    PROSPECT: "/welcome/crew?profile_completion=true",
}


def serialize_consents(consent: Optional[UserConsent]) -> Optional[Dict[str, Any]]:
    if consent is None:
        return None
    data = {"user_id": str(consent.user_id)}
    for name in CONSENT_FLAGS:
        data[f"{name}_consent"] = bool(getattr(consent, f"{name}_consent"))
        data[f"{name}_consent_at"] = to_iso(getattr(consent, f"{name}_consent_at"))
    data["terms_accepted_at"] = to_iso(consent.terms_accepted_at)
    data["privacy_policy_accepted_at"] = to_iso(consent.privacy_policy_accepted_at)
    data["consent_setup_completed_at"] = to_iso(consent.consent_setup_completed_at)
    return data


class ConsentService:
    """Service for reading and updating consent flags"""

    def __init__(self, db: Session):
        self.db = db

    def get_consents(self, user_id: UUID) -> Optional[UserConsent]:
        return self.db.query(UserConsent).filter(UserConsent.user_id == user_id).first()

    def has_accepted_required(self, user_id: UUID) -> bool:
        consent = self.get_consents(user_id)
        return bool(consent and consent.terms_accepted_at and consent.privacy_policy_accepted_at)

    def update_consents(
        self,
        user_id: UUID,
        ai_processing: Optional[bool] = None,
        profile_sharing: Optional[bool] = None,
        marketing: Optional[bool] = None,
        accept_privacy: bool = False,
        accept_terms: bool = False,
    ) -> UserConsent:
        """
        Upsert consent flags

        Each flag that is given (even if unchanged) gets a fresh timestamp.
        The consent setup counts as completed on the first update.

        Args:
            user_id: User giving or withdrawing consent
            ai_processing: Consent to AI processing of profile data
            profile_sharing: Consent to share the profile with skippers
            marketing: Consent to marketing email
            accept_privacy: Record acceptance of the privacy policy
            accept_terms: Record acceptance of the terms of service

        Returns:
            The saved UserConsent row
        """
        now = utc_now()
        consent = self.get_consents(user_id)
        if consent is None:
            consent = UserConsent(
                user_id=user_id,
                ai_processing_consent=False,
                profile_sharing_consent=False,
                marketing_consent=False,
            )
            self.db.add(consent)

        for name, value in (
            ("ai_processing", ai_processing),
            ("profile_sharing", profile_sharing),
            ("marketing", marketing),
        ):
            if value is not None:
                setattr(consent, f"{name}_consent", bool(value))
                setattr(consent, f"{name}_consent_at", now)
        if accept_privacy:
            consent.privacy_policy_accepted_at = now
        if accept_terms:
            consent.terms_accepted_at = now
        if consent.consent_setup_completed_at is None:
            consent.consent_setup_completed_at = now

        self.db.commit()
        self.db.refresh(consent)
        logger.info(
            f"Updated consents for user {user_id}",
            extra={
                "ai_processing": consent.ai_processing_consent,
                "profile_sharing": consent.profile_sharing_consent,
                "marketing": consent.marketing_consent,
            },
        )
        return consent

    def after_consent(self, user_id: UUID, ai_processing_consent: bool) -> Dict[str, Any]:
        """
        Decide where a user goes after the consent dialog

        A session waiting in consent_pending moves on to profile_pending; owner
        sessions win over prospect sessions. Refusing AI processing after having
        chatted ends the session instead.

        Returns:
            {"redirect", "role", "triggerProfileCompletion"} plus "sessionId"
            when a session was handed on
        """
        for flow in (OWNER, PROSPECT):
            service = OnboardingSessionService(self.db, flow)
            pending = [
                record for record in service.find_user_sessions(user_id)
                if record.onboarding_state == service.flow.states.CONSENT_PENDING.value
            ]
            if not pending:
                continue
            record = pending[0]

            if not ai_processing_consent and record.conversation:
                logger.info(
                    f"User {user_id} declined AI processing, ending {flow} session {record.session_id}"
                )
                service.delete_session(record.session_id)
                return {"redirect": "/", "role": None, "triggerProfileCompletion": False}

            service.update_onboarding_state(record.session_id, service.flow.states.PROFILE_PENDING)
            return {
                "redirect": AFTER_CONSENT_REDIRECTS[flow],
                "role": flow,
                "triggerProfileCompletion": bool(ai_processing_consent),
                "sessionId": record.session_id,
            }

        return {"redirect": "/", "role": None, "triggerProfileCompletion": False}
