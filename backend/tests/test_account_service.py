"""
Tests for account deletion
"""
from uuid import uuid4

import pytest

from app.core.errors import NotFoundError
from app.models.boat import Boat
from app.models.consent import UserConsent
from app.models.journey import Journey, Leg, Waypoint
from app.models.notification import EmailPreferences, Notification, NotificationType
from app.models.onboarding_session import OwnerSession
from app.models.profile import Profile
from app.models.registration import Registration, RegistrationAnswer
from app.models.user import Session as UserSession
from app.models.user import User
from app.services.account_service import AccountService
from app.services.auth_service import AuthService
from app.services.consent_service import ConsentService
from app.services.email_service import EmailService
from app.services.journey_service import JourneyService
from app.services.notification_service import NotificationService
from app.services.onboarding_session_service import (OWNER,
                                                     OnboardingSessionService)
from app.services.registration_service import RegistrationService


def _count(db, model, **filters):
    return db.query(model).filter_by(**filters).count()


class TestDeleteAccount:
    """AccountService.delete_account"""

    @pytest.mark.asyncio
    async def test_crew_data_removed(self, db, owner, crew, make_journey, make_leg):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey)
        required = JourneyService(db).create_requirement(owner.id, journey.id, "Can you swim?", question_type="yes_no")
        await RegistrationService(db).register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(required.id), "answer_text": "Yes"},
        ])
        NotificationService(db).create_notification(
            crew.id, NotificationType.PROFILE_REMINDER, "Complete Your Profile"
        )
        ConsentService(db).update_consents(crew.id, ai_processing=True)
        EmailService(db).update_email_preferences(crew.id, journey_updates=False)
        OnboardingSessionService(db, OWNER).save_session("crew-cookie", {}, current_user=crew)
        AuthService(db).create_session(crew.id)
        crew_id = crew.id

        deleted = AccountService(db).delete_account(crew_id)

        assert deleted["registrations"] == 1
        assert deleted["notifications"] == 1
        assert deleted["profile"] == 1
        assert _count(db, User, id=crew_id) == 0
        assert _count(db, Profile, id=crew_id) == 0
        assert _count(db, Registration, user_id=crew_id) == 0
        assert _count(db, RegistrationAnswer) == 0
        assert _count(db, Notification, user_id=crew_id) == 0
        assert _count(db, UserConsent, user_id=crew_id) == 0
        assert _count(db, EmailPreferences, user_id=crew_id) == 0
        assert _count(db, OwnerSession, user_id=crew_id) == 0
        assert _count(db, UserSession, user_id=crew_id) == 0
        # The skipper's side stays
        assert _count(db, Leg, id=leg.id) == 1
        assert _count(db, User, id=owner.id) == 1

    @pytest.mark.asyncio
    async def test_owner_boats_cascade(self, db, owner, crew, make_leg):
        leg = make_leg(owner)
        await RegistrationService(db).register_for_leg(crew.id, leg.id)
        owner_id, crew_id = owner.id, crew.id

        deleted = AccountService(db).delete_account(owner_id)

        assert deleted["boats"] == 1
        assert _count(db, Boat, owner_id=owner_id) == 0
        assert _count(db, Journey) == 0
        assert _count(db, Leg) == 0
        assert _count(db, Waypoint) == 0
        assert _count(db, Registration) == 0
        # The crew member's account is untouched
        assert _count(db, User, id=crew_id) == 1
        assert _count(db, Profile, id=crew_id) == 1

    def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            AccountService(db).delete_account(uuid4())
