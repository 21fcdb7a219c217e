"""
Tests for onboarding sessions
"""
from datetime import timedelta

import pytest

from app.core.errors import NotFoundError, PermissionDeniedError
from app.models.onboarding_session import OwnerSession
from app.services.onboarding_session_service import (
    OWNER, PROSPECT, OnboardingSessionService, can_transition,
    extract_email_from_message, get_flow, merge_conversations)
from app.utils.datetime_utils import utc_now


class TestStateMachine:
    """can_transition and flow lookup"""

    def test_forward_and_stay(self):
        assert can_transition(OWNER, "signup_pending", "consent_pending")
        assert can_transition(OWNER, "profile_pending", "completed")
        assert can_transition(PROSPECT, "profile_pending", "profile_pending")

    def test_backward_refused_except_reset(self):
        assert not can_transition(OWNER, "boat_pending", "profile_pending")
        assert can_transition(OWNER, "completed", "signup_pending")

    def test_unknown_states(self):
        assert not can_transition(PROSPECT, "profile_pending", "boat_pending")
        assert not can_transition(OWNER, "sailing", "completed")

    def test_unknown_flow(self):
        with pytest.raises(ValueError):
            get_flow("pirate")

    def test_cookie_names(self):
        assert get_flow(OWNER).cookie_name == "owner_session_id"
        assert get_flow(PROSPECT).cookie_name == "prospect_session_id"


class TestHelpers:
    """Conversation merge and email extraction"""

    def test_merge_client_wins_and_sorts(self):
        server = [
            {"id": "m1", "role": "user", "content": "Hi", "timestamp": "2027-01-01T10:00:00Z"},
            {"id": "m2", "role": "assistant", "content": "Hello", "timestamp": "2027-01-01T10:00:05Z"},
        ]
        client = [
            {"id": "m2", "role": "assistant", "content": "Hello there", "timestamp": "2027-01-01T10:00:05Z"},
            {"id": "m0", "role": "system", "content": "Earlier", "timestamp": "2027-01-01T09:59:00Z"},
        ]

        merged = merge_conversations(server, client)

        assert [m["id"] for m in merged] == ["m0", "m1", "m2"]
        assert merged[2]["content"] == "Hello there"

    def test_merge_without_ids(self):
        message = {"role": "user", "content": "Hi", "timestamp": "2027-01-01T10:00:00Z"}
        merged = merge_conversations([message], [dict(message), "garbage"])
        assert merged == [message]
        assert merge_conversations(None, None) == []

    def test_extract_email(self):
        assert extract_email_from_message("Reach me at Sam.Skipper@Example.COM please") == "sam.skipper@example.com"
        assert extract_email_from_message("no address") is None
        assert extract_email_from_message(None) is None


class TestOnboardingSessionService:
    """Session persistence, state changes and linking"""

    def test_save_creates_session(self, db):
        service = OnboardingSessionService(db, OWNER)

        session = service.save_session("cookie-1", {
            "conversation": [{"id": "m1", "role": "user", "content": "Hi"}],
            "gatheredPreferences": {"boatName": "Sea Breeze", "email": " Sam@Example.com "},
            "skipperProfile": {"name": "Sam"},
        })

        assert session["sessionId"] == "cookie-1"
        assert session["onboardingState"] == "signup_pending"
        assert session["gatheredPreferences"] == {"boatName": "Sea Breeze"}
        assert session["sessionEmail"] == "sam@example.com"
        assert session["hasSessionEmail"] is True
        assert session["skipperProfile"] == {"name": "Sam"}
        assert session["userId"] is None
        assert "viewedLegs" not in session

    def test_save_requires_matching_cookie(self, db):
        service = OnboardingSessionService(db, PROSPECT)
        with pytest.raises(ValueError):
            service.save_session(None, {})
        with pytest.raises(PermissionDeniedError):
            service.save_session("cookie-1", {"sessionId": "cookie-2"})

    def test_save_ignores_backward_state(self, db):
        service = OnboardingSessionService(db, PROSPECT)
        service.save_session("cookie-1", {"onboardingState": "profile_pending"})
        session = service.save_session("cookie-1", {"onboardingState": "consent_pending"})
        assert session["onboardingState"] == "profile_pending"

        with pytest.raises(ValueError):
            service.save_session("cookie-1", {"onboardingState": "boat_pending"})

    def test_prospect_viewed_legs_deduplicated(self, db):
        service = OnboardingSessionService(db, PROSPECT)
        session = service.save_session("cookie-1", {"viewedLegs": ["a", "b", "a"]})
        assert session["viewedLegs"] == ["a", "b"]
        assert "skipperProfile" not in session

    def test_save_links_authenticated_user(self, db, make_user):
        user = make_user("marina")
        other = make_user("other")
        service = OnboardingSessionService(db, OWNER)

        session = service.save_session("cookie-1", {}, current_user=user)
        assert session["userId"] == str(user.id)
        assert session["sessionEmail"] == "marina@example.com"

        with pytest.raises(PermissionDeniedError):
            service.save_session("cookie-1", {}, current_user=other)

    def test_expired_session_is_gone(self, db):
        service = OnboardingSessionService(db, OWNER)
        service.save_session("cookie-1", {})
        record = db.query(OwnerSession).one()
        record.expires_at = utc_now() - timedelta(minutes=1)
        db.commit()

        assert service.get_session("cookie-1") is None
        assert db.query(OwnerSession).count() == 0

    def test_update_onboarding_state(self, db):
        service = OnboardingSessionService(db, OWNER)
        service.save_session("cookie-1", {})

        assert service.update_onboarding_state("cookie-1", "boat_pending")["onboardingState"] == "boat_pending"
        with pytest.raises(ValueError):
            service.update_onboarding_state("cookie-1", "profile_pending")
        with pytest.raises(ValueError):
            service.update_onboarding_state("cookie-1", "dancing")
        with pytest.raises(NotFoundError):
            service.update_onboarding_state("missing", "completed")
        forced = service.update_onboarding_state("cookie-1", "profile_pending", force=True)
        assert forced["onboardingState"] == "profile_pending"

    def test_link_to_user(self, db, make_user):
        user = make_user("marina")
        service = OnboardingSessionService(db, OWNER)
        service.save_session("cookie-1", {})
        service.save_session("cookie-2", {"gatheredPreferences": {"email": "marina@example.com"}})

        result = service.link_to_user("cookie-1", user, post_signup_onboarding=True)

        assert result["linked"] is True
        assert result["linkedSessions"] == 2
        assert result["session"]["onboardingState"] == "consent_pending"
        assert result["session"]["sessionEmail"] == "marina@example.com"
        assert {r.session_id for r in service.find_user_sessions(user.id)} == {"cookie-1", "cookie-2"}

    def test_link_keeps_existing_owner(self, db, make_user):
        first = make_user("first")
        second = make_user("second")
        service = OnboardingSessionService(db, PROSPECT)
        service.save_session("cookie-1", {}, current_user=first)

        result = service.link_to_user("cookie-1", second, post_signup_onboarding=True)

        assert result["linked"] is False
        assert result["session"]["userId"] == str(first.id)
        assert result["session"]["onboardingState"] == "signup_pending"

    def test_recover_by_email(self, db):
        service = OnboardingSessionService(db, PROSPECT)
        service.save_session("cookie-1", {"gatheredPreferences": {"email": "alex@example.com"}})

        assert service.recover_by_email("ALEX@example.com ")["sessionId"] == "cookie-1"
        assert service.recover_by_email("nobody@example.com") is None
        assert service.recover_by_email("") is None

    def test_mark_profile_completion_triggered(self, db, make_user):
        user = make_user("marina")
        owner_service = OnboardingSessionService(db, OWNER)
        prospect_service = OnboardingSessionService(db, PROSPECT)
        owner_service.save_session("owner-cookie", {"onboardingState": "profile_pending"})
        prospect_service.save_session("prospect-cookie", {"onboardingState": "profile_pending"})

        owner_session = owner_service.mark_profile_completion_triggered("owner-cookie", user.id, profile_created=True)
        prospect_session = prospect_service.mark_profile_completion_triggered(
            "prospect-cookie", user.id, profile_created=True
        )

        assert owner_session["onboardingState"] == "boat_pending"
        assert owner_session["profileCompletionTriggeredAt"] is not None
        assert owner_session["userId"] == str(user.id)
        assert prospect_session["onboardingState"] == "completed"
        assert owner_service.mark_profile_completion_triggered("missing", user.id) is None

    def test_delete_session(self, db):
        service = OnboardingSessionService(db, OWNER)
        service.save_session("cookie-1", {})
        assert service.delete_session("cookie-1") is True
        assert service.delete_session("cookie-1") is False
        assert service.delete_session(None) is False
