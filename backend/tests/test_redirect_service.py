"""
Tests for post-login redirects
"""
from uuid import uuid4

from app.services.onboarding_session_service import (OWNER, PROSPECT,
                                                     OnboardingSessionService)
from app.services.redirect_service import (DEFAULT_RULES,
                                           EXISTING_CONVERSATION_RULES,
                                           RedirectContext, RedirectService,
                                           build_redirect_context)


def _context(**fields):
    return RedirectContext(user_id=uuid4(), **fields)


class TestDetermineRedirect:
    """Rule order and results"""

    def test_pending_onboarding_wins(self):
        result = RedirectService().determine_redirect(
            _context(pending_owner_session=True, from_prospect=True, roles=["crew"])
        )
        assert result.path == "/welcome/owner"
        assert result.reason == "pending_owner_onboarding"
        assert result.priority == 1
        assert result.url == "/welcome/owner"

    def test_profile_completion_adds_query(self):
        result = RedirectService().determine_redirect(_context(prospect_profile_completion_triggered=True))
        assert result.url == "/welcome/crew?profile_completion=true"
        assert result.to_dict()["queryParams"] == {"profile_completion": "true"}

    def test_source_chat(self):
        result = RedirectService().determine_redirect(_context(from_owner=True, roles=["crew"]))
        assert result.reason == "source_owner_chat"
        assert result.priority == 4

    def test_roles(self):
        service = RedirectService()
        assert service.determine_redirect(_context(roles=["owner", "crew"])).path == "/owner/journeys"
        assert service.determine_redirect(_context(roles=["crew"])).reason == "role_crew"

    def test_new_user_and_fallback(self):
        service = RedirectService()
        assert service.determine_redirect(_context(is_new_user=True)).reason == "new_user_no_profile"

        fallback = service.determine_redirect(_context())
        assert fallback.path == "/crew"
        assert fallback.reason == "default_fallback"
        assert fallback.priority == 999

    def test_existing_conversation_rules_are_opt_in(self):
        context = _context(existing_prospect_conversation=True, roles=["owner"])
        assert RedirectService().determine_redirect(context).reason == "role_owner"

        service = RedirectService(DEFAULT_RULES + EXISTING_CONVERSATION_RULES)
        assert service.determine_redirect(context).reason == "existing_prospect_conversation"


class TestBuildRedirectContext:
    """Context gathered from the database"""

    def test_user_without_profile(self, db, make_user):
        user = make_user()
        context = build_redirect_context(db, user.id, source="prospect")

        assert context.is_new_user is True
        assert context.roles == []
        assert context.from_prospect is True
        assert context.from_owner is False

    def test_pending_sessions(self, db, owner):
        OnboardingSessionService(db, OWNER).save_session(
            "owner-cookie", {"conversation": [{"id": "m1", "role": "user", "content": "Hi"}]}, current_user=owner
        )
        prospect = OnboardingSessionService(db, PROSPECT)
        prospect.save_session("prospect-cookie", {}, current_user=owner)
        prospect.update_onboarding_state("prospect-cookie", "completed")

        context = build_redirect_context(db, owner.id)

        assert context.roles == ["owner"]
        assert context.username == "skipper"
        assert context.is_new_user is False
        assert context.pending_owner_session is True
        assert context.existing_owner_conversation is True
        assert context.pending_prospect_session is False
        assert RedirectService().determine_redirect(context).path == "/welcome/owner"

    def test_overrides(self, db, owner):
        context = build_redirect_context(db, owner.id, is_new_user=True, roles=[])
        assert RedirectService().determine_redirect(context).reason == "new_user_no_profile"
