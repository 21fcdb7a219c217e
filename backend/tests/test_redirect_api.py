"""
Tests for the post-login redirect endpoint
"""
from app.services.onboarding_session_service import PROSPECT, OnboardingSessionService


def test_redirect_by_role(client, owner, crew, auth_headers):
    owner_redirect = client.get("/api/redirect", headers=auth_headers(owner)).json()
    assert owner_redirect["path"] == "/owner/journeys"
    assert owner_redirect["reason"] == "role_owner"

    crew_redirect = client.get("/api/redirect", headers=auth_headers(crew)).json()
    assert crew_redirect["url"] == "/crew"
    assert crew_redirect["queryParams"] == {}


def test_redirect_new_user(client, make_user, auth_headers):
    data = client.get("/api/redirect", headers=auth_headers(make_user())).json()
    assert data == {
        "path": "/crew",
        "url": "/crew",
        "reason": "new_user_no_profile",
        "priority": 6,
        "queryParams": {},
    }


def test_redirect_from_owner_chat(client, crew, auth_headers):
    data = client.get("/api/redirect", headers=auth_headers(crew), params={"source": "owner"}).json()

    assert data["reason"] == "source_owner_chat"
    assert data["url"] == "/welcome/owner?profile_completion=true"


def test_pending_session_wins(client, db, owner, auth_headers):
    OnboardingSessionService(db, PROSPECT).save_session(
        "prospect-cookie", {"onboardingState": "profile_pending"}, owner
    )

    data = client.get("/api/redirect", headers=auth_headers(owner), params={"source": "owner"}).json()

    assert data["reason"] == "pending_prospect_onboarding"
    assert data["priority"] == 1


def test_redirect_requires_auth(client):
    assert client.get("/api/redirect").status_code == 401
