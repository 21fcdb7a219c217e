"""
Tests for the cookie-keyed onboarding session endpoints
"""
import pytest

BASE = "/api/owner/session"


@pytest.fixture
def owner_cookie(client):
    client.cookies.set("owner_session_id", "owner-cookie-1")
    return "owner-cookie-1"


def test_no_cookie(client):
    assert client.get(f"{BASE}/data").status_code == 404
    assert client.post(f"{BASE}/data", json={}).status_code == 400
    assert client.patch(f"{BASE}/data", json={"onboarding_state": "completed"}).status_code == 404


def test_save_and_read(client, owner_cookie):
    response = client.post(f"{BASE}/data", json={
        "gatheredPreferences": {"email": "Sam@Example.com", "boatType": "sloop"},
        "conversation": [{"id": "m1", "role": "user", "content": "I have a 40ft sloop"}],
        "skipperProfile": "Coastal skipper",
    })

    assert response.status_code == 200
    assert "owner_session_id" in response.headers["set-cookie"]
    session = response.json()["session"]
    assert session["sessionId"] == owner_cookie
    assert session["sessionEmail"] == "sam@example.com"
    assert session["gatheredPreferences"] == {"boatType": "sloop"}
    assert session["onboardingState"] == "signup_pending"
    assert session["skipperProfile"] == "Coastal skipper"

    stored = client.get(f"{BASE}/data").json()["session"]
    assert [m["id"] for m in stored["conversation"]] == ["m1"]


def test_session_id_must_match_cookie(client, owner_cookie):
    response = client.post(f"{BASE}/data", json={"sessionId": "someone-else"})
    assert response.status_code == 403


def test_state_changes(client, owner_cookie):
    client.post(f"{BASE}/data", json={})

    moved = client.patch(f"{BASE}/data", json={"onboarding_state": "profile_pending"})
    assert moved.json()["session"]["onboardingState"] == "profile_pending"

    assert client.patch(f"{BASE}/data", json={"onboarding_state": "consent_pending"}).status_code == 400
    assert client.patch(f"{BASE}/data", json={"onboarding_state": "sailing"}).status_code == 400

    # Backward moves sent with the data are ignored rather than rejected
    saved = client.post(f"{BASE}/data", json={"onboardingState": "consent_pending"}).json()["session"]
    assert saved["onboardingState"] == "profile_pending"


def test_link_after_signup(client, owner_cookie, make_user, auth_headers):
    client.post(f"{BASE}/data", json={})
    user = make_user("skipper")

    response = client.post(f"{BASE}/link", headers=auth_headers(user), json={"postSignupOnboarding": True})

    assert response.status_code == 200
    data = response.json()
    assert data["linked"] is True
    assert data["linkedSessions"] == 1
    assert data["session"]["userId"] == str(user.id)
    assert data["session"]["onboardingState"] == "consent_pending"
    assert client.post(f"{BASE}/link").status_code == 401


def test_recover_by_email(client, owner_cookie):
    client.post(f"{BASE}/data", json={"gatheredPreferences": {"email": "sam@example.com"}})
    client.cookies.clear()

    response = client.post(f"{BASE}/recover", json={"email": "SAM@example.com "})

    assert response.json()["session"]["sessionId"] == owner_cookie
    assert "owner_session_id=owner-cookie-1" in response.headers["set-cookie"]
    assert client.post(f"{BASE}/recover", json={"email": "nobody@example.com"}).json() == {"session": None}


def test_delete(client, owner_cookie):
    client.post(f"{BASE}/data", json={})

    assert client.delete(f"{BASE}/data").json() == {"deleted": True}
    client.cookies.set("owner_session_id", owner_cookie)
    assert client.get(f"{BASE}/data").json() == {"session": None}


def test_prospect_flow_uses_its_own_cookie(client, owner_cookie):
    client.post(f"{BASE}/data", json={})

    assert client.get("/api/prospect/session/data").status_code == 404
    client.cookies.set("prospect_session_id", "prospect-cookie-1")
    saved = client.post("/api/prospect/session/data", json={"viewedLegs": ["a", "b", "a"]}).json()["session"]
    assert saved["viewedLegs"] == ["a", "b"]
    assert "skipperProfile" not in saved
