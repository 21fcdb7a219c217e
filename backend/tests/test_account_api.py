"""
Tests for the account deletion endpoint
"""
from app.models.user import User

URL = "/api/user/delete-account"


def test_requires_exact_confirmation(client, crew, auth_headers):
    headers = auth_headers(crew)

    response = client.request("DELETE", URL, headers=headers, json={"confirmation": "delete my account"})

    assert response.status_code == 400
    assert client.get("/api/auth/me", headers=headers).status_code == 200


def test_delete_account(client, db, crew, auth_headers):
    headers = auth_headers(crew)
    crew_id = crew.id

    response = client.request("DELETE", URL, headers=headers, json={"confirmation": "DELETE MY ACCOUNT"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["deleted"]["profile"] == 1
    assert db.query(User).filter(User.id == crew_id).count() == 0
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_requires_auth(client):
    assert client.request("DELETE", URL, json={"confirmation": "DELETE MY ACCOUNT"}).status_code == 401
