"""
Tests for notification endpoints
"""
from uuid import uuid4

import pytest

from app.models.notification import NotificationType
from app.services.notification_service import NotificationService


@pytest.fixture
def notifications(db, crew):
    service = NotificationService(db)
    return [
        service.create_notification(crew.id, NotificationType.PROFILE_REMINDER, "Complete Your Profile"),
        service.create_notification(crew.id, NotificationType.JOURNEY_UPDATED, "Journey Updated", "Dates moved"),
    ]


def test_list_and_counts(client, crew, owner, notifications, auth_headers):
    headers = auth_headers(crew)

    page = client.get("/api/notifications", headers=headers).json()
    assert page["total"] == 2
    assert page["unread_count"] == 2
    assert {n["type"] for n in page["notifications"]} == {"profile_reminder", "journey_updated"}

    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"unread_count": 2}
    assert client.get("/api/notifications", headers=auth_headers(owner)).json()["total"] == 0


def test_mark_read(client, crew, notifications, auth_headers):
    headers = auth_headers(crew)

    response = client.patch(f"/api/notifications/{notifications[0].id}/read", headers=headers)
    assert response.status_code == 200
    assert response.json()["read"] is True

    unread = client.get("/api/notifications", headers=headers, params={"unread_only": True}).json()
    assert [n["id"] for n in unread["notifications"]] == [str(notifications[1].id)]

    assert client.post("/api/notifications/read-all", headers=headers).json() == {"updated": 1}
    assert client.get("/api/notifications/unread-count", headers=headers).json()["unread_count"] == 0


def test_delete(client, crew, owner, notifications, auth_headers):
    url = f"/api/notifications/{notifications[0].id}"

    assert client.delete(url, headers=auth_headers(owner)).status_code == 404
    assert client.delete(url, headers=auth_headers(crew)).status_code == 204
    assert client.patch(f"{url}/read", headers=auth_headers(crew)).status_code == 404
    assert client.delete(f"/api/notifications/{uuid4()}", headers=auth_headers(crew)).status_code == 404


def test_requires_auth(client):
    assert client.get("/api/notifications").status_code == 401


def test_email_preferences(client, crew, auth_headers):
    headers = auth_headers(crew)

    defaults = client.get("/api/notifications/email-preferences", headers=headers).json()
    assert defaults == {
        "user_id": str(crew.id),
        "registration_updates": True,
        "journey_updates": True,
        "profile_reminders": True,
    }

    updated = client.put("/api/notifications/email-preferences", headers=headers, json={
        "journey_updates": False,
    }).json()
    assert updated["journey_updates"] is False
    assert updated["registration_updates"] is True
    assert client.get("/api/notifications/email-preferences", headers=headers).json() == updated
