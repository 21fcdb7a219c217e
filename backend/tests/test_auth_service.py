"""
Tests for AuthService
"""
from datetime import timedelta

import pytest

from app.core.errors import ConflictError
from app.models.user import Session as UserSession
from app.services.auth_service import AuthService
from app.utils.datetime_utils import utc_now


class TestAuthService:
    """Account registration, login and sessions"""

    def test_register_user(self, db):
        """Passwords are hashed and emails lowercased"""
        user = AuthService(db).register_user("marina", "Marina@Example.com", "password123")

        assert user.id is not None
        assert user.email == "marina@example.com"
        assert user.password_hash != "password123"
        assert user.is_active

    def test_register_short_password(self, db):
        with pytest.raises(ValueError):
            AuthService(db).register_user("marina", "marina@example.com", "short")

    def test_register_duplicates(self, db):
        service = AuthService(db)
        service.register_user("marina", "marina@example.com", "password123")

        with pytest.raises(ConflictError):
            service.register_user("marina", "other@example.com", "password123")
        with pytest.raises(ConflictError):
            service.register_user("other", "MARINA@example.com", "password123")

    def test_authenticate_by_username_or_email(self, db):
        service = AuthService(db)
        user = service.register_user("marina", "marina@example.com", "password123")

        assert service.authenticate("marina", "password123").id == user.id
        assert service.authenticate("Marina@Example.com", "password123").id == user.id
        assert user.last_login is not None

    def test_authenticate_failures(self, db):
        service = AuthService(db)
        user = service.register_user("marina", "marina@example.com", "password123")

        assert service.authenticate("marina", "wrong-password") is None
        assert service.authenticate("nobody", "password123") is None

        user.is_active = False
        db.commit()
        assert service.authenticate("marina", "password123") is None

    def test_session_lifecycle(self, db):
        service = AuthService(db)
        user = service.register_user("marina", "marina@example.com", "password123")

        session = service.create_session(user.id)
        assert session.token
        assert service.validate_session(session.token).id == user.id
        assert service.validate_session("unknown-token") is None

        assert service.logout(session.token) is True
        assert service.logout(session.token) is False
        assert service.validate_session(session.token) is None

    def test_expired_session_is_deleted(self, db):
        service = AuthService(db)
        user = service.register_user("marina", "marina@example.com", "password123")
        session = service.create_session(user.id)
        session.expires_at = utc_now() - timedelta(minutes=1)
        db.commit()

        assert service.validate_session(session.token) is None
        assert db.query(UserSession).count() == 0

    def test_logout_all_and_cleanup(self, db):
        service = AuthService(db)
        user = service.register_user("marina", "marina@example.com", "password123")
        service.create_session(user.id)
        service.create_session(user.id)
        assert service.logout_all_user_sessions(user.id) == 2

        stale = service.create_session(user.id)
        service.create_session(user.id)
        stale.expires_at = utc_now() - timedelta(hours=1)
        db.commit()
        assert service.cleanup_expired_sessions() == 1
        assert db.query(UserSession).count() == 1
