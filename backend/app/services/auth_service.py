"""
Authentication service for user accounts and login sessions
"""
import secrets
from datetime import timedelta
from typing import Optional
from uuid import UUID

import bcrypt
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ConflictError
from app.core.logging_config import LoggingConfig
from app.models.user import Session as UserSession
from app.models.user import User
from app.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)


class AuthService:
    """Service for user authentication and session management"""

    def __init__(self, db: Session):
        self.db = db
        self.session_duration_hours = get_settings().auth_session_hours

    def register_user(self, username: str, email: str, password: str) -> User:
        """
        Register a new account

        Args:
            username: Login name
            email: Email address (stored lowercased)
            password: Plain text password, at least 8 characters

        Returns:
            Created User object

        Raises:
            ValueError: If the password is too short
            ConflictError: If username or email already exists
        """
        if not password or len(password) < 8:
            raise ValueError("Password must be at least 8 characters")

        email = email.strip().lower()
        if self.db.query(User).filter(User.username == username).first():
            raise ConflictError(f"Username '{username}' already exists")
        if self.db.query(User).filter(User.email == email).first():
            raise ConflictError(f"Email '{email}' already exists")

        user = User(
            username=username,
            email=email,
            password_hash=self._hash_password(password),
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Registered new user: {username}")
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate by username or email and password

        Returns:
            User object if authentication succeeded, None otherwise
        """
        user = self.db.query(User).filter(
            (User.username == username) | (User.email == username.strip().lower())
        ).first()

        if not user:
            logger.warning(f"Authentication failed: user '{username}' not found")
            return None
        if not user.is_active:
            logger.warning(f"Authentication failed: user '{username}' is inactive")
            return None
        if not self._verify_password(password, user.password_hash):
            logger.warning(f"Authentication failed: invalid password for user '{username}'")
            return None

        user.last_login = utc_now()
        self.db.commit()

        logger.info(f"User '{username}' authenticated successfully")
        return user

    def create_session(self, user_id: UUID, duration_hours: Optional[int] = None) -> UserSession:
        """Create a login session with a fresh opaque token"""
        duration = duration_hours or self.session_duration_hours
        session = UserSession(
            user_id=user_id,
            token=secrets.token_urlsafe(32),
            expires_at=utc_now() + timedelta(hours=duration),
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info(f"Created session for user {user_id}")
        return session

    def validate_session(self, token: str) -> Optional[User]:
        """
        Resolve a session token to its user

        Expired sessions are deleted. Returns None for unknown or expired
        tokens and for inactive users.
        """
        session = self.db.query(UserSession).filter(UserSession.token == token).first()
        if not session:
            return None

        if session.expires_at < utc_now():
            logger.info(f"Session {session.id} expired")
            self.db.delete(session)
            self.db.commit()
            return None

        session.last_activity = utc_now()
        self.db.commit()

        user = self.db.query(User).filter(User.id == session.user_id).first()
        if not user or not user.is_active:
            return None
        return user

    def logout(self, token: str) -> bool:
        session = self.db.query(UserSession).filter(UserSession.token == token).first()
        if not session:
            return False
        self.db.delete(session)
        self.db.commit()
        logger.info(f"Session {session.id} invalidated")
        return True

    def logout_all_user_sessions(self, user_id: UUID) -> int:
        count = self.db.query(UserSession).filter(UserSession.user_id == user_id).delete()
        self.db.commit()
        logger.info(f"Invalidated {count} sessions for user {user_id}")
        return count

    def cleanup_expired_sessions(self) -> int:
        count = self.db.query(UserSession).filter(UserSession.expires_at < utc_now()).delete()
        self.db.commit()
        if count > 0:
            logger.info(f"Cleaned up {count} expired sessions")
        return count

    def _hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    def _verify_password(self, password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
