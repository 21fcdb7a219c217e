"""
In-app notification and email preference models
"""
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, Column, DateTime, ForeignKey, String,
                        Text, Uuid)

from app.core.database import Base
from app.utils.datetime_utils import to_iso, utc_now


class NotificationType(str, Enum):
    """Notification type"""
    REGISTRATION_APPROVED = "registration_approved"
    REGISTRATION_DENIED = "registration_denied"
    NEW_REGISTRATION = "new_registration"
    JOURNEY_UPDATED = "journey_updated"
    LEG_UPDATED = "leg_updated"
    PROFILE_REMINDER = "profile_reminder"
    AI_AUTO_APPROVED = "ai_auto_approved"
    AI_REVIEW_NEEDED = "ai_review_needed"


class Notification(Base):
    """In-app notification shown in the user's notification center"""
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    link = Column(String(500), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    notification_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "read": self.read,
            "metadata": self.notification_metadata or {},
            "created_at": to_iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, read={self.read})>"


class EmailPreferences(Base):
    """Per-user opt-outs for notification emails"""
    __tablename__ = "email_preferences"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    registration_updates = Column(Boolean, nullable=False, default=True)
    journey_updates = Column(Boolean, nullable=False, default=True)
    profile_reminders = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<EmailPreferences(user_id={self.user_id})>"
