"""
Registration (crew application to a leg) and registration answer models
"""
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, Column, DateTime, Float, ForeignKey,
                        Integer, String, Text, UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import to_iso, utc_now


class RegistrationStatus(str, Enum):
    """Approval workflow status"""
    PENDING = "Pending approval"
    APPROVED = "Approved"
    NOT_APPROVED = "Not approved"
    CANCELLED = "Cancelled"


class Registration(Base):
    """Crew member's application to join a leg"""
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("leg_id", "user_id", name="registrations_leg_user_unique"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    leg_id = Column(Uuid, ForeignKey("legs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default=RegistrationStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    match_percentage = Column(Float, nullable=True)

    ai_match_score = Column(Integer, nullable=True)
    ai_match_reasoning = Column(Text, nullable=True)
    auto_approved = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    leg = relationship("Leg", back_populates="registrations")
    answers = relationship("RegistrationAnswer", back_populates="registration", cascade="all, delete-orphan")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "leg_id": str(self.leg_id),
            "user_id": str(self.user_id),
            "status": self.status,
            "notes": self.notes,
            "match_percentage": self.match_percentage,
            "ai_match_score": self.ai_match_score,
            "ai_match_reasoning": self.ai_match_reasoning,
            "auto_approved": self.auto_approved,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Registration(id={self.id}, leg_id={self.leg_id}, user_id={self.user_id}, status={self.status})>"


class RegistrationAnswer(Base):
    """Answer to a journey requirement question"""
    __tablename__ = "registration_answers"
    __table_args__ = (
        UniqueConstraint("registration_id", "requirement_id", name="registration_answers_unique"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    registration_id = Column(Uuid, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True)
    requirement_id = Column(Uuid, ForeignKey("journey_requirements.id", ondelete="CASCADE"), nullable=False)
    answer_text = Column(Text, nullable=True)
    answer_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    registration = relationship("Registration", back_populates="answers")
    requirement = relationship("JourneyRequirement")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "requirement_id": str(self.requirement_id),
            "answer_text": self.answer_text,
            "answer_json": self.answer_json,
        }

    def __repr__(self):
        return f"<RegistrationAnswer(registration_id={self.registration_id}, requirement_id={self.requirement_id})>"
