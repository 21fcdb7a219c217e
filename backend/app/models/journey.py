"""
Journey, leg, waypoint and journey requirement (registration question) models
"""
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import (JSON, Boolean, Column, Date, DateTime, Float,
                        ForeignKey, Integer, String, Text, UniqueConstraint,
                        Uuid)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import to_iso, utc_now


class JourneyState(str, Enum):
    """Journey lifecycle state"""
    IN_PLANNING = "In planning"
    PUBLISHED = "Published"
    ARCHIVED = "Archived"


class CostModel(str, Enum):
    """How sailing costs are shared"""
    SHARED_CONTRIBUTION = "Shared contribution"
    OWNER_COVERS_ALL = "Owner covers all costs"
    CREW_PAYS_FEE = "Crew pays a fee"
    DELIVERY_PAID_CREW = "Delivery/paid crew"
    NOT_DEFINED = "Not defined"


class QuestionType(str, Enum):
    """Journey requirement question type"""
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"
    YES_NO = "yes_no"
    RATING = "rating"


class Journey(Base):
    """Sailing journey on a boat, split into legs"""
    __tablename__ = "journeys"

    id = Column(Uuid, primary_key=True, default=uuid4)
    boat_id = Column(Uuid, ForeignKey("boats.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    risk_level = Column(JSON, nullable=False, default=list)
    skills = Column(JSON, nullable=False, default=list)
    min_experience_level = Column(Integer, nullable=True)
    cost_model = Column(String(50), nullable=False, default=CostModel.NOT_DEFINED.value)
    cost_info = Column(Text, nullable=True)
    state = Column(String(20), nullable=False, default=JourneyState.IN_PLANNING.value, index=True)
    is_ai_generated = Column(Boolean, nullable=False, default=False)
    ai_prompt = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    # AI auto-approval of registrations
    auto_approval_enabled = Column(Boolean, nullable=False, default=False)
    auto_approval_threshold = Column(Integer, nullable=False, default=80)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    boat = relationship("Boat", back_populates="journeys")
    legs = relationship("Leg", back_populates="journey", cascade="all, delete-orphan")
    requirements = relationship(
        "JourneyRequirement",
        back_populates="journey",
        cascade="all, delete-orphan",
        order_by="JourneyRequirement.order",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "boat_id": str(self.boat_id),
            "name": self.name,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "description": self.description,
            "risk_level": self.risk_level or [],
            "skills": self.skills or [],
            "min_experience_level": self.min_experience_level,
            "cost_model": self.cost_model,
            "cost_info": self.cost_info,
            "state": self.state,
            "is_ai_generated": self.is_ai_generated,
            "ai_prompt": self.ai_prompt,
            "images": self.images or [],
            "auto_approval_enabled": self.auto_approval_enabled,
            "auto_approval_threshold": self.auto_approval_threshold,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Journey(id={self.id}, name={self.name}, state={self.state})>"


class Leg(Base):
    """Single sailing segment of a journey"""
    __tablename__ = "legs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    journey_id = Column(Uuid, ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    crew_needed = Column(Integer, nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    risk_level = Column(String(50), nullable=True)  # single RiskLevel
    min_experience_level = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    journey = relationship("Journey", back_populates="legs")
    waypoints = relationship(
        "Waypoint",
        back_populates="leg",
        cascade="all, delete-orphan",
        order_by="Waypoint.index",
    )
    registrations = relationship("Registration", back_populates="leg", cascade="all, delete-orphan")

    @property
    def start_waypoint(self):
        return self.waypoints[0] if self.waypoints else None

    @property
    def end_waypoint(self):
        return self.waypoints[-1] if self.waypoints else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "journey_id": str(self.journey_id),
            "name": self.name,
            "description": self.description,
            "start_date": to_iso(self.start_date),
            "end_date": to_iso(self.end_date),
            "crew_needed": self.crew_needed,
            "skills": self.skills or [],
            "risk_level": self.risk_level,
            "min_experience_level": self.min_experience_level,
            "waypoints": [waypoint.to_dict() for waypoint in self.waypoints],
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Leg(id={self.id}, name={self.name}, journey_id={self.journey_id})>"


class Waypoint(Base):
    """Ordered point on a leg (index 0 = departure, last = arrival)"""
    __tablename__ = "waypoints"
    __table_args__ = (
        UniqueConstraint("leg_id", "index", name="waypoints_leg_index_unique"),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    leg_id = Column(Uuid, ForeignKey("legs.id", ondelete="CASCADE"), nullable=False, index=True)
    index = Column(Integer, nullable=False)
    name = Column(String(255), nullable=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)

    leg = relationship("Leg", back_populates="waypoints")

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "name": self.name, "lat": self.lat, "lng": self.lng}

    def __repr__(self):
        return f"<Waypoint(leg_id={self.leg_id}, index={self.index}, name={self.name})>"


class JourneyRequirement(Base):
    """Question a crew member must answer when registering for a journey's legs"""
    __tablename__ = "journey_requirements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    journey_id = Column(Uuid, ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False, default=QuestionType.TEXT.value)
    options = Column(JSON, nullable=False, default=list)
    is_required = Column(Boolean, nullable=False, default=True)
    weight = Column(Integer, nullable=False, default=5)  # 1-10
    order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    journey = relationship("Journey", back_populates="requirements")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "journey_id": str(self.journey_id),
            "question_text": self.question_text,
            "question_type": self.question_type,
            "options": self.options or [],
            "is_required": self.is_required,
            "weight": self.weight,
            "order": self.order,
        }

    def __repr__(self):
        return f"<JourneyRequirement(id={self.id}, journey_id={self.journey_id}, order={self.order})>"
