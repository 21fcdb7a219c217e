"""
Sailor profile model and the shared sailing enumerations
"""
from enum import Enum
from typing import Any, Dict

from sqlalchemy import (JSON, Column, Date, DateTime, ForeignKey, Integer, String,
                        Text, Uuid)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import to_iso, utc_now


class UserRole(str, Enum):
    """Marketplace role stored in Profile.roles"""
    OWNER = "owner"
    CREW = "crew"


class RiskLevel(str, Enum):
    """Sailing comfort zone"""
    COASTAL = "Coastal sailing"
    OFFSHORE = "Offshore sailing"
    EXTREME = "Extreme sailing"


class ExperienceLevel(int, Enum):
    """Sailing experience ladder"""
    BEGINNER = 1
    COMPETENT_CREW = 2
    COASTAL_SKIPPER = 3
    OFFSHORE_SKIPPER = 4

    @property
    def display_name(self) -> str:
        return EXPERIENCE_LEVEL_NAMES[self.value]


EXPERIENCE_LEVEL_NAMES = {
    1: "Beginner",
    2: "Competent Crew",
    3: "Coastal Skipper",
    4: "Offshore Skipper",
}


class Profile(Base):
    """Public sailor profile, one per user (shares the user's primary key)"""
    __tablename__ = "profiles"

    id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    user_description = Column(Text, nullable=True)
    certifications = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    language = Column(String(5), nullable=False, default="en")
    profile_image_url = Column(Text, nullable=True)

    sailing_experience = Column(Integer, nullable=True)  # ExperienceLevel 1-4
    risk_level = Column(JSON, nullable=False, default=list)  # list of RiskLevel values
    skills = Column(JSON, nullable=False, default=list)  # list of {"skill_name", "description"}
    sailing_preferences = Column(Text, nullable=True)
    roles = Column(JSON, nullable=False, default=list)  # list of UserRole values

    preferred_departure_location = Column(JSON, nullable=True)  # {"name", "lat", "lng"}
    availability_start_date = Column(Date, nullable=True)
    availability_end_date = Column(Date, nullable=True)

    profile_completion_percentage = Column(Integer, nullable=False, default=0)
    profile_completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    user = relationship("User", back_populates="profile")

    def has_role(self, role: "UserRole | str") -> bool:
        value = role.value if isinstance(role, UserRole) else role
        return value in (self.roles or [])

    def to_dict(self) -> Dict[str, Any]:
        """Full profile, for its owner"""
        return {
            "id": str(self.id),
            "username": self.username,
            "full_name": self.full_name,
            "user_description": self.user_description,
            "certifications": self.certifications,
            "phone": self.phone,
            "email": self.email,
            "language": self.language,
            "profile_image_url": self.profile_image_url,
            "sailing_experience": self.sailing_experience,
            "risk_level": self.risk_level or [],
            "skills": self.skills or [],
            "sailing_preferences": self.sailing_preferences,
            "roles": self.roles or [],
            "preferred_departure_location": self.preferred_departure_location,
            "availability_start_date": self.availability_start_date.isoformat() if self.availability_start_date else None,
            "availability_end_date": self.availability_end_date.isoformat() if self.availability_end_date else None,
            "profile_completion_percentage": self.profile_completion_percentage,
            "profile_completed_at": to_iso(self.profile_completed_at),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Profile(id={self.id}, username={self.username}, roles={self.roles})>"
