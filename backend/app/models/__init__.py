"""
SQLAlchemy models
"""
from app.core.database import Base
from app.models.boat import Boat, SailboatCategory  # noqa: F401
from app.models.consent import UserConsent  # noqa: F401
from app.models.journey import (CostModel, Journey,  # noqa: F401
                                JourneyRequirement, JourneyState, Leg,
                                QuestionType, Waypoint)
from app.models.notification import (EmailPreferences,  # noqa: F401
                                     Notification, NotificationType)
from app.models.onboarding_session import (OwnerOnboardingState,  # noqa: F401
                                           OwnerSession,
                                           ProspectOnboardingState,
                                           ProspectSession)
from app.models.profile import (EXPERIENCE_LEVEL_NAMES,  # noqa: F401
                                ExperienceLevel, Profile, RiskLevel, UserRole)
from app.models.registration import (Registration,  # noqa: F401
                                     RegistrationAnswer, RegistrationStatus)
from app.models.user import Session, User  # noqa: F401

__all__ = [
    "Base",
    "Boat",
    "SailboatCategory",
    "UserConsent",
    "CostModel",
    "Journey",
    "JourneyRequirement",
    "JourneyState",
    "Leg",
    "QuestionType",
    "Waypoint",
    "EmailPreferences",
    "Notification",
    "NotificationType",
    "OwnerOnboardingState",
    "OwnerSession",
    "ProspectOnboardingState",
    "ProspectSession",
    "EXPERIENCE_LEVEL_NAMES",
    "ExperienceLevel",
    "Profile",
    "RiskLevel",
    "UserRole",
    "Registration",
    "RegistrationAnswer",
    "RegistrationStatus",
    "Session",
    "User",
]
