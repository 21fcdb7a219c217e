"""
Sailor profile service
"""
import json
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.core.logging_config import LoggingConfig
from app.models.profile import Profile, RiskLevel, UserRole
from app.models.user import User
from app.utils.completion import (ProfileCompletionResult,
                                  calculate_profile_completion)
from app.utils.datetime_utils import parse_iso, utc_now
from app.utils.skills import to_canonical_skill_name

logger = LoggingConfig.get_logger(__name__)

EDITABLE_FIELDS = (
    "username",
    "full_name",
    "user_description",
    "certifications",
    "phone",
    "email",
    "language",
    "profile_image_url",
    "sailing_experience",
    "risk_level",
    "skills",
    "sailing_preferences",
    "roles",
    "preferred_departure_location",
    "availability_start_date",
    "availability_end_date",
)

PUBLIC_FIELDS = (
    "username",
    "full_name",
    "user_description",
    "certifications",
    "profile_image_url",
    "sailing_experience",
    "risk_level",
    "skills",
    "sailing_preferences",
    "roles",
)


def normalize_profile_skills(skills: Optional[Iterable[Any]]) -> List[Dict[str, str]]:
    """
    Normalize skills to [{"skill_name", "description"}] with canonical names

    Accepts plain names, JSON strings and dicts; later duplicates are dropped.
    """
    if not skills or isinstance(skills, (str, bytes)):
        return []
    result: List[Dict[str, str]] = []
    seen = set()
    for skill in skills:
        if isinstance(skill, str) and skill.strip().startswith("{"):
            try:
                skill = json.loads(skill)
            except json.JSONDecodeError:
                skill = skill.strip().strip("{}")
        if isinstance(skill, dict):
            name = to_canonical_skill_name(str(skill.get("skill_name") or skill.get("name") or ""))
            description = str(skill.get("description") or "")
        else:
            name = to_canonical_skill_name(skill)
            description = ""
        if name and name not in seen:
            seen.add(name)
            result.append({"skill_name": name, "description": description})
    return result


def validate_risk_levels(values: Any) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    valid = {level.value for level in RiskLevel}
    invalid = [v for v in values if v not in valid]
    if invalid:
        raise ValueError(f"Invalid risk level(s): {', '.join(map(str, invalid))}")
    return list(dict.fromkeys(values))


def validate_roles(values: Any) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    valid = {role.value for role in UserRole}
    invalid = [v for v in values if v not in valid]
    if invalid:
        raise ValueError(f"Invalid role(s): {', '.join(map(str, invalid))}")
    return list(dict.fromkeys(values))


def validate_experience(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise ValueError("Sailing experience must be a number between 1 and 4")
    if level < 1 or level > 4:
        raise ValueError("Sailing experience must be between 1 and 4")
    return level


def public_profile(profile: Profile) -> Dict[str, Any]:
    """Profile subset visible to other users"""
    data = {name: getattr(profile, name) for name in PUBLIC_FIELDS}
    data["id"] = str(profile.id)
    return data


class ProfileService:
    """Service for reading and updating sailor profiles"""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: UUID) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def get_profile_or_404(self, user_id: UUID) -> Profile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    def _generate_username(self, user: User) -> str:
        base = user.username or (user.email or "sailor").split("@")[0]
        candidate = base
        suffix = 1
        while self.db.query(Profile).filter(Profile.username == candidate).first():
            suffix += 1
            candidate = f"{base}{suffix}"
        return candidate

    def create_or_update_profile(self, user_id: UUID, **fields: Any) -> Profile:
        """
        Create the user's profile or apply changes to it

        Args:
            user_id: Owner of the profile (also its primary key)
            **fields: Any of EDITABLE_FIELDS; None values are ignored

        Returns:
            The saved Profile with a recomputed completion percentage

        Raises:
            NotFoundError: If the user does not exist
            ValueError: If a field fails validation
            ConflictError: If the username is taken by another profile
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in fields.items() if v is not None}
        if "sailing_experience" in changes:
            changes["sailing_experience"] = validate_experience(changes["sailing_experience"])
        if "risk_level" in changes:
            changes["risk_level"] = validate_risk_levels(changes["risk_level"])
        if "roles" in changes:
            changes["roles"] = validate_roles(changes["roles"])
        if "skills" in changes:
            changes["skills"] = normalize_profile_skills(changes["skills"])
        for key in ("availability_start_date", "availability_end_date"):
            if key in changes and isinstance(changes[key], str):
                parsed = parse_iso(changes[key])
                changes[key] = parsed.date() if parsed else None
        if "preferred_departure_location" in changes:
            location = changes["preferred_departure_location"]
            if not isinstance(location, dict) or not location.get("name"):
                raise ValueError("Preferred departure location needs at least a name")
        if "username" in changes:
            username = str(changes["username"]).strip()
            if not username:
                raise ValueError("Username cannot be empty")
            taken = (
                self.db.query(Profile)
                .filter(Profile.username == username, Profile.id != user_id)
                .first()
            )
            if taken:
                raise ConflictError(f"Username '{username}' is already taken")
            changes["username"] = username

        profile = self.get_profile(user_id)
        if profile is None:
            user = self.db.query(User).filter(User.id == user_id).first()
            if user is None:
                raise NotFoundError("User not found")
            profile = Profile(
                id=user_id,
                username=changes.pop("username", None) or self._generate_username(user),
                email=user.email,
                risk_level=[],
                skills=[],
                roles=[],
            )
            self.db.add(profile)
            logger.info(f"Creating profile for user {user_id}")

        for name, value in changes.items():
            setattr(profile, name, value)

        self._refresh_completion(profile)
        self.db.commit()
        self.db.refresh(profile)
        logger.info(
            f"Saved profile for user {user_id}",
            extra={"fields": sorted(changes), "completion": profile.profile_completion_percentage},
        )
        return profile

    def add_role(self, user_id: UUID, role: UserRole) -> Profile:
        """Add a marketplace role, creating a minimal profile when needed"""
        role_value = UserRole(role).value
        profile = self.get_profile(user_id)
        if profile is not None and profile.has_role(role_value):
            return profile
        roles = list(profile.roles or []) if profile else []
        return self.create_or_update_profile(user_id, roles=roles + [role_value])

    def get_completion(self, user_id: UUID) -> ProfileCompletionResult:
        return calculate_profile_completion(self.get_profile(user_id))

    def _refresh_completion(self, profile: Profile):
        result = calculate_profile_completion(profile)
        profile.profile_completion_percentage = result.percentage
        if result.percentage == 100 and profile.profile_completed_at is None:
            profile.profile_completed_at = utc_now()
