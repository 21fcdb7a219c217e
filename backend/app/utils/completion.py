"""
Profile completion calculation

Eight fields count toward completion; the percentage is the rounded share of
those that hold a value.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _empty_list(value: Any) -> bool:
    return not isinstance(value, (list, tuple)) or len(value) == 0


@dataclass(frozen=True)
class _FieldDefinition:
    name: str
    label: str
    section: str
    is_missing: Callable[[Any], bool]


PROFILE_FIELDS: List[_FieldDefinition] = [
    _FieldDefinition("username", "Username", "Basic Information", _blank),
    _FieldDefinition("full_name", "Full Name", "Basic Information", _blank),
    _FieldDefinition("phone", "Phone Number", "Basic Information", _blank),
    _FieldDefinition("sailing_experience", "Sailing Experience Level", "Experience", lambda v: v is None),
    _FieldDefinition("risk_level", "Risk Level Preferences", "Experience", _empty_list),
    _FieldDefinition("skills", "Skills", "Skills", _empty_list),
    _FieldDefinition("sailing_preferences", "Sailing Preferences", "Preferences", _blank),
    _FieldDefinition("roles", "Roles (Owner/Crew)", "Roles", _empty_list),
]


@dataclass
class ProfileFieldStatus:
    name: str
    label: str
    section: str
    missing: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "label": self.label, "section": self.section, "missing": self.missing}


@dataclass
class ProfileCompletionResult:
    percentage: int
    completed_count: int
    total_count: int
    fields: List[ProfileFieldStatus] = field(default_factory=list)

    @property
    def missing_fields(self) -> List[ProfileFieldStatus]:
        return [f for f in self.fields if f.missing]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "fields": [f.to_dict() for f in self.fields],
            "missing_fields": [f.to_dict() for f in self.missing_fields],
        }


def _get(profile: Any, name: str) -> Any:
    if isinstance(profile, Mapping):
        return profile.get(name)
    return getattr(profile, name, None)


def calculate_profile_completion(profile: Any) -> ProfileCompletionResult:
    """
    Evaluate completion for a Profile row or a plain mapping

    A missing profile (None) counts as 0% with every field missing.
    """
    statuses = [
        ProfileFieldStatus(
            name=definition.name,
            label=definition.label,
            section=definition.section,
            missing=True if profile is None else definition.is_missing(_get(profile, definition.name)),
        )
        for definition in PROFILE_FIELDS
    ]
    completed = sum(1 for s in statuses if not s.missing)
    total = len(PROFILE_FIELDS)
    return ProfileCompletionResult(
        percentage=round(completed / total * 100),
        completed_count=completed,
        total_count=total,
        fields=statuses,
    )
