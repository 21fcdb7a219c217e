"""
Crew search for skippers

Scores crew profiles against a skipper's requirements:
    experience  34 points when a minimum level is required
    risk        33 points when any comfort zone overlaps
    skills      33 points scaled by the share of required skills held
The total is normalized to 0-100; with no requirements every crew scores 50.
"""
import math
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.models.profile import Profile, UserRole
from app.utils.datetime_utils import parse_iso
from app.utils.skills import (normalize_skill_names, to_canonical_skill_name,
                              to_display_skill_name)

logger = LoggingConfig.get_logger(__name__)

EXPERIENCE_POINTS = 34
RISK_POINTS = 33
SKILL_POINTS = 33
EXPERIENCE_BONUS_PER_LEVEL = 5
NEUTRAL_SCORE = 50
DEFAULT_LIMIT = 10
MAX_LIMIT = 50
DEFAULT_RADIUS_KM = 500
EARTH_RADIUS_KM = 6371


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def calculate_crew_match_score(
    crew: Any,
    required_experience: Optional[int] = None,
    required_risk_levels: Optional[Sequence[str]] = None,
    required_skills: Optional[Sequence[str]] = None,
) -> int:
    """
    Weighted match between a crew profile and a skipper's requirements

    Args:
        crew: Profile row or mapping with sailing_experience, risk_level and skills
        required_experience: Minimum experience level (1-4)
        required_risk_levels: Acceptable comfort zones
        required_skills: Skills the skipper wants, any naming form

    Returns:
        Score 0-100
    """
    get = crew.get if isinstance(crew, dict) else lambda name: getattr(crew, name, None)
    score = 0.0
    max_score = 0

    if required_experience:
        max_score += EXPERIENCE_POINTS
        level = get("sailing_experience")
        if level is not None and level >= required_experience:
            bonus = (level - required_experience) * EXPERIENCE_BONUS_PER_LEVEL
            score += min(EXPERIENCE_POINTS + bonus, EXPERIENCE_POINTS)

    if required_risk_levels:
        max_score += RISK_POINTS
        crew_levels = _as_list(get("risk_level"))
        if any(level in required_risk_levels for level in crew_levels):
            score += RISK_POINTS

    if required_skills:
        max_score += SKILL_POINTS
        crew_skills = set(normalize_skill_names(get("skills")))
        wanted = [to_canonical_skill_name(s) for s in required_skills if to_canonical_skill_name(s)]
        if wanted:
            matched = [skill for skill in wanted if skill in crew_skills]
            score += len(matched) / len(wanted) * SKILL_POINTS

    if max_score == 0:
        return NEUTRAL_SCORE
    return round(score / max_score * 100)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_location(location: Optional[Dict[str, Any]]) -> str:
    """First comma-separated part of the preferred location name"""
    name = (location or {}).get("name")
    if name:
        return str(name).split(",")[0].strip()
    return "Location not specified"


def format_availability(start: Optional[date], end: Optional[date]) -> Optional[str]:
    if start and end:
        return f"{start.isoformat()} to {end.isoformat()}"
    if start:
        return f"From {start.isoformat()}"
    if end:
        return f"Until {end.isoformat()}"
    return None


def normalize_crew_profile(profile: Profile, score: int, include_private_info: bool) -> Dict[str, Any]:
    """Crew search result; name and image only with include_private_info"""
    return {
        "id": str(profile.id),
        "name": (profile.full_name or "Anonymous") if include_private_info else "Anonymous",
        "image_url": profile.profile_image_url if include_private_info else None,
        "experience_level": profile.sailing_experience or 1,
        "risk_levels": _as_list(profile.risk_level),
        "skills": [to_display_skill_name(name) for name in normalize_skill_names(profile.skills)],
        "location": format_location(profile.preferred_departure_location),
        "availability": format_availability(profile.availability_start_date, profile.availability_end_date),
        "matchScore": score,
    }


class CrewMatchingService:
    """Service for searching crew that fits a skipper's requirements"""

    def __init__(self, db: Session):
        self.db = db

    def search_matching_crew(
        self,
        owner_id: Any = None,
        experience_level: Optional[int] = None,
        risk_levels: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        location: Optional[Dict[str, Any]] = None,
        date_range: Optional[Dict[str, Any]] = None,
        include_private_info: bool = False,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Find and rank crew profiles

        Args:
            owner_id: Searching skipper, excluded from the results
            experience_level: Minimum sailing experience (profiles below are filtered out)
            risk_levels: Comfort zones; profiles without any overlap are filtered out
            skills: Wanted skills, used for scoring only
            location: {"lat", "lng", "radius"} distance filter in km (default radius 500)
            date_range: {"start", "end"}; crew whose availability does not overlap are filtered out
            include_private_info: Include names and images
            limit: Results returned (default 10, at most 50)

        Returns:
            {"matches": [...], "totalCount": int}
        """
        if experience_level is not None and not 1 <= int(experience_level) <= 4:
            raise ValueError("Experience level must be between 1 and 4")

        candidates = []
        for profile in self._candidate_query(owner_id, experience_level, date_range).all():
            # roles and risk_level are JSON arrays, matched here to stay portable across databases
            if not profile.has_role(UserRole.CREW):
                continue
            if risk_levels and not set(_as_list(profile.risk_level)) & set(risk_levels):
                continue
            if location and not self._within_radius(profile, location):
                continue
            candidates.append(profile)

        scored = sorted(
            (
                (profile, calculate_crew_match_score(profile, experience_level, risk_levels, skills))
                for profile in candidates
            ),
            key=lambda item: item[1],
            reverse=True,
        )

        capped = min(limit or DEFAULT_LIMIT, MAX_LIMIT)
        matches = [normalize_crew_profile(p, s, include_private_info) for p, s in scored[:capped]]
        logger.info(
            "Crew search completed",
            extra={"candidates": len(candidates), "returned": len(matches), "experience_level": experience_level},
        )
        return {"matches": matches, "totalCount": len(scored)}

    @staticmethod
    def _within_radius(profile: Profile, location: Dict[str, Any]) -> bool:
        if location.get("lat") is None or location.get("lng") is None:
            return True
        preferred = profile.preferred_departure_location or {}
        if preferred.get("lat") is None or preferred.get("lng") is None:
            return False
        radius = float(location.get("radius") or DEFAULT_RADIUS_KM)
        distance = haversine_km(float(location["lat"]), float(location["lng"]),
                                float(preferred["lat"]), float(preferred["lng"]))
        return distance <= radius

    def _candidate_query(
        self,
        owner_id: Any,
        experience_level: Optional[int],
        date_range: Optional[Dict[str, Any]],
    ):
        """Profiles passing the column filters: owner exclusion, minimum experience, availability overlap"""
        query = self.db.query(Profile)
        if owner_id is not None:
            query = query.filter(Profile.id != owner_id)
        if experience_level:
            query = query.filter(Profile.sailing_experience >= int(experience_level))
        if date_range:
            start = parse_iso(date_range.get("start")) if date_range.get("start") else None
            end = parse_iso(date_range.get("end")) if date_range.get("end") else None
            if start is not None:
                query = query.filter(
                    Profile.availability_end_date.is_(None) | (Profile.availability_end_date >= start.date())
                )
            if end is not None:
                query = query.filter(
                    Profile.availability_start_date.is_(None) | (Profile.availability_start_date <= end.date())
                )
        return query
