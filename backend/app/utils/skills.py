"""
Skill catalogue, canonical skill names and skill matching

Skills are stored in canonical form (lowercase, words joined with '_') on
profiles, journeys and legs, and shown in display form ("Night Sailing").
"""
import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

# Catalogue of known skills grouped by the sailing zone they matter most in
SKILLS_CONFIG: Dict[str, List[Dict[str, str]]] = {
    "general": [
        {"name": "sailing_experience", "description": "Helming, trimming and reefing under sail"},
        {"name": "navigation", "description": "Chart work, GPS and passage plotting"},
        {"name": "watch_keeping", "description": "Standing a watch and keeping a proper lookout"},
        {"name": "night_sailing", "description": "Sailing and standing watches after dark"},
        {"name": "cooking", "description": "Preparing meals in the galley underway"},
        {"name": "first_aid", "description": "First aid and basic medical care at sea"},
        {"name": "knots", "description": "Knots, line handling and basic rigging"},
        {"name": "radio_communication", "description": "VHF/SSB radio procedures"},
        {"name": "technical_skills", "description": "Engine, electrical and general boat maintenance"},
        {"name": "physical_fitness", "description": "Strength and stamina for long watches and sail changes"},
    ],
    "offshore": [
        {"name": "heavy_weather_sailing", "description": "Handling the boat in gale conditions"},
        {"name": "celestial_navigation", "description": "Sextant and astronomical navigation"},
        {"name": "ocean_passage_making", "description": "Multi-week ocean passages"},
    ],
    "extreme": [
        {"name": "ice_navigation", "description": "Navigating in ice and high latitudes"},
        {"name": "survival_skills", "description": "Sea survival and liferaft procedures"},
    ],
}


def to_canonical_skill_name(skill_name: Any) -> str:
    """
    Convert a skill name to storage form

    "Night Sailing" -> "night_sailing"; already canonical names pass through.
    """
    if not skill_name or not isinstance(skill_name, str):
        return ""
    return "_".join(skill_name.strip().lower().split())


def to_display_skill_name(canonical_name: Any) -> str:
    """Convert a canonical name to display form ('night_sailing' -> 'Night Sailing')"""
    if not canonical_name or not isinstance(canonical_name, str):
        return ""
    return " ".join(word[:1].upper() + word[1:] for word in canonical_name.split("_"))


def _skill_name_of(skill: Any) -> str:
    if isinstance(skill, dict):
        name = skill.get("skill_name") or skill.get("name")
        return to_canonical_skill_name(str(name)) if name else ""
    if isinstance(skill, str):
        text = skill.strip()
        if text.startswith("{"):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                # Not JSON: drop the braces and treat the rest as a plain name
                return to_canonical_skill_name(text.strip("{}"))
            if isinstance(parsed, dict):
                return _skill_name_of(parsed)
        return to_canonical_skill_name(text)
    return ""


def normalize_skill_names(skills: Optional[Iterable[Any]]) -> List[str]:
    """
    Normalize a mixed list of skills to canonical names

    Accepts plain names, JSON strings like '{"skill_name": "navigation"}' and
    dicts with a 'skill_name' (or 'name') key. Empty entries are dropped.
    """
    if not skills or isinstance(skills, (str, bytes, dict)):
        return []
    names = (_skill_name_of(skill) for skill in skills)
    return [name for name in names if name]


def get_all_canonical_skill_names() -> List[str]:
    return [skill["name"] for group in SKILLS_CONFIG.values() for skill in group]


def is_valid_skill_name(skill_name: str) -> bool:
    return to_canonical_skill_name(skill_name) in get_all_canonical_skill_names()


def get_skill_definitions() -> List[Dict[str, str]]:
    """Catalogue flattened for prompts and the definitions tool"""
    return [
        {
            "name": skill["name"],
            "display_name": to_display_skill_name(skill["name"]),
            "category": category,
            "description": skill["description"],
        }
        for category, group in SKILLS_CONFIG.items()
        for skill in group
    ]


def check_experience_level_match(
    user_experience_level: Optional[int],
    required_level: Optional[int],
) -> bool:
    """True when there is no requirement or the user meets it"""
    if required_level is None:
        return True
    if user_experience_level is None:
        return False
    return user_experience_level >= required_level


def calculate_match_percentage(
    user_skills: Optional[Iterable[Any]],
    leg_skills: Optional[Iterable[Any]],
    user_experience_level: Optional[int] = None,
    leg_min_experience_level: Optional[int] = None,
) -> int:
    """
    Share of the leg's required skills the user has, 0-100

    Returns 0 whenever both experience levels are known and the user's is
    below the leg minimum. A leg without skill requirements is a 100% match.
    """
    if (
        leg_min_experience_level is not None
        and user_experience_level is not None
        and user_experience_level < leg_min_experience_level
    ):
        return 0

    required = normalize_skill_names(leg_skills)
    if not required:
        return 100

    have = set(normalize_skill_names(user_skills))
    matching = [skill for skill in required if skill in have]
    return round(len(matching) / len(required) * 100)


def get_matching_and_missing_skills(
    user_skills: Optional[Iterable[Any]],
    leg_skills: Optional[Iterable[Any]],
) -> Tuple[List[str], List[str]]:
    """Split the leg's skills into (matching, missing) display names"""
    have = set(normalize_skill_names(user_skills))
    matching: List[str] = []
    missing: List[str] = []
    for skill in normalize_skill_names(leg_skills):
        (matching if skill in have else missing).append(to_display_skill_name(skill))
    return matching, missing


def get_match_color_class(percentage: float) -> str:
    """Colour bucket used by clients to render a match badge"""
    if percentage >= 80:
        return "green"
    if percentage >= 50:
        return "yellow"
    if percentage >= 25:
        return "orange"
    return "red"
