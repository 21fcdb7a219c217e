"""
Deterministic profile extraction from a chat transcript

Used when the LLM does not complete profile creation: scans the user's own
messages for experience, comfort zones, skills, certifications, phone, bio and
sailing preferences, and the assistant's name tags for the full name.
"""
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.models.profile import RiskLevel
from app.utils.message_parsing import extract_name_tag
from app.utils.skills import get_all_canonical_skill_names

_EXPERIENCE_KEYWORDS = [
    (1, ("beginner", "new to sailing", "never sailed", "just starting")),
    (2, ("competent crew", "competent", "can steer", "can reef", "stand watch", "some experience")),
    (3, ("coastal skipper", "day skipper", "skippered", "can skipper", "passage planning")),
    (4, ("offshore skipper", "yachtmaster offshore", "ocean crossing", "transatlantic", "offshore")),
]

_RISK_KEYWORDS = [
    (RiskLevel.COASTAL, ("coastal", "day sail", "short distance")),
    (RiskLevel.OFFSHORE, ("offshore", "open ocean", "ocean crossing", "transatlantic", "multi-day")),
    (RiskLevel.EXTREME, ("extreme", "high latitude", "challenging conditions")),
]

_SKILL_KEYWORDS: Dict[str, tuple] = {
    "technical_skills": ("mechanic", "electrical", "engine", "repair", "maintenance", "carpentry", "technical"),
    "cooking": ("cooking", "cook", "chef", "galley", "meal"),
    "physical_fitness": ("fitness", "yoga", "exercise", "athletic", "strong", "fit"),
    "navigation": ("navigation", "navigate", "gps", "chartplotter", "charts", "plotting"),
    "celestial_navigation": ("celestial", "sextant"),
    "sailing_experience": ("sailing", "helm", "steer", "reef", "trim"),
    "watch_keeping": ("watch keeping", "stand watch", "lookout", "night watch"),
    "night_sailing": ("night sailing", "at night", "night watch"),
    "radio_communication": ("radio", "vhf", "ssb"),
    "first_aid": ("first aid", "medical", "cpr", "nurse", "doctor"),
    "knots": ("knot", "rope", "line handling", "rigging"),
}

_CERTIFICATION_PATTERN = re.compile(
    r"\b(?:RYA(?: (?:Competent Crew|Day Skipper|Coastal Skipper|Yachtmaster(?: Offshore| Ocean| Coastal)?))?|"
    r"ASA \d{3}|ASA|US Sailing|Yachtmaster(?: Offshore| Ocean| Coastal)?|"
    r"Day Skipper|Coastal Skipper|Competent Crew|STCW(?:[- ]?\d+)?|VHF(?: SRC)?|SRC|"
    r"First Aid|ICC)\b",
    re.IGNORECASE,
)

_PHONE_PATTERN = re.compile(r"(?<!\w)\+?\d[\d\s().-]{7,}\d")

_BIO_PATTERN = re.compile(
    r"(?:\bi am\b|\bi'm\b|\bi have been\b|\bi've been\b|\babout me\b|\bmy background\b|\bi love\b|\bi enjoy\b)"
    r"[^.!?]{10,200}",
    re.IGNORECASE,
)

_PREFERENCE_PATTERN = re.compile(
    r"(?:\bi want\b|\bi'd like\b|\bi would like\b|\blooking for\b|\bprefer\b|\binterested in\b)[^.!?]{5,200}",
    re.IGNORECASE,
)


def _user_messages(messages: Iterable[Mapping[str, Any]]) -> List[str]:
    return [str(m.get("content") or "") for m in messages if m.get("role") == "user"]


def extract_experience_level(text: str) -> Optional[int]:
    """A standalone 1-4 wins, otherwise the first keyword tier that matches"""
    number = re.search(r"(?<![\d.])\b([1-4])\b(?![\d.])", text)
    if number:
        return int(number.group(1))

    lower = text.lower()
    # Most specific phrases first so "offshore skipper" is not read as level 2
    for level, keywords in sorted(_EXPERIENCE_KEYWORDS, key=lambda item: -item[0]):
        if any(" " in keyword and keyword in lower for keyword in keywords):
            return level
    for level, keywords in _EXPERIENCE_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return level
    return None


def extract_risk_levels(text: str) -> List[str]:
    lower = text.lower()
    return [
        level.value
        for level, keywords in _RISK_KEYWORDS
        if any(keyword in lower for keyword in keywords)
    ]


def extract_skills(text: str) -> List[Dict[str, str]]:
    """Map keyword mentions to catalogue skills, keeping ~50 chars of context"""
    lower = text.lower()
    valid = set(get_all_canonical_skill_names())
    found: List[Dict[str, str]] = []
    for skill_name, keywords in _SKILL_KEYWORDS.items():
        if skill_name not in valid:
            continue
        for keyword in keywords:
            index = lower.find(keyword)
            if index < 0:
                continue
            start = max(0, index - 50)
            end = min(len(text), index + len(keyword) + 50)
            found.append({"skill_name": skill_name, "description": text[start:end].strip()})
            break
    return found


def extract_certifications(text: str) -> Optional[str]:
    seen: List[str] = []
    lowered = set()
    for match in _CERTIFICATION_PATTERN.finditer(text):
        cert = match.group(0).strip()
        if cert.lower() not in lowered:
            lowered.add(cert.lower())
            seen.append(cert)
    return ", ".join(seen) if seen else None


def extract_phone(text: str) -> Optional[str]:
    match = _PHONE_PATTERN.search(text)
    if not match:
        return None
    digits = re.sub(r"\D", "", match.group(0))
    return match.group(0).strip() if 8 <= len(digits) <= 15 else None


def extract_bio(user_messages: List[str]) -> Optional[str]:
    sentences = [m.group(0).strip() for text in user_messages for m in _BIO_PATTERN.finditer(text)]
    return " ".join(sentences)[:500] if sentences else None


def extract_sailing_preferences(user_messages: List[str]) -> Optional[str]:
    matches = [m.group(0).strip() for text in user_messages for m in _PREFERENCE_PATTERN.finditer(text)]
    return ", ".join(matches)[:300] if matches else None


def extract_full_name(messages: Iterable[Mapping[str, Any]]) -> Optional[str]:
    """Latest [PROSPECT_NAME: ...] or [OWNER_NAME: ...] tag from the assistant"""
    name = None
    for message in messages:
        if message.get("role") != "assistant":
            continue
        content = str(message.get("content") or "")
        name = extract_name_tag(content, "PROSPECT_NAME") or extract_name_tag(content, "OWNER_NAME") or name
    return name


def extract_profile_from_conversation(messages: List[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Build profile fields from a conversation

    Args:
        messages: Chat messages as dicts with 'role' and 'content'

    Returns:
        Dict containing only the profile fields that could be extracted
    """
    user_messages = _user_messages(messages)
    all_text = " ".join(user_messages)
    extracted: Dict[str, Any] = {}

    full_name = extract_full_name(messages)
    if full_name:
        extracted["full_name"] = full_name

    experience = extract_experience_level(all_text)
    if experience:
        extracted["sailing_experience"] = experience

    risk_levels = extract_risk_levels(all_text)
    if risk_levels:
        extracted["risk_level"] = risk_levels

    skills = extract_skills(all_text)
    if skills:
        extracted["skills"] = skills

    bio = extract_bio(user_messages)
    if bio:
        extracted["user_description"] = bio

    preferences = extract_sailing_preferences(user_messages)
    if preferences:
        extracted["sailing_preferences"] = preferences

    certifications = extract_certifications(all_text)
    if certifications:
        extracted["certifications"] = certifications

    phone = extract_phone(all_text)
    if phone:
        extracted["phone"] = phone

    return extracted
