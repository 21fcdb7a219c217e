"""
Parsing of structured markers inside assistant chat messages

Markers understood here:
    [SUGGESTIONS] ... [/SUGGESTIONS]   follow-up prompts, one per line
    [IMPORTANT]                        marks the most relevant suggestion
    [[leg:UUID:Name]]                  reference to a leg
    [[register:UUID:Name]]             call to action to register for a leg
    [OWNER_NAME: ...] / [PROSPECT_NAME: ...]   name captured by the assistant
"""
import re
from typing import Dict, List, Optional, Tuple

MAX_SUGGESTIONS = 5

_SUGGESTIONS_CLOSED = re.compile(r"\[\s*SUGGESTIONS\s*\]([\s\S]*?)\[\s*/\s*SUGGESTIONS\s*\]", re.IGNORECASE)
_SUGGESTIONS_OPEN = re.compile(r"\[\s*SUGGESTIONS\s*\]([\s\S]*?)(?=\n\s*\n|\n\s*\[|$)", re.IGNORECASE)
_SUGGESTIONS_REST = re.compile(r"\[\s*SUGGESTIONS\s*\]([\s\S]*)", re.IGNORECASE)
_IMPORTANT = re.compile(r"\[IMPORTANT\]", re.IGNORECASE)
_LIST_MARKER = re.compile(r"^(?:[-*•]\s+|\d+\.\s+)")
_QUOTES = "\"'“”‘’"

_LEG_REF = re.compile(r"\[\[leg:([a-f0-9-]+):([^\]]+)\]\]", re.IGNORECASE)
_REGISTER_REF = re.compile(r"\[\[register:([a-f0-9-]+):([^\]]+)\]\]", re.IGNORECASE)

_SIGNUP_KEYWORDS = (
    "sign up",
    "signup",
    "create an account",
    "create account",
    "create your profile",
    "create a profile",
    "build your profile",
    "save your profile",
    "complete your profile",
    "register for legs",
    "join legs",
)


def _suggestions_block(content: str) -> Optional[str]:
    for pattern in (_SUGGESTIONS_CLOSED, _SUGGESTIONS_OPEN, _SUGGESTIONS_REST):
        match = pattern.search(content)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def extract_suggested_prompts(content: Optional[str]) -> Tuple[List[str], Optional[int]]:
    """
    Pull follow-up prompts out of a [SUGGESTIONS] block

    The closing tag is optional: an unterminated block ends at a blank line,
    the next [tag] line, or the end of the message.

    Returns:
        (prompts, important_index) with at most five prompts; important_index
        points at the line marked [IMPORTANT], or is None
    """
    if not content or not isinstance(content, str):
        return [], None

    block = _suggestions_block(content)
    if block is None:
        return [], None

    prompts: List[str] = []
    important_index: Optional[int] = None

    for raw_line in block.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        is_important = bool(_IMPORTANT.search(line))
        if is_important:
            line = _IMPORTANT.sub("", line).strip()

        line = _LIST_MARKER.sub("", line)
        line = line.strip(_QUOTES).strip()

        lower = line.lower()
        if (
            not line
            or len(line) >= 200
            or line.startswith("[")
            or lower.startswith("example")
            or lower.startswith("format")
        ):
            continue

        if is_important and important_index is None:
            important_index = len(prompts)
        prompts.append(line)

    prompts = prompts[:MAX_SUGGESTIONS]
    if important_index is not None and important_index >= len(prompts):
        important_index = None
    return prompts, important_index


def remove_suggestions_from_content(content: str) -> str:
    """Strip [SUGGESTIONS] blocks (closed or not) for display"""
    content = _SUGGESTIONS_CLOSED.sub("", content)
    content = re.sub(r"\[\s*SUGGESTIONS\s*\][\s\S]*?(?:\n\s*\n|\n(?=\s*\[)|$)", "", content, flags=re.IGNORECASE)
    return content.strip()


def extract_leg_references(content: str) -> List[Dict[str, str]]:
    """[[leg:UUID:Name]] markers as [{"legId", "legName"}]"""
    return [{"legId": m.group(1), "legName": m.group(2)} for m in _LEG_REF.finditer(content or "")]


def extract_registration_references(content: str) -> List[Dict[str, str]]:
    """[[register:UUID:Name]] markers as [{"legId", "legName"}]"""
    return [{"legId": m.group(1), "legName": m.group(2)} for m in _REGISTER_REF.finditer(content or "")]


def extract_name_tag(content: str, tag: str) -> Optional[str]:
    """Value of the first [TAG: value] marker, case-insensitive"""
    match = re.search(r"\[\s*" + re.escape(tag) + r"\s*:\s*([^\]]+?)\s*\]", content or "", re.IGNORECASE)
    if not match:
        return None
    name = match.group(1).strip()
    return name or None


def strip_name_tags(content: str) -> str:
    """Remove [OWNER_NAME: ...] and [PROSPECT_NAME: ...] markers"""
    cleaned = re.sub(r"\[\s*(?:OWNER|PROSPECT)_NAME\s*:[^\]]*\]", "", content or "", flags=re.IGNORECASE)
    return re.sub(r"[ \t]+\n", "\n", cleaned).strip()


def suggests_signup_or_profile_creation(content: str) -> bool:
    lower = (content or "").lower()
    return any(keyword in lower for keyword in _SIGNUP_KEYWORDS)
