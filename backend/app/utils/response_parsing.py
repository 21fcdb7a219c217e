"""
Parsing of JSON payloads and tool calls out of free-form LLM output
"""
import ast
import json
import re
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, List, Optional, Tuple

from app.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

# Keys that identify a bare JSON object as profile data meant for update_user_profile
PROFILE_FIELD_KEYS = (
    "full_name", "bio", "user_description", "experience_level", "sailing_experience",
    "skills", "risk_level", "comfort_zones", "sailing_preferences", "certifications",
)

_FENCED_BLOCK = re.compile(r"```(?:tool_calls?|tool_code|json)\s*\n?([\s\S]*?)```", re.IGNORECASE)
_TOOL_CALL_TAG = re.compile(r"<tool_call>\s*([\s\S]*?)\s*</tool_call>", re.IGNORECASE)
_XML_FUNCTION = re.compile(r"<function=(\w+)>([\s\S]*?)</function>", re.IGNORECASE)
_XML_PARAMETER = re.compile(r"<parameter=(\w+)>([\s\S]*?)</parameter>", re.IGNORECASE)
_PYTHON_CALL = re.compile(r"^(?:print\s*\(\s*)?(?:\w+\.)?(\w+)\s*\(([\s\S]*)\)\s*\)?$")

_ids = count()


@dataclass
class ToolCall:
    """Tool invocation requested by the model"""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"tc_{next(_ids)}")

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ToolResult:
    """Outcome of executing a ToolCall; error is set instead of raising"""
    tool_call_id: str
    name: str
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"toolCallId": self.tool_call_id, "name": self.name, "result": self.result}
        if self.error:
            data["error"] = self.error
        return data


def remove_markdown_code_fences(text: str) -> str:
    """Strip a leading ```lang fence and a trailing ``` fence"""
    cleaned = text.strip()
    cleaned = re.sub(r"^```[a-zA-Z]*\s*\n?", "", cleaned)
    cleaned = re.sub(r"\n?\s*```$", "", cleaned)
    cleaned = cleaned.strip("`").strip()
    return re.sub(r"^json\s*", "", cleaned, flags=re.IGNORECASE).strip()


def extract_json_from_text(text: str, kind: str = "object") -> Optional[str]:
    """Slice from the first opening to the last closing brace (or bracket)"""
    opening, closing = ("{", "}") if kind == "object" else ("[", "]")
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start:end + 1]


def fix_json_errors(json_text: str) -> str:
    """Balance braces/brackets and drop trailing commas"""
    fixed = json_text.strip()
    fixed += "}" * max(0, fixed.count("{") - fixed.count("}"))
    fixed += "]" * max(0, fixed.count("[") - fixed.count("]"))
    return re.sub(r",(\s*[}\]])", r"\1", fixed)


def parse_json_from_ai_response(text: str, kind: Optional[str] = None) -> Any:
    """
    Parse JSON embedded in an LLM answer

    Args:
        text: Raw model output, possibly fenced or wrapped in prose
        kind: 'object' or 'array'; when None, whichever appears first

    Returns:
        Parsed JSON value

    Raises:
        ValueError: If no JSON could be recovered
    """
    cleaned = remove_markdown_code_fences(text or "")
    if kind is None:
        first_obj, first_arr = cleaned.find("{"), cleaned.find("[")
        kind = "array" if first_arr != -1 and (first_obj == -1 or first_arr < first_obj) else "object"

    candidate = extract_json_from_text(cleaned, kind) or cleaned
    for attempt in (candidate, fix_json_errors(candidate)):
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue
    raise ValueError(f"Failed to parse JSON from AI response: {cleaned[:200]!r}")


def _loads_lenient(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(fix_json_errors(text))
    except json.JSONDecodeError:
        return None


def _parse_python_call(text: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Parse `[default_api.]tool_name(key=value, ...)` as emitted by some models"""
    match = _PYTHON_CALL.match(text.strip())
    if not match:
        return None
    name, args_text = match.group(1), match.group(2).strip()
    if "_" not in name:
        return None
    if not args_text:
        return name, {}
    try:
        call = ast.parse(f"f({args_text})", mode="eval").body
        arguments = {kw.arg: ast.literal_eval(kw.value) for kw in call.keywords if kw.arg}
    except (SyntaxError, ValueError):
        return None
    return name, arguments


def _tool_call_from_json(data: Any) -> Optional[ToolCall]:
    if not isinstance(data, dict):
        return None
    name = data.get("name")
    if isinstance(name, str) and name:
        arguments = data.get("arguments") or {}
        if isinstance(arguments, str):
            arguments = _loads_lenient(arguments) or {}
        return ToolCall(name=name, arguments=arguments if isinstance(arguments, dict) else {})
    if any(key in data for key in PROFILE_FIELD_KEYS):
        return ToolCall(name="update_user_profile", arguments=data)
    return None


def parse_tool_calls(text: str) -> Tuple[str, List[ToolCall]]:
    """
    Find tool calls in a model answer

    Recognized forms:
        ```tool_call / tool_calls / tool_code / json fenced blocks holding
        {"name": ..., "arguments": {...}} or a Python-style call;
        <tool_call>{...}</tool_call> or <tool_call><function=x>...</function></tool_call>;
        an answer that is itself a {"name": ..., "arguments": ...} object.
    A bare object carrying profile fields becomes update_user_profile.

    Returns:
        (content with the tool-call blocks removed, tool calls in order)
    """
    if not text:
        return "", []

    tool_calls: List[ToolCall] = []
    content = text

    for match in _FENCED_BLOCK.finditer(text):
        inner = match.group(1).strip()
        python_call = _parse_python_call(inner)
        if python_call:
            call = ToolCall(name=python_call[0], arguments=python_call[1])
        else:
            parsed = _loads_lenient(inner)
            if isinstance(parsed, list):
                calls = [c for c in (_tool_call_from_json(item) for item in parsed) if c]
                if calls:
                    tool_calls.extend(calls)
                    content = content.replace(match.group(0), "")
                continue
            call = _tool_call_from_json(parsed)
        if call:
            tool_calls.append(call)
            content = content.replace(match.group(0), "")

    for match in _TOOL_CALL_TAG.finditer(text):
        inner = match.group(1)
        call = None
        json_text = extract_json_from_text(inner)
        if json_text:
            call = _tool_call_from_json(_loads_lenient(json_text))
        if call is None:
            function = _XML_FUNCTION.search(inner)
            if function:
                arguments = {
                    key: _coerce_xml_value(value)
                    for key, value in _XML_PARAMETER.findall(function.group(2))
                }
                call = ToolCall(name=function.group(1), arguments=arguments)
        if call:
            tool_calls.append(call)
            content = content.replace(match.group(0), "")

    if not tool_calls:
        stripped = content.strip()
        if stripped.startswith("{"):
            json_text = extract_json_from_text(stripped)
            parsed = _loads_lenient(json_text) if json_text else None
            if isinstance(parsed, dict) and isinstance(parsed.get("name"), str):
                tool_calls.append(ToolCall(name=parsed["name"], arguments=parsed.get("arguments") or {}))
                content = stripped.replace(json_text, "")

    if tool_calls:
        logger.debug("Parsed tool calls", extra={"tools": [c.name for c in tool_calls]})
    return content.strip(), tool_calls


def _coerce_xml_value(value: str) -> Any:
    value = value.strip()
    parsed = _loads_lenient(value) if value[:1] in "{[" or value in ("true", "false", "null") else None
    if parsed is not None:
        return parsed
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    if re.fullmatch(r"-?\d+\.\d+", value):
        return float(value)
    return value


def format_tool_results_for_ai(results: List[ToolResult]) -> str:
    """Render tool results as the follow-up message sent back to the model"""
    parts = []
    for result in results:
        if result.error:
            parts.append(f"Tool {result.name} failed: {result.error}")
        else:
            parts.append(f"Tool {result.name} returned:\n{json.dumps(result.result, default=str, indent=2)}")
    return "\n\n".join(parts)


def looks_like_failed_tool_call(content: str, tool_names: List[str]) -> bool:
    """True when text mentions a tool or tool syntax but nothing parsed"""
    lower = (content or "").lower()
    if any(marker in lower for marker in ("```tool_call", "<tool_call", "tool_code", '"arguments"')):
        return True
    return any(f"{name}(" in lower or f'"{name}"' in lower for name in tool_names)


def sanitize_content(content: str) -> str:
    """Remove leftover tool-call syntax from text shown to the user"""
    cleaned = _FENCED_BLOCK.sub("", content or "")
    cleaned = _TOOL_CALL_TAG.sub("", cleaned)
    cleaned = re.sub(r"</?tool_call>", "", cleaned, flags=re.IGNORECASE)
    cleaned = _XML_FUNCTION.sub("", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()
