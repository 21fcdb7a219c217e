"""
Shared machinery for the owner and prospect onboarding chats

The model is prompted to request tools inside ```tool_call blocks. The loop
parses them, runs them against the database, feeds the results back and
repeats until the model answers in plain text or the iteration cap is hit.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from app.core.errors import DOMAIN_ERRORS
from app.core.logging_config import LoggingConfig
from app.models.profile import Profile, RiskLevel, UserRole
from app.models.user import User
from app.services.llm_client import LLMClient, get_llm_client
from app.services.profile_service import (EDITABLE_FIELDS, ProfileService,
                                          normalize_profile_skills)
from app.utils.completion import calculate_profile_completion
from app.utils.datetime_utils import utc_now, utc_now_iso
from app.utils.message_parsing import (extract_leg_references,
                                       extract_name_tag,
                                       extract_registration_references,
                                       extract_suggested_prompts,
                                       remove_suggestions_from_content,
                                       strip_name_tags,
                                       suggests_signup_or_profile_creation)
from app.utils.response_parsing import (ToolCall, ToolResult,
                                        format_tool_results_for_ai,
                                        looks_like_failed_tool_call,
                                        parse_tool_calls, sanitize_content)
from app.utils.skills import get_skill_definitions, is_valid_skill_name

logger = LoggingConfig.get_logger(__name__)

MAX_HISTORY_MESSAGES = 15
MAX_MESSAGE_LENGTH = 5000

TOOL_PARSE_ERROR_MESSAGE = (
    "ERROR: Your tool call failed to parse. Please try again with complete, valid JSON.\n\n"
    "Wrap each call in its own ```tool_call block containing "
    '{"name": "...", "arguments": {...}} with every required argument filled in. '
    "Do not use placeholder text."
)
FALLBACK_REPLY = "Sorry, I could not put together an answer just now. Could you rephrase that?"

EXPERIENCE_LEVEL_DEFINITIONS: Dict[int, Dict[str, str]] = {
    1: {
        "name": "Beginner",
        "description": "New to sailing or only a few day sails or a basic course behind them.",
        "typical_skills": "Knows wind direction basics, can help with lines, basic safety awareness.",
    },
    2: {
        "name": "Competent Crew",
        "description": "Can steer, reef and stand a watch; has done several trips and knows basic navigation.",
        "typical_skills": "Line handling, basic navigation, watch keeping, safety procedures.",
    },
    3: {
        "name": "Coastal Skipper",
        "description": "Can skipper a boat in familiar waters, plan passages and handle most situations.",
        "typical_skills": "Passage planning, navigation, boat handling in varied conditions, crew management.",
    },
    4: {
        "name": "Offshore Skipper",
        "description": "Capable of long ocean passages and handling challenging conditions.",
        "typical_skills": "Ocean navigation, heavy weather sailing, self-sufficiency, advanced seamanship.",
    },
}

RISK_LEVEL_DEFINITIONS: Dict[str, Dict[str, str]] = {
    RiskLevel.COASTAL.value: {
        "description": "Within sight of land or short hops between ports, with shelter close by.",
        "typical_conditions": "Day sails, coastal hops, protected waters within VHF range of the coast guard.",
        "experience_recommended": "Beginner to Competent Crew",
    },
    RiskLevel.OFFSHORE.value: {
        "description": "Passages out of sight of land for extended periods; needs self-sufficiency.",
        "typical_conditions": "Multi-day passages, open water crossings, days from the nearest port.",
        "experience_recommended": "Coastal Skipper or above",
    },
    RiskLevel.EXTREME.value: {
        "description": "High latitudes, ocean crossings or expeditions to remote areas.",
        "typical_conditions": "Heavy weather, ice, very long passages, limited rescue options.",
        "experience_recommended": "Offshore Skipper with specific experience",
    },
}

# Names the model tends to use instead of the profile column names
PROFILE_FIELD_ALIASES = {
    "bio": "user_description",
    "description": "user_description",
    "risk_levels": "risk_level",
    "comfort_zones": "risk_level",
    "experience_level": "sailing_experience",
}

_EXPERIENCE_WORDS = (
    ("offshore", 4),
    ("coastal skipper", 3),
    ("competent", 2),
    ("beginner", 1),
    ("new to sailing", 1),
    ("coastal", 3),
)


class ToolError(Exception):
    """Raised by a tool handler; reported back to the model, never to the caller"""


# ----------------------------------------------------------------------
# Wire models
# ----------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(CamelModel):
    id: Optional[str] = None
    role: str
    content: str = ""
    timestamp: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class KnownUserProfile(CamelModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class PendingAction(CamelModel):
    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    label: Optional[str] = None


class ChatRequest(CamelModel):
    session_id: Optional[str] = None
    message: str
    conversation_history: List[ChatMessage] = Field(default_factory=list)
    gathered_preferences: Dict[str, Any] = Field(default_factory=dict)
    profile_completion_mode: bool = False
    user_profile: Optional[KnownUserProfile] = None
    approved_action: Optional[PendingAction] = None
    skipper_profile: Optional[str] = None
    crew_requirements: Optional[str] = None
    journey_details: Optional[str] = None


class ChatResponse(CamelModel):
    session_id: str
    message: ChatMessage
    extracted_name: Optional[str] = None
    suggested_prompts: List[str] = Field(default_factory=list)
    important_prompt_index: Optional[int] = None
    profile_created: bool = False
    boat_created: bool = False
    journey_created: bool = False


class TriggerResponse(ChatResponse):
    trigger_message: str
    fallback_applied: bool = False


# ----------------------------------------------------------------------
# Tools
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, str] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    requires_auth: bool = True


def tools_to_prompt_format(tools: List[ToolDefinition]) -> str:
    lines = []
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        for name, description in tool.parameters.items():
            marker = " (required)" if name in tool.required else ""
            lines.append(f"    - {name}{marker}: {description}")
    return "\n".join(lines)


DEFINITION_TOOLS = [
    ToolDefinition(
        "get_experience_level_definitions",
        "Describe the four sailing experience levels (1-4).",
        requires_auth=False,
    ),
    ToolDefinition(
        "get_risk_level_definitions",
        "Describe the comfort zones: Coastal sailing, Offshore sailing, Extreme sailing.",
        requires_auth=False,
    ),
    ToolDefinition("get_skills_definitions", "List the known sailing skills.", requires_auth=False),
]

PROFILE_STATUS_TOOL = ToolDefinition(
    "get_profile_completion_status",
    "Report which profile fields are filled in and the completion percentage.",
)

UPDATE_PROFILE_TOOL = ToolDefinition(
    "update_user_profile",
    "Create or update the user's profile. Only include fields the user has confirmed.",
    {
        "full_name": "Full name",
        "user_description": "Short bio",
        "sailing_experience": "Experience level 1-4",
        "risk_level": "List of comfort zones",
        "skills": 'List of {"skill_name": "<known skill>", "description": "<user words>"}',
        "certifications": "Sailing certifications",
        "sailing_preferences": "What kind of sailing the user wants",
        "phone": "Phone number",
    },
)


def normalize_risk_levels(value: Any) -> Optional[List[str]]:
    """Valid comfort zones from a list, a plain string or a JSON-encoded list"""
    def flatten(item: Any) -> List[str]:
        if isinstance(item, (list, tuple)):
            return [v for sub in item for v in flatten(sub)]
        if isinstance(item, str):
            text = item.strip()
            if text.startswith("[") or text.startswith("{"):
                try:
                    return flatten(json.loads(text))
                except json.JSONDecodeError:
                    return [text]
            return [text] if text else []
        return []

    if value is None:
        return None
    valid = {level.value for level in RiskLevel}
    levels = [v for v in dict.fromkeys(flatten(value)) if v in valid]
    return levels or None


def normalize_sailing_experience(value: Any) -> Optional[int]:
    """Experience level 1-4 from a number or free text; unreadable values become 2"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return round(value) if 1 <= value <= 4 else 2
    text = str(value).strip().lower()
    for char in text:
        if char in "1234":
            return int(char)
    for word, level in _EXPERIENCE_WORDS:
        if word in text:
            return level
    logger.debug(f"Could not read experience level from {value!r}, using 2")
    return 2


@dataclass
class ChatContext:
    """Per-request state shared by the tool handlers"""
    request: ChatRequest
    user: Optional[User] = None
    profile_completion_mode: bool = False
    prompt_text: str = ""
    has_profile: bool = False
    has_boat: bool = False
    has_journey: bool = False
    profile_created: bool = False
    boat_created: bool = False
    journey_created: bool = False
    leg_references: List[Dict[str, Any]] = field(default_factory=list)


class BaseChatService:
    """Tool-calling chat loop; subclasses supply the prompt and the tools"""

    flow: str = ""
    name_tag: str = ""
    use_case: str = "chat"
    max_tool_iterations: int = 5
    profile_role: UserRole = UserRole.CREW
    trigger_message: str = ""

    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        self.db = db
        self.llm_client = llm_client or get_llm_client()
        self.profiles = ProfileService(db)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def available_tools(self, context: ChatContext) -> List[ToolDefinition]:
        raise NotImplementedError

    def build_system_prompt(self, context: ChatContext) -> str:
        raise NotImplementedError

    def tool_handlers(self) -> Dict[str, Callable[[Dict[str, Any], ChatContext], Any]]:
        return {
            "get_experience_level_definitions": lambda args, ctx: EXPERIENCE_LEVEL_DEFINITIONS,
            "get_risk_level_definitions": lambda args, ctx: RISK_LEVEL_DEFINITIONS,
            "get_skills_definitions": lambda args, ctx: get_skill_definitions(),
            "get_profile_completion_status": self._tool_get_profile_completion_status,
            "update_user_profile": self._tool_update_user_profile,
        }

    def followup_instruction(self, context: ChatContext) -> str:
        return "Now provide a helpful response to the user."

    def on_tool_results(self, results: List[ToolResult], context: ChatContext) -> Optional[str]:
        """Inspect a round of results; a returned string ends the loop as the final reply"""
        return None

    def prepare_context(self, context: ChatContext):
        """Load per-user state before the prompt is built"""

    # ------------------------------------------------------------------
    # Shared tools
    # ------------------------------------------------------------------

    def _tool_get_profile_completion_status(self, args: Dict[str, Any], context: ChatContext):
        profile = self.profiles.get_profile(context.user.id)
        result = calculate_profile_completion(profile)
        data = result.to_dict()
        data["hasProfile"] = profile is not None
        return data

    def _clean_profile_arguments(self, args: Dict[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for key, value in (args or {}).items():
            name = PROFILE_FIELD_ALIASES.get(key, key)
            if name in EDITABLE_FIELDS and value not in (None, ""):
                fields.setdefault(name, value)
        dropped = set(args or {}) - set(PROFILE_FIELD_ALIASES) - set(EDITABLE_FIELDS)
        if dropped:
            logger.debug(f"Ignoring unknown profile fields from the model: {sorted(dropped)}")

        for key in ("username", "email", "roles"):
            fields.pop(key, None)
        if "risk_level" in fields:
            levels = normalize_risk_levels(fields["risk_level"])
            if levels:
                fields["risk_level"] = levels
            else:
                fields.pop("risk_level")
        if "sailing_experience" in fields:
            fields["sailing_experience"] = normalize_sailing_experience(fields["sailing_experience"])
        if "skills" in fields:
            skills = [s for s in normalize_profile_skills(fields["skills"]) if is_valid_skill_name(s["skill_name"])]
            if skills:
                fields["skills"] = skills
            else:
                fields.pop("skills")
        return fields

    def save_profile(self, user: User, fields: Dict[str, Any]) -> Profile:
        """Apply profile fields and make sure the flow's role is set"""
        existing = self.profiles.get_profile(user.id)
        roles = list(existing.roles or []) if existing else []
        if self.profile_role.value not in roles:
            roles.append(self.profile_role.value)
        return self.profiles.create_or_update_profile(user.id, roles=roles, **fields)

    def _tool_update_user_profile(self, args: Dict[str, Any], context: ChatContext):
        fields = self._clean_profile_arguments(args)
        profile = self.save_profile(context.user, fields)
        context.profile_created = True
        context.has_profile = True
        return {
            "success": True,
            "profileId": str(profile.id),
            "updatedFields": sorted(fields),
            "completionPercentage": profile.profile_completion_percentage,
            "roles": profile.roles,
        }

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _history_messages(self, history: List[ChatMessage]) -> List[Dict[str, str]]:
        recent = history[-MAX_HISTORY_MESSAGES:]
        return [
            {"role": message.role, "content": message.content}
            for message in recent
            if message.role in ("user", "assistant")
        ]

    def execute_tools(self, calls: List[ToolCall], context: ChatContext) -> List[ToolResult]:
        tools = {tool.name: tool for tool in self.available_tools(context)}
        handlers = self.tool_handlers()
        results: List[ToolResult] = []
        for call in calls:
            definition = tools.get(call.name)
            handler = handlers.get(call.name)
            if definition is None or handler is None:
                results.append(ToolResult(call.id, call.name, error=f"Unknown tool: {call.name}"))
                continue
            if definition.requires_auth and context.user is None:
                results.append(ToolResult(
                    call.id, call.name,
                    error=f"{call.name} requires the user to sign up or log in first",
                ))
                continue
            missing = [name for name in definition.required if (call.arguments or {}).get(name) in (None, "")]
            if missing:
                results.append(ToolResult(
                    call.id, call.name, error=f"Missing required arguments: {', '.join(missing)}"
                ))
                continue
            try:
                result = handler(call.arguments or {}, context)
            except (ToolError,) + DOMAIN_ERRORS as e:
                self.db.rollback()
                logger.info(f"Tool {call.name} rejected: {e}", extra={"flow": self.flow})
                results.append(ToolResult(call.id, call.name, error=str(e)))
                continue
            except Exception as e:
                self.db.rollback()
                logger.error(f"Tool {call.name} failed: {e}", exc_info=True, extra={"flow": self.flow})
                results.append(ToolResult(call.id, call.name, error=f"Internal error while running {call.name}"))
                continue
            results.append(ToolResult(call.id, call.name, result=result))
        return results

    async def run_tool_loop(
        self, messages: List[Dict[str, str]], context: ChatContext
    ) -> Tuple[str, List[ToolCall]]:
        """
        Alternate model calls and tool runs

        Returns:
            (final reply text, every tool call made)
        """
        tool_names = [tool.name for tool in self.available_tools(context)]
        all_calls: List[ToolCall] = []
        final = ""
        last_content = ""

        for iteration in range(1, self.max_tool_iterations + 1):
            context.prompt_text = "\n\n".join(f"{m['role']}: {m['content']}" for m in messages)
            response = await self.llm_client.complete(messages=messages, use_case=self.use_case)
            content, calls = parse_tool_calls(response.text)
            last_content = content or last_content

            if not calls:
                if looks_like_failed_tool_call(response.text, tool_names) and iteration < self.max_tool_iterations:
                    logger.info(f"Unparseable tool call from the model, asking for a retry", extra={"flow": self.flow})
                    messages = messages + [
                        {"role": "assistant", "content": response.text},
                        {"role": "user", "content": TOOL_PARSE_ERROR_MESSAGE},
                    ]
                    continue
                final = content
                break

            all_calls.extend(calls)
            logger.info(
                f"Running {len(calls)} tool call(s)",
                extra={"flow": self.flow, "iteration": iteration, "tools": [c.name for c in calls]},
            )
            results = self.execute_tools(calls, context)
            stop_reply = self.on_tool_results(results, context)
            if stop_reply:
                final = stop_reply
                break

            followup = (
                f"Tool results:\n{format_tool_results_for_ai(results)}\n\n{self.followup_instruction(context)}"
            )
            messages = messages + [
                {"role": "assistant", "content": response.text},
                {"role": "user", "content": followup},
            ]
        else:
            logger.warning(f"Tool iteration limit ({self.max_tool_iterations}) reached", extra={"flow": self.flow})

        return final or last_content or FALLBACK_REPLY, all_calls

    def new_session_id(self) -> str:
        return f"{self.flow}_{int(utc_now().timestamp() * 1000)}_{uuid4().hex[:9]}"

    def build_response(
        self, session_id: str, text: str, calls: List[ToolCall], context: ChatContext
    ) -> ChatResponse:
        extracted_name = extract_name_tag(text, self.name_tag) if self.name_tag else None
        cleaned = strip_name_tags(text)
        prompts, important_index = extract_suggested_prompts(cleaned)
        cleaned = sanitize_content(remove_suggestions_from_content(cleaned))

        metadata: Dict[str, Any] = {}
        if calls:
            metadata["toolCalls"] = [call.to_dict() for call in calls]
        if context.leg_references:
            metadata["legReferences"] = context.leg_references
        # [[leg:...]] and [[register:...]] markers are rendered as links by the client
        inline_legs = extract_leg_references(cleaned)
        if inline_legs:
            metadata["inlineLegReferences"] = inline_legs
        registration_refs = extract_registration_references(cleaned)
        if registration_refs:
            metadata["registrationReferences"] = registration_refs
        if suggests_signup_or_profile_creation(cleaned):
            metadata["suggestsSignup"] = True

        message = ChatMessage(
            id=f"msg_{uuid4().hex[:16]}",
            role="assistant",
            content=cleaned,
            timestamp=utc_now_iso(),
            metadata=metadata or None,
        )
        return ChatResponse(
            session_id=session_id,
            message=message,
            extracted_name=extracted_name,
            suggested_prompts=prompts,
            important_prompt_index=important_index,
            profile_created=context.profile_created,
            boat_created=context.boat_created,
            journey_created=context.journey_created,
        )

    async def chat(self, request: ChatRequest, user: Optional[User] = None) -> ChatResponse:
        """
        Answer one user message

        Raises:
            LLMError: If the completion provider fails
        """
        session_id = request.session_id or self.new_session_id()
        context = ChatContext(
            request=request,
            user=user,
            profile_completion_mode=bool(request.profile_completion_mode and user is not None),
        )
        self.prepare_context(context)

        messages = [{"role": "system", "content": self.build_system_prompt(context)}]
        messages.extend(self._history_messages(request.conversation_history))
        messages.append({"role": "user", "content": request.message})

        logger.info(
            f"{self.flow} chat turn",
            extra={
                "session_id": session_id,
                "authenticated": user is not None,
                "history": len(request.conversation_history),
                "profile_completion_mode": context.profile_completion_mode,
            },
        )
        text, calls = await self.run_tool_loop(messages, context)
        return self.build_response(session_id, text, calls, context)

    # ------------------------------------------------------------------
    # Prompt pieces
    # ------------------------------------------------------------------

    @staticmethod
    def definitions_section() -> str:
        levels = "\n".join(
            f"- {level} = {d['name']}: {d['description']}" for level, d in EXPERIENCE_LEVEL_DEFINITIONS.items()
        )
        risks = "\n".join(f"- {name}: {d['description']}" for name, d in RISK_LEVEL_DEFINITIONS.items())
        skills = "\n".join(f"- {s['name']}: {s['description']}" for s in get_skill_definitions())
        return (
            f"## EXPERIENCE LEVELS\n{levels}\n\n"
            f"## COMFORT ZONES (risk_level)\n{risks}\n\n"
            f"## SKILLS (use ONLY these exact names)\n{skills}"
        )

    @staticmethod
    def preferences_section(preferences: Dict[str, Any]) -> str:
        known = {k: v for k, v in (preferences or {}).items() if v not in (None, "", [], {})}
        if not known:
            return ""
        lines = "\n".join(f"- {key}: {json.dumps(value, default=str)}" for key, value in known.items())
        return f"## GATHERED PREFERENCES SO FAR\n{lines}"

    @staticmethod
    def known_user_section(user_profile: Optional[KnownUserProfile]) -> str:
        if user_profile is None:
            return ""
        known = []
        if user_profile.full_name:
            known.append(f'- Name: "{user_profile.full_name}"')
        if user_profile.email:
            known.append(f'- Email: "{user_profile.email}"')
        if user_profile.phone:
            known.append(f'- Phone: "{user_profile.phone}"')
        if user_profile.avatar_url:
            known.append("- Profile photo: already set")
        return "## FROM SIGNUP\n" + "\n".join(known) if known else ""

    def tool_instructions(self, context: ChatContext) -> str:
        return (
            "## TOOLS\n"
            f"{tools_to_prompt_format(self.available_tools(context))}\n\n"
            "To use a tool, answer with a code block like:\n"
            "```tool_call\n"
            '{"name": "get_profile_completion_status", "arguments": {}}\n'
            "```\n"
            "Put each call in its own block, use complete JSON with real values, "
            "and wait for the results before telling the user something was done."
        )

    def suggestions_section(self) -> str:
        return (
            "## SUGGESTED PROMPTS\n"
            "End every reply with 1-3 short replies the user might send next:\n"
            "[SUGGESTIONS]\n- first suggestion\n- second suggestion\n[/SUGGESTIONS]\n"
            "Prefix the most important one with [IMPORTANT]."
        )

    def current_date_line(self) -> str:
        return f"CURRENT DATE: {utc_now().date().isoformat()}"
