"""
Prospect (crew) onboarding chat: leg discovery and, after signup, the crew profile
"""
from typing import Any, Dict, List, Optional

from app.core.logging_config import LoggingConfig
from app.models.profile import UserRole
from app.models.user import User
from app.services.chat_base import (DEFINITION_TOOLS, PROFILE_STATUS_TOOL,
                                    UPDATE_PROFILE_TOOL, BaseChatService,
                                    ChatContext, ChatMessage, ChatRequest,
                                    ToolDefinition, ToolError, TriggerResponse)
from app.services.journey_service import (BBOX_KEYS, JourneyService,
                                          format_leg, parse_bbox)
from app.services.llm_client import LLMError
from app.services.onboarding_session_service import (PROSPECT,
                                                     OnboardingSessionService)
from app.utils.profile_extraction import extract_profile_from_conversation
from app.utils.response_parsing import ToolResult

logger = LoggingConfig.get_logger(__name__)

MAX_TOOL_ITERATIONS = 5
MAX_LEG_REFERENCES = 8
DEFAULT_SEARCH_LIMIT = 5
PROSPECT_CHAT_USE_CASE = "prospect-chat"

PROSPECT_TRIGGER_MESSAGE = (
    "[SYSTEM: User just completed signup and is now authenticated. Review the ENTIRE "
    "conversation history above and extract ALL profile information the user shared "
    "(name, experience level, comfort zones, skills, certifications, sailing preferences, "
    "availability, phone). SAVE their profile using update_user_profile so it is stored.]"
)

SEARCH_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        "search_legs",
        "Search published sailing legs that still need crew.",
        {
            "startDate": "Earliest date, YYYY-MM-DD",
            "endDate": "Latest date, YYYY-MM-DD",
            "location": "Place name to match the departure or arrival port",
            "riskLevel": "One comfort zone",
            "limit": f"Maximum results (default {DEFAULT_SEARCH_LIMIT})",
        },
        requires_auth=False,
    ),
    ToolDefinition(
        "search_legs_by_location",
        "Search legs departing from and/or arriving in a geographic area.",
        {
            "departureBbox": '{"minLng": ..., "minLat": ..., "maxLng": ..., "maxLat": ...}',
            "arrivalBbox": "Same shape as departureBbox",
            "departureDescription": "Human name of the departure area",
            "arrivalDescription": "Human name of the arrival area",
            "startDate": "Earliest date, YYYY-MM-DD",
            "endDate": "Latest date, YYYY-MM-DD",
            "limit": f"Maximum results (default {DEFAULT_SEARCH_LIMIT})",
        },
        requires_auth=False,
    ),
]

REGION_BOXES = """\
- Mediterranean: minLng -6, minLat 30, maxLng 36, maxLat 46
- Western Mediterranean / Balearics: minLng -1, minLat 36, maxLng 10, maxLat 44
- Caribbean: minLng -90, minLat 9, maxLng -59, maxLat 27
- Canary Islands: minLng -18.5, minLat 27.5, maxLng -13, maxLat 29.5
- English Channel: minLng -6, minLat 48.5, maxLng 2, maxLat 51.2
- Baltic Sea: minLng 9, minLat 53, maxLng 30, maxLat 66
- Atlantic crossing (Canaries to Caribbean) departures: use the Canary Islands box"""


def _limit(value: Any) -> int:
    try:
        return max(1, min(int(value), 20))
    except (TypeError, ValueError):
        return DEFAULT_SEARCH_LIMIT


def _bbox_error(name: str, raw: Any, missing: List[str]) -> str:
    if missing:
        return (
            f"{name} is missing required coordinates: {', '.join(missing)}. You provided: {raw} "
            f"Each bounding box must have all 4 coordinates: {', '.join(BBOX_KEYS)}."
        )
    return "No valid bounding box provided."


class ProspectChatService(BaseChatService):
    """Chat that helps would-be crew find legs and sign up"""

    flow = PROSPECT
    name_tag = "PROSPECT_NAME"
    use_case = PROSPECT_CHAT_USE_CASE
    max_tool_iterations = MAX_TOOL_ITERATIONS
    profile_role = UserRole.CREW
    trigger_message = PROSPECT_TRIGGER_MESSAGE

    def __init__(self, db, llm_client=None):
        super().__init__(db, llm_client)
        self.journeys = JourneyService(db)

    def available_tools(self, context: ChatContext) -> List[ToolDefinition]:
        tools = DEFINITION_TOOLS + SEARCH_TOOLS
        if context.profile_completion_mode:
            tools = tools + [PROFILE_STATUS_TOOL, UPDATE_PROFILE_TOOL]
        return tools

    def tool_handlers(self):
        handlers = super().tool_handlers()
        handlers["search_legs"] = self._tool_search_legs
        handlers["search_legs_by_location"] = self._tool_search_legs_by_location
        return handlers

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _tool_search_legs(self, args: Dict[str, Any], context: ChatContext):
        location = args.get("location") or args.get("query") or args.get("departureDescription")
        legs = self.journeys.search_published_legs(
            start_date=args.get("startDate"),
            end_date=args.get("endDate"),
            location_query=location,
            risk_level=args.get("riskLevel"),
            limit=_limit(args.get("limit")),
            crew_needed=True,
        )
        formatted = [format_leg(leg) for leg in legs]
        return {"legs": formatted, "total": len(formatted), "searchedLocation": location}

    def _tool_search_legs_by_location(self, args: Dict[str, Any], context: ChatContext):
        raw_departure, raw_arrival = args.get("departureBbox"), args.get("arrivalBbox")
        departure, departure_missing = parse_bbox(raw_departure)
        arrival, arrival_missing = parse_bbox(raw_arrival)

        if raw_departure is not None and departure is None:
            raise ToolError(_bbox_error("departureBbox", raw_departure, departure_missing))
        if raw_arrival is not None and arrival is None:
            raise ToolError(_bbox_error("arrivalBbox", raw_arrival, arrival_missing))
        if departure is None and arrival is None:
            raise ToolError(_bbox_error("departureBbox", raw_departure, []))

        legs = self.journeys.search_legs_by_bbox(
            departure_bbox=departure,
            arrival_bbox=arrival,
            start_date=args.get("startDate"),
            end_date=args.get("endDate"),
            limit=_limit(args.get("limit")),
            crew_needed=True,
        )
        formatted = [format_leg(leg) for leg in legs]
        searched_departure = args.get("departureDescription")
        searched_arrival = args.get("arrivalDescription")
        if formatted:
            message = f"Found {len(formatted)} leg(s)"
        else:
            message = "No legs found in that area for those dates"
        return {
            "legs": formatted,
            "total": len(formatted),
            "searchedDeparture": searched_departure,
            "searchedArrival": searched_arrival,
            "message": message,
        }

    def on_tool_results(self, results: List[ToolResult], context: ChatContext) -> Optional[str]:
        seen = {ref["id"] for ref in context.leg_references}
        for result in results:
            if result.error or not isinstance(result.result, dict):
                continue
            for leg in result.result.get("legs") or []:
                if len(context.leg_references) >= MAX_LEG_REFERENCES:
                    return None
                if leg["id"] in seen:
                    continue
                seen.add(leg["id"])
                context.leg_references.append({"id": leg["id"], "name": leg.get("name")})
        return None

    # ------------------------------------------------------------------
    # Prompt
    # ------------------------------------------------------------------

    def build_system_prompt(self, context: ChatContext) -> str:
        request = context.request
        if context.profile_completion_mode:
            goal = (
                "## PROFILE COMPLETION MODE\nThe user has signed up. Save everything they told you "
                "with update_user_profile (only facts they actually stated), then tell them what is "
                "still missing from their profile."
            )
        else:
            goal = (
                "## GOAL\nLearn what kind of sailing the user wants, when they are free and where, "
                "show them matching legs, and encourage them to sign up to register."
            )
        sections = [
            "You are SailSmart's assistant for people who want to crew on sailing boats.",
            self.current_date_line(),
            goal,
            self.known_user_section(request.user_profile),
            self.preferences_section(request.gathered_preferences),
            self.definitions_section(),
            self.tool_instructions(context),
            "## LEG SEARCH\nFor a region, prefer search_legs_by_location with a bounding box. "
            f"Useful boxes:\n{REGION_BOXES}",
            "## LEG REFERENCES\nMention legs from search results only, written as "
            "[[leg:LEG_ID:Leg Name]] so the user can open them. Never invent legs.",
            "## NAME\nWhen you learn the user's name, include [PROSPECT_NAME: Their Name] once in your reply.",
            self.suggestions_section(),
        ]
        return "\n\n".join(section for section in sections if section)

    # ------------------------------------------------------------------
    # Profile completion
    # ------------------------------------------------------------------

    def apply_extracted_profile(self, user: User, conversation: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Save whatever the deterministic extractor finds, plus the crew role"""
        extracted = extract_profile_from_conversation(conversation)
        self.save_profile(user, extracted)
        logger.info(
            f"Applied extracted profile for user {user.id}",
            extra={"fields": sorted(extracted)},
        )
        return extracted

    async def trigger_profile_completion(
        self,
        user: User,
        session_id: str,
        conversation_history: List[ChatMessage],
        gathered_preferences: Optional[Dict[str, Any]] = None,
        user_profile=None,
    ) -> TriggerResponse:
        """
        Save the crew profile from the pre-signup conversation

        When the model is unavailable or never calls update_user_profile, the
        profile is filled by the keyword extractor instead.
        """
        request = ChatRequest(
            session_id=session_id,
            message=self.trigger_message,
            conversation_history=conversation_history,
            gathered_preferences=gathered_preferences or {},
            profile_completion_mode=True,
            user_profile=user_profile,
        )
        conversation = [{"role": m.role, "content": m.content} for m in conversation_history]

        response = None
        try:
            response = await self.chat(request, user)
        except LLMError as e:
            logger.warning(f"Profile completion chat failed ({e.error_type}), using keyword extraction")

        fallback_applied = False
        if response is None or not response.profile_created:
            self.apply_extracted_profile(user, conversation)
            fallback_applied = True

        OnboardingSessionService(self.db, PROSPECT).mark_profile_completion_triggered(
            session_id, user.id, profile_created=True
        )

        if response is None:
            response = self.build_response(
                session_id,
                "Thanks for signing up! I've saved what you told me to your profile. "
                "Have a look and fill in anything that's missing.",
                [],
                ChatContext(request=request, user=user, profile_created=True),
            )
        data = response.model_dump()
        data["profile_created"] = True
        return TriggerResponse(**data, trigger_message=self.trigger_message, fallback_applied=fallback_applied)
