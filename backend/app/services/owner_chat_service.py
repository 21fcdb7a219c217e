"""
Owner onboarding chat: profile, boat, first journey and its legs
"""
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from app.core.logging_config import LoggingConfig
from app.models.onboarding_session import OwnerOnboardingState
from app.models.profile import UserRole
from app.models.user import User
from app.services.boat_service import BOAT_FIELDS, BoatService
from app.services.chat_base import (DEFINITION_TOOLS, PROFILE_STATUS_TOOL,
                                    UPDATE_PROFILE_TOOL, BaseChatService,
                                    ChatContext, ChatMessage, ChatRequest,
                                    ChatResponse, ToolDefinition, ToolError,
                                    TriggerResponse, normalize_risk_levels)
from app.services.journey_service import (JOURNEY_FIELDS, LEG_FIELDS,
                                          JourneyService)
from app.services.llm_client import LLMClient
from app.services.onboarding_session_service import (OWNER,
                                                     OnboardingSessionService,
                                                     can_transition)
from app.utils.datetime_utils import utc_now_iso
from app.utils.response_parsing import ToolCall

logger = LoggingConfig.get_logger(__name__)

MAX_TOOL_ITERATIONS = 10
OWNER_CHAT_USE_CASE = "owner-chat"

OWNER_TRIGGER_MESSAGE = (
    "[SYSTEM: User just completed signup and is now authenticated. Review the ENTIRE "
    "conversation history above and extract ALL profile information the owner shared "
    "(name, experience, certifications, sailing preferences, comfort zones, skills, phone). "
    "SAVE their profile using update_user_profile so it is stored, then continue with "
    "their boat.]"
)

SIGNUP_REQUIRED_MESSAGE = (
    "You need to sign up before you can perform this action. "
    "Create an account and we will pick up right where we left off."
)

OWNER_TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        "create_boat",
        "Create the owner's boat. Only after the profile exists.",
        {
            "name": "Boat name",
            "type": "One of: Daysailers, Coastal cruisers, Traditional offshore cruisers, "
                    "Performance cruisers, Multihulls, Expedition sailboats",
            "make_model": "Make and model, e.g. 'Beneteau Oceanis 40'",
            "capacity": "Number of people aboard",
            "home_port": "Home port",
            "country_flag": "2-letter ISO country code of the flag",
            "loa_m": "Length overall in metres",
            "characteristics": "Free text",
            "capabilities": "Free text",
            "accommodations": "Free text",
        },
        required=("name",),
    ),
    ToolDefinition("get_owner_boats", "List the owner's boats."),
    ToolDefinition(
        "create_journey",
        "Create a journey on one of the owner's boats. It starts in planning.",
        {
            "boat_id": "Id of the owner's boat (from get_owner_boats or create_boat)",
            "name": "Journey name",
            "description": "What the journey is about",
            "start_date": "YYYY-MM-DD",
            "end_date": "YYYY-MM-DD",
            "risk_level": "List of comfort zones",
            "skills": "List of known skill names",
            "min_experience_level": "1-4",
            "cost_model": "Shared contribution, Owner covers all costs, Crew pays a fee, "
                          "Delivery/paid crew or Not defined",
            "cost_info": "Free text about costs",
        },
        required=("boat_id", "name"),
    ),
    ToolDefinition(
        "create_leg",
        "Add a leg to one of the owner's journeys.",
        {
            "journey_id": "Id of the journey",
            "name": "Leg name, e.g. 'Palma to Mahon'",
            "description": "Free text",
            "start_date": "YYYY-MM-DD",
            "end_date": "YYYY-MM-DD",
            "crew_needed": "Number of crew wanted",
            "risk_level": "One comfort zone",
            "skills": "List of known skill names",
            "min_experience_level": "1-4",
            "waypoints": 'At least 2 of {"name": "...", "lat": 39.5, "lng": 2.6} in sailing order',
        },
        required=("journey_id", "name", "waypoints"),
    ),
    ToolDefinition("get_owner_journeys", "List the owner's journeys with their ids and states."),
]

ADVANCEABLE_STATES = (
    OwnerOnboardingState.PROFILE_PENDING.value,
    OwnerOnboardingState.BOAT_PENDING.value,
    OwnerOnboardingState.JOURNEY_PENDING.value,
)

ACTION_LABELS = {
    "update_user_profile": "Your profile has been saved successfully! Next, tell me about your boat.",
    "create_boat": 'Your boat "{name}" has been created successfully!',
    "create_journey": 'Your journey "{name}" has been created successfully!',
    "create_leg": 'The leg "{name}" has been added to your journey.',
}


def _pick(args: Dict[str, Any], allowed) -> Dict[str, Any]:
    return {k: v for k, v in args.items() if k in allowed and v not in (None, "")}


class OwnerChatService(BaseChatService):
    """Chat that walks a boat owner through onboarding"""

    flow = OWNER
    name_tag = "OWNER_NAME"
    use_case = OWNER_CHAT_USE_CASE
    max_tool_iterations = MAX_TOOL_ITERATIONS
    profile_role = UserRole.OWNER
    trigger_message = OWNER_TRIGGER_MESSAGE

    def __init__(self, db: Session, llm_client: Optional[LLMClient] = None):
        super().__init__(db, llm_client)
        self.boats = BoatService(db)
        self.journeys = JourneyService(db)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def prepare_context(self, context: ChatContext):
        if context.user is None:
            return
        profile = self.profiles.get_profile(context.user.id)
        context.has_profile = bool(profile and profile.has_role(UserRole.OWNER))
        context.has_boat = bool(self.boats.list_owner_boats(context.user.id))
        context.has_journey = bool(self.journeys.list_owner_journeys(context.user.id))

    def available_tools(self, context: ChatContext) -> List[ToolDefinition]:
        return DEFINITION_TOOLS + [PROFILE_STATUS_TOOL, UPDATE_PROFILE_TOOL] + OWNER_TOOLS

    def tool_handlers(self):
        handlers = super().tool_handlers()
        handlers.update({
            "update_user_profile": self._tool_update_owner_profile,
            "create_boat": self._tool_create_boat,
            "get_owner_boats": self._tool_get_owner_boats,
            "create_journey": self._tool_create_journey,
            "create_leg": self._tool_create_leg,
            "get_owner_journeys": self._tool_get_owner_journeys,
        })
        return handlers

    def _advance_session(self, context: ChatContext, state: OwnerOnboardingState):
        session_id = context.request.session_id
        if not session_id:
            return
        sessions = OnboardingSessionService(self.db, OWNER)
        record = sessions.get_record(session_id)
        # Signup and consent are never skipped from inside the chat
        if record is None or record.onboarding_state not in ADVANCEABLE_STATES:
            return
        if record.onboarding_state != state.value and can_transition(OWNER, record.onboarding_state, state):
            sessions.update_onboarding_state(session_id, state)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _tool_update_owner_profile(self, args: Dict[str, Any], context: ChatContext):
        if context.has_profile and not context.profile_completion_mode:
            raise ToolError("Profile creation is already complete. Move on to the boat.")
        result = self._tool_update_user_profile(args, context)
        self._advance_session(context, OwnerOnboardingState.BOAT_PENDING)
        return result

    def _tool_create_boat(self, args: Dict[str, Any], context: ChatContext):
        if context.has_boat:
            raise ToolError("Boat creation is already complete. Use get_owner_boats to find its id.")
        fields = _pick(args, BOAT_FIELDS)
        boat = self.boats.create_boat(context.user.id, **fields)
        context.has_boat = True
        context.boat_created = True
        self._advance_session(context, OwnerOnboardingState.JOURNEY_PENDING)
        return {"success": True, "boatId": str(boat.id), "name": boat.name}

    def _tool_get_owner_boats(self, args: Dict[str, Any], context: ChatContext):
        boats = self.boats.list_owner_boats(context.user.id)
        return {
            "boats": [
                {"id": str(b.id), "name": b.name, "type": b.type, "makeModel": b.make_model, "homePort": b.home_port}
                for b in boats
            ],
            "total": len(boats),
        }

    def _tool_create_journey(self, args: Dict[str, Any], context: ChatContext):
        if context.has_journey:
            raise ToolError("Journey creation is already complete. Use get_owner_journeys and add legs.")
        try:
            boat_id = UUID(str(args.get("boat_id")))
        except ValueError:
            raise ToolError(f"Invalid boat_id '{args.get('boat_id')}'. Use get_owner_boats to look it up.")
        fields = _pick(args, JOURNEY_FIELDS)
        if "risk_level" in fields:
            fields["risk_level"] = normalize_risk_levels(fields["risk_level"]) or []
        fields.pop("state", None)
        fields["is_ai_generated"] = True
        fields["ai_prompt"] = context.prompt_text or context.request.message
        journey = self.journeys.create_journey(context.user.id, boat_id, **fields)
        context.has_journey = True
        context.journey_created = True
        self._advance_session(context, OwnerOnboardingState.COMPLETED)
        return {"success": True, "journeyId": str(journey.id), "name": journey.name, "state": journey.state}

    def _tool_create_leg(self, args: Dict[str, Any], context: ChatContext):
        waypoints = args.get("waypoints")
        if not isinstance(waypoints, list) or len(waypoints) < 2:
            raise ToolError("A leg needs at least 2 waypoints (departure and arrival) with name, lat and lng")
        try:
            journey_id = UUID(str(args.get("journey_id")))
        except ValueError:
            raise ToolError(f"Invalid journey_id '{args.get('journey_id')}'. Use get_owner_journeys to look it up.")
        fields = _pick(args, LEG_FIELDS)
        leg = self.journeys.create_leg(context.user.id, journey_id, waypoints=waypoints, **fields)
        return {"success": True, "legId": str(leg.id), "name": leg.name, "waypoints": len(leg.waypoints)}

    def _tool_get_owner_journeys(self, args: Dict[str, Any], context: ChatContext):
        journeys = self.journeys.list_owner_journeys(context.user.id)
        return {
            "journeys": [
                {
                    "id": str(j.id),
                    "name": j.name,
                    "state": j.state,
                    "boatId": str(j.boat_id),
                    "startDate": j.start_date.isoformat() if j.start_date else None,
                    "endDate": j.end_date.isoformat() if j.end_date else None,
                }
                for j in journeys
            ],
            "total": len(journeys),
        }

    # ------------------------------------------------------------------
    # Prompt
    # ------------------------------------------------------------------

    def _progress_section(self, context: ChatContext) -> str:
        if context.user is None:
            return (
                "## STATUS\nThe owner is NOT signed up yet. Get to know them and their plans, "
                "then encourage them to sign up so you can save everything. Do not call tools "
                "that need an account."
            )
        def done(flag: bool) -> str:
            return "done" if flag else "to do"

        return (
            "## STATUS\nThe owner is signed in.\n"
            f"- Profile: {done(context.has_profile)}\n"
            f"- Boat: {done(context.has_boat)}\n"
            f"- First journey: {done(context.has_journey)}\n"
            "Work through whatever is still to do, one step at a time, and confirm details "
            "with the owner before creating anything."
        )

    def _owner_notes_section(self, request: ChatRequest) -> str:
        notes = []
        if request.skipper_profile:
            notes.append(f"Skipper profile: {request.skipper_profile}")
        if request.crew_requirements:
            notes.append(f"Crew requirements: {request.crew_requirements}")
        if request.journey_details:
            notes.append(f"Journey details: {request.journey_details}")
        return "## FROM THE OWNER'S INTRO FORM\n" + "\n".join(notes) if notes else ""

    def build_system_prompt(self, context: ChatContext) -> str:
        request = context.request
        sections = [
            "You are SailSmart's onboarding assistant for boat owners (skippers). Help the owner "
            "set up their profile, add their boat and plan a first journey so they can find crew.",
            self.current_date_line(),
            self._progress_section(context),
            self._owner_notes_section(request),
            self.known_user_section(request.user_profile),
            self.preferences_section(request.gathered_preferences),
            self.definitions_section(),
            self.tool_instructions(context),
            "## NAME\nWhen you learn the owner's name, include [OWNER_NAME: Their Name] once in your reply.",
            self.suggestions_section(),
        ]
        if context.profile_completion_mode:
            sections.insert(
                1,
                "## PROFILE COMPLETION MODE\nThe owner just signed up. Save everything they told you "
                "earlier in this conversation with update_user_profile before anything else.",
            )
        return "\n\n".join(section for section in sections if section)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest, user: Optional[User] = None) -> ChatResponse:
        if request.approved_action is not None:
            return self.execute_approved_action(request, user)
        return await super().chat(request, user)

    def execute_approved_action(self, request: ChatRequest, user: Optional[User]) -> ChatResponse:
        """
        Run a tool the owner confirmed in the UI, without asking the model

        Returns:
            ChatResponse whose message reports the outcome
        """
        session_id = request.session_id or self.new_session_id()
        action = request.approved_action
        context = ChatContext(request=request, user=user, profile_completion_mode=True)

        if user is None:
            content = SIGNUP_REQUIRED_MESSAGE
        else:
            self.prepare_context(context)
            call = ToolCall(name=action.tool_name, arguments=dict(action.arguments))
            result = self.execute_tools([call], context)[0]
            logger.info(
                f"Approved action {action.tool_name} for owner {user.id}",
                extra={"session_id": session_id, "success": result.error is None},
            )
            if result.error:
                content = f"There was an issue: {result.error}\n\nPlease try again."
            else:
                template = ACTION_LABELS.get(action.tool_name, "Done!")
                content = template.format(name=action.arguments.get("name", ""))

        message = ChatMessage(
            id=f"msg_{uuid4().hex[:16]}",
            role="assistant",
            content=content,
            timestamp=utc_now_iso(),
        )
        return ChatResponse(
            session_id=session_id,
            message=message,
            profile_created=context.profile_created,
            boat_created=context.boat_created,
            journey_created=context.journey_created,
        )

    async def trigger_profile_completion(
        self,
        user: User,
        session_id: str,
        conversation_history: List[ChatMessage],
        gathered_preferences: Optional[Dict[str, Any]] = None,
        user_profile=None,
    ) -> TriggerResponse:
        """
        Save the profile from the pre-signup conversation right after signup

        Raises:
            LLMError: If the completion provider fails
        """
        request = ChatRequest(
            session_id=session_id,
            message=self.trigger_message,
            conversation_history=conversation_history,
            gathered_preferences=gathered_preferences or {},
            profile_completion_mode=True,
            user_profile=user_profile,
        )
        response = await super().chat(request, user)
        OnboardingSessionService(self.db, OWNER).mark_profile_completion_triggered(
            session_id, user.id, profile_created=response.profile_created
        )
        return TriggerResponse(**response.model_dump(), trigger_message=self.trigger_message)
