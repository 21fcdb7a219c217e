"""
Tests for the owner and prospect onboarding chats
"""
import json

import pytest

from app.models.boat import Boat
from app.services.chat_base import (FALLBACK_REPLY, TOOL_PARSE_ERROR_MESSAGE,
                                    ChatMessage, ChatRequest, PendingAction,
                                    normalize_risk_levels,
                                    normalize_sailing_experience)
from app.services.llm_client import LLMConnectionError
from app.services.onboarding_session_service import (OWNER, PROSPECT,
                                                     OnboardingSessionService)
from app.services.owner_chat_service import (SIGNUP_REQUIRED_MESSAGE,
                                             OwnerChatService)
from app.services.profile_service import ProfileService
from app.services.prospect_chat_service import ProspectChatService


def tool_call(name, /, **arguments):
    return f'```tool_call\n{json.dumps({"name": name, "arguments": arguments})}\n```'


class TestNormalizers:
    """Cleaning of model-supplied profile values"""

    def test_risk_levels(self):
        assert normalize_risk_levels("Offshore sailing") == ["Offshore sailing"]
        assert normalize_risk_levels('["Coastal sailing", "Bungee"]') == ["Coastal sailing"]
        assert normalize_risk_levels([["Extreme sailing"], "Extreme sailing"]) == ["Extreme sailing"]
        assert normalize_risk_levels("Bungee") is None
        assert normalize_risk_levels(None) is None

    def test_sailing_experience(self):
        assert normalize_sailing_experience(3) == 3
        assert normalize_sailing_experience(9) == 2
        assert normalize_sailing_experience("Level 4") == 4
        assert normalize_sailing_experience("Coastal Skipper") == 3
        assert normalize_sailing_experience("total beginner") == 1
        assert normalize_sailing_experience("no idea") == 2
        assert normalize_sailing_experience(None) is None


class TestProspectChat:
    """Anonymous leg discovery"""

    @pytest.mark.asyncio
    async def test_plain_reply(self, db, fake_llm):
        llm = fake_llm(
            "Nice to meet you, Alex! [PROSPECT_NAME: Alex]\n\n"
            "[SUGGESTIONS]\n- Show me legs in June\n- [IMPORTANT] Sign up\n[/SUGGESTIONS]"
        )
        request = ChatRequest(
            message="Hi, I'm Alex",
            conversation_history=[ChatMessage(role="assistant", content="Welcome aboard!")],
        )

        response = await ProspectChatService(db, llm_client=llm).chat(request)

        assert response.session_id.startswith("prospect_")
        assert response.message.content == "Nice to meet you, Alex!"
        assert response.extracted_name == "Alex"
        assert response.suggested_prompts == ["Show me legs in June", "Sign up"]
        assert response.important_prompt_index == 1
        assert response.profile_created is False

        [call] = llm.calls
        assert call["use_case"] == "prospect-chat"
        messages = call["messages"]
        assert messages[0]["role"] == "system"
        assert "update_user_profile" not in messages[0]["content"]
        assert messages[1:] == [
            {"role": "assistant", "content": "Welcome aboard!"},
            {"role": "user", "content": "Hi, I'm Alex"},
        ]

    @pytest.mark.asyncio
    async def test_search_legs_tool(self, db, owner, make_leg, fake_llm):
        leg = make_leg(owner)
        llm = fake_llm(
            tool_call("search_legs", location="palma"),
            f"Have a look at [[leg:{leg.id}:Palma to Mahon]].",
        )

        response = await ProspectChatService(db, llm_client=llm).chat(
            ChatRequest(session_id="prospect-cookie", message="Anything from Palma?")
        )

        assert response.session_id == "prospect-cookie"
        assert response.message.metadata["legReferences"] == [{"id": str(leg.id), "name": "Palma to Mahon"}]
        assert [c["name"] for c in response.message.metadata["toolCalls"]] == ["search_legs"]
        assert response.message.metadata["inlineLegReferences"] == [{"legId": str(leg.id), "legName": "Palma to Mahon"}]
        assert "suggestsSignup" not in response.message.metadata
        followup = llm.calls[1]["messages"][-1]["content"]
        assert "Tool search_legs returned" in followup
        assert "Mahon, Menorca" in followup

    @pytest.mark.asyncio
    async def test_registration_links_and_signup_hint(self, db, owner, make_leg, fake_llm):
        leg = make_leg(owner)
        llm = fake_llm(f"You can [[register:{leg.id}:Palma to Mahon]] once you sign up.")

        response = await ProspectChatService(db, llm_client=llm).chat(ChatRequest(message="How do I join?"))

        metadata = response.message.metadata
        assert metadata["registrationReferences"] == [{"legId": str(leg.id), "legName": "Palma to Mahon"}]
        assert metadata["suggestsSignup"] is True

    @pytest.mark.asyncio
    async def test_bbox_search_reports_missing_coordinates(self, db, fake_llm):
        llm = fake_llm(
            tool_call("search_legs_by_location", departureBbox={"minLng": -1, "minLat": 36}),
            "Let me try that again.",
        )

        await ProspectChatService(db, llm_client=llm).chat(ChatRequest(message="Balearics?"))

        followup = llm.calls[1]["messages"][-1]["content"]
        assert "departureBbox is missing required coordinates: maxLng, maxLat" in followup

    @pytest.mark.asyncio
    async def test_profile_tools_hidden_before_signup(self, db, fake_llm):
        llm = fake_llm(tool_call("update_user_profile", full_name="Alex"), "Please sign up first.")

        response = await ProspectChatService(db, llm_client=llm).chat(ChatRequest(message="Save me"))

        assert response.profile_created is False
        assert "Unknown tool: update_user_profile" in llm.calls[1]["messages"][-1]["content"]

    @pytest.mark.asyncio
    async def test_unparsed_tool_call_is_retried(self, db, fake_llm):
        llm = fake_llm("Sure, calling search_legs( now", "Here is what I found.")

        response = await ProspectChatService(db, llm_client=llm).chat(ChatRequest(message="Legs?"))

        assert response.message.content == "Here is what I found."
        assert llm.calls[1]["messages"][-1]["content"] == TOOL_PARSE_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_iteration_limit_falls_back(self, db, fake_llm):
        llm = fake_llm(*[tool_call("get_skills_definitions")] * 5)

        response = await ProspectChatService(db, llm_client=llm).chat(ChatRequest(message="Skills?"))

        assert response.message.content == FALLBACK_REPLY
        assert llm.complete.await_count == 5


class TestProspectProfileCompletion:
    """Saving the crew profile right after signup"""

    @pytest.mark.asyncio
    async def test_model_saves_profile(self, db, make_user, fake_llm):
        user = make_user("alex")
        sessions = OnboardingSessionService(db, PROSPECT)
        sessions.save_session("prospect-cookie", {"onboardingState": "profile_pending"}, current_user=user)
        llm = fake_llm(
            tool_call("update_user_profile", full_name="Alex Morgan", comfort_zones=["Coastal sailing"]),
            "Your profile is saved!",
        )

        response = await ProspectChatService(db, llm_client=llm).trigger_profile_completion(
            user, "prospect-cookie", [ChatMessage(role="user", content="I'm Alex Morgan, I like coastal trips")]
        )

        assert response.profile_created is True
        assert response.fallback_applied is False
        assert response.trigger_message.startswith("[SYSTEM: User just completed signup")
        profile = ProfileService(db).get_profile(user.id)
        assert profile.full_name == "Alex Morgan"
        assert profile.risk_level == ["Coastal sailing"]
        assert profile.roles == ["crew"]
        assert sessions.get_session("prospect-cookie")["onboardingState"] == "completed"

    @pytest.mark.asyncio
    async def test_keyword_fallback_when_model_fails(self, db, make_user, fake_llm):
        user = make_user("alex")
        llm = fake_llm(LLMConnectionError("provider down"))

        response = await ProspectChatService(db, llm_client=llm).trigger_profile_completion(
            user, "prospect-cookie", [ChatMessage(role="user", content="I'm keen on offshore passages")]
        )

        assert response.profile_created is True
        assert response.fallback_applied is True
        profile = ProfileService(db).get_profile(user.id)
        assert profile.roles == ["crew"]
        assert profile.risk_level == ["Offshore sailing"]


class TestOwnerChat:
    """Owner onboarding: profile, boat and journey"""

    @pytest.mark.asyncio
    async def test_anonymous_owner_cannot_create(self, db, fake_llm):
        llm = fake_llm(tool_call("create_boat", name="Sea Breeze"), "Sign up and I'll save your boat.")

        response = await OwnerChatService(db, llm_client=llm).chat(ChatRequest(message="My boat is Sea Breeze"))

        assert response.session_id.startswith("owner_")
        assert response.boat_created is False
        assert "create_boat requires the user to sign up" in llm.calls[1]["messages"][-1]["content"]
        assert db.query(Boat).count() == 0

    @pytest.mark.asyncio
    async def test_profile_save_advances_session(self, db, make_user, fake_llm):
        user = make_user("marina")
        sessions = OnboardingSessionService(db, OWNER)
        sessions.save_session("owner-cookie", {"onboardingState": "profile_pending"}, current_user=user)
        llm = fake_llm(
            tool_call(
                "update_user_profile",
                full_name="Marina Mar",
                sailing_experience="Coastal skipper",
                risk_level="Offshore sailing",
                skills=["navigation", "juggling"],
                email="ignored@example.com",
            ),
            "Saved! [OWNER_NAME: Marina] Now, tell me about your boat.",
        )

        response = await OwnerChatService(db, llm_client=llm).chat(
            ChatRequest(session_id="owner-cookie", message="Save my profile", profile_completion_mode=True),
            user,
        )

        assert response.profile_created is True
        assert response.extracted_name == "Marina"
        profile = ProfileService(db).get_profile(user.id)
        assert profile.roles == ["owner"]
        assert profile.sailing_experience == 3
        assert profile.risk_level == ["Offshore sailing"]
        assert [s["skill_name"] for s in profile.skills] == ["navigation"]
        assert profile.email == "marina@example.com"
        assert sessions.get_session("owner-cookie")["onboardingState"] == "boat_pending"
        assert llm.calls[0]["use_case"] == "owner-chat"

    @pytest.mark.asyncio
    async def test_approved_action_creates_boat(self, db, owner, fake_llm):
        sessions = OnboardingSessionService(db, OWNER)
        sessions.save_session("owner-cookie", {"onboardingState": "boat_pending"}, current_user=owner)
        llm = fake_llm()
        request = ChatRequest(
            session_id="owner-cookie",
            message="Yes, create it",
            approved_action=PendingAction(tool_name="create_boat", arguments={"name": "Sea Breeze"}),
        )

        response = await OwnerChatService(db, llm_client=llm).chat(request, owner)

        assert response.boat_created is True
        assert response.message.content == 'Your boat "Sea Breeze" has been created successfully!'
        assert db.query(Boat).filter(Boat.owner_id == owner.id).one().name == "Sea Breeze"
        assert sessions.get_session("owner-cookie")["onboardingState"] == "journey_pending"
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_approved_action_needs_signup(self, db, fake_llm):
        request = ChatRequest(
            message="Yes",
            approved_action=PendingAction(tool_name="create_boat", arguments={"name": "Sea Breeze"}),
        )
        response = await OwnerChatService(db, llm_client=fake_llm()).chat(request)
        assert response.message.content == SIGNUP_REQUIRED_MESSAGE

    @pytest.mark.asyncio
    async def test_approved_action_reports_tool_error(self, db, owner, make_boat, fake_llm):
        make_boat(owner)
        request = ChatRequest(
            message="Yes",
            approved_action=PendingAction(tool_name="create_boat", arguments={"name": "Second Boat"}),
        )

        response = await OwnerChatService(db, llm_client=fake_llm()).chat(request, owner)

        assert response.boat_created is False
        assert response.message.content.startswith("There was an issue: Boat creation is already complete")

    @pytest.mark.asyncio
    async def test_journey_and_leg_tools(self, db, owner, make_boat, fake_llm):
        boat = make_boat(owner)
        llm = fake_llm(
            tool_call(
                "create_journey",
                boat_id=str(boat.id),
                name="Autumn Delivery",
                risk_level='["Offshore sailing"]',
                state="Published",
            ),
            "Journey created.",
        )
        service = OwnerChatService(db, llm_client=llm)

        response = await service.chat(ChatRequest(message="Plan my delivery"), owner)

        assert response.journey_created is True
        [journey] = service.journeys.list_owner_journeys(owner.id)
        assert journey.state == "In planning"
        assert journey.is_ai_generated is True
        assert journey.risk_level == ["Offshore sailing"]
        assert "Plan my delivery" in journey.ai_prompt

        leg_llm = fake_llm(
            tool_call("create_leg", journey_id=str(journey.id), name="Short hop", waypoints=[{"name": "Palma"}]),
            "That leg needs an arrival port.",
        )
        await OwnerChatService(db, llm_client=leg_llm).chat(ChatRequest(message="Add a leg"), owner)
        assert "A leg needs at least 2 waypoints" in leg_llm.calls[1]["messages"][-1]["content"]
