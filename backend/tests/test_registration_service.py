"""
Tests for RegistrationService
"""
import json
from uuid import uuid4

import pytest

from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.models.journey import JourneyState
from app.models.notification import Notification, NotificationType
from app.models.registration import RegistrationStatus
from app.services.assessment_service import AssessmentService
from app.services.consent_service import ConsentService
from app.services.journey_service import JourneyService
from app.services.registration_service import RegistrationService


def _types(db, user):
    return [n.type for n in db.query(Notification).filter(Notification.user_id == user.id).all()]


class TestRegisterForLeg:
    """Crew applications"""

    @pytest.mark.asyncio
    async def test_register(self, db, owner, crew, make_leg):
        leg = make_leg(owner, skills=["navigation", "first_aid"])

        registration, reactivated = await RegistrationService(db).register_for_leg(
            crew.id, leg.id, notes="Happy to cook"
        )

        assert reactivated is False
        assert registration.status == RegistrationStatus.PENDING.value
        assert registration.notes == "Happy to cook"
        assert registration.match_percentage == 50
        assert _types(db, owner) == [NotificationType.NEW_REGISTRATION.value]
        [notification] = db.query(Notification).filter(Notification.user_id == owner.id).all()
        assert notification.notification_metadata["crew_name"] == "Casey Crew"

    @pytest.mark.asyncio
    async def test_only_crew_can_register(self, db, owner, make_leg):
        leg = make_leg(owner)
        with pytest.raises(PermissionDeniedError):
            await RegistrationService(db).register_for_leg(owner.id, leg.id)

    @pytest.mark.asyncio
    async def test_unknown_leg(self, db, crew):
        with pytest.raises(NotFoundError):
            await RegistrationService(db).register_for_leg(crew.id, uuid4())

    @pytest.mark.asyncio
    async def test_unpublished_journey(self, db, owner, crew, make_journey, make_leg):
        journey = make_journey(owner, state=JourneyState.IN_PLANNING.value)
        leg = make_leg(owner, journey=journey)
        with pytest.raises(ValueError):
            await RegistrationService(db).register_for_leg(crew.id, leg.id)

    @pytest.mark.asyncio
    async def test_duplicate_and_reactivation(self, db, owner, crew, make_leg):
        leg = make_leg(owner)
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id)

        with pytest.raises(ConflictError):
            await service.register_for_leg(crew.id, leg.id)

        service.cancel_registration(crew.id, registration.id)
        again, reactivated = await service.register_for_leg(crew.id, leg.id, notes="Back again")

        assert reactivated is True
        assert again.id == registration.id
        assert again.status == RegistrationStatus.PENDING.value
        assert again.notes == "Back again"

    @pytest.mark.asyncio
    async def test_reactivation_replaces_answers(self, db, owner, crew, make_journey, make_leg):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey)
        required = JourneyService(db).create_requirement(owner.id, journey.id, "Can you swim?", question_type="yes_no")
        service = RegistrationService(db)

        registration, _ = await service.register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(required.id), "answer_text": "Yes"},
        ])
        service.cancel_registration(crew.id, registration.id)
        again, reactivated = await service.register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(required.id), "answer_text": "Yes, with a lifejacket"},
        ])

        assert reactivated is True
        assert [a.answer_text for a in again.answers] == ["Yes, with a lifejacket"]

    @pytest.mark.asyncio
    async def test_required_answers(self, db, owner, crew, make_journey, make_leg):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey)
        journeys = JourneyService(db)
        required = journeys.create_requirement(owner.id, journey.id, "Can you swim?", question_type="yes_no")
        optional = journeys.create_requirement(
            owner.id, journey.id, "Favourite knot?", question_type="multiple_choice",
            options=["Bowline", "Reef knot"], is_required=False,
        )
        service = RegistrationService(db)

        with pytest.raises(ValueError):
            await service.register_for_leg(crew.id, leg.id, answers=[
                {"requirement_id": str(required.id), "answer_text": ""},
            ])

        registration, _ = await service.register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(required.id), "answer_text": "Yes"},
            {"requirement_id": str(optional.id), "answer_json": "Bowline"},
        ])
        assert {a.requirement_id for a in registration.answers} == {required.id, optional.id}

    @pytest.mark.asyncio
    async def test_answer_for_foreign_requirement(self, db, owner, crew, make_journey, make_leg):
        leg = make_leg(owner)
        other_journey = make_journey(owner, name="Other")
        foreign = JourneyService(db).create_requirement(owner.id, other_journey.id, "Elsewhere?", is_required=False)

        with pytest.raises(ValueError):
            await RegistrationService(db).register_for_leg(crew.id, leg.id, answers=[
                {"requirement_id": str(foreign.id), "answer_text": "Yes"},
            ])

    @pytest.mark.asyncio
    async def test_auto_approval_on_register(self, db, owner, crew, make_journey, make_leg, fake_llm):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey)
        journeys = JourneyService(db)
        journeys.set_auto_approval(owner.id, journey.id, True, 70)
        question = journeys.create_requirement(owner.id, journey.id, "Can you swim?", question_type="yes_no")
        ConsentService(db).update_consents(crew.id, ai_processing=True)

        llm = fake_llm(json.dumps({"match_score": 88, "reasoning": "Solid crew", "recommendation": "approve"}))
        service = RegistrationService(db, assessment_service=AssessmentService(db, llm_client=llm))
        registration, _ = await service.register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(question.id), "answer_text": "Yes"},
        ])

        assert registration.status == RegistrationStatus.APPROVED.value
        assert registration.auto_approved is True
        assert registration.ai_match_score == 88
        assert NotificationType.REGISTRATION_APPROVED.value in _types(db, crew)
        assert NotificationType.AI_AUTO_APPROVED.value in _types(db, owner)

    @pytest.mark.asyncio
    async def test_failed_assessment_keeps_registration(self, db, owner, crew, make_journey, make_leg):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey)
        journeys = JourneyService(db)
        journeys.set_auto_approval(owner.id, journey.id, True)
        question = journeys.create_requirement(owner.id, journey.id, "Can you swim?")
        ConsentService(db).update_consents(crew.id, ai_processing=True)

        # No LLM is configured in tests, so the assessment raises
        registration, _ = await RegistrationService(db).register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(question.id), "answer_text": "Like a fish"},
        ])

        assert registration.status == RegistrationStatus.PENDING.value
        assert registration.ai_match_score is None


class TestRegistrationManagement:
    """Cancellation, owner decisions and details"""

    @pytest.mark.asyncio
    async def test_cancel(self, db, owner, crew, make_user, make_leg):
        leg = make_leg(owner)
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id)
        stranger = make_user("stranger", roles=["crew"])

        with pytest.raises(PermissionDeniedError):
            service.cancel_registration(stranger.id, registration.id)
        assert service.cancel_registration(crew.id, registration.id).status == RegistrationStatus.CANCELLED.value
        with pytest.raises(ValueError):
            service.cancel_registration(crew.id, registration.id)

    @pytest.mark.asyncio
    async def test_owner_approves(self, db, owner, crew, make_leg):
        leg = make_leg(owner)
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id)

        with pytest.raises(PermissionDeniedError):
            await service.update_registration_status(crew.id, registration.id, RegistrationStatus.APPROVED.value)
        with pytest.raises(ValueError):
            await service.update_registration_status(owner.id, registration.id, RegistrationStatus.PENDING.value)

        updated = await service.update_registration_status(owner.id, registration.id, "Approved")
        assert updated.status == RegistrationStatus.APPROVED.value
        assert _types(db, crew) == [NotificationType.REGISTRATION_APPROVED.value]

        # Approving twice does not notify again
        await service.update_registration_status(owner.id, registration.id, "Approved")
        assert len(_types(db, crew)) == 1

    @pytest.mark.asyncio
    async def test_owner_denies_with_reason(self, db, owner, crew, make_leg):
        leg = make_leg(owner)
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id)

        updated = await service.update_registration_status(
            owner.id, registration.id, "Not approved", notes="Crew is full"
        )

        assert updated.notes == "Crew is full"
        [notification] = db.query(Notification).filter(Notification.user_id == crew.id).all()
        assert notification.type == NotificationType.REGISTRATION_DENIED.value
        assert "Crew is full" in notification.message

    @pytest.mark.asyncio
    async def test_listing(self, db, owner, crew, make_leg):
        first = make_leg(owner)
        second = make_leg(owner, name="Mahon to Palma")
        service = RegistrationService(db)
        reg_a, _ = await service.register_for_leg(crew.id, first.id)
        await service.register_for_leg(crew.id, second.id)
        service.cancel_registration(crew.id, reg_a.id)

        assert len(service.list_user_registrations(crew.id)) == 2
        assert [r.id for r in service.list_user_registrations(crew.id, status="Cancelled")] == [reg_a.id]
        assert [r.id for r in service.list_user_registrations(crew.id, leg_id=first.id)] == [reg_a.id]
        assert len(service.list_owner_registrations(owner.id)) == 2
        assert len(service.list_owner_registrations(owner.id, status="Pending approval")) == 1
        assert service.list_owner_registrations(crew.id) == []

    @pytest.mark.asyncio
    async def test_details(self, db, owner, crew, make_user, make_journey, make_leg):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey, skills=["navigation", "night_sailing"])
        question = JourneyService(db).create_requirement(owner.id, journey.id, "Why join?")
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id, answers=[
            {"requirement_id": str(question.id), "answer_text": "Adventure"},
        ])

        details = service.get_registration_details(owner.id, registration.id)
        assert details["is_owner"] is True
        assert details["matching_skills"] == ["Navigation"]
        assert details["missing_skills"] == ["Night Sailing"]
        assert details["answers"][0]["question_text"] == "Why join?"
        assert details["answers"][0]["answer_text"] == "Adventure"
        assert details["crew_profile"]["full_name"] == "Casey Crew"
        assert details["journey"]["name"] == "Balearic Summer"
        assert details["match_color"] == "yellow"
        assert details["meets_experience_level"] is True

        assert service.get_registration_details(crew.id, registration.id)["is_owner"] is False
        with pytest.raises(PermissionDeniedError):
            service.get_registration_details(make_user("stranger").id, registration.id)

    @pytest.mark.asyncio
    async def test_details_below_required_experience(self, db, owner, crew, make_leg):
        leg = make_leg(owner, min_experience_level=3)
        service = RegistrationService(db)
        registration, _ = await service.register_for_leg(crew.id, leg.id)

        details = service.get_registration_details(owner.id, registration.id)

        assert details["match_color"] == "red"
        assert details["meets_experience_level"] is False
