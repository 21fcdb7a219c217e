"""
Tests for AI registration assessment
"""
import json

import pytest

from app.models.notification import Notification, NotificationType
from app.models.registration import (Registration, RegistrationAnswer,
                                     RegistrationStatus)
from app.services.assessment_service import (AssessmentService,
                                             build_assessment_prompt,
                                             parse_assessment)
from app.services.consent_service import ConsentService
from app.services.journey_service import JourneyService


@pytest.fixture
def setup(db, owner, crew, make_journey, make_leg):
    """Published journey with auto-approval, one required question and a pending registration"""

    def _setup(auto_approval=True, threshold=80, consent=True, with_question=True, answered=True):
        journey = make_journey(owner)
        leg = make_leg(owner, journey=journey, skills=["navigation"], min_experience_level=2)
        journeys = JourneyService(db)
        journeys.set_auto_approval(owner.id, journey.id, auto_approval, threshold)
        registration = Registration(leg_id=leg.id, user_id=crew.id, status=RegistrationStatus.PENDING.value)
        db.add(registration)
        if with_question:
            question = journeys.create_requirement(owner.id, journey.id, "Can you swim?", question_type="yes_no")
            if answered:
                registration.answers.append(RegistrationAnswer(requirement_id=question.id, answer_text="Yes"))
        db.commit()
        if consent:
            ConsentService(db).update_consents(crew.id, ai_processing=True)
        return registration

    return _setup


def _reply(score, recommendation="approve"):
    return json.dumps({"match_score": score, "reasoning": "Looks capable", "recommendation": recommendation})


def _types(db, user):
    return [n.type for n in db.query(Notification).filter(Notification.user_id == user.id).all()]


class TestAssessRegistration:
    """Outcomes of assess_registration"""

    @pytest.mark.asyncio
    async def test_skipped_when_auto_approval_disabled(self, db, setup, fake_llm):
        registration = setup(auto_approval=False)
        llm = fake_llm()

        result = await AssessmentService(db, llm_client=llm).assess_registration(registration.id)

        assert result.outcome == "skipped"
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_manual_review_without_ai_consent(self, db, owner, setup, fake_llm):
        registration = setup(consent=False)
        llm = fake_llm()

        result = await AssessmentService(db, llm_client=llm).assess_registration(registration.id)

        assert result.outcome == "manual_review"
        llm.complete.assert_not_called()
        [notification] = db.query(Notification).filter(Notification.user_id == owner.id).all()
        assert notification.type == NotificationType.AI_REVIEW_NEEDED.value
        assert notification.title == "Manual Review Required"

    @pytest.mark.asyncio
    async def test_skipped_without_requirements(self, db, setup, fake_llm):
        registration = setup(with_question=False)
        result = await AssessmentService(db, llm_client=fake_llm()).assess_registration(registration.id)
        assert result.outcome == "skipped"

    @pytest.mark.asyncio
    async def test_missing_required_answer(self, db, setup, fake_llm):
        registration = setup(answered=False)
        with pytest.raises(ValueError):
            await AssessmentService(db, llm_client=fake_llm()).assess_registration(registration.id)

    @pytest.mark.asyncio
    async def test_auto_approved(self, db, owner, crew, setup, fake_llm):
        registration = setup(threshold=80)
        llm = fake_llm(_reply(80))

        result = await AssessmentService(db, llm_client=llm).assess_registration(registration.id)

        assert result.outcome == "auto_approved"
        assert result.match_score == 80
        db.refresh(registration)
        assert registration.status == RegistrationStatus.APPROVED.value
        assert registration.auto_approved is True
        assert registration.ai_match_reasoning == "Looks capable"
        assert _types(db, crew) == [NotificationType.REGISTRATION_APPROVED.value]
        assert _types(db, owner) == [NotificationType.AI_AUTO_APPROVED.value]

        [call] = llm.calls
        assert call["use_case"] == "assess-registration"
        assert "Can you swim?" in call["prompt"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score,recommendation", [(79, "approve"), (95, "deny")])
    async def test_review_needed(self, db, owner, setup, fake_llm, score, recommendation):
        registration = setup(threshold=80)

        result = await AssessmentService(db, llm_client=fake_llm(_reply(score, recommendation))).assess_registration(
            registration.id
        )

        assert result.outcome == "review_needed"
        db.refresh(registration)
        assert registration.status == RegistrationStatus.PENDING.value
        assert registration.ai_match_score == score
        [notification] = db.query(Notification).filter(Notification.user_id == owner.id).all()
        assert notification.type == NotificationType.AI_REVIEW_NEEDED.value
        assert f"{score}%" in notification.message

    @pytest.mark.asyncio
    async def test_already_decided_is_not_reapproved(self, db, setup, fake_llm):
        registration = setup()
        registration.status = RegistrationStatus.NOT_APPROVED.value
        db.commit()

        result = await AssessmentService(db, llm_client=fake_llm(_reply(99))).assess_registration(registration.id)

        assert result.outcome == "review_needed"
        db.refresh(registration)
        assert registration.status == RegistrationStatus.NOT_APPROVED.value

    @pytest.mark.asyncio
    async def test_invalid_model_answer(self, db, setup, fake_llm):
        registration = setup()
        with pytest.raises(ValueError):
            await AssessmentService(db, llm_client=fake_llm(_reply(150))).assess_registration(registration.id)
        db.refresh(registration)
        assert registration.ai_match_score is None


class TestParseAssessment:
    """Validation of the model's JSON"""

    def test_valid(self):
        text = 'Sure!\n```json\n{"match_score": 72.4, "reasoning": "ok", "recommendation": " Review "}\n```'
        assert parse_assessment(text) == {"match_score": 72.4, "reasoning": "ok", "recommendation": "review"}

    def test_recommendation_defaults_to_review(self):
        assert parse_assessment('{"match_score": 10}')["recommendation"] == "review"

    @pytest.mark.parametrize("text", [
        '{"reasoning": "no score"}',
        '{"match_score": "high"}',
        '{"match_score": -1}',
        '{"match_score": true}',
        "not json",
    ])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_assessment(text)


def test_build_assessment_prompt_mentions_profile_and_leg(db, crew, setup):
    registration = setup()
    leg = registration.leg
    profile = crew.profile
    answers = {answer.requirement_id: answer for answer in registration.answers}

    prompt = build_assessment_prompt(profile, leg.journey, leg, leg.journey.requirements, answers)

    assert "Name: Casey Crew" in prompt
    assert "Required Skills: navigation" in prompt
    assert "Q1 (Weight: 5/10): Can you swim?" in prompt
    assert "A1: Yes" in prompt
    assert '"match_score": <integer 0-100>' in prompt
