"""
AI assessment of crew registrations for journeys with auto-approval
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from app.core.errors import NotFoundError
from app.core.logging_config import LoggingConfig
from app.core.metrics import registration_assessments_total
from app.models.consent import UserConsent
from app.models.journey import Journey, JourneyRequirement, Leg, QuestionType
from app.models.profile import EXPERIENCE_LEVEL_NAMES, Profile
from app.models.registration import Registration, RegistrationStatus
from app.services.llm_client import LLMClient, get_llm_client
from app.services.notification_service import NotificationService, display_name
from app.utils.response_parsing import parse_json_from_ai_response
from app.utils.skills import normalize_skill_names

logger = LoggingConfig.get_logger(__name__)

ASSESSMENT_USE_CASE = "assess-registration"
DEFAULT_THRESHOLD = 80

_LEVEL_LEGEND = ", ".join(f"{level}={name}" for level, name in EXPERIENCE_LEVEL_NAMES.items())


@dataclass
class AssessmentResult:
    """Outcome of one assessment run"""
    outcome: str  # auto_approved, review_needed, manual_review, skipped
    match_score: Optional[int] = None
    reasoning: Optional[str] = None
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "match_score": self.match_score,
            "reasoning": self.reasoning,
            "recommendation": self.recommendation,
        }


def _answer_text(requirement: JourneyRequirement, answer) -> str:
    if answer is None:
        return "Not answered"
    if requirement.question_type in (QuestionType.TEXT.value, QuestionType.YES_NO.value):
        return answer.answer_text or "Not answered"
    return json.dumps(answer.answer_json)


def build_assessment_prompt(
    profile: Optional[Profile],
    journey: Journey,
    leg: Leg,
    requirements: List[JourneyRequirement],
    answers: Dict[Any, Any],
) -> str:
    """
    Prompt asking the model to score a crew member against a leg

    Args:
        profile: Crew member's profile
        journey: Journey the leg belongs to
        leg: Leg applied for
        requirements: Journey questions in display order
        answers: RegistrationAnswer rows keyed by requirement id
    """
    skills = normalize_skill_names(profile.skills if profile else None)
    risk = ", ".join(profile.risk_level) if profile and profile.risk_level else "Not specified"
    leg_skills = normalize_skill_names(leg.skills)

    qa_lines = []
    for number, requirement in enumerate(requirements, start=1):
        answer = answers.get(requirement.id)
        qa_lines.append(
            f"Q{number} (Weight: {requirement.weight}/10): {requirement.question_text}\n"
            f"A{number}: {_answer_text(requirement, answer)}"
        )
    qa_section = "\n\n".join(qa_lines) or "No custom questions"

    start = leg.start_date.date().isoformat() if leg.start_date else "N/A"
    end = leg.end_date.date().isoformat() if leg.end_date else "N/A"

    return f"""You are an expert sailing crew matching assistant. Assess how well a crew member matches the requirements for a sailing journey leg, based on their profile, experience and answers to the skipper's questions.

Crew Member Profile:
- Name: {(profile.full_name if profile else None) or 'Not provided'}
- Experience Level: {(profile.sailing_experience if profile else None) or 'Not specified'} ({_LEVEL_LEGEND})
- Skills: {', '.join(skills) if skills else 'None listed'}
- Risk Tolerance: {risk}
- Sailing Preferences: {(profile.sailing_preferences if profile else None) or 'Not specified'}

Journey Requirements:
- Journey: {journey.name}
- Leg: {leg.name or 'N/A'}
- Required Skills: {', '.join(leg_skills) if leg_skills else 'None specified'}
- Required Experience Level: {leg.min_experience_level or 'Not specified'} ({_LEVEL_LEGEND})
- Risk Level: {leg.risk_level or 'Not specified'}
- Dates: {start} to {end}

Custom Questions & Answers:
{qa_section}

Respond with ONLY a JSON object of exactly this structure:
{{
  "match_score": <integer 0-100>,
  "reasoning": "<why, considering skills, experience, risk tolerance and the answers>",
  "recommendation": "<'approve', 'deny' or 'review'>"
}}"""


def parse_assessment(text: str) -> Dict[str, Any]:
    """
    Parse and validate the model's assessment JSON

    Raises:
        ValueError: If no JSON object is found or match_score is missing,
            non-numeric or outside 0-100
    """
    data = parse_json_from_ai_response(text, kind="object")
    if not isinstance(data, dict):
        raise ValueError("AI assessment is not a JSON object")
    score = data.get("match_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
        raise ValueError(f"Invalid match_score: {score!r}")
    recommendation = str(data.get("recommendation") or "review").strip().lower()
    return {
        "match_score": score,
        "reasoning": data.get("reasoning") or None,
        "recommendation": recommendation,
    }


class AssessmentService:
    """Runs the AI assessment and applies auto-approval"""

    def __init__(
        self,
        db: Session,
        llm_client: Optional[LLMClient] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        self.db = db
        self.llm_client = llm_client or get_llm_client()
        self.notifications = notification_service or NotificationService(db)

    def _load_registration(self, registration_id: UUID) -> Registration:
        registration = (
            self.db.query(Registration)
            .options(
                joinedload(Registration.leg).joinedload(Leg.journey).joinedload(Journey.boat),
                joinedload(Registration.answers),
            )
            .filter(Registration.id == registration_id)
            .first()
        )
        if registration is None:
            raise NotFoundError(f"Registration not found: {registration_id}")
        return registration

    def _has_ai_consent(self, user_id: UUID) -> bool:
        consent = self.db.query(UserConsent).filter(UserConsent.user_id == user_id).first()
        return bool(consent and consent.ai_processing_consent)

    def _profile(self, user_id: UUID) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    async def assess_registration(self, registration_id: UUID) -> AssessmentResult:
        """
        Assess a registration with the LLM and auto-approve when it scores high enough

        Args:
            registration_id: Registration to assess

        Returns:
            AssessmentResult with the outcome

        Raises:
            NotFoundError: If the registration does not exist
            ValueError: If required answers are missing or the AI answer is invalid
            LLMError: If the completion request fails
        """
        try:
            result = await self._assess(registration_id)
        except Exception:
            registration_assessments_total.labels(outcome="failed").inc()
            raise
        registration_assessments_total.labels(outcome=result.outcome).inc()
        return result

    async def _assess(self, registration_id: UUID) -> AssessmentResult:
        registration = self._load_registration(registration_id)
        leg = registration.leg
        journey = leg.journey
        owner_id = journey.boat.owner_id

        if not journey.auto_approval_enabled:
            logger.info(f"Auto-approval disabled for journey {journey.id}, skipping assessment")
            return AssessmentResult(outcome="skipped")

        crew_profile = self._profile(registration.user_id)
        crew_name = display_name(crew_profile, "A crew member")

        if not self._has_ai_consent(registration.user_id):
            logger.info(f"User {registration.user_id} has not consented to AI processing, manual review needed")
            await self.notifications.notify_ai_review_needed(
                owner_id, registration.id, journey.name, crew_name, reason="no_ai_consent"
            )
            return AssessmentResult(outcome="manual_review")

        requirements = (
            self.db.query(JourneyRequirement)
            .filter(JourneyRequirement.journey_id == journey.id)
            .order_by(JourneyRequirement.order.asc())
            .all()
        )
        if not requirements:
            logger.info(f"Journey {journey.id} has no requirements, skipping assessment")
            return AssessmentResult(outcome="skipped")

        answers = {answer.requirement_id: answer for answer in registration.answers}
        missing = [r.question_text for r in requirements if r.is_required and r.id not in answers]
        if missing:
            raise ValueError(f"Missing answers for required questions: {', '.join(missing)}")

        prompt = build_assessment_prompt(crew_profile, journey, leg, requirements, answers)
        logger.info(
            f"Assessing registration {registration.id}",
            extra={"requirements": len(requirements), "answers": len(answers), "prompt_chars": len(prompt)},
        )
        response = await self.llm_client.complete(prompt=prompt, use_case=ASSESSMENT_USE_CASE)
        assessment = parse_assessment(response.text)

        score = round(assessment["match_score"])
        threshold = journey.auto_approval_threshold or DEFAULT_THRESHOLD
        approve = (
            assessment["match_score"] >= threshold
            and assessment["recommendation"] != "deny"
            and registration.status == RegistrationStatus.PENDING.value
        )

        registration.ai_match_score = score
        registration.ai_match_reasoning = assessment["reasoning"]
        if approve:
            registration.status = RegistrationStatus.APPROVED.value
            registration.auto_approved = True
        self.db.commit()

        logger.info(
            f"Assessment for registration {registration.id}: score {score}, threshold {threshold}",
            extra={"recommendation": assessment["recommendation"], "auto_approved": approve},
        )

        if approve:
            owner_name = display_name(self._profile(owner_id), "The boat owner")
            await self.notifications.notify_registration_approved(
                registration.user_id, journey.id, journey.name, owner_name, owner_id
            )
            self.notifications.notify_ai_auto_approved(owner_id, registration.id, journey.name, crew_name, score)
            outcome = "auto_approved"
        else:
            await self.notifications.notify_ai_review_needed(
                owner_id, registration.id, journey.name, crew_name, match_score=score
            )
            outcome = "review_needed"

        return AssessmentResult(
            outcome=outcome,
            match_score=score,
            reasoning=assessment["reasoning"],
            recommendation=assessment["recommendation"],
        )
