"""
Registration service: crew applications to legs and the owner approval flow
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.core.logging_config import LoggingConfig
from app.core.metrics import registrations_total
from app.models.boat import Boat
from app.models.journey import Journey, JourneyRequirement, JourneyState, Leg
from app.models.profile import Profile, UserRole
from app.models.registration import (Registration, RegistrationAnswer,
                                     RegistrationStatus)
from app.services.assessment_service import AssessmentService
from app.services.journey_service import format_leg
from app.services.notification_service import NotificationService, display_name
from app.services.profile_service import public_profile
from app.utils.skills import (calculate_match_percentage,
                              check_experience_level_match,
                              get_match_color_class,
                              get_matching_and_missing_skills)

logger = LoggingConfig.get_logger(__name__)

OWNER_STATUSES = (
    RegistrationStatus.APPROVED.value,
    RegistrationStatus.NOT_APPROVED.value,
    RegistrationStatus.CANCELLED.value,
)


def _to_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {field}: {value!r}")


class RegistrationService:
    """Service for leg registrations"""

    def __init__(
        self,
        db: Session,
        notification_service: Optional[NotificationService] = None,
        assessment_service: Optional[AssessmentService] = None,
    ):
        self.db = db
        self.notifications = notification_service or NotificationService(db)
        self._assessment_service = assessment_service

    @property
    def assessment_service(self) -> AssessmentService:
        if self._assessment_service is None:
            self._assessment_service = AssessmentService(self.db, notification_service=self.notifications)
        return self._assessment_service

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _base_query(self):
        return self.db.query(Registration).options(
            joinedload(Registration.leg).joinedload(Leg.journey).joinedload(Journey.boat),
            selectinload(Registration.answers),
        )

    def get_registration(self, registration_id: UUID) -> Registration:
        registration = self._base_query().filter(Registration.id == registration_id).first()
        if registration is None:
            raise NotFoundError("Registration not found")
        return registration

    def _get_owned_by_owner(self, owner_id: UUID, registration_id: UUID) -> Registration:
        registration = self.get_registration(registration_id)
        if registration.leg.journey.boat.owner_id != owner_id:
            raise PermissionDeniedError("You do not own the journey for this registration")
        return registration

    def _profile(self, user_id: UUID) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def list_user_registrations(
        self, user_id: UUID, leg_id: Optional[UUID] = None, status: Optional[str] = None
    ) -> List[Registration]:
        query = self._base_query().filter(Registration.user_id == user_id)
        if leg_id:
            query = query.filter(Registration.leg_id == leg_id)
        if status:
            query = query.filter(Registration.status == status)
        return query.order_by(Registration.created_at.desc()).all()

    def list_owner_registrations(
        self, owner_id: UUID, journey_id: Optional[UUID] = None, status: Optional[str] = None
    ) -> List[Registration]:
        """Registrations on all legs of the owner's journeys, newest first"""
        query = (
            self._base_query()
            .join(Leg, Registration.leg_id == Leg.id)
            .join(Journey, Leg.journey_id == Journey.id)
            .join(Boat, Journey.boat_id == Boat.id)
            .filter(Boat.owner_id == owner_id)
        )
        if journey_id:
            query = query.filter(Journey.id == journey_id)
        if status:
            query = query.filter(Registration.status == status)
        return query.order_by(Registration.created_at.desc()).all()

    # ------------------------------------------------------------------
    # Crew side
    # ------------------------------------------------------------------

    def save_answers(self, registration: Registration, answers: Iterable[Dict[str, Any]]) -> List[RegistrationAnswer]:
        """
        Replace a registration's answers

        Raises:
            ValueError: If an answer references a requirement of another journey
                or answers the same requirement twice
        """
        journey_id = registration.leg.journey_id
        valid_ids = {
            row[0]
            for row in self.db.query(JourneyRequirement.id)
            .filter(JourneyRequirement.journey_id == journey_id)
            .all()
        }

        new_answers: List[RegistrationAnswer] = []
        seen = set()
        for answer in answers or []:
            requirement_id = _to_uuid(answer.get("requirement_id"), "requirement_id")
            if requirement_id not in valid_ids:
                raise ValueError(f"Requirement {requirement_id} does not belong to this journey")
            if requirement_id in seen:
                raise ValueError(f"Requirement {requirement_id} answered more than once")
            seen.add(requirement_id)
            new_answers.append(RegistrationAnswer(
                requirement_id=requirement_id,
                answer_text=answer.get("answer_text"),
                answer_json=answer.get("answer_json"),
            ))

        registration.answers.clear()
        # Old rows must be deleted before the new ones hit the (registration, requirement) unique key
        self.db.flush()
        registration.answers.extend(new_answers)
        return new_answers

    @staticmethod
    def _check_required_answers(journey: Journey, answers: Iterable[Dict[str, Any]]):
        answered = {
            str(a.get("requirement_id"))
            for a in answers or []
            if (a.get("answer_text") not in (None, "")) or a.get("answer_json") is not None
        }
        missing = [r.question_text for r in journey.requirements if r.is_required and str(r.id) not in answered]
        if missing:
            raise ValueError(f"Missing answers for required questions: {', '.join(missing)}")

    async def register_for_leg(
        self,
        user_id: UUID,
        leg_id: UUID,
        notes: Optional[str] = None,
        answers: Optional[List[Dict[str, Any]]] = None,
    ) -> Tuple[Registration, bool]:
        """
        Register a crew member for a leg

        Args:
            user_id: Crew member
            leg_id: Leg to join
            notes: Message to the skipper
            answers: [{"requirement_id", "answer_text", "answer_json"}] for the journey questions

        Returns:
            (registration, reactivated) where reactivated is True when a
            cancelled registration was reopened

        Raises:
            PermissionDeniedError: If the user does not have the crew role
            NotFoundError: If the leg does not exist
            ValueError: If the journey is not published or required answers are missing
            ConflictError: If the user already has an active registration for the leg
        """
        profile = self._profile(user_id)
        if profile is None or not profile.has_role(UserRole.CREW):
            raise PermissionDeniedError("Only crew members can register for legs")

        leg = (
            self.db.query(Leg)
            .options(joinedload(Leg.journey).joinedload(Journey.boat))
            .filter(Leg.id == leg_id)
            .first()
        )
        if leg is None:
            raise NotFoundError("Leg not found")
        journey = leg.journey
        if journey.state != JourneyState.PUBLISHED.value:
            raise ValueError("This leg is not available for registration")

        answers = answers or []
        self._check_required_answers(journey, answers)

        match_percentage = calculate_match_percentage(
            profile.skills, leg.skills, profile.sailing_experience, leg.min_experience_level
        )

        existing = (
            self.db.query(Registration)
            .filter(Registration.leg_id == leg_id, Registration.user_id == user_id)
            .first()
        )
        reactivated = False
        if existing is not None:
            if existing.status != RegistrationStatus.CANCELLED.value:
                raise ConflictError("You have already registered for this leg")
            registration = existing
            registration.status = RegistrationStatus.PENDING.value
            registration.notes = notes or None
            registration.match_percentage = match_percentage
            registration.ai_match_score = None
            registration.ai_match_reasoning = None
            registration.auto_approved = False
            reactivated = True
        else:
            registration = Registration(
                leg_id=leg_id,
                user_id=user_id,
                status=RegistrationStatus.PENDING.value,
                notes=notes or None,
                match_percentage=match_percentage,
            )
            self.db.add(registration)
        registration.leg = leg

        self.save_answers(registration, answers)
        self.db.commit()
        self.db.refresh(registration)

        registrations_total.labels(status="reactivated" if reactivated else "created").inc()
        logger.info(
            f"{'Reactivated' if reactivated else 'Created'} registration {registration.id} for leg {leg_id}",
            extra={"user_id": str(user_id), "match_percentage": match_percentage, "answers": len(answers)},
        )

        await self.notifications.notify_new_registration(
            journey.boat.owner_id,
            registration.id,
            journey.id,
            journey.name,
            display_name(profile, "A crew member"),
            user_id,
        )

        if journey.auto_approval_enabled:
            try:
                await self.assessment_service.assess_registration(registration.id)
            except Exception as e:
                # The registration stands; the owner can re-run the assessment
                logger.error(f"AI assessment failed for registration {registration.id}: {e}", exc_info=True)
            self.db.refresh(registration)

        return registration, reactivated

    def cancel_registration(self, user_id: UUID, registration_id: UUID) -> Registration:
        """
        Crew-side cancellation

        Raises:
            NotFoundError: If the registration does not exist
            PermissionDeniedError: If it belongs to another user
            ValueError: If it is already cancelled
        """
        registration = self.get_registration(registration_id)
        if registration.user_id != user_id:
            raise PermissionDeniedError("You can only cancel your own registrations")
        if registration.status == RegistrationStatus.CANCELLED.value:
            raise ValueError("Registration is already cancelled")
        registration.status = RegistrationStatus.CANCELLED.value
        self.db.commit()
        self.db.refresh(registration)
        registrations_total.labels(status="cancelled").inc()
        logger.info(f"Registration {registration_id} cancelled by crew {user_id}")
        return registration

    # ------------------------------------------------------------------
    # Owner side
    # ------------------------------------------------------------------

    async def update_registration_status(
        self,
        owner_id: UUID,
        registration_id: UUID,
        status: str,
        notes: Optional[str] = None,
    ) -> Registration:
        """
        Approve, reject or cancel a registration as the journey owner

        Args:
            owner_id: Caller, must own the boat of the registration's journey
            registration_id: Registration to update
            status: 'Approved', 'Not approved' or 'Cancelled'
            notes: Optional note; used as the reason on rejection

        Raises:
            ValueError: If the status is not one an owner can set
            NotFoundError: If the registration does not exist
            PermissionDeniedError: If the caller does not own the journey
        """
        if status not in OWNER_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(OWNER_STATUSES)}")

        registration = self._get_owned_by_owner(owner_id, registration_id)
        previous = registration.status
        registration.status = status
        if notes is not None:
            registration.notes = notes
        self.db.commit()
        self.db.refresh(registration)

        registrations_total.labels(status=status.lower().replace(" ", "_")).inc()
        logger.info(f"Registration {registration_id}: {previous} -> {status}", extra={"owner_id": str(owner_id)})

        journey = registration.leg.journey
        owner_name = display_name(self._profile(owner_id), "The boat owner")
        if status == RegistrationStatus.APPROVED.value and previous != status:
            await self.notifications.notify_registration_approved(
                registration.user_id, journey.id, journey.name, owner_name, owner_id
            )
        elif status == RegistrationStatus.NOT_APPROVED.value and previous != status:
            await self.notifications.notify_registration_denied(
                registration.user_id, journey.id, journey.name, owner_name, notes, owner_id
            )
        return registration

    async def reassess(self, owner_id: UUID, registration_id: UUID):
        """Owner-triggered AI re-assessment"""
        self._get_owned_by_owner(owner_id, registration_id)
        return await self.assessment_service.assess_registration(registration_id)

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    def get_registration_details(self, user_id: UUID, registration_id: UUID) -> Dict[str, Any]:
        """
        Registration with leg, journey, answers and crew profile

        Visible to the crew member who registered and to the journey owner.
        """
        registration = self.get_registration(registration_id)
        journey = registration.leg.journey
        is_owner = journey.boat.owner_id == user_id
        if registration.user_id != user_id and not is_owner:
            raise PermissionDeniedError("You do not have access to this registration")

        crew = self._profile(registration.user_id)
        matching, missing = get_matching_and_missing_skills(
            crew.skills if crew else None, registration.leg.skills
        )
        requirements = {r.id: r for r in journey.requirements}
        answers = [
            {
                "id": str(answer.id),
                "requirement_id": str(answer.requirement_id),
                "question_text": requirements[answer.requirement_id].question_text
                if answer.requirement_id in requirements else None,
                "question_type": requirements[answer.requirement_id].question_type
                if answer.requirement_id in requirements else None,
                "answer_text": answer.answer_text,
                "answer_json": answer.answer_json,
            }
            for answer in registration.answers
        ]
        return {
            "registration": registration,
            "leg": format_leg(registration.leg),
            "journey": {"id": str(journey.id), "name": journey.name, "state": journey.state},
            "answers": answers,
            "crew_profile": public_profile(crew) if crew else None,
            "matching_skills": matching,
            "missing_skills": missing,
            "match_color": get_match_color_class(registration.match_percentage or 0),
            "meets_experience_level": check_experience_level_match(
                crew.sailing_experience if crew else None,
                registration.leg.min_experience_level or journey.min_experience_level,
            ),
            "is_owner": is_owner,
        }
