"""
In-app notifications and the typed notification helpers

The typed helpers create the notification row first and then try the matching
email. Email problems are logged and never abort the caller.
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.core.logging_config import LoggingConfig
from app.core.metrics import notifications_total
from app.models.journey import Leg
from app.models.notification import Notification, NotificationType
from app.models.profile import Profile
from app.models.registration import Registration, RegistrationStatus
from app.models.user import User
from app.services.email_service import EmailService

logger = LoggingConfig.get_logger(__name__)


def display_name(profile: Optional[Profile], fallback: str) -> str:
    """full_name, else username, else the fallback"""
    if profile is None:
        return fallback
    return profile.full_name or profile.username or fallback


class NotificationService:
    """Service for the notification center"""

    def __init__(self, db: Session, email_service: Optional[EmailService] = None):
        self.db = db
        self.email_service = email_service or EmailService(db)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_notification(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: Optional[str] = None,
        link: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            link=link,
            notification_metadata={k: v for k, v in (metadata or {}).items() if v is not None},
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)

        notifications_total.labels(type=notification.type).inc()
        logger.info(f"Created {notification.type} notification for user {user_id}")
        return notification

    def list_notifications(
        self,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """
        Newest first page of a user's notifications

        Returns:
            Dict with 'notifications', 'total' and 'unread_count'
        """
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        total = query.count()
        rows = (
            query.order_by(Notification.created_at.desc())
            .offset(max(0, offset))
            .limit(max(1, min(limit, 100)))
            .all()
        )
        return {"notifications": rows, "total": total, "unread_count": self.get_unread_count(user_id)}

    def get_unread_count(self, user_id: UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .count()
        )

    def _get_owned(self, user_id: UUID, notification_id: UUID) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def mark_as_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        notification = self._get_owned(user_id, notification_id)
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_as_read(self, user_id: UUID) -> int:
        count = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
        self.db.commit()
        return count

    def delete_notification(self, user_id: UUID, notification_id: UUID):
        notification = self._get_owned(user_id, notification_id)
        self.db.delete(notification)
        self.db.commit()

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def _email_of(self, user_id: UUID) -> Optional[str]:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if profile and profile.email:
            return profile.email
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.email if user else None

    async def _try_email(self, description: str, send) -> None:
        try:
            result = await send()
        except Exception as e:
            logger.error(f"Error sending {description} email: {e}", exc_info=True)
            return
        if not result.get("success"):
            logger.warning(f"Failed to send {description} email: {result.get('error')}")

    async def notify_registration_approved(
        self, crew_user_id: UUID, journey_id: UUID, journey_name: str,
        owner_name: str, owner_id: Optional[UUID] = None,
    ) -> Notification:
        notification = self.create_notification(
            crew_user_id,
            NotificationType.REGISTRATION_APPROVED,
            "Registration Approved",
            f'Your registration for "{journey_name}" has been approved by {owner_name}. Welcome aboard!',
            "/crew/registrations",
            {
                "journey_id": str(journey_id),
                "journey_name": journey_name,
                "owner_name": owner_name,
                "owner_id": str(owner_id) if owner_id else None,
            },
        )
        email = self._email_of(crew_user_id)
        if email:
            await self._try_email("approval", lambda: self.email_service.send_registration_approved_email(
                email, crew_user_id, journey_name, owner_name, journey_id
            ))
        return notification

    async def notify_registration_denied(
        self, crew_user_id: UUID, journey_id: UUID, journey_name: str,
        owner_name: str, reason: Optional[str] = None, owner_id: Optional[UUID] = None,
    ) -> Notification:
        if reason:
            message = f'Your registration for "{journey_name}" was not approved. Reason: {reason}'
        else:
            message = f'Your registration for "{journey_name}" was not approved by {owner_name}.'
        notification = self.create_notification(
            crew_user_id,
            NotificationType.REGISTRATION_DENIED,
            "Registration Not Approved",
            message,
            "/crew/registrations",
            {
                "journey_id": str(journey_id),
                "journey_name": journey_name,
                "owner_name": owner_name,
                "owner_id": str(owner_id) if owner_id else None,
                "reason": reason,
            },
        )
        email = self._email_of(crew_user_id)
        if email:
            await self._try_email("denial", lambda: self.email_service.send_registration_denied_email(
                email, crew_user_id, journey_name, owner_name, reason
            ))
        return notification

    async def notify_new_registration(
        self, owner_id: UUID, registration_id: UUID, journey_id: UUID,
        journey_name: str, crew_name: str, crew_id: UUID,
    ) -> Notification:
        notification = self.create_notification(
            owner_id,
            NotificationType.NEW_REGISTRATION,
            "New Crew Registration",
            f'{crew_name} has registered for "{journey_name}". Review their application now.',
            f"/owner/registrations/{registration_id}",
            {
                "registration_id": str(registration_id),
                "journey_id": str(journey_id),
                "journey_name": journey_name,
                "crew_name": crew_name,
                "crew_id": str(crew_id),
            },
        )
        email = self._email_of(owner_id)
        if email:
            await self._try_email("new registration", lambda: self.email_service.send_new_registration_email(
                email, owner_id, crew_name, journey_name, registration_id
            ))
        return notification

    def notify_journey_updated(
        self, crew_user_id: UUID, journey_id: UUID, journey_name: str, changes: List[str]
    ) -> Notification:
        changes_text = ", ".join(changes) if changes else "details"
        return self.create_notification(
            crew_user_id,
            NotificationType.JOURNEY_UPDATED,
            "Journey Updated",
            f'"{journey_name}" has been updated: {changes_text}',
            f"/journeys/{journey_id}",
            {"journey_id": str(journey_id), "journey_name": journey_name, "changes": changes},
        )

    def notify_leg_updated(
        self, crew_user_id: UUID, leg_id: UUID, leg_name: str,
        journey_id: UUID, journey_name: str, changes: List[str],
    ) -> Notification:
        changes_text = ", ".join(changes) if changes else "details"
        return self.create_notification(
            crew_user_id,
            NotificationType.LEG_UPDATED,
            "Leg Updated",
            f'"{leg_name}" in "{journey_name}" has been updated: {changes_text}',
            f"/journeys/{journey_id}?leg={leg_id}",
            {
                "leg_id": str(leg_id),
                "leg_name": leg_name,
                "journey_id": str(journey_id),
                "journey_name": journey_name,
                "changes": changes,
            },
        )

    def notify_profile_reminder(
        self, user_id: UUID, missing_fields: List[str], completion_percentage: int
    ) -> Notification:
        fields_text = ", ".join(missing_fields[:3])
        more_text = f" and {len(missing_fields) - 3} more" if len(missing_fields) > 3 else ""
        return self.create_notification(
            user_id,
            NotificationType.PROFILE_REMINDER,
            "Complete Your Profile",
            f"Your profile is {completion_percentage}% complete. Add {fields_text}{more_text} "
            "to improve your chances of being approved.",
            "/profile",
            {"missing_fields": missing_fields, "completion_percentage": completion_percentage},
        )

    async def notify_ai_review_needed(
        self, owner_id: UUID, registration_id: UUID, journey_name: str, crew_name: str,
        match_score: Optional[int] = None, reason: Optional[str] = None,
    ) -> Notification:
        """
        Ask the owner to review a registration manually

        Without a score (reason 'no_ai_consent') no email is sent.
        """
        if reason == "no_ai_consent":
            title = "Manual Review Required"
            message = "A crew member has applied but has not consented to AI matching. Please review manually."
        else:
            title = "Registration Needs Review"
            message = f'{crew_name}\'s registration for "{journey_name}" needs your review (AI Score: {match_score}%).'
        notification = self.create_notification(
            owner_id,
            NotificationType.AI_REVIEW_NEEDED,
            title,
            message,
            f"/owner/registrations/{registration_id}",
            {
                "registration_id": str(registration_id),
                "journey_name": journey_name,
                "crew_name": crew_name,
                "match_score": match_score,
                "reason": reason,
            },
        )
        email = self._email_of(owner_id)
        if email and match_score is not None:
            await self._try_email("review needed", lambda: self.email_service.send_review_needed_email(
                email, owner_id, crew_name, journey_name, registration_id, match_score
            ))
        return notification

    def notify_ai_auto_approved(
        self, owner_id: UUID, registration_id: UUID, journey_name: str, crew_name: str, match_score: int
    ) -> Notification:
        return self.create_notification(
            owner_id,
            NotificationType.AI_AUTO_APPROVED,
            "Registration Auto-Approved",
            f'{crew_name}\'s registration for "{journey_name}" was automatically approved by AI '
            f"(Score: {match_score}%).",
            f"/owner/registrations/{registration_id}",
            {
                "registration_id": str(registration_id),
                "journey_name": journey_name,
                "crew_name": crew_name,
                "match_score": match_score,
            },
        )

    def approved_crew_ids(self, journey_id: UUID) -> List[UUID]:
        """Distinct users with an approved registration on any leg of the journey"""
        rows = (
            self.db.query(Registration.user_id)
            .join(Leg, Registration.leg_id == Leg.id)
            .filter(Leg.journey_id == journey_id, Registration.status == RegistrationStatus.APPROVED.value)
            .distinct()
            .all()
        )
        return [row[0] for row in rows]
