"""
Account erasure (right to be forgotten)

Everything a user left behind is removed in one transaction: their own
registrations with answers, notifications, consents, email preferences,
onboarding sessions, owned boats (journeys, legs, waypoints, questions and
the crew registrations on those legs go with them), profile, login sessions
and the account row.
"""
from typing import Dict
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.core.logging_config import LoggingConfig
from app.models.boat import Boat
from app.models.consent import UserConsent
from app.models.notification import EmailPreferences, Notification
from app.models.onboarding_session import OwnerSession, ProspectSession
from app.models.registration import Registration
from app.models.user import Session as UserSession
from app.models.user import User

logger = LoggingConfig.get_logger(__name__)

DELETE_CONFIRMATION = "DELETE MY ACCOUNT"


class AccountService:
    """Service for permanently deleting a user and their data"""

    def __init__(self, db: Session):
        self.db = db

    def delete_account(self, user_id: UUID) -> Dict[str, int]:
        """
        Delete a user and all data tied to them

        Returns:
            Rows removed per kind of data

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found")

        deleted: Dict[str, int] = {}
        try:
            # Loaded and deleted one by one so answers and the boat tree cascade
            registrations = self.db.query(Registration).filter(Registration.user_id == user_id).all()
            for registration in registrations:
                self.db.delete(registration)
            deleted["registrations"] = len(registrations)

            boats = self.db.query(Boat).filter(Boat.owner_id == user_id).all()
            for boat in boats:
                self.db.delete(boat)
            deleted["boats"] = len(boats)
            self.db.flush()

            for label, model in (
                ("notifications", Notification),
                ("consents", UserConsent),
                ("email_preferences", EmailPreferences),
                ("owner_sessions", OwnerSession),
                ("prospect_sessions", ProspectSession),
                ("login_sessions", UserSession),
            ):
                deleted[label] = (
                    self.db.query(model)
                    .filter(model.user_id == user_id)
                    .delete(synchronize_session=False)
                )

            deleted["profile"] = 1 if user.profile is not None else 0
            self.db.expire(user, ["sessions"])
            self.db.delete(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Account deletion failed for user {user_id}", exc_info=True)
            raise

        logger.info(f"Deleted account {user_id}", extra={"deleted": deleted})
        return deleted
