"""
API routes for in-app notifications and email preferences
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class EmailPreferencesUpdate(BaseModel):
    registration_updates: Optional[bool] = None
    journey_updates: Optional[bool] = None
    profile_reminders: Optional[bool] = None


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Newest first page of the caller's notifications"""
    page = NotificationService(db).list_notifications(
        current_user.id, unread_only=unread_only, limit=limit, offset=offset
    )
    page["notifications"] = [n.to_dict() for n in page["notifications"]]
    return page


@router.get("/unread-count")
async def get_unread_count(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    return {"unread_count": NotificationService(db).get_unread_count(current_user.id)}


@router.post("/read-all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    updated = NotificationService(db).mark_all_as_read(current_user.id)
    logger.debug(f"Marked {updated} notifications read for user {current_user.id}")
    return {"updated": updated}


@router.get("/email-preferences")
async def get_email_preferences(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    return EmailService(db).get_email_preferences(current_user.id)


@router.put("/email-preferences")
async def update_email_preferences(
    data: EmailPreferencesUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Opt in or out of notification emails"""
    try:
        return EmailService(db).update_email_preferences(
            current_user.id, **data.model_dump(exclude_unset=True)
        )
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.patch("/{notification_id}/read")
async def mark_as_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        return NotificationService(db).mark_as_read(current_user.id, notification_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        NotificationService(db).delete_notification(current_user.id, notification_id)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
