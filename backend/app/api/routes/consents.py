"""
API routes for user consents and the post-consent onboarding hand-off
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.consent_service import ConsentService, serialize_consents

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["consents"])


class ConsentUpdate(BaseModel):
    """Consent flags to set; omitted flags are left alone"""
    ai_processing: Optional[bool] = Field(None, description="Allow AI processing of profile data")
    profile_sharing: Optional[bool] = Field(None, description="Allow skippers to see the profile")
    marketing: Optional[bool] = None
    accept_privacy: bool = Field(False, description="Record acceptance of the privacy policy")
    accept_terms: bool = Field(False, description="Record acceptance of the terms of service")


class AfterConsentRequest(BaseModel):
    ai_processing_consent: bool = Field(..., alias="aiProcessingConsent")

    model_config = {"populate_by_name": True}


@router.get("/api/user/consents")
async def get_consents(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    return {"consents": serialize_consents(ConsentService(db).get_consents(current_user.id))}


@router.put("/api/user/consents")
async def update_consents(
    data: ConsentUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        consent = ConsentService(db).update_consents(current_user.id, **data.model_dump())
    except Exception as e:
        logger.error(f"Error updating consents: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    return {"consents": serialize_consents(consent)}


@router.post("/api/onboarding/after-consent")
async def after_consent(
    data: AfterConsentRequest,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Where to send the user once the consent dialog is done"""
    result = ConsentService(db).after_consent(current_user.id, data.ai_processing_consent)
    logger.info(
        f"Post-consent redirect for user {current_user.id}: {result.get('redirect')}",
        extra={"role": result.get("role")},
    )
    return result
