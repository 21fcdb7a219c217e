"""
API routes for leg registrations
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.registration import Registration
from app.models.user import User
from app.services.journey_service import format_leg
from app.services.llm_client import LLMError
from app.services.registration_service import RegistrationService

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/registrations", tags=["registrations"])


class AnswerIn(BaseModel):
    requirement_id: UUID
    answer_text: Optional[str] = None
    answer_json: Optional[object] = Field(None, description="Structured answer for multiple choice or rating")


class RegistrationCreate(BaseModel):
    """Request model for registering for a leg"""
    leg_id: UUID
    notes: Optional[str] = Field(None, description="Message to the skipper")
    answers: List[AnswerIn] = Field(default_factory=list)


class RegistrationStatusUpdate(BaseModel):
    status: str = Field(..., description="Approved, Not approved or Cancelled")
    notes: Optional[str] = None


def _error(action: str, e: Exception) -> HTTPException:
    if isinstance(e, DOMAIN_ERRORS):
        return to_http_exception(e)
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


def _with_leg(registration: Registration) -> dict:
    data = registration.to_dict()
    data["leg"] = format_leg(registration.leg) if registration.leg else None
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_for_leg(
    data: RegistrationCreate,
    response: Response,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """
    Register the caller for a leg

    Returns 201 for a new registration and 200 when a cancelled one was reopened.
    """
    try:
        registration, reactivated = await RegistrationService(db).register_for_leg(
            current_user.id,
            data.leg_id,
            notes=data.notes,
            answers=[a.model_dump() for a in data.answers],
        )
    except Exception as e:
        raise _error("registering for leg", e)
    if reactivated:
        response.status_code = status.HTTP_200_OK
    return {"registration": registration.to_dict(), "reactivated": reactivated}


@router.get("")
async def list_my_registrations(
    leg_id: Optional[UUID] = Query(None),
    registration_status: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Caller's registrations, newest first"""
    registrations = RegistrationService(db).list_user_registrations(
        current_user.id, leg_id=leg_id, status=registration_status
    )
    return {"registrations": [_with_leg(r) for r in registrations], "total": len(registrations)}


@router.get("/owner")
async def list_owner_registrations(
    journey_id: Optional[UUID] = Query(None),
    registration_status: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Registrations on the caller's journeys"""
    registrations = RegistrationService(db).list_owner_registrations(
        current_user.id, journey_id=journey_id, status=registration_status
    )
    return {"registrations": [_with_leg(r) for r in registrations], "total": len(registrations)}


@router.get("/{registration_id}")
async def get_registration(
    registration_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        details = RegistrationService(db).get_registration_details(current_user.id, registration_id)
    except Exception as e:
        raise _error("loading registration", e)
    details["registration"] = details["registration"].to_dict()
    return details


@router.patch("/{registration_id}")
async def update_registration_status(
    registration_id: UUID,
    data: RegistrationStatusUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Approve, reject or cancel a registration on one of the caller's journeys"""
    try:
        registration = await RegistrationService(db).update_registration_status(
            current_user.id, registration_id, data.status, data.notes
        )
        return registration.to_dict()
    except Exception as e:
        raise _error("updating registration", e)


@router.delete("/{registration_id}")
async def cancel_registration(
    registration_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Cancel the caller's own registration"""
    try:
        return RegistrationService(db).cancel_registration(current_user.id, registration_id).to_dict()
    except Exception as e:
        raise _error("cancelling registration", e)


@router.post("/{registration_id}/assess")
async def assess_registration(
    registration_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Re-run the AI assessment for a registration on one of the caller's journeys"""
    try:
        result = await RegistrationService(db).reassess(current_user.id, registration_id)
    except LLMError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_payload())
    except Exception as e:
        raise _error("assessing registration", e)
    return result.to_dict()
