"""
API routes for skippers' boats
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.boat_service import BoatService

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/boats", tags=["boats"])


class BoatFields(BaseModel):
    type: Optional[str] = Field(None, description="Sailboat category")
    make_model: Optional[str] = Field(None, description="Make and model")
    capacity: Optional[int] = Field(None, ge=1, description="People aboard")
    home_port: Optional[str] = None
    country_flag: Optional[str] = Field(None, description="ISO 3166-1 alpha-2 code")
    loa_m: Optional[float] = Field(None, gt=0)
    beam_m: Optional[float] = Field(None, gt=0)
    max_draft_m: Optional[float] = Field(None, gt=0)
    displcmt_m: Optional[float] = Field(None, gt=0)
    average_speed_knots: Optional[float] = Field(None, gt=0)
    link_to_specs: Optional[str] = None
    characteristics: Optional[str] = None
    capabilities: Optional[str] = None
    accommodations: Optional[str] = None
    images: Optional[List[str]] = None


class BoatCreate(BoatFields):
    """Request model for creating a boat"""
    name: str = Field(..., min_length=1, description="Boat name, unique per owner")


class BoatUpdate(BoatFields):
    """Request model for updating a boat"""
    name: Optional[str] = None


def _handle(action: str, e: Exception):
    if isinstance(e, DOMAIN_ERRORS):
        return to_http_exception(e)
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_boat(
    data: BoatCreate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Add a boat; the caller needs the owner role"""
    try:
        return BoatService(db).create_boat(current_user.id, **data.model_dump(exclude_unset=True)).to_dict()
    except Exception as e:
        raise _handle("creating boat", e)


@router.get("")
async def list_my_boats(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Caller's boats, newest first"""
    boats = BoatService(db).list_owner_boats(current_user.id)
    return {"boats": [boat.to_dict() for boat in boats], "total": len(boats)}


@router.get("/{boat_id}")
async def get_boat(
    boat_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        return BoatService(db).get_boat(boat_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.put("/{boat_id}")
async def update_boat(
    boat_id: UUID,
    data: BoatUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Update one of the caller's boats"""
    try:
        return BoatService(db).update_boat(current_user.id, boat_id, **data.model_dump(exclude_unset=True)).to_dict()
    except Exception as e:
        raise _handle("updating boat", e)


@router.delete("/{boat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_boat(
    boat_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Delete one of the caller's boats together with its journeys"""
    try:
        BoatService(db).delete_boat(current_user.id, boat_id)
    except Exception as e:
        raise _handle("deleting boat", e)
