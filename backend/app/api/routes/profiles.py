"""
Sailor profile API routes
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.user import User
from app.services.profile_service import ProfileService, public_profile

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/profiles", tags=["profiles"])


class ProfileUpdate(BaseModel):
    """Profile fields to change; omitted fields are left alone"""
    username: Optional[str] = Field(None, description="Public handle, unique")
    full_name: Optional[str] = None
    user_description: Optional[str] = Field(None, description="Short bio")
    certifications: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    language: Optional[str] = Field(None, max_length=5)
    profile_image_url: Optional[str] = None
    sailing_experience: Optional[int] = Field(None, ge=1, le=4, description="1 Beginner to 4 Offshore Skipper")
    risk_level: Optional[List[str]] = Field(None, description="Comfort zones")
    skills: Optional[List[Any]] = Field(None, description="Skill names or {skill_name, description} objects")
    sailing_preferences: Optional[str] = None
    roles: Optional[List[str]] = Field(None, description="'owner' and/or 'crew'")
    preferred_departure_location: Optional[Dict[str, Any]] = Field(None, description="{name, lat, lng}")
    availability_start_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    availability_end_date: Optional[str] = Field(None, description="YYYY-MM-DD")


@router.get("/me")
async def get_my_profile(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Caller's full profile"""
    profile = ProfileService(db).get_profile(current_user.id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile.to_dict()


@router.put("/me")
async def update_my_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Create or update the caller's profile"""
    try:
        profile = ProfileService(db).create_or_update_profile(
            current_user.id, **data.model_dump(exclude_unset=True)
        )
        return profile.to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating profile: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.get("/me/completion")
async def get_my_profile_completion(
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Which profile fields are filled in"""
    return ProfileService(db).get_completion(current_user.id).to_dict()


@router.get("/{user_id}")
async def get_public_profile(
    user_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Another user's public profile"""
    try:
        return public_profile(ProfileService(db).get_profile_or_404(user_id))
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
