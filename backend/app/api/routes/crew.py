"""
Crew search for boat owners
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from app.core.auth import require_role
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.profile import UserRole
from app.models.user import User
from app.services.crew_matching_service import CrewMatchingService

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/crew", tags=["crew"])


class CrewSearchRequest(BaseModel):
    """Search filters; accepts snake_case or camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    experience_level: Optional[int] = Field(None, ge=1, le=4, description="Minimum sailing experience")
    risk_levels: Optional[List[str]] = None
    skills: Optional[List[str]] = None
    location: Optional[Dict[str, Any]] = Field(None, description="{lat, lng, radius} with radius in km")
    date_range: Optional[Dict[str, Any]] = Field(None, description="{start, end} as YYYY-MM-DD")
    include_private_info: bool = False
    limit: Optional[int] = Field(None, ge=1)


@router.post("/search")
async def search_crew(
    data: CrewSearchRequest,
    current_user: User = Depends(require_role(UserRole.OWNER)),
    db: Session = Depends(get_db),
):
    """Crew profiles ranked by match score"""
    try:
        return CrewMatchingService(db).search_matching_crew(owner_id=current_user.id, **data.model_dump())
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error searching crew: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
