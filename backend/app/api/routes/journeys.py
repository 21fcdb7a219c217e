"""
API routes for journeys, their legs and registration questions
"""
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import get_current_user, get_current_user_required
from app.core.database import get_db
from app.core.errors import DOMAIN_ERRORS, to_http_exception
from app.core.logging_config import LoggingConfig
from app.models.journey import QuestionType
from app.models.profile import RiskLevel
from app.models.user import User
from app.services.journey_service import (JourneyService, bbox_around,
                                          format_leg)
from app.utils.datetime_utils import parse_iso

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(prefix="/api/journeys", tags=["journeys"])
legs_router = APIRouter(prefix="/api/legs", tags=["legs"])


# Request models
class JourneyFields(BaseModel):
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    description: Optional[str] = None
    risk_level: Optional[List[str]] = Field(None, description="Comfort zones")
    skills: Optional[List[Any]] = None
    min_experience_level: Optional[int] = Field(None, ge=1, le=4)
    cost_model: Optional[str] = None
    cost_info: Optional[str] = None
    state: Optional[str] = Field(None, description="In planning, Published or Archived")
    images: Optional[List[str]] = None


class JourneyCreate(JourneyFields):
    """Request model for creating a journey"""
    boat_id: UUID
    name: str = Field(..., min_length=1)


class JourneyUpdate(JourneyFields):
    """Request model for updating a journey"""
    name: Optional[str] = None


class AutoApprovalUpdate(BaseModel):
    enabled: bool = Field(..., description="Run the AI assessment on new registrations")
    threshold: Optional[int] = Field(None, description="Minimum AI match score (0-100) to auto-approve")


class WaypointIn(BaseModel):
    index: Optional[int] = None
    name: Optional[str] = None
    lat: float
    lng: float


class LegFields(BaseModel):
    description: Optional[str] = None
    start_date: Optional[str] = Field(None, description="ISO date or datetime")
    end_date: Optional[str] = Field(None, description="ISO date or datetime")
    crew_needed: Optional[int] = Field(None, ge=0)
    skills: Optional[List[Any]] = None
    risk_level: Optional[str] = None
    min_experience_level: Optional[int] = Field(None, ge=1, le=4)
    waypoints: Optional[List[WaypointIn]] = Field(None, description="First is departure, last is arrival")


class LegCreate(LegFields):
    """Request model for creating a leg"""
    name: str = Field(..., min_length=1)


class LegUpdate(LegFields):
    """Request model for updating a leg; waypoints replace the existing ones"""
    name: Optional[str] = None


class RequirementCreate(BaseModel):
    """Question crew must answer when registering"""
    question_text: str = Field(..., min_length=1)
    question_type: str = Field(QuestionType.TEXT.value, description="text, multiple_choice, yes_no or rating")
    options: Optional[List[str]] = None
    is_required: bool = True
    weight: int = Field(5, description="Importance 1-10 for the AI assessment")
    order: Optional[int] = Field(None, description="Defaults to the end of the list")


class RequirementUpdate(BaseModel):
    question_text: Optional[str] = None
    question_type: Optional[str] = None
    options: Optional[List[str]] = None
    is_required: Optional[bool] = None
    weight: Optional[int] = None
    order: Optional[int] = None


def _error(action: str, e: Exception) -> HTTPException:
    if isinstance(e, DOMAIN_ERRORS):
        return to_http_exception(e)
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


def _waypoints(data: LegFields) -> Optional[List[Dict[str, Any]]]:
    if data.waypoints is None:
        return None
    return [w.model_dump(exclude_none=True) for w in data.waypoints]


# ----------------------------------------------------------------------
# Journeys
# ----------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_journey(
    data: JourneyCreate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        fields = data.model_dump(exclude_unset=True)
        boat_id = fields.pop("boat_id")
        return JourneyService(db).create_journey(current_user.id, boat_id, **fields).to_dict()
    except Exception as e:
        raise _error("creating journey", e)


@router.get("")
async def list_journeys(
    mine: bool = Query(True, description="Only the caller's journeys; false lists published journeys"),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    service = JourneyService(db)
    if mine:
        journeys = service.list_owner_journeys(current_user.id)
    else:
        journeys = service.list_published_journeys(limit=limit)
    return {"journeys": [j.to_dict() for j in journeys], "total": len(journeys)}


@router.get("/{journey_id}")
async def get_journey(
    journey_id: UUID,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Published journeys are visible to everyone, others only to their owner"""
    try:
        journey = JourneyService(db).get_visible_journey(journey_id, current_user.id if current_user else None)
        data = journey.to_dict()
        data["boat"] = journey.boat.to_dict() if journey.boat else None
        return data
    except Exception as e:
        raise _error("loading journey", e)


@router.put("/{journey_id}")
async def update_journey(
    journey_id: UUID,
    data: JourneyUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Update a journey; approved crew hear about changes to published journeys"""
    try:
        journey, changed = JourneyService(db).update_journey(
            current_user.id, journey_id, **data.model_dump(exclude_unset=True)
        )
        return {"journey": journey.to_dict(), "changed_fields": changed}
    except Exception as e:
        raise _error("updating journey", e)


@router.delete("/{journey_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_journey(
    journey_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        JourneyService(db).delete_journey(current_user.id, journey_id)
    except Exception as e:
        raise _error("deleting journey", e)


@router.put("/{journey_id}/auto-approval")
async def set_auto_approval(
    journey_id: UUID,
    data: AutoApprovalUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Turn AI auto-approval of registrations on or off"""
    try:
        journey = JourneyService(db).set_auto_approval(current_user.id, journey_id, data.enabled, data.threshold)
        return {
            "journey_id": str(journey.id),
            "auto_approval_enabled": journey.auto_approval_enabled,
            "auto_approval_threshold": journey.auto_approval_threshold,
        }
    except Exception as e:
        raise _error("updating auto-approval", e)


# ----------------------------------------------------------------------
# Legs of a journey
# ----------------------------------------------------------------------

@router.get("/{journey_id}/legs")
async def list_journey_legs(
    journey_id: UUID,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        service = JourneyService(db)
        service.get_visible_journey(journey_id, current_user.id if current_user else None)
        legs = service.list_journey_legs(journey_id)
        return {"legs": [leg.to_dict() for leg in legs], "total": len(legs)}
    except Exception as e:
        raise _error("listing legs", e)


@router.post("/{journey_id}/legs", status_code=status.HTTP_201_CREATED)
async def create_leg(
    journey_id: UUID,
    data: LegCreate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        fields = data.model_dump(exclude_unset=True, exclude={"waypoints"})
        leg = JourneyService(db).create_leg(current_user.id, journey_id, waypoints=_waypoints(data), **fields)
        return leg.to_dict()
    except Exception as e:
        raise _error("creating leg", e)


# ----------------------------------------------------------------------
# Requirements
# ----------------------------------------------------------------------

@router.get("/{journey_id}/requirements")
async def list_requirements(
    journey_id: UUID,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Questions to answer when registering for this journey's legs"""
    try:
        service = JourneyService(db)
        service.get_visible_journey(journey_id, current_user.id if current_user else None)
        return {"requirements": [r.to_dict() for r in service.list_requirements(journey_id)]}
    except Exception as e:
        raise _error("listing requirements", e)


@router.post("/{journey_id}/requirements", status_code=status.HTTP_201_CREATED)
async def create_requirement(
    journey_id: UUID,
    data: RequirementCreate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        requirement = JourneyService(db).create_requirement(current_user.id, journey_id, **data.model_dump())
        return requirement.to_dict()
    except Exception as e:
        raise _error("creating requirement", e)


@router.put("/{journey_id}/requirements/{requirement_id}")
async def update_requirement(
    journey_id: UUID,
    requirement_id: UUID,
    data: RequirementUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        requirement = JourneyService(db).update_requirement(
            current_user.id, journey_id, requirement_id, **data.model_dump(exclude_unset=True)
        )
        return requirement.to_dict()
    except Exception as e:
        raise _error("updating requirement", e)


@router.delete("/{journey_id}/requirements/{requirement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_requirement(
    journey_id: UUID,
    requirement_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        JourneyService(db).delete_requirement(current_user.id, journey_id, requirement_id)
    except Exception as e:
        raise _error("deleting requirement", e)


# ----------------------------------------------------------------------
# Legs
# ----------------------------------------------------------------------

@legs_router.get("/search")
async def search_legs(
    start_date: Optional[str] = Query(None, description="Window start, YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Window end, YYYY-MM-DD"),
    location: Optional[str] = Query(None, description="Departure or arrival place name"),
    risk_level: Optional[str] = Query(None),
    crew_needed: bool = Query(True, description="Only legs still looking for crew"),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Search legs of published journeys"""
    try:
        legs = JourneyService(db).search_published_legs(
            start_date=start_date,
            end_date=end_date,
            location_query=location,
            risk_level=risk_level,
            limit=limit,
            crew_needed=crew_needed,
        )
        return {"legs": [format_leg(leg) for leg in legs], "total": len(legs)}
    except Exception as e:
        raise _error("searching legs", e)


def _split_csv(value: Optional[str]) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _location_filter(bbox: Dict[str, Optional[float]], lat: Optional[float], lng: Optional[float]):
    """A full {minLng..maxLat} box wins over a centre point"""
    if all(v is not None for v in bbox.values()):
        return {
            **bbox,
            "minLat": max(-90.0, bbox["minLat"]),
            "maxLat": min(90.0, bbox["maxLat"]),
        }
    if lat is not None and lng is not None:
        return bbox_around(lat, lng)
    return None


@legs_router.get("/viewport")
async def legs_in_viewport(
    min_lng: Optional[float] = Query(None),
    min_lat: Optional[float] = Query(None),
    max_lng: Optional[float] = Query(None),
    max_lat: Optional[float] = Query(None),
    start_date: Optional[str] = Query(None, description="Legs starting on or after, YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Legs ending on or before, YYYY-MM-DD"),
    risk_levels: Optional[str] = Query(None, description="Comma-separated risk levels"),
    skills: Optional[str] = Query(None, description="Comma-separated skills"),
    min_experience_level: Optional[int] = Query(None, description="Crew experience level 1-4"),
    departure_min_lng: Optional[float] = Query(None),
    departure_min_lat: Optional[float] = Query(None),
    departure_max_lng: Optional[float] = Query(None),
    departure_max_lat: Optional[float] = Query(None),
    departure_lat: Optional[float] = Query(None),
    departure_lng: Optional[float] = Query(None),
    arrival_min_lng: Optional[float] = Query(None),
    arrival_min_lat: Optional[float] = Query(None),
    arrival_max_lng: Optional[float] = Query(None),
    arrival_max_lat: Optional[float] = Query(None),
    arrival_lat: Optional[float] = Query(None),
    arrival_lng: Optional[float] = Query(None),
    db: Session = Depends(get_db),
):
    """Published legs for the crew map, filtered to the visible area"""
    try:
        if None in (min_lng, min_lat, max_lng, max_lat):
            raise ValueError("Viewport bounds are required: min_lng, min_lat, max_lng, max_lat")
        if not (
            -180 <= min_lng < max_lng <= 180
            and -90 <= min_lat < max_lat <= 90
        ):
            raise ValueError("Invalid viewport bounds. Coordinates must be within valid ranges, and min < max")

        wanted_risks = _split_csv(risk_levels)
        valid_risks = [r.value for r in RiskLevel]
        invalid = [r for r in wanted_risks if r not in valid_risks]
        if invalid:
            raise ValueError(f"Invalid risk levels: {', '.join(invalid)}. Valid values: {', '.join(valid_risks)}")
        if min_experience_level is not None and not 1 <= min_experience_level <= 4:
            raise ValueError("Invalid min_experience_level. Must be an integer between 1 and 4.")
        for label, value in (("start_date", start_date), ("end_date", end_date)):
            if value and parse_iso(value) is None:
                raise ValueError(f"Invalid {label} format. Use YYYY-MM-DD")

        legs = JourneyService(db).get_legs_in_viewport(
            {"minLng": min_lng, "minLat": min_lat, "maxLng": max_lng, "maxLat": max_lat},
            start_date=start_date,
            end_date=end_date,
            risk_levels=wanted_risks,
            skills=_split_csv(skills),
            min_experience_level=min_experience_level,
            departure_bbox=_location_filter(
                {"minLng": departure_min_lng, "minLat": departure_min_lat,
                 "maxLng": departure_max_lng, "maxLat": departure_max_lat},
                departure_lat, departure_lng,
            ),
            arrival_bbox=_location_filter(
                {"minLng": arrival_min_lng, "minLat": arrival_min_lat,
                 "maxLng": arrival_max_lng, "maxLat": arrival_max_lat},
                arrival_lat, arrival_lng,
            ),
        )
        return {"legs": [format_leg(leg) for leg in legs], "count": len(legs)}
    except Exception as e:
        raise _error("loading viewport legs", e)


@legs_router.get("/{leg_id}")
async def get_leg(
    leg_id: UUID,
    current_user: Optional[User] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        service = JourneyService(db)
        leg = service.get_leg(leg_id)
        service.get_visible_journey(leg.journey_id, current_user.id if current_user else None)
        data = leg.to_dict()
        data["summary"] = format_leg(leg)
        return data
    except Exception as e:
        raise _error("loading leg", e)


@legs_router.put("/{leg_id}")
async def update_leg(
    leg_id: UUID,
    data: LegUpdate,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    """Update a leg; approved crew on the journey are notified"""
    try:
        fields = data.model_dump(exclude_unset=True, exclude={"waypoints"})
        leg, changed = JourneyService(db).update_leg(current_user.id, leg_id, waypoints=_waypoints(data), **fields)
        return {"leg": leg.to_dict(), "changed_fields": changed}
    except Exception as e:
        raise _error("updating leg", e)


@legs_router.delete("/{leg_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_leg(
    leg_id: UUID,
    current_user: User = Depends(get_current_user_required),
    db: Session = Depends(get_db),
):
    try:
        JourneyService(db).delete_leg(current_user.id, leg_id)
    except Exception as e:
        raise _error("deleting leg", e)
