"""
Journey, leg, waypoint and journey requirement management

Ownership of everything below a journey is checked through
journey -> boat -> owner_id.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.errors import NotFoundError, PermissionDeniedError
from app.core.logging_config import LoggingConfig
from app.models.boat import Boat
from app.models.journey import (CostModel, Journey, JourneyRequirement,
                                JourneyState, Leg, QuestionType, Waypoint)
from app.models.profile import RiskLevel
from app.services.notification_service import NotificationService
from app.utils.datetime_utils import parse_iso
from app.utils.skills import normalize_skill_names

logger = LoggingConfig.get_logger(__name__)

JOURNEY_FIELDS = (
    "name", "start_date", "end_date", "description", "risk_level", "skills",
    "min_experience_level", "cost_model", "cost_info", "state", "images",
    "is_ai_generated", "ai_prompt",
)
LEG_FIELDS = (
    "name", "description", "start_date", "end_date", "crew_needed",
    "skills", "risk_level", "min_experience_level",
)
REQUIREMENT_FIELDS = ("question_text", "question_type", "options", "is_required", "weight", "order")

BBOX_KEYS = ("minLng", "minLat", "maxLng", "maxLat")
# Departure/arrival filters given as a point search this far around it (~111 km)
LOCATION_MARGIN_DEGREES = 1.0


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_iso(str(value))
    return parsed.date() if parsed else None


def _to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return parse_iso(str(value))


def _validate_experience(value: Any) -> Optional[int]:
    if value is None:
        return None
    level = int(value)
    if level < 1 or level > 4:
        raise ValueError("Minimum experience level must be between 1 and 4")
    return level


def filter_risk_levels(values: Any) -> List[str]:
    """Keep only valid RiskLevel values, preserving order"""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    valid = {level.value for level in RiskLevel}
    return [v for v in dict.fromkeys(values) if v in valid]


def normalize_cost_model(value: Any) -> str:
    valid = {c.value for c in CostModel}
    return value if value in valid else CostModel.NOT_DEFINED.value


def format_leg(leg: Leg) -> Dict[str, Any]:
    """Compact leg summary used by search results and the chat tools"""
    journey = leg.journey
    boat = journey.boat if journey else None
    start, end = leg.start_waypoint, leg.end_waypoint
    return {
        "id": str(leg.id),
        "name": leg.name,
        "journeyId": str(journey.id) if journey else None,
        "journeyName": journey.name if journey else None,
        "boatName": boat.name if boat else None,
        "boatType": boat.type if boat else None,
        "startDate": leg.start_date.isoformat() if leg.start_date else None,
        "endDate": leg.end_date.isoformat() if leg.end_date else None,
        "crewNeeded": leg.crew_needed,
        "riskLevel": leg.risk_level or ((journey.risk_level or [None])[0] if journey else None),
        "skills": normalize_skill_names(leg.skills or (journey.skills if journey else [])),
        "minExperienceLevel": leg.min_experience_level or (journey.min_experience_level if journey else None),
        "departureLocation": start.name if start else None,
        "arrivalLocation": end.name if end else None,
    }


def parse_bbox(value: Any) -> Tuple[Optional[Dict[str, float]], List[str]]:
    """
    Validate a {minLng, minLat, maxLng, maxLat} bounding box

    Returns:
        (bbox or None, missing keys)
    """
    if not isinstance(value, dict):
        return None, []
    missing = [key for key in BBOX_KEYS if value.get(key) is None]
    if missing:
        return None, missing
    try:
        bbox = {key: float(value[key]) for key in BBOX_KEYS}
    except (TypeError, ValueError):
        return None, []
    if bbox["minLat"] > bbox["maxLat"] or not (-90 <= bbox["minLat"] <= 90 and -90 <= bbox["maxLat"] <= 90):
        return None, []
    return bbox, []


def bbox_around(lat: Any, lng: Any, margin: float = LOCATION_MARGIN_DEGREES) -> Optional[Dict[str, float]]:
    """Box of +/- margin degrees around a point; None for missing or out-of-range coordinates"""
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return {
        "minLng": lng - margin,
        "minLat": max(-90.0, lat - margin),
        "maxLng": lng + margin,
        "maxLat": min(90.0, lat + margin),
    }


def _in_bbox(waypoint: Optional[Waypoint], bbox: Optional[Dict[str, float]]) -> bool:
    if bbox is None:
        return True
    if waypoint is None:
        return False
    if not bbox["minLat"] <= waypoint.lat <= bbox["maxLat"]:
        return False
    if bbox["minLng"] <= bbox["maxLng"]:
        return bbox["minLng"] <= waypoint.lng <= bbox["maxLng"]
    # Box crossing the antimeridian
    return waypoint.lng >= bbox["minLng"] or waypoint.lng <= bbox["maxLng"]


class JourneyService:
    """Service for journeys, their legs and registration questions"""

    def __init__(self, db: Session, notification_service: Optional[NotificationService] = None):
        self.db = db
        self.notification_service = notification_service or NotificationService(db)

    # ------------------------------------------------------------------
    # Journeys
    # ------------------------------------------------------------------

    def _clean_journey_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {k: v for k, v in fields.items() if k in JOURNEY_FIELDS}
        if "name" in cleaned:
            name = (cleaned["name"] or "").strip()
            if not name:
                raise ValueError("Journey name is required")
            cleaned["name"] = name
        for key in ("start_date", "end_date"):
            if key in cleaned:
                cleaned[key] = _to_date(cleaned[key])
        if "risk_level" in cleaned:
            cleaned["risk_level"] = filter_risk_levels(cleaned["risk_level"])
        if "skills" in cleaned:
            cleaned["skills"] = normalize_skill_names(cleaned["skills"])
        if "min_experience_level" in cleaned:
            cleaned["min_experience_level"] = _validate_experience(cleaned["min_experience_level"])
        if "cost_model" in cleaned:
            cleaned["cost_model"] = normalize_cost_model(cleaned["cost_model"])
        if "state" in cleaned:
            if cleaned["state"] not in {s.value for s in JourneyState}:
                raise ValueError(f"Invalid journey state '{cleaned['state']}'")
        if "images" in cleaned and cleaned["images"] is None:
            cleaned["images"] = []
        return cleaned

    @staticmethod
    def _check_dates(start: Optional[date], end: Optional[date]):
        if start and end and end < start:
            raise ValueError("End date must not be before start date")

    def create_journey(self, owner_id: UUID, boat_id: UUID, **fields: Any) -> Journey:
        """
        Create a journey on one of the owner's boats

        Raises:
            NotFoundError: If the boat does not exist
            PermissionDeniedError: If the caller does not own the boat
            ValueError: If a field is invalid
        """
        boat = self.db.query(Boat).filter(Boat.id == boat_id).first()
        if boat is None:
            raise NotFoundError("Boat not found")
        if boat.owner_id != owner_id:
            raise PermissionDeniedError("You do not own this boat")
        if not fields.get("name"):
            raise ValueError("Journey name is required")

        cleaned = self._clean_journey_fields(fields)
        self._check_dates(cleaned.get("start_date"), cleaned.get("end_date"))
        cleaned.setdefault("cost_model", CostModel.NOT_DEFINED.value)
        cleaned.setdefault("state", JourneyState.IN_PLANNING.value)

        journey = Journey(boat_id=boat_id, **cleaned)
        self.db.add(journey)
        self.db.commit()
        self.db.refresh(journey)
        logger.info(f"Created journey {journey.id} ({journey.name}) on boat {boat_id}")
        return journey

    def get_journey(self, journey_id: UUID) -> Journey:
        journey = (
            self.db.query(Journey)
            .options(joinedload(Journey.boat))
            .filter(Journey.id == journey_id)
            .first()
        )
        if journey is None:
            raise NotFoundError("Journey not found")
        return journey

    def get_owned_journey(self, owner_id: UUID, journey_id: UUID) -> Journey:
        journey = self.get_journey(journey_id)
        if journey.boat is None or journey.boat.owner_id != owner_id:
            raise PermissionDeniedError("You do not own this journey")
        return journey

    def get_visible_journey(self, journey_id: UUID, user_id: Optional[UUID]) -> Journey:
        """Published journeys are public; others only to their owner"""
        journey = self.get_journey(journey_id)
        if journey.state != JourneyState.PUBLISHED.value and (
            user_id is None or journey.boat.owner_id != user_id
        ):
            raise NotFoundError("Journey not found")
        return journey

    def list_owner_journeys(self, owner_id: UUID) -> List[Journey]:
        return (
            self.db.query(Journey)
            .join(Boat, Journey.boat_id == Boat.id)
            .filter(Boat.owner_id == owner_id)
            .order_by(Journey.created_at.desc())
            .all()
        )

    def list_published_journeys(self, limit: int = 50) -> List[Journey]:
        return (
            self.db.query(Journey)
            .filter(Journey.state == JourneyState.PUBLISHED.value)
            .order_by(Journey.start_date.asc())
            .limit(limit)
            .all()
        )

    def update_journey(self, owner_id: UUID, journey_id: UUID, **fields: Any) -> Tuple[Journey, List[str]]:
        """
        Apply changes to a journey

        Approved crew are notified when a Published journey changes.

        Returns:
            (journey, names of the fields whose value changed)
        """
        journey = self.get_owned_journey(owner_id, journey_id)
        cleaned = self._clean_journey_fields({k: v for k, v in fields.items() if v is not None})
        self._check_dates(
            cleaned.get("start_date", journey.start_date),
            cleaned.get("end_date", journey.end_date),
        )

        changed = [name for name, value in cleaned.items() if getattr(journey, name) != value]
        for name in changed:
            setattr(journey, name, cleaned[name])
        self.db.commit()
        self.db.refresh(journey)

        if changed:
            logger.info(f"Updated journey {journey_id}", extra={"fields": changed})
            if journey.state == JourneyState.PUBLISHED.value:
                labels = [name.replace("_", " ") for name in changed]
                for crew_id in self.notification_service.approved_crew_ids(journey.id):
                    self.notification_service.notify_journey_updated(crew_id, journey.id, journey.name, labels)
        return journey, changed

    def delete_journey(self, owner_id: UUID, journey_id: UUID):
        journey = self.get_owned_journey(owner_id, journey_id)
        self.db.delete(journey)
        self.db.commit()
        logger.info(f"Deleted journey {journey_id}")

    def set_auto_approval(
        self, owner_id: UUID, journey_id: UUID, enabled: bool, threshold: Optional[int] = None
    ) -> Journey:
        """
        Configure AI auto-approval of registrations

        Raises:
            ValueError: If threshold is outside 0-100
        """
        journey = self.get_owned_journey(owner_id, journey_id)
        if threshold is not None:
            if not 0 <= int(threshold) <= 100:
                raise ValueError("Auto-approval threshold must be between 0 and 100")
            journey.auto_approval_threshold = int(threshold)
        journey.auto_approval_enabled = bool(enabled)
        self.db.commit()
        self.db.refresh(journey)
        logger.info(
            f"Auto-approval {'enabled' if enabled else 'disabled'} for journey {journey_id}",
            extra={"threshold": journey.auto_approval_threshold},
        )
        return journey

    # ------------------------------------------------------------------
    # Legs and waypoints
    # ------------------------------------------------------------------

    @staticmethod
    def _build_waypoints(waypoints: Iterable[Dict[str, Any]]) -> List[Waypoint]:
        built: List[Waypoint] = []
        seen = set()
        for position, raw in enumerate(waypoints):
            index = int(raw.get("index", position))
            if index in seen:
                raise ValueError(f"Duplicate waypoint index {index}")
            seen.add(index)
            try:
                lat, lng = float(raw["lat"]), float(raw["lng"])
            except (KeyError, TypeError, ValueError):
                raise ValueError(f"Waypoint {index} needs numeric lat and lng")
            if not -90 <= lat <= 90 or not -180 <= lng <= 180:
                raise ValueError(f"Waypoint {index} coordinates are out of range")
            built.append(Waypoint(index=index, name=raw.get("name"), lat=lat, lng=lng))
        return sorted(built, key=lambda w: w.index)

    def _clean_leg_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {k: v for k, v in fields.items() if k in LEG_FIELDS}
        if "name" in cleaned:
            name = (cleaned["name"] or "").strip()
            if not name:
                raise ValueError("Leg name is required")
            cleaned["name"] = name
        for key in ("start_date", "end_date"):
            if key in cleaned:
                cleaned[key] = _to_datetime(cleaned[key])
        if "skills" in cleaned:
            cleaned["skills"] = normalize_skill_names(cleaned["skills"])
        if cleaned.get("risk_level") is not None:
            if cleaned["risk_level"] not in {level.value for level in RiskLevel}:
                raise ValueError(f"Invalid risk level '{cleaned['risk_level']}'")
        if "min_experience_level" in cleaned:
            cleaned["min_experience_level"] = _validate_experience(cleaned["min_experience_level"])
        if cleaned.get("crew_needed") is not None and int(cleaned["crew_needed"]) < 0:
            raise ValueError("Crew needed cannot be negative")
        return cleaned

    def create_leg(
        self,
        owner_id: UUID,
        journey_id: UUID,
        waypoints: Optional[List[Dict[str, Any]]] = None,
        **fields: Any,
    ) -> Leg:
        journey = self.get_owned_journey(owner_id, journey_id)
        if not fields.get("name"):
            raise ValueError("Leg name is required")
        cleaned = self._clean_leg_fields(fields)
        self._check_dates(cleaned.get("start_date"), cleaned.get("end_date"))

        leg = Leg(journey_id=journey.id, **cleaned)
        leg.waypoints = self._build_waypoints(waypoints or [])
        self.db.add(leg)
        self.db.commit()
        self.db.refresh(leg)
        logger.info(f"Created leg {leg.id} ({leg.name}) in journey {journey_id}", extra={"waypoints": len(leg.waypoints)})
        return leg

    def get_leg(self, leg_id: UUID) -> Leg:
        leg = (
            self.db.query(Leg)
            .options(joinedload(Leg.journey).joinedload(Journey.boat), selectinload(Leg.waypoints))
            .filter(Leg.id == leg_id)
            .first()
        )
        if leg is None:
            raise NotFoundError("Leg not found")
        return leg

    def get_owned_leg(self, owner_id: UUID, leg_id: UUID) -> Leg:
        leg = self.get_leg(leg_id)
        if leg.journey.boat.owner_id != owner_id:
            raise PermissionDeniedError("You do not own this leg")
        return leg

    def list_journey_legs(self, journey_id: UUID) -> List[Leg]:
        return (
            self.db.query(Leg)
            .options(selectinload(Leg.waypoints))
            .filter(Leg.journey_id == journey_id)
            .order_by(Leg.start_date.asc(), Leg.created_at.asc())
            .all()
        )

    def update_leg(
        self,
        owner_id: UUID,
        leg_id: UUID,
        waypoints: Optional[List[Dict[str, Any]]] = None,
        **fields: Any,
    ) -> Tuple[Leg, List[str]]:
        """
        Apply changes to a leg; waypoints, when given, replace the existing ones

        Approved crew on the leg's journey are notified of the changes.
        """
        leg = self.get_owned_leg(owner_id, leg_id)
        cleaned = self._clean_leg_fields({k: v for k, v in fields.items() if v is not None})
        self._check_dates(cleaned.get("start_date", leg.start_date), cleaned.get("end_date", leg.end_date))

        changed = [name for name, value in cleaned.items() if getattr(leg, name) != value]
        for name in changed:
            setattr(leg, name, cleaned[name])
        if waypoints is not None:
            leg.waypoints.clear()
            self.db.flush()
            leg.waypoints.extend(self._build_waypoints(waypoints))
            changed.append("waypoints")
        self.db.commit()
        self.db.refresh(leg)

        if changed:
            logger.info(f"Updated leg {leg_id}", extra={"fields": changed})
            labels = [name.replace("_", " ") for name in changed]
            journey = leg.journey
            for crew_id in self.notification_service.approved_crew_ids(journey.id):
                self.notification_service.notify_leg_updated(
                    crew_id, leg.id, leg.name, journey.id, journey.name, labels
                )
        return leg, changed

    def delete_leg(self, owner_id: UUID, leg_id: UUID):
        leg = self.get_owned_leg(owner_id, leg_id)
        self.db.delete(leg)
        self.db.commit()
        logger.info(f"Deleted leg {leg_id}")

    # ------------------------------------------------------------------
    # Requirements (registration questions)
    # ------------------------------------------------------------------

    def list_requirements(self, journey_id: UUID) -> List[JourneyRequirement]:
        return (
            self.db.query(JourneyRequirement)
            .filter(JourneyRequirement.journey_id == journey_id)
            .order_by(JourneyRequirement.order.asc())
            .all()
        )

    @staticmethod
    def _validate_requirement(question_type: str, options: Any, weight: Any):
        if question_type not in {t.value for t in QuestionType}:
            raise ValueError(f"Invalid question type '{question_type}'")
        if question_type == QuestionType.MULTIPLE_CHOICE.value and not options:
            raise ValueError("Multiple choice questions need at least one option")
        if weight is not None and not 1 <= int(weight) <= 10:
            raise ValueError("Weight must be between 1 and 10")

    def create_requirement(
        self,
        owner_id: UUID,
        journey_id: UUID,
        question_text: str,
        question_type: str = QuestionType.TEXT.value,
        options: Optional[List[str]] = None,
        is_required: bool = True,
        weight: int = 5,
        order: Optional[int] = None,
    ) -> JourneyRequirement:
        journey = self.get_owned_journey(owner_id, journey_id)
        if not question_text or not question_text.strip():
            raise ValueError("Question text is required")
        self._validate_requirement(question_type, options, weight)

        if order is None:
            current_max = (
                self.db.query(func.max(JourneyRequirement.order))
                .filter(JourneyRequirement.journey_id == journey.id)
                .scalar()
            )
            order = 0 if current_max is None else current_max + 1

        requirement = JourneyRequirement(
            journey_id=journey.id,
            question_text=question_text.strip(),
            question_type=question_type,
            options=list(options or []),
            is_required=is_required,
            weight=int(weight),
            order=order,
        )
        self.db.add(requirement)
        self.db.commit()
        self.db.refresh(requirement)
        logger.info(f"Added requirement {requirement.id} to journey {journey_id}")
        return requirement

    def _get_owned_requirement(self, owner_id: UUID, journey_id: UUID, requirement_id: UUID) -> JourneyRequirement:
        self.get_owned_journey(owner_id, journey_id)
        requirement = (
            self.db.query(JourneyRequirement)
            .filter(JourneyRequirement.id == requirement_id, JourneyRequirement.journey_id == journey_id)
            .first()
        )
        if requirement is None:
            raise NotFoundError("Requirement not found")
        return requirement

    def update_requirement(
        self, owner_id: UUID, journey_id: UUID, requirement_id: UUID, **fields: Any
    ) -> JourneyRequirement:
        requirement = self._get_owned_requirement(owner_id, journey_id, requirement_id)
        changes = {k: v for k, v in fields.items() if k in REQUIREMENT_FIELDS and v is not None}
        self._validate_requirement(
            changes.get("question_type", requirement.question_type),
            changes.get("options", requirement.options),
            changes.get("weight"),
        )
        for name, value in changes.items():
            setattr(requirement, name, value)
        self.db.commit()
        self.db.refresh(requirement)
        return requirement

    def delete_requirement(self, owner_id: UUID, journey_id: UUID, requirement_id: UUID):
        requirement = self._get_owned_requirement(owner_id, journey_id, requirement_id)
        self.db.delete(requirement)
        self.db.commit()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _published_legs_query(
        self,
        start_date: Any = None,
        end_date: Any = None,
        risk_level: Optional[str] = None,
        crew_needed: bool = True,
    ):
        query = (
            self.db.query(Leg)
            .join(Journey, Leg.journey_id == Journey.id)
            .options(joinedload(Leg.journey).joinedload(Journey.boat), selectinload(Leg.waypoints))
            .filter(Journey.state == JourneyState.PUBLISHED.value)
        )
        start = _to_datetime(start_date)
        end = _to_datetime(end_date)
        # Overlap: the leg ends on/after the window start and starts on/before the window end
        if start is not None:
            query = query.filter((Leg.end_date.is_(None)) | (Leg.end_date >= start))
        if end is not None:
            query = query.filter((Leg.start_date.is_(None)) | (Leg.start_date <= end))
        if risk_level:
            query = query.filter(Leg.risk_level == risk_level)
        if crew_needed:
            query = query.filter(Leg.crew_needed > 0)
        return query.order_by(Leg.start_date.asc())

    def search_published_legs(
        self,
        start_date: Any = None,
        end_date: Any = None,
        location_query: Optional[str] = None,
        risk_level: Optional[str] = None,
        limit: int = 10,
        crew_needed: bool = True,
    ) -> List[Leg]:
        """
        Find legs of Published journeys

        Args:
            start_date: Window start; legs ending before it are excluded
            end_date: Window end; legs starting after it are excluded
            location_query: Case-insensitive substring of the departure or arrival waypoint name
            risk_level: Exact RiskLevel value of the leg
            limit: Maximum number of legs returned
            crew_needed: Only legs that still need crew

        Returns:
            Legs ordered by start date
        """
        query = self._published_legs_query(start_date, end_date, risk_level, crew_needed)
        limit = max(1, limit)
        if not location_query:
            return query.limit(limit).all()

        # Departure and arrival are the first and last waypoints, resolved per leg
        needle = location_query.strip().lower()
        legs = [
            leg for leg in query.all()
            if any(
                wp is not None and wp.name and needle in wp.name.lower()
                for wp in (leg.start_waypoint, leg.end_waypoint)
            )
        ]
        return legs[:limit]

    def search_legs_by_bbox(
        self,
        departure_bbox: Optional[Dict[str, float]] = None,
        arrival_bbox: Optional[Dict[str, float]] = None,
        start_date: Any = None,
        end_date: Any = None,
        limit: int = 10,
        crew_needed: bool = True,
    ) -> List[Leg]:
        """Published legs departing from and/or arriving in the given boxes"""
        if departure_bbox is None and arrival_bbox is None:
            raise ValueError("At least one of departure or arrival bounding box must be provided")
        legs = self._published_legs_query(start_date, end_date, None, crew_needed).all()
        matching = [
            leg for leg in legs
            if _in_bbox(leg.start_waypoint, departure_bbox) and _in_bbox(leg.end_waypoint, arrival_bbox)
        ]
        return matching[:max(1, limit)]

    def get_legs_in_viewport(
        self,
        viewport: Dict[str, float],
        start_date: Any = None,
        end_date: Any = None,
        risk_levels: Optional[List[str]] = None,
        skills: Optional[List[str]] = None,
        min_experience_level: Optional[int] = None,
        departure_bbox: Optional[Dict[str, float]] = None,
        arrival_bbox: Optional[Dict[str, float]] = None,
    ) -> List[Leg]:
        """
        Published legs whose route crosses a map viewport

        Args:
            viewport: {minLng, minLat, maxLng, maxLat}; a leg matches when the box
                around its waypoints intersects it
            start_date: Legs starting on or after this day
            end_date: Legs ending on or before this day
            risk_levels: Leg risk level, or the journey's when the leg has none, must be listed
            skills: Leg or journey must ask for at least one of these
            min_experience_level: The crew member's level; legs requiring more are excluded
            departure_bbox: First waypoint must lie inside
            arrival_bbox: Last waypoint must lie inside

        Returns:
            Legs ordered by start date
        """
        extent = (
            self.db.query(
                Waypoint.leg_id.label("leg_id"),
                func.min(Waypoint.lng).label("min_lng"),
                func.min(Waypoint.lat).label("min_lat"),
                func.max(Waypoint.lng).label("max_lng"),
                func.max(Waypoint.lat).label("max_lat"),
            )
            .group_by(Waypoint.leg_id)
            .subquery()
        )
        query = (
            self.db.query(Leg)
            .join(Journey, Leg.journey_id == Journey.id)
            .join(extent, extent.c.leg_id == Leg.id)
            .options(joinedload(Leg.journey).joinedload(Journey.boat), selectinload(Leg.waypoints))
            .filter(
                Journey.state == JourneyState.PUBLISHED.value,
                extent.c.min_lng <= viewport["maxLng"],
                extent.c.max_lng >= viewport["minLng"],
                extent.c.min_lat <= viewport["maxLat"],
                extent.c.max_lat >= viewport["minLat"],
            )
        )

        start = _to_date(start_date)
        end = _to_date(end_date)
        if start is not None:
            query = query.filter(Leg.start_date >= datetime(start.year, start.month, start.day))
        if end is not None:
            query = query.filter(Leg.end_date < datetime(end.year, end.month, end.day) + timedelta(days=1))
        if min_experience_level is not None:
            required = func.coalesce(Leg.min_experience_level, Journey.min_experience_level)
            query = query.filter(required.is_(None) | (required <= int(min_experience_level)))

        wanted_risks = set(risk_levels or [])
        wanted_skills = set(normalize_skill_names(skills or []))
        legs = []
        for leg in query.order_by(Leg.start_date.asc()).all():
            # JSON-array columns are matched here to stay portable across databases
            if wanted_risks:
                leg_risks = {leg.risk_level} if leg.risk_level else set(leg.journey.risk_level or [])
                if not leg_risks & wanted_risks:
                    continue
            if wanted_skills:
                offered = set(normalize_skill_names(leg.skills or []))
                offered |= set(normalize_skill_names(leg.journey.skills or []))
                if not offered & wanted_skills:
                    continue
            if not (_in_bbox(leg.start_waypoint, departure_bbox) and _in_bbox(leg.end_waypoint, arrival_bbox)):
                continue
            legs.append(leg)

        logger.debug("Viewport leg search", extra={"viewport": viewport, "returned": len(legs)})
        return legs
