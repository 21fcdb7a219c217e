"""
Boat management service
"""
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.core.logging_config import LoggingConfig
from app.models.boat import Boat, SailboatCategory
from app.models.profile import Profile, UserRole

logger = LoggingConfig.get_logger(__name__)

BOAT_FIELDS = (
    "name",
    "type",
    "make_model",
    "capacity",
    "home_port",
    "country_flag",
    "loa_m",
    "beam_m",
    "max_draft_m",
    "displcmt_m",
    "average_speed_knots",
    "link_to_specs",
    "characteristics",
    "capabilities",
    "accommodations",
    "images",
)


class BoatService:
    """Service for skippers' boats"""

    def __init__(self, db: Session):
        self.db = db

    def _validate(self, fields: dict) -> dict:
        cleaned = {k: v for k, v in fields.items() if k in BOAT_FIELDS}
        if "name" in cleaned:
            name = (cleaned["name"] or "").strip()
            if not name:
                raise ValueError("Boat name is required")
            cleaned["name"] = name
        if cleaned.get("type") is not None:
            valid = {c.value for c in SailboatCategory}
            if cleaned["type"] not in valid:
                raise ValueError(f"Invalid boat type '{cleaned['type']}'")
        if cleaned.get("capacity") is not None and int(cleaned["capacity"]) < 1:
            raise ValueError("Capacity must be at least 1")
        if cleaned.get("country_flag"):
            flag = str(cleaned["country_flag"]).strip().upper()
            if len(flag) != 2 or not flag.isalpha():
                raise ValueError("Country flag must be a 2-letter ISO country code")
            cleaned["country_flag"] = flag
        if "images" in cleaned and cleaned["images"] is None:
            cleaned["images"] = []
        return cleaned

    def _check_duplicates(self, owner_id: UUID, fields: dict, exclude_id: Optional[UUID] = None):
        query = self.db.query(Boat).filter(Boat.owner_id == owner_id)
        if exclude_id is not None:
            query = query.filter(Boat.id != exclude_id)
        name = fields.get("name")
        if name and query.filter(func.lower(Boat.name) == name.lower()).first():
            raise ConflictError(f"You already have a boat named '{name}'")
        make_model = (fields.get("make_model") or "").strip()
        if make_model and query.filter(func.lower(Boat.make_model) == make_model.lower()).first():
            raise ConflictError(f"You already have a {make_model}")

    def create_boat(self, owner_id: UUID, **fields: Any) -> Boat:
        """
        Create a boat for an owner

        Raises:
            PermissionDeniedError: If the profile lacks the owner role
            ValueError: If a field is invalid
            ConflictError: If the owner already has a boat with that name or make/model
        """
        profile = self.db.query(Profile).filter(Profile.id == owner_id).first()
        if not profile or not profile.has_role(UserRole.OWNER):
            raise PermissionDeniedError("Only boat owners can add boats")

        if not fields.get("name"):
            raise ValueError("Boat name is required")
        cleaned = self._validate(fields)
        self._check_duplicates(owner_id, cleaned)

        boat = Boat(owner_id=owner_id, **cleaned)
        self.db.add(boat)
        self.db.commit()
        self.db.refresh(boat)
        logger.info(f"Created boat {boat.id} ({boat.name}) for owner {owner_id}")
        return boat

    def get_boat(self, boat_id: UUID) -> Boat:
        boat = self.db.query(Boat).filter(Boat.id == boat_id).first()
        if boat is None:
            raise NotFoundError("Boat not found")
        return boat

    def get_owned_boat(self, owner_id: UUID, boat_id: UUID) -> Boat:
        boat = self.get_boat(boat_id)
        if boat.owner_id != owner_id:
            raise PermissionDeniedError("You do not own this boat")
        return boat

    def list_owner_boats(self, owner_id: UUID) -> List[Boat]:
        return (
            self.db.query(Boat)
            .filter(Boat.owner_id == owner_id)
            .order_by(Boat.created_at.desc())
            .all()
        )

    def update_boat(self, owner_id: UUID, boat_id: UUID, **fields: Any) -> Boat:
        boat = self.get_owned_boat(owner_id, boat_id)
        cleaned = self._validate({k: v for k, v in fields.items() if v is not None})
        self._check_duplicates(owner_id, cleaned, exclude_id=boat.id)
        for name, value in cleaned.items():
            setattr(boat, name, value)
        self.db.commit()
        self.db.refresh(boat)
        logger.info(f"Updated boat {boat_id}", extra={"fields": sorted(cleaned)})
        return boat

    def delete_boat(self, owner_id: UUID, boat_id: UUID):
        boat = self.get_owned_boat(owner_id, boat_id)
        self.db.delete(boat)
        self.db.commit()
        logger.info(f"Deleted boat {boat_id}")
