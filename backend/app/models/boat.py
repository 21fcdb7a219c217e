"""
Boat model
"""
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import (JSON, Column, DateTime, Float, ForeignKey, Integer,
                        String, Text, Uuid)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_utils import to_iso, utc_now


class SailboatCategory(str, Enum):
    """Sailboat category"""
    DAYSAILERS = "Daysailers"
    COASTAL_CRUISERS = "Coastal cruisers"
    TRADITIONAL_OFFSHORE_CRUISERS = "Traditional offshore cruisers"
    PERFORMANCE_CRUISERS = "Performance cruisers"
    MULTIHULLS = "Multihulls"
    EXPEDITION_SAILBOATS = "Expedition sailboats"


class Boat(Base):
    """Boat owned by a skipper"""
    __tablename__ = "boats"

    id = Column(Uuid, primary_key=True, default=uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=True)  # SailboatCategory
    make_model = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=True)
    home_port = Column(String(255), nullable=True)
    country_flag = Column(String(2), nullable=True)  # ISO 3166-1 alpha-2

    loa_m = Column(Float, nullable=True)
    beam_m = Column(Float, nullable=True)
    max_draft_m = Column(Float, nullable=True)
    displcmt_m = Column(Float, nullable=True)
    average_speed_knots = Column(Float, nullable=True)

    link_to_specs = Column(Text, nullable=True)
    characteristics = Column(Text, nullable=True)
    capabilities = Column(Text, nullable=True)
    accommodations = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    journeys = relationship("Journey", back_populates="boat", cascade="all, delete-orphan")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "owner_id": str(self.owner_id),
            "name": self.name,
            "type": self.type,
            "make_model": self.make_model,
            "capacity": self.capacity,
            "home_port": self.home_port,
            "country_flag": self.country_flag,
            "loa_m": self.loa_m,
            "beam_m": self.beam_m,
            "max_draft_m": self.max_draft_m,
            "displcmt_m": self.displcmt_m,
            "average_speed_knots": self.average_speed_knots,
            "link_to_specs": self.link_to_specs,
            "characteristics": self.characteristics,
            "capabilities": self.capabilities,
            "accommodations": self.accommodations,
            "images": self.images or [],
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Boat(id={self.id}, name={self.name}, owner_id={self.owner_id})>"
