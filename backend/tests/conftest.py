"""
Pytest configuration and fixtures
"""
import itertools
import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are cached on first use, so the test environment goes in before any app import
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite://"
os.environ["LOG_FORMAT"] = "text"
os.environ.pop("LLM_API_KEY", None)
os.environ.pop("EMAIL_API_KEY", None)

from app.core.database import Base, get_engine, get_session_local  # noqa: E402
from app.models.journey import JourneyState  # noqa: E402
from app.services.auth_service import AuthService  # noqa: E402
from app.services.boat_service import BoatService  # noqa: E402
from app.services.journey_service import JourneyService  # noqa: E402
from app.services.llm_client import LLMResponse  # noqa: E402
from app.services.profile_service import ProfileService  # noqa: E402

DEFAULT_WAYPOINTS = [
    {"index": 0, "name": "Palma de Mallorca", "lat": 39.5696, "lng": 2.6502},
    {"index": 1, "name": "Mahon, Menorca", "lat": 39.8885, "lng": 4.2658},
]


@pytest.fixture(scope="function")
def db():
    """Database session on a freshly created in-memory schema"""
    import app.models  # noqa: F401  register every table on Base.metadata

    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = get_session_local()()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db):
    """FastAPI test client sharing the test database session"""
    from fastapi.testclient import TestClient

    from app.core.database import get_db
    from main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------

@pytest.fixture
def make_user(db):
    """Create an account, optionally with a profile carrying the given roles"""
    counter = itertools.count(1)

    def _make(username=None, password="password123", roles=None, **profile_fields):
        username = username or f"sailor{next(counter)}"
        user = AuthService(db).register_user(username, f"{username}@example.com", password)
        if roles is not None or profile_fields:
            ProfileService(db).create_or_update_profile(user.id, roles=roles or [], **profile_fields)
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("skipper", roles=["owner"], full_name="Sam Skipper")


@pytest.fixture
def crew(make_user):
    return make_user(
        "deckhand",
        roles=["crew"],
        full_name="Casey Crew",
        sailing_experience=2,
        risk_level=["Coastal sailing"],
        skills=["navigation", "cooking"],
    )


@pytest.fixture
def make_boat(db):
    def _make(owner, **fields):
        fields.setdefault("name", f"Boat {uuid4().hex[:6]}")
        return BoatService(db).create_boat(owner.id, **fields)

    return _make


@pytest.fixture
def make_journey(db, make_boat):
    def _make(owner, boat=None, **fields):
        boat = boat or make_boat(owner)
        fields.setdefault("name", "Balearic Summer")
        fields.setdefault("state", JourneyState.PUBLISHED.value)
        fields.setdefault("start_date", "2027-06-01")
        fields.setdefault("end_date", "2027-06-20")
        return JourneyService(db).create_journey(owner.id, boat.id, **fields)

    return _make


@pytest.fixture
def make_leg(db, make_journey):
    def _make(owner, journey=None, waypoints=None, **fields):
        journey = journey or make_journey(owner)
        fields.setdefault("name", "Palma to Mahon")
        fields.setdefault("crew_needed", 2)
        fields.setdefault("start_date", "2027-06-01T09:00:00")
        fields.setdefault("end_date", "2027-06-03T18:00:00")
        return JourneyService(db).create_leg(
            owner.id,
            journey.id,
            waypoints=DEFAULT_WAYPOINTS if waypoints is None else waypoints,
            **fields,
        )

    return _make


@pytest.fixture
def auth_headers(db):
    """Bearer headers for a fresh login session of the given user"""

    def _headers(user):
        token = AuthService(db).create_session(user.id).token
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ----------------------------------------------------------------------
# LLM
# ----------------------------------------------------------------------

class FakeLLMClient:
    """Stands in for LLMClient; replies are returned (or raised) in order"""

    def __init__(self, *replies):
        self.complete = AsyncMock(side_effect=[
            LLMResponse(text=reply, model="test-model") if isinstance(reply, str) else reply
            for reply in replies
        ])

    @property
    def calls(self):
        return [call.kwargs for call in self.complete.call_args_list]


@pytest.fixture
def fake_llm():
    """Build a FakeLLMClient to pass to a service"""
    return FakeLLMClient


@pytest.fixture
def install_llm(monkeypatch):
    """Make get_llm_client() return a FakeLLMClient for API tests"""
    import app.services.llm_client as llm_module

    def _install(*replies):
        fake = FakeLLMClient(*replies)
        monkeypatch.setattr(llm_module, "_llm_client", fake)
        return fake

    return _install
