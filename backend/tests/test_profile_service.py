"""
Tests for ProfileService
"""
from datetime import date
from uuid import uuid4

import pytest

from app.core.errors import ConflictError, NotFoundError
from app.models.profile import UserRole
from app.services.profile_service import (ProfileService,
                                          normalize_profile_skills,
                                          public_profile)


class TestProfileService:
    """Profile creation, validation and completion"""

    def test_create_profile_generates_username(self, db, make_user):
        user = make_user("marina")
        profile = ProfileService(db).create_or_update_profile(user.id, full_name="Marina Blue")

        assert profile.id == user.id
        assert profile.username == "marina"
        assert profile.email == "marina@example.com"
        assert profile.full_name == "Marina Blue"
        assert profile.roles == []
        assert profile.profile_completion_percentage == 25

    def test_generated_username_avoids_collisions(self, db, make_user):
        first = make_user("marina")
        second = make_user("second")
        service = ProfileService(db)
        service.create_or_update_profile(first.id, username="second")

        profile = service.create_or_update_profile(second.id, full_name="Second Mate")
        assert profile.username == "second2"

    def test_update_existing_profile(self, db, crew):
        service = ProfileService(db)
        profile = service.create_or_update_profile(
            crew.id,
            phone="+34 600 000 000",
            sailing_preferences="Island hopping",
            full_name=None,
        )

        assert profile.full_name == "Casey Crew"
        assert profile.phone == "+34 600 000 000"
        assert profile.profile_completion_percentage == 100
        assert profile.profile_completed_at is not None

    def test_skills_are_normalized(self, db, make_user):
        user = make_user()
        profile = ProfileService(db).create_or_update_profile(
            user.id,
            skills=["Night Sailing", {"skill_name": "first_aid", "description": "CPR"}, "night_sailing"],
        )
        assert profile.skills == [
            {"skill_name": "night_sailing", "description": ""},
            {"skill_name": "first_aid", "description": "CPR"},
        ]

    def test_availability_dates_parsed(self, db, make_user):
        user = make_user()
        profile = ProfileService(db).create_or_update_profile(
            user.id,
            availability_start_date="2027-05-01",
            availability_end_date="2027-09-30T00:00:00Z",
        )
        assert profile.availability_start_date == date(2027, 5, 1)
        assert profile.availability_end_date == date(2027, 9, 30)

    @pytest.mark.parametrize("fields", [
        {"sailing_experience": 5},
        {"sailing_experience": "lots"},
        {"risk_level": ["Lake sailing"]},
        {"roles": ["captain"]},
        {"preferred_departure_location": {"lat": 1.0}},
        {"username": "   "},
        {"favourite_colour": "blue"},
    ])
    def test_validation_errors(self, db, make_user, fields):
        user = make_user()
        with pytest.raises(ValueError):
            ProfileService(db).create_or_update_profile(user.id, **fields)

    def test_username_taken(self, db, owner, crew):
        with pytest.raises(ConflictError):
            ProfileService(db).create_or_update_profile(crew.id, username="skipper")

    def test_missing_user(self, db):
        with pytest.raises(NotFoundError):
            ProfileService(db).create_or_update_profile(uuid4(), full_name="Ghost")

    def test_get_profile_or_404(self, db, make_user):
        user = make_user()
        with pytest.raises(NotFoundError):
            ProfileService(db).get_profile_or_404(user.id)

    def test_add_role(self, db, make_user):
        user = make_user()
        service = ProfileService(db)

        profile = service.add_role(user.id, UserRole.CREW)
        assert profile.roles == ["crew"]

        profile = service.add_role(user.id, "owner")
        assert profile.roles == ["crew", "owner"]
        assert service.add_role(user.id, UserRole.OWNER).roles == ["crew", "owner"]

    def test_completion(self, db, make_user, crew):
        service = ProfileService(db)
        assert service.get_completion(make_user().id).percentage == 0
        assert service.get_completion(crew.id).percentage == 75

    def test_public_profile_hides_contact_details(self, db, crew):
        profile = ProfileService(db).create_or_update_profile(crew.id, phone="+34 600 000 000")
        data = public_profile(profile)

        assert data["id"] == str(crew.id)
        assert data["full_name"] == "Casey Crew"
        assert "phone" not in data
        assert "email" not in data


def test_normalize_profile_skills_edge_cases():
    assert normalize_profile_skills(None) == []
    assert normalize_profile_skills("navigation") == []
    assert normalize_profile_skills(['{"name": "Knots"}', "{cooking"]) == [
        {"skill_name": "knots", "description": ""},
        {"skill_name": "cooking", "description": ""},
    ]
