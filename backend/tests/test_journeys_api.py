"""
Tests for profile, boat, journey and leg endpoints
"""
from uuid import uuid4

from app.models.journey import JourneyState
from app.models.registration import Registration, RegistrationStatus

WAYPOINTS = [
    {"name": "Palma de Mallorca", "lat": 39.5696, "lng": 2.6502},
    {"name": "Mahon, Menorca", "lat": 39.8885, "lng": 4.2658},
]


class TestProfilesAPI:
    """/api/profiles"""

    def test_create_and_read_profile(self, client, make_user, auth_headers):
        headers = auth_headers(make_user("marina"))
        assert client.get("/api/profiles/me", headers=headers).status_code == 404

        response = client.put("/api/profiles/me", headers=headers, json={
            "full_name": "Marina Mar",
            "sailing_experience": 3,
            "risk_level": ["Coastal sailing"],
            "skills": ["Navigation", {"skill_name": "first aid", "description": "STCW"}],
            "roles": ["crew"],
        })

        assert response.status_code == 200
        profile = response.json()
        assert profile["username"] == "marina"
        assert profile["skills"] == [
            {"skill_name": "navigation", "description": ""},
            {"skill_name": "first_aid", "description": "STCW"},
        ]
        assert profile["profile_completion_percentage"] > 0
        assert client.get("/api/profiles/me", headers=headers).json()["full_name"] == "Marina Mar"

        completion = client.get("/api/profiles/me/completion", headers=headers).json()
        assert completion["percentage"] == profile["profile_completion_percentage"]
        assert "phone" in [f["name"] for f in completion["missing_fields"]]

    def test_validation_errors(self, client, make_user, auth_headers):
        headers = auth_headers(make_user())
        assert client.put("/api/profiles/me", headers=headers, json={"sailing_experience": 7}).status_code == 422
        assert client.put("/api/profiles/me", headers=headers, json={"roles": ["pirate"]}).status_code == 400

    def test_username_conflict(self, client, make_user, auth_headers, owner):
        headers = auth_headers(make_user())
        response = client.put("/api/profiles/me", headers=headers, json={"username": "skipper"})
        assert response.status_code == 409

    def test_public_profile_hides_contact_details(self, client, crew, owner, auth_headers):
        response = client.get(f"/api/profiles/{crew.id}", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["full_name"] == "Casey Crew"
        assert "phone" not in data
        assert "email" not in data
        assert client.get(f"/api/profiles/{uuid4()}", headers=auth_headers(owner)).status_code == 404


class TestBoatsAPI:
    """/api/boats"""

    def test_crud(self, client, owner, auth_headers):
        headers = auth_headers(owner)

        created = client.post("/api/boats", headers=headers, json={
            "name": "Sea Breeze", "type": "Coastal cruisers", "capacity": 6, "country_flag": "ES",
        })
        assert created.status_code == 201
        boat_id = created.json()["id"]

        listing = client.get("/api/boats", headers=headers).json()
        assert listing["total"] == 1

        updated = client.put(f"/api/boats/{boat_id}", headers=headers, json={"home_port": "Palma"})
        assert updated.json()["home_port"] == "Palma"
        assert updated.json()["name"] == "Sea Breeze"

        assert client.delete(f"/api/boats/{boat_id}", headers=headers).status_code == 204
        assert client.get(f"/api/boats/{boat_id}", headers=headers).status_code == 404

    def test_rules(self, client, owner, crew, make_boat, auth_headers):
        boat = make_boat(owner, name="Sea Breeze")

        duplicate = client.post("/api/boats", headers=auth_headers(owner), json={"name": "Sea Breeze"})
        assert duplicate.status_code == 409

        not_owner = client.post("/api/boats", headers=auth_headers(crew), json={"name": "Dinghy"})
        assert not_owner.status_code == 403

        foreign = client.put(f"/api/boats/{boat.id}", headers=auth_headers(crew), json={"name": "Mine now"})
        assert foreign.status_code == 403

        assert client.get("/api/boats").status_code == 401


class TestJourneysAPI:
    """/api/journeys"""

    def test_create_and_visibility(self, client, owner, crew, make_boat, auth_headers):
        boat = make_boat(owner)

        response = client.post("/api/journeys", headers=auth_headers(owner), json={
            "boat_id": str(boat.id),
            "name": "Autumn Delivery",
            "start_date": "2027-09-01",
            "end_date": "2027-09-10",
            "risk_level": ["Offshore sailing"],
        })

        assert response.status_code == 201
        journey = response.json()
        assert journey["state"] == JourneyState.IN_PLANNING.value
        assert journey["cost_model"] == "Not defined"

        # Unpublished journeys are hidden from everyone but the owner
        assert client.get(f"/api/journeys/{journey['id']}").status_code == 404
        assert client.get(f"/api/journeys/{journey['id']}", headers=auth_headers(crew)).status_code == 404
        own = client.get(f"/api/journeys/{journey['id']}", headers=auth_headers(owner)).json()
        assert own["boat"]["id"] == str(boat.id)

    def test_invalid_dates(self, client, owner, make_boat, auth_headers):
        response = client.post("/api/journeys", headers=auth_headers(owner), json={
            "boat_id": str(make_boat(owner).id),
            "name": "Backwards",
            "start_date": "2027-09-10",
            "end_date": "2027-09-01",
        })
        assert response.status_code == 400

    def test_list(self, client, owner, crew, make_journey, auth_headers):
        make_journey(owner, name="Published one")
        make_journey(owner, name="Draft", state=JourneyState.IN_PLANNING.value)

        mine = client.get("/api/journeys", headers=auth_headers(owner)).json()
        assert mine["total"] == 2

        published = client.get("/api/journeys?mine=false", headers=auth_headers(crew)).json()
        assert [j["name"] for j in published["journeys"]] == ["Published one"]

    def test_update_notifies_approved_crew(self, client, db, owner, crew, make_leg, auth_headers):
        leg = make_leg(owner)
        db.add(Registration(leg_id=leg.id, user_id=crew.id, status=RegistrationStatus.APPROVED.value))
        db.commit()

        response = client.put(f"/api/journeys/{leg.journey_id}", headers=auth_headers(owner), json={
            "cost_info": "Share food and fuel",
            "name": "Balearic Summer",
        })

        assert response.status_code == 200
        assert response.json()["changed_fields"] == ["cost_info"]
        notifications = client.get("/api/notifications", headers=auth_headers(crew)).json()
        assert notifications["notifications"][0]["type"] == "journey_updated"

    def test_auto_approval(self, client, owner, crew, make_journey, auth_headers):
        journey = make_journey(owner)
        url = f"/api/journeys/{journey.id}/auto-approval"

        response = client.put(url, headers=auth_headers(owner), json={"enabled": True, "threshold": 75})
        assert response.json() == {
            "journey_id": str(journey.id),
            "auto_approval_enabled": True,
            "auto_approval_threshold": 75,
        }
        assert client.put(url, headers=auth_headers(owner), json={"enabled": True, "threshold": 120}).status_code == 400
        assert client.put(url, headers=auth_headers(crew), json={"enabled": False}).status_code == 403

    def test_delete(self, client, owner, make_journey, auth_headers):
        journey = make_journey(owner)
        assert client.delete(f"/api/journeys/{journey.id}", headers=auth_headers(owner)).status_code == 204
        assert client.get(f"/api/journeys/{journey.id}").status_code == 404


class TestLegsAPI:
    """Legs and registration questions"""

    def test_create_and_read_leg(self, client, owner, make_journey, auth_headers):
        journey = make_journey(owner)

        response = client.post(f"/api/journeys/{journey.id}/legs", headers=auth_headers(owner), json={
            "name": "Palma to Mahon",
            "start_date": "2027-06-01T09:00:00",
            "end_date": "2027-06-03T18:00:00",
            "crew_needed": 2,
            "waypoints": WAYPOINTS,
        })

        assert response.status_code == 201
        leg = response.json()
        assert [w["index"] for w in leg["waypoints"]] == [0, 1]

        listing = client.get(f"/api/journeys/{journey.id}/legs").json()
        assert listing["total"] == 1

        detail = client.get(f"/api/legs/{leg['id']}").json()
        assert detail["summary"]["departureLocation"] == "Palma de Mallorca"
        assert detail["summary"]["arrivalLocation"] == "Mahon, Menorca"
        assert detail["summary"]["journeyName"] == "Balearic Summer"

    def test_update_and_delete_leg(self, client, owner, crew, make_leg, auth_headers):
        leg = make_leg(owner)

        response = client.put(f"/api/legs/{leg.id}", headers=auth_headers(owner), json={"crew_needed": 3})
        assert response.status_code == 200
        assert response.json()["leg"]["crew_needed"] == 3
        assert "crew_needed" in response.json()["changed_fields"]

        assert client.put(f"/api/legs/{leg.id}", headers=auth_headers(crew), json={"crew_needed": 9}).status_code == 403
        assert client.delete(f"/api/legs/{leg.id}", headers=auth_headers(owner)).status_code == 204
        assert client.get(f"/api/legs/{leg.id}").status_code == 404

    def test_search(self, client, owner, make_leg, make_journey):
        make_leg(owner)
        draft = make_journey(owner, name="Draft", state=JourneyState.IN_PLANNING.value)
        make_leg(owner, journey=draft, name="Hidden leg")

        everything = client.get("/api/legs/search").json()
        assert [leg["name"] for leg in everything["legs"]] == ["Palma to Mahon"]

        by_place = client.get("/api/legs/search", params={"location": "menorca"}).json()
        assert by_place["total"] == 1
        assert client.get("/api/legs/search", params={"location": "Antigua"}).json()["total"] == 0

        outside = client.get("/api/legs/search", params={"start_date": "2027-07-01", "end_date": "2027-07-31"})
        assert outside.json()["total"] == 0

    def test_requirements(self, client, owner, crew, make_journey, auth_headers):
        journey = make_journey(owner)
        base = f"/api/journeys/{journey.id}/requirements"

        created = client.post(base, headers=auth_headers(owner), json={
            "question_text": "Favourite knot?",
            "question_type": "multiple_choice",
            "options": ["Bowline", "Reef knot"],
        })
        assert created.status_code == 201
        requirement = created.json()
        assert requirement["order"] == 0

        bad = client.post(base, headers=auth_headers(owner), json={
            "question_text": "Pick one", "question_type": "multiple_choice",
        })
        assert bad.status_code == 400
        assert client.post(base, headers=auth_headers(crew), json={"question_text": "Mine?"}).status_code == 403

        updated = client.put(f"{base}/{requirement['id']}", headers=auth_headers(owner), json={"weight": 9})
        assert updated.json()["weight"] == 9

        assert [r["question_text"] for r in client.get(base).json()["requirements"]] == ["Favourite knot?"]
        assert client.delete(f"{base}/{requirement['id']}", headers=auth_headers(owner)).status_code == 204
        assert client.get(base).json()["requirements"] == []

    def test_viewport(self, client, owner, make_leg, make_journey):
        make_leg(owner, min_experience_level=3)
        draft = make_journey(owner, name="Draft", state=JourneyState.IN_PLANNING.value)
        make_leg(owner, journey=draft, name="Hidden leg")
        balearics = {"min_lng": 1.0, "min_lat": 38.5, "max_lng": 5.0, "max_lat": 40.5}

        found = client.get("/api/legs/viewport", params=balearics).json()
        assert found["count"] == 1
        assert found["legs"][0]["name"] == "Palma to Mahon"

        # Neither end is in view but the route passes through it
        channel = {"min_lng": 3.0, "min_lat": 39.0, "max_lng": 3.5, "max_lat": 40.0}
        assert client.get("/api/legs/viewport", params=channel).json()["count"] == 1

        caribbean = {"min_lng": -65.0, "min_lat": 15.0, "max_lng": -60.0, "max_lat": 19.0}
        assert client.get("/api/legs/viewport", params=caribbean).json() == {"legs": [], "count": 0}

    def test_viewport_filters(self, client, owner, make_leg):
        make_leg(owner, min_experience_level=3, skills=["navigation"], risk_level="Coastal sailing")
        balearics = {"min_lng": 1.0, "min_lat": 38.5, "max_lng": 5.0, "max_lat": 40.5}

        def count(**params):
            return client.get("/api/legs/viewport", params={**balearics, **params}).json()["count"]

        assert count(start_date="2027-06-01", end_date="2027-06-03") == 1
        assert count(start_date="2027-06-02") == 0
        assert count(end_date="2027-06-02") == 0
        assert count(min_experience_level=3) == 1
        assert count(min_experience_level=2) == 0
        assert count(risk_levels="Offshore sailing, Coastal sailing") == 1
        assert count(risk_levels="Offshore sailing") == 0
        assert count(skills="Navigation,Cooking") == 1
        assert count(skills="Cooking") == 0
        assert count(departure_lat=39.6, departure_lng=2.7) == 1
        assert count(arrival_lat=39.6, arrival_lng=2.7) == 0
        assert count(arrival_min_lng=4.0, arrival_min_lat=39.5, arrival_max_lng=4.5, arrival_max_lat=40.0) == 1

    def test_viewport_validation(self, client):
        assert client.get("/api/legs/viewport", params={"min_lng": 1.0}).status_code == 400
        inverted = {"min_lng": 5.0, "min_lat": 38.5, "max_lng": 1.0, "max_lat": 40.5}
        assert client.get("/api/legs/viewport", params=inverted).status_code == 400
        balearics = {"min_lng": 1.0, "min_lat": 38.5, "max_lng": 5.0, "max_lat": 40.5}
        assert client.get("/api/legs/viewport", params={**balearics, "risk_levels": "Bathtub"}).status_code == 400
        assert client.get("/api/legs/viewport", params={**balearics, "min_experience_level": 9}).status_code == 400
        assert client.get("/api/legs/viewport", params={**balearics, "start_date": "June"}).status_code == 400
