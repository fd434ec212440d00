from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app import main, orchestrator
from app.llm import LLMUnavailableError
from app.main import app
from app.store import ItineraryStore


def _sample_trip() -> dict:
    return {
        "destination": "Jaipur",
        "origin": "Delhi",
        "days": "2",
        "nights": 1,
        "dates": "2025-12-01 to 2025-12-02",
        "people": 2,
        "travelType": "Couple",
        "budget": "Mid-range",
        "planner": [
            {"id": 1, "type": "Attraction", "name": "Amber Fort", "location": "Amer"},
            {"id": 2, "type": "Restaurant", "name": "Spice Court", "location": "Civil Lines"},
        ],
    }


MODEL_PLAN = {
    "plan": [
        {
            "day": 1,
            "date": "2025-12-01",
            "slots": [
                {"time": "09:00–12:00", "title": "Amber Fort", "cost_min": 200},
                {"time": "13:00–14:00", "title": "Lunch", "cost_min": "₹600–₹800"},
                {"time": "19:00–20:30", "title": "Dinner at Spice Court", "cost_min": 900},
                {"time": "10:00–12:00", "title": "City Palace", "cost_min": 300},
                {"time": "15:00–17:00", "title": "Hawa Mahal", "cost_min": 50},
            ],
        }
    ]
}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(main, "store", ItineraryStore())
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_day_plan_endpoint_reconciles_to_requested_days(client, monkeypatch):
    prompts = []

    def fake_generate(prompt, model=None):
        prompts.append(prompt)
        return MODEL_PLAN

    monkeypatch.setattr(orchestrator, "generate_json", fake_generate)

    response = client.post("/query/day-plan", json={"trip": _sample_trip()})

    assert response.status_code == 200
    plan = response.json()["json"]
    assert [d["day"] for d in plan["plan"]] == [1, 2]
    assert [d["date"] for d in plan["plan"]] == ["2025-12-01", "2025-12-02"]
    assert [s["title"] for s in plan["plan"][0]["slots"]] == ["Amber Fort", "Lunch", "Dinner at Spice Court"]
    assert [s["title"] for s in plan["plan"][1]["slots"]] == ["City Palace", "Hawa Mahal"]
    assert plan["total_min_cost"] == 200 + 700 + 900 + 300 + 50
    assert plan["currency"] == "INR"
    assert "Destination: Jaipur" in prompts[0]


def test_day_plan_endpoint_fill_evenings(client, monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: MODEL_PLAN)

    response = client.post("/query/day-plan", json={"trip": _sample_trip(), "fill_evenings": True})

    assert response.status_code == 200
    days = response.json()["json"]["plan"]
    assert days[0]["slots"][-1]["title"] == "Return to hotel / night stay"
    assert days[1]["slots"][-2]["title"] == "Dinner (choose)"
    assert days[1]["slots"][-2]["suggestions"][0]["name"] == "Spice Court"


def test_day_plan_endpoint_requires_trip(client):
    response = client.post("/query/day-plan", json={})
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing 'trip'."


@pytest.mark.parametrize("days", ["0", "-2", "three", 100000000])
def test_day_plan_endpoint_rejects_invalid_day_count(client, monkeypatch, days):
    generate = AsyncMock()
    monkeypatch.setattr(main, "orchestrate_day_plan", generate)
    response = client.post("/query/day-plan", json={"trip": {**_sample_trip(), "days": days}})
    assert response.status_code == 422
    generate.assert_not_called()


def test_day_plan_endpoint_reports_missing_plan(client, monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: {"itinerary": "Day 1 ..."})
    response = client.post("/query/day-plan", json={"trip": _sample_trip()})
    assert response.status_code == 400
    assert response.json()["detail"] == "No plan generated."


def test_day_plan_endpoint_maps_upstream_failure(client, monkeypatch):
    def failing(prompt, model=None):
        raise LLMUnavailableError("boom")

    monkeypatch.setattr(orchestrator, "generate_json", failing)
    response = client.post("/query/day-plan", json={"trip": _sample_trip()})
    assert response.status_code == 503
    assert response.json()["detail"] == "Model overloaded, please retry."


def test_query_endpoint_requires_prompt_or_kind(client):
    response = client.post("/query", json={"trip": _sample_trip()})
    assert response.status_code == 400


def test_query_endpoint_wraps_json(client, monkeypatch):
    captured = {}

    def fake_generate(prompt, model=None):
        captured["prompt"] = prompt
        return {"hotels": [{"name": "Rambagh Palace"}]}

    monkeypatch.setattr(orchestrator, "generate_json", fake_generate)
    response = client.post(
        "/query",
        json={"kind": "hotels", "trip": _sample_trip(), "anchors": ["Amber Fort (Amer)"]},
    )
    assert response.status_code == 200
    assert response.json() == {"json": {"hotels": [{"name": "Rambagh Palace"}]}}
    assert "Amber Fort (Amer)" in captured["prompt"]


def test_query_endpoint_empty_response_on_unparseable_reply(client, monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: None)
    response = client.post("/query", json={"prompt": "best chai in Jaipur"})
    assert response.status_code == 200
    assert response.json() == {"response": ""}


def test_itinerary_lifecycle(client, monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: MODEL_PLAN)
    trip = _sample_trip()
    planner = trip.pop("planner")

    saved = client.put("/itineraries/Jaipur 2D1N", json={"tripDetails": trip, "planner": planner})
    assert saved.status_code == 200
    assert saved.json()["tripDetails"]["travelType"] == "Couple"
    assert [i["name"] for i in client.get("/itineraries").json()] == ["Jaipur 2D1N"]

    generated = client.post("/itineraries/Jaipur 2D1N/day-plan")
    assert generated.status_code == 200
    assert len(generated.json()["dayPlan"]["plan"]) == 2

    suggestions = client.get("/itineraries/Jaipur 2D1N/suggestions", params={"day": 0, "slot": 1})
    assert suggestions.status_code == 200
    assert suggestions.json()["suggestions"][0]["name"] == "Spice Court"

    chosen = client.post(
        "/itineraries/Jaipur 2D1N/choice",
        json={"day": 0, "slot": 1, "option": {"name": "Spice Court", "approx_cost_for_two": 1000}},
    )
    assert chosen.status_code == 200
    day_plan = chosen.json()["dayPlan"]
    assert day_plan["plan"][0]["slots"][1]["title"] == "Lunch at Spice Court"
    assert day_plan["total_min_cost"] == 200 + 500 + 900 + 300 + 50

    fetched = client.get("/itineraries/Jaipur 2D1N").json()
    assert fetched["dayPlan"] == day_plan

    assert client.delete("/itineraries/Jaipur 2D1N").status_code == 200
    assert client.get("/itineraries/Jaipur 2D1N").status_code == 404


def test_itinerary_normalises_legacy_day_plan_on_read(client):
    client.put(
        "/itineraries/legacy",
        json={"tripDetails": {"destination": "Goa"}, "dayPlan": {"days": [{"slots": [{"time": "9:00-10:00", "title": "Beach"}]}]}},
    )
    fetched = client.get("/itineraries/legacy").json()
    slot = fetched["dayPlan"]["plan"][0]["slots"][0]
    assert slot["start"] == "09:00"
    assert slot["category"] == "Attraction"
    assert fetched["dayPlan"]["currency"] == "INR"


def test_choice_without_day_plan_conflicts(client):
    client.put("/itineraries/empty", json={"tripDetails": {"destination": "Goa"}})
    response = client.post("/itineraries/empty/choice", json={"day": 0, "slot": 0, "option": {}})
    assert response.status_code == 409
