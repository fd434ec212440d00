import asyncio

import pytest

from app import orchestrator
from app.orchestrator import PlanGenerationError, finalize_plan, orchestrate_day_plan, orchestrate_query
from app.schemas import PlannerItem, QueryRequest, TripContext


def _trip(days=3) -> TripContext:
    return TripContext(
        destination="Rishikesh",
        days=days,
        planner=[PlannerItem(type="Restaurant", name="Little Buddha Cafe", location="Tapovan")],
    )


ONE_DAY = {
    "plan": [
        {
            "day": 1,
            "date": "2026-03-10",
            "slots": [
                {"time": "06:00–07:00", "title": "Ganga Aarti", "cost_min": 0},
                {"time": "08:00–10:00", "title": "Rafting", "cost_min": 1500},
                {"time": "11:00–12:00", "title": "Laxman Jhula", "cost_min": 0},
                {"time": "13:00–14:00", "title": "Beatles Ashram", "cost_min": 600},
            ],
        }
    ]
}


def test_finalize_plan_reconciles_to_trip_days():
    plan = finalize_plan(ONE_DAY, _trip(days=2))
    assert [len(d.slots) for d in plan.plan] == [2, 2]
    assert [d.date for d in plan.plan] == ["2026-03-10", "2026-03-11"]
    assert plan.total_min_cost == 2100


def test_finalize_plan_without_days_keeps_model_shape():
    plan = finalize_plan(ONE_DAY, TripContext(destination="Rishikesh"))
    assert len(plan.plan) == 1


def test_finalize_plan_raises_when_nothing_usable():
    with pytest.raises(PlanGenerationError):
        finalize_plan({"text": "Here is your trip"}, _trip())


def test_finalize_plan_fills_evenings_after_reconciling():
    plan = finalize_plan(ONE_DAY, _trip(days=2), fill_evenings=True)
    for day in plan.plan:
        assert [s.title for s in day.slots][-2:] == ["Dinner (choose)", "Return to hotel / night stay"]
    assert plan.plan[0].slots[-2].suggestions[0]["name"] == "Little Buddha Cafe"
    assert plan.plan[0].slots[-1].place == "Rishikesh"


def test_orchestrate_day_plan_returns_wire_json(monkeypatch):
    seen = {}

    def fake_generate(prompt, model=None):
        seen["prompt"] = prompt
        seen["model"] = model
        return ONE_DAY

    monkeypatch.setattr(orchestrator, "generate_json", fake_generate)
    result = asyncio.run(orchestrate_day_plan(_trip(days=4), model="stub-model"))

    plan = result["json"]
    assert len(plan["plan"]) == 4
    assert [len(d["slots"]) for d in plan["plan"]] == [1, 1, 1, 1]
    assert seen["model"] == "stub-model"
    assert "Days: 4" in seen["prompt"]


def test_orchestrate_query_passes_catalogue_json_through(monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: {"attractions": []})
    request = QueryRequest(kind="attractions", trip=_trip())
    assert asyncio.run(orchestrate_query(request)) == {"json": {"attractions": []}}


def test_orchestrate_query_day_plan_kind_is_normalised(monkeypatch):
    monkeypatch.setattr(orchestrator, "generate_json", lambda prompt, model=None: ONE_DAY)
    request = QueryRequest(kind="day_plan", trip=_trip(days=2))
    result = asyncio.run(orchestrate_query(request))
    assert len(result["json"]["plan"]) == 2
    assert result["json"]["currency"] == "INR"
