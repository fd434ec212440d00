# app/orchestrator.py
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional
import logging

from app.schemas import Plan, QueryRequest, TripContext
from app.llm import build_prompt, generate_json
from app.agents.plan_normalizer import ensure_evening_slots, normalize_plan
from app.agents.day_reconciler import reconcile_day_count

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class PlanGenerationError(RuntimeError):
    """The model answered, but nothing in the reply resembles a day plan."""


# ---------- deterministic post-processing (no I/O) ----------
def finalize_plan(
    raw: Any,
    trip: TripContext,
    *,
    fill_evenings: bool = False,
) -> Plan:
    """Normalise a raw model plan and bring it to the requested number of days."""
    plan = normalize_plan(raw)
    if plan is None:
        raise PlanGenerationError("No plan generated.")

    expected = trip.expected_days
    if expected is not None and len(plan.plan) != expected:
        logger.info(
            "Model returned %d day(s) for a %d-day trip to %s; reconciling",
            len(plan.plan),
            expected,
            trip.destination or "unspecified destination",
        )
        plan = reconcile_day_count(plan, expected, trip)

    if fill_evenings:
        plan = ensure_evening_slots(plan, trip.planner, trip.destination)
    return plan


# ---------- LLM ----------
async def orchestrate_day_plan(
    trip: TripContext,
    *,
    fill_evenings: bool = False,
    model: Optional[str] = None,
) -> Dict[str, Any]:
    """Generate, normalise and reconcile a day-wise itinerary for ``trip``."""
    logger.info(
        "Day-plan request: destination=%s, days=%s, dates=%s, planner_items=%d",
        trip.destination,
        trip.days,
        trip.dates,
        len(trip.planner),
    )
    prompt = build_prompt("day_plan", trip)
    raw = generate_json(prompt, model=model)
    plan = finalize_plan(raw, trip, fill_evenings=fill_evenings)
    logger.info(
        "Day plan ready: %d day(s), %d slot(s), total %s %s",
        len(plan.plan),
        sum(len(day.slots) for day in plan.plan),
        plan.total_min_cost,
        plan.currency,
    )
    return {"json": plan.to_wire()}


async def orchestrate_query(request: QueryRequest, *, model: Optional[str] = None) -> Dict[str, Any]:
    """Answer a catalogue query (attractions, hotels, food, details) or a free-form prompt."""
    if request.kind:
        anchors: List[str] = list(request.anchors)
        prompt = build_prompt(request.kind, request.trip, anchors, request.attraction)
    else:
        prompt = request.prompt or ""
    logger.info("Query request kind=%s (%d prompt chars)", request.kind or "free-form", len(prompt))

    data = generate_json(prompt, model=model)
    if data is None:
        # the UI falls back to its own text parser on an empty response
        return {"response": ""}
    if request.kind == "day_plan":
        trip = request.trip or TripContext()
        return {"json": finalize_plan(data, trip).to_wire()}
    return {"json": data}
