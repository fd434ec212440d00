from __future__ import annotations

import logging
import os
from typing import Any, Awaitable, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from app.agents.plan_normalizer import normalize_plan
from app.agents.slot_choices import apply_choice, auto_suggestions, is_incomplete_slot
from app.llm import LLMUnavailableError
from app.orchestrator import PlanGenerationError, orchestrate_day_plan, orchestrate_query
from app.schemas import ChoiceRequest, DayPlanRequest, QueryRequest, SavedItinerary
from app.store import ItineraryStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

app = FastAPI(title="Trip Itinerary Planner API")

# The Vite dev server is always allowed; FRONTEND_ORIGIN adds the deployed UI and
# TRIP_PLANNER_ALLOWED_ORIGINS takes a comma-separated list of extras.
allowed_origins: List[str] = ["http://localhost:5173"]
for raw_origin in (os.getenv("FRONTEND_ORIGIN") or "", os.getenv("TRIP_PLANNER_ALLOWED_ORIGINS") or ""):
    for origin in raw_origin.split(","):
        origin = origin.strip()
        if origin and origin not in allowed_origins:
            allowed_origins.append(origin)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=r"https://.*\.vercel\.app",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = ItineraryStore(os.getenv("TRIP_PLANNER_STORE_PATH") or None)


async def _generate(call: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
    """Await a generation call and map domain failures onto HTTP errors."""
    try:
        return await call
    except LLMUnavailableError as exc:
        logger.warning("Generation failed upstream: %s", exc)
        raise HTTPException(status_code=503, detail="Model overloaded, please retry.") from exc
    except PlanGenerationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _validate(model: Any, payload: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {"ok": True}


@app.post("/query")
async def api_query(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Catalogue lookups used by the planner steps, or a free-form prompt."""
    request: QueryRequest = _validate(QueryRequest, payload)
    if not request.prompt and not request.kind:
        raise HTTPException(status_code=400, detail="Provide either 'prompt' or 'kind'.")
    return await _generate(orchestrate_query(request))


@app.post("/query/day-plan")
async def api_day_plan(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Generate a day-wise itinerary with exactly ``trip.days`` days."""
    if not payload.get("trip"):
        raise HTTPException(status_code=400, detail="Missing 'trip'.")
    request: DayPlanRequest = _validate(DayPlanRequest, payload)
    return await _generate(orchestrate_day_plan(request.trip, fill_evenings=request.fill_evenings))


# ---------- saved itineraries ----------
def _load_itinerary(name: str) -> SavedItinerary:
    record = store.get(name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Itinerary '{name}' not found.")
    return SavedItinerary.model_validate(record)


def _dump_itinerary(itinerary: SavedItinerary) -> Dict[str, Any]:
    return itinerary.model_dump(mode="json", by_alias=True)


def _normalized_day_plan(itinerary: SavedItinerary) -> Optional[Any]:
    if itinerary.day_plan is None:
        return None
    return normalize_plan(itinerary.day_plan)


@app.get("/itineraries")
async def list_itineraries() -> List[Dict[str, Any]]:
    return store.load()


@app.get("/itineraries/{name}")
async def get_itinerary(name: str) -> Dict[str, Any]:
    """Return a saved itinerary with its day plan in canonical shape."""
    itinerary = _load_itinerary(name)
    plan = _normalized_day_plan(itinerary)
    if plan is not None:
        itinerary = itinerary.model_copy(update={"day_plan": plan.to_wire()})
    return _dump_itinerary(itinerary)


@app.put("/itineraries/{name}")
async def put_itinerary(name: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    itinerary: SavedItinerary = _validate(SavedItinerary, {**payload, "name": name})
    if not itinerary.trip_details.planner and itinerary.planner:
        itinerary.trip_details.planner = list(itinerary.planner)
    record = _dump_itinerary(itinerary)
    store.upsert(record)
    return record


@app.delete("/itineraries/{name}")
async def delete_itinerary(name: str) -> Dict[str, Any]:
    if not store.delete(name):
        raise HTTPException(status_code=404, detail=f"Itinerary '{name}' not found.")
    return {"deleted": name}


@app.post("/itineraries/{name}/day-plan")
async def generate_itinerary_plan(name: str, fill_evenings: bool = Query(False)) -> Dict[str, Any]:
    """Generate a day plan for a saved itinerary and persist it."""
    itinerary = _load_itinerary(name)
    trip = itinerary.trip_details
    if not trip.planner and itinerary.planner:
        trip = trip.model_copy(update={"planner": list(itinerary.planner)})
    result = await _generate(orchestrate_day_plan(trip, fill_evenings=fill_evenings))
    updated = itinerary.model_copy(update={"day_plan": result["json"]})
    record = _dump_itinerary(updated)
    store.upsert(record)
    return record


@app.get("/itineraries/{name}/suggestions")
async def slot_suggestions(name: str, day: int = Query(..., ge=0), slot: int = Query(..., ge=0)) -> Dict[str, Any]:
    """Options for one slot: the model's own suggestions first, else planner-based ones."""
    itinerary = _load_itinerary(name)
    plan = _normalized_day_plan(itinerary)
    if plan is None or day >= len(plan.plan) or slot >= len(plan.plan[day].slots):
        raise HTTPException(status_code=404, detail="Slot not found.")
    target = plan.plan[day].slots[slot]
    options = target.suggestions or auto_suggestions(plan, day, slot, itinerary.planner)
    return {"incomplete": is_incomplete_slot(target), "suggestions": options}


@app.post("/itineraries/{name}/choice")
async def choose_slot_option(name: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Apply a picked option to a slot, recompute the total and persist."""
    choice: ChoiceRequest = _validate(ChoiceRequest, payload)
    itinerary = _load_itinerary(name)
    plan = _normalized_day_plan(itinerary)
    if plan is None:
        raise HTTPException(status_code=409, detail="Itinerary has no day plan yet.")
    try:
        updated_plan = apply_choice(plan, choice.day, choice.slot, choice.option)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    record = _dump_itinerary(itinerary.model_copy(update={"day_plan": updated_plan.to_wire()}))
    store.upsert(record)
    return record
