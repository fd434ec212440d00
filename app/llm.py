# app/llm.py
import os
import json
import time
import logging
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from openai import OpenAI, OpenAIError

from app.schemas import TripContext

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

# Load .env file if present
load_dotenv()

DEFAULT_MODEL = os.getenv("TRIP_PLANNER_MODEL", "gpt-4o-mini")
DEFAULT_ATTEMPTS = int(os.getenv("TRIP_PLANNER_LLM_ATTEMPTS", "3") or 3)
BACKOFF_SECONDS = 0.4

# Get API key from environment
api_key = os.getenv("OPENAI_API_KEY")
if api_key:
    _client: Optional[OpenAI] = OpenAI(api_key=api_key)
else:  # pragma: no cover - exercised indirectly in tests without API key
    _client = None
    logger.warning("OPENAI_API_KEY not set; generation requests will fail with LLMUnavailableError")


class LLMUnavailableError(RuntimeError):
    """The hosted model could not be reached after all retry attempts."""


SYSTEM_PROMPT = "You are a travel assistant. Return ONLY VALID JSON (no markdown code fences)."

SCHEMAS = """SCHEMAS (use EXACT keys):

Attractions:
{"attractions": [{"name": "string", "description": "string", "location": "string",
  "importance": "must see" | "can see if time permits",
  "entry_fees": {"<visitor type>": "string"}, "operation_duration": "string"}]}

Hotels:
{"hotels": [{"name": "string", "rating": number, "priceRange": "string",
  "approx_cost_per_night": "string", "location": "string",
  "pros_and_cons": {"pros": ["string"], "cons": ["string"]}}]}

Restaurants:
{"food": [{"name": "string", "cuisineType": "string", "rating": number, "priceRange": "string",
  "approx_cost_for_two": "string", "location": "string",
  "pros_and_cons": {"pros": ["string"], "cons": ["string"]}}]}
"""

ATTRACTIONS_TEMPLATE = """TASK: List 10 attractions for {destination}.
- Use "importance" to mark essentials as "must see".
- "entry_fees": include only items relevant for each attraction.
- Include "operation_duration" if commonly known.
- Descriptions concise (1-3 sentences).
Return ONLY JSON as per schema.
"""

HOTELS_TEMPLATE = """TASK: Recommend 8 hotels in {destination} {near}.
- {budget_hint}.
- Optimize proximity to selected sights.
- Include "approx_cost_per_night"; "rating" numeric; "priceRange" human-friendly.
- Provide balanced "pros_and_cons".
Return ONLY JSON as per schema.
"""

FOOD_TEMPLATE = """TASK: Recommend 8 restaurants in {destination} {near}.
- {budget_hint}.
- Mix local must-try places with a few hidden gems.
- Include "approx_cost_for_two" in addition to "priceRange".
- Provide balanced "pros_and_cons".
Return ONLY JSON as per schema.
"""

DETAILS_TEMPLATE = """Give deeper details for this attraction:
- Name: {name}
- Area: {area}

Return:
{{"name": "string", "summary": "2-3 sentences", "history": "3-5 short sentences max",
  "best_time": "times/seasons", "time_required": "e.g., 1.5-2 hours",
  "how_to_reach": ["brief bullets"], "tips": ["brief bullets"],
  "crowd_level": "low|moderate|high", "nearby": ["other nearby sights"],
  "scams_warnings": ["optional bullets"]}}
Only JSON.
"""

DAY_PLAN_TEMPLATE = """Given:
- Destination: {destination}
- Dates: {dates}
- Days: {days}
- Group: {people} people, {travel_type}
- Budget: {budget}
- Selected items:
{planner}

TASK:
Build a compact day-wise itinerary that sequences items hour-by-hour. For each day, include
"slots": an ordered list with items such as "Attraction", "Lunch", "Snack/Market", "Attraction"
and "Hotel night stay". Each slot must have "time" ("HH:MM-HH:MM"), "title", "category",
"notes" and "cost_min" (minimum cost in INR as a number).

Return ONLY:
{{"currency": "INR", "plan": [{{"day": 1, "date": "YYYY-MM-DD", "slots": [{{"time": "09:00-10:30", "title": "...", "notes": "..."}}]}}]}}
"""

FALLBACK_TEMPLATE = "Based on the user's query, return ONLY the appropriate top-level key(s)."

_BUDGET_HINTS = {
    "Budget Friendly": "Keep costs low",
    "Mid-range": "Prefer moderate pricing",
    "Luxury": "Prefer premium options",
}


def _budget_hint(budget: str) -> str:
    return _BUDGET_HINTS.get(budget, "Any price is fine")


def _planner_brief(trip: TripContext) -> str:
    if not trip.planner:
        return "No items selected."
    return "\n".join(
        f"{i}. {item.type}: {item.name} ({item.location})" for i, item in enumerate(trip.planner, 1)
    )


def build_prompt(
    kind: Optional[str],
    trip: Optional[TripContext] = None,
    anchors: Optional[List[str]] = None,
    attraction: Optional[Dict[str, Any]] = None,
) -> str:
    """Assemble the user prompt for one of the supported query kinds."""
    trip = trip or TripContext()
    destination = trip.destination or "the destination"
    near = (
        f"near these selected sights: {'; '.join(anchors)}"
        if anchors
        else "near central/most-visited areas"
    )

    if kind == "attractions":
        task = ATTRACTIONS_TEMPLATE.format(destination=destination)
    elif kind == "hotels":
        task = HOTELS_TEMPLATE.format(destination=destination, near=near, budget_hint=_budget_hint(trip.budget))
    elif kind == "food":
        task = FOOD_TEMPLATE.format(destination=destination, near=near, budget_hint=_budget_hint(trip.budget))
    elif kind == "attraction_details":
        attraction = attraction or {}
        task = DETAILS_TEMPLATE.format(
            name=attraction.get("name") or "",
            area=attraction.get("location") or trip.destination or "",
        )
    elif kind == "day_plan":
        return DAY_PLAN_TEMPLATE.format(
            destination=trip.destination,
            dates=trip.dates,
            days=trip.days if trip.days is not None else "unspecified",
            people=trip.people if trip.people is not None else "",
            travel_type=trip.travel_type or "N/A",
            budget=trip.budget or "No preference",
            planner=_planner_brief(trip),
        )
    else:
        task = FALLBACK_TEMPLATE
    return f"{SCHEMAS}\n{task}"


def loose_parse_json(text: Optional[str]) -> Optional[Any]:
    """Parse model output that may be wrapped in code fences or surrounded by prose."""
    if not text:
        return None
    clean = str(text).replace("```json", "").replace("```JSON", "").replace("```", "").strip()
    try:
        return json.loads(clean)
    except ValueError:
        start = clean.find("{")
        end = clean.rfind("}")
        if start != -1 and end > start:
            try:
                return json.loads(clean[start : end + 1])
            except ValueError:
                logger.debug("Largest brace block was not valid JSON either")
        return None


def generate_json(
    prompt: str,
    *,
    model: Optional[str] = None,
    attempts: Optional[int] = None,
) -> Optional[Any]:
    """Send ``prompt`` to the model and return the parsed JSON payload.

    Transport and API errors are retried with linear backoff; once attempts
    run out ``LLMUnavailableError`` is raised. A reply that cannot be parsed
    as JSON returns ``None``.
    """
    if _client is None:
        raise LLMUnavailableError("OPENAI_API_KEY not configured")

    model = model or DEFAULT_MODEL
    attempts = max(1, attempts or DEFAULT_ATTEMPTS)
    last_exc: Optional[Exception] = None
    for attempt in range(attempts):
        try:
            logger.info("Invoking LLM model %s (attempt %d/%d)", model, attempt + 1, attempts)
            resp = _client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.2,
                response_format={"type": "json_object"},
            )
            break
        except OpenAIError as exc:
            last_exc = exc
            logger.warning("LLM call failed on attempt %d/%d: %s", attempt + 1, attempts, exc)
            if attempt < attempts - 1:
                time.sleep(BACKOFF_SECONDS * (attempt + 1))
    else:
        raise LLMUnavailableError("Model overloaded, please retry.") from last_exc

    raw = resp.choices[0].message.content
    parsed = loose_parse_json(raw)
    if parsed is None:
        logger.warning("LLM response was not valid JSON; discarding %d chars", len(raw or ""))
    elif isinstance(parsed, dict):
        logger.info("LLM JSON payload parsed successfully with keys: %s", ", ".join(sorted(parsed.keys())))
    return parsed
