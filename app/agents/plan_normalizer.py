"""Normalise loosely structured model itineraries into the canonical plan shape."""
from __future__ import annotations

import logging
import math
import os
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from app.schemas import Day, Plan, PlannerItem, Slot, SlotCategory
from app.tools.timecost import make_range, parse_cost_range, parse_time, time_at_or_after

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

DEFAULT_CURRENCY = "INR"

_CATEGORIES: Tuple[SlotCategory, ...] = ("Attraction", "Hotel", "Restaurant", "Transit", "Other")

# Evaluated in order; the first rule with a matching keyword wins.
_CATEGORY_RULES: Tuple[Tuple[SlotCategory, Tuple[str, ...]], ...] = (
    ("Hotel", ("check-in", "hotel")),
    ("Restaurant", ("lunch", "dinner", "cafe")),
    ("Transit", ("drive", "transfer")),
)

_RANGE_SPLIT = re.compile(r"\s*[–-]\s*")


def infer_category(title: str) -> SlotCategory:
    lowered = (title or "").lower()
    for category, keywords in _CATEGORY_RULES:
        if any(word in lowered for word in keywords):
            return category
    return "Attraction"


def _coerce_category(value: Any, title: str) -> SlotCategory:
    if isinstance(value, str) and value.strip():
        wanted = value.strip().lower()
        for category in _CATEGORIES:
            if category.lower() == wanted:
                return category
        return "Other"
    return infer_category(title)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def normalize_slot(raw: Any) -> Slot:
    """Map one raw slot (any shape) onto a canonical ``Slot``.

    Never raises: unparseable times become empty strings, unparseable costs
    become 0 and unknown shapes produce an empty Attraction slot.
    """
    src: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}

    raw_time = _text(src.get("time")).strip()
    parts = _RANGE_SPLIT.split(raw_time, maxsplit=1) if raw_time else []
    has_range = len(parts) == 2

    explicit_start = parse_time(src.get("start"))
    explicit_end = parse_time(src.get("end"))
    if has_range:
        start = explicit_start or parse_time(parts[0]) or ""
        end = explicit_end or parse_time(parts[1]) or ""
    else:
        # A bare time that only repeats the given side is a one-sided slot, not a point in time.
        single = parse_time(raw_time)
        if single in (explicit_start, explicit_end):
            single = None
        start = explicit_start or single or ""
        end = explicit_end or single or ""

    if has_range:
        time = raw_time
    else:
        time = make_range(start, end) or raw_time

    cost_source = src.get("cost_min")
    if cost_source is None:
        cost_source = src.get("cost")
    cost_min = max(0, parse_cost_range(cost_source))

    title = _text(src.get("title")).strip()
    suggestions = src.get("suggestions")

    return Slot(
        time=time,
        start=start,
        end=end,
        title=title,
        place=_text(src.get("place")).strip() or title,
        address=_text(src.get("address")),
        category=_coerce_category(src.get("category"), title),
        notes=_text(src.get("notes") or src.get("note")),
        cost_min=cost_min,
        mode=_text(src.get("mode")),
        eta_min=_finite_number(src.get("eta_min")),
        **{"from": _text(src.get("from"))},
        to=_text(src.get("to")),
        suggestions=list(suggestions[:3]) if isinstance(suggestions, list) else None,
    )


def normalize_day(raw: Any, index: int) -> Tuple[Day, int]:
    """Return the canonical day at ``index`` and its summed ``cost_min``."""
    src: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    number = src.get("day")
    if isinstance(number, bool) or not isinstance(number, int):
        number = index + 1

    raw_date = src.get("date")
    date = raw_date.strip() if isinstance(raw_date, str) else ""

    raw_slots = src.get("slots")
    slots = [normalize_slot(s) for s in raw_slots] if isinstance(raw_slots, list) else []
    subtotal = sum(s.cost_min for s in slots)
    return Day(day=number, date=date, slots=slots), subtotal


def _day_list(raw: Any) -> Optional[List[Any]]:
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, Mapping):
        return None
    for key in ("plan", "days"):
        value = raw.get(key)
        if isinstance(value, list):
            return value
    return None


def normalize_plan(raw: Any) -> Optional[Plan]:
    """Normalise a raw model plan; ``None`` means no usable plan was generated."""
    days_raw = _day_list(raw)
    if days_raw is None:
        logger.info("Raw plan has no list-shaped day field; treating as not generated")
        return None

    days: List[Day] = []
    grand_total = 0
    for idx, raw_day in enumerate(days_raw):
        day, subtotal = normalize_day(raw_day, idx)
        days.append(day)
        grand_total += subtotal

    src: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    currency = src.get("currency")
    total = _finite_number(src.get("total_min_cost"))

    logger.debug(
        "Normalised %d day(s) with %d slot(s); computed total %d",
        len(days),
        sum(len(d.slots) for d in days),
        grand_total,
    )
    return Plan(
        currency=currency.strip() if isinstance(currency, str) and currency.strip() else DEFAULT_CURRENCY,
        total_min_cost=total if total is not None else grand_total,
        plan=days,
    )


def recompute_total(days: Sequence[Day]) -> int:
    return sum(slot.cost_min for day in days for slot in day.slots)


def ensure_evening_slots(
    plan: Plan,
    planner: Sequence[PlannerItem] = (),
    destination: str = "",
) -> Plan:
    """Give every day a dinner slot and a closing hotel slot when the model skipped them."""
    restaurants: List[Dict[str, Any]] = [
        {
            "name": item.name,
            "area": item.location or "",
            "reason": "From saved planner",
            "approx_cost_for_two": 0,
        }
        for item in planner
        if item.type == "Restaurant"
    ][:3]

    days: List[Day] = []
    added = 0
    for day in plan.plan:
        slots = [slot.model_copy(deep=True) for slot in day.slots]
        has_dinner = any(
            s.category == "Restaurant"
            and ("dinner" in s.title.lower() or time_at_or_after(s.start, 18, 0, strict=True))
            for s in slots
        )
        if not has_dinner:
            slots.append(
                Slot(
                    start="19:30",
                    end="21:00",
                    time=make_range("19:30", "21:00"),
                    title="Dinner (choose)",
                    category="Restaurant",
                    notes="Pick a dinner stop en-route.",
                    suggestions=[dict(r) for r in restaurants],
                )
            )
            added += 1
        has_return = any(
            s.category == "Hotel" and re.search(r"return|night", s.title, re.IGNORECASE)
            for s in slots
        )
        if not has_return:
            slots.append(
                Slot(
                    start="21:00",
                    end="22:00",
                    time=make_range("21:00", "22:00"),
                    title="Return to hotel / night stay",
                    place=destination or "",
                    category="Hotel",
                    notes="Return & rest.",
                )
            )
            added += 1
        days.append(day.model_copy(update={"slots": slots}))

    if added:
        logger.info("Added %d evening anchor slot(s) across %d day(s)", added, len(days))
    return plan.model_copy(update={"plan": days})
