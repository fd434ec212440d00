"""Suggestion lists and user choices for itinerary slots that still need a decision."""
from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.agents.plan_normalizer import recompute_total
from app.schemas import Plan, PlannerItem, Slot
from app.tools.timecost import parse_cost_range

_TRANSIT_OPTIONS = (
    ("Taxi", 25, 250),
    ("Auto", 30, 120),
    ("Metro", 35, 40),
    ("Walk", 20, 0),
)


def estimate_transit_cost(mode: Optional[str]) -> int:
    m = (mode or "").lower()
    if "walk" in m:
        return 0
    if "metro" in m:
        return 40
    if "auto" in m:
        return 120
    if "taxi" in m or "cab" in m:
        return 250
    return 100


def is_incomplete_slot(slot: Slot) -> bool:
    """A slot is incomplete when the traveller still has to pick a concrete place or route."""
    cat = slot.category.lower()
    title = slot.title.lower()
    if cat == "restaurant":
        return not slot.place or "choose" in title
    if cat == "attraction":
        return not slot.place
    if cat == "hotel":
        return not slot.place and not re.search(r"return|night", title)
    if cat == "transit":
        return not slot.mode or not slot.frm or not slot.to
    return False


def _label(slot: Optional[Slot]) -> str:
    if slot is None:
        return ""
    return slot.place or slot.title


def auto_suggestions(
    plan: Plan,
    day_index: int,
    slot_index: int,
    planner: Sequence[PlannerItem] = (),
) -> List[Dict[str, Any]]:
    """Return candidate options for the slot, drawn from the saved planner.

    Transit slots get synthetic mode options between the neighbouring stops.
    Out-of-range indices yield an empty list.
    """
    if not 0 <= day_index < len(plan.plan):
        return []
    slots = plan.plan[day_index].slots
    if not 0 <= slot_index < len(slots):
        return []
    slot = slots[slot_index]
    prev = slots[slot_index - 1] if slot_index > 0 else None
    nxt = slots[slot_index + 1] if slot_index + 1 < len(slots) else None
    corridor = ""
    if _label(prev) and _label(nxt):
        corridor = f"en-route from {_label(prev)} to {_label(nxt)}"

    by_type: Dict[str, List[PlannerItem]] = {"Restaurant": [], "Attraction": [], "Hotel": []}
    for item in planner:
        by_type[item.type].append(item)

    if slot.category == "Restaurant":
        return [
            {
                "name": r.name,
                "area": r.location or "",
                "reason": corridor or "From saved planner",
                "approx_cost_for_two": 1000,
            }
            for r in by_type["Restaurant"][:5]
        ]
    if slot.category == "Attraction":
        return [
            {
                "name": a.name,
                "area": a.location or "",
                "reason": corridor or "From saved planner",
                "cost_min": 0,
            }
            for a in by_type["Attraction"][:5]
        ]
    if slot.category == "Hotel":
        return [
            {"name": h.name, "area": h.location or "", "reason": "From saved planner", "cost_min": 0}
            for h in by_type["Hotel"][:5]
        ]
    if slot.category == "Transit":
        frm = _label(prev) or slot.frm
        to = _label(nxt) or slot.to
        return [
            {
                "title": f"{mode} to {to}",
                "mode": mode,
                "from": frm,
                "to": to,
                "eta_min": eta,
                "cost_min": cost,
            }
            for mode, eta, cost in _TRANSIT_OPTIONS
        ]
    return []


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _text(option: Mapping[str, Any], key: str) -> str:
    value = option.get(key)
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def apply_choice(plan: Plan, day_index: int, slot_index: int, option: Mapping[str, Any]) -> Plan:
    """Fill a slot from a picked option and return the updated plan.

    Raises ``IndexError`` when the day or slot does not exist.
    """
    if not 0 <= day_index < len(plan.plan):
        raise IndexError(f"day {day_index} out of range")
    day = plan.plan[day_index]
    if not 0 <= slot_index < len(day.slots):
        raise IndexError(f"slot {slot_index} out of range for day {day_index}")

    slots = [s.model_copy(deep=True) for s in day.slots]
    slot = slots[slot_index]
    prev = slots[slot_index - 1] if slot_index > 0 else None
    nxt = slots[slot_index + 1] if slot_index + 1 < len(slots) else None
    title = slot.title.lower()

    if slot.category == "Restaurant":
        name = _text(option, "name") or slot.place or "Selected Restaurant"
        approx = parse_cost_range(option.get("approx_cost_for_two"))
        if approx > 0:
            per_person = (approx + 1) // 2
        elif _finite(option.get("cost_min")):
            per_person = int(option["cost_min"])
        else:
            per_person = 800
        if "lunch" in title:
            slot.title = f"Lunch at {name}"
        elif "dinner" in title:
            slot.title = f"Dinner at {name}"
        else:
            slot.title = f"Meal at {name}"
        slot.place = name
        slot.address = _text(option, "area") or slot.address
        slot.notes = _text(option, "reason") or slot.notes or "Picked from suggestions."
        slot.cost_min = max(0, per_person)
    elif slot.category == "Attraction":
        name = _text(option, "name") or "Selected Attraction"
        slot.title = name
        slot.place = name
        slot.address = _text(option, "area") or slot.address
    elif slot.category == "Hotel":
        name = _text(option, "name") or "Selected Hotel"
        slot.title = f"Hotel Check-in — {name}" if "check" in title else f"Hotel — {name}"
        slot.place = name
        slot.address = _text(option, "area") or slot.address
    elif slot.category == "Transit":
        mode = _text(option, "mode") or slot.mode or "Taxi"
        slot.mode = mode.title()
        slot.frm = _text(option, "from") or slot.frm or _label(prev)
        slot.to = _text(option, "to") or slot.to or _label(nxt)
        slot.title = _text(option, "title") or slot.title or f"Transit to {slot.to or 'next stop'}"
        slot.eta_min = option["eta_min"] if _finite(option.get("eta_min")) else (slot.eta_min or 20)
        slot.cost_min = max(0, int(option["cost_min"])) if _finite(option.get("cost_min")) else estimate_transit_cost(mode)
    elif _text(option, "name"):
        slot.title = _text(option, "name")
        slot.place = slot.title
        slot.address = _text(option, "area") or slot.address

    slot.suggestions = None

    days = list(plan.plan)
    days[day_index] = day.model_copy(update={"slots": slots})
    return plan.model_copy(update={"plan": days, "total_min_cost": recompute_total(days)})
