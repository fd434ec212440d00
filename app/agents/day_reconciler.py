"""Force a normalised plan to the number of days the traveller asked for."""
from __future__ import annotations

import logging
import os
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from app.agents.plan_normalizer import recompute_total
from app.schemas import Day, Plan, Slot, TripContext
from app.tools.timecost import add_days_iso, is_iso_date, make_range, time_at_or_after

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

# A slot ending at or after this time closes the day when no dinner/hotel marker exists.
_EVENING_CUTOFF = (18, 30)

# Half-open [start, stop) ranges over the flattened slot sequence.
Segment = Tuple[int, int]


def reconcile_day_count(
    plan: Plan,
    expected_days: int,
    context: TripContext | Mapping[str, Any] | None = None,
) -> Plan:
    """Return a copy of ``plan`` with exactly ``expected_days`` days.

    Extra days are truncated. Missing days are produced by re-cutting the
    flattened slot sequence at natural day endings (dinner, night stays,
    late finishes) and then splitting or merging segments until the count
    matches. Slots keep their original relative order and none are dropped
    outside of truncation. ``total_min_cost`` is always recomputed.
    """
    if expected_days < 1:
        raise ValueError("expected_days must be at least 1")

    current = len(plan.plan)
    if current >= expected_days:
        days = [day.model_copy(deep=True) for day in plan.plan[:expected_days]]
        if current > expected_days:
            logger.info("Truncated plan from %d to %d day(s)", current, expected_days)
    else:
        flat: Tuple[Slot, ...] = tuple(slot for day in plan.plan for slot in day.slots)
        base_date = _base_date(plan)
        if not flat:
            days = _placeholder_days(expected_days, base_date, _destination(context))
            logger.info("Plan had no slots; fabricated %d buffer day(s)", expected_days)
        else:
            segments = _segment(flat, expected_days)
            days = _materialize(flat, segments, expected_days, base_date)
            logger.info(
                "Repartitioned %d slot(s) from %d day(s) into %d day(s) (%d non-empty)",
                len(flat),
                current,
                expected_days,
                len(segments),
            )

    return Plan(currency=plan.currency, total_min_cost=recompute_total(days), plan=days)


def is_day_boundary(slot: Slot) -> bool:
    title = slot.title.lower()
    if "dinner" in title or "night stay" in title:
        return True
    if slot.category == "Hotel" and "check-in" not in title:
        return True
    return time_at_or_after(slot.end, *_EVENING_CUTOFF)


def cut_points(slots: Sequence[Slot]) -> List[int]:
    return [idx for idx, slot in enumerate(slots) if is_day_boundary(slot)]


def split_segments(length: int, cuts: Sequence[int]) -> List[Segment]:
    """Cut ``range(length)`` immediately after each index in ``cuts``."""
    segments: List[Segment] = []
    start = 0
    for idx in cuts:
        segments.append((start, idx + 1))
        start = idx + 1
    if start < length:
        segments.append((start, length))
    return segments


def grow_segments(segments: Sequence[Segment], target: int) -> List[Segment]:
    """Split the largest segment in half until ``target`` segments exist.

    Stops short when the largest remaining segment holds a single slot.
    """
    out = list(segments)
    while len(out) < target:
        idx = max(range(len(out)), key=lambda i: (_size(out[i]), -i))
        start, stop = out[idx]
        if stop - start <= 1:
            logger.debug("Largest segment is unsplittable; accepting %d of %d segment(s)", len(out), target)
            break
        mid = start + (stop - start) // 2
        out[idx : idx + 1] = [(start, mid), (mid, stop)]
    return out


def shrink_segments(segments: Sequence[Segment], target: int) -> List[Segment]:
    """Merge the smallest segment into its neighbour until ``target`` remain."""
    out = list(segments)
    while len(out) > target and len(out) > 1:
        idx = min(range(len(out)), key=lambda i: (_size(out[i]), i))
        if idx == 0:
            out[0:2] = [(out[0][0], out[1][1])]
        else:
            out[idx - 1 : idx + 1] = [(out[idx - 1][0], out[idx][1])]
    return out


def _segment(flat: Sequence[Slot], target: int) -> List[Segment]:
    segments = split_segments(len(flat), cut_points(flat))
    if len(segments) < target:
        return grow_segments(segments, target)
    if len(segments) > target:
        return shrink_segments(segments, target)
    return segments


def _size(segment: Segment) -> int:
    return segment[1] - segment[0]


def _materialize(
    flat: Sequence[Slot],
    segments: Sequence[Segment],
    expected_days: int,
    base_date: str,
) -> List[Day]:
    days: List[Day] = []
    for k in range(expected_days):
        if k < len(segments):
            start, stop = segments[k]
            slots = [slot.model_copy(deep=True) for slot in flat[start:stop]]
        else:
            slots = []
        days.append(Day(day=k + 1, date=add_days_iso(base_date, k) if base_date else "", slots=slots))
    return days


def _placeholder_days(expected_days: int, base_date: str, destination: str) -> List[Day]:
    days: List[Day] = []
    for k in range(expected_days):
        buffer = Slot(
            start="20:00",
            end="22:00",
            time=make_range("20:00", "22:00"),
            title="Rest at hotel",
            place=destination or "Hotel",
            category="Hotel",
            notes="Auto-generated buffer: the itinerary came back without activities for this day.",
            cost_min=0,
        )
        days.append(Day(day=k + 1, date=add_days_iso(base_date, k) if base_date else "", slots=[buffer]))
    return days


def _base_date(plan: Plan) -> str:
    if plan.plan and is_iso_date(plan.plan[0].date):
        return plan.plan[0].date
    return ""


def _destination(context: TripContext | Mapping[str, Any] | None) -> str:
    if isinstance(context, TripContext):
        return context.destination
    if isinstance(context, Mapping):
        value: Optional[Any] = context.get("destination")
        return value if isinstance(value, str) else ""
    return ""
