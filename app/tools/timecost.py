"""Clock-time and currency-range parsing helpers."""
from __future__ import annotations

import math
import re
from datetime import date, timedelta
from typing import Any, Optional

RANGE_DASH = "–"

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_COST_RE = re.compile(r"(\d+)(?:[^\d]+(\d+))?")


def parse_time(value: Any) -> Optional[str]:
    """Return ``HH:MM`` for ``H:MM``/``HH:MM`` inputs with a valid hour, else None."""
    if not isinstance(value, str):
        return None
    m = _TIME_RE.match(value.strip())
    if not m:
        return None
    hour = int(m.group(1))
    if hour > 23:
        return None
    return f"{hour:02d}:{m.group(2)}"


def make_range(start: Any, end: Any) -> str:
    s, e = parse_time(start), parse_time(end)
    if s and e:
        return f"{s}{RANGE_DASH}{e}"
    return s or e or ""


def parse_cost_range(value: Any) -> int:
    """Collapse a number or a range string such as ``"₹1,200–₹1,600"`` to one integer.

    Two integer runs are averaged (half rounds up), a single run is returned
    as-is and anything without digits yields 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return 0
        return int(math.floor(value + 0.5))
    text = str(value).replace(",", "")
    m = _COST_RE.search(text)
    if not m:
        return 0
    low = int(m.group(1))
    high = int(m.group(2)) if m.group(2) else low
    return (low + high + 1) // 2


def is_iso_date(value: Any) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE_RE.match(value))


def add_days_iso(iso: Any, delta: int) -> str:
    # date arithmetic carries no timezone, so DST never shifts the result
    if not is_iso_date(iso):
        return ""
    try:
        base = date.fromisoformat(iso)
    except ValueError:
        return ""
    return (base + timedelta(days=delta)).isoformat()


def time_at_or_after(value: Any, hour: int, minute: int, *, strict: bool = False) -> bool:
    """True when ``value`` is a zero-padded ``HH:MM`` at or after ``hour:minute``.

    With ``strict`` the exact boundary no longer counts.
    """
    if not isinstance(value, str) or not re.match(r"^\d{2}:\d{2}$", value):
        return False
    given = tuple(int(part) for part in value.split(":"))
    if strict:
        return given > (hour, minute)
    return given >= (hour, minute)
