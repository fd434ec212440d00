"""Keyed persistence for saved itineraries."""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_PLANNER_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

DEFAULT_KEY = "savedItineraries"


class ItineraryStore:
    """A small key -> list-of-itineraries store.

    When ``path`` is given the whole keyspace is kept in one JSON file and
    rewritten on every save; otherwise data lives in memory only.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._data: Dict[str, List[Dict[str, Any]]] = self._read()

    def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except ValueError:
            logger.warning("Itinerary store %s is not valid JSON", self.path, exc_info=True)
            self._quarantine()
            return {}
        if not isinstance(raw, dict):
            logger.warning("Itinerary store %s does not hold a JSON object", self.path)
            self._quarantine()
            return {}
        return {k: v for k, v in raw.items() if isinstance(v, list)}

    def _quarantine(self) -> None:
        target = self.path.with_suffix(self.path.suffix + ".corrupt")
        self.path.replace(target)
        logger.warning("Moved unreadable itinerary store to %s; starting empty", target)

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def load(self, key: str = DEFAULT_KEY) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._data.get(key, []))

    def save(self, key: str, items: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(list(items))
            self._flush()
        logger.debug("Saved %d itinerary record(s) under %s", len(items), key)

    # ---------- name-addressed helpers ----------
    def get(self, name: str, key: str = DEFAULT_KEY) -> Optional[Dict[str, Any]]:
        return next((item for item in self.load(key) if item.get("name") == name), None)

    def upsert(self, record: Dict[str, Any], key: str = DEFAULT_KEY) -> None:
        items = self.load(key)
        for idx, item in enumerate(items):
            if item.get("name") == record.get("name"):
                items[idx] = record
                break
        else:
            items.append(record)
        self.save(key, items)

    def delete(self, name: str, key: str = DEFAULT_KEY) -> bool:
        items = self.load(key)
        kept = [item for item in items if item.get("name") != name]
        if len(kept) == len(items):
            return False
        self.save(key, kept)
        return True
