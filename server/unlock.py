"""Containment test and the Locked -> Unlocked district state machine."""

import logging
from typing import Callable, Iterable, Optional

from geo import point_in_polygon
from notifications import Notifier
from schemas import District, GeoPoint

logger = logging.getLogger(__name__)


def district_contains(district: District, lat: float, lng: float) -> bool:
    """Bounds prefilter, then even-odd test against every constituent polygon."""
    if not district.bounds.contains(lat, lng):
        return False
    return any(point_in_polygon(lat, lng, poly) for poly in district.polygons)


class UnlockedSet:
    """Append-only, insertion-ordered set of district ids (as strings)."""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids: dict[str, None] = {}
        for district_id in ids:
            self.add(district_id)

    def __contains__(self, district_id) -> bool:
        return str(district_id) in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def add(self, district_id) -> bool:
        """Insert an id; returns True only if it was not already present."""
        key = str(district_id)
        if key in self._ids:
            return False
        self._ids[key] = None
        return True

    def clear(self):
        """Full reset; only used by the explicit reset-everything action."""
        self._ids.clear()

    def to_list(self) -> list[str]:
        return list(self._ids)


class UnlockEngine:
    """Tests accepted run points against the live districts and unlocks matches.

    Districts never relock. Every district containing the point is unlocked,
    even when administrative polygons overlap.
    """

    def __init__(
        self,
        unlocked: UnlockedSet,
        districts: Callable[[], list[District]],
        notifier: Notifier,
        on_unlock: Optional[Callable[[str], None]] = None,
    ):
        self.unlocked = unlocked
        self._districts = districts
        self.notifier = notifier
        self.on_unlock = on_unlock

    def is_unlocked(self, district_id) -> bool:
        return district_id in self.unlocked

    def process(self, point: GeoPoint) -> list[District]:
        """Unlock every locked district containing the point; return those unlocked now."""
        newly = []
        for d in self._districts():
            if d.key in self.unlocked:
                continue
            if not district_contains(d, point.lat, point.lng):
                continue
            if self.unlocked.add(d.key):
                newly.append(d)
                logger.info("Unlocked district %s (%s)", d.name, d.key)
                if self.on_unlock is not None:
                    self.on_unlock(d.key)
                self.notifier.district_unlocked(d.key, d.name)
        return newly
