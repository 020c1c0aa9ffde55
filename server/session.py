"""The game session: one explicit owner for all engine state.

All mutations happen through this object, one event at a time. The only
operation that may suspend is the district fetch, which is split into
begin_district_fetch() / complete_district_fetch() so the host can run the
network call elsewhere and apply the result atomically afterwards.
"""

import logging
from typing import Any, Callable, Optional

from districts import DistrictState, fetch_districts
from fog import split_trail
from notifications import Notifier
from schemas import Bounds, District, GeoPoint, RunSummary
from storage import TrailStore, export_document, parse_export_document
from tracker import (
    CELL_PRECISION,
    FOG_GAP_M,
    GRID_CELL_DEG,
    REFETCH_DISTANCE_M,
    AcceptResult,
    RunTracker,
)
from trail import RevealedTrail
from unlock import UnlockedSet, UnlockEngine

logger = logging.getLogger(__name__)


class GameSession:
    def __init__(
        self,
        store: Optional[TrailStore] = None,
        notifier: Optional[Notifier] = None,
        thresholds: dict | None = None,
        fetcher: Optional[Callable[[float, float], Optional[list[District]]]] = None,
    ):
        self.store = store
        self.notifier = notifier or Notifier()
        self.thresholds = thresholds or {}
        # Blocking (lat, lon) -> districts or None; run off the event loop by the host
        self.fetcher = fetcher or fetch_districts

        state = store.load() if store is not None else None
        self.trail = RevealedTrail(
            state.revealed if state else (),
            cell_size=self.thresholds.get("grid_cell_deg", GRID_CELL_DEG),
        )
        self.runs: list[RunSummary] = list(state.runs) if state else []
        self.unlocked = UnlockedSet(state.unlocked if state else ())
        self.aux: dict[str, Any] = dict(state.aux) if state else {}

        self.districts = DistrictState(self.thresholds.get("refetch_distance_m", REFETCH_DISTANCE_M))
        self.unlocks = UnlockEngine(
            self.unlocked,
            lambda: self.districts.districts,
            self.notifier,
            on_unlock=store.add_unlocked if store is not None else None,
        )
        self.tracker = RunTracker(self.trail, self.unlocks, self.runs, store, self.thresholds)

    # -- Runs ----------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.tracker.is_running

    def start_run(self, at_ms: int | None = None) -> int:
        return self.tracker.start(at_ms)

    def stop_run(self) -> Optional[RunSummary]:
        return self.tracker.stop()

    def accept_point(self, point: GeoPoint, accuracy: float | None = None) -> AcceptResult:
        return self.tracker.accept_point(point, accuracy)

    # -- Districts -----------------------------------------------------------

    def needs_district_fetch(self, lat: float, lon: float) -> bool:
        return self.districts.needs_fetch(lat, lon)

    def begin_district_fetch(self, lat: float, lon: float) -> tuple[str, Optional[list[District]]]:
        """Mark a fetch pending; returns its key and any cached districts for it."""
        key = self.districts.begin_fetch(lat, lon)
        cached = self.store.load_district_cache(key) if self.store is not None else None
        return key, cached

    def complete_district_fetch(
        self, key: str, districts: list[District], location: tuple[float, float], cache: bool = True,
    ) -> bool:
        applied = self.districts.complete_fetch(key, districts, location)
        if applied and cache and districts and self.store is not None:
            self.store.save_district_cache(key, districts)
        return applied

    def fail_district_fetch(self, key: str, error: str) -> bool:
        return self.districts.fail_fetch(key, error)

    def reset_districts(self):
        """Drop the loaded districts and every unlock; the trail and runs are kept."""
        self.districts.reset()
        self.unlocked.clear()
        if self.store is not None:
            self.store.clear_unlocked()
        logger.info("Districts and unlocks reset")

    # -- History -------------------------------------------------------------

    def export_document(self) -> dict:
        return export_document(self.trail.points, self.runs)

    def import_document(self, raw: Any) -> tuple[int, int]:
        """Replace trail and run history from an export document.

        Raises InvalidExportError without touching state if the document is malformed.
        """
        revealed, runs = parse_export_document(raw)
        self.trail.replace(revealed)
        self.runs[:] = runs
        if self.store is not None:
            self.store.replace_history(revealed, runs)
        logger.info("Imported %d revealed points and %d runs", len(revealed), len(runs))
        return len(revealed), len(runs)

    def reset_all(self):
        """Wipe trail, runs, unlocks and auxiliary state. Ends any active run."""
        self.tracker.abort()
        self.trail.clear()
        self.runs.clear()
        self.unlocked.clear()
        self.aux.clear()
        if self.store is not None:
            self.store.clear_all()
        logger.info("All exploration state reset")

    def update_aux(self, values: dict[str, Any]):
        self.aux.update(values)
        if self.store is not None:
            self.store.save_aux(self.aux)

    # -- Read models ---------------------------------------------------------

    def lifetime_stats(self) -> dict:
        precision = int(self.thresholds.get("cell_precision", CELL_PRECISION))
        return {
            "total_distance_m": sum(r.distance_meters for r in self.runs),
            "total_runs": len(self.runs),
            "revealed_points": len(self.trail),
            "explored_cells": self.trail.explored_cells(precision),
            "unlocked_districts": len(self.unlocked),
        }

    def visible_strokes(self, bounds: Bounds) -> list[list[GeoPoint]]:
        return split_trail(self.trail.window(bounds), self.thresholds.get("fog_gap_m", FOG_GAP_M))

    @property
    def storage_error(self) -> Optional[str]:
        return self.store.last_error if self.store is not None else None
