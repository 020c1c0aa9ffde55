"""GPS ingestion for an active run: noise filtering, path accumulation, unlock feed.

Pipeline for each fix delivered while a run is active:
1. Reject if no run is active
2. Accept the first point of a run unconditionally
3. Reject impossible jumps (speed cap) and stationary jitter (minimum step)
4. Append to the run path and the revealed trail, persist, and test for unlocks
"""

import enum
import logging
import time
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from geo import haversine_meters
from models import Config
from schemas import GeoPoint, RunSummary
from trail import RevealedTrail
from unlock import UnlockEngine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MAX_SPEED_MPS = 50.0        # faster than this between fixes is a GPS jump
MIN_STEP_M = 2.0            # shorter steps are stationary jitter
MAX_ACCURACY_M = 0.0        # 0 disables the accuracy gate
REFETCH_DISTANCE_M = 5000.0
CELL_PRECISION = 4
GRID_CELL_DEG = 0.005
FOG_GAP_M = 50.0


def get_thresholds(db: Session) -> dict:
    """Read engine thresholds from the Config table, falling back to module defaults."""
    defaults = {
        "max_speed_mps": MAX_SPEED_MPS,
        "min_step_m": MIN_STEP_M,
        "max_accuracy_m": MAX_ACCURACY_M,
        "refetch_distance_m": REFETCH_DISTANCE_M,
        "cell_precision": CELL_PRECISION,
        "grid_cell_deg": GRID_CELL_DEG,
        "fog_gap_m": FOG_GAP_M,
    }
    rows = db.query(Config).filter(Config.key.in_(defaults.keys())).all()
    for row in rows:
        try:
            defaults[row.key] = float(row.value)
        except ValueError:
            logger.warning("Ignoring non-numeric config %s=%r", row.key, row.value)
    defaults["cell_precision"] = int(defaults["cell_precision"])
    return defaults


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class RejectReason(str, enum.Enum):
    NOT_RUNNING = "not_running"
    GPS_JUMP = "gps_jump"
    TOO_SMALL = "too_small"
    LOW_ACCURACY = "low_accuracy"


class AcceptResult(BaseModel):
    accepted: bool
    reason: Optional[RejectReason] = None
    step_m: float = 0.0
    unlocked: list[str] = []


# ---------------------------------------------------------------------------
# Run tracker
# ---------------------------------------------------------------------------

class RunTracker:
    """Idle / Running state machine owning the current run path.

    Collaborators are injected: the shared revealed trail, the unlock engine,
    the run history list and an optional store that persists each mutation.
    """

    def __init__(
        self,
        trail: RevealedTrail,
        unlocks: UnlockEngine,
        history: list[RunSummary],
        store=None,
        thresholds: dict | None = None,
    ):
        self.trail = trail
        self.unlocks = unlocks
        self.history = history
        self.store = store
        self.notifier = unlocks.notifier

        self.max_speed = (thresholds or {}).get("max_speed_mps", MAX_SPEED_MPS)
        self.min_step = (thresholds or {}).get("min_step_m", MIN_STEP_M)
        self.max_accuracy = (thresholds or {}).get("max_accuracy_m", MAX_ACCURACY_M)

        self.is_running = False
        self.path: list[GeoPoint] = []
        self.distance_m = 0.0
        self.last_accepted: Optional[GeoPoint] = None
        self.started_at: Optional[int] = None

    def _reset_run(self):
        self.path = []
        self.distance_m = 0.0
        self.last_accepted = None
        self.started_at = None

    def start(self, at_ms: int | None = None) -> int:
        """Idle -> Running. Clears the run path and distance accumulator."""
        self._reset_run()
        self.is_running = True
        self.started_at = at_ms if at_ms is not None else now_ms()
        logger.info("Run started at %d", self.started_at)
        self.notifier.run_started(self.started_at)
        return self.started_at

    def accept_point(self, p: GeoPoint, accuracy: float | None = None) -> AcceptResult:
        if not self.is_running:
            return AcceptResult(accepted=False, reason=RejectReason.NOT_RUNNING)

        if p.t is None:
            p = p.model_copy(update={"t": now_ms()})

        if self.max_accuracy > 0 and accuracy is not None and accuracy > self.max_accuracy:
            return AcceptResult(accepted=False, reason=RejectReason.LOW_ACCURACY)

        step = 0.0
        last = self.last_accepted
        if last is not None:
            dt_s = max(1, p.t - last.t) / 1000.0
            step = haversine_meters(last, p)
            if step / dt_s > self.max_speed:
                return AcceptResult(accepted=False, reason=RejectReason.GPS_JUMP, step_m=step)
            if step < self.min_step:
                return AcceptResult(accepted=False, reason=RejectReason.TOO_SMALL, step_m=step)

        self.last_accepted = p
        self.path.append(p)
        self.distance_m += step
        self.trail.append(p)
        if self.store is not None:
            self.store.append_revealed(p)

        newly = self.unlocks.process(p)
        return AcceptResult(accepted=True, step_m=step, unlocked=[d.key for d in newly])

    def abort(self):
        """Drop the active run without a summary or notification (full reset)."""
        self.is_running = False
        self._reset_run()

    def stop(self) -> Optional[RunSummary]:
        """Running -> Idle. Runs with fewer than 2 accepted points leave no summary.

        Points already appended to the revealed trail stay there either way.
        """
        if not self.is_running:
            return None

        summary = None
        if len(self.path) >= 2 and self.started_at is not None:
            ended_at = self.path[-1].t
            summary = RunSummary(
                id=f"{self.started_at}-{ended_at}",
                started_at=self.started_at,
                ended_at=ended_at,
                distance_meters=self.distance_m,
                points=list(self.path),
            )
            self.history.append(summary)
            if self.store is not None:
                self.store.add_run(summary)
            logger.info("Run %s stopped: %.0f m over %d points",
                        summary.id, summary.distance_meters, len(summary.points))
        else:
            logger.info("Run discarded: only %d accepted points", len(self.path))

        self.is_running = False
        self._reset_run()
        self.notifier.run_stopped(summary)
        return summary
