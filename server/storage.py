"""Persistence of the exploration state, plus JSON export/import.

Every write commits immediately so that a crash loses at most the latest
mutation. Write failures are logged and recorded in `last_error`; the caller's
in-memory state stays authoritative. Loads never raise: a missing or corrupt
record yields the empty default state.
"""

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from models import AppState, DistrictCache, RevealedPoint, Run, UnlockedDistrict
from schemas import District, GeoPoint, PersistedState, RunSummary

logger = logging.getLogger(__name__)

AUX_KEY = "aux"


class InvalidExportError(ValueError):
    """An import document that is not {revealed: [...], runs: [...]}."""


# ---------------------------------------------------------------------------
# Export / import documents
# ---------------------------------------------------------------------------

def export_document(revealed: list[GeoPoint], runs: list[RunSummary]) -> dict:
    return {
        "revealed": [p.model_dump() for p in revealed],
        "runs": [r.model_dump(by_alias=True) for r in runs],
    }


def parse_export_document(raw: Any) -> tuple[list[GeoPoint], list[RunSummary]]:
    """Validate an export document (a dict or its JSON text)."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise InvalidExportError(f"not JSON: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidExportError("document must be an object")
    if not isinstance(raw.get("revealed"), list) or not isinstance(raw.get("runs"), list):
        raise InvalidExportError("'revealed' and 'runs' must both be arrays")
    try:
        revealed = [GeoPoint.model_validate(p) for p in raw["revealed"]]
        runs = [RunSummary.model_validate(r) for r in raw["runs"]]
    except ValidationError as e:
        raise InvalidExportError(f"invalid entry: {e.errors()[:1]}") from e
    return revealed, runs


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class TrailStore:
    """SQLAlchemy-backed storage for one player's exploration state."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.last_error: Optional[str] = None

    def _write(self, action: str, fn) -> bool:
        db = self.session_factory()
        try:
            fn(db)
            db.commit()
            self.last_error = None
            return True
        except SQLAlchemyError as e:
            db.rollback()
            self.last_error = f"{action} failed: {e}"
            logger.warning("Storage %s failed: %s", action, e)
            return False
        finally:
            db.close()

    def load(self) -> PersistedState:
        db = self.session_factory()
        try:
            revealed = [
                GeoPoint(lat=r.lat, lng=r.lng, t=r.t)
                for r in db.query(RevealedPoint).order_by(RevealedPoint.id).all()
            ]
            runs = [
                RunSummary(
                    id=r.run_id,
                    started_at=r.started_at,
                    ended_at=r.ended_at,
                    distance_meters=r.distance_meters,
                    points=r.points,
                )
                for r in db.query(Run).order_by(Run.seq).all()
            ]
            unlocked = [
                u.district_id
                for u in db.query(UnlockedDistrict).order_by(UnlockedDistrict.seq).all()
            ]
            aux_row = db.get(AppState, AUX_KEY)
            aux = aux_row.value if aux_row is not None and isinstance(aux_row.value, dict) else {}
            return PersistedState(revealed=revealed, runs=runs, unlocked=unlocked, aux=aux)
        except (SQLAlchemyError, ValidationError, ValueError, TypeError) as e:
            logger.warning("Persisted state unreadable, starting empty: %s", e)
            return PersistedState()
        finally:
            db.close()

    def append_revealed(self, point: GeoPoint) -> bool:
        return self._write(
            "append_revealed",
            lambda db: db.add(RevealedPoint(lat=point.lat, lng=point.lng, t=point.t)),
        )

    def add_run(self, summary: RunSummary) -> bool:
        return self._write("add_run", lambda db: db.add(_run_row(summary)))

    def add_unlocked(self, district_id: str) -> bool:
        def add(db):
            if not db.query(UnlockedDistrict).filter(UnlockedDistrict.district_id == district_id).first():
                db.add(UnlockedDistrict(district_id=district_id))
        return self._write("add_unlocked", add)

    def save_aux(self, aux: dict) -> bool:
        return self._write("save_aux", lambda db: db.merge(AppState(key=AUX_KEY, value=aux)))

    def replace_history(self, revealed: list[GeoPoint], runs: list[RunSummary]) -> bool:
        def replace(db):
            db.query(RevealedPoint).delete()
            db.query(Run).delete()
            db.add_all(RevealedPoint(lat=p.lat, lng=p.lng, t=p.t) for p in revealed)
            db.add_all(_run_row(r) for r in runs)
        return self._write("replace_history", replace)

    def clear_unlocked(self) -> bool:
        return self._write("clear_unlocked", lambda db: db.query(UnlockedDistrict).delete())

    def clear_all(self) -> bool:
        def clear(db):
            for model in (RevealedPoint, Run, UnlockedDistrict, AppState):
                db.query(model).delete()
        return self._write("clear_all", clear)

    # -- District cache ------------------------------------------------------

    def load_district_cache(self, cache_key: str) -> Optional[list[District]]:
        db = self.session_factory()
        try:
            row = db.get(DistrictCache, cache_key)
            if row is None:
                return None
            return [District.model_validate(d) for d in row.districts]
        except (SQLAlchemyError, ValidationError, TypeError) as e:
            logger.warning("District cache %s unreadable: %s", cache_key, e)
            return None
        finally:
            db.close()

    def save_district_cache(self, cache_key: str, districts: list[District]) -> bool:
        payload = [d.model_dump() for d in districts]
        return self._write(
            "save_district_cache",
            lambda db: db.merge(DistrictCache(cache_key=cache_key, districts=payload)),
        )


def _run_row(summary: RunSummary) -> Run:
    return Run(
        run_id=summary.id,
        started_at=summary.started_at,
        ended_at=summary.ended_at,
        distance_meters=summary.distance_meters,
        points=[p.model_dump() for p in summary.points],
    )
