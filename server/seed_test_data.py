#!/usr/bin/env python3
"""Seed the database with the fixture run for development and API testing.

Usage:
    python seed_test_data.py

This replays the 31-fix jog through central Sofia against the fixture
Overpass payload (no network), leaving one run, the revealed trail and two
unlocked districts in the database.
"""

from database import init_db, SessionLocal
from districts import normalize_districts
from notifications import DISTRICT_UNLOCKED, Notifier
from session import GameSession
from storage import TrailStore
from tests.gps_test_fixtures import OSM_PAYLOAD, RUN_TRACE, SOFIA_CENTER
from tracker import get_thresholds


def _print_unlock(event, payload):
    if event == DISTRICT_UNLOCKED:
        print(f"  unlocked {payload['name']} ({payload['id']})")


def seed():
    init_db()
    db = SessionLocal()
    try:
        thresholds = get_thresholds(db)
    finally:
        db.close()

    store = TrailStore(SessionLocal)
    if store.load().runs:
        print("Runs already recorded. Skipping seed.")
        return

    notifier = Notifier()
    notifier.subscribe(_print_unlock)
    game = GameSession(store, notifier, thresholds,
                       fetcher=lambda lat, lon: normalize_districts(OSM_PAYLOAD))

    key, cached = game.begin_district_fetch(*SOFIA_CENTER)
    districts = cached if cached is not None else game.fetcher(*SOFIA_CENTER)
    game.complete_district_fetch(key, districts, SOFIA_CENTER)
    print(f"Loaded {len(game.districts.districts)} districts")

    game.start_run(at_ms=RUN_TRACE[0].t)
    rejected = sum(not game.accept_point(p).accepted for p in RUN_TRACE)
    summary = game.stop_run()

    print(f"Replayed {len(RUN_TRACE)} fixes ({rejected} rejected)")
    if summary is not None:
        print(f"Run {summary.id}: {summary.distance_meters:.0f} m over {len(summary.points)} points")
    print(f"Unlocked districts: {', '.join(game.unlocked) or 'none'}")
    if game.storage_error:
        print(f"Storage error: {game.storage_error}")

    print("\nDone! Start the server with: python main.py")


if __name__ == "__main__":
    seed()
