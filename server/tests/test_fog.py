"""Tests for trail stroke splitting and the viewport window used by the fog mask."""

from fog import DISCONTINUITY_M, split_trail
from schemas import Bounds, GeoPoint
from tests.gps_test_fixtures import OBORISHTE_SEGMENT, RUN_TRACE, SREDETS_SEGMENT


class TestSplitTrail:
    def test_contiguous_run_is_one_stroke(self):
        strokes = split_trail(RUN_TRACE)
        assert strokes == [RUN_TRACE]

    def test_gap_starts_new_stroke(self):
        # Fix 20 was dropped: the 82 m gap between 19 and 21 must not be joined
        strokes = split_trail(SREDETS_SEGMENT + OBORISHTE_SEGMENT)
        assert strokes == [SREDETS_SEGMENT, OBORISHTE_SEGMENT]

    def test_single_point(self):
        assert split_trail(RUN_TRACE[:1]) == [RUN_TRACE[:1]]

    def test_empty(self):
        assert split_trail([]) == []

    def test_threshold_is_exclusive(self):
        a = GeoPoint(lat=0.0, lng=0.0)
        b = GeoPoint(lat=DISCONTINUITY_M / 111_194.93, lng=0.0)
        assert len(split_trail([a, b], max_gap_m=DISCONTINUITY_M + 0.01)) == 1
        assert len(split_trail([a, b], max_gap_m=DISCONTINUITY_M - 0.01)) == 2

    def test_custom_gap(self):
        assert len(split_trail(RUN_TRACE, max_gap_m=10)) == len(RUN_TRACE)


class TestVisibleStrokes:
    def test_window_around_run(self, game):
        game.start_run(at_ms=RUN_TRACE[0].t)
        for p in RUN_TRACE:
            game.accept_point(p)
        game.stop_run()

        strokes = game.visible_strokes(Bounds(minlat=42.69, minlon=23.32, maxlat=42.70, maxlon=23.34))
        assert strokes[0][0] == RUN_TRACE[0]
        assert sum(len(s) for s in strokes) <= len(RUN_TRACE)

    def test_far_window_is_empty(self, game):
        game.start_run()
        game.accept_point(RUN_TRACE[0])
        assert game.visible_strokes(Bounds(minlat=43.2, minlon=27.9, maxlat=43.3, maxlon=28.0)) == []
