"""Tests for way stitching and the clipped Voronoi synthesizer."""

import math

import pytest

from schemas import GeoPoint, VoronoiSeed
from stitching import same_point, stitch_ways_to_polygons
from voronoi import (
    HULL_EXPAND_DEG,
    compute_voronoi,
    expand_hull,
    signed_area,
    sutherland_hodgman,
)


def _way(*coords):
    return [GeoPoint(lat=lat, lng=lng) for lat, lng in coords]


def _coords(poly):
    return [(p.lat, p.lng) for p in poly]


# =====================================================================
# Stitcher tests
# =====================================================================

class TestStitchWays:
    def test_joins_two_segments(self):
        loops = stitch_ways_to_polygons([_way((0, 0), (1, 1)), _way((1, 1), (2, 2))])
        assert len(loops) == 1
        assert _coords(loops[0]) == [(0, 0), (1, 1), (2, 2)]

    def test_reverse_duplicate_does_not_crash(self):
        way = _way((0, 0), (1, 0), (1, 1))
        loops = stitch_ways_to_polygons([way, list(reversed(way))])
        assert len(loops) >= 1
        assert all(len(loop) >= 3 for loop in loops)

    def test_reversed_way_attached_to_tail(self):
        a = _way((0, 0), (0, 1), (1, 1))
        b = _way((0, 0), (1, 0), (1, 1))  # shares both ends, wrong direction
        loops = stitch_ways_to_polygons([a, b])
        assert len(loops) == 1
        assert _coords(loops[0]) == [(0, 0), (0, 1), (1, 1), (1, 0), (0, 0)]

    def test_attaches_to_head(self):
        a = _way((1, 1), (2, 2), (3, 3))
        b = _way((0, 0), (1, 1))
        loops = stitch_ways_to_polygons([a, b])
        assert _coords(loops[0]) == [(0, 0), (1, 1), (2, 2), (3, 3)]

    def test_attaches_reversed_to_head(self):
        a = _way((1, 1), (2, 2), (3, 3))
        b = _way((1, 1), (0, 0))
        loops = stitch_ways_to_polygons([a, b])
        assert _coords(loops[0]) == [(0, 0), (1, 1), (2, 2), (3, 3)]

    def test_out_of_order_square(self):
        ways = [
            _way((0, 0), (1, 0)),
            _way((1, 1), (0, 1)),
            _way((1, 0), (1, 1)),
            _way((0, 1), (0, 0)),
        ]
        loops = stitch_ways_to_polygons(ways)
        assert len(loops) == 1
        loop = loops[0]
        assert same_point(loop[0], loop[-1])
        assert len(loop) == 5

    def test_endpoints_within_epsilon_join(self):
        loops = stitch_ways_to_polygons([_way((0, 0), (1, 1)), _way((1.000001, 1.000001), (2, 2))])
        assert len(loops) == 1
        assert len(loops[0]) == 3

    def test_disconnected_ways_become_separate_loops(self):
        a = _way((0, 0), (0, 1), (1, 1))
        b = _way((5, 5), (5, 6), (6, 6))
        loops = stitch_ways_to_polygons([a, b])
        assert len(loops) == 2

    def test_short_unconnected_way_dropped(self):
        loops = stitch_ways_to_polygons([_way((0, 0), (0, 1), (1, 1)), _way((5, 5), (6, 6))])
        assert len(loops) == 1

    def test_two_separate_closed_rings(self):
        ring_a = [_way((0, 0), (0, 1), (1, 1)), _way((1, 1), (1, 0), (0, 0))]
        ring_b = [_way((5, 5), (5, 6), (6, 6)), _way((6, 6), (6, 5), (5, 5))]
        loops = stitch_ways_to_polygons(ring_a + ring_b)
        assert len(loops) == 2

    def test_empty_input(self):
        assert stitch_ways_to_polygons([]) == []
        assert stitch_ways_to_polygons([[]]) == []

    def test_does_not_mutate_input(self):
        a = _way((0, 0), (0, 1), (1, 1))
        b = _way((0, 0), (1, 0), (1, 1))
        stitch_ways_to_polygons([a, b])
        assert _coords(b) == [(0, 0), (1, 0), (1, 1)]


# =====================================================================
# Voronoi helper tests
# =====================================================================

class TestClipping:
    SQUARE = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]

    def test_signed_area_orientation(self):
        assert signed_area(self.SQUARE) == pytest.approx(1.0)
        assert signed_area(list(reversed(self.SQUARE))) == pytest.approx(-1.0)

    def test_expand_hull_moves_vertices_outward(self):
        expanded = expand_hull(self.SQUARE, 0.1)
        assert signed_area(expanded) > signed_area(self.SQUARE)
        assert expanded[0][0] == pytest.approx(-0.1 / math.sqrt(2))

    def test_clip_subject_inside_is_unchanged(self):
        subject = [(0.25, 0.25), (0.75, 0.25), (0.75, 0.75)]
        assert sutherland_hodgman(subject, self.SQUARE) == subject

    def test_clip_overlapping_square(self):
        subject = [(0.5, 0.5), (1.5, 0.5), (1.5, 1.5), (0.5, 1.5)]
        clipped = sutherland_hodgman(subject, self.SQUARE)
        assert abs(signed_area(clipped)) == pytest.approx(0.25)

    def test_clip_disjoint_is_empty(self):
        subject = [(5.0, 5.0), (6.0, 5.0), (6.0, 6.0)]
        assert sutherland_hodgman(subject, self.SQUARE) == []


# =====================================================================
# Voronoi synthesizer tests
# =====================================================================

THREE_SEEDS = [
    VoronoiSeed(lat=42.650, lon=23.300, id=1),
    VoronoiSeed(lat=42.655, lon=23.330, id=2),
    VoronoiSeed(lat=42.640, lon=23.360, id=3),
]


def _centroid(poly):
    return (sum(p.lat for p in poly) / len(poly), sum(p.lng for p in poly) / len(poly))


def _planar_dist(a, seed):
    return math.hypot(a[0] - seed.lat, a[1] - seed.lon)


class TestComputeVoronoi:
    def test_three_seeds_three_cells(self):
        cells = compute_voronoi(THREE_SEEDS)
        assert len(cells) == 3
        assert sorted(c.id for c in cells) == [1, 2, 3]
        assert all(len(c.polygon) >= 3 for c in cells)

    def test_centroid_closest_to_own_seed(self):
        seeds = {s.id: s for s in THREE_SEEDS}
        for cell in compute_voronoi(THREE_SEEDS):
            c = _centroid(cell.polygon)
            own = _planar_dist(c, seeds[cell.id])
            others = [_planar_dist(c, s) for sid, s in seeds.items() if sid != cell.id]
            assert own < min(others)

    def test_cells_clipped_to_expanded_hull(self):
        max_lat = max(s.lat for s in THREE_SEEDS) + HULL_EXPAND_DEG + 1e-9
        min_lon = min(s.lon for s in THREE_SEEDS) - HULL_EXPAND_DEG - 1e-9
        for cell in compute_voronoi(THREE_SEEDS):
            assert all(p.lat <= max_lat for p in cell.polygon)
            assert all(p.lng >= min_lon for p in cell.polygon)

    def test_seed_inside_its_cell(self):
        from geo import point_in_polygon

        for seed, cell in zip(THREE_SEEDS, compute_voronoi(THREE_SEEDS)):
            assert point_in_polygon(seed.lat, seed.lon, cell.polygon)

    def test_two_seeds_fall_back_to_raw_cells(self):
        cells = compute_voronoi(THREE_SEEDS[:2])
        assert len(cells) == 2
        assert all(len(c.polygon) >= 3 for c in cells)

    def test_collinear_seeds(self):
        seeds = [VoronoiSeed(lat=42.6, lon=23.3 + i * 0.01, id=i) for i in range(4)]
        cells = compute_voronoi(seeds)
        assert len(cells) == 4

    def test_fewer_than_two_seeds(self):
        assert compute_voronoi([]) == []
        assert compute_voronoi(THREE_SEEDS[:1]) == []
