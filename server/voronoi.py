"""Synthesize district cells for point-only sources with a clipped Voronoi tessellation.

Steps:
1. Voronoi diagram of the seeds, bounded by their bounding box padded by 0.1 deg
   (seeds are mirrored across the box edges so every real cell is finite).
2. Convex hull of the seeds, pushed outward from its centroid by ~1.3 km so that
   cells on the hull keep usable area.
3. Each raw cell is clipped against the expanded hull (Sutherland-Hodgman). If
   clipping leaves fewer than 3 points the raw cell is used instead.

Coordinates are handled as planar (x=lon, y=lat) degrees.
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
from scipy.spatial import ConvexHull, QhullError, Voronoi

from schemas import GeoPoint, VoronoiCell, VoronoiSeed

logger = logging.getLogger(__name__)

BBOX_PAD_DEG = 0.1
HULL_EXPAND_DEG = 0.012  # ~1.3 km

XY = tuple[float, float]


# ---------------------------------------------------------------------------
# Planar helpers
# ---------------------------------------------------------------------------

def signed_area(poly: Sequence[XY]) -> float:
    """Shoelace area: positive when the ring is counter-clockwise."""
    area = 0.0
    for i in range(len(poly)):
        x1, y1 = poly[i]
        x2, y2 = poly[(i + 1) % len(poly)]
        area += x1 * y2 - x2 * y1
    return area / 2


def expand_hull(hull: Sequence[XY], amount: float) -> list[XY]:
    """Move every vertex of a convex ring `amount` further from the ring centroid."""
    cx = sum(p[0] for p in hull) / len(hull)
    cy = sum(p[1] for p in hull) / len(hull)
    expanded = []
    for x, y in hull:
        dx, dy = x - cx, y - cy
        length = math.hypot(dx, dy) or 1.0
        expanded.append((x + dx / length * amount, y + dy / length * amount))
    return expanded


def _cross(a: XY, b: XY, p: XY) -> float:
    # > 0 when p is left of a->b
    return (b[0] - a[0]) * (p[1] - a[1]) - (b[1] - a[1]) * (p[0] - a[0])


def _intersect(p1: XY, p2: XY, p3: XY, p4: XY) -> Optional[XY]:
    d1x, d1y = p2[0] - p1[0], p2[1] - p1[1]
    d2x, d2y = p4[0] - p3[0], p4[1] - p3[1]
    denom = d1x * d2y - d1y * d2x
    if abs(denom) < 1e-12:
        return None
    t = ((p3[0] - p1[0]) * d2y - (p3[1] - p1[1]) * d2x) / denom
    return (p1[0] + t * d1x, p1[1] + t * d1y)


def sutherland_hodgman(subject: Sequence[XY], clip: Sequence[XY]) -> list[XY]:
    """Clip `subject` against a convex, counter-clockwise `clip` ring."""
    output = list(subject)
    for i in range(len(clip)):
        if not output:
            return []
        a, b = clip[i], clip[(i + 1) % len(clip)]
        current_input, output = output, []
        for j, cur in enumerate(current_input):
            prev = current_input[j - 1]
            cur_in = _cross(a, b, cur) >= 0
            prev_in = _cross(a, b, prev) >= 0
            if cur_in:
                if not prev_in:
                    ix = _intersect(prev, cur, a, b)
                    if ix is not None:
                        output.append(ix)
                output.append(cur)
            elif prev_in:
                ix = _intersect(prev, cur, a, b)
                if ix is not None:
                    output.append(ix)
    return output


# ---------------------------------------------------------------------------
# Tessellation
# ---------------------------------------------------------------------------

def _bounded_cells(xy: np.ndarray) -> list[Optional[list[XY]]]:
    """Voronoi cells of xy restricted to its padded bounding box."""
    min_x, min_y = xy.min(axis=0) - BBOX_PAD_DEG
    max_x, max_y = xy.max(axis=0) + BBOX_PAD_DEG

    # The bisector between a seed and its mirror image is the box edge
    left = np.column_stack((2 * min_x - xy[:, 0], xy[:, 1]))
    right = np.column_stack((2 * max_x - xy[:, 0], xy[:, 1]))
    down = np.column_stack((xy[:, 0], 2 * min_y - xy[:, 1]))
    up = np.column_stack((xy[:, 0], 2 * max_y - xy[:, 1]))
    vor = Voronoi(np.vstack((xy, left, right, down, up)))

    cells: list[Optional[list[XY]]] = []
    for i in range(len(xy)):
        region_idx = vor.point_region[i]
        region = vor.regions[region_idx] if region_idx >= 0 else []
        if not region or -1 in region:
            cells.append(None)
            continue
        verts = vor.vertices[region]
        cx, cy = verts.mean(axis=0)
        order = np.argsort(np.arctan2(verts[:, 1] - cy, verts[:, 0] - cx))
        cells.append([(float(x), float(y)) for x, y in verts[order]])
    return cells


def _clip_ring(xy: np.ndarray) -> Optional[list[XY]]:
    """Expanded convex hull of the seeds, CCW, or None for collinear input."""
    if len(xy) < 3:
        return None
    try:
        hull = ConvexHull(xy)
    except QhullError:
        return None
    ring = expand_hull([(float(x), float(y)) for x, y in xy[hull.vertices]], HULL_EXPAND_DEG)
    if signed_area(ring) < 0:
        ring.reverse()
    return ring


def compute_voronoi(points: Sequence[VoronoiSeed]) -> list[VoronoiCell]:
    """One polygon per seed, tagged with the seed id. Fewer than 2 seeds yield nothing."""
    if len(points) < 2:
        return []

    xy = np.array([[p.lon, p.lat] for p in points], dtype=float)
    try:
        raw_cells = _bounded_cells(xy)
    except QhullError as e:
        logger.warning("Voronoi tessellation failed for %d seeds: %s", len(points), e)
        return []
    clip = _clip_ring(xy)

    result = []
    for seed, cell in zip(points, raw_cells):
        if cell is None or len(cell) < 3:
            logger.debug("Seed %d has no usable Voronoi cell", seed.id)
            continue
        final = cell
        if clip is not None:
            clipped = sutherland_hodgman(cell, clip)
            if len(clipped) >= 3:
                final = clipped
        result.append(VoronoiCell(
            id=seed.id,
            polygon=[GeoPoint(lat=y, lng=x) for x, y in final],
        ))
    return result
