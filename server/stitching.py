"""Join disjoint boundary ways into closed polygon loops."""

import logging
from typing import Sequence

from schemas import GeoPoint, Polygon

logger = logging.getLogger(__name__)

STITCH_EPSILON_DEG = 1e-5  # ~1 m


def same_point(a: GeoPoint, b: GeoPoint, eps: float = STITCH_EPSILON_DEG) -> bool:
    return abs(a.lat - b.lat) < eps and abs(a.lng - b.lng) < eps


def _find_match(loop: list[GeoPoint], pool: list[list[GeoPoint]]) -> tuple[int, bool, bool]:
    """First way in pool touching the loop. Returns (index, attach_to_tail, reverse)."""
    head, tail = loop[0], loop[-1]
    for i, way in enumerate(pool):
        w_head, w_tail = way[0], way[-1]
        if same_point(tail, w_head):
            return i, True, False
        if same_point(tail, w_tail):
            return i, True, True
        if same_point(head, w_tail):
            return i, False, False
        if same_point(head, w_head):
            return i, False, True
    return -1, True, False


def stitch_ways_to_polygons(ways: Sequence[Sequence[GeoPoint]]) -> list[Polygon]:
    """Greedily chain ways sharing endpoints into loops.

    Each loop starts from the next unused way and grows at whichever end the
    first matching way touches, reversing that way when needed. A loop stops
    growing when nothing else attaches or its ends meet. Ways that attach to
    nothing come out as their own (possibly open) loop. Loops with fewer than
    3 points are dropped.
    """
    pool = [list(w) for w in ways if w]
    loops: list[Polygon] = []

    while pool:
        loop = pool.pop(0)
        closed = False
        while not closed and pool:
            idx, attach_to_tail, reverse = _find_match(loop, pool)
            if idx == -1:
                closed = True
            else:
                segment = pool.pop(idx)
                if reverse:
                    segment.reverse()
                if attach_to_tail:
                    loop.extend(segment[1:])
                else:
                    loop[:0] = segment[:-1]

            if len(loop) > 2 and same_point(loop[0], loop[-1]):
                closed = True

        if len(loop) >= 3:
            loops.append(loop)
        else:
            logger.debug("Dropping degenerate loop with %d points", len(loop))

    return loops
