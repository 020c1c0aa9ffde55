"""Fog mask contract: what a renderer must do with the revealed trail.

A renderer fills the viewport with fog, then clears each stroke returned by
split_trail(): consecutive points of a stroke are joined by a corridor of
FOG_BRUSH_RADIUS_PX half-width, and a single-point stroke is cleared as a dot.
Points more than DISCONTINUITY_M apart are never joined, so GPS gaps and
unrelated runs do not clear the fog between them.
"""

from typing import Iterable, Protocol

from geo import haversine_meters
from schemas import GeoPoint

DISCONTINUITY_M = 50.0
FOG_BRUSH_RADIUS_PX = 20
FOG_OPACITY = 0.72


def split_trail(points: Iterable[GeoPoint], max_gap_m: float = DISCONTINUITY_M) -> list[list[GeoPoint]]:
    """Split an ordered trail into contiguous strokes at gaps wider than max_gap_m."""
    strokes: list[list[GeoPoint]] = []
    prev = None
    for p in points:
        if prev is None or haversine_meters(prev, p) > max_gap_m:
            strokes.append([p])
        else:
            strokes[-1].append(p)
        prev = p
    return strokes


class Viewport(Protocol):
    def project(self, lat: float, lng: float) -> tuple[float, float]:
        """Map a coordinate to container pixels."""


class FogRenderer(Protocol):
    def render(self, strokes: list[list[GeoPoint]], viewport: Viewport,
               radius_px: float = FOG_BRUSH_RADIUS_PX, opacity: float = FOG_OPACITY) -> None:
        """Paint fog over the viewport and clear every stroke."""
