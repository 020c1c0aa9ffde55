"""District boundaries: Overpass fetching, payload normalization, and the live district set.

Normalization pipeline for a raw Overpass payload:
1. Validate each element against the node / way / relation union (bad elements are dropped)
2. Relations: stitch outer-way geometries into loops (raw ways as fallback)
3. Ways with inline geometry or resolvable node ids become single-polygon districts
4. Bare nodes are tessellated together into Voronoi cells
"""

import logging
import os
from typing import Any, Iterable, Optional

import requests
from pydantic import ValidationError

from geo import haversine_m, polygon_bounds
from schemas import (
    Bounds,
    District,
    GeoPoint,
    OsmLatLon,
    OsmNode,
    OsmRelation,
    OsmWay,
    VoronoiSeed,
    osm_element_adapter,
)
from stitching import stitch_ways_to_polygons
from voronoi import compute_voronoi

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

OVERPASS_URL = os.environ.get("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
REQUEST_TIMEOUT_S = 30
QUERY_OFFSET_DEG = 0.18            # ~20 km search box around the user
REFETCH_DISTANCE_M = 5000.0        # replace the district set beyond this distance
USER_AGENT = "FogWalk/1.0"


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------

def build_overpass_query(lat: float, lon: float, offset: float = QUERY_OFFSET_DEG) -> str:
    """Overpass QL for admin level 9/10 boundaries and named suburb-like places."""
    south, west, north, east = lat - offset, lon - offset, lat + offset, lon + offset
    bbox = f"{south},{west},{north},{east}"
    return (
        "[out:json][timeout:25];\n"
        "(\n"
        f'  rel({bbox})["boundary"="administrative"]["admin_level"~"^(9|10)$"];\n'
        f'  way({bbox})["place"~"^(suburb|neighbourhood|quarter)$"]["name"];\n'
        f'  rel({bbox})["place"~"^(suburb|neighbourhood|quarter)$"]["name"];\n'
        f'  node({bbox})["place"~"^(suburb|neighbourhood|quarter)$"]["name"];\n'
        ");\n"
        "out geom;"
    )


def district_cache_key(lat: float, lon: float) -> str:
    """Cache key rounded to ~1 km so small movements reuse the same fetch."""
    return f"districts_{round(lat, 2)}_{round(lon, 2)}"


def fetch_boundary_payload(lat: float, lon: float) -> Optional[list[dict]]:
    """POST the boundary query to Overpass and return its `elements`, or None on failure."""
    try:
        resp = requests.post(
            OVERPASS_URL,
            data={"data": build_overpass_query(lat, lon)},
            headers={"User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT_S,
        )
    except requests.RequestException as e:
        logger.warning("Overpass request failed: %s", e)
        return None

    if resp.status_code != 200:
        logger.warning("Overpass returned HTTP %d", resp.status_code)
        return None

    try:
        data = resp.json()
    except ValueError as e:
        logger.warning("Overpass returned invalid JSON: %s", e)
        return None

    elements = data.get("elements") if isinstance(data, dict) else None
    if not isinstance(elements, list):
        logger.warning("Overpass response has no element list")
        return None

    logger.info("Fetched %d boundary elements around (%.4f, %.4f)", len(elements), lat, lon)
    return elements


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _points(geometry: Iterable[Optional[OsmLatLon]]) -> list[GeoPoint]:
    return [GeoPoint(lat=g.lat, lng=g.lon) for g in geometry if g is not None]


def _way_points(way: OsmWay, vertices: dict[int, GeoPoint]) -> list[GeoPoint]:
    """Inline geometry when present, otherwise the way's node ids resolved against the payload."""
    if way.geometry:
        return _points(way.geometry)
    return [vertices[n] for n in way.nodes if n in vertices]


def _bounds_for(element, polygons: list[list[GeoPoint]]) -> Optional[Bounds]:
    if element.bounds is not None:
        b = element.bounds
        return Bounds(minlat=b.minlat, minlon=b.minlon, maxlat=b.maxlat, maxlon=b.maxlon)
    return polygon_bounds(polygons)


def _relation_polygons(
    rel: OsmRelation,
    ways: dict[int, OsmWay],
    vertices: dict[int, GeoPoint],
) -> list[list[GeoPoint]]:
    outer = []
    for m in rel.members:
        if m.role != "outer" or m.type != "way":
            continue
        if m.geometry:
            outer.append(_points(m.geometry))
        elif m.ref in ways:
            # `out body; >; out skel` payloads: members only carry a ref
            outer.append(_way_points(ways[m.ref], vertices))
    outer = [w for w in outer if w]
    polygons = stitch_ways_to_polygons(outer)
    if not polygons:
        polygons = [w for w in outer if len(w) >= 3]
    return polygons


def parse_elements(raw_elements: Iterable[Any]) -> list:
    """Validate raw elements against the node / way / relation union, dropping bad ones."""
    parsed = []
    for raw in raw_elements:
        try:
            parsed.append(osm_element_adapter.validate_python(raw))
        except ValidationError as e:
            logger.debug("Dropping malformed element: %s", e.errors()[:1])
    return parsed


def _make_district(element_type: str, element_id: int, **fields) -> Optional[District]:
    try:
        return District(id=element_id, **fields)
    except ValidationError as e:
        logger.debug("Dropping %s/%d: %s", element_type, element_id, e.errors()[:1])
        return None


def normalize_districts(raw_elements: Optional[Iterable[Any]]) -> list[District]:
    """Turn a mixed Overpass payload into a uniform list of districts.

    Both `out geom` payloads (inline geometry) and `out body; >; out skel`
    payloads (member refs and way node ids) are accepted. Ways that only serve
    as relation members and nodes that only serve as vertices or members are
    consumed by their parents rather than becoming districts of their own.
    """
    if not raw_elements:
        return []

    elements = parse_elements(raw_elements)

    ways: dict[int, OsmWay] = {}
    vertices: dict[int, GeoPoint] = {}
    consumed_ways: set[int] = set()
    consumed_nodes: set[int] = set()
    for el in elements:
        if isinstance(el, OsmNode) and el.lat is not None and el.lon is not None:
            vertices[el.id] = GeoPoint(lat=el.lat, lng=el.lon)
        elif isinstance(el, OsmWay):
            ways[el.id] = el
            consumed_nodes.update(el.nodes)
        elif isinstance(el, OsmRelation):
            for m in el.members:
                if m.ref is None:
                    continue
                if m.type == "way":
                    consumed_ways.add(m.ref)
                elif m.type == "node":
                    consumed_nodes.add(m.ref)

    districts: list[District] = []
    seeds: list[VoronoiSeed] = []
    seed_names: dict[int, str] = {}

    for el in elements:
        if isinstance(el, OsmNode):
            if el.id in vertices and el.id not in consumed_nodes:
                seeds.append(VoronoiSeed(lat=el.lat, lon=el.lon, id=el.id))
                seed_names[el.id] = el.name
            continue

        if isinstance(el, OsmRelation):
            polygons = _relation_polygons(el, ways, vertices)
        elif isinstance(el, OsmWay):
            if el.id in consumed_ways:
                continue
            pts = _way_points(el, vertices)
            polygons = [pts] if len(pts) >= 3 else []
        else:
            continue

        bounds = _bounds_for(el, polygons)
        if not polygons or bounds is None:
            logger.debug("Element %s/%d has no usable geometry", el.type, el.id)
            continue
        district = _make_district(el.type, el.id, name=el.name, bounds=bounds, polygons=polygons)
        if district is not None:
            districts.append(district)

    for cell in compute_voronoi(seeds):
        district = _make_district(
            "node", cell.id,
            name=seed_names.get(cell.id, "Unknown District"),
            bounds=polygon_bounds([cell.polygon]),
            polygons=[cell.polygon],
        )
        if district is not None:
            districts.append(district)

    logger.info("Normalized %d elements into %d districts", len(elements), len(districts))
    return districts


def fetch_districts(lat: float, lon: float) -> Optional[list[District]]:
    """Fetch and normalize the districts around a position. Blocking; None on failure."""
    payload = fetch_boundary_payload(lat, lon)
    if payload is None:
        return None
    return normalize_districts(payload)


# ---------------------------------------------------------------------------
# Live district set
# ---------------------------------------------------------------------------

class DistrictState:
    """The district set for the current map area.

    A fetch is started with begin_fetch() and finished with complete_fetch() or
    fail_fetch(). The set is only ever replaced whole, and a completion whose key
    is no longer the pending one is discarded.
    """

    def __init__(self, refetch_distance_m: float = REFETCH_DISTANCE_M):
        self.refetch_distance_m = refetch_distance_m
        self.districts: list[District] = []
        self.last_fetch_location: Optional[tuple[float, float]] = None
        self.pending_key: Optional[str] = None
        self.is_loading = False
        self.error: Optional[str] = None

    def needs_fetch(self, lat: float, lon: float) -> bool:
        if self.is_loading and self.pending_key == district_cache_key(lat, lon):
            return False
        if self.last_fetch_location is None:
            return True
        last_lat, last_lon = self.last_fetch_location
        return haversine_m(last_lat, last_lon, lat, lon) > self.refetch_distance_m

    def begin_fetch(self, lat: float, lon: float) -> str:
        key = district_cache_key(lat, lon)
        self.pending_key = key
        self.is_loading = True
        return key

    def complete_fetch(self, key: str, districts: list[District], location: tuple[float, float]) -> bool:
        if key != self.pending_key:
            logger.info("Discarding superseded district fetch %s", key)
            return False
        self.districts = list(districts)
        self.last_fetch_location = location
        self.pending_key = None
        self.is_loading = False
        self.error = None
        logger.info("District set replaced: %d districts (%s)", len(self.districts), key)
        return True

    def fail_fetch(self, key: str, error: str) -> bool:
        if key != self.pending_key:
            return False
        self.pending_key = None
        self.is_loading = False
        self.error = error
        logger.warning("District fetch %s failed, keeping %d stale districts: %s",
                       key, len(self.districts), error)
        return True

    def reset(self):
        self.districts = []
        self.last_fetch_location = None
        self.pending_key = None
        self.is_loading = False
        self.error = None
