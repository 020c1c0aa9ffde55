"""Pydantic value types shared by the engine: points, districts, runs, OSM elements."""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# ---------------------------------------------------------------------------
# Geometry values
# ---------------------------------------------------------------------------

class GeoPoint(BaseModel):
    """An immutable WGS-84 position, optionally stamped with epoch milliseconds."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    t: Optional[int] = None


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    minlat: float
    minlon: float
    maxlat: float
    maxlon: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.minlat <= lat <= self.maxlat and self.minlon <= lng <= self.maxlon


# A polygon is an ordered ring of points treated as cyclic: the last point
# need not repeat the first. Rings with fewer than 3 points are never kept.
Polygon = list[GeoPoint]


class District(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    bounds: Bounds
    polygons: list[Polygon]

    @property
    def key(self) -> str:
        """String id used by the unlocked set."""
        return str(self.id)


class VoronoiSeed(BaseModel):
    lat: float
    lon: float
    id: int


class VoronoiCell(BaseModel):
    id: int
    polygon: Polygon


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

class RunSummary(BaseModel):
    """A completed run. Serialized with the camelCase keys of the export format."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    started_at: int = Field(alias="startedAt")
    ended_at: int = Field(alias="endedAt")
    distance_meters: float = Field(alias="distanceMeters")
    points: list[GeoPoint]


class PersistedState(BaseModel):
    revealed: list[GeoPoint] = Field(default_factory=list)
    runs: list[RunSummary] = Field(default_factory=list)
    unlocked: list[str] = Field(default_factory=list)
    aux: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Raw Overpass payload (tagged union over node / way / relation)
# ---------------------------------------------------------------------------

class OsmLatLon(BaseModel):
    lat: float
    lon: float


class OsmBounds(BaseModel):
    minlat: float
    minlon: float
    maxlat: float
    maxlon: float


class OsmMember(BaseModel):
    type: str = "way"
    ref: Optional[int] = None
    role: str = ""
    # Overpass emits null for member nodes outside the query area
    geometry: list[Optional[OsmLatLon]] = Field(default_factory=list)


class _OsmBase(BaseModel):
    id: int
    tags: dict[str, Any] = Field(default_factory=dict)
    bounds: Optional[OsmBounds] = None

    @property
    def name(self) -> str:
        for key in ("name", "name:en"):
            value = self.tags.get(key)
            if isinstance(value, str) and value:
                return value
        return "Unknown District"


class OsmNode(_OsmBase):
    type: Literal["node"]
    lat: Optional[float] = None
    lon: Optional[float] = None


class OsmWay(_OsmBase):
    type: Literal["way"]
    geometry: list[Optional[OsmLatLon]] = Field(default_factory=list)
    # Node ids, used when the payload carries vertices as separate nodes
    nodes: list[int] = Field(default_factory=list)


class OsmRelation(_OsmBase):
    type: Literal["relation"]
    members: list[OsmMember] = Field(default_factory=list)


OsmElement = Annotated[Union[OsmNode, OsmWay, OsmRelation], Field(discriminator="type")]

osm_element_adapter = TypeAdapter(OsmElement)
