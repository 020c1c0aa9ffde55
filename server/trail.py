"""The cumulative revealed trail and its spatial index."""

from typing import Iterable

from geo import DEFAULT_CELL_PRECISION, cell_key
from schemas import Bounds, GeoPoint
from spatial import DEFAULT_CELL_SIZE_DEG, SpatialGrid


class RevealedTrail:
    """Every accepted point across all runs, in acceptance order.

    Append-only: nothing is pruned or deduplicated. The only ways to shrink it
    are clear() (explicit reset) and replace() (import of an export document).
    """

    def __init__(self, points: Iterable[GeoPoint] = (), cell_size: float = DEFAULT_CELL_SIZE_DEG):
        self.points: list[GeoPoint] = []
        self.grid = SpatialGrid(cell_size)
        self.replace(points)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def append(self, point: GeoPoint):
        self.grid.add(point, len(self.points))
        self.points.append(point)

    def replace(self, points: Iterable[GeoPoint]):
        self.points = list(points)
        self.grid.clear()
        for i, p in enumerate(self.points):
            self.grid.add(p, i)

    def clear(self):
        self.replace([])

    def explored_cells(self, precision: int = DEFAULT_CELL_PRECISION) -> int:
        return len({cell_key(p, precision) for p in self.points})

    def window(self, bounds: Bounds) -> list[GeoPoint]:
        """Trail points near bounds, in trail order.

        The grid holds trail indices, so the cost follows the number of hits
        rather than the length of the trail.
        """
        return [self.points[i] for i in sorted(self.grid.query(bounds))]
