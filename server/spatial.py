"""Fixed-size degree grid for windowed queries over a point set."""

import math
from collections import defaultdict
from typing import Any, Iterable

from schemas import Bounds, GeoPoint

DEFAULT_CELL_SIZE_DEG = 0.005  # ~550 m


class SpatialGrid:
    """Buckets points by floor(lat / cell_size), floor(lng / cell_size).

    Each entry is the point itself unless add() is given an item to store in
    its place (e.g. the point's index in an external list). There is no
    removal; rebuild the grid when the source set changes.
    """

    def __init__(self, cell_size: float = DEFAULT_CELL_SIZE_DEG):
        if cell_size <= 0:
            raise ValueError("cell_size must be positive")
        self.cell_size = cell_size
        self._cells: dict[tuple[int, int], list[Any]] = defaultdict(list)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._cells.values())

    def _cell(self, lat: float, lng: float) -> tuple[int, int]:
        return math.floor(lat / self.cell_size), math.floor(lng / self.cell_size)

    def clear(self):
        self._cells.clear()

    def add(self, point: GeoPoint, item: Any = None):
        self._cells[self._cell(point.lat, point.lng)].append(point if item is None else item)

    def load(self, points: Iterable[GeoPoint]):
        for p in points:
            self.add(p)

    def query(self, bounds: Bounds) -> list[Any]:
        """Entries in every bucket overlapping bounds, padded by one cell each way."""
        min_x, min_y = self._cell(bounds.minlat, bounds.minlon)
        max_x, max_y = self._cell(bounds.maxlat, bounds.maxlon)

        result: list[Any] = []
        for x in range(min_x - 1, max_x + 2):
            for y in range(min_y - 1, max_y + 2):
                bucket = self._cells.get((x, y))
                if bucket:
                    result.extend(bucket)
        return result
