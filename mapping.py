"""Grid <-> display coordinate transforms and marker hit-testing."""

import logging
from functools import lru_cache
from typing import Iterable, List, NamedTuple, Optional, Tuple

import numpy as np
import pyproj

from config import DEFAULT_REGION, DisplayRegion, GRID_EPSG, MARKER_OFFSET, MARKER_SIZE


def _check_canvas(canvas_width: float, canvas_height: float) -> None:
    if not (canvas_width > 0 and canvas_height > 0):
        raise ValueError(f"Canvas size must be positive, got {canvas_width}x{canvas_height}")


class GridCoordinateMapper:
    """Linear mapping between the display region and a canvas of a given size.

    Screen y grows downwards while northing grows upwards, so the y axis is
    flipped. The mapper keeps no state besides the region; callers pass the
    current canvas size on every call.
    """

    def __init__(self, region: DisplayRegion = DEFAULT_REGION):
        self.region = region

    def in_region(self, x, y) -> bool:
        return self.region.contains(x, y)

    def to_screen(self, x, y, canvas_width: float, canvas_height: float) -> Tuple[float, float]:
        _check_canvas(canvas_width, canvas_height)
        r = self.region
        screen_x = (x - r.left_x) * canvas_width / r.width
        screen_y = canvas_height - (y - r.bottom_y) * canvas_height / r.height
        return float(screen_x), float(screen_y)

    def to_screen_array(self, xs, ys, canvas_width: float, canvas_height: float) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized to_screen."""
        _check_canvas(canvas_width, canvas_height)
        r = self.region
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        screen_x = (xs - r.left_x) * canvas_width / r.width
        screen_y = canvas_height - (ys - r.bottom_y) * canvas_height / r.height
        return screen_x, screen_y

    def to_grid(self, screen_x, screen_y, canvas_width: float, canvas_height: float) -> Tuple[float, float]:
        """Inverse of to_screen."""
        _check_canvas(canvas_width, canvas_height)
        r = self.region
        x = r.left_x + screen_x * r.width / canvas_width
        y = r.bottom_y + (canvas_height - screen_y) * r.height / canvas_height
        return float(x), float(y)


@lru_cache(maxsize=1)
def _grid_to_wgs84() -> Optional[pyproj.Transformer]:
    try:
        return pyproj.Transformer.from_crs(
            pyproj.CRS.from_epsg(GRID_EPSG), pyproj.CRS.from_epsg(4326), always_xy=True
        )
    except pyproj.exceptions.ProjError:
        logging.warning("Unable to build EPSG:%d -> WGS84 transformer; lon/lat output disabled", GRID_EPSG)
        return None


def grid_to_lonlat(x, y) -> Optional[Tuple[float, float]]:
    """Convert a British National Grid easting/northing to WGS84 (lon, lat)."""
    tf = _grid_to_wgs84()
    if tf is None:
        return None
    lon, lat = tf.transform(float(x), float(y))
    if not (np.isfinite(lon) and np.isfinite(lat)):
        return None
    return float(lon), float(lat)


class Marker(NamedTuple):
    """Square drawn for one data point, anchored MARKER_OFFSET up-left of its mapped position.

    ``center`` uses the integer half size (``MARKER_SIZE // 2``), i.e. the
    mapped position plus 5 rather than the geometric 5.5. Picking distances
    are measured to this point.
    """

    point: object
    screen_x: float
    screen_y: float

    @property
    def left(self) -> float:
        return self.screen_x - MARKER_OFFSET

    @property
    def top(self) -> float:
        return self.screen_y - MARKER_OFFSET

    @property
    def right(self) -> float:
        return self.left + MARKER_SIZE

    @property
    def bottom(self) -> float:
        return self.top + MARKER_SIZE

    @property
    def center(self) -> Tuple[float, float]:
        return self.left + MARKER_SIZE // 2, self.top + MARKER_SIZE // 2

    def contains(self, qx: float, qy: float) -> bool:
        return self.left <= qx <= self.right and self.top <= qy <= self.bottom


class SpatialPicker:
    """Resolves a display position to the plotted data point under it.

    Among the markers containing the query, the one with the closest center
    wins; equal distances go to the earlier marker. Build a new picker when
    the dataset or the canvas size changes.
    """

    def __init__(self, markers: Iterable[Marker]):
        self._markers: List[Marker] = list(markers)
        n = len(self._markers)
        self._left = np.fromiter((m.left for m in self._markers), dtype=float, count=n)
        self._top = np.fromiter((m.top for m in self._markers), dtype=float, count=n)
        self._cx = self._left + MARKER_SIZE // 2
        self._cy = self._top + MARKER_SIZE // 2

    @classmethod
    def build(cls, points, mapper: GridCoordinateMapper, canvas_width: float, canvas_height: float) -> 'SpatialPicker':
        """Create markers for every valid (value >= 0), in-region point."""
        valid = [p for p in points if p.value >= 0 and mapper.in_region(p.x, p.y)]
        if not valid:
            _check_canvas(canvas_width, canvas_height)
            return cls([])
        sx, sy = mapper.to_screen_array(
            [p.x for p in valid], [p.y for p in valid], canvas_width, canvas_height
        )
        return cls(Marker(p, float(x), float(y)) for p, x, y in zip(valid, sx, sy))

    def __len__(self) -> int:
        return len(self._markers)

    @property
    def markers(self) -> List[Marker]:
        return list(self._markers)

    def pick_marker(self, query_x: float, query_y: float) -> Optional[Marker]:
        if not self._markers:
            return None
        inside = (
            (self._left <= query_x) & (query_x <= self._left + MARKER_SIZE)
            & (self._top <= query_y) & (query_y <= self._top + MARKER_SIZE)
        )
        if not inside.any():
            return None
        dist = np.hypot(self._cx - query_x, self._cy - query_y)
        dist = np.where(inside, dist, np.inf)
        # argmin returns the first index of the minimum
        return self._markers[int(np.argmin(dist))]

    def pick(self, query_x: float, query_y: float):
        """Data point under (query_x, query_y), or None."""
        marker = self.pick_marker(query_x, query_y)
        return marker.point if marker is not None else None
