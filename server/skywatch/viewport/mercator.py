"""Web Mercator viewport.

Pixel coordinates follow the slippy-map convention: the whole world is a
square of ``tile_size * 2**zoom`` pixels, and screen coordinates are relative
to the top-left corner of a ``width`` x ``height`` container centred on the
current map centre.
"""

from __future__ import annotations

import math
from typing import Callable

import structlog

from skywatch.core.models import LatLngBounds, ScreenPoint

log = structlog.get_logger()

MERCATOR_LAT_BOUND = 85.05112878


class MercatorViewport:
    """In-process Viewport with integer zoom levels."""

    def __init__(
        self,
        center: tuple[float, float] = (0.0, 0.0),
        zoom: int = 1,
        width: int = 1280,
        height: int = 800,
        min_zoom: int = 1,
        max_zoom: int = 18,
        tile_size: int = 256,
    ) -> None:
        self._min_zoom = min_zoom
        self._max_zoom = max_zoom
        self._zoom = self._clamp_zoom(zoom)
        self._center = (float(center[0]), float(center[1]))
        self._width = width
        self._height = height
        self._tile_size = tile_size
        self._zoom_listeners: list[Callable[[int], None]] = []

    def _clamp_zoom(self, zoom: float) -> int:
        return int(max(self._min_zoom, min(self._max_zoom, int(zoom))))

    def _world_size(self, zoom: float) -> float:
        return float(self._tile_size * (2.0 ** zoom))

    def _to_world(self, lat: float, lng: float, zoom: float) -> tuple[float, float]:
        lat = max(min(lat, MERCATOR_LAT_BOUND), -MERCATOR_LAT_BOUND)
        world_size = self._world_size(zoom)
        x = (lng + 180.0) / 360.0 * world_size
        sin_lat = math.sin(math.radians(lat))
        y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * world_size
        return x, y

    def _from_world(self, x: float, y: float, zoom: float) -> tuple[float, float]:
        world_size = self._world_size(zoom)
        lng = x / world_size * 360.0 - 180.0
        n = math.pi - 2.0 * math.pi * y / world_size
        lat = math.degrees(math.atan(math.sinh(n)))
        return lat, lng

    # -- Viewport protocol -------------------------------------------------

    def is_ready(self) -> bool:
        return self._width > 0 and self._height > 0

    def get_zoom(self) -> int:
        return self._zoom

    def get_center(self) -> tuple[float, float]:
        return self._center

    @property
    def size(self) -> tuple[int, int]:
        return self._width, self._height

    def project_to_screen(self, lat: float, lng: float) -> ScreenPoint:
        cx, cy = self._to_world(self._center[0], self._center[1], self._zoom)
        x, y = self._to_world(lat, lng, self._zoom)
        return ScreenPoint(x - cx + self._width / 2.0, y - cy + self._height / 2.0)

    def unproject(self, x: float, y: float) -> tuple[float, float]:
        """Screen point back to (lat, lng) at the current zoom."""
        cx, cy = self._to_world(self._center[0], self._center[1], self._zoom)
        return self._from_world(x - self._width / 2.0 + cx, y - self._height / 2.0 + cy, self._zoom)

    def get_bounds(self) -> LatLngBounds:
        north, west = self.unproject(0, 0)
        south, east = self.unproject(self._width, self._height)
        return LatLngBounds(south=south, west=west, north=north, east=east)

    def on_zoom_change(self, callback: Callable[[int], None]) -> None:
        self._zoom_listeners.append(callback)

    def set_zoom(self, zoom: float) -> None:
        new_zoom = self._clamp_zoom(zoom)
        if new_zoom == self._zoom:
            return
        old_zoom = self._zoom
        self._zoom = new_zoom
        log.debug("viewport_zoom_changed", old=old_zoom, new=new_zoom)
        for callback in list(self._zoom_listeners):
            callback(new_zoom)

    def set_center(self, lat: float, lng: float) -> None:
        self._center = (float(lat), float(lng))

    def resize(self, width: int, height: int) -> None:
        self._width = width
        self._height = height

    def fly_to(self, lat: float, lng: float, zoom: int | None = None) -> None:
        # No animation in-process; the camera jumps to the target.
        self.set_center(lat, lng)
        if zoom is not None:
            self.set_zoom(zoom)

    def bounds_zoom(self, bounds: LatLngBounds, padding_px: float = 0.0,
                    max_zoom: int | None = None) -> int:
        """Largest zoom at which ``bounds`` fits inside the padded container."""
        top = self._max_zoom if max_zoom is None else min(max_zoom, self._max_zoom)
        avail_w = max(self._width - 2 * padding_px, 1.0)
        avail_h = max(self._height - 2 * padding_px, 1.0)
        for zoom in range(top, self._min_zoom - 1, -1):
            x1, y1 = self._to_world(bounds.north, bounds.west, zoom)
            x2, y2 = self._to_world(bounds.south, bounds.east, zoom)
            if abs(x2 - x1) <= avail_w and abs(y2 - y1) <= avail_h:
                return zoom
        return self._min_zoom

    def fit_to_bounds(self, bounds: LatLngBounds, padding_px: float = 0.0,
                      max_zoom: int | None = None) -> None:
        zoom = self.bounds_zoom(bounds, padding_px, max_zoom)
        lat, lng = bounds.center
        log.debug("viewport_fit_bounds", bounds=bounds.to_dict(), zoom=zoom)
        self.set_center(lat, lng)
        self.set_zoom(zoom)


class ScreenMetric:
    """Pixel distance between anything with ``lat``/``lng``.

    Projections are memoised, so build a fresh metric for every clustering
    pass: the cache is only valid while the viewport does not move.
    """

    def __init__(self, viewport) -> None:
        self._viewport = viewport
        self._cache: dict[tuple[float, float], ScreenPoint] = {}

    def project(self, lat: float, lng: float) -> ScreenPoint:
        key = (lat, lng)
        point = self._cache.get(key)
        if point is None:
            point = self._viewport.project_to_screen(lat, lng)
            self._cache[key] = point
        return point

    def __call__(self, a, b) -> float:
        pa = self.project(a.lat, a.lng)
        pb = self.project(b.lat, b.lng)
        return math.hypot(pa.x - pb.x, pa.y - pb.y)
