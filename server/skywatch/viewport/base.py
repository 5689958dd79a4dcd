"""Viewport interface (port) used by the clustering core."""

from __future__ import annotations

from typing import Callable, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from skywatch.core.models import LatLngBounds, ScreenPoint


class Viewport(Protocol):
    """Port: the host map's camera and projection."""

    def is_ready(self) -> bool: ...

    def get_zoom(self) -> int: ...

    def get_center(self) -> tuple[float, float]: ...

    def project_to_screen(self, lat: float, lng: float) -> ScreenPoint: ...

    def on_zoom_change(self, callback: Callable[[int], None]) -> None: ...

    def set_zoom(self, zoom: int) -> None: ...

    def set_center(self, lat: float, lng: float) -> None: ...

    def fit_to_bounds(self, bounds: LatLngBounds, padding_px: float = 0.0,
                      max_zoom: int | None = None) -> None: ...

    def fly_to(self, lat: float, lng: float, zoom: int | None = None) -> None: ...
