"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import skywatch.main as main_module
from skywatch.config import AppConfig
from skywatch.core.mapview import MapView
from skywatch.core.models import Pin, ScreenPoint
from skywatch.render.memory_sink import InMemoryRenderSink
from skywatch.viewport.mercator import MercatorViewport


class StaticPinSource:
    """PinSource returning a fixed list; set ``error`` to make fetches fail."""

    def __init__(self, pins=()) -> None:
        self.pins = list(pins)
        self.error: Exception | None = None
        self.fetches = 0
        self.cache_clears = 0
        self.closed = False

    async def fetch_pins(self) -> list[Pin]:
        self.fetches += 1
        if self.error is not None:
            raise self.error
        return list(self.pins)

    def clear_cache(self) -> None:
        self.cache_clears += 1

    async def aclose(self) -> None:
        self.closed = True


class PlanarViewport:
    """Viewport where one degree is ``scale`` pixels at every zoom.

    ``fit_to_bounds`` and ``fly_to`` are recorded. A fit only changes the
    zoom when ``fit_zoom`` is set.
    """

    def __init__(self, zoom: int = 10, scale: float = 1000.0, ready: bool = True,
                 fit_zoom: int | None = None) -> None:
        self.zoom = zoom
        self.scale = scale
        self.ready = ready
        self.fit_zoom = fit_zoom
        self.center = (0.0, 0.0)
        self.fits: list[tuple] = []
        self.flights: list[tuple] = []
        self._listeners = []

    def is_ready(self) -> bool:
        return self.ready

    def get_zoom(self) -> int:
        return self.zoom

    def get_center(self) -> tuple[float, float]:
        return self.center

    def project_to_screen(self, lat: float, lng: float) -> ScreenPoint:
        return ScreenPoint(lng * self.scale, -lat * self.scale)

    def on_zoom_change(self, callback) -> None:
        self._listeners.append(callback)

    def set_zoom(self, zoom: int) -> None:
        if zoom == self.zoom:
            return
        self.zoom = zoom
        for callback in list(self._listeners):
            callback(zoom)

    def set_center(self, lat: float, lng: float) -> None:
        self.center = (lat, lng)

    def fit_to_bounds(self, bounds, padding_px: float = 0.0, max_zoom: int | None = None) -> None:
        self.fits.append((bounds, padding_px, max_zoom))
        self.center = bounds.center
        if self.fit_zoom is not None:
            self.set_zoom(self.fit_zoom)

    def fly_to(self, lat: float, lng: float, zoom: int | None = None) -> None:
        self.flights.append((lat, lng, zoom))
        self.center = (lat, lng)
        if zoom is not None:
            self.set_zoom(zoom)


def make_pin(pin_id: str, x_px: float = 0.0, y_px: float = 0.0, **kwargs) -> Pin:
    """Pin placed at (x_px, y_px) on a PlanarViewport with the default scale."""
    return Pin(id=pin_id, lat=-y_px / 1000.0, lng=x_px / 1000.0, **kwargs)


@pytest.fixture
def planar_viewport():
    return PlanarViewport()


@pytest.fixture
def planar_view():
    """MapView on a PlanarViewport with an empty static source."""
    config = AppConfig()
    config.logging.level = "warning"
    return MapView(
        source=StaticPinSource(),
        viewport=PlanarViewport(),
        sink=InMemoryRenderSink(keep_log=True),
        config=config,
    )


@pytest.fixture
def static_source():
    return StaticPinSource([
        Pin(id="drone-1", lat=42.6977, lng=23.3219, title="Drone 1"),
        Pin(id="drone-2", lat=42.6978, lng=23.3220, title="Drone 2"),
        Pin(id="drone-3", lat=42.6979, lng=23.3221, title="Drone 3"),
        Pin(id="radar-1", lat=42.9000, lng=23.9000, title="Radar North"),
    ])


@pytest.fixture(autouse=True)
def _init_server(static_source):
    """Initialize server singletons for every test, using a static pin source."""
    config = AppConfig()
    config.logging.level = "warning"
    config.source.refresh_interval_seconds = 0

    viewport = MercatorViewport(
        center=(config.viewport.center_lat, config.viewport.center_lng),
        zoom=config.viewport.zoom,
        width=config.viewport.width,
        height=config.viewport.height,
    )
    view = MapView(
        source=static_source,
        viewport=viewport,
        sink=InMemoryRenderSink(),
        config=config,
    )

    # Patch module-level singletons
    main_module._config = config
    main_module._map_view = view

    yield

    # Cleanup
    view.engine.close()
    main_module._config = None
    main_module._map_view = None


@pytest.fixture
async def client():
    from skywatch.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
