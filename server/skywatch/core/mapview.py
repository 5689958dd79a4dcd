"""Map view: one pin store, engine, selection and renderer per map.

This is the host side of the clustering core: it feeds pin snapshots from a
PinSource into the store, forwards viewport events, and turns marker clicks
into selections and camera moves. It depends on the PinSource, Viewport and
RenderSink protocols, not concrete implementations.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from skywatch.config import AppConfig
from skywatch.core.clustering import ClusterEngine
from skywatch.core.models import Cluster, Pin
from skywatch.core.selection import SelectionController, SelectionState
from skywatch.core.stats import MapStats
from skywatch.core.store import PinStore
from skywatch.render.adapter import RenderAdapter
from skywatch.sources.base import PinSourceError

if TYPE_CHECKING:
    from skywatch.render.base import RenderSink
    from skywatch.sources.base import PinSource
    from skywatch.viewport.base import Viewport

log = structlog.get_logger()


class MapView:
    """Owns the clustering state of one map."""

    def __init__(
        self,
        source: PinSource,
        viewport: Viewport,
        sink: RenderSink,
        config: AppConfig | None = None,
        stats: MapStats | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.stats = stats or MapStats()
        self.source = source
        self.viewport = viewport
        self.sink = sink
        self.store = PinStore()
        self.engine = ClusterEngine(self.store, viewport, self.config.clustering, stats=self.stats)
        self.selection = SelectionController(
            self.store, self.engine, viewport, self.config.selection, stats=self.stats,
        )
        self.renderer = RenderAdapter(
            sink,
            self.selection,
            fade_opacity=self.config.selection.fade_opacity,
            expand_on_click=self.config.selection.expand_on_click,
        )
        self.renderer.bind(self.engine)

    # -- pins ----------------------------------------------------------------

    async def load_pins(self) -> int:
        """Replace the pin set with a fresh snapshot from the source."""
        pins = await self.source.fetch_pins()
        self.store.replace(pins)
        self.selection.reconcile()
        self.stats.record_load(len(self.store))
        log.info("pins_loaded", count=len(self.store))
        return len(self.store)

    async def refresh(self) -> int:
        self.source.clear_cache()
        return await self.load_pins()

    async def run_refresh_loop(self, interval_seconds: float) -> None:
        """Reload pins periodically. Runs as a background task."""
        log.info("refresh_loop_started", interval_seconds=interval_seconds)
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh()
            except PinSourceError:
                self.stats.record_fetch_error()
                log.error("pin_fetch_failed", exc_info=True)

    def add_pin(self, pin: Pin) -> bool:
        """Add or update one pin. Returns True if it was new."""
        is_new = self.store.upsert(pin)
        self.selection.reconcile()
        return is_new

    def remove_pin(self, pin_id: str) -> bool:
        removed = self.store.remove(pin_id)
        if removed:
            self.selection.forget_pin(pin_id)
        return removed

    # -- viewport events -----------------------------------------------------

    def set_zoom(self, zoom: int) -> None:
        self.viewport.set_zoom(zoom)

    def set_center(self, lat: float, lng: float) -> None:
        self.viewport.set_center(lat, lng)
        self.engine.schedule_recluster()

    def fly_to_location(self, lat: float, lng: float, zoom: int | None = None) -> None:
        self.viewport.fly_to(lat, lng, zoom)

    def fly_to_pin(self, pin_id: str) -> SelectionState:
        """Zoom in on a pin and select it, keeping any selected cluster."""
        pin = self.store.get(pin_id)
        if pin is None:
            return self.selection.clear_selection()

        cfg = self.config.selection
        zoom = self.viewport.get_zoom()
        target = min(max(zoom + cfg.fly_to_zoom_step, cfg.fly_to_min_zoom), cfg.fly_to_max_zoom)
        self.viewport.fly_to(pin.lat, pin.lng, target)
        return self.selection.select_pin(pin, keep_cluster=self.selection.has_selected_cluster())

    # -- interaction ---------------------------------------------------------

    def click(self, marker_id: str) -> SelectionState | None:
        """Handle a click on a drawn marker. Unknown ids return None."""
        entity = self.renderer.entity(marker_id)
        if isinstance(entity, Pin):
            return self.fly_to_pin(entity.id)
        return self.renderer.click(marker_id)

    def select(self, pin_id: str | None = None, cluster_id: str | None = None,
               keep_cluster: bool = False) -> SelectionState:
        if pin_id:
            return self.selection.select_pin(pin_id, keep_cluster=keep_cluster)
        if cluster_id:
            return self.selection.select_cluster(cluster_id)
        return self.selection.clear_selection()

    def expand_cluster(self, cluster: Cluster | str) -> bool:
        return self.selection.expand_cluster(cluster)

    def snapshot(self) -> dict:
        lat, lng = self.viewport.get_center()
        return {
            "zoom": self.viewport.get_zoom(),
            "center": [lat, lng],
            "clustering_active": self.engine.is_clustering_active,
            "pins": len(self.store),
            "markers": [m.to_dict() for m in self.renderer.markers],
            "selection": self.selection.state.to_dict(),
            "expanded_clusters": sorted(self.engine.expanded_clusters),
        }

    async def close(self) -> None:
        self.engine.close()
        await self.source.aclose()
