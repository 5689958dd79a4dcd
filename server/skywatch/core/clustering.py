"""Marker clustering. Groups pins that sit close together on screen.

Clustering is a two-pass algorithm, deterministic for a given pin order:

1. Connected components under the ``max_cluster_radius_px`` relation. This is
   single linkage: a chain of close pins forms one component even when its
   ends are far apart.
2. Placement, component by component in discovery order. Small components,
   components holding a member of an expanded cluster, and components whose
   centroid would land within ``min_cluster_separation_px`` of a cluster
   accepted earlier in the pass are rendered as individual pins.

Distances are measured by a caller-supplied function over anything with
``lat``/``lng`` (pins and cluster centroids alike), normally the screen-space
metric of the current viewport.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

import structlog

from skywatch.config import ClusteringConfig
from skywatch.core.models import Cluster, ClusterResult, Pin, ScreenBounds, ScreenPoint
from skywatch.core.stats import MapStats
from skywatch.viewport.mercator import ScreenMetric

if TYPE_CHECKING:
    from skywatch.core.store import PinStore
    from skywatch.viewport.base import Viewport

log = structlog.get_logger()

DistanceFn = Callable[[object, object], float]


def connected_components(pins: Sequence[Pin], distance_fn: DistanceFn, radius: float) -> list[list[Pin]]:
    """Partition pins into maximal groups linked by hops of at most ``radius``."""
    visited = [False] * len(pins)
    components: list[list[Pin]] = []

    for start in range(len(pins)):
        if visited[start]:
            continue
        visited[start] = True
        component = [pins[start]]
        frontier = deque([start])
        while frontier:
            current = pins[frontier.popleft()]
            for j, candidate in enumerate(pins):
                if not visited[j] and distance_fn(current, candidate) <= radius:
                    visited[j] = True
                    component.append(candidate)
                    frontier.append(j)
        components.append(component)

    return components


def in_clustering_range(zoom: int, config: ClusteringConfig) -> bool:
    return config.min_zoom <= zoom <= config.max_zoom


def compute_clusters(
    pins: Iterable[Pin],
    distance_fn: DistanceFn,
    config: ClusteringConfig | None = None,
    *,
    zoom: int | None = None,
    expanded_member_ids: frozenset[str] | set[str] = frozenset(),
    project: Callable[[float, float], ScreenPoint] | None = None,
) -> ClusterResult:
    """Split ``pins`` into clusters and individually rendered pins.

    ``zoom`` outside the configured range disables grouping entirely.
    ``project`` is only used to fill in each cluster's padded screen bounds.
    """
    config = config or ClusteringConfig()
    pins = list(pins)
    if not pins:
        return ClusterResult(zoom=zoom)
    if zoom is not None and not in_clustering_range(zoom, config):
        return ClusterResult(singles=tuple(pins), zoom=zoom)

    components = connected_components(pins, distance_fn, config.max_cluster_radius_px)

    clusters: list[Cluster] = []
    singles: list[Pin] = []
    claimed: set[str] = set()

    def place_individually(members: Iterable[Pin]) -> None:
        for pin in members:
            if pin.id not in claimed:
                claimed.add(pin.id)
                singles.append(pin)

    for component in components:
        if len(component) < config.min_pins_for_cluster:
            place_individually(component)
            continue
        if any(p.id in claimed for p in component):
            place_individually(component)
            continue
        if any(p.id in expanded_member_ids for p in component):
            place_individually(component)
            continue

        screen_bounds = None
        if project is not None:
            screen_bounds = ScreenBounds.around(
                [project(p.lat, p.lng) for p in component], config.bounds_padding_px,
            )
        candidate = Cluster.from_members(component, screen_bounds)

        if any(distance_fn(candidate, accepted) < config.min_cluster_separation_px
               for accepted in clusters):
            log.debug("cluster_rejected_too_close", cluster=candidate.id, size=candidate.count)
            place_individually(component)
            continue

        clusters.append(candidate)
        claimed.update(candidate.member_ids)

    leftovers = [p for p in pins if p.id not in claimed]
    if leftovers:
        log.warning("clustering_unplaced_pins", count=len(leftovers))
        place_individually(leftovers)

    return ClusterResult(clusters=tuple(clusters), singles=tuple(singles), zoom=zoom)


class ClusterEngine:
    """Re-runs clustering for one map view whenever its inputs change.

    Zoom events are debounced: each event cancels the pending pass and
    schedules a new one, so only the last event of a burst recomputes.
    Pin-set changes and ``force_recluster`` run immediately.
    """

    def __init__(
        self,
        store: PinStore,
        viewport: Viewport,
        config: ClusteringConfig | None = None,
        stats: MapStats | None = None,
    ) -> None:
        self._store = store
        self._viewport = viewport
        self._config = config or ClusteringConfig()
        self._stats = stats or MapStats()
        self._result = ClusterResult()
        # cluster id -> ids of the pins it held when expanded
        self._expanded: dict[str, frozenset[str]] = {}
        self._pending: asyncio.TimerHandle | None = None
        self._deferred = False
        self._last_zoom: int | None = None
        self._holding_expansions = False
        self._listeners: list[Callable[[ClusterResult], None]] = []

        store.on_change(self.force_recluster)
        viewport.on_zoom_change(self.handle_zoom_change)

    @property
    def config(self) -> ClusteringConfig:
        return self._config

    @property
    def result(self) -> ClusterResult:
        return self._result

    @property
    def expanded_clusters(self) -> frozenset[str]:
        return frozenset(self._expanded)

    @property
    def expanded_member_ids(self) -> frozenset[str]:
        ids: set[str] = set()
        for members in self._expanded.values():
            ids.update(members)
        return frozenset(ids)

    @property
    def is_clustering_active(self) -> bool:
        return self._viewport.is_ready() and in_clustering_range(self._viewport.get_zoom(), self._config)

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def is_deferred(self) -> bool:
        return self._deferred

    def on_result(self, callback: Callable[[ClusterResult], None]) -> None:
        self._listeners.append(callback)

    def is_expanded(self, cluster_id: str) -> bool:
        return cluster_id in self._expanded

    def mark_expanded(self, cluster: Cluster) -> bool:
        if cluster.id in self._expanded:
            return False
        self._expanded[cluster.id] = cluster.member_ids
        return True

    def clear_expanded_clusters(self) -> None:
        if self._expanded:
            log.debug("expanded_clusters_cleared", count=len(self._expanded))
        self._expanded.clear()

    @contextmanager
    def holding_expansions(self):
        """Keep expansion memory through zoom changes made inside the block."""
        previous = self._holding_expansions
        self._holding_expansions = True
        try:
            yield
        finally:
            self._holding_expansions = previous

    def handle_zoom_change(self, zoom: int) -> None:
        threshold = self._config.min_zoom + self._config.expansion_reset_offset
        previous = self._last_zoom
        self._last_zoom = zoom
        crossed = zoom < threshold and (previous is None or previous >= threshold)
        if crossed and not self._holding_expansions:
            self.clear_expanded_clusters()
        self.schedule_recluster()

    def schedule_recluster(self) -> None:
        """Debounced recompute. Without a running event loop, runs now."""
        self._cancel_pending()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.apply_clustering()
            return
        self._pending = loop.call_later(self._config.debounce_seconds, self._run_pending)

    def _run_pending(self) -> None:
        self._pending = None
        self.apply_clustering()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def force_recluster(self) -> ClusterResult | None:
        self._cancel_pending()
        return self.apply_clustering()

    def resume(self) -> ClusterResult | None:
        """Run a pass that was deferred while the viewport was not ready."""
        if not self._deferred:
            return None
        return self.apply_clustering()

    def apply_clustering(self) -> ClusterResult | None:
        if not self._viewport.is_ready():
            self._deferred = True
            self._stats.record_deferred()
            log.debug("clustering_deferred", pins=len(self._store))
            return None
        self._deferred = False

        started = time.perf_counter()
        zoom = self._viewport.get_zoom()
        if self._last_zoom is None:
            self._last_zoom = zoom
        metric = ScreenMetric(self._viewport)
        result = compute_clusters(
            self._store.pins,
            metric,
            self._config,
            zoom=zoom,
            expanded_member_ids=self.expanded_member_ids,
            project=metric.project,
        )
        self._result = result
        duration_ms = (time.perf_counter() - started) * 1000

        self._stats.record_pass(duration_ms, len(result.clusters), len(result.singles), zoom)
        log.debug("clustering_pass", zoom=zoom, clusters=len(result.clusters),
                  singles=len(result.singles), duration_ms=round(duration_ms, 3))

        for callback in list(self._listeners):
            callback(result)
        return result

    def close(self) -> None:
        self._cancel_pending()
