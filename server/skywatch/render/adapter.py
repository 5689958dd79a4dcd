"""Render adapter: turns clustering output and selection into markers.

One marker per engine-reported entity: cluster markers are keyed by cluster
id, pin markers by pin id. Every clustering pass clears the sink and redraws;
selection changes only touch decorations and opacity.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from skywatch.core.models import Cluster, ClusterBand, ClusterResult, Pin, PinStatus

if TYPE_CHECKING:
    from skywatch.core.clustering import ClusterEngine
    from skywatch.core.selection import SelectionController, SelectionState
    from skywatch.render.base import RenderSink

log = structlog.get_logger()

STATUS_COLORS = {
    PinStatus.ACTIVE: "#22c55e",
    PinStatus.WARNING: "#f59e0b",
    PinStatus.CRITICAL: "#ef4444",
    PinStatus.INACTIVE: "#3b82f6",
}

BAND_COLORS = {
    ClusterBand.LOW: "#3b82f6",
    ClusterBand.MEDIUM: "#f59e0b",
    ClusterBand.HIGH: "#ef4444",
}

BAND_SIZES = {
    ClusterBand.LOW: 40,
    ClusterBand.MEDIUM: 50,
    ClusterBand.HIGH: 60,
}

PIN_SIZE = 24


class MarkerKind(str, Enum):
    PIN = "pin"
    CLUSTER = "cluster"


@dataclass(frozen=True)
class MarkerIcon:
    color: str
    size: int
    label: str = ""
    category: str | None = None
    band: str | None = None
    pulsing: bool = False  # critical status ring
    selected: bool = False  # selection ring

    def to_dict(self) -> dict:
        return {
            "color": self.color,
            "size": self.size,
            "label": self.label,
            "category": self.category,
            "band": self.band,
            "pulsing": self.pulsing,
            "selected": self.selected,
        }


@dataclass(frozen=True)
class Marker:
    id: str
    kind: MarkerKind
    lat: float
    lng: float
    icon: MarkerIcon
    opacity: float = 1.0
    member_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "lat": self.lat,
            "lng": self.lng,
            "icon": self.icon.to_dict(),
            "opacity": self.opacity,
            "member_ids": list(self.member_ids),
        }


def pin_marker(pin: Pin, selected: bool = False) -> Marker:
    return Marker(
        id=pin.id,
        kind=MarkerKind.PIN,
        lat=pin.lat,
        lng=pin.lng,
        icon=MarkerIcon(
            color=STATUS_COLORS.get(pin.status, STATUS_COLORS[PinStatus.INACTIVE]),
            size=PIN_SIZE,
            label=pin.title,
            category=pin.category.value,
            pulsing=pin.status is PinStatus.CRITICAL,
            selected=selected,
        ),
    )


def cluster_marker(cluster: Cluster) -> Marker:
    band = cluster.band
    return Marker(
        id=cluster.id,
        kind=MarkerKind.CLUSTER,
        lat=cluster.centroid_lat,
        lng=cluster.centroid_lng,
        icon=MarkerIcon(
            color=BAND_COLORS[band],
            size=BAND_SIZES[band],
            label=str(cluster.count),
            band=band.value,
        ),
        member_ids=tuple(p.id for p in cluster.members),
    )


class RenderAdapter:
    """Keeps a RenderSink in sync with the engine and the selection."""

    def __init__(
        self,
        sink: RenderSink,
        selection: SelectionController,
        fade_opacity: float = 0.4,
        expand_on_click: bool = True,
    ) -> None:
        self._sink = sink
        self._selection = selection
        self._fade_opacity = fade_opacity
        self._expand_on_click = expand_on_click
        self._markers: dict[str, Marker] = {}
        self._entities: dict[str, Pin | Cluster] = {}
        self._hovered: str | None = None

    def bind(self, engine: ClusterEngine) -> None:
        engine.on_result(self.render)
        self._selection.on_change(self.apply_selection)
        self._selection.on_expand(self.show_expanded)

    @property
    def markers(self) -> list[Marker]:
        return list(self._markers.values())

    def entity(self, marker_id: str) -> Pin | Cluster | None:
        return self._entities.get(marker_id)

    def _add(self, marker: Marker, entity: Pin | Cluster) -> None:
        self._markers[marker.id] = marker
        self._entities[marker.id] = entity
        self._sink.add(marker)

    def render(self, result: ClusterResult) -> None:
        """Clear the sink and draw every cluster and single pin."""
        self._sink.clear()
        self._markers = {}
        self._entities = {}
        selected = self._selection.state.pin

        for cluster in result.clusters:
            self._add(cluster_marker(cluster), cluster)
        for pin in result.singles:
            self._add(pin_marker(pin, selected=selected is not None and pin.id == selected.id), pin)

        if self._hovered not in self._markers:
            self._hovered = None
        self._apply_opacity(self._selection.state)

    def show_expanded(self, cluster: Cluster) -> None:
        """Swap a cluster marker for one marker per member."""
        if self._markers.pop(cluster.id, None) is not None:
            self._entities.pop(cluster.id, None)
            self._sink.remove(cluster.id)
        for pin in cluster.members:
            if pin.id not in self._markers:
                self._add(pin_marker(pin), pin)
        self._apply_opacity(self._selection.state)

    def apply_selection(self, state: SelectionState) -> None:
        selected_id = state.pin.id if state.pin is not None else None
        for marker_id, marker in list(self._markers.items()):
            if marker.kind is not MarkerKind.PIN:
                continue
            is_selected = marker_id == selected_id
            if marker.icon.selected != is_selected:
                updated = replace(marker, icon=replace(marker.icon, selected=is_selected))
                self._markers[marker_id] = updated
                self._sink.update(updated)
        self._apply_opacity(state)

    def _apply_opacity(self, state: SelectionState) -> None:
        highlighted = state.highlighted_ids
        for marker_id, marker in list(self._markers.items()):
            if state.is_idle or marker_id in highlighted or marker_id == self._hovered:
                opacity = 1.0
            else:
                opacity = self._fade_opacity
            if marker.opacity != opacity:
                self._markers[marker_id] = replace(marker, opacity=opacity)
            self._sink.set_opacity(marker_id, opacity)

    def hover(self, marker_id: str | None) -> None:
        """Show a faded marker at full opacity while the pointer is over it."""
        self._hovered = marker_id if marker_id in self._markers else None
        self._apply_opacity(self._selection.state)

    def click(self, marker_id: str) -> SelectionState | None:
        """Route a marker click to the selection controller."""
        entity = self._entities.get(marker_id)
        if entity is None:
            log.info("marker_click_unknown", marker=marker_id)
            return None

        if isinstance(entity, Cluster):
            self._selection.select_cluster(entity)
            if self._expand_on_click:
                self._selection.expand_cluster(entity)
            return self._selection.state

        context = self._selection.state.cluster
        keep_cluster = context is not None and entity.id in context.member_ids
        return self._selection.select_pin(entity, keep_cluster=keep_cluster)
