"""Selection state for a map view.

Pin and cluster selection are mutually exclusive, except that a pin picked
from inside the selected cluster keeps that cluster as context for the side
panels. Unknown ids fail soft: the selection is cleared and nothing raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

import structlog

from skywatch.config import SelectionConfig
from skywatch.core.models import Cluster, Pin
from skywatch.core.stats import MapStats

if TYPE_CHECKING:
    from skywatch.core.clustering import ClusterEngine
    from skywatch.core.store import PinStore
    from skywatch.viewport.base import Viewport

log = structlog.get_logger()


class SelectionKind(str, Enum):
    IDLE = "idle"
    PIN = "pin"
    CLUSTER = "cluster"
    PIN_IN_CLUSTER = "pin_in_cluster"


@dataclass(frozen=True)
class SelectionState:
    kind: SelectionKind = SelectionKind.IDLE
    pin: Pin | None = None
    cluster: Cluster | None = None

    @property
    def is_idle(self) -> bool:
        return self.kind is SelectionKind.IDLE

    @property
    def highlighted_ids(self) -> frozenset[str]:
        """Marker ids drawn at full opacity while something is selected."""
        if self.pin is not None:
            return frozenset({self.pin.id})
        if self.cluster is not None:
            return self.cluster.member_ids | {self.cluster.id}
        return frozenset()

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "pin": self.pin.to_dict() if self.pin else None,
            "cluster": self.cluster.to_dict() if self.cluster else None,
        }


IDLE = SelectionState()


class SelectionController:
    """Tracks the selected pin / cluster and expands clusters on request."""

    def __init__(
        self,
        store: PinStore,
        engine: ClusterEngine,
        viewport: Viewport,
        config: SelectionConfig | None = None,
        stats: MapStats | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._viewport = viewport
        self._config = config or SelectionConfig()
        self._stats = stats or MapStats()
        self._state = IDLE
        self._listeners: list[Callable[[SelectionState], None]] = []
        self._expand_listeners: list[Callable[[Cluster], None]] = []

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def selected_pin(self) -> Pin | None:
        return self._state.pin

    @property
    def selected_cluster(self) -> Cluster | None:
        return self._state.cluster

    def has_selected_pin(self) -> bool:
        return self._state.pin is not None

    def has_selected_cluster(self) -> bool:
        return self._state.cluster is not None

    def on_change(self, callback: Callable[[SelectionState], None]) -> None:
        self._listeners.append(callback)

    def on_expand(self, callback: Callable[[Cluster], None]) -> None:
        self._expand_listeners.append(callback)

    def _set_state(self, state: SelectionState, record: bool = True) -> SelectionState:
        self._state = state
        if record and not state.is_idle:
            self._stats.record_selection()
        log.debug("selection_changed", kind=state.kind.value,
                  pin=state.pin.id if state.pin else None,
                  cluster=state.cluster.id if state.cluster else None)
        for callback in list(self._listeners):
            callback(state)
        return state

    def select_pin(self, pin: Pin | str, keep_cluster: bool = False) -> SelectionState:
        pin_id = pin.id if isinstance(pin, Pin) else str(pin)
        current = self._store.get(pin_id)
        if current is None:
            log.info("select_pin_unknown", pin=pin_id)
            return self.clear_selection()

        if keep_cluster and self._state.cluster is not None:
            return self._set_state(SelectionState(
                kind=SelectionKind.PIN_IN_CLUSTER, pin=current, cluster=self._state.cluster,
            ))
        return self._set_state(SelectionState(kind=SelectionKind.PIN, pin=current))

    def select_cluster(self, cluster: Cluster | str) -> SelectionState:
        cluster_id = cluster.id if isinstance(cluster, Cluster) else str(cluster)
        current = self._engine.result.find_cluster(cluster_id)
        if current is None:
            log.info("select_cluster_unknown", cluster=cluster_id)
            return self.clear_selection()
        return self._set_state(SelectionState(kind=SelectionKind.CLUSTER, cluster=current))

    def clear_selection(self) -> SelectionState:
        return self._set_state(IDLE)

    def forget_pin(self, pin_id: str) -> None:
        """Drop a removed pin from the selection, keeping any cluster context."""
        if self._state.pin is None or self._state.pin.id != pin_id:
            return
        if self._state.kind is SelectionKind.PIN_IN_CLUSTER:
            self._set_state(SelectionState(kind=SelectionKind.CLUSTER, cluster=self._state.cluster))
        else:
            self.clear_selection()

    def reconcile(self) -> None:
        """Re-read the selected pin after the pin set was replaced."""
        pin = self._state.pin
        if pin is None:
            return
        current = self._store.get(pin.id)
        if current is None:
            self.forget_pin(pin.id)
        elif current is not pin:
            # Same selection, fresh pin data: observers refresh, stats do not count it.
            self._set_state(
                SelectionState(kind=self._state.kind, pin=current, cluster=self._state.cluster),
                record=False,
            )

    def expand_cluster(self, cluster: Cluster | str) -> bool:
        """Break a cluster into individual markers and zoom onto its members.

        Returns False (and logs) for clusters that are already expanded or no
        longer exist.
        """
        cluster_id = cluster.id if isinstance(cluster, Cluster) else str(cluster)
        if self._engine.is_expanded(cluster_id):
            log.info("expand_cluster_ignored", cluster=cluster_id, reason="already_expanded")
            return False
        current = self._engine.result.find_cluster(cluster_id)
        if current is None:
            log.info("expand_cluster_ignored", cluster=cluster_id, reason="unknown_cluster")
            return False

        self._engine.mark_expanded(current)
        for callback in list(self._expand_listeners):
            callback(current)

        # The fit may zoom out past the reset threshold; this expansion must survive it.
        with self._engine.holding_expansions():
            self._viewport.fit_to_bounds(
                current.bounds,
                padding_px=self._config.fit_padding_px,
                max_zoom=self._config.fit_max_zoom,
            )
        # Recluster now rather than after the debounce triggered by the fit.
        self._engine.force_recluster()

        self._stats.record_expansion()
        log.info("cluster_expanded", cluster=current.id, members=current.count,
                 zoom=self._viewport.get_zoom())
        return True
