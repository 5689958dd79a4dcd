"""Map view statistics.

In-memory counters for clustering passes, pin loads and user interaction.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time


class MapStats:
    """Thread-safe counters describing what a map view has been doing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Counters
        self.clustering_passes: int = 0
        self.deferred_passes: int = 0
        self.pins_loaded: int = 0
        self.refreshes: int = 0
        self.fetch_errors: int = 0
        self.selections: int = 0
        self.expansions: int = 0

        # Last clustering pass
        self.last_pass_ms: float = 0.0
        self.last_pass_clusters: int = 0
        self.last_pass_singles: int = 0
        self.last_pass_zoom: int | None = None

    def record_pass(self, duration_ms: float, clusters: int, singles: int, zoom: int | None) -> None:
        with self._lock:
            self.clustering_passes += 1
            self.last_pass_ms = duration_ms
            self.last_pass_clusters = clusters
            self.last_pass_singles = singles
            self.last_pass_zoom = zoom

    def record_deferred(self) -> None:
        with self._lock:
            self.deferred_passes += 1

    def record_load(self, count: int) -> None:
        with self._lock:
            self.refreshes += 1
            self.pins_loaded = count

    def record_fetch_error(self) -> None:
        with self._lock:
            self.fetch_errors += 1

    def record_selection(self) -> None:
        with self._lock:
            self.selections += 1

    def record_expansion(self) -> None:
        with self._lock:
            self.expansions += 1

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "pins_loaded": self.pins_loaded,
                "refreshes": self.refreshes,
                "fetch_errors": self.fetch_errors,
                "selections": self.selections,
                "expansions": self.expansions,
                "clustering": {
                    "passes": self.clustering_passes,
                    "deferred": self.deferred_passes,
                    "last_pass_ms": round(self.last_pass_ms, 3),
                    "last_clusters": self.last_pass_clusters,
                    "last_singles": self.last_pass_singles,
                    "last_zoom": self.last_pass_zoom,
                },
            }
