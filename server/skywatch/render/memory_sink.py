"""In-process render sink that keeps the drawn markers in a dict."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skywatch.render.adapter import Marker


class InMemoryRenderSink:
    """RenderSink backed by a dict. Serves the HTTP marker snapshot."""

    def __init__(self, keep_log: bool = False) -> None:
        self._markers: dict[str, Marker] = {}
        self._keep_log = keep_log
        self.directives: list[tuple[str, str | None]] = []

    def _record(self, op: str, marker_id: str | None = None) -> None:
        if self._keep_log:
            self.directives.append((op, marker_id))

    @property
    def markers(self) -> list[Marker]:
        return list(self._markers.values())

    def get(self, marker_id: str) -> Marker | None:
        return self._markers.get(marker_id)

    def __len__(self) -> int:
        return len(self._markers)

    def clear(self) -> None:
        self._markers.clear()
        self._record("clear")

    def add(self, marker: Marker) -> None:
        self._markers[marker.id] = marker
        self._record("add", marker.id)

    def update(self, marker: Marker) -> None:
        if marker.id in self._markers:
            self._markers[marker.id] = marker
            self._record("update", marker.id)

    def remove(self, marker_id: str) -> None:
        if self._markers.pop(marker_id, None) is not None:
            self._record("remove", marker_id)

    def set_opacity(self, marker_id: str, opacity: float) -> None:
        marker = self._markers.get(marker_id)
        if marker is not None and marker.opacity != opacity:
            self._markers[marker_id] = replace(marker, opacity=opacity)
            self._record("opacity", marker_id)
