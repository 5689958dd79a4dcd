"""Render sink interface (port) for drawable markers."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from skywatch.render.adapter import Marker


class RenderSink(Protocol):
    """Port: receives marker directives from the render adapter.

    ``clear`` followed by ``add`` for every marker must leave the sink in the
    same state no matter how often it is repeated.
    """

    def clear(self) -> None: ...

    def add(self, marker: Marker) -> None: ...

    def update(self, marker: Marker) -> None: ...

    def remove(self, marker_id: str) -> None: ...

    def set_opacity(self, marker_id: str, opacity: float) -> None: ...
