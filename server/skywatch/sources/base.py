"""Pin source interface (port) feeding the map view."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from skywatch.core.models import Pin


class PinSourceError(Exception):
    """Raised when a source cannot produce a pin snapshot."""


class PinSource(Protocol):
    """Port: returns the full current snapshot of pins."""

    async def fetch_pins(self) -> list[Pin]: ...

    def clear_cache(self) -> None: ...

    async def aclose(self) -> None: ...
