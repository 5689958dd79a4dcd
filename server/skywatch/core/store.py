"""PinStore: the authoritative, de-duplicated set of live pins."""

from __future__ import annotations

from typing import Callable, Iterable

import structlog

from skywatch.core.models import LatLngBounds, Pin, PinCategory

log = structlog.get_logger()


class PinStore:
    """Pins keyed by id, kept in first-insertion order.

    Inserting a pin whose id is already present updates it in place.
    """

    def __init__(self, pins: Iterable[Pin] = ()) -> None:
        self._pins: dict[str, Pin] = {}
        self._listeners: list[Callable[[], None]] = []
        for pin in pins:
            self._pins[pin.id] = pin

    def __len__(self) -> int:
        return len(self._pins)

    def __contains__(self, pin_id: object) -> bool:
        return pin_id in self._pins

    @property
    def pins(self) -> list[Pin]:
        return list(self._pins.values())

    def get(self, pin_id: str) -> Pin | None:
        return self._pins.get(pin_id)

    def on_change(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def replace(self, pins: Iterable[Pin]) -> None:
        """Replace the whole pin set (duplicate ids: last one wins)."""
        new_pins: dict[str, Pin] = {}
        for pin in pins:
            new_pins[pin.id] = pin
        self._pins = new_pins
        log.debug("pins_replaced", count=len(new_pins))
        self._notify()

    def upsert(self, pin: Pin) -> bool:
        """Add or update a pin. Returns True if the id was new."""
        is_new = pin.id not in self._pins
        self._pins[pin.id] = pin
        self._notify()
        return is_new

    def remove(self, pin_id: str) -> bool:
        if self._pins.pop(pin_id, None) is None:
            return False
        self._notify()
        return True

    def clear(self) -> None:
        self._pins = {}
        self._notify()

    def search(self, query: str) -> list[Pin]:
        """Case-insensitive match on title, description and category."""
        needle = query.strip().lower()
        if not needle:
            return self.pins
        return [
            p for p in self._pins.values()
            if needle in p.title.lower()
            or (p.description and needle in p.description.lower())
            or needle in p.category.value
        ]

    def filter_by_category(self, category: PinCategory | str | None) -> list[Pin]:
        if not category:
            return self.pins
        category = PinCategory(category)
        return [p for p in self._pins.values() if p.category == category]

    def in_bounds(self, bounds: LatLngBounds) -> list[Pin]:
        return [p for p in self._pins.values() if bounds.contains(p.lat, p.lng)]
