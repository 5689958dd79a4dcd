"""Mock pin source for development without the detection database.

Scatters a reproducible mix of drones, RF targets, operators and fixed
installations around a centre point. Drones drift along their bearing on
every fetch so the map has something to re-cluster.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from skywatch.core.models import Pin, PinCategory, PinPriority, PinStatus

_MIX = [
    (PinCategory.DRONE, PinPriority.MEDIUM, 40),
    (PinCategory.TARGET, PinPriority.HIGH, 20),
    (PinCategory.FRIENDLY, PinPriority.LOW, 20),
    (PinCategory.THREAT, PinPriority.CRITICAL, 8),
    (PinCategory.RADAR, PinPriority.HIGH, 6),
    (PinCategory.UNKNOWN, PinPriority.LOW, 6),
]

_STATUS_WEIGHTS = [
    (PinStatus.ACTIVE, 60),
    (PinStatus.INACTIVE, 15),
    (PinStatus.WARNING, 15),
    (PinStatus.CRITICAL, 10),
]


@dataclass
class _Track:
    bearing: float
    speed_mps: float


def _offset(lat: float, lng: float, distance_m: float, bearing_deg: float) -> tuple[float, float]:
    # Approximate: 1 degree latitude ~ 111,000 m
    bearing_rad = math.radians(bearing_deg)
    dlat = (distance_m * math.cos(bearing_rad)) / 111_000
    dlng = (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(lat)))
    return lat + dlat, lng + dlng


class MockPinSource:
    """PinSource that invents pins. Same seed, same map."""

    def __init__(
        self,
        center: tuple[float, float] = (42.6977, 23.3219),
        count: int = 60,
        radius_km: float = 15.0,
        seed: int = 7,
        step_seconds: float = 60.0,
    ) -> None:
        self._rng = random.Random(seed)
        self._step_seconds = step_seconds
        self._pins: list[Pin] = []
        self._tracks: dict[str, _Track] = {}

        categories = [c for c, _, _ in _MIX]
        priorities = {c: p for c, p, _ in _MIX}
        weights = [w for _, _, w in _MIX]
        statuses = [s for s, _ in _STATUS_WEIGHTS]
        status_weights = [w for _, w in _STATUS_WEIGHTS]
        now = datetime.now(timezone.utc)

        for i in range(count):
            category = self._rng.choices(categories, weights=weights)[0]
            # Scatter within radius of center
            lat, lng = _offset(center[0], center[1],
                               self._rng.uniform(0, radius_km * 1000),
                               self._rng.uniform(0, 360))
            pin_id = f"mock-{category.value}-{i:03d}"
            self._pins.append(Pin(
                id=pin_id,
                lat=lat,
                lng=lng,
                category=category,
                status=self._rng.choices(statuses, weights=status_weights)[0],
                priority=priorities[category],
                title=f"{category.value.title()} {i:03d}",
                attributes={"altitude": round(self._rng.uniform(20, 400), 1), "source": "mock"},
                observed_at=now,
            ))
            if category is PinCategory.DRONE:
                self._tracks[pin_id] = _Track(
                    bearing=self._rng.uniform(0, 360),
                    speed_mps=self._rng.uniform(5, 20),
                )

    def _advance(self) -> None:
        now = datetime.now(timezone.utc)
        moved = []
        for pin in self._pins:
            track = self._tracks.get(pin.id)
            if track is None:
                moved.append(pin)
                continue
            # Random bearing change (simulates turns)
            track.bearing = (track.bearing + self._rng.uniform(-15, 15)) % 360
            lat, lng = _offset(pin.lat, pin.lng, track.speed_mps * self._step_seconds, track.bearing)
            moved.append(replace(pin, lat=lat, lng=lng, observed_at=now))
        self._pins = moved

    async def fetch_pins(self) -> list[Pin]:
        pins = list(self._pins)
        self._advance()
        return pins

    def clear_cache(self) -> None:
        pass

    async def aclose(self) -> None:
        pass
