"""Skywatch core data models.

These are plain dataclasses with no framework dependencies.
JSON payloads are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class PinCategory(str, Enum):
    RADAR = "radar"
    TARGET = "target"
    THREAT = "threat"
    FRIENDLY = "friendly"
    UNKNOWN = "unknown"
    DRONE = "drone"


class PinStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    WARNING = "warning"
    CRITICAL = "critical"


class PinPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, epoch milliseconds or ISO-8601 / SQL timestamp strings."""
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Table rows use "YYYY-MM-DD HH:MM:SS"; fromisoformat accepts both.
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Pin:
    """A geo-referenced entity shown on the map."""

    id: str
    lat: float
    lng: float
    category: PinCategory = PinCategory.UNKNOWN
    status: PinStatus = PinStatus.ACTIVE
    priority: PinPriority = PinPriority.LOW
    title: str = ""
    description: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, data: dict) -> Pin:
        """Build a pin from a JSON object. Raises ValueError on bad input."""
        pin_id = str(data.get("id", "")).strip()
        if not pin_id:
            raise ValueError("pin id is required")

        try:
            lat = float(data["lat"])
            lng = float(data["lng"])
        except KeyError as exc:
            raise ValueError(f"pin {pin_id}: missing coordinate {exc.args[0]}") from None
        except (TypeError, ValueError):
            raise ValueError(f"pin {pin_id}: coordinates must be numbers") from None
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
            raise ValueError(f"pin {pin_id}: coordinates out of range ({lat}, {lng})")

        # "type" is the field name used by the dashboard payloads.
        category = data.get("category", data.get("type", PinCategory.UNKNOWN.value))
        try:
            return cls(
                id=pin_id,
                lat=lat,
                lng=lng,
                category=PinCategory(category),
                status=PinStatus(data.get("status", PinStatus.ACTIVE.value)),
                priority=PinPriority(data.get("priority", PinPriority.LOW.value)),
                title=str(data.get("title") or pin_id),
                description=data.get("description"),
                attributes=dict(data.get("attributes", data.get("data")) or {}),
                observed_at=parse_timestamp(data.get("observed_at", data.get("timestamp"))),
            )
        except ValueError as exc:
            raise ValueError(f"pin {pin_id}: {exc}") from None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lat": self.lat,
            "lng": self.lng,
            "category": self.category.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "attributes": dict(self.attributes),
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class ScreenPoint:
    x: float
    y: float


@dataclass(frozen=True)
class ScreenBounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def around(cls, points: list[ScreenPoint], padding: float = 0.0) -> ScreenBounds:
        return cls(
            min_x=min(p.x for p in points) - padding,
            min_y=min(p.y for p in points) - padding,
            max_x=max(p.x for p in points) + padding,
            max_y=max(p.y for p in points) + padding,
        )

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class LatLngBounds:
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_points(cls, points) -> LatLngBounds:
        """Bounding box of anything with ``lat``/``lng`` attributes."""
        points = list(points)
        if not points:
            raise ValueError("cannot bound an empty set of points")
        return cls(
            south=min(p.lat for p in points),
            west=min(p.lng for p in points),
            north=max(p.lat for p in points),
            east=max(p.lng for p in points),
        )

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east

    @property
    def center(self) -> tuple[float, float]:
        return (self.south + self.north) / 2, (self.west + self.east) / 2

    def to_dict(self) -> dict:
        return {"south": self.south, "west": self.west, "north": self.north, "east": self.east}


class ClusterBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Cluster:
    """A transient group of pins produced by one clustering pass."""

    id: str
    centroid_lat: float
    centroid_lng: float
    members: tuple[Pin, ...]
    screen_bounds: ScreenBounds | None = None

    @classmethod
    def from_members(cls, members, screen_bounds: ScreenBounds | None = None) -> Cluster:
        members = tuple(members)
        count = len(members)
        return cls(
            id=f"cluster-{members[0].id}",
            centroid_lat=sum(p.lat for p in members) / count,
            centroid_lng=sum(p.lng for p in members) / count,
            members=members,
            screen_bounds=screen_bounds,
        )

    # lat/lng let a cluster be measured with the same metric as a pin.
    @property
    def lat(self) -> float:
        return self.centroid_lat

    @property
    def lng(self) -> float:
        return self.centroid_lng

    @property
    def count(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> frozenset[str]:
        return frozenset(p.id for p in self.members)

    @property
    def band(self) -> ClusterBand:
        if self.count < 6:
            return ClusterBand.LOW
        if self.count <= 10:
            return ClusterBand.MEDIUM
        return ClusterBand.HIGH

    @property
    def bounds(self) -> LatLngBounds:
        return LatLngBounds.from_points(self.members)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lat": self.centroid_lat,
            "lng": self.centroid_lng,
            "count": self.count,
            "band": self.band.value,
            "member_ids": [p.id for p in self.members],
            "bounds": self.bounds.to_dict(),
        }


@dataclass(frozen=True)
class ClusterResult:
    """Output of one clustering pass: every pin is in exactly one place."""

    clusters: tuple[Cluster, ...] = ()
    singles: tuple[Pin, ...] = ()
    zoom: int | None = None

    @property
    def clustered(self) -> bool:
        return bool(self.clusters)

    def all_pin_ids(self) -> list[str]:
        ids = [p.id for c in self.clusters for p in c.members]
        ids.extend(p.id for p in self.singles)
        return ids

    def is_partition_of(self, pins) -> bool:
        ids = self.all_pin_ids()
        return len(ids) == len(set(ids)) and set(ids) == {p.id for p in pins}

    def find_cluster(self, cluster_id: str) -> Cluster | None:
        for c in self.clusters:
            if c.id == cluster_id:
                return c
        return None

    def to_geojson(self) -> dict:
        features = []
        for c in self.clusters:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [round(c.centroid_lng, 6), round(c.centroid_lat, 6)],
                },
                "properties": {
                    "kind": "cluster",
                    "id": c.id,
                    "count": c.count,
                    "band": c.band.value,
                    "member_ids": [p.id for p in c.members],
                },
            })
        for p in self.singles:
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [round(p.lng, 6), round(p.lat, 6)],
                },
                "properties": {
                    "kind": "pin",
                    "id": p.id,
                    "title": p.title,
                    "category": p.category.value,
                    "status": p.status.value,
                    "priority": p.priority.value,
                },
            })
        return {"type": "FeatureCollection", "features": features}
