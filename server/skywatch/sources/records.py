"""Conversion of detection-database rows into map pins.

Rows come from the table proxy as JSON objects with the column names of the
``drone_positions``, ``rf_detections`` and ``operator_positions`` tables.
DECIMAL columns may arrive as strings.
"""

from __future__ import annotations

import structlog

from skywatch.core.models import Pin, PinCategory, PinPriority, PinStatus, parse_timestamp

log = structlog.get_logger()


def drone_position_to_pin(row: dict) -> Pin:
    return Pin(
        id=f"drone-pos-{row['id']}",
        lat=float(row["latitude"]),
        lng=float(row["longitude"]),
        category=PinCategory.DRONE,
        status=PinStatus.ACTIVE,
        priority=PinPriority.MEDIUM,
        title=f"Drone {row['drone_id']}",
        description=f"Altitude: {row.get('altitude')}m, Speed: {row.get('speed')} km/h",
        attributes={
            "drone_id": row["drone_id"],
            "altitude": row.get("altitude"),
            "speed": row.get("speed"),
            "receiver_type": row.get("receiver_type"),
            "source": "database",
        },
        observed_at=parse_timestamp(row.get("time")),
    )


def rf_detection_to_pin(row: dict, position: tuple[float, float]) -> Pin:
    """RF detections carry no coordinates; ``position`` is where their drone was last seen."""
    detected = bool(row.get("detection_status"))
    return Pin(
        id=f"rf-detection-{row['id']}",
        lat=position[0],
        lng=position[1],
        category=PinCategory.TARGET,
        status=PinStatus.ACTIVE if detected else PinStatus.INACTIVE,
        priority=PinPriority.HIGH,
        title=f"RF Detection - Drone {row['drone_id']}",
        description=f"Frequency: {row.get('frequency')} MHz, Signal: {row.get('signal_strength')} dBm",
        attributes={
            "drone_id": row["drone_id"],
            "frequency": row.get("frequency"),
            "signal_strength": row.get("signal_strength"),
            "detection_status": detected,
            "source": "database",
        },
        observed_at=parse_timestamp(row.get("time")),
    )


def operator_position_to_pin(row: dict) -> Pin:
    return Pin(
        id=f"operator-pos-{row['id']}",
        lat=float(row["latitude"]),
        lng=float(row["longitude"]),
        category=PinCategory.FRIENDLY,
        status=PinStatus.ACTIVE,
        priority=PinPriority.LOW,
        title=f"Operator - Drone {row['drone_id']}",
        description=f"Operator position for drone {row['drone_id']}",
        attributes={"drone_id": row["drone_id"], "source": "database"},
        observed_at=parse_timestamp(row.get("time")),
    )


def rows_to_pins(
    drone_rows: list[dict],
    rf_rows: list[dict],
    operator_rows: list[dict],
) -> list[Pin]:
    """Convert all three tables, skipping rows that cannot be placed."""
    pins: list[Pin] = []
    latest: dict[object, Pin] = {}

    for row in drone_rows:
        try:
            pin = drone_position_to_pin(row)
        except (KeyError, TypeError, ValueError):
            log.warning("row_skipped", table="drone_positions", row_id=row.get("id"))
            continue
        pins.append(pin)
        drone_id = pin.attributes["drone_id"]
        seen = latest.get(drone_id)
        if seen is None or pin.observed_at > seen.observed_at:
            latest[drone_id] = pin

    for row in rf_rows:
        last_position = latest.get(row.get("drone_id"))
        if last_position is None:
            log.debug("row_skipped", table="rf_detections", row_id=row.get("id"),
                      reason="no_drone_position")
            continue
        try:
            pins.append(rf_detection_to_pin(row, (last_position.lat, last_position.lng)))
        except (KeyError, TypeError, ValueError):
            log.warning("row_skipped", table="rf_detections", row_id=row.get("id"))

    for row in operator_rows:
        try:
            pins.append(operator_position_to_pin(row))
        except (KeyError, TypeError, ValueError):
            log.warning("row_skipped", table="operator_positions", row_id=row.get("id"))

    return pins
