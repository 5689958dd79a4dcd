#!/usr/bin/env python3
"""Skywatch drone feed simulator.

Flies simulated drones around a centre point and pushes their positions to
the server as pin upserts, with the occasional RF detection at the drone's
current position. Useful for watching clusters form and split on a live map.

Usage:
    # 8 drones over Sofia for 2 minutes
    python -m tools.simulator.simulate --server http://localhost:8000 --drones 8 --duration 120

    # Dense swarm plus zoom sweeps to exercise re-clustering
    python -m tools.simulator.simulate --drones 40 --radius-km 2 --zoom-sweep

    # Somewhere else
    python -m tools.simulator.simulate --center 48.8566,2.3522
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
from dataclasses import dataclass

import httpx


@dataclass
class SimDrone:
    drone_id: str
    lat: float
    lng: float
    bearing: float
    speed_mps: float
    altitude_m: float
    updates_sent: int = 0
    detections_sent: int = 0
    errors: int = 0


def move_drone(drone: SimDrone, dt_seconds: float) -> None:
    """Fly a drone along its bearing, with random turns and climbs."""
    drone.bearing = (drone.bearing + random.uniform(-20, 20)) % 360
    drone.speed_mps = max(2.0, min(25.0, drone.speed_mps + random.uniform(-2, 2)))
    drone.altitude_m = max(10.0, min(500.0, drone.altitude_m + random.uniform(-10, 10)))

    distance_m = drone.speed_mps * dt_seconds
    bearing_rad = math.radians(drone.bearing)

    # Approximate: 1 degree latitude ~ 111,000 m
    drone.lat += (distance_m * math.cos(bearing_rad)) / 111_000
    drone.lng += (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(drone.lat)))


def position_pin(drone: SimDrone) -> dict:
    return {
        "id": f"sim-drone-{drone.drone_id}",
        "lat": round(drone.lat, 6),
        "lng": round(drone.lng, 6),
        "category": "drone",
        "status": "active",
        "priority": "medium",
        "title": f"Drone {drone.drone_id}",
        "description": f"Altitude: {drone.altitude_m:.0f}m, Speed: {drone.speed_mps * 3.6:.0f} km/h",
        "attributes": {
            "drone_id": drone.drone_id,
            "altitude": round(drone.altitude_m, 1),
            "speed": round(drone.speed_mps * 3.6, 1),
            "source": "simulator",
        },
        "observed_at": int(time.time() * 1000),
    }


def detection_pin(drone: SimDrone) -> dict:
    signal = random.randint(-95, -40)
    return {
        "id": f"sim-rf-{drone.drone_id}-{drone.detections_sent}",
        "lat": round(drone.lat, 6),
        "lng": round(drone.lng, 6),
        "category": "target",
        "status": "critical" if signal > -55 else "warning",
        "priority": "high",
        "title": f"RF Detection - Drone {drone.drone_id}",
        "description": f"Frequency: {random.choice([433, 868, 2400, 5800])} MHz, Signal: {signal} dBm",
        "attributes": {"drone_id": drone.drone_id, "signal_strength": signal, "source": "simulator"},
        "observed_at": int(time.time() * 1000),
    }


async def run_drone(
    client: httpx.AsyncClient,
    drone: SimDrone,
    updates_per_minute: float,
    detection_chance: float,
    duration_seconds: float,
) -> None:
    """Send position updates for one drone until the duration elapses."""
    interval = 60.0 / updates_per_minute
    end_time = time.monotonic() + duration_seconds

    while time.monotonic() < end_time:
        move_drone(drone, interval)

        pins = [position_pin(drone)]
        if random.random() < detection_chance:
            pins.append(detection_pin(drone))

        try:
            resp = await client.post("/api/v1/pins", json={"pins": pins})
            if resp.status_code == 200:
                drone.updates_sent += 1
                drone.detections_sent += len(pins) - 1
            else:
                drone.errors += 1
        except httpx.RequestError:
            drone.errors += 1

        await asyncio.sleep(interval)


async def sweep_zoom(client: httpx.AsyncClient, duration_seconds: float) -> int:
    """Zoom in and out through the clustering range in quick bursts."""
    end_time = time.monotonic() + duration_seconds
    sweeps = 0
    while time.monotonic() < end_time:
        for zoom in [*range(6, 17), *range(16, 5, -1)]:
            try:
                await client.post("/api/v1/map/viewport", json={"zoom": zoom})
            except httpx.RequestError:
                return sweeps
            await asyncio.sleep(0.05)
        sweeps += 1
        await asyncio.sleep(2.0)
    return sweeps


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    center_lat, center_lng = args.center
    drones = []
    for i in range(args.drones):
        angle = random.uniform(0, 2 * math.pi)
        dist_km = random.uniform(0, args.radius_km)
        drones.append(SimDrone(
            drone_id=f"SIM{i:03d}",
            lat=center_lat + (dist_km / 111.0) * math.cos(angle),
            lng=center_lng + (dist_km / (111.0 * math.cos(math.radians(center_lat)))) * math.sin(angle),
            bearing=random.uniform(0, 360),
            speed_mps=random.uniform(5, 15),
            altitude_m=random.uniform(50, 300),
        ))

    print(f"Starting simulation: {args.drones} drones, {args.updates_per_minute} updates/min each")
    print(f"  Center: {center_lat:.4f}, {center_lng:.4f}")
    print(f"  Radius: {args.radius_km} km")
    print(f"  Duration: {args.duration}s")
    print(f"  Server: {args.server}")
    print()

    start = time.monotonic()

    async with httpx.AsyncClient(base_url=args.server, timeout=10.0) as client:
        tasks = [
            run_drone(client, drone, args.updates_per_minute, args.detection_chance, args.duration)
            for drone in drones
        ]
        if args.zoom_sweep:
            tasks.append(sweep_zoom(client, args.duration))
        await asyncio.gather(*tasks)

        elapsed = time.monotonic() - start
        print(f"\nSimulation complete in {elapsed:.1f}s")
        print(f"  Position updates sent: {sum(d.updates_sent for d in drones)}")
        print(f"  RF detections sent: {sum(d.detections_sent for d in drones)}")
        print(f"  Errors: {sum(d.errors for d in drones)}")

        try:
            resp = await client.get("/api/v1/stats")
        except httpx.RequestError as exc:
            print(f"\nCould not read server stats: {exc}")
            return
        if resp.status_code == 200:
            stats = resp.json()
            clustering = stats["clustering"]
            print("\nServer stats:")
            print(f"  Clustering passes: {clustering['passes']}")
            print(f"  Last pass: {clustering['last_clusters']} clusters, "
                  f"{clustering['last_singles']} singles at zoom {clustering['last_zoom']} "
                  f"({clustering['last_pass_ms']} ms)")
            print(f"  Selections: {stats['selections']}, expansions: {stats['expansions']}")


def main():
    parser = argparse.ArgumentParser(description="Skywatch drone feed simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--drones", type=int, default=8, help="Number of simulated drones")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--updates-per-minute", type=float, default=12, help="Position updates per minute per drone")
    parser.add_argument("--detection-chance", type=float, default=0.1,
                        help="Probability that an update carries an RF detection")
    parser.add_argument("--center", type=str, default="42.6977,23.3219",
                        help="Center lat,lng (default: Sofia)")
    parser.add_argument("--radius-km", type=float, default=10.0, help="Scatter radius in km")
    parser.add_argument("--zoom-sweep", action="store_true", help="Also sweep the map zoom in bursts")

    args = parser.parse_args()

    lat, lng = args.center.split(",")
    args.center = (float(lat), float(lng))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
