"""Health check and monitoring endpoints."""

from __future__ import annotations

import json
from pathlib import Path

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")

# Load build info once at import time.
_BUILD_INFO_PATH = Path(__file__).parent.parent / "build_info.json"
_BUILD_INFO: dict = {}
if _BUILD_INFO_PATH.exists():
    try:
        _BUILD_INFO = json.loads(_BUILD_INFO_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        pass


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from skywatch.main import get_config, get_map_view

    view = get_map_view()
    config = get_config()

    snapshot = view.stats.snapshot()
    result = {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "source": config.source.backend,
        "pins": len(view.store),
        "viewport_ready": view.viewport.is_ready(),
        "fetch_errors": snapshot["fetch_errors"],
    }
    result.update(_BUILD_INFO)
    return result


@router.get("/stats")
async def stats() -> dict:
    """Map view statistics.

    The ``clustering`` section shows:
    - ``passes``: clustering passes run so far
    - ``deferred``: passes postponed because the viewport was not ready
    - ``last_*``: duration, output sizes and zoom of the most recent pass
    """
    from skywatch.main import get_map_view

    return get_map_view().stats.snapshot()


@router.get("/config")
async def get_client_config() -> dict:
    """Clustering and selection parameters for map clients.

    Browser clients call this on startup so they render with the same
    thresholds the server uses.
    """
    from skywatch.main import get_config

    config = get_config()
    c = config.clustering
    s = config.selection
    return {
        "max_cluster_radius_px": c.max_cluster_radius_px,
        "min_cluster_separation_px": c.min_cluster_separation_px,
        "min_pins_for_cluster": c.min_pins_for_cluster,
        "min_zoom": c.min_zoom,
        "max_zoom": c.max_zoom,
        "debounce_ms": round(c.debounce_seconds * 1000),
        "fade_opacity": s.fade_opacity,
        "fit_max_zoom": s.fit_max_zoom,
        "refresh_interval_seconds": config.source.refresh_interval_seconds,
    }
