"""Map view endpoints: markers, clusters, viewport, selection."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/v1/map")


async def _read_json(request: Request) -> dict | None:
    body = await request.body()
    if not body:
        return {}
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _invalid_json() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "invalid JSON"})


@router.get("/markers")
async def get_markers() -> JSONResponse:
    """Everything currently drawn: markers, selection and viewport."""
    from skywatch.main import get_map_view

    return JSONResponse(content=get_map_view().snapshot())


@router.get("/clusters")
async def get_clusters() -> JSONResponse:
    """Return the last clustering pass as a GeoJSON FeatureCollection."""
    from skywatch.main import get_map_view

    result = get_map_view().engine.result
    return JSONResponse(content=result.to_geojson(), media_type="application/geo+json")


@router.post("/viewport")
async def set_viewport(request: Request) -> JSONResponse:
    """Apply a camera change from the client.

    Body: {"zoom": 12, "center": [lat, lng]} (both optional). Re-clustering
    is debounced, so the response reflects the viewport, not the new markers.
    """
    from skywatch.main import get_map_view

    body = await _read_json(request)
    if body is None:
        return _invalid_json()

    view = get_map_view()
    try:
        if "center" in body:
            lat, lng = (float(v) for v in body["center"])
            view.set_center(lat, lng)
        if "zoom" in body:
            view.set_zoom(int(body["zoom"]))
    except (TypeError, ValueError):
        return JSONResponse(status_code=422, content={"error": "zoom must be an integer, center [lat, lng]"})

    lat, lng = view.viewport.get_center()
    return JSONResponse(content={
        "zoom": view.viewport.get_zoom(),
        "center": [lat, lng],
        "recluster_pending": view.engine.has_pending,
    })


@router.post("/recluster")
async def recluster() -> JSONResponse:
    from skywatch.main import get_map_view

    result = get_map_view().engine.force_recluster()
    if result is None:
        return JSONResponse(status_code=409, content={"error": "viewport not ready"})
    return JSONResponse(content={"clusters": len(result.clusters), "singles": len(result.singles)})


@router.post("/click/{marker_id}")
async def click_marker(marker_id: str) -> JSONResponse:
    from skywatch.main import get_map_view

    view = get_map_view()
    state = view.click(marker_id)
    if state is None:
        return JSONResponse(status_code=404, content={"error": "unknown marker"})
    return JSONResponse(content=state.to_dict())


@router.get("/selection")
async def get_selection() -> JSONResponse:
    from skywatch.main import get_map_view

    return JSONResponse(content=get_map_view().selection.state.to_dict())


@router.post("/select")
async def select(request: Request) -> JSONResponse:
    """Select a pin or a cluster.

    Body: {"pin_id": "...", "keep_cluster": false} or {"cluster_id": "..."}.
    Unknown ids clear the selection.
    """
    from skywatch.main import get_map_view

    body = await _read_json(request)
    if body is None:
        return _invalid_json()

    pin_id = body.get("pin_id")
    cluster_id = body.get("cluster_id")
    for name, value in (("pin_id", pin_id), ("cluster_id", cluster_id)):
        if value is not None and not isinstance(value, str):
            return JSONResponse(status_code=422, content={"error": f"{name} must be a string"})

    state = get_map_view().select(
        pin_id=pin_id,
        cluster_id=cluster_id,
        keep_cluster=bool(body.get("keep_cluster", False)),
    )
    return JSONResponse(content=state.to_dict())


@router.delete("/selection")
async def clear_selection() -> JSONResponse:
    from skywatch.main import get_map_view

    return JSONResponse(content=get_map_view().selection.clear_selection().to_dict())


@router.post("/clusters/{cluster_id}/expand")
async def expand_cluster(cluster_id: str) -> JSONResponse:
    from skywatch.main import get_map_view

    view = get_map_view()
    expanded = view.expand_cluster(cluster_id)
    return JSONResponse(content={
        "expanded": expanded,
        "zoom": view.viewport.get_zoom(),
        "expanded_clusters": sorted(view.engine.expanded_clusters),
    })


@router.delete("/expanded")
async def clear_expanded() -> JSONResponse:
    from skywatch.main import get_map_view

    view = get_map_view()
    view.engine.clear_expanded_clusters()
    view.engine.force_recluster()
    return JSONResponse(content={"expanded_clusters": []})


@router.post("/hover/{marker_id}")
async def hover_marker(marker_id: str) -> JSONResponse:
    """Show a faded marker at full opacity while the pointer is over it."""
    from skywatch.main import get_map_view

    view = get_map_view()
    if view.renderer.entity(marker_id) is None:
        return JSONResponse(status_code=404, content={"error": "unknown marker"})
    view.renderer.hover(marker_id)
    return JSONResponse(content={"hovered": marker_id})


@router.delete("/hover")
async def clear_hover() -> JSONResponse:
    from skywatch.main import get_map_view

    get_map_view().renderer.hover(None)
    return JSONResponse(content={"hovered": None})
