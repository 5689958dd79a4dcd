"""Pin endpoints.

This is the thin FastAPI adapter. It parses HTTP requests, converts JSON to
Pin models, and calls the map view.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from skywatch.core.models import Pin, PinCategory
from skywatch.sources.base import PinSourceError

router = APIRouter(prefix="/api/v1")


def _json_response(content: dict, status_code: int = 200) -> Response:
    return Response(
        content=json.dumps(content),
        status_code=status_code,
        media_type="application/json",
    )


@router.get("/pins")
async def list_pins(
    q: str = Query(default=""),
    category: str = Query(default=""),
) -> JSONResponse:
    """List live pins, optionally filtered by text query and category."""
    from skywatch.main import get_map_view

    store = get_map_view().store
    if category and category not in {c.value for c in PinCategory}:
        return JSONResponse(status_code=422, content={"error": f"unknown category {category!r}"})

    pins = store.search(q)
    if category:
        pins = [p for p in pins if p.category.value == category]
    return JSONResponse(content={"pins": [p.to_dict() for p in pins], "total": len(pins)})


@router.post("/pins")
async def upsert_pins(request: Request) -> Response:
    """Add or update pins.

    Accepts either a single pin object or ``{"pins": [...]}``. A pin whose id
    already exists is updated in place.
    """
    from skywatch.main import get_map_view

    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _json_response({"accepted": False, "error": "invalid JSON"}, 400)

    raw_pins = body.get("pins") if isinstance(body, dict) and "pins" in body else [body]
    try:
        pins = [Pin.from_dict(raw) for raw in raw_pins]
    except (ValueError, AttributeError, TypeError) as exc:
        return _json_response({"accepted": False, "error": str(exc)}, 422)

    view = get_map_view()
    added = sum(1 for pin in pins if view.add_pin(pin))
    return _json_response({
        "accepted": True,
        "error": "",
        "added": added,
        "updated": len(pins) - added,
    })


@router.delete("/pins/{pin_id}")
async def delete_pin(pin_id: str) -> JSONResponse:
    from skywatch.main import get_map_view

    if not get_map_view().remove_pin(pin_id):
        return JSONResponse(status_code=404, content={"deleted": 0, "error": "unknown pin"})
    return JSONResponse(content={"deleted": 1})


@router.post("/pins/refresh")
async def refresh_pins() -> JSONResponse:
    """Drop the source cache and reload the full pin snapshot."""
    from skywatch.main import get_map_view

    view = get_map_view()
    try:
        count = await view.refresh()
    except PinSourceError as exc:
        view.stats.record_fetch_error()
        return JSONResponse(status_code=502, content={"refreshed": False, "error": str(exc)})
    return JSONResponse(content={"refreshed": True, "pins": count})
