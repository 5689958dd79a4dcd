"""Table-proxy pin source.

Reads the detection tables through the SQL table proxy
(``GET {base_url}/table/{name}?limit=N`` answering
``{"success": bool, "data": [...]}``) and converts the rows into pins.

Responses are cached per request for ``ttl_seconds``, and concurrent
requests for the same table share one HTTP call.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from skywatch.core.models import Pin
from skywatch.sources.base import PinSourceError
from skywatch.sources.records import rows_to_pins

log = structlog.get_logger()

DRONE_POSITIONS = "drone_positions"
RF_DETECTIONS = "rf_detections"
OPERATOR_POSITIONS = "operator_positions"


class TableProxyPinSource:
    """PinSource backed by the table proxy over HTTP."""

    def __init__(
        self,
        base_url: str,
        ttl_seconds: float = 30.0,
        timeout_seconds: float = 30.0,
        limits: dict[str, int] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._limits = {DRONE_POSITIONS: 100, RF_DETECTIONS: 50, OPERATOR_POSITIONS: 50}
        self._limits.update(limits or {})
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self._cache: dict[str, tuple[float, list[dict]]] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    @staticmethod
    def _key(table: str, limit: int) -> str:
        return f"{table}?limit={limit}"

    async def fetch_table(self, table: str, limit: int) -> list[dict]:
        key = self._key(table, limit)
        cached = self._cache.get(key)
        if cached is not None and time.monotonic() - cached[0] < self._ttl:
            log.debug("table_cache_hit", table=table, limit=limit)
            return cached[1]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._request(table, limit))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, key=key: self._inflight.pop(key, None))
        return await task

    async def _request(self, table: str, limit: int) -> list[dict]:
        log.debug("table_request", table=table, limit=limit)
        try:
            resp = await self._client.get(f"/table/{table}", params={"limit": limit})
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            raise PinSourceError(f"table {table}: {exc}") from exc
        except ValueError as exc:
            raise PinSourceError(f"table {table}: invalid JSON") from exc

        if not isinstance(body, dict):
            raise PinSourceError(f"table {table}: unexpected response shape")
        if not body.get("success", False):
            raise PinSourceError(f"table {table}: {body.get('error') or body.get('message') or 'request failed'}")

        rows = body.get("data") or []
        self._cache[self._key(table, limit)] = (time.monotonic(), rows)
        return rows

    async def fetch_pins(self) -> list[Pin]:
        drone_rows, rf_rows, operator_rows = await asyncio.gather(
            self.fetch_table(DRONE_POSITIONS, self._limits[DRONE_POSITIONS]),
            self.fetch_table(RF_DETECTIONS, self._limits[RF_DETECTIONS]),
            self.fetch_table(OPERATOR_POSITIONS, self._limits[OPERATOR_POSITIONS]),
        )
        pins = rows_to_pins(drone_rows, rf_rows, operator_rows)
        log.debug("proxy_pins_converted", drones=len(drone_rows), rf=len(rf_rows),
                  operators=len(operator_rows), pins=len(pins))
        return pins

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._client.aclose()
