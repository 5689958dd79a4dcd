"""Skywatch server: main entry point.

This is the only file that knows about concrete implementations.
It wires together the pin source, viewport, render sink, core and API layers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import IO

import structlog
from fastapi import FastAPI

from skywatch.api.map import router as map_router
from skywatch.api.monitoring import router as monitoring_router
from skywatch.api.pins import router as pins_router
from skywatch.config import AppConfig, load_config
from skywatch.core.mapview import MapView
from skywatch.render.memory_sink import InMemoryRenderSink
from skywatch.sources.base import PinSourceError
from skywatch.sources.file_source import FilePinSource
from skywatch.sources.mock_source import MockPinSource
from skywatch.sources.proxy_source import (
    DRONE_POSITIONS,
    OPERATOR_POSITIONS,
    RF_DETECTIONS,
    TableProxyPinSource,
)
from skywatch.viewport.mercator import MercatorViewport

log = structlog.get_logger()

# Module-level singletons (set during startup)
_map_view: MapView | None = None
_config: AppConfig | None = None


def get_map_view() -> MapView:
    assert _map_view is not None, "Server not initialized"
    return _map_view


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def _setup_logging(config: AppConfig) -> IO[str] | None:
    """Configure structlog based on the logging config.

    Returns the opened log file, if any; the caller closes it at shutdown.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logger_factory = None
    log_file = None
    if config.logging.file:
        log_file = open(config.logging.file, "a")
        logger_factory = structlog.WriteLoggerFactory(file=log_file)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
        logger_factory=logger_factory or structlog.PrintLoggerFactory(),
    )
    return log_file


def build_source(config: AppConfig):
    src = config.source
    if src.backend == "proxy":
        return TableProxyPinSource(
            base_url=src.base_url,
            ttl_seconds=src.cache_ttl_seconds,
            timeout_seconds=src.timeout_seconds,
            limits={
                DRONE_POSITIONS: src.drone_positions_limit,
                RF_DETECTIONS: src.rf_detections_limit,
                OPERATOR_POSITIONS: src.operator_positions_limit,
            },
        )
    if src.backend == "file":
        return FilePinSource(src.file_path)
    if src.backend == "mock":
        return MockPinSource(
            center=(config.viewport.center_lat, config.viewport.center_lng),
            count=src.mock_count,
            seed=src.mock_seed,
        )
    raise ValueError(f"unknown pin source backend: {src.backend!r}")


def build_viewport(config: AppConfig) -> MercatorViewport:
    vp = config.viewport
    return MercatorViewport(
        center=(vp.center_lat, vp.center_lng),
        zoom=vp.zoom,
        width=vp.width,
        height=vp.height,
        min_zoom=vp.min_zoom,
        max_zoom=vp.max_zoom,
        tile_size=vp.tile_size,
    )


def build_map_view(config: AppConfig, source=None) -> MapView:
    return MapView(
        source=source if source is not None else build_source(config),
        viewport=build_viewport(config),
        sink=InMemoryRenderSink(),
        config=config,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _map_view, _config

    _config = load_config()
    log_file = _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             source=_config.source.backend,
             refresh_interval=_config.source.refresh_interval_seconds)

    _map_view = build_map_view(_config)

    try:
        await _map_view.load_pins()
    except PinSourceError:
        _map_view.stats.record_fetch_error()
        log.error("pin_fetch_failed", exc_info=True)

    # Start background refresh
    refresh_task = None
    if _config.source.refresh_interval_seconds > 0:
        refresh_task = asyncio.create_task(
            _map_view.run_refresh_loop(_config.source.refresh_interval_seconds),
        )

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port,
             pins=len(_map_view.store))

    yield

    # Shutdown
    if refresh_task is not None:
        refresh_task.cancel()
        try:
            await refresh_task
        except asyncio.CancelledError:
            pass
    await _map_view.close()
    log.info("server_stopped")
    if log_file is not None:
        structlog.reset_defaults()
        log_file.close()


app = FastAPI(
    title="Skywatch",
    description="Drone situational-awareness map server",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(monitoring_router)
app.include_router(pins_router)
app.include_router(map_router)
