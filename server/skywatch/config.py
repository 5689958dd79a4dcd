"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: SKYWATCH_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class ClusteringConfig:
    max_cluster_radius_px: float = 50.0
    min_cluster_separation_px: float = 200.0
    min_pins_for_cluster: int = 3
    min_zoom: int = 8
    max_zoom: int = 14
    debounce_seconds: float = 0.15
    # Zooming out below min_zoom + this offset forgets expanded clusters.
    expansion_reset_offset: int = 2
    bounds_padding_px: float = 20.0


@dataclass
class SelectionConfig:
    fade_opacity: float = 0.4
    fit_padding_px: float = 50.0
    fit_max_zoom: int = 16
    fly_to_min_zoom: int = 16
    fly_to_max_zoom: int = 18
    fly_to_zoom_step: int = 2
    expand_on_click: bool = True


@dataclass
class ViewportConfig:
    center_lat: float = 42.6977  # Sofia
    center_lng: float = 23.3219
    zoom: int = 10
    min_zoom: int = 1
    max_zoom: int = 18
    width: int = 1280
    height: int = 800
    tile_size: int = 256


@dataclass
class SourceConfig:
    backend: str = "mock"  # "mock", "file" or "proxy"
    base_url: str = "http://localhost:3001/api/db"
    timeout_seconds: float = 30.0
    cache_ttl_seconds: float = 30.0
    drone_positions_limit: int = 100
    rf_detections_limit: int = 50
    operator_positions_limit: int = 50
    file_path: str = "data/pins.jsonl"
    mock_count: int = 60
    mock_seed: int = 7
    refresh_interval_seconds: float = 60.0  # 0 disables the refresh loop


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"
    file: str = ""


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    viewport: ViewportConfig = field(default_factory=ViewportConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _coerce(current, raw: str):
    """Convert an environment string to the type of the current value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    for section_field in fields(config):
        section = getattr(config, section_field.name)
        for key_field in fields(section):
            env_key = f"SKYWATCH_{section_field.name}_{key_field.name}".upper()
            val = os.environ.get(env_key)
            if val is not None:
                setattr(section, key_field.name, _coerce(getattr(section, key_field.name), val))

    # Short alias for the logging level.
    val = os.environ.get("SKYWATCH_LOG_LEVEL")
    if val is not None:
        config.logging.level = val


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    # Try to load YAML
    if config_path is None:
        config_path = Path(os.environ.get("SKYWATCH_CONFIG", "config.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_field in fields(config):
            section = getattr(config, section_field.name)
            for k, v in (raw.get(section_field.name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
