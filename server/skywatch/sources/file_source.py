"""File-based pin source.

Pins are stored as JSON Lines, one pin object per line, in the format
produced by ``Pin.to_dict()``. Later lines win over earlier lines with the
same id, so appending an updated pin is enough to change it.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from skywatch.core.models import Pin
from skywatch.sources.base import PinSourceError

log = structlog.get_logger()


class FilePinSource:
    """PinSource backed by a JSON Lines snapshot on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def fetch_pins(self) -> list[Pin]:
        if not self._path.exists():
            log.debug("pin_file_missing", path=str(self._path))
            return []

        pins: dict[str, Pin] = {}
        try:
            with open(self._path) as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        pin = Pin.from_dict(json.loads(line))
                    except ValueError as exc:
                        # json.JSONDecodeError is a ValueError too.
                        log.warning("pin_line_skipped", path=str(self._path),
                                    line=line_no, error=str(exc))
                        continue
                    pins[pin.id] = pin
        except OSError as exc:
            raise PinSourceError(f"cannot read {self._path}: {exc}") from exc

        return list(pins.values())

    async def append(self, pin: Pin) -> None:
        """Append a pin to the snapshot file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a") as f:
            f.write(json.dumps(pin.to_dict(), separators=(",", ":")) + "\n")
        log.debug("pin_written", pin=pin.id, path=str(self._path))

    def clear_cache(self) -> None:
        pass

    async def aclose(self) -> None:
        pass
