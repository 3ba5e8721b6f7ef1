"""timebooker — resilient time-booking automation for frame-based HR portals."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("timebooker")
except Exception:
    __version__ = "0.0.0"
