"""Viewport: the visible window over the revealed price series."""

from .drag import DragSession, ViewportController
from .window import (
    DEFAULT_VISIBLE_CANDLES,
    MAX_CANDLES,
    MIN_CANDLES,
    PAN_SENSITIVITY,
    ViewportConfig,
    ViewportState,
    initial_window,
    on_cursor_advance,
    pan,
    pan_by,
    zoom,
)

__all__ = [
    "DEFAULT_VISIBLE_CANDLES",
    "MAX_CANDLES",
    "MIN_CANDLES",
    "PAN_SENSITIVITY",
    "DragSession",
    "ViewportConfig",
    "ViewportController",
    "ViewportState",
    "initial_window",
    "on_cursor_advance",
    "pan",
    "pan_by",
    "zoom",
]
