"""Pannable, zoomable window over a series that only grows by appending.

The window ``[start_index, end_index]`` is inclusive and holds up to
``visible_count`` bars; it is narrower only when history is shorter than
that. While ``is_auto_scroll`` is set, the right edge follows the newest
bar as the series grows; panning away from the live edge detaches it and
panning back to the live edge re-attaches it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

MIN_CANDLES = 10
MAX_CANDLES = 300
DEFAULT_VISIBLE_CANDLES = 60
ZOOM_STEP_FRAC = 0.1
PAN_SENSITIVITY = 1.5


@dataclass(frozen=True, slots=True)
class ViewportConfig:
    visible_count: int = DEFAULT_VISIBLE_CANDLES
    pan_sensitivity: float = PAN_SENSITIVITY

    def __post_init__(self) -> None:
        if not (MIN_CANDLES <= self.visible_count <= MAX_CANDLES):
            raise ValueError(f"visible_count must be in [{MIN_CANDLES}, {MAX_CANDLES}]")
        if not math.isfinite(self.pan_sensitivity) or self.pan_sensitivity <= 0.0:
            raise ValueError("pan_sensitivity must be finite and positive")


@dataclass(frozen=True, slots=True)
class ViewportState:
    start_index: int
    end_index: int
    visible_count: int
    is_auto_scroll: bool

    @property
    def span(self) -> int:
        return self.end_index - self.start_index + 1


def _clamp(x: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, x))


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _start_for(end_index: int, visible_count: int) -> int:
    return max(0, end_index - visible_count + 1)


def _last_index(series_length: int) -> int:
    if series_length <= 0:
        raise ValueError("series_length must be positive")
    return series_length - 1


def initial_window(
    series_length: int, visible_count: int = DEFAULT_VISIBLE_CANDLES
) -> ViewportState:
    """Show the newest ``visible_count`` bars, locked to the live edge."""
    end = _last_index(series_length)
    count = _clamp(visible_count, MIN_CANDLES, MAX_CANDLES)
    return ViewportState(
        start_index=_start_for(end, count),
        end_index=end,
        visible_count=count,
        is_auto_scroll=True,
    )


def zoom(state: ViewportState, delta: float) -> ViewportState:
    """Widen (``delta > 0``) or narrow (``delta < 0``) the window by ~10%.

    The right edge stays put; only the left edge moves.
    """
    if delta == 0:
        return state
    step = max(1, int(math.floor(state.visible_count * ZOOM_STEP_FRAC)))
    count = state.visible_count + (step if delta > 0 else -step)
    count = _clamp(count, MIN_CANDLES, MAX_CANDLES)
    return replace(
        state,
        visible_count=count,
        start_index=_start_for(state.end_index, count),
    )


def pan_shift(
    delta_px: float,
    viewport_width_px: float,
    visible_count: int,
    sensitivity: float = PAN_SENSITIVITY,
) -> int:
    """Whole-candle shift for a horizontal drag of ``delta_px`` pixels."""
    if not math.isfinite(viewport_width_px) or viewport_width_px <= 0.0:
        raise ValueError("viewport_width_px must be finite and positive")
    return _round_half_up(delta_px * (visible_count / viewport_width_px) * sensitivity)


def pan_by(state: ViewportState, shift: int, series_length: int) -> ViewportState:
    """Move the window ``shift`` candles toward older data (negative: toward newer)."""
    last = _last_index(series_length)
    lo = min(state.visible_count - 1, last)
    end = _clamp(state.end_index - shift, lo, last)
    return replace(
        state,
        end_index=end,
        start_index=_start_for(end, state.visible_count),
        is_auto_scroll=end >= last,
    )


def pan(
    state: ViewportState,
    delta_px: float,
    viewport_width_px: float,
    series_length: int,
    sensitivity: float = PAN_SENSITIVITY,
) -> ViewportState:
    """Drag-right (positive ``delta_px``) reveals older bars."""
    shift = pan_shift(delta_px, viewport_width_px, state.visible_count, sensitivity)
    return pan_by(state, shift, series_length)


def on_cursor_advance(state: ViewportState, cursor: int, series_length: int) -> ViewportState:
    """Follow newly revealed bars when locked to the live edge; otherwise only clamp."""
    _ = cursor
    last = _last_index(series_length)
    end = last if state.is_auto_scroll else min(state.end_index, last)
    if end == state.end_index:
        return state
    return replace(state, end_index=end, start_index=_start_for(end, state.visible_count))
