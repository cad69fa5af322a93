from __future__ import annotations

from collections.abc import Callable

from retrotrade.errors import InvalidTransition

from .window import (
    ViewportConfig,
    ViewportState,
    initial_window,
    on_cursor_advance,
    pan,
    pan_by,
    pan_shift,
    zoom,
)


class ViewportController:
    """Holds the current ``ViewportState`` and serializes gestures against it.

    A drag session, while open, is the only gesture allowed to move the
    window. Cursor advances from the clock are always applied.
    """

    def __init__(
        self,
        series_length: int,
        config: ViewportConfig | None = None,
        *,
        on_change: Callable[[ViewportState], None] | None = None,
    ) -> None:
        self._cfg = config if config is not None else ViewportConfig()
        self._on_change = on_change
        self._series_length = series_length
        self._state = initial_window(series_length, self._cfg.visible_count)
        self._drag: DragSession | None = None

    @property
    def state(self) -> ViewportState:
        return self._state

    @property
    def config(self) -> ViewportConfig:
        return self._cfg

    @property
    def series_length(self) -> int:
        return self._series_length

    @property
    def dragging(self) -> bool:
        return self._drag is not None

    def zoom(self, delta: float) -> ViewportState:
        self._ensure_idle_gesture()
        return self._set(zoom(self._state, delta))

    def pan(self, delta_px: float, viewport_width_px: float) -> ViewportState:
        self._ensure_idle_gesture()
        return self._set(
            pan(
                self._state,
                delta_px,
                viewport_width_px,
                self._series_length,
                self._cfg.pan_sensitivity,
            )
        )

    def on_cursor_advance(self, cursor: int, series_length: int) -> ViewportState:
        if series_length < self._series_length:
            raise ValueError("series can only grow while a viewport is attached")
        self._series_length = series_length
        self._state = on_cursor_advance(self._state, cursor, series_length)
        return self._state

    def begin_drag(self, x_px: float, viewport_width_px: float) -> DragSession:
        self._ensure_idle_gesture()
        session = DragSession(self, x_px, viewport_width_px)
        self._drag = session
        return session

    def _apply_shift(self, session: DragSession, shift: int) -> ViewportState:
        if self._drag is not session:
            raise InvalidTransition("drag session is no longer active")
        return self._set(pan_by(self._state, shift, self._series_length))

    def _end_drag(self, session: DragSession) -> None:
        if self._drag is session:
            self._drag = None

    def close(self) -> None:
        if self._drag is not None:
            self._drag.release()

    def _set(self, state: ViewportState) -> ViewportState:
        changed = state != self._state
        self._state = state
        if changed and self._on_change is not None:
            self._on_change(state)
        return state

    def _ensure_idle_gesture(self) -> None:
        if self._drag is not None:
            raise InvalidTransition("a drag session is active")


class DragSession:
    """Pointer drag from press to release.

    Pixel movement is accumulated until it amounts to at least one whole
    candle, so slow drags still pan. Use as a context manager (or call
    ``release``) so the session always gives the viewport back.
    """

    def __init__(
        self, controller: ViewportController, x_px: float, viewport_width_px: float
    ) -> None:
        if viewport_width_px <= 0.0:
            raise ValueError("viewport_width_px must be positive")
        self._controller = controller
        self._width = viewport_width_px
        self._last_x = x_px
        self._pending_px = 0.0
        self._open = True

    @property
    def active(self) -> bool:
        return self._open

    def move(self, x_px: float) -> ViewportState:
        if not self._open:
            raise InvalidTransition("drag session already released")
        self._pending_px += x_px - self._last_x
        self._last_x = x_px

        state = self._controller.state
        sensitivity = self._controller.config.pan_sensitivity
        shift = pan_shift(self._pending_px, self._width, state.visible_count, sensitivity)
        if shift == 0:
            return state
        # Keep the sub-candle remainder for the next move.
        px_per_candle = self._width / (state.visible_count * sensitivity)
        self._pending_px -= shift * px_per_candle
        return self._controller._apply_shift(self, shift)

    def release(self) -> None:
        if self._open:
            self._open = False
            self._controller._end_drag(self)

    def __enter__(self) -> DragSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
