import pytest

from retrotrade.errors import InvalidTransition
from retrotrade.viewport.drag import ViewportController
from retrotrade.viewport.window import (
    MAX_CANDLES,
    MIN_CANDLES,
    ViewportConfig,
    ViewportState,
    initial_window,
    on_cursor_advance,
    pan,
    pan_shift,
    zoom,
)


def test_initial_window_shows_newest_bars_locked_to_end() -> None:
    vp = initial_window(100, 60)
    assert vp.start_index == 40
    assert vp.end_index == 99
    assert vp.span == 60
    assert vp.is_auto_scroll

    short = initial_window(30, 60)
    assert (short.start_index, short.end_index) == (0, 29)
    assert short.visible_count == 60


def test_zoom_converges_to_bounds_and_keeps_right_edge() -> None:
    vp = initial_window(500, 60)
    assert zoom(vp, 1.0).visible_count == 66
    assert zoom(vp, -1.0).visible_count == 54
    assert zoom(vp, 0.0) == vp

    narrow = vp
    for _ in range(50):
        narrow = zoom(narrow, -1.0)
    assert narrow.visible_count == MIN_CANDLES
    assert narrow.end_index == 499
    assert narrow.start_index == 490

    wide = vp
    for _ in range(100):
        wide = zoom(wide, 1.0)
    assert wide.visible_count == MAX_CANDLES
    assert wide.end_index == 499
    assert wide.start_index == 200


def test_pan_shift_rounds_half_up() -> None:
    # 60 candles across 480px at 1.5x: 0.1875 candles per pixel.
    assert pan_shift(8.0, 480.0, 60) == 2
    assert pan_shift(0.0, 480.0, 60) == 0
    with pytest.raises(ValueError, match="viewport_width_px"):
        pan_shift(10.0, 0.0, 60)


def test_pan_detaches_and_returning_to_edge_reattaches() -> None:
    vp = initial_window(100, 60)
    back = pan(vp, 80.0, 480.0, 100)
    assert back.end_index == 84
    assert back.start_index == 25
    assert not back.is_auto_scroll
    assert on_cursor_advance(back, 100, 101).end_index == 84

    again = pan(back, -80.0, 480.0, 100)
    assert again.end_index == 99
    assert again.is_auto_scroll

    tracked = on_cursor_advance(again, 100, 101)
    assert tracked.end_index == 100
    assert tracked.is_auto_scroll


def test_pan_clamps_to_series_bounds() -> None:
    vp = initial_window(100, 60)
    far = pan(vp, 10_000.0, 480.0, 100)
    assert (far.start_index, far.end_index) == (0, 59)

    past_end = pan(vp, -10_000.0, 480.0, 100)
    assert past_end.end_index == 99
    assert past_end.is_auto_scroll


def test_cursor_advance_follows_only_when_auto_scrolling() -> None:
    vp = initial_window(100, 60)
    grown = on_cursor_advance(vp, 100, 101)
    assert (grown.start_index, grown.end_index) == (41, 100)

    detached = pan(vp, 80.0, 480.0, 100)
    held = on_cursor_advance(detached, 100, 101)
    assert held == detached


def test_controller_grows_with_revealed_bars() -> None:
    ctl = ViewportController(1)
    assert (ctl.state.start_index, ctl.state.end_index) == (0, 0)
    for cursor in range(1, 100):
        ctl.on_cursor_advance(cursor, cursor + 1)
    assert (ctl.state.start_index, ctl.state.end_index) == (40, 99)
    with pytest.raises(ValueError, match="grow"):
        ctl.on_cursor_advance(10, 50)


def test_drag_accumulates_sub_candle_movement() -> None:
    changes: list[ViewportState] = []
    ctl = ViewportController(
        100, ViewportConfig(visible_count=60, pan_sensitivity=1.0), on_change=changes.append
    )
    # 480px for 60 candles: 8px per candle.
    with ctl.begin_drag(0.0, 480.0) as drag:
        assert drag.move(3.0).end_index == 99
        assert drag.move(6.0).end_index == 98
        assert drag.move(12.0).end_index == 97
        assert ctl.dragging
    assert not ctl.dragging
    assert not drag.active
    assert [s.end_index for s in changes] == [98, 97]


def test_drag_session_is_exclusive() -> None:
    ctl = ViewportController(100)
    drag = ctl.begin_drag(100.0, 480.0)
    with pytest.raises(InvalidTransition, match="drag"):
        ctl.pan(10.0, 480.0)
    with pytest.raises(InvalidTransition, match="drag"):
        ctl.zoom(1.0)
    with pytest.raises(InvalidTransition, match="drag"):
        ctl.begin_drag(0.0, 480.0)

    # Clock-driven updates still apply during a drag.
    ctl.on_cursor_advance(100, 101)
    assert ctl.state.end_index == 100

    drag.release()
    with pytest.raises(InvalidTransition, match="released"):
        drag.move(0.0)
    assert ctl.zoom(-1.0).visible_count == 54


def test_close_releases_active_drag() -> None:
    ctl = ViewportController(100)
    drag = ctl.begin_drag(0.0, 480.0)
    ctl.close()
    assert not drag.active
    assert not ctl.dragging


def test_on_change_not_called_for_cursor_advance() -> None:
    changes: list[ViewportState] = []
    ctl = ViewportController(100, on_change=changes.append)
    ctl.on_cursor_advance(100, 101)
    assert changes == []
    ctl.zoom(1.0)
    assert len(changes) == 1


def test_viewport_config_validates_bounds() -> None:
    with pytest.raises(ValueError, match="visible_count"):
        ViewportConfig(visible_count=5)
    with pytest.raises(ValueError, match="pan_sensitivity"):
        ViewportConfig(pan_sensitivity=0.0)
