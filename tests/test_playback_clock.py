import pytest

from retrotrade.clock.playback import (
    ClockConfig,
    ClockState,
    ClockStatus,
    PlaybackClock,
    idle,
    load,
    play,
    tick,
    tick_period_s,
)
from retrotrade.clock.scheduler import ManualScheduler
from retrotrade.errors import InvalidTransition


def _clock(n: int, **kwargs: float) -> tuple[PlaybackClock, ManualScheduler, list[int]]:
    sched = ManualScheduler()
    seen: list[int] = []

    def on_tick(state: ClockState) -> None:
        seen.append(state.cursor)

    clock = PlaybackClock(sched, ClockConfig(**kwargs), on_tick=on_tick)
    clock.load(n)
    return clock, sched, seen


def test_pure_ticks_finish_after_n_minus_one() -> None:
    state = play(load(idle(), 5))
    statuses = []
    for _ in range(4):
        state = tick(state)
        statuses.append(state.status)
    assert state.cursor == 4
    assert statuses == [ClockStatus.RUNNING] * 3 + [ClockStatus.FINISHED]
    # Ticks after finishing are no-ops.
    assert tick(state) == state


def test_load_lands_paused_at_first_bar() -> None:
    state = load(idle(), 3)
    assert state.status is ClockStatus.PAUSED
    assert state.cursor == 0
    assert state.revealed_length == 1
    assert idle().revealed_length == 0
    with pytest.raises(InvalidTransition):
        load(state, 3)
    with pytest.raises(ValueError, match="series_length"):
        load(idle(), 0)


def test_scheduled_replay_runs_to_finish_and_stops() -> None:
    clock, sched, seen = _clock(5)
    clock.play()
    assert clock.armed

    assert sched.advance(40.0) == 4
    assert seen == [1, 2, 3, 4]
    assert clock.state.status is ClockStatus.FINISHED
    assert clock.state.cursor == 4
    assert not clock.armed
    assert sched.pending == 0

    assert sched.advance(1_000.0) == 0
    assert seen == [1, 2, 3, 4]


def test_pause_then_play_neither_skips_nor_repeats() -> None:
    clock, sched, seen = _clock(10)
    clock.play()
    sched.advance(20.0)
    assert clock.state.cursor == 2

    clock.pause()
    assert sched.pending == 0
    sched.advance(500.0)
    assert clock.state.cursor == 2

    clock.play()
    sched.advance(10.0)
    assert seen == [1, 2, 3]
    assert clock.state.status is ClockStatus.RUNNING


def test_play_while_running_does_not_double_arm() -> None:
    clock, sched, seen = _clock(10)
    clock.play()
    clock.play()
    assert sched.pending == 1
    sched.advance(10.0)
    assert seen == [1]


def test_speed_change_applies_from_next_period() -> None:
    clock, sched, seen = _clock(10)
    clock.play()
    sched.advance(5.0)
    clock.set_speed(5.0)
    assert clock.period_s() == 2.0

    # The wait armed at 1x still completes at t=10.
    sched.advance(4.0)
    assert seen == []
    sched.advance(1.0)
    assert seen == [1]
    sched.advance(2.0)
    assert seen == [1, 2]


def test_tick_period_scales_with_speed() -> None:
    state = play(load(idle(2.0), 3))
    assert tick_period_s(state) == 5.0
    assert tick_period_s(state, base_interval_s=1.0) == 0.5


def test_invalid_commands_raise_and_keep_state() -> None:
    sched = ManualScheduler()
    clock = PlaybackClock(sched)
    with pytest.raises(InvalidTransition, match="IDLE"):
        clock.play()
    assert clock.state.status is ClockStatus.IDLE
    assert sched.pending == 0

    clock.load(2)
    clock.play()
    sched.advance(10.0)
    assert clock.state.status is ClockStatus.FINISHED
    with pytest.raises(InvalidTransition):
        clock.play()
    with pytest.raises(InvalidTransition):
        clock.set_speed(2.0)
    with pytest.raises(ValueError):
        ClockConfig(speed=0.0)


def test_reset_cancels_armed_timer() -> None:
    clock, sched, seen = _clock(5)
    clock.play()
    clock.reset()
    assert clock.state.status is ClockStatus.IDLE
    assert sched.pending == 0
    sched.advance(100.0)
    assert seen == []


def test_seek_forward_only_and_does_not_finish() -> None:
    clock, sched, seen = _clock(5)
    clock.seek(3)
    assert clock.state.cursor == 3
    assert clock.state.status is ClockStatus.PAUSED
    with pytest.raises(InvalidTransition, match="forward"):
        clock.seek(1)

    clock.seek(99)
    assert clock.state.cursor == 4
    assert clock.state.status is ClockStatus.PAUSED

    clock.play()
    with pytest.raises(InvalidTransition):
        clock.seek(4)
    sched.advance(10.0)
    assert clock.state.status is ClockStatus.FINISHED
    assert clock.state.cursor == 4


def test_single_bar_series_finishes_on_first_tick() -> None:
    clock, sched, seen = _clock(1)
    clock.play()
    sched.advance(10.0)
    assert clock.state.status is ClockStatus.FINISHED
    assert clock.state.cursor == 0


def test_listener_error_pauses_and_propagates() -> None:
    sched = ManualScheduler()

    def boom(state: ClockState) -> None:
        raise RuntimeError(f"failed at {state.cursor}")

    clock = PlaybackClock(sched, on_tick=boom)
    clock.load(5)
    clock.play()
    with pytest.raises(RuntimeError, match="failed at 1"):
        sched.advance(10.0)
    assert clock.state.status is ClockStatus.PAUSED
    assert not clock.armed
    assert sched.pending == 0


def test_close_via_context_manager() -> None:
    sched = ManualScheduler()
    with PlaybackClock(sched) as clock:
        clock.load(3)
        clock.play()
        assert sched.pending == 1
    assert sched.pending == 0


def test_manual_scheduler_orders_and_cancels() -> None:
    sched = ManualScheduler()
    order: list[str] = []
    sched.call_later(2.0, lambda: order.append("b"))
    h = sched.call_later(1.0, lambda: order.append("x"))
    sched.call_later(1.0, lambda: order.append("a"))
    h.cancel()
    assert sched.next_due() == 1.0
    assert sched.run_next()
    assert sched.advance(5.0) == 1
    assert order == ["a", "b"]
    assert sched.now == 6.0
    assert not sched.run_next()
    with pytest.raises(ValueError):
        sched.call_later(-1.0, lambda: None)
