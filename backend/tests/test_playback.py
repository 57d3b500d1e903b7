from __future__ import annotations

from session_guide.playback import (
    USER_PAUSE_REASON,
    elapsed_ms,
    is_running,
    playing_module,
    release,
    reset_playback,
    start_playback,
    suspend,
)

T0 = 1_700_000_000_000
SECOND = 1000


def test_overlapping_suspensions_only_count_once() -> None:
    playback = start_playback("module-1", T0)
    playback = suspend(playback, "booster-modal", T0 + 10 * SECOND)
    playback = suspend(playback, USER_PAUSE_REASON, T0 + 15 * SECOND)
    playback = release(playback, "booster-modal", T0 + 20 * SECOND)

    assert is_running(playback) is False
    assert elapsed_ms(playback, T0 + 25 * SECOND) == 10 * SECOND

    playback = release(playback, USER_PAUSE_REASON, T0 + 30 * SECOND)

    assert is_running(playback) is True
    assert playback.suspended_ms == 20 * SECOND
    assert elapsed_ms(playback, T0 + 40 * SECOND) == 20 * SECOND


def test_repeated_reason_and_unknown_release_are_no_ops() -> None:
    playback = suspend(start_playback("module-1", T0), "booster-modal", T0 + SECOND)

    assert suspend(playback, "booster-modal", T0 + 2 * SECOND) is playback
    assert release(playback, "other", T0 + 2 * SECOND) is playback


def test_idle_playback_ignores_suspension() -> None:
    idle = reset_playback()

    assert suspend(idle, USER_PAUSE_REASON, T0) is idle
    assert elapsed_ms(idle, T0) == 0
    assert playing_module(idle) is None
    assert playing_module(start_playback("module-2", T0)) == "module-2"
