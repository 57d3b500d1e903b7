"""Elapsed-time accounting for the active module.

Playback is suspended while any reason is present in ``suspended_by`` (for
example the booster modal or an explicit user pause). Elapsed time is a pure
function of the start time and the accumulated suspension intervals.
"""

from __future__ import annotations

from typing import Optional

from .models import PlaybackState

USER_PAUSE_REASON = "user"


def start_playback(module_instance_id: str, now: int) -> PlaybackState:
    return PlaybackState(module_instance_id=module_instance_id, started_at=now)


def is_running(playback: PlaybackState) -> bool:
    return playback.started_at is not None and not playback.suspended_by


def suspend(playback: PlaybackState, reason: str, now: int) -> PlaybackState:
    """Add a suspension reason; the clock stops when the first reason arrives."""
    if playback.started_at is None or reason in playback.suspended_by:
        return playback
    updated = playback.model_copy(deep=True)
    if not updated.suspended_by:
        updated.suspended_since = now
    updated.suspended_by = sorted({*updated.suspended_by, reason})
    return updated


def release(playback: PlaybackState, reason: str, now: int) -> PlaybackState:
    """Drop a suspension reason; the clock resumes when the last reason leaves."""
    if reason not in playback.suspended_by:
        return playback
    updated = playback.model_copy(deep=True)
    updated.suspended_by = [entry for entry in updated.suspended_by if entry != reason]
    if not updated.suspended_by and updated.suspended_since is not None:
        updated.suspended_ms += max(now - updated.suspended_since, 0)
        updated.suspended_since = None
    return updated


def elapsed_ms(playback: PlaybackState, now: int) -> int:
    if playback.started_at is None:
        return 0
    suspended = playback.suspended_ms
    if playback.suspended_since is not None:
        suspended += max(now - playback.suspended_since, 0)
    return max(now - playback.started_at - suspended, 0)


def elapsed_seconds(playback: PlaybackState, now: int) -> int:
    return elapsed_ms(playback, now) // 1000


def reset_playback() -> PlaybackState:
    return PlaybackState()


def playing_module(playback: PlaybackState) -> Optional[str]:
    return playback.module_instance_id if playback.started_at is not None else None


__all__ = [
    "USER_PAUSE_REASON",
    "elapsed_ms",
    "elapsed_seconds",
    "is_running",
    "playing_module",
    "release",
    "reset_playback",
    "start_playback",
    "suspend",
]
