"""Booster sub-aggregate reducers.

Status moves along a fixed graph; a request that does not follow an edge is
logged and ignored. Showing the modal suspends the active module's clock and
every dismissal releases it.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional

from .constants import BOOSTER_MODAL_REASON, BOOSTER_SNOOZE_MINUTES, MINUTE_MS
from .models import BoosterCheckInResponses, SessionState, clone
from .playback import release, suspend

logger = logging.getLogger(__name__)

BOOSTER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"prompted", "expired"}),
    "prompted": frozenset({"taken", "skipped", "snoozed", "expired"}),
    "snoozed": frozenset({"prompted", "expired"}),
    "taken": frozenset(),
    "skipped": frozenset(),
    "expired": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in BOOSTER_TRANSITIONS.get(current, frozenset())


def _guard(state: SessionState, target: str) -> bool:
    if can_transition(state.booster.status, target):
        return True
    logger.warning("Booster transition %s -> %s ignored", state.booster.status, target)
    return False


def show_booster_prompt(state: SessionState, now: int) -> SessionState:
    if not _guard(state, "prompted"):
        return state
    updated = clone(state)
    updated.booster.status = "prompted"
    updated.booster.is_modal_visible = True
    updated.booster.is_minimized = False
    updated.playback = suspend(updated.playback, BOOSTER_MODAL_REASON, now)
    return updated


def take_booster(state: SessionState, now: int, taken_at: Optional[int] = None) -> SessionState:
    if not _guard(state, "taken"):
        return state
    updated = clone(state)
    updated.booster.status = "taken"
    updated.booster.booster_taken_at = taken_at if taken_at is not None else now
    updated.booster.booster_decision_at = now
    return _dismiss(updated, now)


def confirm_booster_time(state: SessionState, adjusted_time: Optional[int]) -> SessionState:
    if not adjusted_time or state.booster.status != "taken":
        return state
    updated = clone(state)
    updated.booster.booster_taken_at = adjusted_time
    return updated


def skip_booster(state: SessionState, now: int) -> SessionState:
    if not _guard(state, "skipped"):
        return state
    updated = clone(state)
    updated.booster.status = "skipped"
    updated.booster.booster_decision_at = now
    return _dismiss(updated, now)


def snooze_booster(state: SessionState, now: int) -> SessionState:
    if not _guard(state, "snoozed"):
        return state
    updated = clone(state)
    booster = updated.booster
    booster.status = "snoozed"
    booster.snooze_count += 1
    booster.next_prompt_at = now + BOOSTER_SNOOZE_MINUTES * MINUTE_MS
    booster.is_modal_visible = True
    booster.is_minimized = True
    updated.playback = release(updated.playback, BOOSTER_MODAL_REASON, now)
    return updated


def expire_booster(state: SessionState, now: int) -> SessionState:
    if not _guard(state, "expired"):
        return state
    updated = clone(state)
    updated.booster.status = "expired"
    updated.booster.booster_decision_at = now
    return _dismiss(updated, now)


def minimize_booster(state: SessionState, now: int) -> SessionState:
    updated = clone(state)
    updated.booster.is_minimized = True
    updated.playback = release(updated.playback, BOOSTER_MODAL_REASON, now)
    return updated


def maximize_booster(state: SessionState, now: int) -> SessionState:
    """Expand the minimized bar; a snoozed booster is prompted again."""
    if state.booster.status not in ("prompted", "snoozed"):
        return state
    updated = clone(state)
    if updated.booster.status == "snoozed":
        updated.booster.status = "prompted"
    updated.booster.is_modal_visible = True
    updated.booster.is_minimized = False
    updated.playback = suspend(updated.playback, BOOSTER_MODAL_REASON, now)
    return updated


def hide_booster_modal(state: SessionState, now: int) -> SessionState:
    updated = clone(state)
    updated.booster.is_modal_visible = False
    updated.playback = release(updated.playback, BOOSTER_MODAL_REASON, now)
    return updated


def update_booster_prepared(state: SessionState, value: str) -> SessionState:
    updated = clone(state)
    if value == "decided-not-to":
        updated.booster.consider_booster = False
        updated.booster.booster_prepared = False
    else:
        updated.booster.booster_prepared = value == "yes"
    return updated


def record_booster_check_in(state: SessionState, field: str, value: Optional[str]) -> SessionState:
    if field not in BoosterCheckInResponses.model_fields:
        raise ValueError(f"Unknown booster check-in field: {field}")
    updated = clone(state)
    setattr(updated.booster.check_in_responses, field, value)
    return updated


def _dismiss(state: SessionState, now: int) -> SessionState:
    state.booster.is_modal_visible = False
    state.booster.is_minimized = False
    state.playback = release(state.playback, BOOSTER_MODAL_REASON, now)
    return state


__all__ = [
    "BOOSTER_TRANSITIONS",
    "can_transition",
    "confirm_booster_time",
    "expire_booster",
    "hide_booster_modal",
    "maximize_booster",
    "minimize_booster",
    "record_booster_check_in",
    "show_booster_prompt",
    "skip_booster",
    "snooze_booster",
    "take_booster",
    "update_booster_prepared",
]
