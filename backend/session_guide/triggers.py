"""Time trigger engine.

Pure predicates over an injected ``now`` (epoch milliseconds) and stored
timestamps. Nothing here owns a timer; the host calls these on every tick and
repeated calls with the same inputs always give the same answer.
"""

from __future__ import annotations

from typing import Iterable, Literal, Optional

from .constants import (
    BOOSTER_AFTER_ARRIVAL_MINUTES,
    BOOSTER_FLOOR_MINUTES,
    BOOSTER_HARD_STOP_MINUTES,
    BOOSTER_SILENT_EXPIRY_MINUTES,
    BOOSTER_SNOOZE_MINUTES,
    FOLLOW_UP_CHECK_IN_OFFSET_MS,
    FOLLOW_UP_INTEGRATION_OFFSET_MS,
    FOLLOW_UP_REVISIT_OFFSET_MS,
    MINUTE_MS,
)
from .models import FOLLOW_UP_KEYS, BoosterState, CheckInResponse, FollowUpState, UnlockTimes

BoosterAction = Literal["prompt", "expire"]

FINAL_BOOSTER_STATUSES = frozenset({"taken", "skipped", "expired"})


def minutes_since(start: int, now: int) -> float:
    return (now - start) / MINUTE_MS


def fully_arrived_minutes(responses: Iterable[CheckInResponse]) -> Optional[int]:
    """Minutes after ingestion of the first fully-arrived report, if any."""
    for entry in responses:
        if entry.response == "fully-arrived":
            return entry.minutes_since_ingestion
    return None


def booster_trigger_minutes(arrived_minutes: Optional[float]) -> float:
    if arrived_minutes is None:
        return BOOSTER_FLOOR_MINUTES
    return min(arrived_minutes + BOOSTER_AFTER_ARRIVAL_MINUTES, BOOSTER_FLOOR_MINUTES)


def booster_hard_stop(ingestion_time: int, now: int) -> bool:
    return minutes_since(ingestion_time, now) >= BOOSTER_HARD_STOP_MINUTES


def booster_silently_expired(booster: BoosterState, ingestion_time: int, now: int) -> bool:
    return booster.status == "pending" and minutes_since(ingestion_time, now) >= BOOSTER_SILENT_EXPIRY_MINUTES


def should_show_booster(
    booster: BoosterState,
    ingestion_time: Optional[int],
    responses: Iterable[CheckInResponse],
    now: int,
) -> bool:
    """Whether the booster prompt should be on screen at ``now``.

    Pending prompts open at the trigger time (30 minutes after a fully-arrived
    report, never later than the 90-minute floor) and close silently at 150
    minutes. A snoozed prompt may reappear after 150 minutes so the "window
    closed" message can be shown, but nothing shows from 180 minutes on.
    """
    if not booster.consider_booster or booster.status in FINAL_BOOSTER_STATUSES:
        return False
    if ingestion_time is None:
        return False
    if booster_hard_stop(ingestion_time, now):
        return False

    if booster.status == "snoozed":
        return booster.next_prompt_at is not None and now >= booster.next_prompt_at

    if booster.status != "pending":
        return False
    if booster_silently_expired(booster, ingestion_time, now):
        return False
    trigger = booster_trigger_minutes(fully_arrived_minutes(responses))
    return minutes_since(ingestion_time, now) >= trigger


def booster_tick_action(
    booster: BoosterState,
    ingestion_time: Optional[int],
    responses: Iterable[CheckInResponse],
    now: int,
) -> Optional[BoosterAction]:
    """Decide what a host tick should do with the booster, if anything."""
    if not booster.consider_booster or booster.status in FINAL_BOOSTER_STATUSES:
        return None
    if ingestion_time is None:
        return None
    if booster_hard_stop(ingestion_time, now):
        return "expire"
    if booster.is_modal_visible and booster.status != "snoozed":
        return None
    if booster_silently_expired(booster, ingestion_time, now):
        return "expire"
    if should_show_booster(booster, ingestion_time, responses, now):
        return "prompt"
    return None


def is_snooze_available(ingestion_time: Optional[int], now: int) -> bool:
    if ingestion_time is None:
        return False
    next_prompt = now + BOOSTER_SNOOZE_MINUTES * MINUTE_MS
    window_end = ingestion_time + BOOSTER_SILENT_EXPIRY_MINUTES * MINUTE_MS
    return next_prompt < window_end


def calculate_booster_dose(initial_dose_mg: float) -> int:
    """Half the initial dose, rounded to the nearest 5 mg and clamped to 30-75 mg."""
    raw = float(initial_dose_mg) * 0.5
    rounded = int(_round_half_up(raw / 5)) * 5
    return max(30, min(75, rounded))


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def compute_unlock_times(closed_at: int) -> UnlockTimes:
    return UnlockTimes(
        check_in=closed_at + FOLLOW_UP_CHECK_IN_OFFSET_MS,
        revisit=closed_at + FOLLOW_UP_REVISIT_OFFSET_MS,
        integration=closed_at + FOLLOW_UP_INTEGRATION_OFFSET_MS,
    )


def modules_due_for_unlock(follow_up: FollowUpState, now: int) -> list[str]:
    due: list[str] = []
    if follow_up.unlock_times.check_in is None:
        return due
    for key in FOLLOW_UP_KEYS:
        unlock_at = getattr(follow_up.unlock_times, key)
        module = follow_up.modules.get(key)
        if module is None or module.status != "locked":
            continue
        if unlock_at is not None and now >= unlock_at:
            due.append(key)
    return due


def check_follow_up_availability(follow_up: FollowUpState, now: int) -> FollowUpState:
    """Promote locked follow-up modules whose unlock time has passed."""
    due = modules_due_for_unlock(follow_up, now)
    if not due:
        return follow_up
    updated = follow_up.model_copy(deep=True)
    for key in due:
        updated.modules[key].status = "available"
    return updated


__all__ = [
    "FINAL_BOOSTER_STATUSES",
    "booster_hard_stop",
    "booster_silently_expired",
    "booster_tick_action",
    "booster_trigger_minutes",
    "calculate_booster_dose",
    "check_follow_up_availability",
    "compute_unlock_times",
    "fully_arrived_minutes",
    "is_snooze_available",
    "minutes_since",
    "modules_due_for_unlock",
    "should_show_booster",
]
