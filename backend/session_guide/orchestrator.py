"""Orchestration context: owns the session aggregate and composes the reducers.

The orchestrator is the only writer. Every mutating call runs one reducer (or a
short chain of them), persists the result, keeps the playback clock pointed at
the current module, and turns state changes into signals for the host.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import booster as booster_reducers
from . import follow_up as follow_up_reducers
from . import phases, scheduler
from .collaborators import BestEffort, ContentPrefetcher, JournalSink, Notifier
from .constants import BOOSTER_MODAL_REASON
from .config import Settings, get_settings
from .journal import JournalStore
from .library import ModuleCatalog, default_library
from .models import FOLLOW_UP_KEYS, ModuleInstance, SessionState, clone, now_ms
from .persistence import BlobStore, session_store
from .playback import (
    USER_PAUSE_REASON,
    elapsed_seconds,
    release,
    reset_playback,
    start_playback,
    suspend,
)
from .preferences import PreferencesStore, ToolPanelState, ToolPanelStore
from .scheduler import AddModuleResult
from .telemetry import emit_event
from .triggers import booster_tick_action, calculate_booster_dose, is_snooze_available, should_show_booster

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

NOTIFIED_SIGNALS: Dict[str, Tuple[str, str, str]] = {
    "check_in_prompted": ("Checking in", "How are you feeling right now?", "come-up-check-in"),
    "booster_prompted": ("Booster check-in", "It's time to consider your booster dose.", "booster"),
}


def detect_signals(previous: SessionState, current: SessionState) -> List[Dict[str, Any]]:
    """Describe what a state change means for the host, in the order it happened."""
    signals: List[Dict[str, Any]] = []

    if previous.timeline.phases.come_up.started_at is None and current.timeline.phases.come_up.started_at is not None:
        signals.append({"name": "session_started"})

    before, after = previous.come_up_check_in, current.come_up_check_in
    if after.prompt_count > before.prompt_count:
        signals.append({"name": "check_in_prompted", "prompt_count": after.prompt_count})
    if after.show_end_of_phase_choice and not before.show_end_of_phase_choice:
        signals.append({"name": "end_of_phase_choice_raised"})

    if current.peak_check_in.is_visible and not previous.peak_check_in.is_visible:
        signals.append({"name": "phase_exit_check_in_raised", "phase": "peak"})
    if current.closing_check_in.is_visible and not previous.closing_check_in.is_visible:
        signals.append({"name": "phase_exit_check_in_raised", "phase": "integration"})

    if previous.booster.status != current.booster.status:
        if current.booster.status == "prompted":
            signals.append({"name": "booster_prompted", "snooze_count": current.booster.snooze_count})
        elif current.booster.status == "expired":
            signals.append({"name": "booster_expired", "from_status": previous.booster.status})

    for key in FOLLOW_UP_KEYS:
        old = previous.follow_up.modules[key].status
        new = current.follow_up.modules[key].status
        if old == "locked" and new == "available":
            signals.append({"name": "follow_up_unlocked", "module": key})

    if current.session_phase == "completed" and previous.session_phase != "completed":
        signals.append(
            {
                "name": "session_completed",
                "final_duration_seconds": current.session.final_duration_seconds,
            }
        )
    return signals


class SessionOrchestrator:
    """Single-writer shell around the session aggregate and its stores."""

    def __init__(
        self,
        data_dir: Path,
        *,
        library: Optional[ModuleCatalog] = None,
        journal: Optional[JournalSink] = None,
        prefetcher: Optional[ContentPrefetcher] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        notifications_default: bool = False,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._lock = threading.RLock()
        self._clock: Clock = clock or now_ms
        self.library: ModuleCatalog = library or default_library
        self._store: BlobStore[SessionState] = session_store(self._data_dir)
        self.journal_store: Optional[JournalStore] = None
        if journal is None:
            self.journal_store = JournalStore(self._data_dir)
            journal = self.journal_store
        self.preferences = PreferencesStore(self._data_dir, notifications_default=notifications_default)
        self.tool_panel = ToolPanelStore(self._data_dir)
        self._effects = BestEffort(journal=journal, prefetcher=prefetcher, notifier=notifier)
        self._state = self._sync_playback(self._store.load(), self._clock())
        logger.info("Session orchestrator ready (phase=%s, data_dir=%s)", self._state.session_phase, self._data_dir)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "SessionOrchestrator":
        settings = settings or get_settings()
        kwargs.setdefault("notifications_default", settings.notifications_default)
        return cls(settings.resolved_data_dir(), **kwargs)

    # Plumbing -----------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return clone(self._state)

    def _now(self, now: Optional[int]) -> int:
        return now if now is not None else self._clock()

    @staticmethod
    def _playback_target(state: SessionState) -> Optional[str]:
        if state.session_phase not in ("active", "paused"):
            return None
        return state.modules.current_module_instance_id

    def _sync_playback(self, state: SessionState, now: int) -> SessionState:
        """Point the module clock at the current module, keeping it stopped for standing reasons."""
        current_id = self._playback_target(state)
        if state.playback.module_instance_id == current_id:
            return state
        if current_id is None:
            state.playback = reset_playback()
            return state
        reasons = set(state.playback.suspended_by)
        if state.booster.is_modal_visible and not state.booster.is_minimized:
            reasons.add(BOOSTER_MODAL_REASON)
        if state.session_phase == "paused":
            reasons.add(USER_PAUSE_REASON)
        playback = start_playback(current_id, now)
        for reason in sorted(reasons):
            playback = suspend(playback, reason, now)
        state.playback = playback
        return state

    def _commit(self, updated: SessionState, now: int, *, notify: bool = True) -> List[Dict[str, Any]]:
        previous = self._state
        if updated is previous:
            return []
        if self._playback_target(updated) != updated.playback.module_instance_id:
            updated = self._sync_playback(clone(updated), now)
        self._state = updated
        self._store.save(updated)
        signals = detect_signals(previous, updated)
        for signal in signals:
            fields = {key: value for key, value in signal.items() if key != "name"}
            emit_event(signal["name"], **fields)
            if notify and signal["name"] in NOTIFIED_SIGNALS and self.preferences.notifications_enabled:
                self._effects.notify(*NOTIFIED_SIGNALS[signal["name"]])
        return signals

    def _apply(self, reducer: Callable[..., SessionState], *args: Any, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            self._commit(reducer(self._state, *args), stamp)
            return clone(self._state)

    def _apply_timed(self, reducer: Callable[..., SessionState], *args: Any, now: Optional[int] = None) -> SessionState:
        """Like :meth:`_apply` for reducers that take ``now`` as their last argument."""
        with self._lock:
            stamp = self._now(now)
            self._commit(reducer(self._state, *args, stamp), stamp)
            return clone(self._state)

    # Host tick ----------------------------------------------------------------

    def tick(self, now: Optional[int] = None) -> List[Dict[str, Any]]:
        """Re-evaluate every time trigger; safe to call as often as the host likes."""
        with self._lock:
            stamp = self._now(now)
            state = self._state
            if state.session_phase == "active":
                action = booster_tick_action(
                    state.booster,
                    state.substance_checklist.ingestion_time,
                    state.come_up_check_in.responses,
                    stamp,
                )
                if action == "prompt":
                    state = booster_reducers.show_booster_prompt(state, stamp)
                elif action == "expire":
                    state = booster_reducers.expire_booster(state, stamp)
            if state.session_phase == "completed":
                state = follow_up_reducers.refresh_follow_up(state, stamp)
            return self._commit(state, stamp)

    def should_show_booster(self, now: Optional[int] = None) -> bool:
        state = self._state
        return should_show_booster(
            state.booster,
            state.substance_checklist.ingestion_time,
            state.come_up_check_in.responses,
            self._now(now),
        )

    def is_snooze_available(self, now: Optional[int] = None) -> bool:
        return is_snooze_available(self._state.substance_checklist.ingestion_time, self._now(now))

    def booster_dose(self) -> Optional[int]:
        planned = self._state.substance_checklist.planned_dosage_mg
        return calculate_booster_dose(planned) if planned else None

    def module_elapsed_seconds(self, now: Optional[int] = None) -> int:
        return elapsed_seconds(self._state.playback, self._now(now))

    def start_tool_timer(self, duration_minutes: int, now: Optional[int] = None) -> ToolPanelState:
        return self.tool_panel.start_timer(duration_minutes, self._now(now))

    # Intake and preparation ---------------------------------------------------

    def start_intake(self) -> SessionState:
        return self._apply(phases.start_intake)

    def update_intake_response(self, field: str, value: Any) -> SessionState:
        return self._apply(phases.update_intake_response, field, value)

    def set_intake_position(self, section: Optional[str] = None, question_index: Optional[int] = None) -> SessionState:
        return self._apply(phases.set_intake_position, section, question_index)

    def complete_intake(self, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            updated = phases.complete_intake(self._state, self.library, stamp)
            generated = updated is not self._state
            self._commit(updated, stamp)
            if generated:
                self._effects.precache_timeline(self._state.modules.items)
            return clone(self._state)

    def start_substance_checklist(self) -> SessionState:
        return self._apply(phases.start_substance_checklist)

    def update_substance_checklist(self, field: str, value: Any) -> SessionState:
        return self._apply(phases.update_substance_checklist, field, value)

    def record_ingestion_time(self, time: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(time)
            self._commit(phases.record_ingestion_time(self._state, stamp), stamp)
            return clone(self._state)

    def confirm_ingestion_time(self) -> SessionState:
        return self._apply(phases.confirm_ingestion_time)

    def set_substance_checklist_sub_phase(self, sub_phase: str) -> SessionState:
        return self._apply(phases.set_substance_checklist_sub_phase, sub_phase)

    def complete_pre_substance_activity(self, activity: str) -> SessionState:
        return self._apply(phases.complete_pre_substance_activity, activity)

    def set_touchstone(self, phrase: str) -> SessionState:
        return self._apply(phases.set_touchstone, phrase)

    def set_journal_entry_link(self, kind: str, entry_id: Optional[str]) -> SessionState:
        return self._apply(phases.set_journal_entry_link, kind, entry_id)

    # Active session -----------------------------------------------------------

    def start_session(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(phases.start_session, now=now)

    def show_check_in(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(phases.show_check_in, now=now)

    def set_check_in_minimized(self, minimized: bool) -> SessionState:
        return self._apply(phases.set_check_in_minimized, minimized)

    def set_waiting_for_check_in(self, waiting: bool) -> SessionState:
        return self._apply(phases.set_waiting_for_check_in, waiting)

    def record_check_in_response(self, response: str, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(phases.record_check_in_response, response, now=now)

    def dismiss_end_of_phase_choice(self) -> SessionState:
        return self._apply(phases.dismiss_end_of_phase_choice)

    def dismiss_peak_check_in(self) -> SessionState:
        return self._apply(phases.dismiss_peak_check_in)

    def dismiss_closing_check_in(self) -> SessionState:
        return self._apply(phases.dismiss_closing_check_in)

    def begin_peak_transition(self) -> SessionState:
        return self._apply(phases.begin_peak_transition)

    def begin_integration_transition(self) -> SessionState:
        return self._apply(phases.begin_integration_transition)

    def begin_closing_ritual(self) -> SessionState:
        return self._apply(phases.begin_closing_ritual)

    def transition_to_peak(self, now: Optional[int] = None) -> SessionState:
        state = self._apply_timed(phases.transition_to_peak, now=now)
        capture = state.transition_captures.peak
        lines = []
        if capture.body_sensations:
            lines.append("Body sensations: " + ", ".join(capture.body_sensations))
        if capture.one_word:
            lines.append(f"In one word: {capture.one_word}")
        if lines and state.timeline.current_phase == "peak":
            self._effects.append_journal("Arriving at the peak\n" + "\n".join(lines), "Peak Transition")
        return state

    def transition_to_integration(self, now: Optional[int] = None) -> SessionState:
        state = self._apply_timed(phases.transition_to_integration, now=now)
        capture = state.transition_captures.integration
        if state.timeline.current_phase == "integration" and capture.intention_edited and capture.edited_intention:
            self._effects.append_journal(
                "Revisited intention\n" + capture.edited_intention,
                "Integration Transition",
            )
        return state

    def update_capture(self, section: str, field: str, value: Any) -> SessionState:
        return self._apply(phases.update_capture, section, field, value)

    def pause_session(self, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            updated = phases.pause_session(self._state)
            if updated is not self._state:
                updated.playback = suspend(updated.playback, USER_PAUSE_REASON, stamp)
            self._commit(updated, stamp)
            return clone(self._state)

    def resume_session(self, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            updated = phases.resume_session(self._state)
            if updated is not self._state:
                updated.playback = release(updated.playback, USER_PAUSE_REASON, stamp)
            self._commit(updated, stamp)
            return clone(self._state)

    def complete_session(self, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            before = self._state
            updated = phases.complete_session(before, stamp)
            completed = updated is not before
            if completed:
                updated.playback = reset_playback()
            self._commit(updated, stamp)
            state = clone(self._state)
        if completed:
            closing = state.transition_captures.closing
            parts = [
                ("Gratitude", closing.self_gratitude),
                ("A message for later", closing.future_message),
                ("My commitment", closing.commitment),
            ]
            body = "\n".join(f"{label}: {text}" for label, text in parts if text)
            if body:
                self._effects.append_journal("Closing ritual\n" + body, "Closing Ritual")
        return state

    def end_session(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(phases.end_session, now=now)

    def reset_session(self, now: Optional[int] = None) -> SessionState:
        with self._lock:
            self._commit(phases.reset_session(), self._now(now))
            return clone(self._state)

    # Timeline -----------------------------------------------------------------

    def add_module(self, library_id: str, phase: str, position: Optional[int] = None, now: Optional[int] = None) -> AddModuleResult:
        with self._lock:
            stamp = self._now(now)
            updated, result = scheduler.add_module(self._state, self.library, library_id, phase, position, now=stamp)
            if result.success:
                self._commit(updated, stamp)
            else:
                logger.info("add_module rejected %s in %s: %s", library_id, phase, result.error)
        if result.success:
            self._effects.precache(library_id)
        return result

    def remove_module(self, instance_id: str) -> SessionState:
        return self._apply(scheduler.remove_module, instance_id)

    def reorder_module(self, instance_id: str, new_order: int) -> SessionState:
        return self._apply(scheduler.reorder_module, instance_id, new_order)

    def swap_module_order(self, instance_id: str, new_order: int) -> SessionState:
        return self._apply(scheduler.swap_module_order, instance_id, new_order)

    def update_module_duration(self, instance_id: str, duration: int) -> SessionState:
        return self._apply(scheduler.update_module_duration, instance_id, duration)

    def start_module(self, instance_id: str, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(scheduler.start_module, instance_id, now=now)

    def complete_module(self, instance_id: str, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(scheduler.complete_module, instance_id, now=now)

    def skip_module(self, instance_id: str, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(scheduler.skip_module, instance_id, now=now)

    def enter_open_space(self) -> SessionState:
        return self._apply(scheduler.enter_open_space)

    def get_current_module(self) -> Optional[ModuleInstance]:
        return scheduler.get_current_module(self.state)

    def get_next_module(self) -> Optional[ModuleInstance]:
        return scheduler.get_next_module(self.state)

    # Booster ------------------------------------------------------------------

    def take_booster(self, taken_at: Optional[int] = None, now: Optional[int] = None) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            self._commit(booster_reducers.take_booster(self._state, stamp, taken_at), stamp)
            return clone(self._state)

    def confirm_booster_time(self, adjusted_time: Optional[int]) -> SessionState:
        return self._apply(booster_reducers.confirm_booster_time, adjusted_time)

    def skip_booster(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(booster_reducers.skip_booster, now=now)

    def snooze_booster(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(booster_reducers.snooze_booster, now=now)

    def minimize_booster(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(booster_reducers.minimize_booster, now=now)

    def maximize_booster(self, now: Optional[int] = None) -> SessionState:
        # Reopening the bar is user initiated; no notification.
        with self._lock:
            stamp = self._now(now)
            self._commit(booster_reducers.maximize_booster(self._state, stamp), stamp, notify=False)
            return clone(self._state)

    def hide_booster_modal(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(booster_reducers.hide_booster_modal, now=now)

    def update_booster_prepared(self, value: str) -> SessionState:
        return self._apply(booster_reducers.update_booster_prepared, value)

    def record_booster_check_in(self, field: str, value: Optional[str]) -> SessionState:
        return self._apply(booster_reducers.record_booster_check_in, field, value)

    # Follow-up ----------------------------------------------------------------

    def check_follow_up_availability(self, now: Optional[int] = None) -> SessionState:
        return self._apply_timed(follow_up_reducers.refresh_follow_up, now=now)

    def start_follow_up_module(self, module_key: str) -> SessionState:
        return self._apply(follow_up_reducers.start_follow_up_module, module_key)

    def update_follow_up_module(self, module_key: str, data: Dict[str, Any]) -> SessionState:
        return self._apply(follow_up_reducers.update_follow_up_module, module_key, data)

    def complete_follow_up_module(
        self,
        module_key: str,
        data: Optional[Dict[str, Any]] = None,
        now: Optional[int] = None,
    ) -> SessionState:
        with self._lock:
            stamp = self._now(now)
            updated = follow_up_reducers.complete_follow_up_module(self._state, module_key, stamp, data)
            self._commit(updated, stamp)
            return clone(self._state)

    def exit_follow_up_module(self) -> SessionState:
        return self._apply(follow_up_reducers.exit_follow_up_module)


__all__ = ["SessionOrchestrator", "detect_signals"]
