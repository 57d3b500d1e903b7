"""Phase state machine for the session lifecycle.

    not-started -> intake -> pre-session -> substance-checklist
        -> active {come-up -> peak -> integration} <-> paused -> completed

Each reducer returns a new :class:`SessionState`. A call made from a state
that does not allow it is logged and returns the input unchanged, so hosts can
retry freely without double transitions.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from .constants import (
    COME_UP_ALLOCATED,
    DEFAULT_TARGET_DURATION,
    MINUTE_MS,
    PEAK_ALLOCATED,
    SESSION_DURATION_TARGETS,
)
from .library import ModuleCatalog
from .models import (
    CheckInResponse,
    IntakeResponses,
    SessionState,
    SubstanceChecklist,
    clone,
)
from .timeline import build_default_timeline, next_upcoming
from .triggers import compute_unlock_times

logger = logging.getLogger(__name__)

SAFETY_FLAGS = (
    ("safe_space", "no"),
    ("emergency_contact", "no-concerned"),
    ("heart_conditions", "yes"),
    ("psychiatric_history", "yes"),
)
BOOSTER_INTAKE_ANSWERS = frozenset({"yes", "decide-later"})
CHECK_IN_RESPONSES = frozenset({"waiting", "starting", "fully-arrived"})
CAPTURE_SECTIONS = ("peak", "integration", "closing")


def _in(state: SessionState, operation: str, allowed: Iterable[str]) -> bool:
    allowed = tuple(allowed)
    if state.session_phase in allowed:
        return True
    logger.warning("%s ignored while session is %s", operation, state.session_phase)
    return False


# Intake -------------------------------------------------------------------


def start_intake(state: SessionState) -> SessionState:
    if not _in(state, "start_intake", ("not-started", "intake")):
        return state
    updated = clone(state)
    updated.session_phase = "intake"
    updated.intake.current_section = "A"
    return updated


def update_intake_response(state: SessionState, field: str, value: Any) -> SessionState:
    if field not in IntakeResponses.model_fields:
        raise ValueError(f"Unknown intake field: {field}")
    if state.intake.is_complete:
        logger.warning("Intake is complete; ignoring update to %s", field)
        return state
    updated = clone(state)
    payload = updated.intake.responses.model_dump()
    payload[field] = value
    updated.intake.responses = IntakeResponses.model_validate(payload)
    return updated


def set_intake_position(state: SessionState, section: Optional[str] = None, question_index: Optional[int] = None) -> SessionState:
    updated = clone(state)
    if section is not None:
        updated.intake.current_section = section
    if question_index is not None:
        updated.intake.current_question_index = max(question_index, 0)
    return updated


def target_duration_for(session_duration: Optional[str]) -> int:
    return SESSION_DURATION_TARGETS.get(session_duration or "", DEFAULT_TARGET_DURATION)


def complete_intake(state: SessionState, library: ModuleCatalog, now: Optional[int] = None) -> SessionState:
    """Derive flags from the answers, move to pre-session and build the timeline once."""
    if state.intake.is_complete:
        logger.warning("complete_intake ignored: intake already complete")
        return state
    if not _in(state, "complete_intake", ("intake", "not-started")):
        return state

    updated = clone(state)
    responses = updated.intake.responses
    updated.intake.is_complete = True
    updated.intake.show_safety_warnings = any(
        getattr(responses, field) == flagged for field, flagged in SAFETY_FLAGS
    )
    updated.intake.show_medication_warning = bool(responses.medications.taking)
    updated.session_phase = "pre-session"
    updated.timeline.target_duration = target_duration_for(responses.session_duration)
    updated.timeline.scheduled_start_time = responses.start_time
    updated.booster.consider_booster = responses.consider_booster in BOOSTER_INTAKE_ANSWERS
    return generate_timeline(updated, library, now=now)


def generate_timeline(state: SessionState, library: ModuleCatalog, *, now: Optional[int] = None) -> SessionState:
    updated = clone(state)
    updated.modules.items = build_default_timeline(
        library,
        include_booster=updated.booster.consider_booster,
        now=now,
    )
    phases = updated.timeline.phases
    phases.come_up.allocated_duration = COME_UP_ALLOCATED
    phases.peak.allocated_duration = PEAK_ALLOCATED
    phases.integration.allocated_duration = updated.timeline.target_duration - COME_UP_ALLOCATED - PEAK_ALLOCATED
    return updated


# Substance checklist ------------------------------------------------------


def start_substance_checklist(state: SessionState) -> SessionState:
    if not _in(state, "start_substance_checklist", ("pre-session", "substance-checklist")):
        return state
    updated = clone(state)
    updated.session_phase = "substance-checklist"
    return updated


def dosage_feedback(mg: float) -> Optional[str]:
    if mg <= 0:
        return None
    if mg <= 75:
        return "light"
    if mg <= 125:
        return "moderate"
    if mg <= 150:
        return "strong"
    return "heavy"


def update_substance_checklist(state: SessionState, field: str, value: Any) -> SessionState:
    if field not in SubstanceChecklist.model_fields or field == "dosage_feedback":
        raise ValueError(f"Unknown substance checklist field: {field}")
    updated = clone(state)
    payload = updated.substance_checklist.model_dump()
    payload[field] = value
    if field == "planned_dosage_mg" and value is not None:
        payload["dosage_feedback"] = dosage_feedback(float(value))
    updated.substance_checklist = SubstanceChecklist.model_validate(payload)
    return updated


def record_ingestion_time(state: SessionState, time: int) -> SessionState:
    updated = clone(state)
    updated.substance_checklist.has_taken_substance = True
    updated.substance_checklist.ingestion_time = time
    return updated


def confirm_ingestion_time(state: SessionState) -> SessionState:
    updated = clone(state)
    updated.substance_checklist.ingestion_time_confirmed = True
    return updated


def set_substance_checklist_sub_phase(state: SessionState, sub_phase: str) -> SessionState:
    updated = clone(state)
    updated.pre_substance_activity.substance_checklist_sub_phase = sub_phase
    return updated


def complete_pre_substance_activity(state: SessionState, activity: str) -> SessionState:
    if activity in state.pre_substance_activity.completed_activities:
        return state
    updated = clone(state)
    updated.pre_substance_activity.completed_activities.append(activity)
    return updated


def set_touchstone(state: SessionState, phrase: str) -> SessionState:
    updated = clone(state)
    updated.pre_substance_activity.touchstone = phrase
    return updated


def set_journal_entry_link(state: SessionState, kind: str, entry_id: Optional[str]) -> SessionState:
    if kind not in ("intention", "focus"):
        raise ValueError(f"Unknown journal link: {kind}")
    updated = clone(state)
    setattr(updated.pre_substance_activity, f"{kind}_journal_entry_id", entry_id)
    return updated


# Active session -----------------------------------------------------------


def start_session(state: SessionState, now: int) -> SessionState:
    if not state.modules.items:
        logger.error("Cannot start session: no modules in timeline")
        return state
    if not _in(state, "start_session", ("pre-session", "substance-checklist")):
        return state

    updated = clone(state)
    updated.session_phase = "active"
    updated.timeline.current_phase = "come-up"
    updated.timeline.phases.come_up.started_at = now
    check_in = updated.come_up_check_in
    check_in.is_visible = True
    check_in.is_minimized = True
    check_in.intro_completed = True
    check_in.prompt_count = 0
    check_in.last_prompt_at = now
    return updated


def show_check_in(state: SessionState, now: int) -> SessionState:
    updated = clone(state)
    check_in = updated.come_up_check_in
    check_in.is_visible = True
    check_in.is_minimized = False
    check_in.prompt_count += 1
    check_in.last_prompt_at = now
    return updated


def set_check_in_minimized(state: SessionState, minimized: bool) -> SessionState:
    updated = clone(state)
    updated.come_up_check_in.is_minimized = minimized
    return updated


def set_waiting_for_check_in(state: SessionState, waiting: bool) -> SessionState:
    updated = clone(state)
    updated.come_up_check_in.waiting_for_check_in = waiting
    return updated


def record_check_in_response(state: SessionState, response: str, now: int) -> SessionState:
    if response not in CHECK_IN_RESPONSES:
        raise ValueError(f"Unknown check-in response: {response}")
    ingestion_time = state.substance_checklist.ingestion_time
    minutes = (now - ingestion_time) // MINUTE_MS if ingestion_time else 0

    updated = clone(state)
    check_in = updated.come_up_check_in
    check_in.current_response = response
    check_in.responses.append(
        CheckInResponse(response=response, timestamp=now, minutes_since_ingestion=max(minutes, 0))
    )
    if response == "fully-arrived":
        check_in.has_indicated_fully_arrived = True
        check_in.show_end_of_phase_choice = True
    return updated


def dismiss_end_of_phase_choice(state: SessionState) -> SessionState:
    updated = clone(state)
    updated.come_up_check_in.show_end_of_phase_choice = False
    updated.come_up_check_in.is_minimized = True
    return updated


def dismiss_peak_check_in(state: SessionState) -> SessionState:
    updated = clone(state)
    updated.peak_check_in.is_visible = False
    return updated


def dismiss_closing_check_in(state: SessionState) -> SessionState:
    updated = clone(state)
    updated.closing_check_in.is_visible = False
    return updated


def begin_peak_transition(state: SessionState) -> SessionState:
    if state.timeline.current_phase != "come-up" or not _in(state, "begin_peak_transition", ("active",)):
        return state
    updated = clone(state)
    updated.phase_transitions.active_transition = "come-up-to-peak"
    updated.phase_transitions.transition_completed = False
    updated.come_up_check_in.is_visible = False
    updated.come_up_check_in.is_minimized = True
    return updated


def begin_integration_transition(state: SessionState) -> SessionState:
    if state.timeline.current_phase != "peak" or not _in(state, "begin_integration_transition", ("active",)):
        return state
    updated = clone(state)
    updated.phase_transitions.active_transition = "peak-to-integration"
    updated.phase_transitions.transition_completed = False
    updated.peak_check_in.is_visible = False
    return updated


def begin_closing_ritual(state: SessionState) -> SessionState:
    if not _in(state, "begin_closing_ritual", ("active", "paused")):
        return state
    updated = clone(state)
    updated.phase_transitions.active_transition = "session-closing"
    updated.phase_transitions.transition_completed = False
    updated.closing_check_in.is_visible = False
    return updated


def transition_to_peak(state: SessionState, now: int) -> SessionState:
    return _advance_phase(state, "come-up", "peak", now)


def transition_to_integration(state: SessionState, now: int) -> SessionState:
    return _advance_phase(state, "peak", "integration", now)


def _advance_phase(state: SessionState, outgoing: str, incoming: str, now: int) -> SessionState:
    if state.timeline.current_phase != outgoing:
        logger.warning(
            "Transition to %s ignored: current phase is %s",
            incoming,
            state.timeline.current_phase,
        )
        return state
    if not _in(state, f"transition_to_{incoming}", ("active",)):
        return state

    updated = clone(state)
    phases = updated.timeline.phases
    phases.window(outgoing).ended_at = now
    if outgoing == "come-up":
        phases.come_up.ended_by = "user-checkin"
        updated.come_up_check_in.is_visible = False
        updated.come_up_check_in.show_end_of_phase_choice = False
    phases.window(incoming).started_at = now
    updated.timeline.current_phase = incoming  # type: ignore[assignment]

    capture = getattr(updated.transition_captures, incoming)
    if capture.completed_at is None:
        capture.completed_at = now

    updated.phase_transitions.active_transition = None
    updated.phase_transitions.transition_completed = True
    updated.peak_check_in.is_visible = False
    updated.modules.in_open_space = False

    first = next_upcoming(updated.modules.items, incoming)
    if first is not None:
        first.status = "active"
        first.started_at = now
        updated.modules.current_module_instance_id = first.instance_id
    else:
        updated.modules.current_module_instance_id = None
    return updated


def pause_session(state: SessionState) -> SessionState:
    if not _in(state, "pause_session", ("active",)):
        return state
    updated = clone(state)
    updated.session_phase = "paused"
    return updated


def resume_session(state: SessionState) -> SessionState:
    if not _in(state, "resume_session", ("paused",)):
        return state
    updated = clone(state)
    updated.session_phase = "active"
    return updated


def update_capture(state: SessionState, section: str, field: str, value: Any) -> SessionState:
    """Set one reflection field; a section is frozen once its ``completed_at`` is stamped."""
    if section not in CAPTURE_SECTIONS:
        raise ValueError(f"Unknown capture section: {section}")
    current = getattr(state.transition_captures, section)
    if field not in type(current).model_fields or field == "completed_at":
        raise ValueError(f"Unknown {section} capture field: {field}")
    if current.completed_at is not None:
        logger.warning("%s capture already recorded; ignoring update to %s", section, field)
        return state

    payload = current.model_dump()
    payload[field] = value
    try:
        replacement = type(current).model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid {section} capture value for {field}: {exc}") from exc
    updated = clone(state)
    setattr(updated.transition_captures, section, replacement)
    return updated


def complete_session(state: SessionState, now: int) -> SessionState:
    """Close the session and schedule follow-up unlocks relative to ``now``."""
    if not _in(state, "complete_session", ("active", "paused")):
        return state
    ingestion_time = state.substance_checklist.ingestion_time

    updated = clone(state)
    updated.session_phase = "completed"
    updated.phase_transitions.active_transition = None
    updated.phase_transitions.transition_completed = True
    if updated.transition_captures.closing.completed_at is None:
        updated.transition_captures.closing.completed_at = now
    updated.timeline.phases.integration.ended_at = now
    updated.session.closed_at = now
    updated.session.final_duration_seconds = (now - ingestion_time) // 1000 if ingestion_time else None
    updated.follow_up.unlock_times = compute_unlock_times(now)
    updated.closing_check_in.is_visible = False
    return updated


def end_session(state: SessionState, now: int) -> SessionState:
    if not _in(state, "end_session", ("active", "paused")):
        return state
    updated = clone(state)
    updated.session_phase = "completed"
    updated.timeline.phases.integration.ended_at = now
    return updated


def reset_session() -> SessionState:
    return SessionState()


def get_elapsed_minutes(state: SessionState, now: int) -> int:
    ingestion_time = state.substance_checklist.ingestion_time
    if not ingestion_time:
        return 0
    return (now - ingestion_time) // MINUTE_MS


__all__ = [
    "begin_closing_ritual",
    "begin_integration_transition",
    "begin_peak_transition",
    "complete_intake",
    "complete_pre_substance_activity",
    "complete_session",
    "confirm_ingestion_time",
    "dismiss_closing_check_in",
    "dismiss_end_of_phase_choice",
    "dismiss_peak_check_in",
    "dosage_feedback",
    "end_session",
    "generate_timeline",
    "get_elapsed_minutes",
    "pause_session",
    "record_check_in_response",
    "record_ingestion_time",
    "reset_session",
    "resume_session",
    "set_check_in_minimized",
    "set_intake_position",
    "set_journal_entry_link",
    "set_substance_checklist_sub_phase",
    "set_touchstone",
    "set_waiting_for_check_in",
    "show_check_in",
    "start_intake",
    "start_session",
    "start_substance_checklist",
    "target_duration_for",
    "transition_to_integration",
    "transition_to_peak",
    "update_capture",
    "update_intake_response",
    "update_substance_checklist",
]
