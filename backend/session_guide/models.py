"""Session aggregate models shared by the reducers, the stores, and the HTTP surface."""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .constants import (
    COME_UP_ALLOCATED,
    COME_UP_MAX,
    COME_UP_MIN,
    DEFAULT_TARGET_DURATION,
    MAX_TARGET_DURATION,
    MIN_TARGET_DURATION,
    PEAK_ALLOCATED,
)

SessionPhase = Literal[
    "not-started",
    "intake",
    "pre-session",
    "substance-checklist",
    "active",
    "paused",
    "completed",
]
Phase = Literal["come-up", "peak", "integration"]
ModuleStatus = Literal["upcoming", "active", "completed", "skipped"]
BoosterStatus = Literal["pending", "prompted", "taken", "skipped", "snoozed", "expired"]
FollowUpStatus = Literal["locked", "available", "completed"]
FollowUpKey = Literal["check_in", "revisit", "integration"]
ActiveTransition = Literal["come-up-to-peak", "peak-to-integration", "session-closing"]

FOLLOW_UP_KEYS: tuple[str, ...] = ("check_in", "revisit", "integration")
TERMINAL_MODULE_STATUSES = frozenset({"completed", "skipped"})


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_instance_id(now: Optional[int] = None) -> str:
    stamp = now if now is not None else now_ms()
    return f"{stamp}-{uuid.uuid4().hex[:9]}"


class MedicationAnswer(BaseModel):
    taking: bool = False
    details: str = ""


class IntakeResponses(BaseModel):
    """Free-form intake answers; partial answers are valid."""

    experience_level: Optional[str] = None
    session_mode: Optional[str] = None
    has_preparation: Optional[str] = None
    primary_focus: Optional[str] = None
    relationship_type: Optional[str] = None
    holding_question: str = ""
    emotional_state: Optional[str] = None
    guidance_level: Optional[str] = None
    activity_preferences: List[str] = Field(default_factory=list)
    consider_booster: Optional[str] = None
    prompt_format: Optional[str] = None
    session_duration: Optional[str] = None
    start_time: Optional[str] = None
    safe_space: Optional[str] = None
    has_water_snacks: Optional[str] = None
    emergency_contact: Optional[str] = None
    medications: MedicationAnswer = Field(default_factory=MedicationAnswer)
    heart_conditions: Optional[str] = None
    psychiatric_history: Optional[str] = None


class IntakeState(BaseModel):
    current_section: str = "A"
    current_question_index: int = 0
    responses: IntakeResponses = Field(default_factory=IntakeResponses)
    is_complete: bool = False
    show_safety_warnings: bool = False
    show_medication_warning: bool = False


class SubstanceChecklist(BaseModel):
    has_substance: Optional[bool] = None
    has_tested_substance: Optional[bool] = None
    has_prepared_dosage: Optional[bool] = None
    planned_dosage_mg: Optional[float] = None
    dosage_feedback: Optional[Literal["light", "moderate", "strong", "heavy"]] = None
    has_taken_substance: bool = False
    ingestion_time: Optional[int] = None
    ingestion_time_confirmed: bool = False


class PreSubstanceActivity(BaseModel):
    substance_checklist_sub_phase: str = "part1"
    completed_activities: List[str] = Field(default_factory=list)
    touchstone: str = ""
    intention_journal_entry_id: Optional[str] = None
    focus_journal_entry_id: Optional[str] = None


class PhaseWindow(BaseModel):
    allocated_duration: Optional[int] = None
    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    ended_by: Optional[str] = None


def _come_up_window() -> PhaseWindow:
    return PhaseWindow(allocated_duration=COME_UP_ALLOCATED, min_duration=COME_UP_MIN, max_duration=COME_UP_MAX)


class PhaseWindows(BaseModel):
    come_up: PhaseWindow = Field(default_factory=_come_up_window)
    peak: PhaseWindow = Field(default_factory=lambda: PhaseWindow(allocated_duration=PEAK_ALLOCATED))
    integration: PhaseWindow = Field(default_factory=PhaseWindow)

    def window(self, phase: str) -> PhaseWindow:
        return getattr(self, phase.replace("-", "_"))


class TimelineState(BaseModel):
    scheduled_start_time: Optional[str] = None
    target_duration: int = DEFAULT_TARGET_DURATION
    min_duration: int = MIN_TARGET_DURATION
    max_duration: int = MAX_TARGET_DURATION
    current_phase: Optional[Phase] = None
    phases: PhaseWindows = Field(default_factory=PhaseWindows)


class ModuleInstance(BaseModel):
    instance_id: str
    library_id: str
    phase: Phase
    title: str = ""
    order: int = Field(default=0, ge=0)
    duration: int = Field(default=10, ge=1)
    status: ModuleStatus = "upcoming"
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    is_booster_module: bool = False


class HistoryRecord(BaseModel):
    """Snapshot of a module at the moment it completed or was skipped."""

    model_config = {"frozen": True}

    instance_id: str
    library_id: str
    phase: Phase
    title: str = ""
    order: int = 0
    duration: int = 10
    status: Literal["completed", "skipped"]
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    is_booster_module: bool = False
    actual_duration_seconds: Optional[int] = None


class ModulesState(BaseModel):
    items: List[ModuleInstance] = Field(default_factory=list)
    current_module_instance_id: Optional[str] = None
    history: List[HistoryRecord] = Field(default_factory=list)
    in_open_space: bool = False


class CheckInResponse(BaseModel):
    response: str
    timestamp: int
    minutes_since_ingestion: int = 0


class ComeUpCheckIn(BaseModel):
    is_visible: bool = False
    is_minimized: bool = True
    prompt_count: int = 0
    last_prompt_at: Optional[int] = None
    responses: List[CheckInResponse] = Field(default_factory=list)
    current_response: Optional[str] = None
    intro_completed: bool = True
    waiting_for_check_in: bool = False
    has_indicated_fully_arrived: bool = False
    show_end_of_phase_choice: bool = False


class VisibilityFlag(BaseModel):
    is_visible: bool = False


class BoosterCheckInResponses(BaseModel):
    experience_quality: Optional[str] = None
    physical_state: Optional[str] = None
    trajectory: Optional[str] = None


class BoosterState(BaseModel):
    consider_booster: bool = False
    booster_prepared: Optional[bool] = None
    status: BoosterStatus = "pending"
    booster_taken_at: Optional[int] = None
    booster_decision_at: Optional[int] = None
    snooze_count: int = 0
    next_prompt_at: Optional[int] = None
    check_in_responses: BoosterCheckInResponses = Field(default_factory=BoosterCheckInResponses)
    is_modal_visible: bool = False
    is_minimized: bool = False


class PhaseTransitions(BaseModel):
    active_transition: Optional[ActiveTransition] = None
    transition_completed: bool = False


class PeakCapture(BaseModel):
    body_sensations: List[str] = Field(default_factory=list)
    one_word: str = Field(default="", max_length=30)
    completed_at: Optional[int] = None


class IntegrationCapture(BaseModel):
    intention_edited: bool = False
    edited_intention: str = ""
    focus_changed: bool = False
    new_focus: Optional[str] = None
    new_relationship_type: Optional[str] = None
    tailored_activity_focus: Optional[str] = None
    tailored_activity_response: Dict[str, Any] = Field(default_factory=dict)
    completed_at: Optional[int] = None


class ClosingCapture(BaseModel):
    self_gratitude: str = ""
    future_message: str = ""
    commitment: str = ""
    completed_at: Optional[int] = None


class TransitionCaptures(BaseModel):
    peak: PeakCapture = Field(default_factory=PeakCapture)
    integration: IntegrationCapture = Field(default_factory=IntegrationCapture)
    closing: ClosingCapture = Field(default_factory=ClosingCapture)


class SessionRecord(BaseModel):
    closed_at: Optional[int] = None
    final_duration_seconds: Optional[int] = None


class UnlockTimes(BaseModel):
    check_in: Optional[int] = None
    revisit: Optional[int] = None
    integration: Optional[int] = None


class FollowUpModuleState(BaseModel):
    status: FollowUpStatus = "locked"
    completed_at: Optional[int] = None
    responses: Dict[str, Any] = Field(default_factory=dict)


def _follow_up_modules() -> Dict[str, FollowUpModuleState]:
    return {key: FollowUpModuleState() for key in FOLLOW_UP_KEYS}


class FollowUpState(BaseModel):
    unlock_times: UnlockTimes = Field(default_factory=UnlockTimes)
    modules: Dict[str, FollowUpModuleState] = Field(default_factory=_follow_up_modules)


class PlaybackState(BaseModel):
    """Runtime-only timer state of the active module; never persisted."""

    module_instance_id: Optional[str] = None
    started_at: Optional[int] = None
    suspended_by: List[str] = Field(default_factory=list)
    suspended_since: Optional[int] = None
    suspended_ms: int = 0


class SessionState(BaseModel):
    session_phase: SessionPhase = "not-started"
    intake: IntakeState = Field(default_factory=IntakeState)
    substance_checklist: SubstanceChecklist = Field(default_factory=SubstanceChecklist)
    pre_substance_activity: PreSubstanceActivity = Field(default_factory=PreSubstanceActivity)
    timeline: TimelineState = Field(default_factory=TimelineState)
    modules: ModulesState = Field(default_factory=ModulesState)
    come_up_check_in: ComeUpCheckIn = Field(default_factory=ComeUpCheckIn)
    peak_check_in: VisibilityFlag = Field(default_factory=VisibilityFlag)
    closing_check_in: VisibilityFlag = Field(default_factory=VisibilityFlag)
    booster: BoosterState = Field(default_factory=BoosterState)
    phase_transitions: PhaseTransitions = Field(default_factory=PhaseTransitions)
    transition_captures: TransitionCaptures = Field(default_factory=TransitionCaptures)
    session: SessionRecord = Field(default_factory=SessionRecord)
    follow_up: FollowUpState = Field(default_factory=FollowUpState)
    active_follow_up_module: Optional[FollowUpKey] = None
    playback: PlaybackState = Field(default_factory=PlaybackState)


def clone(state: SessionState) -> SessionState:
    return state.model_copy(deep=True)


def find_module(state: SessionState, instance_id: str) -> Optional[ModuleInstance]:
    for module in state.modules.items:
        if module.instance_id == instance_id:
            return module
    return None


__all__ = [
    "BoosterState",
    "CheckInResponse",
    "ClosingCapture",
    "ComeUpCheckIn",
    "FOLLOW_UP_KEYS",
    "FollowUpModuleState",
    "FollowUpState",
    "HistoryRecord",
    "IntakeResponses",
    "IntakeState",
    "IntegrationCapture",
    "ModuleInstance",
    "ModulesState",
    "PeakCapture",
    "PhaseWindow",
    "PlaybackState",
    "SessionState",
    "TERMINAL_MODULE_STATUSES",
    "TimelineState",
    "TransitionCaptures",
    "UnlockTimes",
    "clone",
    "find_module",
    "generate_instance_id",
    "now_ms",
]
