"""REST endpoints through which a local host drives the session orchestrator."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from .journal import JournalEntry, JournalSettings, JournalStore
from .models import FOLLOW_UP_KEYS, ModuleInstance, SessionState, find_module
from .orchestrator import SessionOrchestrator
from .preferences import PreferencesState, ToolPanelState
from .scheduler import AddModuleResult, get_session_progress, get_total_duration
from .telemetry import recent_events

router = APIRouter(prefix="/api/session", tags=["session"])
logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_orchestrator(request: Request) -> SessionOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = SessionOrchestrator.from_settings()
        request.app.state.orchestrator = orchestrator
    return orchestrator


def _guarded(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def _require_module(orchestrator: SessionOrchestrator, instance_id: str) -> None:
    if find_module(orchestrator.state, instance_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Module instance '{instance_id}' was not found.",
        )


def _require_follow_up_key(module_key: str) -> None:
    if module_key not in FOLLOW_UP_KEYS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Follow-up module '{module_key}' was not found.",
        )


class FieldUpdate(BaseModel):
    field: str = Field(..., min_length=1)
    value: Any = None


class ClockRequest(BaseModel):
    now: Optional[int] = Field(default=None, ge=0)


class IntakePositionRequest(BaseModel):
    section: Optional[str] = None
    question_index: Optional[int] = Field(default=None, ge=0)


class IngestionRequest(BaseModel):
    time: Optional[int] = Field(default=None, ge=0)


class SubPhaseRequest(BaseModel):
    sub_phase: str = Field(..., min_length=1)


class ActivityRequest(BaseModel):
    activity: str = Field(..., min_length=1)


class TouchstoneRequest(BaseModel):
    phrase: str = ""


class JournalLinkRequest(BaseModel):
    kind: str
    entry_id: Optional[str] = None


class MinimizeRequest(BaseModel):
    minimized: bool = True


class WaitingRequest(BaseModel):
    waiting: bool = True


class CheckInRequest(BaseModel):
    response: str
    now: Optional[int] = Field(default=None, ge=0)


class AddModuleRequest(BaseModel):
    library_id: str = Field(..., min_length=1)
    phase: str = Field(..., min_length=1)
    position: Optional[int] = Field(default=None, ge=0)


class OrderRequest(BaseModel):
    order: int = Field(..., ge=0)
    swap: bool = False


class DurationRequest(BaseModel):
    duration: int


class BoosterTakeRequest(BaseModel):
    taken_at: Optional[int] = Field(default=None, ge=0)
    now: Optional[int] = Field(default=None, ge=0)


class BoosterTimeRequest(BaseModel):
    adjusted_time: Optional[int] = Field(default=None, ge=0)


class BoosterPreparedRequest(BaseModel):
    value: str


class FollowUpDataRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)
    now: Optional[int] = Field(default=None, ge=0)


class PreferencesUpdate(BaseModel):
    notifications_enabled: Optional[bool] = None
    reduce_motion: Optional[bool] = None
    dark_mode: Optional[bool] = None


class JournalEntryUpdate(BaseModel):
    content: str = Field(..., min_length=1)
    now: Optional[int] = Field(default=None, ge=0)


class JournalSettingsUpdate(BaseModel):
    font_size: Optional[str] = None
    font_family: Optional[str] = None
    line_height: Optional[str] = None


class TimerRequest(BaseModel):
    duration_minutes: int = Field(..., ge=1)
    now: Optional[int] = Field(default=None, ge=0)


class TickResponse(BaseModel):
    signals: List[Dict[str, Any]] = Field(default_factory=list)
    state: SessionState


class ProgressResponse(BaseModel):
    progress: float
    total_duration: int
    current_module: Optional[ModuleInstance] = None
    next_module: Optional[ModuleInstance] = None
    module_elapsed_seconds: int = 0


class BoosterStatusResponse(BaseModel):
    status: str
    should_show: bool
    snooze_available: bool
    suggested_dose_mg: Optional[int] = None


class EventPayload(BaseModel):
    name: str
    payload: Dict[str, Any] = Field(default_factory=dict)


# State and tick ---------------------------------------------------------------


@router.get("/state", response_model=SessionState)
def read_state(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.state


@router.post("/tick", response_model=TickResponse)
def tick(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> TickResponse:
    signals = orchestrator.tick(request.now)
    return TickResponse(signals=signals, state=orchestrator.state)


@router.get("/progress", response_model=ProgressResponse)
def read_progress(
    now: Optional[int] = Query(default=None, ge=0),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> ProgressResponse:
    state = orchestrator.state
    return ProgressResponse(
        progress=get_session_progress(state),
        total_duration=get_total_duration(state),
        current_module=orchestrator.get_current_module(),
        next_module=orchestrator.get_next_module(),
        module_elapsed_seconds=orchestrator.module_elapsed_seconds(now),
    )


@router.get("/events", response_model=List[EventPayload])
def read_events(
    limit: int = Query(default=20, ge=1, le=100),
    name: Optional[str] = Query(default=None),
) -> List[EventPayload]:
    return [EventPayload(name=event.name, payload=event.payload) for event in recent_events(limit, name)]


# Intake and preparation -------------------------------------------------------


@router.post("/intake/start", response_model=SessionState)
def start_intake(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.start_intake()


@router.patch("/intake/responses", response_model=SessionState)
def update_intake(update: FieldUpdate, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return _guarded(lambda: orchestrator.update_intake_response(update.field, update.value))


@router.post("/intake/position", response_model=SessionState)
def set_intake_position(
    request: IntakePositionRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    return orchestrator.set_intake_position(request.section, request.question_index)


@router.post("/intake/complete", response_model=SessionState)
def complete_intake(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    state = orchestrator.complete_intake(request.now)
    if not state.intake.is_complete:
        raise _conflict(f"Intake cannot be completed while the session is {state.session_phase}.")
    return state


@router.post("/checklist/start", response_model=SessionState)
def start_checklist(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.start_substance_checklist()


@router.patch("/checklist", response_model=SessionState)
def update_checklist(update: FieldUpdate, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return _guarded(lambda: orchestrator.update_substance_checklist(update.field, update.value))


@router.post("/checklist/ingestion", response_model=SessionState)
def record_ingestion(request: IngestionRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.record_ingestion_time(request.time)


@router.post("/checklist/ingestion/confirm", response_model=SessionState)
def confirm_ingestion(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.confirm_ingestion_time()


@router.post("/checklist/sub-phase", response_model=SessionState)
def set_sub_phase(request: SubPhaseRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.set_substance_checklist_sub_phase(request.sub_phase)


@router.post("/checklist/activities", response_model=SessionState)
def complete_activity(request: ActivityRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.complete_pre_substance_activity(request.activity)


@router.put("/checklist/touchstone", response_model=SessionState)
def set_touchstone(request: TouchstoneRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.set_touchstone(request.phrase)


@router.put("/checklist/journal-links", response_model=SessionState)
def set_journal_link(request: JournalLinkRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return _guarded(lambda: orchestrator.set_journal_entry_link(request.kind, request.entry_id))


# Active session ---------------------------------------------------------------


@router.post("/start", response_model=SessionState)
def start_session(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    state = orchestrator.start_session(request.now)
    if state.session_phase != "active":
        raise _conflict("Session could not be started. Make sure the timeline has at least one module.")
    return state


@router.post("/check-in/show", response_model=SessionState)
def show_check_in(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.show_check_in(request.now)


@router.post("/check-in/minimize", response_model=SessionState)
def minimize_check_in(request: MinimizeRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.set_check_in_minimized(request.minimized)


@router.post("/check-in/waiting", response_model=SessionState)
def set_waiting(request: WaitingRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.set_waiting_for_check_in(request.waiting)


@router.post("/check-in/responses", response_model=SessionState)
def record_check_in(request: CheckInRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return _guarded(lambda: orchestrator.record_check_in_response(request.response, request.now))


@router.post("/check-in/end-of-phase/dismiss", response_model=SessionState)
def dismiss_end_of_phase(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.dismiss_end_of_phase_choice()


@router.post("/check-in/peak/dismiss", response_model=SessionState)
def dismiss_peak_check_in(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.dismiss_peak_check_in()


@router.post("/check-in/closing/dismiss", response_model=SessionState)
def dismiss_closing_check_in(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.dismiss_closing_check_in()


@router.post("/transitions/peak/begin", response_model=SessionState)
def begin_peak(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.begin_peak_transition()


@router.post("/transitions/peak", response_model=SessionState)
def transition_to_peak(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    state = orchestrator.transition_to_peak(request.now)
    if state.timeline.current_phase != "peak":
        raise _conflict(f"Cannot move to peak from {state.timeline.current_phase or state.session_phase}.")
    return state


@router.post("/transitions/integration/begin", response_model=SessionState)
def begin_integration(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.begin_integration_transition()


@router.post("/transitions/integration", response_model=SessionState)
def transition_to_integration(
    request: ClockRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    state = orchestrator.transition_to_integration(request.now)
    if state.timeline.current_phase != "integration":
        raise _conflict(f"Cannot move to integration from {state.timeline.current_phase or state.session_phase}.")
    return state


@router.post("/transitions/closing/begin", response_model=SessionState)
def begin_closing(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.begin_closing_ritual()


@router.patch("/captures/{section}", response_model=SessionState)
def update_capture(
    section: str,
    update: FieldUpdate,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    return _guarded(lambda: orchestrator.update_capture(section, update.field, update.value))


@router.post("/pause", response_model=SessionState)
def pause_session(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.pause_session(request.now)


@router.post("/resume", response_model=SessionState)
def resume_session(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.resume_session(request.now)


@router.post("/complete", response_model=SessionState)
def complete_session(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    state = orchestrator.complete_session(request.now)
    if state.session_phase != "completed":
        raise _conflict(f"Cannot complete a session that is {state.session_phase}.")
    return state


@router.post("/end", response_model=SessionState)
def end_session(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.end_session(request.now)


@router.post("/reset", response_model=SessionState)
def reset_session(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.reset_session()


# Timeline ---------------------------------------------------------------------


@router.post("/modules", response_model=AddModuleResult, status_code=status.HTTP_201_CREATED)
def add_module(request: AddModuleRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> AddModuleResult:
    result = orchestrator.add_module(request.library_id, request.phase, request.position)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error)
    return result


@router.delete("/modules/{instance_id}", response_model=SessionState)
def remove_module(instance_id: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    _require_module(orchestrator, instance_id)
    return orchestrator.remove_module(instance_id)


@router.patch("/modules/{instance_id}/order", response_model=SessionState)
def reorder_module(
    instance_id: str,
    request: OrderRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_module(orchestrator, instance_id)
    if request.swap:
        return orchestrator.swap_module_order(instance_id, request.order)
    return orchestrator.reorder_module(instance_id, request.order)


@router.patch("/modules/{instance_id}/duration", response_model=SessionState)
def update_duration(
    instance_id: str,
    request: DurationRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_module(orchestrator, instance_id)
    return _guarded(lambda: orchestrator.update_module_duration(instance_id, request.duration))


@router.post("/modules/{instance_id}/start", response_model=SessionState)
def start_module(
    instance_id: str,
    request: ClockRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_module(orchestrator, instance_id)
    return orchestrator.start_module(instance_id, request.now)


@router.post("/modules/{instance_id}/complete", response_model=SessionState)
def complete_module(
    instance_id: str,
    request: ClockRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_module(orchestrator, instance_id)
    return orchestrator.complete_module(instance_id, request.now)


@router.post("/modules/{instance_id}/skip", response_model=SessionState)
def skip_module(
    instance_id: str,
    request: ClockRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    return orchestrator.skip_module(instance_id, request.now)


@router.post("/open-space", response_model=SessionState)
def enter_open_space(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.enter_open_space()


# Booster ----------------------------------------------------------------------


@router.get("/booster", response_model=BoosterStatusResponse)
def read_booster(
    now: Optional[int] = Query(default=None, ge=0),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> BoosterStatusResponse:
    return BoosterStatusResponse(
        status=orchestrator.state.booster.status,
        should_show=orchestrator.should_show_booster(now),
        snooze_available=orchestrator.is_snooze_available(now),
        suggested_dose_mg=orchestrator.booster_dose(),
    )


@router.post("/booster/take", response_model=SessionState)
def take_booster(request: BoosterTakeRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.take_booster(request.taken_at, request.now)


@router.post("/booster/time", response_model=SessionState)
def confirm_booster_time(
    request: BoosterTimeRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    return orchestrator.confirm_booster_time(request.adjusted_time)


@router.post("/booster/skip", response_model=SessionState)
def skip_booster(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.skip_booster(request.now)


@router.post("/booster/snooze", response_model=SessionState)
def snooze_booster(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.snooze_booster(request.now)


@router.post("/booster/minimize", response_model=SessionState)
def minimize_booster(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.minimize_booster(request.now)


@router.post("/booster/maximize", response_model=SessionState)
def maximize_booster(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.maximize_booster(request.now)


@router.post("/booster/hide", response_model=SessionState)
def hide_booster(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.hide_booster_modal(request.now)


@router.put("/booster/prepared", response_model=SessionState)
def update_booster_prepared(
    request: BoosterPreparedRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    return orchestrator.update_booster_prepared(request.value)


@router.patch("/booster/check-in", response_model=SessionState)
def record_booster_check_in(update: FieldUpdate, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return _guarded(lambda: orchestrator.record_booster_check_in(update.field, update.value))


# Follow-up --------------------------------------------------------------------


@router.post("/follow-up/refresh", response_model=SessionState)
def refresh_follow_up(request: ClockRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.check_follow_up_availability(request.now)


@router.post("/follow-up/exit", response_model=SessionState)
def exit_follow_up(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    return orchestrator.exit_follow_up_module()


@router.post("/follow-up/{module_key}/start", response_model=SessionState)
def start_follow_up(module_key: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> SessionState:
    _require_follow_up_key(module_key)
    state = orchestrator.start_follow_up_module(module_key)
    if state.active_follow_up_module != module_key:
        raise _conflict(f"Follow-up '{module_key}' is {state.follow_up.modules[module_key].status}.")
    return state


@router.patch("/follow-up/{module_key}", response_model=SessionState)
def update_follow_up(
    module_key: str,
    request: FollowUpDataRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_follow_up_key(module_key)
    return orchestrator.update_follow_up_module(module_key, request.data)


@router.post("/follow-up/{module_key}/complete", response_model=SessionState)
def complete_follow_up(
    module_key: str,
    request: FollowUpDataRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionState:
    _require_follow_up_key(module_key)
    state = orchestrator.complete_follow_up_module(module_key, request.data, request.now)
    if state.follow_up.modules[module_key].status != "completed":
        raise _conflict(f"Follow-up '{module_key}' is {state.follow_up.modules[module_key].status}.")
    return state


# Journal, tool panel and preferences ----------------------------------------


def _require_journal(orchestrator: SessionOrchestrator) -> JournalStore:
    if orchestrator.journal_store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="The journal is provided by the host.")
    return orchestrator.journal_store


@router.get("/journal", response_model=List[JournalEntry])
def read_journal(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> List[JournalEntry]:
    if orchestrator.journal_store is None:
        return []
    return orchestrator.journal_store.entries()


@router.patch("/journal/settings", response_model=JournalSettings)
def update_journal_settings(
    update: JournalSettingsUpdate,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> JournalSettings:
    journal = _require_journal(orchestrator)
    return _guarded(lambda: journal.update_settings(**update.model_dump(exclude_none=True)))


@router.get("/journal/{entry_id}", response_model=JournalEntry)
def read_journal_entry(entry_id: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> JournalEntry:
    entry = _require_journal(orchestrator).get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Journal entry '{entry_id}' was not found.")
    return entry


@router.patch("/journal/{entry_id}", response_model=JournalEntry)
def edit_journal_entry(
    entry_id: str,
    update: JournalEntryUpdate,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> JournalEntry:
    journal = _require_journal(orchestrator)
    return _guarded(lambda: journal.update(entry_id, update.content, now=update.now))


@router.delete("/journal/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_journal_entry(entry_id: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> None:
    if not _require_journal(orchestrator).delete(entry_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Journal entry '{entry_id}' was not found.")


@router.get("/tool-panel", response_model=ToolPanelState)
def read_tool_panel(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> ToolPanelState:
    return orchestrator.tool_panel.state


@router.post("/tool-panel/tools/{tool_id}/toggle", response_model=ToolPanelState)
def toggle_tool(tool_id: str, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> ToolPanelState:
    return orchestrator.tool_panel.toggle_tool(tool_id)


@router.post("/tool-panel/timer", response_model=ToolPanelState)
def start_tool_timer(request: TimerRequest, orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> ToolPanelState:
    return orchestrator.start_tool_timer(request.duration_minutes, request.now)


@router.delete("/tool-panel/timer", response_model=ToolPanelState)
def clear_tool_timer(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> ToolPanelState:
    return orchestrator.tool_panel.clear_timer()


@router.get("/preferences", response_model=PreferencesState)
def read_preferences(orchestrator: SessionOrchestrator = Depends(get_orchestrator)) -> PreferencesState:
    return orchestrator.preferences.state


@router.patch("/preferences", response_model=PreferencesState)
def update_preferences(
    update: PreferencesUpdate,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> PreferencesState:
    changes = update.model_dump(exclude_none=True)
    return _guarded(lambda: orchestrator.preferences.update(**changes))


__all__ = ["get_orchestrator", "router"]
