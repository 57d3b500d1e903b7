"""Scheduling engine: queue mutations and the "what runs next" policy.

Every operation is a reducer that takes a :class:`SessionState` and returns a
new one; the input is never mutated. Unknown instance ids and calls that would
corrupt the timeline are logged and leave the state unchanged.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel

from .constants import BOOSTER_MODULE_ID
from .library import PHASES, ModuleCatalog
from .models import (
    TERMINAL_MODULE_STATUSES,
    HistoryRecord,
    ModuleInstance,
    SessionState,
    clone,
    find_module,
    generate_instance_id,
)
from .timeline import (
    active_in_phase,
    booster_instance,
    insert_module,
    modules_for_phase,
    move_module,
    next_upcoming,
    renumber,
)

logger = logging.getLogger(__name__)


class AddModuleResult(BaseModel):
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    module: Optional[ModuleInstance] = None


class PhaseValidation(BaseModel):
    valid: bool = True
    warning: bool = False
    total_duration: int = 0
    allocated: Optional[int] = None
    max_duration: Optional[int] = None


def add_module(
    state: SessionState,
    library: ModuleCatalog,
    library_id: str,
    phase: str,
    position: Optional[int] = None,
    *,
    now: Optional[int] = None,
) -> Tuple[SessionState, AddModuleResult]:
    definition = library.get_module_by_id(library_id)
    if definition is None:
        return state, AddModuleResult(success=False, error="Module not found")

    if library_id == BOOSTER_MODULE_ID and booster_instance(state.modules.items) is not None:
        return state, AddModuleResult(
            success=False,
            error="A Booster Check-In is already in your timeline.",
        )

    placement = library.can_add_module_to_phase(library_id, phase)
    if not placement.allowed:
        return state, AddModuleResult(success=False, error=placement.error)

    updated = clone(state)
    items = updated.modules.items
    sibling_count = len(modules_for_phase(items, phase))
    if library_id == BOOSTER_MODULE_ID and position is None:
        order = min(1, sibling_count)
    elif position is None:
        order = sibling_count
    else:
        order = max(0, min(position, sibling_count))

    module = ModuleInstance(
        instance_id=generate_instance_id(now),
        library_id=library_id,
        phase=phase,  # type: ignore[arg-type]
        title=definition.title,
        duration=definition.default_duration,
        order=order,
        is_booster_module=definition.is_booster_module,
    )
    insert_module(items, module)

    if library_id == BOOSTER_MODULE_ID:
        updated.booster.consider_booster = True

    return updated, AddModuleResult(
        success=True,
        warning=placement.warning,
        module=module.model_copy(deep=True),
    )


def remove_module(state: SessionState, instance_id: str) -> SessionState:
    target = find_module(state, instance_id)
    if target is None:
        logger.warning("remove_module ignored: unknown instance %s", instance_id)
        return state

    updated = clone(state)
    updated.modules.items = [module for module in updated.modules.items if module.instance_id != instance_id]
    renumber(updated.modules.items, target.phase)
    if updated.modules.current_module_instance_id == instance_id:
        updated.modules.current_module_instance_id = None
    if target.library_id == BOOSTER_MODULE_ID:
        updated.booster.consider_booster = False
    return updated


def reorder_module(state: SessionState, instance_id: str, new_order: int) -> SessionState:
    if find_module(state, instance_id) is None:
        logger.warning("reorder_module ignored: unknown instance %s", instance_id)
        return state
    updated = clone(state)
    module = find_module(updated, instance_id)
    assert module is not None
    move_module(updated.modules.items, module, new_order)
    return updated


def swap_module_order(state: SessionState, instance_id: str, new_order: int) -> SessionState:
    module = find_module(state, instance_id)
    if module is None:
        logger.warning("swap_module_order ignored: unknown instance %s", instance_id)
        return state
    if abs(new_order - module.order) != 1:
        logger.warning("swap_module_order ignored: position %s is not adjacent to %s", new_order, module.order)
        return state

    target = next(
        (other for other in state.modules.items if other.phase == module.phase and other.order == new_order),
        None,
    )
    if target is None:
        return state

    updated = clone(state)
    for entry in updated.modules.items:
        if entry.instance_id == module.instance_id:
            entry.order = new_order
        elif entry.instance_id == target.instance_id:
            entry.order = module.order
    return updated


def update_module_duration(state: SessionState, instance_id: str, duration: int) -> SessionState:
    if duration < 1:
        raise ValueError("Module duration must be at least one minute.")
    if find_module(state, instance_id) is None:
        logger.warning("update_module_duration ignored: unknown instance %s", instance_id)
        return state
    updated = clone(state)
    module = find_module(updated, instance_id)
    assert module is not None
    module.duration = duration
    return updated


def start_module(state: SessionState, instance_id: str, now: int) -> SessionState:
    module = find_module(state, instance_id)
    if module is None or module.is_booster_module:
        return state
    if module.status in TERMINAL_MODULE_STATUSES:
        logger.warning("start_module ignored: %s is already %s", instance_id, module.status)
        return state
    running = active_in_phase(state.modules.items, module.phase)
    if running is not None and running.instance_id != instance_id:
        logger.warning(
            "start_module ignored: %s is already active in %s",
            running.instance_id,
            module.phase,
        )
        return state

    updated = clone(state)
    target = find_module(updated, instance_id)
    assert target is not None
    target.status = "active"
    target.started_at = now
    updated.modules.current_module_instance_id = instance_id
    updated.modules.in_open_space = False
    return updated


def complete_module(state: SessionState, instance_id: str, now: int) -> SessionState:
    return _finish_module(state, instance_id, "completed", now)


def skip_module(state: SessionState, instance_id: str, now: int) -> SessionState:
    return _finish_module(state, instance_id, "skipped", now)


def _finish_module(state: SessionState, instance_id: str, status: str, now: int) -> SessionState:
    module = find_module(state, instance_id)
    if module is None:
        # TODO: decide whether an unknown id should surface an error to the host instead of a no-op.
        logger.warning("%s ignored: module %s not found", status, instance_id)
        return state
    if module.status in TERMINAL_MODULE_STATUSES:
        logger.warning("%s ignored: module %s is already %s", status, instance_id, module.status)
        return state

    updated = clone(state)
    target = find_module(updated, instance_id)
    assert target is not None
    actual_seconds: Optional[int] = None
    if status == "completed":
        actual_seconds = (now - target.started_at) // 1000 if target.started_at else target.duration * 60
    target.status = status  # type: ignore[assignment]
    target.completed_at = now
    updated.modules.history.append(
        HistoryRecord(**target.model_dump(exclude={"status"}), status=status, actual_duration_seconds=actual_seconds)  # type: ignore[arg-type]
    )

    current_phase = updated.timeline.current_phase
    following = next_upcoming(updated.modules.items, current_phase)

    if current_phase == "come-up":
        updated.modules.current_module_instance_id = None
        updated.modules.in_open_space = following is None
        check_in = updated.come_up_check_in
        check_in.is_minimized = False
        if check_in.has_indicated_fully_arrived:
            check_in.show_end_of_phase_choice = True
        else:
            check_in.prompt_count += 1
            check_in.last_prompt_at = now
        return updated

    running = active_in_phase(updated.modules.items, current_phase) if current_phase else None
    if running is not None:
        updated.modules.current_module_instance_id = running.instance_id
        return updated

    if following is not None:
        following.status = "active"
        following.started_at = now
        updated.modules.current_module_instance_id = following.instance_id
        updated.modules.in_open_space = False
        return updated

    updated.modules.current_module_instance_id = None
    updated.modules.in_open_space = True
    if current_phase == "peak":
        updated.peak_check_in.is_visible = True
    elif current_phase == "integration":
        updated.closing_check_in.is_visible = True
    return updated


def enter_open_space(state: SessionState) -> SessionState:
    if state.modules.in_open_space:
        return state
    updated = clone(state)
    updated.modules.in_open_space = True
    return updated


def get_next_module(state: SessionState) -> Optional[ModuleInstance]:
    return next_upcoming(state.modules.items, state.timeline.current_phase)


def get_current_module(state: SessionState) -> Optional[ModuleInstance]:
    current_id = state.modules.current_module_instance_id
    if not current_id:
        return None
    module = find_module(state, current_id)
    if module is None or module.is_booster_module:
        return None
    return module


def get_modules_for_phase(state: SessionState, phase: str) -> List[ModuleInstance]:
    return modules_for_phase(state.modules.items, phase)


def get_phase_duration(state: SessionState, phase: str) -> int:
    return sum(module.duration for module in state.modules.items if module.phase == phase)


def get_total_duration(state: SessionState) -> int:
    return sum(module.duration for module in state.modules.items)


def get_session_progress(state: SessionState) -> float:
    items = state.modules.items
    if not items:
        return 0.0
    finished = sum(1 for module in items if module.status in TERMINAL_MODULE_STATUSES)
    return finished / len(items) * 100


def validate_phase_modules(state: SessionState, phase: str) -> PhaseValidation:
    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}")
    total = get_phase_duration(state, phase)
    window = state.timeline.phases.window(phase)
    if phase == "come-up" and window.max_duration is not None and total > window.max_duration:
        return PhaseValidation(warning=True, total_duration=total, max_duration=window.max_duration)
    return PhaseValidation(total_duration=total, allocated=window.allocated_duration)


__all__ = [
    "AddModuleResult",
    "PhaseValidation",
    "add_module",
    "complete_module",
    "enter_open_space",
    "get_current_module",
    "get_modules_for_phase",
    "get_next_module",
    "get_phase_duration",
    "get_session_progress",
    "get_total_duration",
    "remove_module",
    "reorder_module",
    "skip_module",
    "start_module",
    "swap_module_order",
    "update_module_duration",
    "validate_phase_modules",
]
