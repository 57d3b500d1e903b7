"""Scheduling engine: queue mutations and the next-module policy."""

from __future__ import annotations

import pytest

from session_guide import phases
from session_guide.library import ModuleDefinition, ModuleLibrary, default_library
from session_guide.models import SessionState, find_module
from session_guide.scheduler import (
    add_module,
    complete_module,
    enter_open_space,
    get_current_module,
    get_modules_for_phase,
    get_next_module,
    get_phase_duration,
    get_session_progress,
    get_total_duration,
    remove_module,
    reorder_module,
    skip_module,
    start_module,
    swap_module_order,
    update_module_duration,
    validate_phase_modules,
)
from session_guide.timeline import orders_are_contiguous


T0 = 1_700_000_000_000
MINUTE = 60_000


def _active_session(*, booster: bool = False) -> SessionState:
    state = phases.start_intake(SessionState())
    if booster:
        state = phases.update_intake_response(state, "consider_booster", "yes")
    state = phases.complete_intake(state, default_library, now=T0)
    state = phases.record_ingestion_time(state, T0)
    return phases.start_session(state, T0)


def _peak_session(*, booster: bool = False) -> SessionState:
    return phases.transition_to_peak(_active_session(booster=booster), T0 + 60 * MINUTE)


def _ids(state: SessionState, phase: str) -> list[str]:
    return [module.instance_id for module in get_modules_for_phase(state, phase)]


def test_come_up_completion_prompts_check_in_without_starting_next_module() -> None:
    state = _active_session()
    first = _ids(state, "come-up")[0]

    updated = complete_module(state, first, T0 + 5 * MINUTE)

    assert find_module(updated, first).status == "completed"
    assert len(updated.modules.history) == 1
    assert updated.modules.history[0].actual_duration_seconds == 5 * 60
    assert all(module.status != "active" for module in get_modules_for_phase(updated, "come-up"))
    assert updated.modules.current_module_instance_id is None
    assert updated.come_up_check_in.prompt_count == 1
    assert updated.come_up_check_in.is_minimized is False
    assert updated.modules.in_open_space is False


def test_come_up_completion_after_full_arrival_offers_end_of_phase_choice() -> None:
    state = _active_session()
    state = phases.record_check_in_response(state, "fully-arrived", T0 + 20 * MINUTE)
    state = phases.dismiss_end_of_phase_choice(state)

    updated = complete_module(state, _ids(state, "come-up")[0], T0 + 25 * MINUTE)

    assert updated.come_up_check_in.show_end_of_phase_choice is True
    assert updated.come_up_check_in.prompt_count == 0


def test_peak_completion_auto_activates_next_module_and_records_history() -> None:
    state = _peak_session()
    body_scan, self_compassion = _ids(state, "peak")[:2]
    assert find_module(state, body_scan).status == "active"

    updated = complete_module(state, body_scan, T0 + 70 * MINUTE)

    assert find_module(updated, body_scan).status == "completed"
    assert updated.modules.history[-1].instance_id == body_scan
    assert updated.modules.history[-1].actual_duration_seconds == 600
    following = find_module(updated, self_compassion)
    assert following.status == "active"
    assert following.started_at == T0 + 70 * MINUTE
    assert updated.modules.current_module_instance_id == self_compassion


def test_auto_activation_skips_booster_placeholder() -> None:
    state = _peak_session(booster=True)
    peak = get_modules_for_phase(state, "peak")
    assert peak[1].is_booster_module

    updated = complete_module(state, peak[0].instance_id, T0 + 70 * MINUTE)

    assert find_module(updated, peak[1].instance_id).status == "upcoming"
    assert find_module(updated, peak[2].instance_id).status == "active"


def test_terminal_status_is_never_revisited() -> None:
    state = _peak_session()
    body_scan = _ids(state, "peak")[0]
    completed = complete_module(state, body_scan, T0 + 70 * MINUTE)

    assert complete_module(completed, body_scan, T0 + 71 * MINUTE) is completed
    assert skip_module(completed, body_scan, T0 + 71 * MINUTE) is completed
    assert len(completed.modules.history) == 1


def test_skip_records_history_without_duration() -> None:
    state = _peak_session()
    body_scan = _ids(state, "peak")[0]

    updated = skip_module(state, body_scan, T0 + 61 * MINUTE)

    record = updated.modules.history[-1]
    assert record.status == "skipped"
    assert record.actual_duration_seconds is None


def test_skip_with_unknown_id_leaves_state_untouched() -> None:
    state = _peak_session()
    assert skip_module(state, "does-not-exist", T0) is state


def test_finishing_last_integration_module_opens_closing_check_in() -> None:
    state = phases.transition_to_integration(_peak_session(), T0 + 150 * MINUTE)
    for index in range(3):
        current = get_current_module(state)
        assert current is not None, f"expected an active module at step {index}"
        state = skip_module(state, current.instance_id, T0 + (151 + index) * MINUTE)

    assert state.modules.in_open_space is True
    assert state.modules.current_module_instance_id is None
    assert state.closing_check_in.is_visible is True


def test_finishing_last_peak_module_opens_peak_check_in() -> None:
    state = _peak_session()
    for offset in range(4):
        current = get_current_module(state)
        state = complete_module(state, current.instance_id, T0 + (61 + offset) * MINUTE)

    assert state.peak_check_in.is_visible is True
    assert state.modules.in_open_space is True


def test_second_booster_is_rejected() -> None:
    state = _active_session(booster=True)

    updated, result = add_module(state, default_library, "booster-consideration", "peak")

    assert result.success is False
    assert result.error == "A Booster Check-In is already in your timeline."
    assert updated is state


def test_removing_booster_clears_consider_flag() -> None:
    state = _active_session(booster=True)
    booster = next(module for module in state.modules.items if module.is_booster_module)
    assert state.booster.consider_booster is True

    updated = remove_module(state, booster.instance_id)

    assert updated.booster.consider_booster is False
    assert orders_are_contiguous(updated.modules.items)


def test_adding_booster_defaults_to_second_slot_and_sets_flag() -> None:
    state = _active_session()

    updated, result = add_module(state, default_library, "booster-consideration", "peak", now=T0)

    assert result.success
    assert result.module.order == 1
    assert updated.booster.consider_booster is True
    assert orders_are_contiguous(updated.modules.items)


def test_add_module_at_position_shifts_siblings() -> None:
    state = _active_session()
    before = _ids(state, "come-up")

    updated, result = add_module(state, default_library, "breathing-box", "come-up", 0, now=T0)

    assert result.success
    assert _ids(updated, "come-up") == [result.module.instance_id, *before]
    assert orders_are_contiguous(updated.modules.items)


def test_add_module_rejects_unknown_and_disallowed_modules() -> None:
    state = _active_session()

    _, missing = add_module(state, default_library, "nope", "peak")
    _, wrong_phase = add_module(state, default_library, "parts-work", "come-up")

    assert missing.error == "Module not found"
    assert wrong_phase.success is False
    assert "not available during the come-up phase" in wrong_phase.error


def test_add_module_blocks_intensity_and_warns_for_deep_peak_work() -> None:
    library = ModuleLibrary(
        [
            ModuleDefinition(id="reflection", title="Reflection", intensity="moderate"),
            ModuleDefinition(id="inner-dialogue", title="Inner Dialogue", intensity="deep"),
        ]
    )
    state = _active_session()

    _, blocked = add_module(state, library, "reflection", "come-up")
    updated, warned = add_module(state, library, "inner-dialogue", "peak")

    assert blocked.success is False
    assert "moderate intensity modules are not available during come-up" in blocked.error
    assert warned.success is True
    assert "Integration phase" in warned.warning
    assert len(updated.modules.items) == len(state.modules.items) + 1


def test_reorder_keeps_orders_contiguous() -> None:
    state = _active_session()
    come_up = _ids(state, "come-up")

    updated = reorder_module(state, come_up[-1], 0)

    assert _ids(updated, "come-up") == [come_up[-1], *come_up[:-1]]
    assert orders_are_contiguous(updated.modules.items)


def test_swap_requires_adjacent_position() -> None:
    state = _active_session()
    come_up = _ids(state, "come-up")

    assert swap_module_order(state, come_up[0], 2) is state
    swapped = swap_module_order(state, come_up[0], 1)
    assert _ids(swapped, "come-up") == [come_up[1], come_up[0], come_up[2]]


def test_update_duration_validates_minimum() -> None:
    state = _active_session()
    target = _ids(state, "come-up")[0]

    with pytest.raises(ValueError):
        update_module_duration(state, target, 0)
    assert find_module(update_module_duration(state, target, 12), target).duration == 12


def test_start_module_refuses_second_active_module_in_phase() -> None:
    state = _active_session()
    first, second = _ids(state, "come-up")[:2]
    running = start_module(state, first, T0 + MINUTE)

    assert start_module(running, second, T0 + 2 * MINUTE) is running
    assert get_current_module(running).instance_id == first
    assert get_next_module(running).instance_id == second


def test_progress_and_phase_validation() -> None:
    state = _active_session()
    assert get_session_progress(state) == 0.0
    assert validate_phase_modules(state, "come-up").warning is False

    crowded, _ = add_module(state, default_library, "music-listening", "come-up", now=T0)
    validation = validate_phase_modules(crowded, "come-up")
    assert validation.warning is True
    assert validation.total_duration == 65

    first = _ids(state, "come-up")[0]
    done = complete_module(state, first, T0 + MINUTE)
    assert get_session_progress(done) == pytest.approx(100 / len(state.modules.items))


def test_durations_sum_module_minutes() -> None:
    state = _active_session()
    target = _ids(state, "peak")[0]
    before = get_phase_duration(state, "peak")

    longer = update_module_duration(state, target, find_module(state, target).duration + 5)

    assert get_phase_duration(longer, "peak") == before + 5
    assert get_phase_duration(longer, "come-up") == get_phase_duration(state, "come-up")
    assert get_total_duration(longer) == sum(
        get_phase_duration(longer, phase) for phase in ("come-up", "peak", "integration")
    )


def test_enter_open_space_is_idempotent() -> None:
    state = enter_open_space(_active_session())

    assert state.modules.in_open_space is True
    assert enter_open_space(state) is state


def test_finishing_last_come_up_module_opens_space_without_starting_peak() -> None:
    state = _active_session()
    come_up = _ids(state, "come-up")
    for index, instance_id in enumerate(come_up, start=1):
        state = complete_module(state, instance_id, T0 + index * 10 * MINUTE)

    assert state.modules.in_open_space is True
    assert state.modules.current_module_instance_id is None
    assert state.timeline.current_phase == "come-up"
    assert all(module.status == "upcoming" for module in get_modules_for_phase(state, "peak"))
    assert state.come_up_check_in.prompt_count == len(come_up)
