"""Follow-up sub-aggregate reducers; module status only ever moves forward."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .models import FOLLOW_UP_KEYS, SessionState, clone
from .triggers import check_follow_up_availability

logger = logging.getLogger(__name__)


def _require_key(module_key: str) -> None:
    if module_key not in FOLLOW_UP_KEYS:
        raise ValueError(f"Unknown follow-up module: {module_key}")


def refresh_follow_up(state: SessionState, now: int) -> SessionState:
    follow_up = check_follow_up_availability(state.follow_up, now)
    if follow_up is state.follow_up:
        return state
    updated = clone(state)
    updated.follow_up = follow_up
    return updated


def start_follow_up_module(state: SessionState, module_key: str) -> SessionState:
    _require_key(module_key)
    if state.follow_up.modules[module_key].status != "available":
        logger.warning("Follow-up %s is %s; cannot start", module_key, state.follow_up.modules[module_key].status)
        return state
    updated = clone(state)
    updated.active_follow_up_module = module_key  # type: ignore[assignment]
    return updated


def update_follow_up_module(state: SessionState, module_key: str, data: Dict[str, Any]) -> SessionState:
    _require_key(module_key)
    updated = clone(state)
    updated.follow_up.modules[module_key].responses.update(data)
    return updated


def complete_follow_up_module(
    state: SessionState,
    module_key: str,
    now: int,
    data: Optional[Dict[str, Any]] = None,
) -> SessionState:
    _require_key(module_key)
    module = state.follow_up.modules[module_key]
    if module.status != "available":
        logger.warning("Follow-up %s is %s; cannot complete", module_key, module.status)
        return state
    updated = clone(state)
    target = updated.follow_up.modules[module_key]
    if data:
        target.responses.update(data)
    target.status = "completed"
    target.completed_at = now
    updated.active_follow_up_module = None
    return updated


def exit_follow_up_module(state: SessionState) -> SessionState:
    if state.active_follow_up_module is None:
        return state
    updated = clone(state)
    updated.active_follow_up_module = None
    return updated


__all__ = [
    "complete_follow_up_module",
    "exit_follow_up_module",
    "refresh_follow_up",
    "start_follow_up_module",
    "update_follow_up_module",
]
