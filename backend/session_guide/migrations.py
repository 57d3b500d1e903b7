"""Versioned upgrade steps for persisted store blobs.

Each store keeps an ordered registry of pure ``upgrade(v) -> v + 1`` steps.
Loading folds every step between the stored version and the current one, so a
blob several versions behind gets each intermediate upgrade in turn.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

MigrationStep = Callable[[Dict[str, Any]], Dict[str, Any]]

TIMESTAMP_KEYS = frozenset({"ingestion_time", "timestamp"})
TIMESTAMP_CONTAINERS = frozenset({"unlock_times"})


class MigrationError(ValueError):
    """Raised when a blob cannot be brought to the requested version."""


def _add_pre_substance_activity(state: Dict[str, Any]) -> Dict[str, Any]:
    state.setdefault(
        "pre_substance_activity",
        {
            "substance_checklist_sub_phase": "part1",
            "completed_activities": [],
            "touchstone": "",
            "intention_journal_entry_id": None,
            "focus_journal_entry_id": None,
        },
    )
    return state


def _add_booster(state: Dict[str, Any]) -> Dict[str, Any]:
    answer = (state.get("intake") or {}).get("responses", {}).get("consider_booster")
    state.setdefault(
        "booster",
        {
            "consider_booster": answer in ("yes", "decide-later"),
            "booster_prepared": None,
            "status": "pending",
            "booster_taken_at": None,
            "booster_decision_at": None,
            "snooze_count": 0,
            "next_prompt_at": None,
            "check_in_responses": {},
        },
    )
    return state


def _add_transition_captures(state: Dict[str, Any]) -> Dict[str, Any]:
    state.setdefault(
        "transition_captures",
        {
            "peak": {"body_sensations": [], "one_word": "", "completed_at": None},
            "integration": {"intention_edited": False, "edited_intention": "", "completed_at": None},
            "closing": {"self_gratitude": "", "future_message": "", "commitment": "", "completed_at": None},
        },
    )
    state.setdefault("closing_check_in", {"is_visible": False})
    return state


def coerce_timestamp(value: Any) -> Optional[int]:
    """Normalise an ISO string or numeric timestamp to epoch milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Dropping unparseable timestamp %r", value)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return None


def _is_timestamp_key(key: str) -> bool:
    return key.endswith("_at") or key in TIMESTAMP_KEYS


def _coerce_tree(node: Any, *, force: bool = False) -> Any:
    if isinstance(node, dict):
        coerced: Dict[str, Any] = {}
        for key, value in node.items():
            if isinstance(value, (dict, list)):
                coerced[key] = _coerce_tree(value, force=key in TIMESTAMP_CONTAINERS)
            elif force or _is_timestamp_key(key):
                coerced[key] = coerce_timestamp(value)
            else:
                coerced[key] = value
        return coerced
    if isinstance(node, list):
        return [_coerce_tree(item) for item in node]
    return node


def _timestamps_to_ms(state: Dict[str, Any]) -> Dict[str, Any]:
    return _coerce_tree(state)


def _pass_through(state: Dict[str, Any]) -> Dict[str, Any]:
    return state


SESSION_STEPS: Dict[int, MigrationStep] = {
    2: _add_pre_substance_activity,
    3: _add_booster,
    4: _add_transition_captures,
    5: _timestamps_to_ms,
}

JOURNAL_STEPS: Dict[int, MigrationStep] = {
    0: _pass_through,
    1: _pass_through,
}


def migrate(
    state: Mapping[str, Any],
    from_version: int,
    to_version: int,
    steps: Mapping[int, MigrationStep] = SESSION_STEPS,
) -> Dict[str, Any]:
    """Apply every step from ``from_version`` up to ``to_version`` in order.

    The input mapping is never mutated. Raises :class:`MigrationError` when a
    step in the range is missing or the range runs backwards.
    """
    if from_version > to_version:
        raise MigrationError(f"Cannot downgrade from version {from_version} to {to_version}")
    upgraded: Dict[str, Any] = copy.deepcopy(dict(state))
    for version in range(from_version, to_version):
        step = steps.get(version)
        if step is None:
            raise MigrationError(f"No upgrade step registered for version {version}")
        upgraded = step(upgraded)
        logger.debug("Applied upgrade step %s -> %s", version, version + 1)
    return upgraded


__all__ = [
    "JOURNAL_STEPS",
    "MigrationError",
    "MigrationStep",
    "SESSION_STEPS",
    "coerce_timestamp",
    "migrate",
]
