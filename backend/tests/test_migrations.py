"""Upgrade steps for persisted session blobs."""

from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

from session_guide.constants import SESSION_STORE_VERSION
from session_guide.migrations import JOURNAL_STEPS, MigrationError, coerce_timestamp, migrate
from session_guide.models import SessionState

JAN_FIRST_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z


def _version_two_blob() -> Dict[str, Any]:
    return {
        "session_phase": "active",
        "intake": {"is_complete": True, "responses": {"consider_booster": "yes", "start_time": "19:30"}},
        "substance_checklist": {"has_taken_substance": True, "ingestion_time": "2024-01-01T00:00:00Z"},
        "timeline": {
            "current_phase": "come-up",
            "scheduled_start_time": "19:30",
            "phases": {"come_up": {"started_at": "2024-01-01T00:00:00.000Z"}},
        },
        "modules": {
            "items": [
                {
                    "instance_id": "a",
                    "library_id": "simple-grounding",
                    "phase": "come-up",
                    "order": 0,
                    "duration": 5,
                    "status": "active",
                    "started_at": "2024-01-01T00:05:00+00:00",
                }
            ],
            "history": [],
        },
        "come_up_check_in": {
            "responses": [
                {"response": "starting", "timestamp": "2024-01-01T00:20:00", "minutes_since_ingestion": 20}
            ],
            "last_prompt_at": JAN_FIRST_MS,
        },
    }


def test_upgrades_compose_across_intermediate_versions() -> None:
    blob = _version_two_blob()

    direct = migrate(blob, 2, SESSION_STORE_VERSION)
    staged = migrate(migrate(blob, 2, 4), 4, SESSION_STORE_VERSION)

    assert direct == staged


def test_version_two_blob_upgrades_to_valid_state() -> None:
    upgraded = migrate(_version_two_blob(), 2, SESSION_STORE_VERSION)
    state = SessionState.model_validate(upgraded)

    assert state.pre_substance_activity.substance_checklist_sub_phase == "part1"
    assert state.booster.consider_booster is True
    assert state.booster.status == "pending"
    assert state.transition_captures.peak.completed_at is None
    assert state.closing_check_in.is_visible is False
    assert state.substance_checklist.ingestion_time == JAN_FIRST_MS
    assert state.timeline.phases.come_up.started_at == JAN_FIRST_MS
    assert state.modules.items[0].started_at == JAN_FIRST_MS + 5 * 60_000
    assert state.come_up_check_in.responses[0].timestamp == JAN_FIRST_MS + 20 * 60_000
    assert state.come_up_check_in.last_prompt_at == JAN_FIRST_MS
    assert state.timeline.scheduled_start_time == "19:30"
    assert state.intake.responses.start_time == "19:30"


def test_migrate_does_not_mutate_input() -> None:
    blob = _version_two_blob()
    snapshot = copy.deepcopy(blob)

    migrate(blob, 2, SESSION_STORE_VERSION)

    assert blob == snapshot


def test_existing_sections_are_kept() -> None:
    blob = _version_two_blob()
    blob["pre_substance_activity"] = {"touchstone": "breathe", "completed_activities": ["intention"]}

    upgraded = migrate(blob, 2, 3)

    assert upgraded["pre_substance_activity"]["touchstone"] == "breathe"


def test_unlock_times_are_coerced_even_without_suffix() -> None:
    blob = {"follow_up": {"unlock_times": {"check_in": "2024-01-01T00:00:00Z", "revisit": None}}}

    upgraded = migrate(blob, 5, 6)

    assert upgraded["follow_up"]["unlock_times"] == {"check_in": JAN_FIRST_MS, "revisit": None}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-01-01T00:00:00Z", JAN_FIRST_MS),
        ("2024-01-01T01:00:00+01:00", JAN_FIRST_MS),
        ("2024-01-01T00:00:00", JAN_FIRST_MS),
        (str(JAN_FIRST_MS), JAN_FIRST_MS),
        (JAN_FIRST_MS, JAN_FIRST_MS),
        (float(JAN_FIRST_MS), JAN_FIRST_MS),
        ("yesterday", None),
        ("", None),
        (None, None),
        (True, None),
    ],
)
def test_coerce_timestamp(raw: Any, expected: Any) -> None:
    assert coerce_timestamp(raw) == expected


def test_missing_step_and_downgrade_are_errors() -> None:
    with pytest.raises(MigrationError):
        migrate({}, 1, SESSION_STORE_VERSION)
    with pytest.raises(MigrationError):
        migrate({}, SESSION_STORE_VERSION, 2)


def test_journal_upgrade_passes_entries_through() -> None:
    blob = {"entries": [{"id": "1", "content": "hello"}]}
    assert migrate(blob, 1, 2, JOURNAL_STEPS) == blob
