from __future__ import annotations

import json
from pathlib import Path
from typing import List

from session_guide.constants import SESSION_STORE_VERSION
from session_guide.models import SessionState
from session_guide.persistence import SESSION_STORE, session_store
from session_guide.playback import start_playback
from session_guide.preferences import PreferencesStore, ToolPanelStore
from session_guide.journal import JournalStore
from session_guide.telemetry import TelemetryEvent, clear_listeners, register_listener

T0 = 1_700_000_000_000


def _collect_events() -> List[TelemetryEvent]:
    events: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    return events


def _write(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_missing_file_loads_fresh_state(tmp_path: Path) -> None:
    assert session_store(tmp_path).load() == SessionState()


def test_save_strips_runtime_fields(tmp_path: Path) -> None:
    store = session_store(tmp_path)
    state = SessionState(session_phase="active")
    state.playback = start_playback("module-1", T0)
    state.active_follow_up_module = "check_in"
    state.come_up_check_in.current_response = "starting"
    state.come_up_check_in.waiting_for_check_in = True
    state.peak_check_in.is_visible = True
    state.phase_transitions.active_transition = "come-up-to-peak"
    state.modules.in_open_space = True
    state.booster.status = "snoozed"

    store.save(state)
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    loaded = store.load()

    assert raw["version"] == SESSION_STORE_VERSION
    assert "playback" not in raw["state"]
    assert loaded.session_phase == "active"
    assert loaded.playback.started_at is None
    assert loaded.active_follow_up_module is None
    assert loaded.come_up_check_in.current_response is None
    assert loaded.come_up_check_in.waiting_for_check_in is False
    assert loaded.peak_check_in.is_visible is False
    assert loaded.phase_transitions.active_transition is None
    assert loaded.modules.in_open_space is False
    assert loaded.booster.is_modal_visible is True
    assert loaded.booster.is_minimized is True


def test_save_leaves_no_temp_files(tmp_path: Path) -> None:
    store = session_store(tmp_path)
    store.save(SessionState())
    store.save(SessionState(session_phase="intake"))

    assert sorted(path.name for path in tmp_path.iterdir()) == ["session.json"]
    assert store.load().session_phase == "intake"


def test_corrupt_blob_resets_and_reports(tmp_path: Path) -> None:
    events = _collect_events()
    (tmp_path / SESSION_STORE.filename).write_text("{not json", encoding="utf-8")

    assert session_store(tmp_path).load() == SessionState()
    assert [event.name for event in events] == ["store_reset"]
    assert events[0].payload["store"] == "session"


def test_too_old_and_too_new_versions_reset(tmp_path: Path) -> None:
    events = _collect_events()
    path = tmp_path / SESSION_STORE.filename

    _write(path, {"version": 1, "state": {"session_phase": "active"}})
    assert session_store(tmp_path).load().session_phase == "not-started"

    _write(path, {"version": SESSION_STORE_VERSION + 1, "state": {"session_phase": "active"}})
    assert session_store(tmp_path).load().session_phase == "not-started"

    assert len(events) == 2


def test_invalid_state_after_upgrade_resets(tmp_path: Path) -> None:
    _write(tmp_path / SESSION_STORE.filename, {"version": SESSION_STORE_VERSION, "state": {"session_phase": "dreaming"}})
    assert session_store(tmp_path).load() == SessionState()


def test_old_blob_is_upgraded_on_load(tmp_path: Path) -> None:
    _write(
        tmp_path / SESSION_STORE.filename,
        {
            "version": 2,
            "state": {
                "session_phase": "completed",
                "session": {"closed_at": "2024-01-01T00:00:00Z"},
            },
        },
    )

    state = session_store(tmp_path).load()

    assert state.session_phase == "completed"
    assert state.session.closed_at == 1_704_067_200_000
    assert state.booster.status == "pending"


def test_journal_store_appends_and_extracts_titles(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path)
    entry = journal.append("Arriving at the peak\nIn one word: open", "session", "Peak Transition", now=T0)

    reopened = JournalStore(tmp_path)

    assert entry.title == "Arriving at the peak"
    assert entry.preview == "In one word: open"
    assert [item.id for item in reopened.entries()] == [entry.id]
    assert reopened.get(entry.id).module_title == "Peak Transition"
    assert reopened.delete(entry.id) is True
    assert reopened.delete(entry.id) is False


def test_journal_version_one_blob_gets_default_settings(tmp_path: Path) -> None:
    _write(
        tmp_path / "journal.json",
        {
            "version": 1,
            "state": {
                "entries": [
                    {"id": "1", "content": "hello", "created_at": T0, "updated_at": T0},
                ]
            },
        },
    )

    journal = JournalStore(tmp_path)

    assert journal.state.settings.font_size == "medium"
    assert journal.entries()[0].content == "hello"


def test_preferences_default_from_settings_and_persist(tmp_path: Path) -> None:
    preferences = PreferencesStore(tmp_path, notifications_default=True)
    assert preferences.notifications_enabled is True

    preferences.update(notifications_enabled=False)

    assert PreferencesStore(tmp_path, notifications_default=True).notifications_enabled is False


def test_tool_panel_toggles_and_timer(tmp_path: Path) -> None:
    panel = ToolPanelStore(tmp_path)
    panel.toggle_tool("breathing")
    panel.start_timer(3, T0)

    reopened = ToolPanelStore(tmp_path)
    assert reopened.state.open_tools == ["breathing"]
    assert reopened.state.timer_started_at == T0

    assert reopened.toggle_tool("breathing").open_tools == []
    assert reopened.clear_timer().timer_started_at is None
