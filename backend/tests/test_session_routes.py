from __future__ import annotations

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("GUIDE_LOG_LEVEL", "WARNING")

from session_guide.main import create_app  # noqa: E402
from session_guide.orchestrator import SessionOrchestrator  # noqa: E402
from session_guide.telemetry import clear_listeners  # noqa: E402

T0 = 1_700_000_000_000
MINUTE = 60_000


@pytest.fixture()
def client(tmp_path: Path) -> TestClient:
    clear_listeners()
    orchestrator = SessionOrchestrator(tmp_path, clock=lambda: T0)
    return TestClient(create_app(orchestrator))


def _start(client: TestClient) -> dict:
    assert client.post("/api/session/intake/start").status_code == 200
    response = client.patch("/api/session/intake/responses", json={"field": "consider_booster", "value": "yes"})
    assert response.status_code == 200
    assert client.post("/api/session/intake/complete", json={}).status_code == 200
    assert client.post("/api/session/checklist/ingestion", json={"time": T0}).status_code == 200
    response = client.post("/api/session/start", json={"now": T0})
    assert response.status_code == 200
    return response.json()


def test_health_reports_session_phase(client: TestClient) -> None:
    response = client.get("/healthz")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["session_phase"] == "not-started"
    assert payload["tick_interval_seconds"] >= 1


def test_start_without_timeline_conflicts(client: TestClient) -> None:
    response = client.post("/api/session/start", json={})
    assert response.status_code == 409
    assert "at least one module" in response.json()["detail"]


def test_session_start_flow(client: TestClient) -> None:
    state = _start(client)

    assert state["session_phase"] == "active"
    assert state["timeline"]["current_phase"] == "come-up"
    assert len(state["modules"]["items"]) == 11
    assert client.get("/api/session/state").json()["session_phase"] == "active"


def test_duplicate_booster_is_unprocessable(client: TestClient) -> None:
    _start(client)

    response = client.post("/api/session/modules", json={"library_id": "booster-consideration", "phase": "peak"})

    assert response.status_code == 422
    assert response.json()["detail"] == "A Booster Check-In is already in your timeline."


def test_add_module_returns_warning(client: TestClient) -> None:
    _start(client)

    response = client.post("/api/session/modules", json={"library_id": "letter-writing", "phase": "peak"})

    assert response.status_code == 201
    payload = response.json()
    assert payload["success"] is True
    assert "Integration phase" in payload["warning"]


def test_unknown_fields_and_modules(client: TestClient) -> None:
    _start(client)

    assert client.patch("/api/session/intake/responses", json={"field": "nope", "value": 1}).status_code == 422
    assert client.delete("/api/session/modules/missing").status_code == 404
    assert client.post("/api/session/modules/missing/skip", json={}).status_code == 200
    assert client.patch("/api/session/captures/opening", json={"field": "x", "value": "y"}).status_code == 422


def test_wrong_phase_transition_conflicts(client: TestClient) -> None:
    _start(client)

    response = client.post("/api/session/transitions/integration", json={"now": T0 + 60 * MINUTE})

    assert response.status_code == 409
    peak = client.post("/api/session/transitions/peak", json={"now": T0 + 60 * MINUTE})
    assert peak.status_code == 200
    assert peak.json()["timeline"]["current_phase"] == "peak"


def test_tick_surfaces_booster_prompt_and_events(client: TestClient) -> None:
    _start(client)

    response = client.post("/api/session/tick", json={"now": T0 + 90 * MINUTE})

    assert response.status_code == 200
    assert [signal["name"] for signal in response.json()["signals"]] == ["booster_prompted"]
    booster = client.get("/api/session/booster", params={"now": T0 + 91 * MINUTE}).json()
    assert booster["status"] == "prompted"
    assert booster["snooze_available"] is True
    events = client.get("/api/session/events", params={"name": "booster_prompted"}).json()
    assert len(events) == 1

    snoozed = client.post("/api/session/booster/snooze", json={"now": T0 + 92 * MINUTE}).json()
    assert snoozed["booster"]["status"] == "snoozed"


def test_follow_up_routes_validate_key_and_status(client: TestClient) -> None:
    assert client.post("/api/session/follow-up/someday/start").status_code == 404
    assert client.post("/api/session/follow-up/check_in/start").status_code == 409


def test_progress_and_preferences(client: TestClient) -> None:
    _start(client)

    progress = client.get("/api/session/progress").json()
    assert progress["progress"] == 0.0
    assert progress["next_module"]["library_id"] == "simple-grounding"

    updated = client.patch("/api/session/preferences", json={"notifications_enabled": True})
    assert updated.status_code == 200
    assert client.get("/api/session/preferences").json()["notifications_enabled"] is True


def test_journal_entries_can_be_read_edited_and_deleted(client: TestClient) -> None:
    _start(client)
    client.patch("/api/session/captures/peak", json={"field": "one_word", "value": "open"})
    client.post("/api/session/transitions/peak", json={"now": T0 + 60 * MINUTE})
    [entry] = client.get("/api/session/journal").json()

    assert client.get(f"/api/session/journal/{entry['id']}").json()["module_title"] == "Peak Transition"
    edited = client.patch(f"/api/session/journal/{entry['id']}", json={"content": "Lighter now\nand warm", "now": T0})
    assert edited.status_code == 200
    assert edited.json()["title"] == "Lighter now"
    assert edited.json()["preview"] == "and warm"

    assert client.delete(f"/api/session/journal/{entry['id']}").status_code == 204
    assert client.get(f"/api/session/journal/{entry['id']}").status_code == 404
    assert client.patch("/api/session/journal/missing", json={"content": "x"}).status_code == 404
    assert client.delete("/api/session/journal/missing").status_code == 404


def test_journal_settings_validate_choices(client: TestClient) -> None:
    updated = client.patch("/api/session/journal/settings", json={"font_size": "large"})

    assert updated.status_code == 200
    assert updated.json()["font_size"] == "large"
    assert client.patch("/api/session/journal/settings", json={"font_size": "huge"}).status_code == 422


def test_tool_panel_round_trip(client: TestClient) -> None:
    assert client.get("/api/session/tool-panel").json()["open_tools"] == []

    opened = client.post("/api/session/tool-panel/tools/breathing/toggle").json()
    assert opened["open_tools"] == ["breathing"]
    timer = client.post("/api/session/tool-panel/timer", json={"duration_minutes": 3}).json()
    assert timer["timer_duration_minutes"] == 3
    assert timer["timer_started_at"] == T0
    assert client.delete("/api/session/tool-panel/timer").json()["timer_started_at"] is None
    assert client.post("/api/session/tool-panel/timer", json={"duration_minutes": 0}).status_code == 422
