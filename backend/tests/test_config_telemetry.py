from __future__ import annotations

from pathlib import Path

import pytest

from session_guide.config import DEFAULT_DATA_DIR, Settings, get_settings
from session_guide.telemetry import MAX_RECENT_EVENTS, clear_listeners, emit_event, recent_events, register_listener


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> None:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_guide_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GUIDE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("GUIDE_TICK_INTERVAL_SECONDS", "15")
    monkeypatch.setenv("GUIDE_NOTIFICATIONS_DEFAULT", "true")

    settings = get_settings()

    assert settings.resolved_data_dir() == tmp_path
    assert settings.tick_interval_seconds == 15
    assert settings.notifications_default is True


def test_settings_default_data_dir(monkeypatch) -> None:
    monkeypatch.delenv("GUIDE_DATA_DIR", raising=False)
    assert Settings().resolved_data_dir() == DEFAULT_DATA_DIR  # type: ignore[call-arg]


def test_invalid_settings_raise_runtime_error(monkeypatch) -> None:
    monkeypatch.setenv("GUIDE_TICK_INTERVAL_SECONDS", "0")

    with pytest.raises(RuntimeError, match="Invalid session guide configuration"):
        get_settings()


def test_events_fan_out_and_buffer_newest_first() -> None:
    clear_listeners()
    seen = []
    register_listener(seen.append)

    emit_event("first", value=1, skipped=None)
    emit_event("second", tags={"b", "a"})

    assert [event.name for event in seen] == ["first", "second"]
    assert seen[0].payload == {"value": 1}
    assert seen[1].payload == {"tags": ["a", "b"]}
    assert [event.name for event in recent_events()] == ["second", "first"]
    assert [event.name for event in recent_events(name="first")] == ["first"]


def test_failing_listener_does_not_block_others() -> None:
    clear_listeners()
    seen = []

    def broken(event) -> None:
        raise RuntimeError("listener down")

    register_listener(broken)
    register_listener(seen.append)
    emit_event("ping")

    assert len(seen) == 1


def test_buffer_is_bounded() -> None:
    clear_listeners()
    for index in range(MAX_RECENT_EVENTS + 5):
        emit_event("tick", index=index)

    events = recent_events(limit=MAX_RECENT_EVENTS * 2)
    assert len(events) == MAX_RECENT_EVENTS
    assert events[0].payload["index"] == MAX_RECENT_EVENTS + 4
