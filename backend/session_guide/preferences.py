"""Device preferences and tool-panel layout stores."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from .persistence import BlobStore, StoreDefinition


class PreferencesState(BaseModel):
    notifications_enabled: bool = False
    reduce_motion: bool = False
    dark_mode: bool = True


class ToolPanelState(BaseModel):
    open_tools: List[str] = Field(default_factory=list)
    timer_duration_minutes: int = Field(default=5, ge=1)
    timer_started_at: Optional[int] = None


PREFERENCES_STORE: StoreDefinition[PreferencesState] = StoreDefinition(
    name="preferences",
    filename="preferences.json",
    model=PreferencesState,
)

TOOL_PANEL_STORE: StoreDefinition[ToolPanelState] = StoreDefinition(
    name="tool-panel",
    filename="tool-panel.json",
    model=ToolPanelState,
)


class PreferencesStore:
    def __init__(self, data_dir: Path, *, notifications_default: bool = False) -> None:
        self._store = BlobStore(PREFERENCES_STORE, data_dir)
        if self._store.path.exists():
            self._state = self._store.load()
        else:
            self._state = PreferencesState(notifications_enabled=notifications_default)

    @property
    def state(self) -> PreferencesState:
        return self._state.model_copy()

    @property
    def notifications_enabled(self) -> bool:
        return self._state.notifications_enabled

    def update(self, **changes: bool) -> PreferencesState:
        payload = self._state.model_dump()
        unknown = set(changes) - set(payload)
        if unknown:
            raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        payload.update(changes)
        self._state = PreferencesState.model_validate(payload)
        self._store.save(self._state)
        return self.state


class ToolPanelStore:
    def __init__(self, data_dir: Path) -> None:
        self._store = BlobStore(TOOL_PANEL_STORE, data_dir)
        self._state = self._store.load()

    @property
    def state(self) -> ToolPanelState:
        return self._state.model_copy(deep=True)

    def toggle_tool(self, tool_id: str) -> ToolPanelState:
        if tool_id in self._state.open_tools:
            self._state.open_tools = [tool for tool in self._state.open_tools if tool != tool_id]
        else:
            self._state.open_tools.append(tool_id)
        self._store.save(self._state)
        return self.state

    def start_timer(self, duration_minutes: int, now: int) -> ToolPanelState:
        self._state = ToolPanelState(
            open_tools=list(self._state.open_tools),
            timer_duration_minutes=duration_minutes,
            timer_started_at=now,
        )
        self._store.save(self._state)
        return self.state

    def clear_timer(self) -> ToolPanelState:
        self._state.timer_started_at = None
        self._store.save(self._state)
        return self.state


__all__ = [
    "PREFERENCES_STORE",
    "PreferencesState",
    "PreferencesStore",
    "TOOL_PANEL_STORE",
    "ToolPanelState",
    "ToolPanelStore",
]
