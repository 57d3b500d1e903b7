"""Journal store: the default sink for reflections captured during a session."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .constants import JOURNAL_STORE_VERSION
from .migrations import JOURNAL_STEPS
from .models import now_ms
from .persistence import BlobStore, StoreDefinition

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 60
PREVIEW_MAX_LENGTH = 120

EntrySource = Literal["session", "manual"]


class JournalSettings(BaseModel):
    font_size: Literal["small", "medium", "large"] = "medium"
    font_family: Literal["sans", "serif", "mono"] = "sans"
    line_height: Literal["compact", "normal", "relaxed"] = "normal"


class JournalEntry(BaseModel):
    id: str
    content: str
    title: str = ""
    preview: str = ""
    source: EntrySource = "manual"
    module_title: Optional[str] = None
    created_at: int
    updated_at: int


class JournalState(BaseModel):
    entries: List[JournalEntry] = Field(default_factory=list)
    settings: JournalSettings = Field(default_factory=JournalSettings)


JOURNAL_STORE: StoreDefinition[JournalState] = StoreDefinition(
    name="journal",
    filename="journal.json",
    model=JournalState,
    version=JOURNAL_STORE_VERSION,
    min_version=0,
    steps=JOURNAL_STEPS,
)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def extract_title(content: str) -> str:
    for line in content.splitlines():
        stripped = line.strip()
        if stripped:
            return _truncate(stripped, TITLE_MAX_LENGTH)
    return "Untitled"


def extract_preview(content: str) -> str:
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    return _truncate(" ".join(lines[1:]), PREVIEW_MAX_LENGTH)


class JournalStore:
    """Persisted journal; every append is written through immediately."""

    def __init__(self, data_dir: Path) -> None:
        self._store = BlobStore(JOURNAL_STORE, data_dir)
        self._state = self._store.load()

    @property
    def state(self) -> JournalState:
        return self._state.model_copy(deep=True)

    def entries(self) -> List[JournalEntry]:
        return sorted(self.state.entries, key=lambda entry: entry.created_at, reverse=True)

    def get(self, entry_id: str) -> Optional[JournalEntry]:
        for entry in self._state.entries:
            if entry.id == entry_id:
                return entry.model_copy(deep=True)
        return None

    def append(
        self,
        content: str,
        source: EntrySource = "session",
        module_title: Optional[str] = None,
        *,
        now: Optional[int] = None,
    ) -> JournalEntry:
        stamp = now if now is not None else now_ms()
        entry = JournalEntry(
            id=uuid.uuid4().hex,
            content=content,
            title=extract_title(content),
            preview=extract_preview(content),
            source=source,
            module_title=module_title,
            created_at=stamp,
            updated_at=stamp,
        )
        self._state.entries.append(entry)
        self._store.save(self._state)
        logger.debug("Appended journal entry %s (%s)", entry.id, source)
        return entry.model_copy(deep=True)

    def update(self, entry_id: str, content: str, *, now: Optional[int] = None) -> JournalEntry:
        for entry in self._state.entries:
            if entry.id == entry_id:
                entry.content = content
                entry.title = extract_title(content)
                entry.preview = extract_preview(content)
                entry.updated_at = now if now is not None else now_ms()
                self._store.save(self._state)
                return entry.model_copy(deep=True)
        raise LookupError(f"Journal entry '{entry_id}' was not found.")

    def delete(self, entry_id: str) -> bool:
        remaining = [entry for entry in self._state.entries if entry.id != entry_id]
        if len(remaining) == len(self._state.entries):
            return False
        self._state.entries = remaining
        self._store.save(self._state)
        return True

    def update_settings(self, **changes: str) -> JournalSettings:
        payload = self._state.settings.model_dump()
        payload.update(changes)
        self._state.settings = JournalSettings.model_validate(payload)
        self._store.save(self._state)
        return self._state.settings.model_copy()


__all__ = [
    "JOURNAL_STORE",
    "JournalEntry",
    "JournalSettings",
    "JournalState",
    "JournalStore",
    "extract_preview",
    "extract_title",
]
