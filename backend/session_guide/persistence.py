"""JSON blob stores with versioned upgrades and atomic writes."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .constants import SESSION_STORE_MIN_VERSION, SESSION_STORE_VERSION
from .migrations import SESSION_STEPS, MigrationError, MigrationStep, migrate
from .models import SessionState
from .telemetry import emit_event

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Partialize = Callable[[Dict[str, Any]], Dict[str, Any]]


def _keep_all(payload: Dict[str, Any]) -> Dict[str, Any]:
    return payload


@dataclass(frozen=True)
class StoreDefinition(Generic[ModelT]):
    """Describes one logical store: its file, schema version and upgrade path."""

    name: str
    filename: str
    model: Type[ModelT]
    version: int = 0
    min_version: int = 0
    steps: Mapping[int, MigrationStep] = field(default_factory=dict)
    partialize: Partialize = _keep_all


class StoreReset(Exception):
    """Internal signal that a stored blob must be discarded."""


def upgrade_blob(definition: StoreDefinition[Any], blob: Any) -> Tuple[Dict[str, Any], int]:
    """Return the blob's state upgraded to the current version plus the version it was stored at.

    Raises :class:`StoreReset` when the blob is malformed, too old or from a
    newer release.
    """
    if not isinstance(blob, dict) or not isinstance(blob.get("state"), dict):
        raise StoreReset("blob is not a {version, state} object")
    version = blob.get("version", 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise StoreReset(f"version {version!r} is not an integer")
    if version > definition.version:
        raise StoreReset(f"version {version} is newer than supported {definition.version}")
    if version < definition.min_version:
        raise StoreReset(f"version {version} is older than oldest supported {definition.min_version}")
    try:
        state = migrate(blob["state"], version, definition.version, definition.steps)
    except MigrationError as exc:
        raise StoreReset(str(exc)) from exc
    return state, version


def atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class BlobStore(Generic[ModelT]):
    """File-backed store for a single pydantic model wrapped as ``{"version", "state"}``."""

    def __init__(self, definition: StoreDefinition[ModelT], data_dir: Path) -> None:
        self._definition = definition
        self._path = Path(data_dir) / definition.filename
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def definition(self) -> StoreDefinition[ModelT]:
        return self._definition

    def _fresh(self) -> ModelT:
        return self._definition.model()

    def _reset(self, reason: str) -> ModelT:
        logger.warning("Resetting %s store: %s", self._definition.name, reason)
        emit_event("store_reset", store=self._definition.name, reason=reason)
        return self._fresh()

    def load(self) -> ModelT:
        with self._lock:
            if not self._path.exists():
                return self._fresh()
            try:
                with self._path.open("r", encoding="utf-8") as handle:
                    blob = json.load(handle)
            except (OSError, json.JSONDecodeError):
                logger.exception("Failed to read %s store at %s", self._definition.name, self._path)
                return self._reset("unreadable blob")
            try:
                state, stored_version = upgrade_blob(self._definition, blob)
            except StoreReset as exc:
                return self._reset(str(exc))
            try:
                model = self._definition.model.model_validate(state)
            except ValidationError:
                logger.exception("Stored %s state failed validation", self._definition.name)
                return self._reset("validation failed")
            if stored_version != self._definition.version:
                logger.info(
                    "Upgraded %s store from version %s to %s",
                    self._definition.name,
                    stored_version,
                    self._definition.version,
                )
            return model

    def dump(self, state: ModelT) -> Dict[str, Any]:
        payload = self._definition.partialize(state.model_dump(mode="json"))
        return {"version": self._definition.version, "state": payload}

    def save(self, state: ModelT) -> None:
        blob = self.dump(state)
        with self._lock:
            atomic_write_json(self._path, blob)
        logger.debug("Saved %s store to %s", self._definition.name, self._path)

    def clear(self) -> None:
        with self._lock:
            self._path.unlink(missing_ok=True)


def partialize_session(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Strip runtime-only fields from a dumped session before it is written."""
    payload.pop("playback", None)
    payload["active_follow_up_module"] = None

    check_in = payload.get("come_up_check_in", {})
    check_in["current_response"] = None
    check_in["waiting_for_check_in"] = False
    payload["peak_check_in"] = {"is_visible": False}
    payload["closing_check_in"] = {"is_visible": False}

    transitions = payload.get("phase_transitions", {})
    transitions["active_transition"] = None
    transitions["transition_completed"] = False

    modules = payload.get("modules", {})
    modules["in_open_space"] = False

    booster = payload.get("booster", {})
    status = booster.get("status")
    booster["is_modal_visible"] = status in ("prompted", "snoozed")
    booster["is_minimized"] = status == "snoozed"
    return payload


SESSION_STORE: StoreDefinition[SessionState] = StoreDefinition(
    name="session",
    filename="session.json",
    model=SessionState,
    version=SESSION_STORE_VERSION,
    min_version=SESSION_STORE_MIN_VERSION,
    steps=SESSION_STEPS,
    partialize=partialize_session,
)


def session_store(data_dir: Path, definition: Optional[StoreDefinition[SessionState]] = None) -> BlobStore[SessionState]:
    return BlobStore(definition or SESSION_STORE, data_dir)


__all__ = [
    "BlobStore",
    "SESSION_STORE",
    "StoreDefinition",
    "StoreReset",
    "atomic_write_json",
    "partialize_session",
    "session_store",
    "upgrade_blob",
]
