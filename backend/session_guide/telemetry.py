"""In-process signal telemetry for the orchestration engine.

Signals raised by the engine (check-in prompts, booster prompts, follow-up
unlocks) are fanned out to registered listeners, kept in a short ring buffer
for the host to poll, and logged as structured JSON lines.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger("session_guide.telemetry")

MAX_RECENT_EVENTS = 100


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)


_listeners: List[Callable[[TelemetryEvent], None]] = []
_recent: Deque[TelemetryEvent] = deque(maxlen=MAX_RECENT_EVENTS)
_lock = RLock()


def register_listener(listener: Callable[[TelemetryEvent], None]) -> None:
    """Register an in-process listener (used in tests)."""
    with _lock:
        _listeners.append(listener)


def clear_listeners() -> None:
    """Remove all registered listeners and buffered events. Mainly used to reset test state."""
    with _lock:
        _listeners.clear()
        _recent.clear()


def recent_events(limit: int = 20, name: Optional[str] = None) -> List[TelemetryEvent]:
    """Return the newest buffered events first, optionally filtered by name."""
    with _lock:
        events = list(_recent)
    events.reverse()
    if name is not None:
        events = [event for event in events if event.name == name]
    return events[: max(limit, 0)]


def emit_event(name: str, **fields: Any) -> None:
    """Emit a structured telemetry event and fan it out to listeners."""
    payload = _sanitize(fields)
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)
        _recent.append(event)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    structured = {"event": name, **payload}
    logger.info("TELEMETRY %s", json.dumps(structured, default=str))


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, (set, frozenset)):
            sanitized[key] = sorted(value)
        else:
            sanitized[key] = value
    return sanitized


__all__ = [
    "MAX_RECENT_EVENTS",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "recent_events",
    "register_listener",
]
