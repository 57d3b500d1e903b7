"""Outbound collaborators of the orchestrator and their best-effort wrappers.

Prefetching content, showing notifications and appending journal entries are
side effects the session can live without. Failures are logged and never reach
orchestration state.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from .models import ModuleInstance

logger = logging.getLogger(__name__)


class JournalSink(Protocol):
    def append(self, content: str, source: str = "session", module_title: Optional[str] = None) -> object: ...


class ContentPrefetcher(Protocol):
    def precache(self, library_id: str) -> None: ...

    def precache_timeline(self, modules: Iterable[ModuleInstance]) -> None: ...


class Notifier(Protocol):
    def notify(self, title: str, body: str, tag: str) -> None: ...


class NullPrefetcher:
    def precache(self, library_id: str) -> None:
        return None

    def precache_timeline(self, modules: Iterable[ModuleInstance]) -> None:
        return None


class LoggingNotifier:
    """Default notifier for headless hosts: notifications become log lines."""

    def notify(self, title: str, body: str, tag: str) -> None:
        logger.info("Notification [%s] %s: %s", tag, title, body)


class BestEffort:
    """Wraps collaborators so that any exception is logged and swallowed."""

    def __init__(
        self,
        journal: Optional[JournalSink] = None,
        prefetcher: Optional[ContentPrefetcher] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.journal = journal
        self.prefetcher = prefetcher or NullPrefetcher()
        self.notifier = notifier or LoggingNotifier()

    def append_journal(self, content: str, module_title: Optional[str] = None) -> bool:
        if self.journal is None or not content.strip():
            return False
        try:
            self.journal.append(content, "session", module_title)
        except Exception:  # noqa: BLE001
            logger.exception("Journal append failed for %s", module_title or "session entry")
            return False
        return True

    def precache(self, library_id: str) -> None:
        try:
            self.prefetcher.precache(library_id)
        except Exception:  # noqa: BLE001
            logger.exception("Content prefetch failed for %s", library_id)

    def precache_timeline(self, modules: Iterable[ModuleInstance]) -> None:
        try:
            self.prefetcher.precache_timeline(list(modules))
        except Exception:  # noqa: BLE001
            logger.exception("Timeline prefetch failed")

    def notify(self, title: str, body: str, tag: str) -> None:
        try:
            self.notifier.notify(title, body, tag)
        except Exception:  # noqa: BLE001
            logger.exception("Notification %s failed", tag)


__all__ = [
    "BestEffort",
    "ContentPrefetcher",
    "JournalSink",
    "LoggingNotifier",
    "Notifier",
    "NullPrefetcher",
]
