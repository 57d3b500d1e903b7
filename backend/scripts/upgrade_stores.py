from __future__ import annotations

import argparse
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from session_guide.config import get_settings
from session_guide.journal import JOURNAL_STORE
from session_guide.persistence import SESSION_STORE, StoreDefinition, StoreReset, atomic_write_json, upgrade_blob
from session_guide.preferences import PREFERENCES_STORE, TOOL_PANEL_STORE


logger = logging.getLogger("upgrade_stores")

STORES: List[StoreDefinition[Any]] = [SESSION_STORE, JOURNAL_STORE, TOOL_PANEL_STORE, PREFERENCES_STORE]


def _load_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def upgrade_store(definition: StoreDefinition[Any], data_dir: Path, *, dry_run: bool = False, backup: bool = False) -> str:
    """Bring one store file to its current version and report what happened.

    Returns ``missing``, ``current``, ``upgraded`` or ``reset``.
    """
    path = data_dir / definition.filename
    if not path.exists():
        logger.info("No %s store found at %s", definition.name, path)
        return "missing"

    try:
        blob = _load_json(path)
        state, stored_version = upgrade_blob(definition, blob)
        model = definition.model.model_validate(state)
    except (json.JSONDecodeError, StoreReset, ValidationError) as exc:
        logger.warning("Resetting %s store at %s: %s", definition.name, path, exc)
        outcome = "reset"
        model = definition.model()
    else:
        if stored_version == definition.version:
            logger.info("%s store already at version %d", definition.name, stored_version)
            return "current"
        logger.info("Upgrading %s store from version %d to %d", definition.name, stored_version, definition.version)
        outcome = "upgraded"

    if dry_run:
        return outcome
    if backup:
        shutil.copy2(path, path.with_suffix(path.suffix + ".bak"))
    payload = definition.partialize(model.model_dump(mode="json"))
    atomic_write_json(path, {"version": definition.version, "state": payload})
    return outcome


def upgrade_all(
    data_dir: Path,
    *,
    stores: Optional[Iterable[StoreDefinition[Any]]] = None,
    dry_run: bool = False,
    backup: bool = False,
) -> Dict[str, str]:
    return {
        definition.name: upgrade_store(definition, data_dir, dry_run=dry_run, backup=backup)
        for definition in (stores or STORES)
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upgrade persisted session guide stores to their current versions.")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory holding the store files.")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing.")
    parser.add_argument("--backup", action="store_true", help="Keep a .bak copy of every rewritten file.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    data_dir = args.data_dir or get_settings().resolved_data_dir()
    results = upgrade_all(data_dir, dry_run=args.dry_run, backup=args.backup)
    logger.info(
        "Upgrade %s: %s",
        "dry run completed" if args.dry_run else "completed",
        ", ".join(f"{name}={outcome}" for name, outcome in results.items()),
    )


if __name__ == "__main__":
    main()
