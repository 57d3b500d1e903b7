"""Timeline model helpers: phase-grouped, contiguously ordered module instances."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from .constants import BOOSTER_MODULE_ID
from .library import ModuleCatalog
from .models import ModuleInstance, generate_instance_id

# (library id, phase, fallback title, duration in minutes)
DEFAULT_TIMELINE: Tuple[Tuple[str, str, str, int], ...] = (
    ("simple-grounding", "come-up", "Simple Grounding", 5),
    ("music-listening", "come-up", "Music Immersion", 20),
    ("open-space", "come-up", "Open Space", 20),
    ("body-scan", "peak", "Body Scan", 10),
    ("self-compassion", "peak", "Self-Compassion", 11),
    ("letter-writing", "peak", "Letter Writing", 25),
    ("music-listening", "peak", "Music Immersion", 20),
    ("open-awareness", "integration", "Open Awareness", 15),
    ("parts-work", "integration", "Parts Work", 30),
    ("music-listening", "integration", "Music Immersion", 20),
)

BOOSTER_TIMELINE_ORDER = 1


def modules_for_phase(items: Iterable[ModuleInstance], phase: Optional[str]) -> List[ModuleInstance]:
    return sorted((module for module in items if module.phase == phase), key=lambda module: module.order)


def renumber(items: List[ModuleInstance], phase: str) -> None:
    """Close any gaps in the order run of one phase, keeping relative order."""
    for index, module in enumerate(modules_for_phase(items, phase)):
        module.order = index


def next_upcoming(items: Iterable[ModuleInstance], phase: Optional[str]) -> Optional[ModuleInstance]:
    """First upcoming, non-booster module of a phase in ascending order."""
    if phase is None:
        return None
    for module in modules_for_phase(items, phase):
        if module.status == "upcoming" and not module.is_booster_module:
            return module
    return None


def active_in_phase(items: Iterable[ModuleInstance], phase: str) -> Optional[ModuleInstance]:
    for module in items:
        if module.phase == phase and module.status == "active":
            return module
    return None


def booster_instance(items: Iterable[ModuleInstance]) -> Optional[ModuleInstance]:
    for module in items:
        if module.library_id == BOOSTER_MODULE_ID or module.is_booster_module:
            return module
    return None


def insert_module(items: List[ModuleInstance], module: ModuleInstance) -> None:
    """Insert at ``module.order`` and shift later siblings by one."""
    for existing in items:
        if existing.phase == module.phase and existing.order >= module.order:
            existing.order += 1
    items.append(module)


def move_module(items: List[ModuleInstance], module: ModuleInstance, new_order: int) -> None:
    siblings = modules_for_phase(items, module.phase)
    siblings.remove(module)
    target = max(0, min(new_order, len(siblings)))
    siblings.insert(target, module)
    for index, sibling in enumerate(siblings):
        sibling.order = index


def build_default_timeline(
    library: ModuleCatalog,
    *,
    include_booster: bool,
    now: Optional[int] = None,
) -> List[ModuleInstance]:
    """Build the fixed starting queue; intake answers beyond the booster choice do not alter it."""
    items: List[ModuleInstance] = []
    for library_id, phase, fallback_title, duration in DEFAULT_TIMELINE:
        definition = library.get_module_by_id(library_id)
        items.append(
            ModuleInstance(
                instance_id=generate_instance_id(now),
                library_id=library_id,
                phase=phase,  # type: ignore[arg-type]
                title=definition.title if definition else fallback_title,
                duration=duration,
                order=len(modules_for_phase(items, phase)),
            )
        )

    if include_booster:
        definition = library.get_module_by_id(BOOSTER_MODULE_ID)
        booster = ModuleInstance(
            instance_id=generate_instance_id(now),
            library_id=BOOSTER_MODULE_ID,
            phase="peak",
            title=definition.title if definition else "Booster Check-In",
            duration=definition.default_duration if definition else 5,
            order=BOOSTER_TIMELINE_ORDER,
            is_booster_module=True,
        )
        insert_module(items, booster)

    return items


def orders_are_contiguous(items: Iterable[ModuleInstance]) -> bool:
    materialized = list(items)
    for phase in {module.phase for module in materialized}:
        orders = [module.order for module in modules_for_phase(materialized, phase)]
        if orders != list(range(len(orders))):
            return False
    return True


__all__ = [
    "DEFAULT_TIMELINE",
    "active_in_phase",
    "booster_instance",
    "build_default_timeline",
    "insert_module",
    "modules_for_phase",
    "move_module",
    "next_upcoming",
    "orders_are_contiguous",
    "renumber",
]
