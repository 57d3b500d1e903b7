"""Module catalog, phase intensity policy and default timeline layout."""

from __future__ import annotations

from session_guide.library import default_library
from session_guide.timeline import (
    booster_instance,
    build_default_timeline,
    modules_for_phase,
    orders_are_contiguous,
)

T0 = 1_700_000_000_000


def test_catalog_returns_copies() -> None:
    entry = default_library.get_module_by_id("body-scan")
    entry.title = "Changed"

    assert default_library.get_module_by_id("body-scan").title == "Body Scan"
    assert default_library.get_module_by_id("missing") is None


def test_intensity_policy_per_phase() -> None:
    assert default_library.can_add_module_to_phase("simple-grounding", "come-up").allowed is True
    assert default_library.can_add_module_to_phase("open-awareness", "come-up").allowed is False

    deep_at_peak = default_library.can_add_module_to_phase("letter-writing", "peak")
    assert deep_at_peak.allowed is True
    assert deep_at_peak.warning is not None

    assert default_library.can_add_module_to_phase("parts-work", "integration").warning is None
    assert default_library.can_add_module_to_phase("body-scan", "afterglow").error == "Invalid phase"
    assert default_library.can_add_module_to_phase("missing", "peak").error == "Module not found"


def test_default_timeline_layout() -> None:
    items = build_default_timeline(default_library, include_booster=False, now=T0)

    assert [module.library_id for module in modules_for_phase(items, "come-up")] == [
        "simple-grounding",
        "music-listening",
        "open-space",
    ]
    assert [module.duration for module in modules_for_phase(items, "peak")] == [10, 11, 25, 20]
    assert booster_instance(items) is None
    assert orders_are_contiguous(items)
    assert len({module.instance_id for module in items}) == len(items)


def test_booster_slots_into_peak_second_position() -> None:
    items = build_default_timeline(default_library, include_booster=True, now=T0)
    peak = modules_for_phase(items, "peak")

    assert peak[1].library_id == "booster-consideration"
    assert peak[1].is_booster_module is True
    assert peak[0].library_id == "body-scan"
    assert peak[2].library_id == "self-compassion"
    assert orders_are_contiguous(items)
