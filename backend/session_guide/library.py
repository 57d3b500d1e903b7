"""Read-only activity catalog and the phase intensity policy consumed by the scheduler."""

from __future__ import annotations

from typing import Dict, Iterable, List, Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

Phase = Literal["come-up", "peak", "integration"]
Intensity = Literal["gentle", "moderate", "deep"]

PHASES: Sequence[str] = ("come-up", "peak", "integration")


class ModuleDefinition(BaseModel):
    """Catalog entry describing an activity that can be scheduled."""

    id: str
    title: str
    default_duration: int = Field(default=10, ge=1)
    min_duration: int = Field(default=5, ge=1)
    max_duration: int = Field(default=60, ge=1)
    intensity: Intensity = "gentle"
    allowed_phases: List[str] = Field(default_factory=lambda: list(PHASES))
    recommended_phases: List[str] = Field(default_factory=list)
    is_booster_module: bool = False
    content: Dict[str, object] = Field(default_factory=dict)


class IntensityRule(BaseModel):
    allowed: List[str] = Field(default_factory=list)
    warning: List[str] = Field(default_factory=list)
    blocked: List[str] = Field(default_factory=list)


class PlacementCheck(BaseModel):
    """Outcome of checking whether a module may be placed in a phase."""

    allowed: bool
    warning: Optional[str] = None
    error: Optional[str] = None


PHASE_INTENSITY_RULES: Dict[str, IntensityRule] = {
    "come-up": IntensityRule(allowed=["gentle"], blocked=["moderate", "deep"]),
    "peak": IntensityRule(allowed=["gentle", "moderate"], warning=["deep"]),
    "integration": IntensityRule(allowed=["gentle", "moderate", "deep"]),
}


class ModuleCatalog(Protocol):
    """Narrow read-only view of the catalog and its phase policy."""

    def get_module_by_id(self, module_id: str) -> Optional[ModuleDefinition]:  # pragma: no cover - protocol definition
        ...

    def can_add_module_to_phase(self, module_id: str, phase: str) -> PlacementCheck:  # pragma: no cover
        ...


def _entry(
    module_id: str,
    title: str,
    duration: int,
    intensity: Intensity,
    phases: Iterable[str],
    *,
    minimum: int = 5,
    maximum: int = 60,
    recommended: Iterable[str] = (),
    booster: bool = False,
    instructions: str = "",
) -> ModuleDefinition:
    return ModuleDefinition(
        id=module_id,
        title=title,
        default_duration=duration,
        min_duration=minimum,
        max_duration=maximum,
        intensity=intensity,
        allowed_phases=list(phases),
        recommended_phases=list(recommended),
        is_booster_module=booster,
        content={"instructions": instructions} if instructions else {},
    )


DEFAULT_MODULES: List[ModuleDefinition] = [
    _entry("simple-grounding", "Simple Grounding", 5, "gentle", PHASES, recommended=["come-up"]),
    _entry("grounding-basic", "Grounding Meditation", 10, "gentle", PHASES, maximum=20, recommended=["come-up"]),
    _entry("breathing-box", "Box Breathing", 5, "gentle", PHASES, maximum=15),
    _entry("music-listening", "Music Immersion", 20, "gentle", PHASES, minimum=10, maximum=60, recommended=PHASES),
    _entry("open-space", "Open Space", 20, "gentle", PHASES, maximum=90, recommended=PHASES),
    _entry("break", "Break", 10, "gentle", PHASES, maximum=20),
    _entry("body-scan", "Body Scan", 10, "gentle", ("come-up", "peak"), maximum=30, recommended=["peak"]),
    _entry("open-awareness", "Open Awareness", 15, "moderate", ("peak", "integration"), maximum=30),
    _entry("self-compassion", "Self-Compassion", 11, "moderate", ("peak", "integration"), maximum=30),
    _entry("light-journaling", "Light Journaling", 15, "moderate", ("peak", "integration"), maximum=30),
    _entry("letter-writing", "Letter Writing", 25, "deep", ("peak", "integration"), minimum=15, maximum=45),
    _entry("deep-journaling", "Deep Journaling", 25, "deep", ("integration",), minimum=15, maximum=45),
    _entry("parts-work", "Parts Work", 30, "deep", ("integration",), minimum=20, maximum=60),
    _entry("closing-ritual", "Closing Ritual", 15, "moderate", ("integration",), maximum=30),
    _entry(
        "booster-consideration",
        "Booster Check-In",
        5,
        "gentle",
        ("peak",),
        maximum=5,
        booster=True,
        instructions="Marks where the booster decision falls; the prompt itself is time based.",
    ),
]


class ModuleLibrary:
    """In-memory catalog; never mutated by the engine."""

    def __init__(
        self,
        modules: Optional[Iterable[ModuleDefinition]] = None,
        rules: Optional[Dict[str, IntensityRule]] = None,
    ) -> None:
        entries = list(modules) if modules is not None else DEFAULT_MODULES
        self._modules: Dict[str, ModuleDefinition] = {entry.id: entry for entry in entries}
        self._rules = dict(rules) if rules is not None else dict(PHASE_INTENSITY_RULES)

    def get_module_by_id(self, module_id: str) -> Optional[ModuleDefinition]:
        entry = self._modules.get(module_id)
        return entry.model_copy(deep=True) if entry else None

    def can_add_module_to_phase(self, module_id: str, phase: str) -> PlacementCheck:
        module = self._modules.get(module_id)
        if module is None:
            return PlacementCheck(allowed=False, error="Module not found")

        rules = self._rules.get(phase)
        if rules is None:
            return PlacementCheck(allowed=False, error="Invalid phase")

        if phase not in module.allowed_phases:
            return PlacementCheck(
                allowed=False,
                error=f'"{module.title}" is not available during the {phase} phase.',
            )

        if module.intensity in rules.blocked:
            return PlacementCheck(
                allowed=False,
                error=(
                    f"{module.intensity} intensity modules are not available during {phase}. "
                    "This phase is for gentler activities."
                ),
            )

        if module.intensity in rules.warning:
            return PlacementCheck(
                allowed=True,
                warning=(
                    f'"{module.title}" is designed for the Integration phase. You may find it more '
                    "effective later in your session when you've settled into a more grounded state."
                ),
            )

        return PlacementCheck(allowed=True)


default_library = ModuleLibrary()

__all__ = [
    "DEFAULT_MODULES",
    "IntensityRule",
    "ModuleCatalog",
    "ModuleDefinition",
    "ModuleLibrary",
    "PHASES",
    "PHASE_INTENSITY_RULES",
    "PlacementCheck",
    "default_library",
]
