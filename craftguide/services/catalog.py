from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from loguru import logger

from craftguide.schemas.enums import CraftType, Difficulty, SkillLevel
from craftguide.schemas.templates import ProjectStep, ProjectTemplate, UserProfile


class TemplateCatalog(ABC):
    """Read-only source of project templates."""

    @abstractmethod
    def get_template(self, template_id: str) -> Optional[ProjectTemplate]:
        raise NotImplementedError

    @abstractmethod
    def list_templates(self) -> List[ProjectTemplate]:
        raise NotImplementedError


class StaticTemplateCatalog(TemplateCatalog):
    def __init__(self, templates: Iterable[ProjectTemplate]) -> None:
        self._templates: List[ProjectTemplate] = list(templates)
        self._by_id: Dict[str, ProjectTemplate] = {}
        for template in self._templates:
            if template.id in self._by_id:
                raise ValueError(f"Duplicate template id: {template.id}")
            if len(set(template.step_ids())) != len(template.steps):
                raise ValueError(f"Duplicate step id in template {template.id}")
            self._by_id[template.id] = template

    def get_template(self, template_id: str) -> Optional[ProjectTemplate]:
        return self._by_id.get(template_id)

    def list_templates(self) -> List[ProjectTemplate]:
        return list(self._templates)


def load_catalog(path: str | Path) -> StaticTemplateCatalog:
    """Build a catalog from a JSON file holding a list of templates."""
    with Path(path).open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    if not isinstance(raw, list):
        raise ValueError(f"Template catalog at {path} must be a JSON list")
    templates = [ProjectTemplate.model_validate(entry) for entry in raw]
    logger.info(f"Loaded {len(templates)} templates from {path}")
    return StaticTemplateCatalog(templates)


# ---------- recommendation ----------

# A learner may be nudged one level up from where they are.
_STRETCH_LEVELS = {
    SkillLevel.novice: {SkillLevel.novice, SkillLevel.apprentice},
}


def _sort_key(template: ProjectTemplate):
    return (not template.is_popular, -template.completion_rate)


def get_recommended_templates(catalog: TemplateCatalog, profile: UserProfile) -> List[ProjectTemplate]:
    """Templates matching the profile's crafts and level, popular first.

    Falls back to the beginner subset, then to the whole catalog, so an empty
    result only ever means the catalog itself is empty.
    """
    templates = catalog.list_templates()
    interests = set(profile.craft_interests)
    levels = _STRETCH_LEVELS.get(profile.skill_level, {profile.skill_level})

    matches = [
        template
        for template in templates
        if (template.craft_type in interests or CraftType.general in interests)
        and template.skill_level in levels
    ]
    if matches:
        return sorted(matches, key=_sort_key)

    beginner = [t for t in templates if t.difficulty == Difficulty.beginner]
    logger.debug(
        f"No template matches interests={sorted(i.value for i in interests)} "
        f"level={profile.skill_level.value}; falling back"
    )
    return sorted(beginner or templates, key=_sort_key)


def templates_by_craft(catalog: TemplateCatalog, craft_type: CraftType) -> List[ProjectTemplate]:
    return [t for t in catalog.list_templates() if t.craft_type == craft_type]


def templates_by_skill_level(catalog: TemplateCatalog, skill_level: SkillLevel) -> List[ProjectTemplate]:
    return [t for t in catalog.list_templates() if t.skill_level == skill_level]


def popular_template_names(catalog: TemplateCatalog) -> List[str]:
    popular = [t for t in catalog.list_templates() if t.is_popular]
    return [t.name for t in sorted(popular, key=lambda t: -t.completion_rate)]


# ---------- built-in catalog ----------

BUILTIN_TEMPLATES: List[ProjectTemplate] = [
    ProjectTemplate(
        id="simple-cutting-board",
        name="Simple Cutting Board",
        description="Create your first wooden cutting board using basic woodworking techniques",
        craft_type=CraftType.woodworking,
        skill_level=SkillLevel.novice,
        difficulty=Difficulty.beginner,
        estimated_minutes=120,
        materials=[
            'Pine or hardwood board (12" x 8" x 1")',
            "Wood finish or food-safe oil",
            "Sandpaper (120, 220 grit)",
        ],
        tools=["Hand saw or circular saw", "Sander or sanding block", "Measuring tape", "Pencil"],
        is_popular=True,
        completion_rate=85,
        tips=[
            "Start with softer woods like pine for easier cutting",
            "Always sand with the grain, not against it",
            "Apply thin coats of finish for best results",
        ],
        steps=[
            ProjectStep(
                id="measure-cut",
                title="Measure and Cut",
                description="Mark and cut your board to size",
                instructions=[
                    "Measure and mark your desired dimensions",
                    "Use a straight edge to ensure clean lines",
                    "Cut slowly and steadily with your saw",
                ],
                tips=["Measure twice, cut once!", "Support the wood properly while cutting"],
                estimated_minutes=30,
                photo_required=True,
                safety_notes=["Wear safety glasses", "Keep fingers away from blade"],
                success_criteria=["Board is cut to correct dimensions", "Edges are reasonably straight"],
            ),
            ProjectStep(
                id="sand-smooth",
                title="Sand Smooth",
                description="Sand the board to a smooth finish",
                instructions=[
                    "Start with 120 grit sandpaper",
                    "Sand all surfaces evenly",
                    "Progress to 220 grit for final smoothing",
                ],
                tips=["Sand with the grain direction", "Check for smoothness by touch"],
                estimated_minutes=45,
                photo_required=True,
                common_mistakes=["Sanding against the grain", "Skipping grits"],
                success_criteria=["Surface feels smooth to touch", "No visible scratches remain"],
            ),
            ProjectStep(
                id="apply-finish",
                title="Apply Finish",
                description="Protect your cutting board with food-safe finish",
                instructions=[
                    "Clean off all sanding dust",
                    "Apply thin, even coats of finish",
                    "Allow proper drying time between coats",
                ],
                tips=["Use food-safe finishes only", "Apply in well-ventilated area"],
                estimated_minutes=45,
                photo_required=True,
                success_criteria=["Even finish coverage", "No drips or bubbles", "Smooth final surface"],
            ),
        ],
    ),
    ProjectTemplate(
        id="leather-keychain",
        name="Leather Keychain",
        description="Craft a simple leather keychain to learn basic leatherworking skills",
        craft_type=CraftType.leathercraft,
        skill_level=SkillLevel.novice,
        difficulty=Difficulty.beginner,
        estimated_minutes=90,
        materials=[
            "Vegetable-tanned leather (3-4 oz)",
            "Leather dye or stain",
            "Keyring hardware",
            "Leather conditioner",
        ],
        tools=["Craft knife", "Cutting mat", "Leather punch", "Edge beveler", "Burnishing tool"],
        is_popular=True,
        completion_rate=78,
        tips=[
            "Use vegetable-tanned leather for best results",
            "Sharp tools make cleaner cuts",
            "Take your time with edge finishing",
        ],
        steps=[
            ProjectStep(
                id="cut-shape",
                title="Cut Leather Shape",
                description="Cut your keychain to the desired shape",
                instructions=[
                    "Draw your design on paper first",
                    "Transfer pattern to leather",
                    "Cut carefully with sharp craft knife",
                ],
                tips=["Keep knife perpendicular to leather", "Make multiple light passes"],
                estimated_minutes=20,
                photo_required=True,
                safety_notes=["Always cut away from your body", "Use sharp blades only"],
                success_criteria=["Clean, straight cuts", "Shape matches your design"],
            ),
            ProjectStep(
                id="punch-hole",
                title="Punch Keyring Hole",
                description="Create a clean hole for the keyring",
                instructions=[
                    "Mark hole location carefully",
                    "Use appropriate size punch",
                    "Punch from grain side through",
                ],
                tips=["Punch over cutting mat", "Ensure hole is properly centered"],
                estimated_minutes=10,
                photo_required=True,
                success_criteria=["Round, clean hole", "No torn edges", "Proper size for keyring"],
            ),
            ProjectStep(
                id="finish-edges",
                title="Finish Edges",
                description="Bevel and burnish edges for professional look",
                instructions=[
                    "Bevel all edges with edge beveler",
                    "Sand edges lightly if needed",
                    "Burnish with burnishing tool",
                ],
                tips=["Work slowly for even bevels", "Burnish until edges shine"],
                estimated_minutes=30,
                photo_required=True,
                success_criteria=["Smooth, rounded edges", "No rough spots", "Professional appearance"],
            ),
            ProjectStep(
                id="dye-condition",
                title="Dye and Condition",
                description="Add color and protect the leather",
                instructions=[
                    "Apply dye evenly with cloth",
                    "Allow to dry completely",
                    "Apply leather conditioner",
                ],
                tips=["Test dye on scrap first", "Apply thin, even coats"],
                estimated_minutes=30,
                photo_required=True,
                success_criteria=["Even color coverage", "No streaks or blotches", "Leather feels supple"],
            ),
        ],
    ),
    ProjectTemplate(
        id="simple-bottle-opener",
        name="Simple Bottle Opener",
        description="Create a functional bottle opener using basic metalworking techniques",
        craft_type=CraftType.metalworking,
        skill_level=SkillLevel.novice,
        difficulty=Difficulty.beginner,
        estimated_minutes=150,
        materials=['Steel bar (1/4" x 1" x 6")', "Metal polish", "Clear coat (optional)"],
        tools=["Hacksaw", "Files", "Drill with bits", "Sandpaper", "Safety equipment"],
        is_popular=False,
        completion_rate=65,
        tips=[
            "Take your time with filing - it's therapeutic",
            "Deburr all edges for safety",
            "Practice on scrap metal first",
        ],
        steps=[
            ProjectStep(
                id="cut-shape",
                title="Cut Basic Shape",
                description="Cut the steel bar to create the opener shape",
                instructions=["Mark your cutting lines", "Secure work in vise", "Cut slowly with hacksaw"],
                tips=["Let the saw do the work", "Support the cutoff piece"],
                estimated_minutes=30,
                photo_required=True,
                safety_notes=["Wear safety glasses", "Secure workpiece properly"],
                success_criteria=["Clean cuts", "Proper dimensions", "No cracks or damage"],
            ),
            ProjectStep(
                id="file-shape",
                title="File to Shape",
                description="Use files to create the opener profile",
                instructions=["Secure work in vise", "File the opener notch", "Shape the handle end"],
                tips=["File on the push stroke only", "Keep files clean"],
                estimated_minutes=60,
                photo_required=True,
                success_criteria=["Functional opener notch", "Smooth handle", "Good proportions"],
            ),
            ProjectStep(
                id="drill-handle",
                title="Drill Handle Hole",
                description="Add a hole for hanging or attachment",
                instructions=["Mark hole location", "Start with center punch", "Drill slowly with cutting oil"],
                tips=["Use cutting oil for smooth drilling", "Deburr hole when finished"],
                estimated_minutes=15,
                photo_required=True,
                safety_notes=["Secure work firmly", "Use proper drill speed"],
                success_criteria=["Clean, round hole", "No burrs", "Proper location"],
            ),
            ProjectStep(
                id="finish-polish",
                title="Finish and Polish",
                description="Create a smooth, polished finish",
                instructions=[
                    "Sand all surfaces progressively",
                    "Remove all scratches",
                    "Polish to desired finish",
                ],
                tips=["Work through grits systematically", "Clean between grits"],
                estimated_minutes=45,
                photo_required=True,
                success_criteria=["Smooth, polished surface", "No visible scratches", "Professional appearance"],
            ),
        ],
    ),
]


def default_catalog(path: Optional[str] = None) -> StaticTemplateCatalog:
    if path:
        return load_catalog(path)
    return StaticTemplateCatalog(BUILTIN_TEMPLATES)


__all__ = [
    "BUILTIN_TEMPLATES",
    "StaticTemplateCatalog",
    "TemplateCatalog",
    "default_catalog",
    "get_recommended_templates",
    "load_catalog",
    "popular_template_names",
    "templates_by_craft",
    "templates_by_skill_level",
]
