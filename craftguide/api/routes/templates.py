from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from craftguide.api.deps import get_catalog
from craftguide.schemas.enums import CraftType, SkillLevel
from craftguide.schemas.templates import ProjectTemplate, UserProfile
from craftguide.services.catalog import (
    TemplateCatalog,
    get_recommended_templates,
    popular_template_names,
    templates_by_craft,
    templates_by_skill_level,
)

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[ProjectTemplate])
def list_templates(
    craft_type: Optional[CraftType] = None,
    skill_level: Optional[SkillLevel] = None,
    catalog: TemplateCatalog = Depends(get_catalog),
):
    templates = catalog.list_templates()
    if craft_type is not None:
        templates = templates_by_craft(catalog, craft_type)
    if skill_level is not None:
        allowed = {t.id for t in templates_by_skill_level(catalog, skill_level)}
        templates = [t for t in templates if t.id in allowed]
    return templates


@router.get("/popular", response_model=List[str])
def popular_templates(catalog: TemplateCatalog = Depends(get_catalog)):
    return popular_template_names(catalog)


@router.post("/recommended", response_model=List[ProjectTemplate])
def recommended_templates(
    profile: UserProfile,
    catalog: TemplateCatalog = Depends(get_catalog),
):
    return get_recommended_templates(catalog, profile)


@router.get("/{template_id}", response_model=ProjectTemplate)
def get_template(template_id: str, catalog: TemplateCatalog = Depends(get_catalog)):
    template = catalog.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template {template_id} not found")
    return template
