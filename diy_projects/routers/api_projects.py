from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.choices import PROJECT_CATEGORY_CHOICES, PROJECT_DIFFICULTY_CHOICES, PROJECT_STATUS_CHOICES
from ..core.config import settings
from ..core.errors import ValidationFailure
from ..crud.projects import (
    create_project,
    delete_project,
    get_project,
    list_projects,
    list_startable_projects,
    recalculate_cost,
    start_project,
    update_project,
)
from ..db.session import get_db
from ..deps.auth import require_api_key
from ..deps.catalog import get_materials_catalog
from ..schemas.material import check_choice
from ..schemas.project import (
    ProjectCreate,
    ProjectDeleted,
    ProjectListResponse,
    ProjectOut,
    ProjectStats,
    ProjectUpdate,
)
from ..services.catalog import MaterialsCatalog
from ..services.reporting import calculate_project_stats

router = APIRouter(prefix="/projects", tags=["projects"], dependencies=[Depends(require_api_key)])


def _project_to_schema(project) -> ProjectOut:
    return ProjectOut.model_validate(project, from_attributes=True)


def _choice_or_422(value: Optional[str], choices: tuple[str, ...], field: str) -> Optional[str]:
    try:
        return check_choice(value, choices, field)
    except ValueError as exc:
        raise ValidationFailure(str(exc)) from exc


@router.post("", response_model=ProjectOut, status_code=201)
def api_create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    catalog: MaterialsCatalog = Depends(get_materials_catalog),
):
    project = create_project(db, payload.model_dump(), catalog=catalog)
    return _project_to_schema(project)


@router.get("", response_model=ProjectListResponse)
def api_list_projects(
    query: Optional[str] = None,
    difficulty: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    min_hours: Optional[int] = Query(default=None, ge=0),
    max_hours: Optional[int] = Query(default=None, ge=0),
    min_cost: Optional[Decimal] = Query(default=None, ge=0),
    max_cost: Optional[Decimal] = Query(default=None, ge=0),
    tags: Optional[list[str]] = Query(default=None),
    limit: int = Query(default=settings.PROJECTS_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = list_projects(
        db,
        query=query,
        difficulty=_choice_or_422(difficulty, PROJECT_DIFFICULTY_CHOICES, "difficulty"),
        category=_choice_or_422(category, PROJECT_CATEGORY_CHOICES, "category"),
        status=_choice_or_422(status, PROJECT_STATUS_CHOICES, "status"),
        min_hours=min_hours,
        max_hours=max_hours,
        min_cost=min_cost,
        max_cost=max_cost,
        tags=tags,
        limit=limit,
        offset=offset,
    )
    # Line items are not loaded for list views; fetch a project by id to see them.
    return ProjectListResponse(
        projects=[_project_to_schema(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ProjectStats)
def api_project_stats(db: Session = Depends(get_db)):
    return calculate_project_stats(db)


@router.get("/startable", response_model=list[ProjectOut])
def api_startable_projects(
    db: Session = Depends(get_db),
    catalog: MaterialsCatalog = Depends(get_materials_catalog),
):
    return [_project_to_schema(project) for project in list_startable_projects(db, catalog=catalog)]


@router.get("/{project_id}", response_model=ProjectOut)
def api_get_project(project_id: int, db: Session = Depends(get_db)):
    return _project_to_schema(get_project(db, project_id))


@router.put("/{project_id}", response_model=ProjectOut)
def api_update_project(
    project_id: int,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    catalog: MaterialsCatalog = Depends(get_materials_catalog),
):
    data = payload.model_dump(exclude_unset=True)
    project = update_project(db, project_id, data, catalog=catalog)
    return _project_to_schema(project)


@router.delete("/{project_id}", response_model=ProjectDeleted)
def api_delete_project(project_id: int, db: Session = Depends(get_db)):
    delete_project(db, project_id)
    return ProjectDeleted(success=True, message=f"Project {project_id} deleted successfully")


@router.post("/{project_id}/start", response_model=ProjectOut)
def api_start_project(
    project_id: int,
    db: Session = Depends(get_db),
    catalog: MaterialsCatalog = Depends(get_materials_catalog),
):
    return _project_to_schema(start_project(db, project_id, catalog=catalog))


@router.post("/{project_id}/recalculate-cost", response_model=ProjectOut)
def api_recalculate_cost(
    project_id: int,
    db: Session = Depends(get_db),
    catalog: MaterialsCatalog = Depends(get_materials_catalog),
):
    return _project_to_schema(recalculate_cost(db, project_id, catalog=catalog))
