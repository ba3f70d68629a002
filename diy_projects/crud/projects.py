"""CRUD helpers for the project ledger and its priced material line items."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import desc, func, or_, select, update
from sqlalchemy.orm import Session, noload, selectinload

from ..core.choices import (
    PROJECT_CATEGORY_CHOICES,
    PROJECT_DIFFICULTY_CHOICES,
    PROJECT_STATUS_CHOICES,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PLANNING,
    normalize_choice,
)
from ..core.config import settings
from ..core.errors import (
    MaterialNotFound,
    NoMaterials,
    NoOpUpdate,
    NotFound,
    ProjectNotStartable,
    ValidationFailure,
)
from ..db.session import transaction
from ..models.project import Project, ProjectMaterial
from ..services.catalog import MaterialsCatalog, StockReservation, get_catalog
from .materials import escape_like, money, tag_condition, to_decimal, utcnow

logger = logging.getLogger(__name__)

# Request field -> Project column for plain field updates. ``materials`` is
# handled separately because it replaces the line items wholesale.
PROJECT_FIELD_COLUMNS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "difficulty": "difficulty",
    "category": "category",
    "estimated_hours": "estimated_hours",
    "status": "status",
    "actual_cost": "actual_cost",
    "instructions": "instructions",
    "image_urls": "image_urls",
    "tags": "tags",
}
NULLABLE_FIELDS = frozenset({"actual_cost"})


def _check_choice(field: str, value: Any, choices: tuple[str, ...]) -> str:
    normalized = normalize_choice(value)
    if normalized not in choices:
        raise ValidationFailure(f"Invalid {field}: {value!r}")
    return normalized


def _clean_project_fields(data: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(data)
    if "title" in cleaned:
        title = (cleaned["title"] or "").strip()
        if not title:
            raise ValidationFailure("title is required")
        cleaned["title"] = title
    if "description" in cleaned:
        cleaned["description"] = (cleaned["description"] or "").strip()
    if "difficulty" in cleaned:
        cleaned["difficulty"] = _check_choice("difficulty", cleaned["difficulty"], PROJECT_DIFFICULTY_CHOICES)
    if "category" in cleaned:
        cleaned["category"] = _check_choice("category", cleaned["category"], PROJECT_CATEGORY_CHOICES)
    if "status" in cleaned:
        cleaned["status"] = _check_choice("status", cleaned["status"], PROJECT_STATUS_CHOICES)
    if "estimated_hours" in cleaned:
        hours = int(cleaned["estimated_hours"])
        if hours <= 0:
            raise ValidationFailure("estimated_hours must be positive")
        cleaned["estimated_hours"] = hours
    if cleaned.get("actual_cost") is not None:
        actual = money(cleaned["actual_cost"])
        if actual < 0:
            raise ValidationFailure("actual_cost must be non-negative")
        cleaned["actual_cost"] = actual
    for field in ("instructions", "image_urls", "tags"):
        if field in cleaned:
            cleaned[field] = [str(item) for item in (cleaned[field] or [])]
    return cleaned


def _price_line_items(
    catalog: MaterialsCatalog, items: Sequence[dict]
) -> tuple[list[ProjectMaterial], Decimal]:
    """Build priced line items from catalog prices; any unknown material aborts."""

    for item in items:
        if int(item.get("quantity") or 0) <= 0:
            raise ValidationFailure("material quantity must be positive")
    pricing = catalog.get_pricing([item["material_id"] for item in items])
    now = utcnow()
    lines: list[ProjectMaterial] = []
    estimated = Decimal("0.00")
    for item in items:
        material_id = int(item["material_id"])
        price = pricing.get(material_id)
        if price is None:
            raise MaterialNotFound(material_id)
        quantity = int(item["quantity"])
        total = money(price.price * quantity)
        estimated += total
        lines.append(
            ProjectMaterial(
                material_id=material_id,
                quantity=quantity,
                unit_price=price.price,
                total_price=total,
                notes=(item.get("notes") or None),
                created_at=now,
            )
        )
    return lines, estimated


def _load_project(db: Session, project_id: int) -> Project:
    stmt = (
        select(Project)
        .options(selectinload(Project.materials))
        .where(Project.id == project_id)
        .execution_options(populate_existing=True)
    )
    project = db.execute(stmt).scalars().first()
    if project is None:
        raise NotFound(f"Project with id {project_id} not found")
    return project


def get_project(db: Session, project_id: int) -> Project:
    """Fetch a project with its line items or raise ``NotFound``."""

    return _load_project(db, project_id)


def create_project(db: Session, payload: dict, catalog: MaterialsCatalog | None = None) -> Project:
    catalog = catalog or get_catalog(db)
    for required in ("title", "difficulty", "category", "estimated_hours"):
        if payload.get(required) is None:
            raise ValidationFailure(f"{required} is required")
    data = _clean_project_fields({key: value for key, value in payload.items() if key in PROJECT_FIELD_COLUMNS})
    now = utcnow()
    with transaction(db):
        lines, estimated = _price_line_items(catalog, payload.get("materials") or [])
        project = Project(
            title=data["title"],
            description=data.get("description", ""),
            difficulty=data["difficulty"],
            category=data["category"],
            estimated_hours=data["estimated_hours"],
            estimated_cost=estimated,
            status=STATUS_PLANNING,
            instructions=data.get("instructions", []),
            image_urls=data.get("image_urls", []),
            tags=data.get("tags", []),
            created_at=now,
            updated_at=now,
        )
        project.materials = lines
        db.add(project)
    logger.info(
        "project.created",
        extra={"extra_data": {"project_id": project.id, "line_items": len(lines), "estimated_cost": str(estimated)}},
    )
    return _load_project(db, project.id)


def list_projects(
    db: Session,
    *,
    query: str | None = None,
    difficulty: str | None = None,
    category: str | None = None,
    status: str | None = None,
    min_hours: int | None = None,
    max_hours: int | None = None,
    min_cost: Decimal | float | None = None,
    max_cost: Decimal | float | None = None,
    tags: Sequence[str] | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Project], int]:
    """Return one page of projects, newest first, without their line items."""

    conditions = []
    if query and query.strip():
        pattern = f"%{escape_like(query.strip())}%"
        conditions.append(
            or_(Project.title.ilike(pattern, escape="\\"), Project.description.ilike(pattern, escape="\\"))
        )
    if difficulty:
        conditions.append(Project.difficulty == normalize_choice(difficulty))
    if category:
        conditions.append(Project.category == normalize_choice(category))
    if status:
        conditions.append(Project.status == normalize_choice(status))
    if min_hours is not None:
        conditions.append(Project.estimated_hours >= min_hours)
    if max_hours is not None:
        conditions.append(Project.estimated_hours <= max_hours)
    if min_cost is not None:
        conditions.append(Project.estimated_cost >= to_decimal(min_cost))
    if max_cost is not None:
        conditions.append(Project.estimated_cost <= to_decimal(max_cost))
    for tag in tags or ():
        if tag and tag.strip():
            conditions.append(tag_condition(Project.tags, tag))

    page_size = limit if limit is not None else settings.PROJECTS_PAGE_SIZE
    stmt = (
        select(Project)
        .options(noload(Project.materials))
        .where(*conditions)
        .order_by(desc(Project.created_at), desc(Project.id))
        .limit(page_size)
        .offset(offset)
    )
    items = db.execute(stmt).scalars().all()
    total = db.execute(select(func.count()).select_from(Project).where(*conditions)).scalar_one()
    return list(items), int(total)


def update_project(
    db: Session, project_id: int, payload: dict, catalog: MaterialsCatalog | None = None
) -> Project:
    """Apply a partial update; a ``materials`` list replaces every line item."""

    catalog = catalog or get_catalog(db)
    data = {
        key: value
        for key, value in payload.items()
        if key in PROJECT_FIELD_COLUMNS and (value is not None or key in NULLABLE_FIELDS)
    }
    new_materials = payload.get("materials")
    if not data and new_materials is None:
        raise NoOpUpdate()
    data = _clean_project_fields(data)
    now = utcnow()
    with transaction(db):
        project = _load_project(db, project_id)
        if new_materials is not None:
            lines, estimated = _price_line_items(catalog, new_materials)
            # delete-orphan removes the previous line items on flush
            project.materials = lines
            project.estimated_cost = estimated
        for field, value in data.items():
            setattr(project, PROJECT_FIELD_COLUMNS[field], value)
        if data.get("status") == STATUS_COMPLETED:
            project.completed_at = now
        project.updated_at = now
    return _load_project(db, project_id)


def delete_project(db: Session, project_id: int) -> None:
    with transaction(db):
        project = _load_project(db, project_id)
        db.delete(project)
    logger.info("project.deleted", extra={"extra_data": {"project_id": project_id}})


def start_project(db: Session, project_id: int, catalog: MaterialsCatalog | None = None) -> Project:
    """Reserve stock for every line item and move the project to in_progress.

    Only a ``planning`` project can be started; anything else (including a
    paused project, whose stock was already reserved) raises
    ``ProjectNotStartable``. The status is claimed with a conditional UPDATE,
    so of two concurrent starts only one reserves stock. The claim and the
    reservation share one transaction.
    """

    catalog = catalog or get_catalog(db)
    with transaction(db):
        project = _load_project(db, project_id)
        if not project.materials:
            raise NoMaterials(f"Project {project_id} has no materials to reserve")
        claimed = db.execute(
            update(Project)
            .where(Project.id == project_id, Project.status == STATUS_PLANNING)
            .values(status=STATUS_IN_PROGRESS, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            current = db.execute(select(Project.status).where(Project.id == project_id)).scalar_one()
            raise ProjectNotStartable(project_id, current)
        reason = f"Reserved for project {project.id}: {project.title}"
        catalog.reserve(
            [StockReservation(line.material_id, line.quantity, reason) for line in project.materials]
        )
    logger.info("project.started", extra={"extra_data": {"project_id": project_id}})
    return _load_project(db, project_id)


def recalculate_cost(db: Session, project_id: int, catalog: MaterialsCatalog | None = None) -> Project:
    """Re-price existing line items from current catalog prices."""

    catalog = catalog or get_catalog(db)
    with transaction(db):
        project = _load_project(db, project_id)
        pricing = catalog.get_pricing([line.material_id for line in project.materials])
        estimated = Decimal("0.00")
        for line in project.materials:
            price = pricing.get(line.material_id)
            if price is None:
                raise MaterialNotFound(line.material_id)
            line.unit_price = price.price
            line.total_price = money(price.price * line.quantity)
            estimated += line.total_price
        project.estimated_cost = estimated
        project.updated_at = utcnow()
    return _load_project(db, project_id)


def list_startable_projects(db: Session, catalog: MaterialsCatalog | None = None) -> list[Project]:
    """Planning projects whose every line item is covered by available stock.

    Pricing for all candidate projects is fetched in a single catalog call.
    Projects without line items are skipped since starting them would fail.
    """

    catalog = catalog or get_catalog(db)
    stmt = (
        select(Project)
        .options(selectinload(Project.materials))
        .where(Project.status == STATUS_PLANNING)
        .order_by(desc(Project.created_at), desc(Project.id))
    )
    candidates = [project for project in db.execute(stmt).scalars().all() if project.materials]
    pricing = catalog.get_pricing({line.material_id for project in candidates for line in project.materials})

    startable = []
    for project in candidates:
        needed: dict[int, int] = defaultdict(int)
        for line in project.materials:
            needed[line.material_id] += line.quantity
        if all(
            material_id in pricing and pricing[material_id].available_quantity >= quantity
            for material_id, quantity in needed.items()
        ):
            startable.append(project)
    return startable
