from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..core.choices import STATUS_COMPLETED
from ..models.material import Material
from ..models.project import Project

TWOPLACES = Decimal("0.01")
HOUR_PLACES = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def _quantize_currency(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP) if value else Decimal("0.00")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _histogram(db: Session, column, *conditions) -> Dict[str, int]:
    stmt = select(column, func.count()).where(*conditions).group_by(column)
    return {key: int(count) for key, count in db.execute(stmt).all()}


def calculate_material_stats(db: Session) -> Dict[str, Any]:
    """Inventory totals across active materials."""

    active = Material.is_active.is_(True)
    low_stock = case(
        ((Material.stock_quantity > 0) & (Material.stock_quantity <= Material.min_stock_level), 1),
        else_=0,
    )
    out_of_stock = case((Material.stock_quantity == 0, 1), else_=0)
    stmt = select(
        func.count(Material.id),
        func.sum(low_stock),
        func.sum(out_of_stock),
        func.sum(Material.stock_quantity),
    ).where(active)
    total, low_count, out_count, stock_units = db.execute(stmt).one()

    # Multiply in Python so money math stays in Decimal on every backend.
    value_rows = db.execute(select(Material.price_per_unit, Material.stock_quantity).where(active)).all()
    total_value = sum(
        (_to_decimal(price) * int(quantity or 0) for price, quantity in value_rows),
        Decimal("0"),
    )

    return {
        "total_materials": int(total or 0),
        "materials_by_category": _histogram(db, Material.category, active),
        "total_value": _quantize_currency(total_value),
        "low_stock_count": int(low_count or 0),
        "out_of_stock_count": int(out_count or 0),
        "total_stock_items": int(stock_units or 0),
    }


def calculate_project_stats(db: Session) -> Dict[str, Any]:
    """Project counts, cost totals and the mean time from creation to completion."""

    rows = db.execute(
        select(Project.status, Project.created_at, Project.completed_at, Project.estimated_cost, Project.actual_cost)
    ).all()

    total_estimated = Decimal("0")
    total_actual = Decimal("0")
    completion_hours: list[Decimal] = []
    for status, created_at, completed_at, estimated_cost, actual_cost in rows:
        total_estimated += _to_decimal(estimated_cost)
        total_actual += _to_decimal(actual_cost)
        if status != STATUS_COMPLETED:
            continue
        started = _parse_timestamp(created_at)
        finished = _parse_timestamp(completed_at)
        if started is None or finished is None:
            continue
        seconds = Decimal(str((finished - started).total_seconds()))
        completion_hours.append(seconds / SECONDS_PER_HOUR)

    average = Decimal("0")
    if completion_hours:
        average = (sum(completion_hours, Decimal("0")) / len(completion_hours)).quantize(
            HOUR_PLACES, rounding=ROUND_HALF_UP
        )

    return {
        "total_projects": len(rows),
        "projects_by_difficulty": _histogram(db, Project.difficulty),
        "projects_by_status": _histogram(db, Project.status),
        "projects_by_category": _histogram(db, Project.category),
        "average_completion_time": average,
        "total_estimated_cost": _quantize_currency(total_estimated),
        "total_actual_cost": _quantize_currency(total_actual),
    }
