from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.choices import MATERIAL_CATEGORY_CHOICES, MATERIAL_UNIT_CHOICES
from ..core.config import settings
from ..core.errors import ValidationFailure
from ..crud.materials import (
    adjust_stock,
    calculate_cost,
    create_material,
    get_material,
    list_low_stock,
    list_materials,
    list_materials_by_category,
    list_stock_history,
    update_material,
)
from ..db.session import get_db
from ..deps.auth import require_api_key
from ..schemas.material import (
    CostRequest,
    CostResponse,
    MaterialCreate,
    MaterialListResponse,
    MaterialOut,
    MaterialStats,
    MaterialUpdate,
    StockAdjustmentOut,
    StockUpdate,
    check_choice,
)
from ..services.reporting import calculate_material_stats

router = APIRouter(prefix="/materials", tags=["materials"], dependencies=[Depends(require_api_key)])


def _material_to_schema(material) -> MaterialOut:
    return MaterialOut.model_validate(material, from_attributes=True)


def _choice_or_422(value: Optional[str], choices: tuple[str, ...], field: str) -> Optional[str]:
    try:
        return check_choice(value, choices, field)
    except ValueError as exc:
        raise ValidationFailure(str(exc)) from exc


@router.post("", response_model=MaterialOut, status_code=201)
def api_create_material(payload: MaterialCreate, db: Session = Depends(get_db)):
    material = create_material(db, payload.model_dump())
    return _material_to_schema(material)


@router.get("", response_model=MaterialListResponse)
def api_list_materials(
    query: Optional[str] = None,
    category: Optional[str] = None,
    unit: Optional[str] = None,
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    in_stock: bool = False,
    low_stock: bool = False,
    supplier: Optional[str] = None,
    tags: Optional[list[str]] = Query(default=None),
    limit: int = Query(default=settings.MATERIALS_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = list_materials(
        db,
        query=query,
        category=_choice_or_422(category, MATERIAL_CATEGORY_CHOICES, "category"),
        unit=_choice_or_422(unit, MATERIAL_UNIT_CHOICES, "unit"),
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
        low_stock=low_stock,
        supplier=supplier,
        tags=tags,
        limit=limit,
        offset=offset,
    )
    return MaterialListResponse(
        materials=[_material_to_schema(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=MaterialStats)
def api_material_stats(db: Session = Depends(get_db)):
    return calculate_material_stats(db)


@router.get("/low-stock", response_model=list[MaterialOut])
def api_low_stock(db: Session = Depends(get_db)):
    return [_material_to_schema(item) for item in list_low_stock(db)]


@router.post("/calculate-cost", response_model=CostResponse)
def api_calculate_cost(payload: CostRequest, db: Session = Depends(get_db)):
    return calculate_cost(db, [item.model_dump() for item in payload.materials])


@router.get("/category/{category}", response_model=list[MaterialOut])
def api_materials_by_category(category: str, db: Session = Depends(get_db)):
    normalized = _choice_or_422(category, MATERIAL_CATEGORY_CHOICES, "category")
    return [_material_to_schema(item) for item in list_materials_by_category(db, normalized)]


@router.get("/{material_id}", response_model=MaterialOut)
def api_get_material(material_id: int, db: Session = Depends(get_db)):
    return _material_to_schema(get_material(db, material_id))


@router.put("/{material_id}", response_model=MaterialOut)
def api_update_material(material_id: int, payload: MaterialUpdate, db: Session = Depends(get_db)):
    material = update_material(db, material_id, payload.model_dump(exclude_unset=True))
    return _material_to_schema(material)


@router.post("/{material_id}/stock", response_model=MaterialOut)
def api_update_stock(material_id: int, payload: StockUpdate, db: Session = Depends(get_db)):
    material = adjust_stock(db, material_id, payload.quantity_change, payload.reason)
    return _material_to_schema(material)


@router.get("/{material_id}/stock/history", response_model=list[StockAdjustmentOut])
def api_stock_history(material_id: int, db: Session = Depends(get_db)):
    return [
        StockAdjustmentOut.model_validate(entry, from_attributes=True)
        for entry in list_stock_history(db, material_id)
    ]
