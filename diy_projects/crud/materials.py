"""Materials catalog: material records, stock bookkeeping and pricing lookups."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Sequence

from sqlalchemy import Float, Text, cast, desc, func, or_, select, update
from sqlalchemy.orm import Session

from ..core.choices import MATERIAL_CATEGORY_CHOICES, MATERIAL_UNIT_CHOICES, normalize_choice
from ..core.config import settings
from ..core.errors import InsufficientStock, MaterialNotFound, NoOpUpdate, NotFound, ValidationFailure
from ..db.session import transaction
from ..models.material import Material, StockAdjustment

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
INITIAL_STOCK_REASON = "Initial stock setup"
MANUAL_STOCK_REASON = "Manual stock update"

# Request field -> Material column. Only these fields can be written by an update.
MATERIAL_FIELD_COLUMNS: dict[str, str] = {
    "name": "name",
    "description": "description",
    "category": "category",
    "unit": "unit",
    "price_per_unit": "price_per_unit",
    "stock_quantity": "stock_quantity",
    "min_stock_level": "min_stock_level",
    "supplier": "supplier",
    "supplier_part_number": "supplier_part_number",
    "image_url": "image_url",
    "specifications": "specifications",
    "tags": "tags",
    "is_active": "is_active",
}
NULLABLE_FIELDS = frozenset({"supplier", "supplier_part_number", "image_url"})


@dataclass(frozen=True)
class MaterialPricing:
    price: Decimal
    in_stock: bool
    available_quantity: int


@dataclass(frozen=True)
class StockReservation:
    material_id: int
    quantity: int
    reason: str


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def to_decimal(value: Any) -> Decimal:
    """Convert user-entered currency values to ``Decimal``; invalid input raises."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationFailure(f"Invalid amount: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip().replace("$", "").replace(",", "")
        try:
            return Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValidationFailure(f"Invalid amount: {value!r}") from exc
    raise ValidationFailure(f"Invalid amount: {value!r}")


def money(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _clean_material_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Validate and normalise the writable material fields present in ``data``."""

    cleaned = dict(data)
    if "name" in cleaned:
        name = (cleaned["name"] or "").strip()
        if not name:
            raise ValidationFailure("name is required")
        cleaned["name"] = name
    if "description" in cleaned:
        cleaned["description"] = (cleaned["description"] or "").strip()
    if "category" in cleaned:
        category = normalize_choice(cleaned["category"])
        if category not in MATERIAL_CATEGORY_CHOICES:
            raise ValidationFailure(f"Invalid material category: {cleaned['category']!r}")
        cleaned["category"] = category
    if "unit" in cleaned:
        unit = normalize_choice(cleaned["unit"])
        if unit not in MATERIAL_UNIT_CHOICES:
            raise ValidationFailure(f"Invalid unit of measure: {cleaned['unit']!r}")
        cleaned["unit"] = unit
    if "price_per_unit" in cleaned:
        price = money(cleaned["price_per_unit"])
        if price < 0:
            raise ValidationFailure("price_per_unit must be non-negative")
        cleaned["price_per_unit"] = price
    for field in ("stock_quantity", "min_stock_level"):
        if field in cleaned:
            value = int(cleaned[field])
            if value < 0:
                raise ValidationFailure(f"{field} must be non-negative")
            cleaned[field] = value
    for field in NULLABLE_FIELDS:
        if field in cleaned:
            cleaned[field] = (cleaned[field] or "").strip() or None
    if "specifications" in cleaned:
        cleaned["specifications"] = dict(cleaned["specifications"] or {})
    if "tags" in cleaned:
        cleaned["tags"] = list(cleaned["tags"] or [])
    if "is_active" in cleaned:
        cleaned["is_active"] = bool(cleaned["is_active"])
    return cleaned


def _load_material(db: Session, material_id: int, *, active_only: bool = True) -> Material:
    stmt = select(Material).where(Material.id == material_id)
    if active_only:
        stmt = stmt.where(Material.is_active.is_(True))
    material = db.execute(stmt).scalars().first()
    if material is None:
        raise NotFound(f"Material with id {material_id} not found")
    return material


def get_material(db: Session, material_id: int) -> Material:
    """Fetch an active material or raise ``NotFound``."""

    return _load_material(db, material_id)


def create_material(db: Session, payload: dict) -> Material:
    """Insert a material, auditing its opening stock when there is any."""

    data = {key: value for key, value in payload.items() if key in MATERIAL_FIELD_COLUMNS}
    for required in ("name", "category", "unit", "price_per_unit"):
        if data.get(required) is None:
            raise ValidationFailure(f"{required} is required")
    data.setdefault("stock_quantity", 0)
    data.setdefault("min_stock_level", 0)
    data = _clean_material_fields(data)
    now = utcnow()
    material = Material(
        name=data["name"],
        description=data.get("description", ""),
        category=data["category"],
        unit=data["unit"],
        price_per_unit=data["price_per_unit"],
        stock_quantity=data["stock_quantity"],
        min_stock_level=data["min_stock_level"],
        supplier=data.get("supplier"),
        supplier_part_number=data.get("supplier_part_number"),
        image_url=data.get("image_url"),
        specifications=data.get("specifications", {}),
        tags=data.get("tags", []),
        is_active=data.get("is_active", True),
        created_at=now,
        updated_at=now,
    )
    with transaction(db):
        db.add(material)
        db.flush()
        if material.stock_quantity > 0:
            db.add(
                StockAdjustment(
                    material_id=material.id,
                    quantity_before=0,
                    quantity_change=material.stock_quantity,
                    quantity_after=material.stock_quantity,
                    reason=INITIAL_STOCK_REASON,
                    created_at=now,
                )
            )
    logger.info(
        "material.created",
        extra={"extra_data": {"material_id": material.id, "stock_quantity": material.stock_quantity}},
    )
    return material


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def tag_condition(column, tag: str):
    # Tags are stored as a JSON array; match the encoded string element literally.
    encoded = escape_like(json.dumps(tag.strip()))
    return cast(column, Text).like(f"%{encoded}%", escape="\\")


def list_materials(
    db: Session,
    *,
    query: str | None = None,
    category: str | None = None,
    unit: str | None = None,
    min_price: Decimal | float | None = None,
    max_price: Decimal | float | None = None,
    in_stock: bool = False,
    low_stock: bool = False,
    supplier: str | None = None,
    tags: Sequence[str] | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Material], int]:
    """Return one page of active materials ordered by name plus the total match count."""

    conditions = [Material.is_active.is_(True)]
    if query and query.strip():
        pattern = f"%{escape_like(query.strip())}%"
        conditions.append(
            or_(Material.name.ilike(pattern, escape="\\"), Material.description.ilike(pattern, escape="\\"))
        )
    if category:
        conditions.append(Material.category == normalize_choice(category))
    if unit:
        conditions.append(Material.unit == normalize_choice(unit))
    if min_price is not None:
        conditions.append(Material.price_per_unit >= to_decimal(min_price))
    if max_price is not None:
        conditions.append(Material.price_per_unit <= to_decimal(max_price))
    if in_stock:
        conditions.append(Material.stock_quantity > 0)
    if low_stock:
        conditions.append(Material.stock_quantity > 0)
        conditions.append(Material.stock_quantity <= Material.min_stock_level)
    if supplier and supplier.strip():
        conditions.append(Material.supplier.ilike(f"%{escape_like(supplier.strip())}%", escape="\\"))
    for tag in tags or ():
        if tag and tag.strip():
            conditions.append(tag_condition(Material.tags, tag))

    page_size = limit if limit is not None else settings.MATERIALS_PAGE_SIZE
    stmt = (
        select(Material)
        .where(*conditions)
        .order_by(Material.name.asc(), Material.id.asc())
        .limit(page_size)
        .offset(offset)
    )
    items = db.execute(stmt).scalars().all()
    total = db.execute(select(func.count()).select_from(Material).where(*conditions)).scalar_one()
    return list(items), int(total)


def list_materials_by_category(db: Session, category: str) -> list[Material]:
    stmt = (
        select(Material)
        .where(Material.category == normalize_choice(category), Material.is_active.is_(True))
        .order_by(Material.name.asc(), Material.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def list_low_stock(db: Session) -> list[Material]:
    """Active materials at or below their minimum level, most depleted first.

    Materials with zero stock are out of stock rather than low, and are excluded.
    """

    ratio = cast(Material.stock_quantity, Float) / func.nullif(Material.min_stock_level, 0)
    stmt = (
        select(Material)
        .where(
            Material.is_active.is_(True),
            Material.stock_quantity > 0,
            Material.stock_quantity <= Material.min_stock_level,
        )
        .order_by(ratio.asc(), Material.name.asc())
    )
    return list(db.execute(stmt).scalars().all())


def _lock_material(db: Session, material_id: int, now: str) -> Material:
    """Take the material's row write lock, then load it fresh.

    Touching ``updated_at`` first makes every backend (SQLite included)
    serialize writers on this row before any value is read.
    """

    result = db.execute(
        update(Material)
        .where(Material.id == material_id)
        .values(updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound(f"Material with id {material_id} not found")
    return db.execute(
        select(Material).where(Material.id == material_id).execution_options(populate_existing=True)
    ).scalar_one()


def update_material(db: Session, material_id: int, payload: dict) -> Material:
    """Apply a partial update.

    A changed ``stock_quantity`` goes through the same audited path as
    ``adjust_stock``. Inactive materials can be updated so they can be
    re-activated.
    """

    data = {
        key: value
        for key, value in payload.items()
        if key in MATERIAL_FIELD_COLUMNS and (value is not None or key in NULLABLE_FIELDS)
    }
    if not data:
        raise NoOpUpdate()
    data = _clean_material_fields(data)
    new_stock = data.pop("stock_quantity", None)
    with transaction(db):
        material = _lock_material(db, material_id, utcnow())
        if new_stock is not None and new_stock != material.stock_quantity:
            material, _ = _apply_stock_change(
                db, material_id, new_stock - material.stock_quantity, MANUAL_STOCK_REASON, active_only=False
            )
        for field, value in data.items():
            setattr(material, MATERIAL_FIELD_COLUMNS[field], value)
        material.updated_at = utcnow()
    return material


def _apply_stock_change(
    db: Session, material_id: int, change: int, reason: str, *, active_only: bool = True
) -> tuple[Material, StockAdjustment]:
    """Move stock by ``change`` and append the audit row; the caller owns the transaction.

    The new quantity is computed by a single conditional UPDATE, so concurrent
    changes to one material queue on the row and never overwrite each other.
    Returns the refreshed material and its audit entry.
    """

    now = utcnow()
    conditions = [Material.id == material_id, Material.stock_quantity + change >= 0]
    if active_only:
        conditions.append(Material.is_active.is_(True))
    result = db.execute(
        update(Material)
        .where(*conditions)
        .values(stock_quantity=Material.stock_quantity + change, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        lookup = select(Material.stock_quantity).where(Material.id == material_id)
        if active_only:
            lookup = lookup.where(Material.is_active.is_(True))
        available = db.execute(lookup).scalar_one_or_none()
        if available is None:
            raise NotFound(f"Material with id {material_id} not found")
        raise InsufficientStock(material_id, available, change)

    material = db.execute(
        select(Material).where(Material.id == material_id).execution_options(populate_existing=True)
    ).scalar_one()
    after = material.stock_quantity
    adjustment = StockAdjustment(
        material_id=material_id,
        quantity_before=after - change,
        quantity_change=change,
        quantity_after=after,
        reason=reason,
        created_at=now,
    )
    db.add(adjustment)
    return material, adjustment


def adjust_stock(db: Session, material_id: int, change: int, reason: str) -> Material:
    """Apply a signed stock change to an active material and record it."""

    if not change:
        raise ValidationFailure("quantity_change must be non-zero")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailure("reason is required")
    with transaction(db):
        material, adjustment = _apply_stock_change(db, material_id, change, reason)
    logger.info(
        "stock.adjusted",
        extra={
            "extra_data": {
                "material_id": material_id,
                "quantity_before": adjustment.quantity_before,
                "quantity_change": change,
                "quantity_after": adjustment.quantity_after,
            }
        },
    )
    return material


def list_stock_history(db: Session, material_id: int, limit: int | None = None) -> list[StockAdjustment]:
    """Newest-first audit entries for a material (active or not)."""

    _load_material(db, material_id, active_only=False)
    stmt = (
        select(StockAdjustment)
        .where(StockAdjustment.material_id == material_id)
        .order_by(desc(StockAdjustment.created_at), desc(StockAdjustment.id))
        .limit(limit if limit is not None else settings.STOCK_HISTORY_LIMIT)
    )
    return list(db.execute(stmt).scalars().all())


def get_pricing(db: Session, material_ids: Iterable[int]) -> dict[int, MaterialPricing]:
    """Price and availability for the active materials among ``material_ids``.

    Unknown or inactive ids are simply absent from the result.
    """

    ids = sorted({int(material_id) for material_id in material_ids})
    if not ids:
        return {}
    stmt = select(Material.id, Material.price_per_unit, Material.stock_quantity).where(
        Material.id.in_(ids), Material.is_active.is_(True)
    )
    return {
        row.id: MaterialPricing(
            price=money(row.price_per_unit),
            in_stock=row.stock_quantity > 0,
            available_quantity=row.stock_quantity,
        )
        for row in db.execute(stmt).all()
    }


def reserve_materials(
    db: Session,
    reservations: Sequence[StockReservation],
    *,
    commit: bool = True,
) -> list[StockAdjustment]:
    """Decrement stock for every reservation, all or nothing.

    With ``commit=False`` the reservations join the caller's transaction.
    """

    adjustments: list[StockAdjustment] = []
    with transaction(db, commit=commit):
        for reservation in reservations:
            if reservation.quantity <= 0:
                raise ValidationFailure("reservation quantity must be positive")
            try:
                _, adjustment = _apply_stock_change(
                    db, reservation.material_id, -reservation.quantity, reservation.reason
                )
            except NotFound as exc:
                raise MaterialNotFound(reservation.material_id) from exc
            adjustments.append(adjustment)
    logger.info(
        "stock.reserved",
        extra={
            "extra_data": {
                "materials": [reservation.material_id for reservation in reservations],
                "committed": commit,
            }
        },
    )
    return adjustments


def calculate_cost(db: Session, items: Sequence[dict]) -> dict[str, Any]:
    """Price a candidate material list without persisting anything."""

    pricing = get_pricing(db, [item["material_id"] for item in items])
    lines = []
    total = Decimal("0.00")
    all_available = True
    for item in items:
        material_id = item["material_id"]
        quantity = int(item["quantity"])
        price = pricing.get(material_id)
        if price is None:
            raise MaterialNotFound(material_id)
        line_total = money(price.price * quantity)
        in_stock = price.available_quantity >= quantity
        all_available = all_available and in_stock
        total += line_total
        lines.append(
            {
                "material_id": material_id,
                "quantity": quantity,
                "unit_price": price.price,
                "total_cost": line_total,
                "in_stock": in_stock,
                "available_quantity": price.available_quantity,
            }
        )
    return {"materials": lines, "total_cost": total, "all_materials_available": all_available}
