"""SQLAlchemy models owned by the materials catalog."""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from ..core.choices import MATERIAL_CATEGORY_CHOICES, MATERIAL_UNIT_CHOICES, sql_in
from ..db.session import Base


class Material(Base):
    """A purchasable input with its price and current stock level."""

    __tablename__ = "materials"
    __table_args__ = (
        CheckConstraint(sql_in("category", MATERIAL_CATEGORY_CHOICES), name="ck_materials_category"),
        CheckConstraint(sql_in("unit", MATERIAL_UNIT_CHOICES), name="ck_materials_unit"),
        CheckConstraint("price_per_unit >= 0", name="ck_materials_price_non_negative"),
        CheckConstraint("stock_quantity >= 0", name="ck_materials_stock_non_negative"),
        CheckConstraint("min_stock_level >= 0", name="ck_materials_min_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    category = Column(String(50), nullable=False, index=True)
    unit = Column(String(20), nullable=False)
    price_per_unit = Column(Numeric(10, 2), nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0, index=True)
    min_stock_level = Column(Integer, nullable=False, default=0)
    supplier = Column(String(255), nullable=True, index=True)
    supplier_part_number = Column(String(255), nullable=True)
    image_url = Column(String(500), nullable=True)
    specifications = Column(JSON, nullable=False, default=dict)
    tags = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    @property
    def is_low_stock(self) -> bool:
        return 0 < (self.stock_quantity or 0) <= (self.min_stock_level or 0)


class StockAdjustment(Base):
    """Immutable audit row for a single change to ``Material.stock_quantity``.

    ``quantity_change`` is signed: positive for stock coming in, negative for
    usage or reservations.
    """

    __tablename__ = "stock_adjustments"
    __table_args__ = (
        CheckConstraint("quantity_after >= 0", name="ck_stock_adjustments_after_non_negative"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_stock_adjustments_balance",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("materials.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity_before = Column(Integer, nullable=False)
    quantity_change = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False, index=True)


__all__ = ["Material", "StockAdjustment"]
