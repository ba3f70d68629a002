"""Pydantic schemas for the materials catalog API."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..core.choices import MATERIAL_CATEGORY_CHOICES, MATERIAL_UNIT_CHOICES, normalize_choice

# Specification values are scalar only; nested structures are rejected.
SpecValue = Union[bool, int, float, str]


def check_choice(value: Optional[str], choices: tuple[str, ...], field: str) -> Optional[str]:
    if value is None:
        return None
    normalized = normalize_choice(value)
    if normalized not in choices:
        raise ValueError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def clean_tags(value: Optional[list[str]]) -> Optional[list[str]]:
    if value is None:
        return None
    seen: list[str] = []
    for tag in value:
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class MaterialBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: str
    unit: str
    price_per_unit: Decimal = Field(ge=0, max_digits=10)
    min_stock_level: int = Field(default=0, ge=0)
    supplier: Optional[str] = None
    supplier_part_number: Optional[str] = None
    image_url: Optional[str] = None
    specifications: dict[str, SpecValue] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: str) -> str:
        return check_choice(value, MATERIAL_CATEGORY_CHOICES, "category")

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, value: str) -> str:
        return check_choice(value, MATERIAL_UNIT_CHOICES, "unit")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: list[str]) -> list[str]:
        return clean_tags(value)


class MaterialCreate(MaterialBase):
    stock_quantity: int = Field(default=0, ge=0)


class MaterialUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    unit: Optional[str] = None
    price_per_unit: Optional[Decimal] = Field(default=None, ge=0, max_digits=10)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    min_stock_level: Optional[int] = Field(default=None, ge=0)
    supplier: Optional[str] = None
    supplier_part_number: Optional[str] = None
    image_url: Optional[str] = None
    specifications: Optional[dict[str, SpecValue]] = None
    tags: Optional[list[str]] = None
    is_active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        return check_choice(value, MATERIAL_CATEGORY_CHOICES, "category")

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, value: Optional[str]) -> Optional[str]:
        return check_choice(value, MATERIAL_UNIT_CHOICES, "unit")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return clean_tags(value)


class MaterialOut(BaseModel):
    id: int
    name: str
    description: str
    category: str
    unit: str
    price_per_unit: float
    stock_quantity: int
    min_stock_level: int
    supplier: Optional[str] = None
    supplier_part_number: Optional[str] = None
    image_url: Optional[str] = None
    specifications: dict[str, SpecValue] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    is_active: bool
    created_at: str
    updated_at: str

    class Config:
        from_attributes = True


class MaterialListResponse(BaseModel):
    materials: list[MaterialOut]
    total: int
    limit: int
    offset: int


class StockUpdate(BaseModel):
    quantity_change: int
    reason: str = Field(min_length=1)

    @field_validator("quantity_change")
    @classmethod
    def validate_change(cls, value: int) -> int:
        if value == 0:
            raise ValueError("quantity_change must be non-zero")
        return value

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("reason is required")
        return cleaned


class StockAdjustmentOut(BaseModel):
    id: int
    material_id: int
    quantity_before: int
    quantity_change: int
    quantity_after: int
    reason: str
    created_at: str

    class Config:
        from_attributes = True


class CostItem(BaseModel):
    material_id: int
    quantity: int = Field(gt=0)


class CostRequest(BaseModel):
    materials: list[CostItem] = Field(default_factory=list)


class MaterialCostLine(BaseModel):
    material_id: int
    quantity: int
    unit_price: float
    total_cost: float
    in_stock: bool
    available_quantity: int


class CostResponse(BaseModel):
    materials: list[MaterialCostLine]
    total_cost: float
    all_materials_available: bool


class MaterialStats(BaseModel):
    total_materials: int
    materials_by_category: dict[str, int]
    total_value: float
    low_stock_count: int
    out_of_stock_count: int
    total_stock_items: int
